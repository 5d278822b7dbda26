"""
Product Store — The local commerce catalog whose stock status is kept in sync.

The stock mapper only needs two lookups and a tiny product handle:

    store.find_id_by_sku("8590000000011")  -> 42 | None
    store.load(42)                          -> ProductHandle | None
    handle.get_stock_status() / set_stock_status("instock")
    handle.get_manage_stock() / set_stock_quantity(100)
    handle.save()

WooCommerceProductStore implements this on the WooCommerce REST API. Saving
sends only the stock fields that were changed on the handle, so prices and
every other product attribute are never written.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from woocommerce import API

logger = logging.getLogger(__name__)


class ProductStoreError(Exception):
    """The product store rejected a lookup or an update."""


class ProductHandle(ABC):
    @abstractmethod
    def get_stock_status(self) -> Optional[str]:
        ...

    @abstractmethod
    def set_stock_status(self, status: str) -> None:
        ...

    @abstractmethod
    def get_manage_stock(self) -> bool:
        ...

    @abstractmethod
    def set_stock_quantity(self, quantity: int) -> None:
        ...

    @abstractmethod
    def save(self) -> None:
        ...


class ProductStore(ABC):
    @abstractmethod
    def find_id_by_sku(self, sku: str) -> Optional[int]:
        ...

    @abstractmethod
    def load(self, product_id: int) -> Optional[ProductHandle]:
        ...


class WooCommerceProduct(ProductHandle):
    """Mutable view of one WooCommerce product's stock fields."""

    def __init__(self, api: API, data: Dict[str, Any]):
        self._api = api
        self.id = data["id"]
        self.sku = data.get("sku", "")
        self._stock_status = data.get("stock_status")
        self._manage_stock = bool(data.get("manage_stock"))
        self._stock_quantity = data.get("stock_quantity")
        self._changes: Dict[str, Any] = {}

    def get_stock_status(self) -> Optional[str]:
        return self._stock_status

    def set_stock_status(self, status: str) -> None:
        self._stock_status = status
        self._changes["stock_status"] = status

    def get_manage_stock(self) -> bool:
        return self._manage_stock

    def get_stock_quantity(self) -> Optional[int]:
        return self._stock_quantity

    def set_stock_quantity(self, quantity: int) -> None:
        self._stock_quantity = int(quantity)
        self._changes["stock_quantity"] = int(quantity)

    def save(self) -> None:
        if not self._changes:
            return
        path = f"products/{self.id}"
        r = self._api.put(path, self._changes)
        if not r.ok:
            logger.error(f"WooCommerce PUT error on {path}: {r.status_code} - {r.text}")
            raise ProductStoreError(f"WooCommerce API error ({r.status_code}): {r.text}")
        self._changes = {}


class WooCommerceProductStore(ProductStore):
    """Product store backed by the WooCommerce REST API."""

    def __init__(self, api: API):
        self.api = api

    @classmethod
    def from_credentials(
        cls,
        url: str,
        consumer_key: str,
        consumer_secret: str,
        version: str = "wc/v3",
        timeout: int = 30,
        verify_ssl: bool = True,
    ) -> "WooCommerceProductStore":
        """
        Create a store from individual credentials.

        Args:
            url: WooCommerce store URL
            consumer_key: WooCommerce consumer key
            consumer_secret: WooCommerce consumer secret
            version: REST API version (e.g. "wc/v3")
            timeout: Request timeout in seconds
            verify_ssl: Verify the store's TLS certificate
        """
        return cls(API(
            url=url,
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            wp_api=True,
            version=version,
            timeout=timeout,
            verify_ssl=verify_ssl,
        ))

    def find_id_by_sku(self, sku: str) -> Optional[int]:
        r = self.api.get("products", params={"sku": sku})
        if not r.ok:
            logger.error(f"WooCommerce GET error on products?sku={sku}: {r.status_code} - {r.text}")
            raise ProductStoreError(f"WooCommerce API error ({r.status_code}): {r.text}")
        # The sku filter is a partial match on some installations.
        for item in r.json() or []:
            if item.get("sku") == sku:
                return item.get("id")
        return None

    def load(self, product_id: int) -> Optional[WooCommerceProduct]:
        path = f"products/{product_id}"
        r = self.api.get(path)
        if r.status_code == 404:
            return None
        if not r.ok:
            logger.error(f"WooCommerce GET error on {path}: {r.status_code} - {r.text}")
            raise ProductStoreError(f"WooCommerce API error ({r.status_code}): {r.text}")
        return WooCommerceProduct(self.api, r.json())
