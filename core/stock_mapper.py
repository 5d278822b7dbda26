"""
Stock Mapper — Applies one remote product's availability to the local store.

For each ProductRecord from the catalog client:

  1. SKU = first barcode. No barcode  -> Skipped("no-sku")
  2. Look the SKU up locally.  No match -> Skipped("not-found")
     (the remote catalog is a superset of the shop, so this is normal)
  3. Availability "A" -> "instock", anything else -> "outofstock"
  4. Set the stock status. If the product manages stock, also set the
     quantity to a placeholder: 100 when in stock, 0 otherwise. The remote
     API does not report real quantities, so this is an approximation, not
     an inventory count.
  5. Save. A log line is written only when the status actually changed, so
     re-running an unchanged catalog does not flood the log.

Any exception raised by the product store during lookup, load, or save is
turned into Failed(sku, message) and logged; it never reaches the caller.
Only the stock status and stock quantity are ever modified.

Pipeline context:
    Called by the orchestrator once per record, strictly in page order.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from config import IN_STOCK_QUANTITY, OUT_OF_STOCK_QUANTITY
from .catalog_client import ProductRecord

logger = logging.getLogger(__name__)

INSTOCK = "instock"
OUTOFSTOCK = "outofstock"
AVAILABLE_CODE = "A"


@dataclass(frozen=True)
class Updated:
    sku: str
    old_status: Optional[str]
    new_status: str

    @property
    def changed(self) -> bool:
        return self.old_status != self.new_status


@dataclass(frozen=True)
class Skipped:
    reason: str
    sku: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    sku: str
    error: str


MapOutcome = Union[Updated, Skipped, Failed]


def map_availability(code: Optional[str]) -> str:
    """Map a ZC availability code to a WooCommerce stock status."""
    return INSTOCK if code == AVAILABLE_CODE else OUTOFSTOCK


class StockMapper:
    """Writes remote availability onto local products.

    Attributes:
        product_store: The local ProductStore.
        state_store: Optional StateStore receiving change and error log lines.
    """

    def __init__(self, product_store, state_store=None):
        self.product_store = product_store
        self.state_store = state_store

    def apply(self, record: ProductRecord) -> MapOutcome:
        sku = record.sku
        if not sku:
            return Skipped("no-sku")

        new_status = map_availability(record.availability)

        try:
            product_id = self.product_store.find_id_by_sku(sku)
            if not product_id:
                return Skipped("not-found", sku)

            product = self.product_store.load(product_id)
            if product is None:
                return Skipped("not-found", sku)

            old_status = product.get_stock_status()
            product.set_stock_status(new_status)
            if product.get_manage_stock():
                product.set_stock_quantity(
                    IN_STOCK_QUANTITY if new_status == INSTOCK else OUT_OF_STOCK_QUANTITY
                )
            product.save()
        except Exception as e:
            self._log(f"ERROR updating SKU {sku}: {e}")
            return Failed(sku, str(e))

        outcome = Updated(sku, old_status, new_status)
        if outcome.changed:
            self._log(f"Updated SKU: {sku} | Availability: {old_status} → {new_status}")
        return outcome

    def _log(self, message: str) -> None:
        if self.state_store is not None:
            self.state_store.append_log(message)
        else:
            logger.info(message)
