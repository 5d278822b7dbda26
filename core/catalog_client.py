"""
Catalog Client — Handles authentication and paginated product queries against
the ZC Portal GraphQL API.

This module is responsible for all HTTP communication with the remote catalog.
The API exposes a single GraphQL endpoint used for two operations:

  1. RequestToken mutation — exchanges the configured secure key for an auth
     token. The token is returned to the caller and never stored here, so a
     new one is requested for every synchronization run.

  2. Products query — returns one page of product edges (barcodes plus the
     availability code of the product's supplies).

Authentication flow:
    POST https://api.zcportal.cz/public/graphql
    Body: {"query": "mutation RequestToken { requestToken(...) { token } }"}
    Response: {"data": {"requestToken": {"token": "abc123..."}}}

    The token is then sent in the X-Auth-Token header of every page request.

Failure classification:
    Page requests never raise. They return a PageResult whose status is one of

      OK               the page was decoded; records may be empty
      TRANSPORT_ERROR  connection failure, timeout, TLS failure, or a reply
                       that is not a JSON object
      RATE_LIMITED     the API throttled us (see classify_errors())
      GRAPHQL_ERROR    any other GraphQL error list

    Only RATE_LIMITED is worth retrying; the orchestrator treats the rest as
    the end of the run.

Pipeline context:
    Used in Step 2 (token) and Step 3 (page loop) of the orchestrator run.
    Records produced here are handed one by one to StockMapper.apply().
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests

from config import API_URL, RATE_LIMIT_MARKERS
from .graphql_queries import build_products_query, build_token_mutation

logger = logging.getLogger(__name__)


class CatalogTransportError(Exception):
    """The request did not produce a decodable JSON reply."""


class PageStatus(Enum):
    OK = "ok"
    TRANSPORT_ERROR = "transport_error"
    GRAPHQL_ERROR = "graphql_error"
    RATE_LIMITED = "rate_limited"


@dataclass
class ProductRecord:
    """One remote product as returned by the Products query.

    Attributes:
        barcodes: All barcodes of the product; the first one is the SKU.
        availability: Single-character availability code ("A" = available).
    """

    barcodes: List[str] = field(default_factory=list)
    availability: str = ""

    @property
    def sku(self) -> Optional[str]:
        if not self.barcodes or not self.barcodes[0]:
            return None
        return self.barcodes[0]

    @classmethod
    def from_edge(cls, edge: Any) -> "ProductRecord":
        """Build a record from one GraphQL edge, tolerating null fields."""
        if not isinstance(edge, dict):
            return cls()
        barcodes = [str(b) for b in (edge.get("barcodes") or []) if b is not None]
        supplies = edge.get("supplies") or {}
        availability = supplies.get("availability") if isinstance(supplies, dict) else None
        return cls(barcodes=barcodes, availability=availability or "")


@dataclass
class PageResult:
    """Outcome of one page request.

    Attributes:
        status: Classification of the reply.
        records: Decoded products (only meaningful when status is OK).
        messages: GraphQL error messages, if any.
        error: Human-readable failure detail for the run log.
    """

    status: PageStatus
    records: List[ProductRecord] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is PageStatus.OK


def classify_errors(errors: Any) -> PageStatus:
    """Decide whether a GraphQL error list means "rate limited".

    The API reports throttling only in the message text, so this is a
    substring heuristic over the serialized error list ("rate limit" or
    "too many requests", case-sensitive as the API sends them). Keep every
    rate-limit rule in this function.
    """
    text = json.dumps(errors, ensure_ascii=False)
    if any(marker in text for marker in RATE_LIMIT_MARKERS):
        return PageStatus.RATE_LIMITED
    return PageStatus.GRAPHQL_ERROR


def error_messages(errors: Any) -> List[str]:
    if not isinstance(errors, list):
        return [str(errors)]
    return [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors]


class CatalogClient:
    """Client for the ZC Portal GraphQL API.

    Manages a requests.Session shared by the token and page requests of one
    run. Every request uses a fixed timeout and TLS certificate verification.

    Attributes:
        api_url: The GraphQL endpoint.
        store: Optional StateStore receiving operator-facing log lines.
        timeout: Network timeout per request, in seconds.
        debug: If True, log request details at DEBUG level.
    """

    def __init__(self, api_url: str = API_URL, store=None, timeout: float = 30, debug: bool = False):
        self.api_url = api_url
        self.store = store
        self.timeout = timeout
        self.debug = debug
        self._session = requests.Session()

    def request_token(self, secure_key: str) -> Optional[str]:
        """Obtain an auth token for the given secure key.

        Returns None (after logging an ERROR line) when the key is empty, the
        API cannot be reached, the reply is not JSON, the reply carries a
        GraphQL error list, or no token is returned. Never retries.

        Args:
            secure_key: The ZC Portal secure key.

        Returns:
            The token string, or None.
        """
        if not secure_key or not secure_key.strip():
            self._log("ERROR: Secure key is not configured.")
            return None

        try:
            status_code, payload = self._execute(build_token_mutation(secure_key.strip()))
        except CatalogTransportError:
            self._log("ERROR: Cannot connect to the API.")
            return None

        if status_code == 429:
            self._log("ERROR: API rate limit reached while requesting a token.")
            return None

        errors = payload.get("errors")
        if errors:
            self._log(
                "ERROR: API returned an error while requesting a token: "
                + json.dumps(errors, ensure_ascii=False)
            )
            return None

        data = payload.get("data") or {}
        token = (data.get("requestToken") or {}).get("token")
        if token:
            self._log("Token obtained successfully.")
            return token

        self._log("ERROR: API did not return a token.")
        return None

    def fetch_products_page(self, token: str, offset: int, limit: int) -> PageResult:
        """Fetch one page of products.

        Args:
            token: Auth token from request_token().
            offset: Index of the first product in the page.
            limit: Page size.

        Returns:
            A PageResult; this method does not raise for API or network failures.
        """
        query = build_products_query(offset, limit)
        try:
            status_code, payload = self._execute(query, token)
        except CatalogTransportError as e:
            return PageResult(PageStatus.TRANSPORT_ERROR, error=str(e))

        if status_code == 429:
            detail = "HTTP 429 Too Many Requests"
            return PageResult(PageStatus.RATE_LIMITED, messages=[detail], error=detail)

        errors = payload.get("errors")
        if errors:
            return PageResult(
                classify_errors(errors),
                messages=error_messages(errors),
                error=json.dumps(errors, ensure_ascii=False),
            )

        data = payload.get("data") or {}
        edges = (data.get("products") or {}).get("edges") or []
        records = [ProductRecord.from_edge(edge) for edge in edges]

        if self.debug:
            logger.debug("Fetched %d products at offset %d", len(records), offset)

        return PageResult(PageStatus.OK, records=records)

    def close(self) -> None:
        self._session.close()

    def _execute(self, query: str, token: Optional[str] = None) -> Tuple[int, Dict[str, Any]]:
        """POST a GraphQL document and decode the reply.

        HTTP status codes other than 429 are not treated as failures on their
        own: the API reports problems in the GraphQL error list, which the
        callers inspect.

        Returns:
            (HTTP status code, decoded JSON object). The object is empty for
            a 429 reply.

        Raises:
            CatalogTransportError: On network failure or a non-JSON reply.
        """
        headers = {"Content-Type": "application/json"}
        if token:
            headers["X-Auth-Token"] = token

        if self.debug:
            logger.debug("Executing GraphQL request (%d chars) against %s", len(query), self.api_url)

        try:
            response = self._session.post(
                self.api_url,
                json={"query": query},
                headers=headers,
                timeout=self.timeout,
                verify=True,
            )
        except requests.RequestException as e:
            logger.error("ZC API error: %s", e)
            raise CatalogTransportError(str(e)) from e

        if response.status_code == 429:
            logger.warning("ZC API answered HTTP 429 Too Many Requests")
            return response.status_code, {}

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("ZC API JSON decode error (HTTP %s): %s", response.status_code, e)
            raise CatalogTransportError(f"Invalid JSON response (HTTP {response.status_code})") from e

        if not isinstance(payload, dict):
            logger.error("ZC API returned a JSON %s instead of an object", type(payload).__name__)
            raise CatalogTransportError("Unexpected response shape")

        return response.status_code, payload

    def _log(self, message: str) -> None:
        if self.store is not None:
            self.store.append_log(message)
        else:
            logger.log(logging.ERROR if message.startswith("ERROR") else logging.INFO, message)
