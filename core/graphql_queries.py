"""
GraphQL Query Definitions — The two operations used against the ZC Portal API.

  1. RequestToken (mutation) — exchanges the secure key for a short-lived auth
     token. The scope is always "products".

         mutation RequestToken {
           requestToken(input: {secure: "<secure key>", scope: "products"}) {
             token
           }
         }

     Response: {"data": {"requestToken": {"token": "..."}}} or {"errors": [...]}

  2. Products (query) — one page of the catalog, limited to the fields the
     stock sync needs: the product barcodes (the first one is the SKU) and
     the availability code of its supplies.

         query Products {
           products(pagination: {limit: 100, offset: 0}) {
             edges { barcodes supplies { availability } }
           }
         }

     Response: {"data": {"products": {"edges": [...]}}} or {"errors": [...]}

Values are embedded as GraphQL literals rather than variables, matching the
documents the API is known to accept. The secure key is encoded with
json.dumps(), whose escaping is valid GraphQL string syntax.

Pipeline context:
  Built by CatalogClient.request_token() and CatalogClient.fetch_products_page().
"""

import json

from config import TOKEN_SCOPE

REQUEST_TOKEN_MUTATION = """
mutation RequestToken {
  requestToken(input: {secure: %(secure)s, scope: %(scope)s}) {
    token
  }
}
"""

PRODUCTS_PAGE_QUERY = """
query Products {
  products(pagination: {limit: %(limit)d, offset: %(offset)d}) {
    edges {
      barcodes
      supplies {
        availability
      }
    }
  }
}
"""


def build_token_mutation(secure_key: str) -> str:
    """Render the RequestToken mutation for the given secure key."""
    return REQUEST_TOKEN_MUTATION % {
        "secure": json.dumps(secure_key),
        "scope": json.dumps(TOKEN_SCOPE),
    }


def build_products_query(offset: int, limit: int) -> str:
    """Render the Products query for one page.

    Args:
        offset: Index of the first product in the page (0-based).
        limit: Maximum number of products in the page.

    Raises:
        ValueError: If offset is negative or limit is not positive.
    """
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")
    if limit <= 0:
        raise ValueError(f"limit must be > 0, got {limit}")
    return PRODUCTS_PAGE_QUERY % {"limit": int(limit), "offset": int(offset)}
