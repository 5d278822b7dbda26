"""
Core package — The stock synchronization modules.

This package contains all the modules that implement the synchronization run.
Each module handles one concern:

  orchestrator.py     Run coordination, start/stop/status triggers
  catalog_client.py   HTTP communication with the ZC Portal GraphQL API
  graphql_queries.py  GraphQL documents (token mutation, products page)
  stock_mapper.py     Apply one remote product's availability locally
  product_store.py    WooCommerce product lookup and stock updates
  state_store.py      Persisted status, rolling log, secure key, run-lock
  scheduler.py        Daily trigger
"""

from .orchestrator import SyncOrchestrator, SyncCounters, load_settings
from .catalog_client import CatalogClient, PageResult, PageStatus, ProductRecord, classify_errors
from .graphql_queries import build_products_query, build_token_mutation
from .stock_mapper import StockMapper, Updated, Skipped, Failed, map_availability
from .product_store import ProductStore, ProductHandle, ProductStoreError, WooCommerceProductStore
from .state_store import StateStore, RunStatus, LogEntry, RunLock
from .scheduler import build_schedule, run_forever
