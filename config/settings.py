"""
Settings — Default configuration values for the ZC stock synchronization job.

This module provides the DEFAULT_SETTINGS dict that the orchestrator uses as
fallback values when environment variables are not set. The actual configuration
is loaded from .env at runtime; these defaults match the behavior of the
production job and should only be changed together with the API contract.

Configuration precedence (highest to lowest):
  1. CLI flags (--debug)
  2. Environment variables (from .env file)
  3. DEFAULT_SETTINGS (this file)

Settings reference:
  API_URL               ZC Portal GraphQL endpoint
  BATCH_SIZE            Products requested per page (pagination limit)
  RATE_LIMIT_WAIT       Seconds to wait after the API reports a rate limit
  MAX_LOG_ENTRIES       Size of the persisted rolling log
  REQUEST_TIMEOUT       Network timeout for every GraphQL request, in seconds
  BATCH_DELAY           Pause between two page requests, in seconds
  POLL_INTERVAL         How often a wait re-checks the stop flag, in seconds
  RECENT_LOG_LIMIT      Log lines shown by the status query
  DATA_DIR              Where status, log and secure key are persisted
  SCHEDULE_AT           Daily run time (HH:MM, local time) for `run.py serve`
  WC_API_VERSION        WooCommerce REST API version
  WC_VERIFY_SSL         Verify the WooCommerce TLS certificate
  WC_TIMEOUT            WooCommerce request timeout, in seconds
"""

API_URL = "https://api.zcportal.cz/public/graphql"

# Fixed scope sent with every token request.
TOKEN_SCOPE = "products"

DEFAULT_SETTINGS = {
    "API_URL": API_URL,
    "BATCH_SIZE": 100,
    "RATE_LIMIT_WAIT": 3600,
    "MAX_LOG_ENTRIES": 100,
    "REQUEST_TIMEOUT": 30,
    "BATCH_DELAY": 1,
    "POLL_INTERVAL": 5,
    "RECENT_LOG_LIMIT": 20,
    "DATA_DIR": "./data",
    "SCHEDULE_AT": "03:00",
    "WC_API_VERSION": "wc/v3",
    "WC_VERIFY_SSL": True,
    "WC_TIMEOUT": 30,
    "DEBUG": False,
}

# Substrings the API uses in error messages when it throttles a client.
RATE_LIMIT_MARKERS = ["rate limit", "too many requests"]

# Stock quantities written to products that manage stock. The remote API only
# reports availability, so these are placeholders rather than real counts.
IN_STOCK_QUANTITY = 100
OUT_OF_STOCK_QUANTITY = 0
