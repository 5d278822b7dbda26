"""
Config module - Defaults and constants for the stock synchronization job.
"""

from .settings import (
    API_URL,
    TOKEN_SCOPE,
    DEFAULT_SETTINGS,
    RATE_LIMIT_MARKERS,
    IN_STOCK_QUANTITY,
    OUT_OF_STOCK_QUANTITY,
)

__all__ = [
    'API_URL',
    'TOKEN_SCOPE',
    'DEFAULT_SETTINGS',
    'RATE_LIMIT_MARKERS',
    'IN_STOCK_QUANTITY',
    'OUT_OF_STOCK_QUANTITY',
]
