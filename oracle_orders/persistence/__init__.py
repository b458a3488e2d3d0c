"""Persistence layer for the local order cache."""

from .order_cache import (
    OrderCacheRepository,
    InMemoryOrderCache,
    SqliteOrderCache,
    retention_cutoff,
)

__all__ = [
    "OrderCacheRepository",
    "InMemoryOrderCache",
    "SqliteOrderCache",
    "retention_cutoff",
]
