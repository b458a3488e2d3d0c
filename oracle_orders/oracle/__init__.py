"""
Index oracle.

Index data model, value sources (in-memory and on-chain), admin operations
and the managed feed updater.
"""

from .types import (
    Index,
    IndexReading,
    OracleBackend,
    OracleType,
    PREDEFINED_INDICES,
    INDEX_IDS,
    FIRST_CUSTOM_INDEX_ID,
)
from .source import IndexSource, InMemoryIndexSource, RpcIndexSource
from .admin import OracleAdmin
from .feed import ManagedFeed, FeedSpec

__all__ = [
    # Types
    "Index",
    "IndexReading",
    "OracleBackend",
    "OracleType",
    "PREDEFINED_INDICES",
    "INDEX_IDS",
    "FIRST_CUSTOM_INDEX_ID",
    # Sources
    "IndexSource",
    "InMemoryIndexSource",
    "RpcIndexSource",
    # Operations
    "OracleAdmin",
    "ManagedFeed",
    "FeedSpec",
]
