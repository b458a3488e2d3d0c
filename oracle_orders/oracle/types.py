"""Index data model."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import ValidationError
from ..orders.address import Address

# Ids 0-5 are reserved for predefined index types on the deployed oracle
FIRST_CUSTOM_INDEX_ID = 6


class OracleType(Enum):
    """On-chain oracle type (uint8)."""
    MOCK = 0
    MANAGED = 1


@dataclass(frozen=True)
class OracleBackend:
    """Where an index gets its values from.

    MOCK: pushed manually by the index creator or a global admin.
    MANAGED: pushed by ``updater`` from an external feed.
    """
    kind: OracleType
    updater: Optional[Address] = None

    def __post_init__(self):
        if self.kind == OracleType.MANAGED and self.updater is None:
            raise ValidationError("MANAGED backend requires an updater", reason="INVALID_BACKEND")
        if self.kind == OracleType.MOCK and self.updater is not None:
            raise ValidationError("MOCK backend has no updater", reason="INVALID_BACKEND")

    @classmethod
    def mock(cls) -> "OracleBackend":
        return cls(OracleType.MOCK)

    @classmethod
    def managed(cls, updater) -> "OracleBackend":
        return cls(OracleType.MANAGED, Address.of(updater))

    def __str__(self):
        if self.kind == OracleType.MANAGED:
            return f"MANAGED({self.updater})"
        return "MOCK"


@dataclass
class Index:
    """A named numeric metric with a scaled integer value."""
    id: int
    name: str
    value: int
    creator: Address
    backend: OracleBackend = field(default_factory=OracleBackend.mock)
    description: str = ""
    timestamp: int = field(default_factory=lambda: int(time.time()))
    active: bool = True
    source_url: str = ""

    def reading(self) -> "IndexReading":
        return IndexReading(
            index_id=self.id,
            value=self.value,
            timestamp=self.timestamp,
            active=self.active,
        )


@dataclass(frozen=True)
class IndexReading:
    """Point-in-time value of an index."""
    index_id: int
    value: int
    timestamp: int
    active: bool = True

    def age(self, now: float) -> float:
        return max(0.0, now - self.timestamp)


@dataclass(frozen=True)
class PredefinedIndex:
    id: int
    name: str
    description: str
    initial_value: int


# Values are scaled by 100 (two implied decimals)
PREDEFINED_INDICES = (
    PredefinedIndex(0, "AAPL", "Apple Inc. stock price (USD, 2 decimals)", 17500),
    PredefinedIndex(1, "TSLA", "Tesla Inc. stock price (USD, 2 decimals)", 25000),
    PredefinedIndex(2, "VIX", "CBOE Volatility Index (2 decimals)", 2000),
    PredefinedIndex(3, "BTC", "Bitcoin price (USD, 2 decimals)", 4500000),
)

INDEX_IDS = {p.name: p.id for p in PREDEFINED_INDICES}
