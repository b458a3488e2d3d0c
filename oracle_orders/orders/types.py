"""
Order types.

Defines the condition model, the order lifecycle and the records kept in the
local order cache.

Lifecycle:
    SUBMITTED -> PENDING -> FILLED | CANCELLED | EXPIRED
Terminal states never change.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

from ..errors import IllegalTransition, InvalidCondition, SaltExtensionMismatch
from .address import Address
from .domain import ProtocolDomain
from .extension import check_salt
from .traits import MakerTraits

UINT256_MAX = (1 << 256) - 1


class Operator(Enum):
    """Comparison operator. Values match the oracle's uint8 encoding."""
    GT = 0
    LT = 1
    GTE = 2
    LTE = 3
    EQ = 4

    @classmethod
    def parse(cls, value: Any) -> "Operator":
        if isinstance(value, Operator):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        key = str(value).strip().lower()
        try:
            return _OPERATOR_ALIASES[key]
        except KeyError:
            raise InvalidCondition(f"Unknown operator: {value!r}") from None

    @property
    def symbol(self) -> str:
        return _OPERATOR_SYMBOLS[self]


_OPERATOR_ALIASES = {
    "gt": Operator.GT, ">": Operator.GT,
    "lt": Operator.LT, "<": Operator.LT,
    "gte": Operator.GTE, ">=": Operator.GTE,
    "lte": Operator.LTE, "<=": Operator.LTE,
    "eq": Operator.EQ, "==": Operator.EQ, "=": Operator.EQ,
}

_OPERATOR_SYMBOLS = {
    Operator.GT: ">",
    Operator.LT: "<",
    Operator.GTE: ">=",
    Operator.LTE: "<=",
    Operator.EQ: "==",
}


@dataclass(frozen=True)
class Condition:
    """``index[index_id] <operator> threshold`` over scaled integer values."""
    index_id: int
    operator: Operator
    threshold: int

    def __post_init__(self):
        if not isinstance(self.operator, Operator):
            object.__setattr__(self, "operator", Operator.parse(self.operator))
        for name in ("index_id", "threshold"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidCondition(f"{name} must be an integer, got {value!r}")
            if value < 0 or value > UINT256_MAX:
                raise InvalidCondition(f"{name} out of uint256 range: {value}")

    def describe(self) -> str:
        return f"index {self.index_id} {self.operator.symbol} {self.threshold}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index_id": self.index_id,
            "operator": self.operator.name,
            "threshold": str(self.threshold),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        return cls(
            index_id=int(data["index_id"]),
            operator=Operator[data["operator"]],
            threshold=int(data["threshold"]),
        )


class OrderStatus(Enum):
    """Order lifecycle states."""
    SUBMITTED = "SUBMITTED"  # Built locally / handed to the relay
    PENDING = "PENDING"      # Live on the relay, awaiting fill
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.EXPIRED})

ALLOWED_TRANSITIONS = {
    OrderStatus.SUBMITTED: frozenset({
        OrderStatus.PENDING,
        OrderStatus.FILLED,
        OrderStatus.CANCELLED,
        OrderStatus.EXPIRED,
    }),
    OrderStatus.PENDING: frozenset({
        OrderStatus.FILLED,
        OrderStatus.CANCELLED,
        OrderStatus.EXPIRED,
    }),
    OrderStatus.FILLED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target == current or target in ALLOWED_TRANSITIONS[current]


@dataclass
class Order:
    """A conditional limit order.

    Everything except ``status`` is hashed into ``hash``; use
    ``dataclasses.replace`` to derive a modified copy for tests or resubmits.
    """
    hash: str
    maker: Address
    receiver: Address
    maker_asset: Address
    taker_asset: Address
    making_amount: int
    taking_amount: int
    salt: int
    traits: int
    extension: bytes
    domain: ProtocolDomain
    condition: Optional[Condition] = None
    status: OrderStatus = OrderStatus.SUBMITTED

    @property
    def maker_traits(self) -> MakerTraits:
        return MakerTraits.decode(self.traits)

    @property
    def expiration(self) -> int:
        return self.maker_traits.expiration

    @property
    def nonce(self) -> int:
        return self.maker_traits.nonce

    def message(self) -> Dict[str, Any]:
        """EIP-712 Order message."""
        return {
            "salt": self.salt,
            "maker": self.maker.value,
            "receiver": self.receiver.value,
            "makerAsset": self.maker_asset.value,
            "takerAsset": self.taker_asset.value,
            "makingAmount": self.making_amount,
            "takingAmount": self.taking_amount,
            "makerTraits": self.traits,
        }

    def compute_hash(self, domain: Optional[ProtocolDomain] = None) -> str:
        return (domain or self.domain).order_hash(self.message())

    def assert_consistent(self) -> None:
        """Raise SaltExtensionMismatch if salt, extension and traits disagree."""
        has_extension_flag = self.maker_traits.has_extension
        if self.extension and not has_extension_flag:
            raise SaltExtensionMismatch("extension present but HAS_EXTENSION flag unset")
        if not self.extension and has_extension_flag:
            raise SaltExtensionMismatch("HAS_EXTENSION flag set but extension is empty")
        check_salt(self.salt, self.extension)

    def with_status(self, status: OrderStatus) -> "Order":
        """Return a copy in ``status``; raises IllegalTransition if not allowed."""
        if not can_transition(self.status, status):
            raise IllegalTransition(f"{self.hash}: {self.status.value} -> {status.value}")
        return replace(self, status=status)

    def to_relay_payload(self) -> Dict[str, Any]:
        """Order ``data`` object in the orderbook API format."""
        return {
            "makerAsset": self.maker_asset.lower,
            "takerAsset": self.taker_asset.lower,
            "maker": self.maker.lower,
            "receiver": self.receiver.lower,
            "makingAmount": str(self.making_amount),
            "takingAmount": str(self.taking_amount),
            "salt": str(self.salt),
            "extension": "0x" + self.extension.hex(),
            "makerTraits": str(self.traits),
        }

    @classmethod
    def from_relay_payload(
        cls,
        data: Dict[str, Any],
        domain: ProtocolDomain,
        order_hash: Optional[str] = None,
        condition: Optional[Condition] = None,
    ) -> "Order":
        extension_hex = data.get("extension") or "0x"
        order = cls(
            hash=order_hash or "",
            maker=Address(data["maker"]),
            receiver=Address(data.get("receiver") or Address.zero().value),
            maker_asset=Address(data["makerAsset"]),
            taker_asset=Address(data["takerAsset"]),
            making_amount=_parse_uint(data["makingAmount"]),
            taking_amount=_parse_uint(data["takingAmount"]),
            salt=_parse_uint(data["salt"]),
            traits=_parse_uint(data["makerTraits"]),
            extension=bytes.fromhex(extension_hex[2:] if extension_hex.startswith("0x") else extension_hex),
            domain=domain,
            condition=condition,
        )
        if not order.hash:
            order.hash = order.compute_hash()
        return order

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "maker": self.maker.value,
            "receiver": self.receiver.value,
            "maker_asset": self.maker_asset.value,
            "taker_asset": self.taker_asset.value,
            "making_amount": str(self.making_amount),
            "taking_amount": str(self.taking_amount),
            "salt": str(self.salt),
            "traits": str(self.traits),
            "extension": self.extension.hex(),
            "domain": self.domain.to_dict(),
            "condition": self.condition.to_dict() if self.condition else None,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        condition = data.get("condition")
        return cls(
            hash=data["hash"],
            maker=Address(data["maker"]),
            receiver=Address(data["receiver"]),
            maker_asset=Address(data["maker_asset"]),
            taker_asset=Address(data["taker_asset"]),
            making_amount=int(data["making_amount"]),
            taking_amount=int(data["taking_amount"]),
            salt=int(data["salt"]),
            traits=int(data["traits"]),
            extension=bytes.fromhex(data["extension"]),
            domain=ProtocolDomain.from_dict(data["domain"]),
            condition=Condition.from_dict(condition) if condition else None,
            status=OrderStatus(data["status"]),
        )


def _parse_uint(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(str(value), 0)


@dataclass(frozen=True)
class OrderSignature:
    """EIP-712 signature over an order hash."""
    order_hash: str
    signature: str  # 0x-prefixed 65-byte r || s || v
    signer: Address
    r: int
    s: int
    v: int


@dataclass
class OrderCacheEntry:
    """Locally cached order plus its submission bookkeeping."""
    order: Order
    signature: Optional[str] = None
    order_type: str = "limit"
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    relay_accepted: bool = False
    submission_error: Optional[str] = None
    submission_attempts: int = 0
    fill_tx_hash: Optional[str] = None
    cancel_tx_hash: Optional[str] = None
    last_checked_at: Optional[float] = None

    @property
    def order_hash(self) -> str:
        return self.order.hash

    @property
    def status(self) -> OrderStatus:
        return self.order.status

    def advance(self, status: OrderStatus, now: Optional[float] = None) -> bool:
        """Move the cached order to ``status``.

        Returns:
            True if the status changed. Raises IllegalTransition when the move
            would leave a terminal state or go backwards.
        """
        if status == self.order.status:
            return False
        self.order = self.order.with_status(status)
        self.updated_at = now if now is not None else time.time()
        return True


@dataclass
class SubmissionResult:
    """Outcome of a relay submission.

    A rejected submission is still cached; ``error`` carries the relay's
    reason and ``transient`` says whether a resubmit may succeed.
    """
    order_hash: str
    accepted: bool
    status: OrderStatus
    error: Optional[str] = None
    error_reason: Optional[str] = None
    transient: bool = False
    raw_response: Optional[Dict[str, Any]] = None
