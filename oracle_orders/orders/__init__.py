"""
Conditional orders.

- Condition model and order lifecycle types
- Predicate compilation
- Extension / MakerTraits encoding
- Order building and EIP-712 signing
"""

from .address import Address
from .types import (
    Operator,
    Condition,
    OrderStatus,
    Order,
    OrderSignature,
    OrderCacheEntry,
    SubmissionResult,
    can_transition,
)
from .domain import ProtocolDomain
from .traits import MakerTraits
from .extension import Extension, derive_salt, check_salt
from .predicate import PredicateCompiler
from .builder import OrderBuilder
from .signer import OrderSigner

__all__ = [
    # Types
    "Address",
    "Operator",
    "Condition",
    "OrderStatus",
    "Order",
    "OrderSignature",
    "OrderCacheEntry",
    "SubmissionResult",
    "can_transition",
    # Encoding
    "ProtocolDomain",
    "MakerTraits",
    "Extension",
    "derive_salt",
    "check_salt",
    # Components
    "PredicateCompiler",
    "OrderBuilder",
    "OrderSigner",
]
