"""
Order Builder.

Assembles a conditional limit order:
1. Validate amounts, assets and expiration
2. Pack MakerTraits (extension flag, fill policy, expiration, nonce)
3. Place the predicate in the extension
4. Derive the salt from the extension hash
5. Hash the order under the protocol's EIP-712 domain

Given the same inputs (including nonce, salt seed and clock) the builder
always produces the same order hash.
"""

import logging
import secrets
import time
from typing import Callable, Optional, Union

from ..errors import InvalidAmount, InvalidAsset, ValidationError
from .address import Address
from .domain import ProtocolDomain
from .extension import Extension, derive_salt
from .predicate import PredicateCompiler
from .traits import UINT40_MAX, MakerTraits
from .types import UINT256_MAX, Condition, Order, OrderStatus

AddressLike = Union[Address, str]


class OrderBuilder:
    """Builds unsigned conditional orders for one protocol domain."""

    def __init__(
        self,
        domain: ProtocolDomain,
        compiler: PredicateCompiler,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize builder.

        Args:
            domain: EIP-712 domain orders are hashed under
            compiler: Predicate compiler bound to the oracle and protocol
            clock: Source of the current unix time
            logger: Optional logger
        """
        if domain.verifying_contract != compiler.protocol_address:
            raise ValidationError(
                "Domain verifying contract differs from predicate protocol address",
                reason="DOMAIN_MISMATCH",
            )
        self.domain = domain
        self.compiler = compiler
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def build(
        self,
        maker: AddressLike,
        maker_asset: AddressLike,
        taker_asset: AddressLike,
        making_amount: int,
        taking_amount: int,
        condition: Condition,
        expiration_seconds: int = 86400,
        receiver: Optional[AddressLike] = None,
        allow_partial_fill: bool = True,
        allow_multiple_fills: bool = True,
        nonce: Optional[int] = None,
        salt_seed: int = 0,
    ) -> Order:
        """Compile ``condition`` and build an order gated on it."""
        predicate = self.compiler.compile(condition)
        return self.build_with_predicate(
            maker=maker,
            maker_asset=maker_asset,
            taker_asset=taker_asset,
            making_amount=making_amount,
            taking_amount=taking_amount,
            predicate=predicate,
            condition=condition,
            expiration_seconds=expiration_seconds,
            receiver=receiver,
            allow_partial_fill=allow_partial_fill,
            allow_multiple_fills=allow_multiple_fills,
            nonce=nonce,
            salt_seed=salt_seed,
        )

    def build_with_predicate(
        self,
        maker: AddressLike,
        maker_asset: AddressLike,
        taker_asset: AddressLike,
        making_amount: int,
        taking_amount: int,
        predicate: bytes,
        condition: Optional[Condition] = None,
        expiration_seconds: int = 86400,
        receiver: Optional[AddressLike] = None,
        allow_partial_fill: bool = True,
        allow_multiple_fills: bool = True,
        nonce: Optional[int] = None,
        salt_seed: int = 0,
    ) -> Order:
        """Build an order from an already compiled predicate.

        Args:
            maker: Order maker (signer)
            maker_asset: Token the maker gives
            taker_asset: Token the maker receives
            making_amount: Amount of maker_asset in base units
            taking_amount: Amount of taker_asset in base units
            predicate: Compiled predicate bytes
            condition: Condition the predicate encodes, kept for monitoring
            expiration_seconds: Lifetime from now
            receiver: Recipient of taker_asset (zero address = maker)
            allow_partial_fill: Allow partial fills
            allow_multiple_fills: Allow more than one fill
            nonce: 40-bit nonce; random when omitted
            salt_seed: 96-bit free salt bits

        Returns:
            Order in SUBMITTED status, hashed but unsigned
        """
        maker = Address.of(maker)
        maker_asset = Address.of(maker_asset)
        taker_asset = Address.of(taker_asset)
        receiver = Address.of(receiver) if receiver is not None else Address.zero()

        self._validate_amount("making_amount", making_amount)
        self._validate_amount("taking_amount", taking_amount)
        if maker_asset == taker_asset:
            raise InvalidAsset(f"maker and taker asset are both {maker_asset}")
        if not predicate:
            raise ValidationError("Conditional order needs a predicate", reason="INVALID_PREDICATE")

        expiration = self._expiration(expiration_seconds)
        if nonce is None:
            nonce = secrets.randbits(40)

        traits = MakerTraits(
            expiration=expiration,
            nonce=nonce,
            allow_partial_fill=allow_partial_fill,
            allow_multiple_fills=allow_multiple_fills,
            has_extension=True,
        )
        extension = Extension(predicate=predicate).encode()
        salt = derive_salt(extension, salt_seed)

        order = Order(
            hash="",
            maker=maker,
            receiver=receiver,
            maker_asset=maker_asset,
            taker_asset=taker_asset,
            making_amount=making_amount,
            taking_amount=taking_amount,
            salt=salt,
            traits=traits.encode(),
            extension=extension,
            domain=self.domain,
            condition=condition,
            status=OrderStatus.SUBMITTED,
        )
        order.hash = order.compute_hash()

        self._logger.info(
            f"Built order {order.hash[:10]}... maker={maker} "
            f"{making_amount} {maker_asset} -> {taking_amount} {taker_asset} "
            f"expires={expiration}"
            + (f" when {condition.describe()}" if condition else "")
        )
        return order

    @staticmethod
    def _validate_amount(name: str, amount: int):
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount(f"{name} must be an integer amount, got {amount!r}")
        if amount <= 0:
            raise InvalidAmount(f"{name} must be positive, got {amount}")
        if amount > UINT256_MAX:
            raise InvalidAmount(f"{name} exceeds uint256")

    def _expiration(self, expiration_seconds: int) -> int:
        if expiration_seconds <= 0:
            raise ValidationError(
                f"expiration_seconds must be positive, got {expiration_seconds}",
                reason="INVALID_EXPIRATION",
            )
        expiration = int(self._clock()) + int(expiration_seconds)
        if expiration > UINT40_MAX:
            raise ValidationError("expiration does not fit 40 bits", reason="INVALID_EXPIRATION")
        return expiration
