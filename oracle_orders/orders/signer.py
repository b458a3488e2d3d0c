"""
Order Signer.

EIP-712 signing of orders with eth_account. Signatures are deterministic
(RFC 6979), so signing the same order with the same key twice yields the
same bytes.
"""

import logging
from typing import Optional

from eth_account import Account

from ..errors import DomainMismatch, KeyUnavailable, SignerMismatch
from .address import Address
from .domain import ORDER_TYPE, ProtocolDomain
from .types import Order, OrderSignature


class OrderSigner:
    """Signs orders for a single protocol domain."""

    def __init__(
        self,
        domain: ProtocolDomain,
        private_key: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize signer.

        Args:
            domain: Domain this signer is allowed to sign for
            private_key: Default signing key (hex); can be given per call instead
            logger: Optional logger
        """
        self.domain = domain
        self._private_key = private_key
        self._logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _account(private_key: Optional[str]):
        if not private_key:
            raise KeyUnavailable("No signing key configured")
        try:
            return Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise KeyUnavailable("Signing key is malformed") from e

    def address_for(self, private_key: Optional[str] = None) -> Address:
        return Address(self._account(private_key or self._private_key).address)

    def _check_domain(self, order: Order):
        if order.domain != self.domain:
            raise DomainMismatch(
                f"order hashed for chain {order.domain.chain_id} / {order.domain.verifying_contract}, "
                f"signer bound to chain {self.domain.chain_id} / {self.domain.verifying_contract}"
            )
        expected = order.compute_hash(self.domain)
        if order.hash.lower() != expected.lower():
            raise DomainMismatch(f"order hash {order.hash} does not match {expected} under signer domain")

    def sign(self, order: Order, private_key: Optional[str] = None) -> OrderSignature:
        """Sign ``order``.

        Args:
            order: Order built under this signer's domain
            private_key: Overrides the default key

        Returns:
            OrderSignature with the 65-byte signature

        Raises:
            KeyUnavailable: No usable key
            DomainMismatch: Order belongs to another domain or its hash is stale
            SignerMismatch: Key does not belong to the order's maker
        """
        account = self._account(private_key or self._private_key)
        self._check_domain(order)

        signer = Address(account.address)
        if signer != order.maker:
            raise SignerMismatch(f"key for {signer} cannot sign order of maker {order.maker}")

        signed = account.sign_typed_data(
            domain_data=self.domain.to_eip712(),
            message_types={"Order": ORDER_TYPE},
            message_data=order.message(),
        )

        signature = "0x" + bytes(signed.signature).hex()
        self._logger.debug(f"Signed order {order.hash[:10]}... by {signer}")
        return OrderSignature(
            order_hash=order.hash,
            signature=signature,
            signer=signer,
            r=signed.r,
            s=signed.s,
            v=signed.v,
        )

    def recover(self, order: Order, signature: str) -> Address:
        """Address that produced ``signature`` over ``order``."""
        self._check_domain(order)
        signable = self.domain.typed_data(order.message())
        return Address(Account.recover_message(signable, signature=signature))

    def verify(self, order: Order, signature: str) -> bool:
        return self.recover(order, signature) == order.maker
