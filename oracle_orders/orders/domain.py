"""
EIP-712 domain and order struct hashing for the 1inch Limit Order Protocol v4.

The order hash is ``keccak256(0x19 0x01 || domainSeparator || structHash)``
over the eight-field Order struct. Signing (signer.py) and hashing (builder.py)
both go through ``ProtocolDomain.typed_data`` so the two can never disagree.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from eth_account.messages import encode_typed_data
from eth_utils import keccak

from ..config import PROTOCOL_DOMAIN_NAME, PROTOCOL_DOMAIN_VERSION
from .address import Address

ORDER_TYPE: List[Dict[str, str]] = [
    {"name": "salt", "type": "uint256"},
    {"name": "maker", "type": "address"},
    {"name": "receiver", "type": "address"},
    {"name": "makerAsset", "type": "address"},
    {"name": "takerAsset", "type": "address"},
    {"name": "makingAmount", "type": "uint256"},
    {"name": "takingAmount", "type": "uint256"},
    {"name": "makerTraits", "type": "uint256"},
]


@dataclass(frozen=True)
class ProtocolDomain:
    """EIP-712 domain an order is hashed and signed under."""
    chain_id: int
    verifying_contract: Address
    name: str = PROTOCOL_DOMAIN_NAME
    version: str = PROTOCOL_DOMAIN_VERSION

    @classmethod
    def for_chain(cls, chain_id: int, verifying_contract: str) -> "ProtocolDomain":
        return cls(chain_id=chain_id, verifying_contract=Address.of(verifying_contract))

    def to_eip712(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "verifying_contract": self.verifying_contract.value,
            "name": self.name,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolDomain":
        return cls(
            chain_id=int(data["chain_id"]),
            verifying_contract=Address(data["verifying_contract"]),
            name=data.get("name", PROTOCOL_DOMAIN_NAME),
            version=data.get("version", PROTOCOL_DOMAIN_VERSION),
        )

    def typed_data(self, message: Dict[str, Any]):
        """SignableMessage for an Order message under this domain."""
        return encode_typed_data(
            domain_data=self.to_eip712(),
            message_types={"Order": ORDER_TYPE},
            message_data=message,
        )

    def order_hash(self, message: Dict[str, Any]) -> str:
        """Compute the 0x-prefixed EIP-712 hash of an Order message."""
        signable = self.typed_data(message)
        digest = keccak(b"\x19" + signable.version + signable.header + signable.body)
        return "0x" + digest.hex()
