"""
Order extension encoding and the salt coupling.

An extension is a 32-byte offsets word followed by the concatenated fields.
The offsets word holds eight cumulative uint32 end offsets, field ``i``
occupying bits ``[32 * i, 32 * i + 32)``. Anything after the last field is
custom data and is not indexed by the offsets.

When an order carries an extension, the protocol checks that the low 160 bits
of the salt equal the low 160 bits of ``keccak256(extension)``.
"""

from dataclasses import dataclass, fields
from typing import Tuple

from eth_utils import keccak

from ..errors import SaltExtensionMismatch, ValidationError

UINT160_MAX = (1 << 160) - 1
UINT32_MAX = (1 << 32) - 1
SALT_SEED_BITS = 96

FIELD_NAMES: Tuple[str, ...] = (
    "maker_asset_suffix",
    "taker_asset_suffix",
    "making_amount_data",
    "taking_amount_data",
    "predicate",
    "maker_permit",
    "pre_interaction",
    "post_interaction",
)


@dataclass(frozen=True)
class Extension:
    """Protocol extension; only ``predicate`` is used by conditional orders."""
    maker_asset_suffix: bytes = b""
    taker_asset_suffix: bytes = b""
    making_amount_data: bytes = b""
    taking_amount_data: bytes = b""
    predicate: bytes = b""
    maker_permit: bytes = b""
    pre_interaction: bytes = b""
    post_interaction: bytes = b""
    custom_data: bytes = b""

    def is_empty(self) -> bool:
        return all(len(getattr(self, f.name)) == 0 for f in fields(self))

    def encode(self) -> bytes:
        if self.is_empty():
            return b""

        offsets = 0
        end = 0
        body = b""
        for i, name in enumerate(FIELD_NAMES):
            data = getattr(self, name)
            end += len(data)
            if end > UINT32_MAX:
                raise ValidationError("Extension field too large", reason="INVALID_EXTENSION")
            offsets |= end << (32 * i)
            body += data

        return offsets.to_bytes(32, "big") + body + self.custom_data

    @classmethod
    def decode(cls, data: bytes) -> "Extension":
        if not data:
            return cls()
        if len(data) < 32:
            raise ValidationError("Extension shorter than offsets word", reason="INVALID_EXTENSION")

        offsets = int.from_bytes(data[:32], "big")
        body = data[32:]
        values = {}
        start = 0
        for i, name in enumerate(FIELD_NAMES):
            end = (offsets >> (32 * i)) & UINT32_MAX
            if end < start or end > len(body):
                raise ValidationError(
                    f"Extension offset for {name} out of range", reason="INVALID_EXTENSION"
                )
            values[name] = body[start:end]
            start = end
        values["custom_data"] = body[start:]
        return cls(**values)

    def hash(self) -> bytes:
        return keccak(self.encode())


def derive_salt(extension: bytes, seed: int = 0) -> int:
    """Derive an order salt bound to ``extension``.

    Args:
        extension: Encoded extension bytes
        seed: Free 96-bit value placed in the high bits

    Returns:
        uint256 salt. Without an extension the salt is just ``seed``.
    """
    if seed < 0 or seed >= (1 << SALT_SEED_BITS):
        raise ValidationError(f"Salt seed must fit {SALT_SEED_BITS} bits", reason="INVALID_SALT")
    if not extension:
        return seed
    return (seed << 160) | (int.from_bytes(keccak(extension), "big") & UINT160_MAX)


def check_salt(salt: int, extension: bytes) -> None:
    """Raise SaltExtensionMismatch unless ``salt`` is bound to ``extension``."""
    if not extension:
        return
    expected = int.from_bytes(keccak(extension), "big") & UINT160_MAX
    if salt & UINT160_MAX != expected:
        raise SaltExtensionMismatch(
            f"salt low 160 bits {salt & UINT160_MAX:#x} != keccak(extension) {expected:#x}"
        )
