"""Typed account/contract address."""

from dataclasses import dataclass
from typing import Union

from eth_utils import is_address, to_checksum_address

from ..errors import ValidationError

UINT160_MAX = (1 << 160) - 1


@dataclass(frozen=True)
class Address:
    """Checksummed 20-byte address.

    Order tuples carry addresses as uint256 on the wire; conversions happen
    only through ``to_int`` / ``from_int``.
    """
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not is_address(self.value):
            raise ValidationError(f"Invalid address: {self.value!r}", reason="INVALID_ADDRESS")
        object.__setattr__(self, "value", to_checksum_address(self.value))

    @classmethod
    def of(cls, value: Union["Address", str]) -> "Address":
        if isinstance(value, Address):
            return value
        return cls(value)

    @classmethod
    def from_int(cls, value: int) -> "Address":
        if value < 0 or value > UINT160_MAX:
            raise ValidationError(f"Address integer out of range: {value}", reason="INVALID_ADDRESS")
        return cls(to_checksum_address(value.to_bytes(20, "big")))

    @classmethod
    def zero(cls) -> "Address":
        return cls("0x" + "00" * 20)

    def to_int(self) -> int:
        return int(self.value, 16)

    def to_bytes(self) -> bytes:
        return bytes.fromhex(self.value[2:])

    @property
    def lower(self) -> str:
        return self.value.lower()

    def is_zero(self) -> bool:
        return self.to_int() == 0

    def __str__(self):
        return self.value
