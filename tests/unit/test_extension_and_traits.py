"""
Unit tests for MakerTraits packing and extension encoding.
"""

import pytest
from eth_utils import keccak

from oracle_orders.errors import SaltExtensionMismatch, ValidationError
from oracle_orders.orders.extension import (
    UINT160_MAX,
    Extension,
    check_salt,
    derive_salt,
)
from oracle_orders.orders.traits import (
    ALLOW_MULTIPLE_FILLS_FLAG,
    HAS_EXTENSION_FLAG,
    NO_PARTIAL_FILLS_FLAG,
    MakerTraits,
)


class TestMakerTraits:
    """Tests for bit layout."""

    def test_defaults(self):
        traits = MakerTraits().encode()
        assert traits == 1 << ALLOW_MULTIPLE_FILLS_FLAG

    def test_no_partial_fill_flag(self):
        traits = MakerTraits(allow_partial_fill=False).encode()
        assert (traits >> NO_PARTIAL_FILLS_FLAG) & 1 == 1

    def test_extension_flag(self):
        traits = MakerTraits(has_extension=True).encode()
        assert (traits >> HAS_EXTENSION_FLAG) & 1 == 1

    def test_field_offsets(self):
        traits = MakerTraits(
            expiration=0x1234,
            nonce=0x56,
            series=0x7,
            allowed_sender=0x9,
            allow_multiple_fills=False,
        ).encode()
        assert traits & ((1 << 80) - 1) == 0x9
        assert (traits >> 80) & ((1 << 40) - 1) == 0x1234
        assert (traits >> 120) & ((1 << 40) - 1) == 0x56
        assert (traits >> 160) & ((1 << 40) - 1) == 0x7

    def test_decode_inverts_encode(self):
        traits = MakerTraits(
            expiration=1_700_003_600,
            nonce=42,
            allow_partial_fill=False,
            has_extension=True,
            unwrap_weth=True,
        )
        assert MakerTraits.decode(traits.encode()) == traits

    def test_field_overflow(self):
        with pytest.raises(ValidationError):
            MakerTraits(expiration=1 << 40)
        with pytest.raises(ValidationError):
            MakerTraits(nonce=-1)

    def test_expiry(self):
        traits = MakerTraits(expiration=100)
        assert traits.is_expired(100) is True
        assert traits.is_expired(99) is False
        assert MakerTraits().is_expired(10**12) is False


class TestExtension:
    """Tests for extension encoding."""

    def test_empty_encodes_to_nothing(self):
        assert Extension().encode() == b""
        assert Extension.decode(b"") == Extension()

    def test_predicate_offsets(self):
        """Test only the predicate slot and later ends carry its length."""
        predicate = b"\xaa" * 10
        encoded = Extension(predicate=predicate).encode()
        offsets = int.from_bytes(encoded[:32], "big")

        ends = [(offsets >> (32 * i)) & 0xFFFFFFFF for i in range(8)]
        assert ends == [0, 0, 0, 0, 10, 10, 10, 10]
        assert encoded[32:] == predicate

    def test_decode(self):
        extension = Extension(
            maker_asset_suffix=b"\x01",
            predicate=b"\x02\x03",
            post_interaction=b"\x04",
            custom_data=b"\xff",
        )
        assert Extension.decode(extension.encode()) == extension

    def test_truncated(self):
        with pytest.raises(ValidationError):
            Extension.decode(b"\x00" * 10)

    def test_offset_beyond_body(self):
        bad = (100).to_bytes(32, "big") + b"\x00" * 4
        with pytest.raises(ValidationError):
            Extension.decode(bad)


class TestSalt:
    """Tests for salt derivation."""

    def test_low_bits_are_extension_hash(self):
        extension = Extension(predicate=b"\x01" * 8).encode()
        salt = derive_salt(extension, seed=5)
        assert salt & UINT160_MAX == int.from_bytes(keccak(extension), "big") & UINT160_MAX
        assert salt >> 160 == 5

    def test_no_extension(self):
        assert derive_salt(b"", seed=9) == 9
        check_salt(123, b"")

    def test_seed_range(self):
        with pytest.raises(ValidationError):
            derive_salt(b"\x01", seed=1 << 96)

    def test_mismatch(self):
        extension = Extension(predicate=b"\x01").encode()
        with pytest.raises(SaltExtensionMismatch):
            check_salt(derive_salt(extension) + 1, extension)
