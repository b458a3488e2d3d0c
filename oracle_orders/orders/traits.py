"""
MakerTraits packing for the 1inch Limit Order Protocol v4.

Layout of the uint256:

    255 NO_PARTIAL_FILLS        250 NEED_CHECK_EPOCH_MANAGER
    254 ALLOW_MULTIPLE_FILLS    249 HAS_EXTENSION
    252 PRE_INTERACTION_CALL    248 USE_PERMIT2
    251 POST_INTERACTION_CALL   247 UNWRAP_WETH

    bits   0-79   low 80 bits of the allowed sender
    bits  80-119  expiration (unix seconds, 0 = never)
    bits 120-159  nonce or epoch
    bits 160-199  series
"""

from dataclasses import dataclass

from ..errors import ValidationError

NO_PARTIAL_FILLS_FLAG = 255
ALLOW_MULTIPLE_FILLS_FLAG = 254
PRE_INTERACTION_CALL_FLAG = 252
POST_INTERACTION_CALL_FLAG = 251
NEED_CHECK_EPOCH_MANAGER_FLAG = 250
HAS_EXTENSION_FLAG = 249
USE_PERMIT2_FLAG = 248
UNWRAP_WETH_FLAG = 247

ALLOWED_SENDER_BITS = (0, 80)
EXPIRATION_BITS = (80, 40)
NONCE_BITS = (120, 40)
SERIES_BITS = (160, 40)

UINT40_MAX = (1 << 40) - 1


def _mask(width: int) -> int:
    return (1 << width) - 1


@dataclass(frozen=True)
class MakerTraits:
    """Capability set of an order, encoded once into a uint256."""
    expiration: int = 0
    nonce: int = 0
    series: int = 0
    allowed_sender: int = 0
    allow_partial_fill: bool = True
    allow_multiple_fills: bool = True
    has_extension: bool = False
    pre_interaction: bool = False
    post_interaction: bool = False
    need_epoch_check: bool = False
    use_permit2: bool = False
    unwrap_weth: bool = False

    def __post_init__(self):
        for name, (_, width) in (
            ("expiration", EXPIRATION_BITS),
            ("nonce", NONCE_BITS),
            ("series", SERIES_BITS),
            ("allowed_sender", ALLOWED_SENDER_BITS),
        ):
            value = getattr(self, name)
            if value < 0 or value > _mask(width):
                raise ValidationError(
                    f"MakerTraits.{name}={value} does not fit {width} bits",
                    reason="INVALID_TRAITS",
                )

    def encode(self) -> int:
        traits = 0
        for offset_width, value in (
            (ALLOWED_SENDER_BITS, self.allowed_sender),
            (EXPIRATION_BITS, self.expiration),
            (NONCE_BITS, self.nonce),
            (SERIES_BITS, self.series),
        ):
            offset, _ = offset_width
            traits |= value << offset

        flags = (
            (NO_PARTIAL_FILLS_FLAG, not self.allow_partial_fill),
            (ALLOW_MULTIPLE_FILLS_FLAG, self.allow_multiple_fills),
            (PRE_INTERACTION_CALL_FLAG, self.pre_interaction),
            (POST_INTERACTION_CALL_FLAG, self.post_interaction),
            (NEED_CHECK_EPOCH_MANAGER_FLAG, self.need_epoch_check),
            (HAS_EXTENSION_FLAG, self.has_extension),
            (USE_PERMIT2_FLAG, self.use_permit2),
            (UNWRAP_WETH_FLAG, self.unwrap_weth),
        )
        for bit, enabled in flags:
            if enabled:
                traits |= 1 << bit
        return traits

    @classmethod
    def decode(cls, traits: int) -> "MakerTraits":
        def field_at(bits):
            offset, width = bits
            return (traits >> offset) & _mask(width)

        def flag(bit):
            return bool((traits >> bit) & 1)

        return cls(
            expiration=field_at(EXPIRATION_BITS),
            nonce=field_at(NONCE_BITS),
            series=field_at(SERIES_BITS),
            allowed_sender=field_at(ALLOWED_SENDER_BITS),
            allow_partial_fill=not flag(NO_PARTIAL_FILLS_FLAG),
            allow_multiple_fills=flag(ALLOW_MULTIPLE_FILLS_FLAG),
            has_extension=flag(HAS_EXTENSION_FLAG),
            pre_interaction=flag(PRE_INTERACTION_CALL_FLAG),
            post_interaction=flag(POST_INTERACTION_CALL_FLAG),
            need_epoch_check=flag(NEED_CHECK_EPOCH_MANAGER_FLAG),
            use_permit2=flag(USE_PERMIT2_FLAG),
            unwrap_weth=flag(UNWRAP_WETH_FLAG),
        )

    def is_expired(self, now: float) -> bool:
        return self.expiration != 0 and self.expiration <= now
