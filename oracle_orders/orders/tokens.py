"""Known Base mainnet tokens and decimal unit conversion."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict

from ..errors import InvalidAmount, InvalidAsset
from .address import Address


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    address: Address
    decimals: int


BASE_TOKENS: Dict[str, TokenInfo] = {
    t.symbol: t for t in (
        TokenInfo("USDC", Address("0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"), 6),
        TokenInfo("WETH", Address("0x4200000000000000000000000000000000000006"), 18),
        TokenInfo("1INCH", Address("0xc5fecc3a29fb57b5024eec8a2239d4621e111cbe"), 18),
        TokenInfo("DAI", Address("0x50c5725949a6f0c72e6c4a641f24049a917db0cb"), 18),
    )
}


def resolve_token(symbol_or_address: str) -> TokenInfo:
    """Look up a token by symbol or address."""
    token = BASE_TOKENS.get(symbol_or_address.upper())
    if token is not None:
        return token
    for token in BASE_TOKENS.values():
        if token.address.lower == symbol_or_address.lower():
            return token
    raise InvalidAsset(f"Unknown token {symbol_or_address!r}")


def parse_units(amount: str, decimals: int) -> int:
    """Convert a human amount ("1.5") to base units, rejecting excess precision."""
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise InvalidAmount(f"{amount!r} is not a number") from e
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmount(f"{amount} has more than {decimals} decimals")
    if scaled <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    return int(scaled)


def format_units(amount: int, decimals: int) -> str:
    value = Decimal(amount).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
