"""Shared fixtures for order engine tests."""

import pytest
from eth_account import Account

from oracle_orders.config import INDEX_ORACLE_ADDRESS, LIMIT_ORDER_PROTOCOL_ADDRESS
from oracle_orders.orders.address import Address
from oracle_orders.orders.builder import OrderBuilder
from oracle_orders.orders.domain import ProtocolDomain
from oracle_orders.orders.predicate import PredicateCompiler
from oracle_orders.orders.signer import OrderSigner
from oracle_orders.orders.types import Condition, Operator

# Well-known development keys (public test mnemonic)
MAKER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OTHER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

MAKER = Address(Account.from_key(MAKER_KEY).address)
OTHER = Address(Account.from_key(OTHER_KEY).address)

USDC = Address("0x833589fcd6edb6e08f4c7c32d4f71b54bda02913")
WETH = Address("0x4200000000000000000000000000000000000006")

FIXED_NOW = 1_700_000_000


@pytest.fixture
def domain():
    return ProtocolDomain.for_chain(8453, LIMIT_ORDER_PROTOCOL_ADDRESS)


@pytest.fixture
def compiler():
    return PredicateCompiler(INDEX_ORACLE_ADDRESS, LIMIT_ORDER_PROTOCOL_ADDRESS)


@pytest.fixture
def and_compiler():
    return PredicateCompiler(
        INDEX_ORACLE_ADDRESS, LIMIT_ORDER_PROTOCOL_ADDRESS, allow_and_combinator=True
    )


@pytest.fixture
def builder(domain, compiler):
    return OrderBuilder(domain, compiler, clock=lambda: FIXED_NOW)


@pytest.fixture
def signer(domain):
    return OrderSigner(domain, private_key=MAKER_KEY)


@pytest.fixture
def vix_condition():
    return Condition(index_id=2, operator=Operator.GT, threshold=2000)


@pytest.fixture
def make_order(builder, vix_condition):
    """Factory building a deterministic VIX > 20.00 order; kwargs override inputs."""
    def _make(**overrides):
        params = dict(
            maker=MAKER,
            maker_asset=USDC,
            taker_asset=WETH,
            making_amount=100_000_000,
            taking_amount=30_000_000_000_000_000,
            condition=vix_condition,
            expiration_seconds=3600,
            nonce=42,
            salt_seed=7,
        )
        params.update(overrides)
        return builder.build(**params)
    return _make
