"""
Property-based tests for order lifecycle and encoding invariants.

Verifies:
- Status only moves forward; terminal states never change
- Randomly chosen relay reports never move a cached order backwards
- Builder output is always internally consistent
- Compile / decompile agree for strict operators
"""

import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from oracle_orders.errors import IllegalTransition
from oracle_orders.evaluator import evaluate
from oracle_orders.orders.types import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    Condition,
    Operator,
    OrderCacheEntry,
    OrderStatus,
    can_transition,
)
from oracle_orders.persistence.order_cache import InMemoryOrderCache
from oracle_orders.relay.client import RelayOrderState
from oracle_orders.relay.manager import OrderLifecycleManager

from tests.conftest import FIXED_NOW

RANK = {
    OrderStatus.SUBMITTED: 0,
    OrderStatus.PENDING: 1,
    OrderStatus.FILLED: 2,
    OrderStatus.CANCELLED: 2,
    OrderStatus.EXPIRED: 2,
}


class TestTransitionTable:
    """Verify the transition table itself."""

    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert ALLOWED_TRANSITIONS[status] == frozenset()

    def test_all_transitions_move_forward(self):
        for source, targets in ALLOWED_TRANSITIONS.items():
            for target in targets:
                assert RANK[target] > RANK[source]

    def test_every_status_listed(self):
        assert set(ALLOWED_TRANSITIONS) == set(OrderStatus)


class TestRandomSequences:
    """Apply random status sequences to cached entries."""

    @pytest.mark.parametrize("seed", range(20))
    def test_random_advances(self, make_order, seed):
        rng = random.Random(seed)
        entry = OrderCacheEntry(order=make_order())
        history = [entry.status]

        for _ in range(12):
            target = rng.choice(list(OrderStatus))
            before = entry.status
            if can_transition(before, target):
                entry.advance(target)
            else:
                with pytest.raises(IllegalTransition):
                    entry.advance(target)
                assert entry.status == before
            history.append(entry.status)

        ranks = [RANK[s] for s in history]
        assert ranks == sorted(ranks)
        terminal_seen = [s for s in history if s in TERMINAL_STATUSES]
        if terminal_seen:
            assert all(s == terminal_seen[0] for s in terminal_seen)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(10))
    async def test_random_relay_reports(self, make_order, signer, seed):
        """Feed random relay states through refresh(); status never regresses."""
        rng = random.Random(seed)
        relay = MagicMock()
        relay.submit_order = AsyncMock(return_value={})
        relay.get_order = AsyncMock()
        manager = OrderLifecycleManager(
            relay, InMemoryOrderCache(), signer, clock=lambda: FIXED_NOW + 1
        )

        order = make_order()
        await manager.submit(order, signer.sign(order).signature)
        first_terminal = None

        for _ in range(10):
            status = rng.choice([None] + list(OrderStatus))
            relay.get_order.return_value = (
                None if status is None else RelayOrderState(order_hash=order.hash, status=status)
            )
            before = manager.get(order.hash).status
            after = await manager.get_status(order.hash)

            assert RANK[after] >= RANK[before]
            if first_terminal is None and after in TERMINAL_STATUSES:
                first_terminal = after
            if first_terminal is not None:
                assert after == first_terminal


class TestBuilderInvariants:
    """Verify builder output across random inputs."""

    @pytest.mark.parametrize("seed", range(15))
    def test_random_orders_consistent(self, make_order, compiler, seed):
        rng = random.Random(seed)
        operator = rng.choice([Operator.GT, Operator.LT, Operator.GTE, Operator.LTE])
        condition = Condition(rng.randrange(0, 10), operator, rng.randrange(1, 10**12))
        order = make_order(
            making_amount=rng.randrange(1, 10**24),
            taking_amount=rng.randrange(1, 10**24),
            nonce=rng.randrange(0, 2**40),
            salt_seed=rng.randrange(0, 2**96),
            condition=condition,
        )

        order.assert_consistent()
        assert order.compute_hash() == order.hash
        assert order.maker_traits.has_extension

    @pytest.mark.parametrize("seed", range(15))
    def test_compiled_predicate_matches_evaluation(self, compiler, seed):
        """The recovered strict condition agrees with the original on every value."""
        rng = random.Random(seed)
        operator = rng.choice(list(Operator)[:4])
        threshold = rng.randrange(1, 10**6)
        condition = Condition(rng.randrange(0, 4), operator, threshold)
        recovered = compiler.decompile(compiler.compile(condition))

        for value in (0, threshold - 1, threshold, threshold + 1, rng.randrange(0, 2 * 10**6)):
            assert evaluate(recovered, value) == evaluate(condition, value)
