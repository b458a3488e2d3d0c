"""
Unit tests for condition evaluation.

Covers the integer comparison truth table at threshold boundaries and the
stale / inactive flagging of live readings.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from oracle_orders.errors import IndexNotFound, InvalidCondition, RequestTimeout, RpcError
from oracle_orders.evaluator import (
    ConditionEvaluator,
    ConditionWatcher,
    FreshnessConfig,
    evaluate,
)
from oracle_orders.oracle.source import InMemoryIndexSource
from oracle_orders.orders.types import Condition, Operator

from tests.conftest import MAKER, OTHER


class Clock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self):
        return self.now


class TestEvaluateTruthTable:
    """Tests for the pure comparison."""

    @pytest.mark.parametrize("operator,below,at,above", [
        (Operator.GT, False, False, True),
        (Operator.LT, True, False, False),
        (Operator.GTE, False, True, True),
        (Operator.LTE, True, True, False),
        (Operator.EQ, False, True, False),
    ])
    def test_boundaries(self, operator, below, at, above):
        """Test each operator at threshold - 1, threshold, threshold + 1."""
        condition = Condition(index_id=0, operator=operator, threshold=17500)
        assert evaluate(condition, 17499) is below
        assert evaluate(condition, 17500) is at
        assert evaluate(condition, 17501) is above

    def test_vix_above_twenty(self):
        """Test VIX > 20.00 flips once the index rises past 2000."""
        condition = Condition(index_id=2, operator=Operator.GT, threshold=2000)
        assert evaluate(condition, 1850) is False
        assert evaluate(condition, 2150) is True

    def test_aapl_equals(self):
        """Test AAPL == 175.00 only at the exact scaled value."""
        condition = Condition(index_id=0, operator=Operator.EQ, threshold=17500)
        assert evaluate(condition, 17500) is True
        assert evaluate(condition, 17499) is False

    def test_large_values_compare_exactly(self):
        """Test values beyond float precision compare as integers."""
        threshold = 2**200
        condition = Condition(index_id=1, operator=Operator.GT, threshold=threshold)
        assert evaluate(condition, threshold + 1) is True
        assert evaluate(condition, threshold) is False

    def test_float_value_rejected(self):
        """Test non-integer readings are refused."""
        condition = Condition(index_id=0, operator=Operator.GT, threshold=100)
        with pytest.raises(InvalidCondition):
            evaluate(condition, 100.5)

    def test_float_threshold_rejected(self):
        """Test conditions reject float thresholds."""
        with pytest.raises(InvalidCondition):
            Condition(index_id=0, operator=Operator.GT, threshold=1.5)


class TestOperatorParsing:
    """Tests for operator aliases."""

    @pytest.mark.parametrize("raw,expected", [
        ("gt", Operator.GT),
        (">", Operator.GT),
        ("LTE", Operator.LTE),
        ("<=", Operator.LTE),
        ("==", Operator.EQ),
        (4, Operator.EQ),
    ])
    def test_parse(self, raw, expected):
        assert Operator.parse(raw) == expected

    def test_unknown_operator(self):
        with pytest.raises(InvalidCondition):
            Operator.parse("approximately")


class TestConditionEvaluator:
    """Tests for evaluation against an index source."""

    @pytest.mark.asyncio
    async def test_fresh_reading_is_reliable(self):
        clock = Clock(1_000_000)
        source = InMemoryIndexSource(admins=[MAKER], clock=clock)
        evaluator = ConditionEvaluator(source, FreshnessConfig(max_age_seconds=60), clock=clock)

        await source.set_value(MAKER, 2, 2150)
        evaluation = await evaluator.check(Condition(2, Operator.GT, 2000))

        assert evaluation.satisfied is True
        assert evaluation.reliable is True
        assert evaluation.reason is None

    @pytest.mark.asyncio
    async def test_stale_reading_flagged(self):
        """Test readings older than the window are flagged, not hidden."""
        clock = Clock(1_000_000)
        source = InMemoryIndexSource(admins=[MAKER], clock=clock)
        evaluator = ConditionEvaluator(source, FreshnessConfig(max_age_seconds=60), clock=clock)

        clock.now += 3600
        evaluation = await evaluator.check(Condition(2, Operator.LT, 5000))

        assert evaluation.satisfied is True
        assert evaluation.stale is True
        assert evaluation.reliable is False
        assert "old" in evaluation.reason

    @pytest.mark.asyncio
    async def test_inactive_index_flagged(self):
        """Test a deactivated index still evaluates but is marked unreliable."""
        source = InMemoryIndexSource(admins=[MAKER])
        evaluator = ConditionEvaluator(source)

        await source.set_active(MAKER, 0, False)
        evaluation = await evaluator.check(Condition(0, Operator.EQ, 17500))

        assert evaluation.satisfied is True
        assert evaluation.inactive is True
        assert evaluation.reason == "index inactive"

    @pytest.mark.asyncio
    async def test_unknown_index(self):
        evaluator = ConditionEvaluator(InMemoryIndexSource(admins=[MAKER]))
        with pytest.raises(IndexNotFound):
            await evaluator.check(Condition(99, Operator.GT, 1))

    @pytest.mark.asyncio
    async def test_check_many(self):
        evaluator = ConditionEvaluator(InMemoryIndexSource(admins=[MAKER]))
        results = await evaluator.check_many([
            Condition(0, Operator.GT, 10000),
            Condition(1, Operator.LT, 10000),
        ])
        assert [r.satisfied for r in results] == [True, False]


class TestConditionWatcher:
    """Tests for the polling watcher."""

    @pytest.mark.asyncio
    async def test_fires_once_on_crossing(self):
        source = InMemoryIndexSource(admins=[MAKER])
        fired = []

        async def on_satisfied(evaluation):
            fired.append(evaluation.reading.value)

        watcher = ConditionWatcher(ConditionEvaluator(source), on_satisfied)
        watcher.watch(Condition(2, Operator.GT, 2000))

        await watcher.poll_once()
        assert fired == []

        await source.set_value(MAKER, 2, 2150)
        await watcher.poll_once()
        await watcher.poll_once()
        assert fired == [2150]

    @pytest.mark.asyncio
    async def test_unknown_index_dropped(self):
        async def on_satisfied(evaluation):
            raise AssertionError("should not fire")

        watcher = ConditionWatcher(ConditionEvaluator(InMemoryIndexSource(admins=[OTHER])), on_satisfied)
        watcher.watch(Condition(42, Operator.GT, 1))

        assert await watcher.poll_once() == []
        assert await watcher.poll_once() == []

    @pytest.mark.asyncio
    async def test_read_failure_skipped_and_retried(self):
        """Test a failed oracle read leaves the condition watched."""
        source = InMemoryIndexSource(admins=[MAKER])
        await source.set_value(MAKER, 2, 2150)
        fired = []

        async def on_satisfied(evaluation):
            fired.append(evaluation.reading.value)

        watcher = ConditionWatcher(ConditionEvaluator(source), on_satisfied)
        condition = Condition(2, Operator.GT, 2000)
        watcher.watch(condition)

        real_get_value = source.get_value
        source.get_value = AsyncMock(side_effect=RpcError("RPC HTTP 503", transient=True))
        assert await watcher.poll_once() == []

        source.get_value = real_get_value
        assert len(await watcher.poll_once()) == 1
        assert fired == [2150]

    @pytest.mark.asyncio
    async def test_loop_survives_read_failures(self):
        source = InMemoryIndexSource(admins=[MAKER])
        source.get_value = AsyncMock(side_effect=RequestTimeout("oracle read timed out"))

        async def on_satisfied(evaluation):
            raise AssertionError("should not fire")

        watcher = ConditionWatcher(ConditionEvaluator(source), on_satisfied, interval_seconds=0.01)
        watcher.watch(Condition(2, Operator.GT, 2000))

        task = watcher.start()
        await asyncio.sleep(0.05)
        assert not task.done()
        assert source.get_value.await_count >= 2
        await watcher.stop()
