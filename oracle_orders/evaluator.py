"""
Condition Evaluator.

Off-chain mirror of the on-chain predicate, used for monitoring and
pre-flight checks. Evaluation is integer-only and supports all five
operators, including EQ which the on-chain predicate may not be able to
enforce.

Readings older than the freshness window, or from deactivated indices, are
flagged rather than silently treated as reliable.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from .errors import IndexNotFound, InvalidCondition, RelayError
from .oracle.source import IndexSource
from .oracle.types import IndexReading
from .orders.types import Condition, Operator


def evaluate(condition: Condition, current_value: int) -> bool:
    """Whether ``current_value`` satisfies ``condition``."""
    if isinstance(current_value, bool) or not isinstance(current_value, int):
        raise InvalidCondition(
            f"Index values are scaled integers, got {type(current_value).__name__}"
        )
    t = condition.threshold
    op = condition.operator
    if op == Operator.GT:
        return current_value > t
    if op == Operator.LT:
        return current_value < t
    if op == Operator.GTE:
        return current_value >= t
    if op == Operator.LTE:
        return current_value <= t
    return current_value == t


@dataclass
class FreshnessConfig:
    """Staleness policy for index readings."""
    max_age_seconds: float = 3600.0
    log_staleness: bool = True


@dataclass
class Evaluation:
    """Result of checking a condition against a live reading."""
    condition: Condition
    reading: IndexReading
    satisfied: bool
    stale: bool = False
    inactive: bool = False
    age_seconds: float = 0.0
    checked_at: float = field(default_factory=time.time)

    @property
    def reliable(self) -> bool:
        return not (self.stale or self.inactive)

    @property
    def reason(self) -> Optional[str]:
        reasons = []
        if self.inactive:
            reasons.append("index inactive")
        if self.stale:
            reasons.append(f"reading {self.age_seconds:.0f}s old")
        return ", ".join(reasons) or None


class ConditionEvaluator:
    """Evaluates conditions against an IndexSource."""

    def __init__(
        self,
        source: IndexSource,
        freshness: Optional[FreshnessConfig] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.source = source
        self.freshness = freshness or FreshnessConfig()
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    async def check(self, condition: Condition) -> Evaluation:
        """Read the index and evaluate ``condition``.

        Raises:
            IndexNotFound: index is not registered
        """
        reading = await self.source.get_value(condition.index_id)
        now = self._clock()
        age = reading.age(now)
        evaluation = Evaluation(
            condition=condition,
            reading=reading,
            satisfied=evaluate(condition, reading.value),
            stale=age > self.freshness.max_age_seconds,
            inactive=not reading.active,
            age_seconds=age,
            checked_at=now,
        )
        if not evaluation.reliable and self.freshness.log_staleness:
            self._logger.warning(
                f"Unreliable reading for {condition.describe()}: {evaluation.reason} "
                f"(value={reading.value})"
            )
        return evaluation

    async def check_many(self, conditions: List[Condition]) -> List[Evaluation]:
        return list(await asyncio.gather(*(self.check(c) for c in conditions)))


class ConditionWatcher:
    """Polls conditions and calls back when one becomes satisfied.

    The callback fires on the transition from unsatisfied to satisfied, and
    only for reliable readings.
    """

    def __init__(
        self,
        evaluator: ConditionEvaluator,
        on_satisfied: Callable[[Evaluation], Awaitable[None]],
        interval_seconds: float = 60.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.evaluator = evaluator
        self._on_satisfied = on_satisfied
        self.interval_seconds = interval_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._conditions: List[Condition] = []
        self._last: Dict[Condition, bool] = {}
        self._task: Optional[asyncio.Task] = None

    def watch(self, condition: Condition):
        if condition not in self._conditions:
            self._conditions.append(condition)

    def unwatch(self, condition: Condition):
        if condition in self._conditions:
            self._conditions.remove(condition)
            self._last.pop(condition, None)

    async def poll_once(self) -> List[Evaluation]:
        triggered = []
        for condition in list(self._conditions):
            try:
                evaluation = await self.evaluator.check(condition)
            except IndexNotFound as e:
                self._logger.error(f"Watcher dropped {condition.describe()}: {e}")
                self.unwatch(condition)
                continue
            except RelayError as e:
                self._logger.warning(f"Watcher read failed for {condition.describe()}: {e}")
                continue
            fired = evaluation.satisfied and evaluation.reliable
            if fired and not self._last.get(condition, False):
                self._logger.info(f"Condition met: {condition.describe()} (value={evaluation.reading.value})")
                triggered.append(evaluation)
                await self._on_satisfied(evaluation)
            self._last[condition] = fired
        return triggered

    async def _run(self):
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self._run())
        return self._task

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
