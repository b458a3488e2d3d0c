"""
Request gate for outbound calls to rate-limited services.

- Enforces a minimum interval between request starts
- Shares one in-flight request among concurrent callers using the same key
- Converts timeouts into RequestTimeout
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from ..errors import RequestTimeout


class RequestGate:
    """Async rate limiter with in-flight deduplication."""

    def __init__(
        self,
        max_per_second: float = 1.0,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize gate.

        Args:
            max_per_second: Request rate ceiling (<= 0 disables spacing)
            timeout: Per-request timeout in seconds (None = no extra timeout)
            clock: Monotonic clock
            sleep: Async sleep, injectable for tests
            logger: Optional logger
        """
        self._min_interval = 1.0 / max_per_second if max_per_second > 0 else 0.0
        self._timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._logger = logger or logging.getLogger(__name__)

        self._lock = asyncio.Lock()
        self._last_request_time: Optional[float] = None
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._waiters: Dict[asyncio.Future, int] = {}

        self.requests_started = 0
        self.requests_deduplicated = 0

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def _rate_limit(self):
        """Wait until the minimum interval since the last request has passed."""
        async with self._lock:
            if self._last_request_time is not None:
                elapsed = self._clock() - self._last_request_time
                if elapsed < self._min_interval:
                    await self._sleep(self._min_interval - elapsed)
            self._last_request_time = self._clock()

    async def _execute(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        await self._rate_limit()
        self.requests_started += 1
        try:
            if self._timeout is None:
                return await factory()
            return await asyncio.wait_for(factory(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeout(f"{key} timed out after {self._timeout}s") from e

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``factory()`` through the gate.

        Args:
            key: Request identity; concurrent calls with the same key share
                one request and its result (or exception)
            factory: Zero-argument coroutine function performing the request

        Returns:
            The request's result
        """
        task = self._in_flight.get(key)
        if task is not None:
            self.requests_deduplicated += 1
            self._logger.debug(f"Joining in-flight request {key}")
        else:
            task = asyncio.ensure_future(self._execute(key, factory))
            self._in_flight[key] = task
            self._waiters[task] = 0
            task.add_done_callback(lambda done: self._forget(key, done))

        self._waiters[task] += 1
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Last waiter gone
            if self._waiters.get(task) == 1 and not task.done():
                task.cancel()
            raise
        finally:
            if task in self._waiters:
                self._waiters[task] -= 1

    def _forget(self, key: str, task: asyncio.Future):
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        self._waiters.pop(task, None)
        if not task.cancelled() and task.exception() is not None:
            # Marks the exception retrieved when no waiter is left
            self._logger.debug(f"Request {key} failed: {task.exception()!r}")
