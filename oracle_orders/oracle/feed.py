"""
Managed feed.

Pulls quotes from an HTTP JSON endpoint (Alpha Vantage GLOBAL_QUOTE style by
default) and pushes them into MANAGED indices as the configured updater.
Quote strings are scaled with Decimal so no float rounding reaches the oracle.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import aiohttp

from ..chain.gate import RequestGate
from ..errors import OrderEngineError, RelayError, RequestTimeout, ValidationError
from ..orders.address import Address
from .source import IndexSource

ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"


@dataclass
class FeedSpec:
    """How to fetch and scale one index's value."""
    index_id: int
    url: str
    params: Dict[str, str] = field(default_factory=dict)
    value_path: str = "Global Quote.05. price"
    scale: int = 100

    @classmethod
    def alpha_vantage(cls, index_id: int, symbol: str, api_key: str, scale: int = 100) -> "FeedSpec":
        return cls(
            index_id=index_id,
            url=ALPHA_VANTAGE_URL,
            params={"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": api_key},
            scale=scale,
        )


def extract_value(payload: Any, path: str) -> Any:
    """Walk a dotted ``path`` through nested dicts.

    Keys may themselves contain dots ("05. price"); the longest run of
    segments matching a key is taken.
    """
    node = payload
    parts = path.split(".")
    i = 0
    while i < len(parts):
        if not isinstance(node, dict):
            raise ValidationError(f"Path {path!r} not found in feed payload", reason="FEED_PARSE_ERROR")
        key = parts[i]
        j = i
        while key not in node and j + 1 < len(parts):
            j += 1
            key = key + "." + parts[j]
        if key not in node:
            raise ValidationError(f"Path {path!r} not found in feed payload", reason="FEED_PARSE_ERROR")
        node = node[key]
        i = j + 1
    return node


def scale_quote(raw: Any, scale: int) -> int:
    """Convert a decimal quote to a scaled integer (half-up rounding)."""
    try:
        value = Decimal(str(raw).strip()) * scale
    except InvalidOperation as e:
        raise ValidationError(f"Feed value {raw!r} is not a number", reason="FEED_PARSE_ERROR") from e
    if value < 0:
        raise ValidationError(f"Feed value {raw!r} is negative", reason="FEED_PARSE_ERROR")
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class ManagedFeed:
    """Fetch-and-push loop for MANAGED indices."""

    def __init__(
        self,
        source: IndexSource,
        updater,
        feeds: List[FeedSpec],
        gate: Optional[RequestGate] = None,
        request_timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize feed.

        Args:
            source: Index source to push into
            updater: Identity named as the MANAGED backend's updater
            feeds: One FeedSpec per index
            gate: Request gate for the quote API (free tiers are tightly limited)
            request_timeout: HTTP timeout in seconds
            logger: Optional logger
        """
        self.source = source
        self.updater = Address.of(updater)
        self.feeds = list(feeds)
        self._gate = gate or RequestGate(max_per_second=0.2, logger=logger)
        self._request_timeout = request_timeout
        self._logger = logger or logging.getLogger(__name__)
        self._session: Optional[aiohttp.ClientSession] = None
        self._task: Optional[asyncio.Task] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._request_timeout)
            )
        return self._session

    async def _fetch_json(self, feed: FeedSpec) -> Any:
        session = await self._get_session()
        try:
            async with session.get(feed.url, params=feed.params) as response:
                if response.status != 200:
                    raise RelayError(
                        f"Feed HTTP {response.status} for index {feed.index_id}",
                        reason="FEED_HTTP_ERROR",
                        transient=response.status == 429 or response.status >= 500,
                        status=response.status,
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise RequestTimeout(f"Feed for index {feed.index_id} timed out") from e
        except aiohttp.ClientError as e:
            raise RelayError(f"Feed transport error: {e}", reason="FEED_HTTP_ERROR", transient=True) from e

    async def fetch(self, feed: FeedSpec) -> int:
        """Fetch and scale the current value for ``feed``."""
        key = f"feed:{feed.url}:{sorted(feed.params.items())}"
        payload = await self._gate.run(key, lambda: self._fetch_json(feed))
        return scale_quote(extract_value(payload, feed.value_path), feed.scale)

    async def update(self, feed: FeedSpec) -> int:
        value = await self.fetch(feed)
        await self.source.set_value(self.updater, feed.index_id, value)
        self._logger.info(f"Managed feed pushed index {feed.index_id} = {value}")
        return value

    async def update_all(self) -> Dict[int, int]:
        """Update every feed; failures are logged and skipped."""
        results = {}
        for feed in self.feeds:
            try:
                results[feed.index_id] = await self.update(feed)
            except OrderEngineError as e:
                self._logger.warning(f"Managed feed update failed for index {feed.index_id}: {e}")
        return results

    async def run(self, interval_seconds: float):
        while True:
            await self.update_all()
            await asyncio.sleep(interval_seconds)

    def start(self, interval_seconds: float = 300.0) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self.run(interval_seconds))
        return self._task

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._session and not self._session.closed:
            await self._session.close()
