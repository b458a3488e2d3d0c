"""
Relay client for the 1inch orderbook API (v4).

Endpoints (relative to ``{base_url}/{chain_id}``):
- POST /                      submit a signed order
- GET  /order/{orderHash}     order state
- GET  /address/{maker}       orders of a maker

Rejections are classified into a reason code and a transient flag;
transient failures (rate limit, 5xx, transport errors, timeouts) are retried
with exponential backoff.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from ..chain.gate import RequestGate
from ..config import RelayConfig
from ..errors import RelayError, RequestTimeout, SubmissionError
from ..orders.address import Address
from ..orders.types import Order, OrderStatus

# Order status codes used by the orderbook API, plus string aliases
RELAY_STATUS_CODES = {
    1: OrderStatus.PENDING,
    2: OrderStatus.CANCELLED,
    3: OrderStatus.FILLED,
}

RELAY_STATUS_NAMES = {
    "active": OrderStatus.PENDING,
    "valid": OrderStatus.PENDING,
    "open": OrderStatus.PENDING,
    "pending": OrderStatus.PENDING,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
    "filled": OrderStatus.FILLED,
    "executed": OrderStatus.FILLED,
    "completed": OrderStatus.FILLED,
    "expired": OrderStatus.EXPIRED,
}

# Ordered: the first matching fragment wins
REJECTION_REASONS: Tuple[Tuple[str, str], ...] = (
    ("allowance", "INSUFFICIENT_ALLOWANCE"),
    ("balance", "INSUFFICIENT_BALANCE"),
    ("extension", "MALFORMED_EXTENSION"),
    ("salt", "MALFORMED_EXTENSION"),
    ("signature", "INVALID_SIGNATURE"),
    ("predicate", "INVALID_PREDICATE"),
    ("expired", "ORDER_EXPIRED"),
)


def classify_rejection(status: int, body: Any) -> Tuple[str, str, bool]:
    """Map an error response to (reason, message, transient)."""
    if isinstance(body, dict):
        message = str(body.get("description") or body.get("message") or body.get("error") or body)
    else:
        message = str(body)

    if status == 429:
        return "RATE_LIMITED", message, True
    if status >= 500:
        return "RELAY_UNAVAILABLE", message, True

    lowered = message.lower()
    for fragment, reason in REJECTION_REASONS:
        if fragment in lowered:
            return reason, message, False
    return "REJECTED", message, False


@dataclass
class RelayOrderState:
    """Order state as reported by the relay."""
    order_hash: str
    status: Optional[OrderStatus]
    remaining_making_amount: Optional[int] = None
    fill_tx_hash: Optional[str] = None
    invalid_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def parse_order_state(record: Dict[str, Any]) -> RelayOrderState:
    """Interpret an order record returned by the relay.

    Unknown status values map to ``status=None`` (no change).
    """
    raw_status = record.get("orderStatus", record.get("status"))
    status: Optional[OrderStatus] = None
    if isinstance(raw_status, int) and not isinstance(raw_status, bool):
        status = RELAY_STATUS_CODES.get(raw_status)
    elif isinstance(raw_status, str):
        if raw_status.strip().lstrip("-").isdigit():
            status = RELAY_STATUS_CODES.get(int(raw_status))
        else:
            status = RELAY_STATUS_NAMES.get(raw_status.strip().lower())

    remaining = record.get("remainingMakerAmount")
    remaining_amount = int(remaining) if remaining not in (None, "") else None
    if remaining_amount == 0:
        status = OrderStatus.FILLED

    invalid_reason = record.get("orderInvalidReason")
    if isinstance(invalid_reason, list):
        invalid_reason = ", ".join(str(r) for r in invalid_reason) or None

    fill_tx_hash = record.get("fillTxHash") or record.get("txHash")
    fills = record.get("fills")
    if not fill_tx_hash and isinstance(fills, list) and fills:
        fill_tx_hash = fills[-1].get("txHash")

    return RelayOrderState(
        order_hash=record.get("orderHash", ""),
        status=status,
        remaining_making_amount=remaining_amount,
        fill_tx_hash=fill_tx_hash,
        invalid_reason=invalid_reason,
        raw=record,
    )


class RelayClient:
    """aiohttp client for the orderbook API."""

    def __init__(
        self,
        chain_id: int,
        config: Optional[RelayConfig] = None,
        gate: Optional[RequestGate] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize client.

        Args:
            chain_id: Chain the orderbook serves
            config: Relay settings (base URL, API key, retries)
            gate: Request gate (created from config when omitted)
            logger: Optional logger
        """
        self.chain_id = chain_id
        self._config = config or RelayConfig()
        self._gate = gate or RequestGate(
            max_per_second=self._config.max_requests_per_second,
            logger=logger,
        )
        self._logger = logger or logging.getLogger(__name__)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def base_url(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/{self.chain_id}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self._config.api_key:
                headers["Authorization"] = f"Bearer {self._config.api_key}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff delay in seconds for retry ``attempt`` (0-indexed)."""
        delay_ms = self._config.retry_base_delay_ms * (
            self._config.retry_backoff_factor ** attempt
        )
        delay_ms = min(delay_ms, self._config.retry_max_delay_ms)
        return delay_ms / 1000.0

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Any]:
        """Single HTTP exchange. Returns (status, decoded body)."""
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.request(method, url, json=json, params=params) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = await response.text()
                return response.status, body
        except asyncio.TimeoutError as e:
            raise RequestTimeout(f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise RelayError(f"{method} {path}: {e}", reason="RELAY_UNREACHABLE", transient=True) from e

    async def _call(
        self,
        key: str,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        error_cls=RelayError,
        allow_404: bool = False,
    ) -> Any:
        """Gated request with retries on transient failures."""
        last_error: Optional[RelayError] = None
        attempts = max(1, self._config.max_retries)

        for attempt in range(attempts):
            try:
                status, body = await self._gate.run(
                    key, lambda: self._request(method, path, json=json, params=params)
                )
            except RelayError as e:
                last_error = e
            else:
                if 200 <= status < 300:
                    return body
                if status == 404 and allow_404:
                    return None
                reason, message, transient = classify_rejection(status, body)
                last_error = error_cls(message, reason=reason, transient=transient, status=status)
                if not transient:
                    raise last_error

            if attempt < attempts - 1:
                delay = self._calculate_retry_delay(attempt)
                self._logger.warning(
                    f"{method} {path} failed ({last_error}); retry {attempt + 1} in {delay:.3f}s"
                )
                await asyncio.sleep(delay)

        self._logger.error(f"All {attempts} attempts failed for {method} {path}")
        raise last_error

    async def submit_order(self, order: Order, signature: str) -> Dict[str, Any]:
        """Submit a signed order.

        Raises:
            SubmissionError: relay rejected the order (``reason`` says why)
        """
        payload = {
            "orderHash": order.hash,
            "signature": signature,
            "data": order.to_relay_payload(),
        }
        body = await self._call(
            f"submit:{order.hash}", "POST", "/", json=payload, error_cls=SubmissionError
        )
        return body if isinstance(body, dict) else {"response": body}

    async def get_order(self, order_hash: str) -> Optional[RelayOrderState]:
        """Relay's view of ``order_hash``; None if the relay does not know it."""
        record = await self._call(
            f"order:{order_hash}", "GET", f"/order/{order_hash}", allow_404=True
        )
        if record is None:
            return None
        state = parse_order_state(record)
        if not state.order_hash:
            state.order_hash = order_hash
        return state

    async def get_orders_by_maker(
        self,
        maker,
        page: int = 1,
        limit: int = 100,
        statuses: Optional[List[int]] = None,
    ) -> List[Dict[str, Any]]:
        """Raw order records for ``maker`` (one page)."""
        maker = Address.of(maker)
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if statuses:
            params["statuses"] = ",".join(str(s) for s in statuses)
        body = await self._call(
            f"maker:{maker.lower}:{page}:{limit}:{params.get('statuses', '')}",
            "GET",
            f"/address/{maker.lower}",
            params=params,
        )
        if isinstance(body, dict):
            return list(body.get("items") or body.get("orders") or [])
        return list(body or [])
