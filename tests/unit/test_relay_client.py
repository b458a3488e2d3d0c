"""
Unit tests for RelayClient.

HTTP is stubbed by patching ``_request``; tests cover payload shape,
rejection classification, retries and status parsing.
"""

from unittest.mock import AsyncMock, patch

import pytest

from oracle_orders.chain.gate import RequestGate
from oracle_orders.config import RelayConfig
from oracle_orders.errors import RelayError, RequestTimeout, SubmissionError
from oracle_orders.orders.types import OrderStatus
from oracle_orders.relay.client import RelayClient, classify_rejection, parse_order_state

from tests.conftest import MAKER


@pytest.fixture
def client():
    config = RelayConfig(
        base_url="https://relay.test/orderbook/v4.0/",
        api_key="test-key",
        max_retries=3,
        retry_base_delay_ms=0,
    )
    return RelayClient(8453, config, gate=RequestGate(max_per_second=0))


class TestClassifyRejection:
    """Tests for error classification."""

    @pytest.mark.parametrize("body,reason", [
        ({"description": "Not enough allowance"}, "INSUFFICIENT_ALLOWANCE"),
        ({"message": "not enough balance"}, "INSUFFICIENT_BALANCE"),
        ({"error": "invalid extension"}, "MALFORMED_EXTENSION"),
        ({"description": "salt does not match extension hash"}, "MALFORMED_EXTENSION"),
        ("bad signature", "INVALID_SIGNATURE"),
        ({"description": "something else"}, "REJECTED"),
    ])
    def test_client_errors(self, body, reason):
        got_reason, message, transient = classify_rejection(400, body)
        assert got_reason == reason
        assert transient is False
        assert message

    def test_rate_limit(self):
        assert classify_rejection(429, "slow down")[::2] == ("RATE_LIMITED", True)

    def test_server_error(self):
        assert classify_rejection(502, {})[::2] == ("RELAY_UNAVAILABLE", True)


class TestParseOrderState:
    """Tests for relay order records."""

    @pytest.mark.parametrize("raw,expected", [
        (1, OrderStatus.PENDING),
        (2, OrderStatus.CANCELLED),
        (3, OrderStatus.FILLED),
        ("3", OrderStatus.FILLED),
        ("filled", OrderStatus.FILLED),
        ("Canceled", OrderStatus.CANCELLED),
        ("expired", OrderStatus.EXPIRED),
        (-1, None),
        ("weird", None),
    ])
    def test_status(self, raw, expected):
        assert parse_order_state({"orderHash": "0x1", "orderStatus": raw}).status == expected

    def test_remaining_zero_means_filled(self):
        state = parse_order_state({"orderHash": "0x1", "orderStatus": 1, "remainingMakerAmount": "0"})
        assert state.status == OrderStatus.FILLED
        assert state.remaining_making_amount == 0

    def test_fill_tx_from_fills(self):
        state = parse_order_state({
            "orderHash": "0x1",
            "orderStatus": 3,
            "fills": [{"txHash": "0xa"}, {"txHash": "0xb"}],
        })
        assert state.fill_tx_hash == "0xb"

    def test_invalid_reason_list(self):
        state = parse_order_state({"orderHash": "0x1", "orderInvalidReason": ["allowance", "balance"]})
        assert state.invalid_reason == "allowance, balance"
        assert state.status is None


class TestSubmit:
    """Tests for order submission."""

    @pytest.mark.asyncio
    async def test_payload(self, client, make_order):
        order = make_order()
        with patch.object(client, "_request", AsyncMock(return_value=(201, {"success": True}))) as request:
            response = await client.submit_order(order, "0xsig")

        assert response == {"success": True}
        method, path = request.call_args[0]
        payload = request.call_args[1]["json"]
        assert (method, path) == ("POST", "/")
        assert payload["orderHash"] == order.hash
        assert payload["signature"] == "0xsig"
        assert payload["data"]["salt"] == str(order.salt)
        assert payload["data"]["makerTraits"] == str(order.traits)
        assert payload["data"]["extension"] == "0x" + order.extension.hex()
        assert payload["data"]["maker"] == MAKER.lower

    @pytest.mark.asyncio
    async def test_rejection_not_retried(self, client, make_order):
        response = (400, {"description": "Not enough allowance"})
        with patch.object(client, "_request", AsyncMock(return_value=response)) as request:
            with pytest.raises(SubmissionError) as exc_info:
                await client.submit_order(make_order(), "0xsig")

        assert exc_info.value.reason == "INSUFFICIENT_ALLOWANCE"
        assert exc_info.value.status == 400
        assert request.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_retried(self, client, make_order):
        responses = [(503, "unavailable"), (429, "slow"), (200, {"success": True})]
        with patch.object(client, "_request", AsyncMock(side_effect=responses)) as request:
            assert await client.submit_order(make_order(), "0xsig") == {"success": True}
        assert request.await_count == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, client, make_order):
        with patch.object(client, "_request", AsyncMock(return_value=(503, "down"))) as request:
            with pytest.raises(SubmissionError) as exc_info:
                await client.submit_order(make_order(), "0xsig")
        assert exc_info.value.transient is True
        assert request.await_count == 3

    @pytest.mark.asyncio
    async def test_timeouts_retried(self, client, make_order):
        side_effect = [RequestTimeout("timed out"), (200, {"success": True})]
        with patch.object(client, "_request", AsyncMock(side_effect=side_effect)):
            assert await client.submit_order(make_order(), "0xsig") == {"success": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, -1])
    async def test_non_positive_retries_still_send_once(self, make_order, max_retries):
        config = RelayConfig(base_url="https://relay.test", max_retries=max_retries, retry_base_delay_ms=0)
        client = RelayClient(8453, config, gate=RequestGate(max_per_second=0))

        with patch.object(client, "_request", AsyncMock(return_value=(503, "down"))) as request:
            with pytest.raises(SubmissionError):
                await client.submit_order(make_order(), "0xsig")
        assert request.await_count == 1


class TestQueries:
    """Tests for order lookups."""

    @pytest.mark.asyncio
    async def test_get_order(self, client):
        record = {"orderHash": "0xabc", "orderStatus": 3, "fills": [{"txHash": "0xf"}]}
        with patch.object(client, "_request", AsyncMock(return_value=(200, record))) as request:
            state = await client.get_order("0xabc")

        assert request.call_args[0] == ("GET", "/order/0xabc")
        assert state.status == OrderStatus.FILLED
        assert state.fill_tx_hash == "0xf"

    @pytest.mark.asyncio
    async def test_get_order_unknown(self, client):
        with patch.object(client, "_request", AsyncMock(return_value=(404, {"message": "not found"}))):
            assert await client.get_order("0xabc") is None

    @pytest.mark.asyncio
    async def test_get_order_missing_hash_filled_in(self, client):
        with patch.object(client, "_request", AsyncMock(return_value=(200, {"orderStatus": 1}))):
            state = await client.get_order("0xabc")
        assert state.order_hash == "0xabc"

    @pytest.mark.asyncio
    async def test_orders_by_maker(self, client):
        body = {"items": [{"orderHash": "0x1"}, {"orderHash": "0x2"}]}
        with patch.object(client, "_request", AsyncMock(return_value=(200, body))) as request:
            records = await client.get_orders_by_maker(MAKER, statuses=[1, 2])

        assert [r["orderHash"] for r in records] == ["0x1", "0x2"]
        assert request.call_args[0] == ("GET", f"/address/{MAKER.lower}")
        assert request.call_args[1]["params"]["statuses"] == "1,2"

    @pytest.mark.asyncio
    async def test_orders_by_maker_list_body(self, client):
        with patch.object(client, "_request", AsyncMock(return_value=(200, [{"orderHash": "0x1"}]))):
            assert len(await client.get_orders_by_maker(MAKER)) == 1

    @pytest.mark.asyncio
    async def test_transport_error(self, client):
        error = RelayError("connection reset", reason="RELAY_UNREACHABLE", transient=True)
        with patch.object(client, "_request", AsyncMock(side_effect=error)):
            with pytest.raises(RelayError):
                await client.get_order("0xabc")


class TestClientSettings:

    def test_base_url(self, client):
        assert client.base_url == "https://relay.test/orderbook/v4.0/8453"

    def test_retry_delay_capped(self):
        client = RelayClient(8453, RelayConfig(retry_base_delay_ms=250, retry_max_delay_ms=1000))
        assert client._calculate_retry_delay(0) == 0.25
        assert client._calculate_retry_delay(1) == 0.5
        assert client._calculate_retry_delay(5) == 1.0
