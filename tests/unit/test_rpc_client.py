"""
Unit tests for JsonRpcClient with the HTTP layer patched out.
"""

from unittest.mock import AsyncMock, patch

import pytest
from eth_account import Account

from oracle_orders.chain.gate import RequestGate
from oracle_orders.config import RpcConfig
from oracle_orders.errors import KeyUnavailable, RpcError
from oracle_orders.chain.rpc import JsonRpcClient

from tests.conftest import MAKER, MAKER_KEY, USDC


@pytest.fixture
def client():
    return JsonRpcClient(RpcConfig(url="http://rpc.test"), chain_id=8453, gate=RequestGate(max_per_second=0))


def respond(results):
    """Fake _post answering by JSON-RPC method."""
    calls = []

    async def post(payload):
        calls.append(payload)
        result = results[payload["method"]]
        if isinstance(result, dict) and "error" in result:
            return {"jsonrpc": "2.0", "id": payload["id"], **result}
        return {"jsonrpc": "2.0", "id": payload["id"], "result": result}

    return post, calls


class TestCall:

    @pytest.mark.asyncio
    async def test_eth_call(self, client):
        post, calls = respond({"eth_call": "0x" + "00" * 31 + "2a"})
        with patch.object(client, "_post", AsyncMock(side_effect=post)):
            data = await client.eth_call(USDC.value, b"\x12\x34")

        assert int.from_bytes(data, "big") == 42
        assert calls[0]["params"] == [{"to": USDC.value, "data": "0x1234"}, "latest"]

    @pytest.mark.asyncio
    async def test_revert_flagged(self, client):
        post, _ = respond({"eth_call": {"error": {"code": 3, "message": "execution reverted"}}})
        with patch.object(client, "_post", AsyncMock(side_effect=post)):
            with pytest.raises(RpcError) as exc_info:
                await client.eth_call(USDC.value, b"\x00")
        assert exc_info.value.reverted is True

    @pytest.mark.asyncio
    async def test_other_error_not_revert(self, client):
        post, _ = respond({"eth_chainId": {"error": {"code": -32601, "message": "method not found"}}})
        with patch.object(client, "_post", AsyncMock(side_effect=post)):
            with pytest.raises(RpcError) as exc_info:
                await client.get_chain_id()
        assert exc_info.value.reverted is False


class TestSendTransaction:

    @pytest.mark.asyncio
    async def test_signs_and_broadcasts(self, client):
        post, calls = respond({
            "eth_getTransactionCount": "0x5",
            "eth_gasPrice": "0x3b9aca00",
            "eth_estimateGas": "0x5208",
            "eth_sendRawTransaction": "0x" + "ee" * 32,
        })
        with patch.object(client, "_post", AsyncMock(side_effect=post)):
            tx_hash = await client.send_transaction(MAKER_KEY, USDC.value, b"\xab\xcd")

        assert tx_hash == "0x" + "ee" * 32
        raw = next(c for c in calls if c["method"] == "eth_sendRawTransaction")["params"][0]
        assert Account.recover_transaction(raw) == MAKER.value

    @pytest.mark.asyncio
    async def test_no_key(self, client):
        with pytest.raises(KeyUnavailable):
            await client.send_transaction(None, USDC.value, b"")
