"""
Minimal async JSON-RPC client.

Covers what the engine needs from the chain: ``eth_call`` for oracle reads
and signed legacy transactions for oracle writes and order cancellation.
Transactions are broadcast and their hash returned; receipts are not awaited.
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from eth_account import Account

from ..config import RpcConfig
from ..errors import KeyUnavailable, RequestTimeout, RpcError
from .gate import RequestGate

# JSON-RPC error codes that mean "the call reverted"
REVERT_ERROR_CODES = (3, -32015)


class JsonRpcClient:
    """aiohttp JSON-RPC client with rate limiting and request dedup."""

    def __init__(
        self,
        config: Optional[RpcConfig] = None,
        chain_id: Optional[int] = None,
        gate: Optional[RequestGate] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize client.

        Args:
            config: RPC settings
            chain_id: Chain id used when signing transactions
            gate: Request gate (one is created from config when omitted)
            logger: Optional logger
        """
        self.config = config or RpcConfig()
        self.chain_id = chain_id
        self._gate = gate or RequestGate(
            max_per_second=self.config.max_requests_per_second,
            logger=logger,
        )
        self._logger = logger or logging.getLogger(__name__)
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout)
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        session = await self._get_session()
        try:
            async with session.post(self.config.url, json=payload) as response:
                if response.status == 429 or response.status >= 500:
                    raise RpcError(
                        f"RPC HTTP {response.status}", transient=True
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise RequestTimeout(f"RPC {payload['method']} timed out") from e
        except aiohttp.ClientError as e:
            raise RpcError(f"RPC transport error: {e}", transient=True) from e

    async def call(self, method: str, params: List[Any]) -> Any:
        """Perform a JSON-RPC call.

        Identical concurrent calls are deduplicated by the gate. Writes
        (eth_sendRawTransaction) are unique by payload anyway.
        """
        key = f"{method}:{json.dumps(params, sort_keys=True)}"

        async def request():
            payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
            return await self._post(payload)

        data = await self._gate.run(key, request)
        error = data.get("error")
        if error:
            message = error.get("message", str(error))
            reverted = error.get("code") in REVERT_ERROR_CODES or "revert" in message.lower()
            raise RpcError(f"{method}: {message}", reverted=reverted)
        return data.get("result")

    async def eth_call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        result = await self.call("eth_call", [{"to": to, "data": "0x" + data.hex()}, block])
        return bytes.fromhex((result or "0x")[2:])

    async def get_chain_id(self) -> int:
        return int(await self.call("eth_chainId", []), 16)

    async def get_transaction_count(self, address: str) -> int:
        return int(await self.call("eth_getTransactionCount", [address, "pending"]), 16)

    async def gas_price(self) -> int:
        return int(await self.call("eth_gasPrice", []), 16)

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return int(await self.call("eth_estimateGas", [tx]), 16)

    async def send_transaction(self, private_key: Optional[str], to: str, data: bytes) -> str:
        """Sign and broadcast a contract call.

        Args:
            private_key: Sender key
            to: Contract address
            data: Calldata

        Returns:
            0x-prefixed transaction hash
        """
        if not private_key:
            raise KeyUnavailable("No key to sign transaction")
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise KeyUnavailable("Transaction key is malformed") from e

        chain_id = self.chain_id if self.chain_id is not None else await self.get_chain_id()
        call = {"from": account.address, "to": to, "data": "0x" + data.hex()}

        nonce, gas_price, gas = await asyncio.gather(
            self.get_transaction_count(account.address),
            self.gas_price(),
            self.estimate_gas(call),
        )

        tx = {
            "to": to,
            "data": call["data"],
            "value": 0,
            "nonce": nonce,
            "gas": int(gas * self.config.gas_multiplier),
            "gasPrice": gas_price,
            "chainId": chain_id,
        }
        signed = account.sign_transaction(tx)
        raw = "0x" + bytes(signed.raw_transaction).hex()
        tx_hash = await self.call("eth_sendRawTransaction", [raw])
        self._logger.info(f"Sent tx {tx_hash} from {account.address} to {to}")
        return tx_hash
