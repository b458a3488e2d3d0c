"""
Submission & Lifecycle Manager.

Owns the order cache and drives each order through its lifecycle:

    SUBMITTED -> PENDING -> FILLED | CANCELLED | EXPIRED

- Orders are cached as soon as they are built, before any network call
- A rejected submission stays cached (status SUBMITTED, error recorded) so it
  can be resubmitted without rebuilding
- Status only moves forward; terminal states are never polled again
- Cancellation is an on-chain cancelOrder call signed by the maker
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional

from eth_account import Account

from ..chain import abi
from ..chain.rpc import JsonRpcClient
from ..errors import (
    CancellationError,
    IllegalTransition,
    KeyUnavailable,
    OrderNotFound,
    RelayError,
    SignerMismatch,
    ValidationError,
)
from ..orders.address import Address
from ..orders.predicate import PredicateCompiler
from ..orders.extension import Extension
from ..orders.signer import OrderSigner
from ..orders.types import (
    Order,
    OrderCacheEntry,
    OrderStatus,
    SubmissionResult,
    can_transition,
)
from ..persistence.order_cache import OrderCacheRepository
from .client import RelayClient, parse_order_state


class OrderLifecycleManager:
    """Submits orders to the relay and tracks them in the local cache."""

    def __init__(
        self,
        relay: RelayClient,
        cache: OrderCacheRepository,
        signer: OrderSigner,
        rpc: Optional[JsonRpcClient] = None,
        compiler: Optional[PredicateCompiler] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize manager.

        Args:
            relay: Orderbook client
            cache: Order cache repository
            signer: Signer for the protocol domain (used to verify signatures)
            rpc: Chain client for cancellations
            compiler: Used to recover conditions of relay-only orders
            clock: Source of the current unix time
            logger: Optional logger
        """
        self.relay = relay
        self.cache = cache
        self.signer = signer
        self.rpc = rpc
        self.compiler = compiler
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    @property
    def protocol_address(self) -> Address:
        return self.signer.domain.verifying_contract

    def get(self, order_hash: str) -> OrderCacheEntry:
        entry = self.cache.get(order_hash)
        if entry is None:
            raise OrderNotFound(f"Order {order_hash} is not in the local cache")
        return entry

    def record(
        self, order: Order, order_type: str = "limit", signature: Optional[str] = None
    ) -> OrderCacheEntry:
        """Cache a freshly built order, optionally with its signature.

        A signature is checked against the order before it is stored, so the
        entry can later be sent with resubmit(). Existing entries keep their
        state; a missing signature is filled in.
        """
        if signature is not None:
            self._validate(order, signature)
        existing = self.cache.get(order.hash)
        if existing is not None:
            if signature is not None and existing.signature is None:
                existing.signature = signature
                existing.updated_at = self._clock()
                self.cache.put(existing)
            return existing
        now = self._clock()
        entry = OrderCacheEntry(
            order=order,
            order_type=order_type,
            signature=signature,
            created_at=now,
            updated_at=now,
        )
        self.cache.put(entry)
        self._logger.info(f"Cached order {order.hash[:10]}... ({order.status.value})")
        return entry

    def _validate(self, order: Order, signature: str):
        order.assert_consistent()
        signer = self.signer.recover(order, signature)
        if signer != order.maker:
            raise SignerMismatch(f"signature recovers to {signer}, order maker is {order.maker}")

    async def submit(self, order: Order, signature: str) -> SubmissionResult:
        """Validate, cache and submit a signed order.

        Raises:
            SaltExtensionMismatch, DomainMismatch, SignerMismatch: order or
                signature inconsistent; nothing is sent
            IllegalTransition: the cached order already reached a terminal state

        Returns:
            SubmissionResult; relay rejections are reported, not raised
        """
        self._validate(order, signature)

        entry = self.record(order)
        if entry.status.is_terminal:
            raise IllegalTransition(f"Order {order.hash} is already {entry.status.value}")

        entry.signature = signature
        return await self._submit_entry(entry)

    async def resubmit(self, order_hash: str) -> SubmissionResult:
        """Retry submission of a cached order with its stored signature."""
        entry = self.get(order_hash)
        if entry.signature is None:
            raise ValidationError(f"Order {order_hash} was never signed", reason="MISSING_SIGNATURE")
        if entry.status.is_terminal:
            raise IllegalTransition(f"Order {order_hash} is already {entry.status.value}")
        self._validate(entry.order, entry.signature)
        return await self._submit_entry(entry)

    async def _submit_entry(self, entry: OrderCacheEntry) -> SubmissionResult:
        order = entry.order
        entry.submission_attempts += 1
        entry.updated_at = self._clock()
        self.cache.put(entry)

        try:
            response = await self.relay.submit_order(order, entry.signature)
        except RelayError as e:
            entry.relay_accepted = False
            entry.submission_error = f"{e.reason}: {e.message}"
            entry.updated_at = self._clock()
            self.cache.put(entry)
            self._logger.warning(
                f"Relay rejected order {order.hash[:10]}... "
                f"(attempt {entry.submission_attempts}): {entry.submission_error}"
            )
            return SubmissionResult(
                order_hash=order.hash,
                accepted=False,
                status=entry.status,
                error=e.message,
                error_reason=e.reason,
                transient=e.transient,
            )

        entry.relay_accepted = True
        entry.submission_error = None
        entry.advance(OrderStatus.PENDING, self._clock())
        self.cache.put(entry)
        self._logger.info(f"Order {order.hash[:10]}... accepted by relay")
        return SubmissionResult(
            order_hash=order.hash,
            accepted=True,
            status=entry.status,
            raw_response=response,
        )

    async def get_status(self, order_hash: str) -> OrderStatus:
        """Current status, polling the relay for non-terminal orders."""
        entry = self.cache.get(order_hash)
        if entry is None:
            state = await self.relay.get_order(order_hash)
            if state is None:
                raise OrderNotFound(f"Order {order_hash} is unknown to cache and relay")
            return state.status or OrderStatus.PENDING
        return (await self.refresh(entry)).status

    async def refresh(self, entry: OrderCacheEntry) -> OrderCacheEntry:
        """Poll the relay for ``entry`` and apply any forward transition."""
        if entry.status.is_terminal:
            return entry

        state = await self.relay.get_order(entry.order_hash)
        now = self._clock()
        target: Optional[OrderStatus] = None

        if state is not None:
            if not entry.relay_accepted and state.status is not None:
                entry.relay_accepted = True
                entry.submission_error = None
            target = state.status
            if target == OrderStatus.FILLED and state.fill_tx_hash:
                entry.fill_tx_hash = state.fill_tx_hash

        if target in (None, OrderStatus.PENDING) and entry.order.maker_traits.is_expired(now):
            target = OrderStatus.EXPIRED

        if target is not None and target != entry.status:
            if can_transition(entry.status, target):
                entry.advance(target, now)
                self._logger.info(f"Order {entry.order_hash[:10]}... -> {target.value}")
            else:
                self._logger.warning(
                    f"Ignoring relay status {target.value} for order {entry.order_hash[:10]}... "
                    f"in state {entry.status.value}"
                )

        entry.last_checked_at = now
        self.cache.put(entry)
        return entry

    async def cancel(self, order_hash: str, private_key: Optional[str]) -> str:
        """Cancel an order on-chain.

        Args:
            order_hash: Cached order to cancel
            private_key: Maker's key

        Returns:
            Cancellation transaction hash

        Raises:
            OrderNotFound: order is not cached
            KeyUnavailable: no usable key
            CancellationError: caller is not the maker, order is closed, or
                the transaction could not be sent
        """
        entry = self.get(order_hash)
        if not private_key:
            raise KeyUnavailable("Cancellation requires the maker's key")
        try:
            caller = Address(Account.from_key(private_key).address)
        except (ValueError, TypeError) as e:
            raise KeyUnavailable("Cancellation key is malformed") from e

        if caller != entry.order.maker:
            raise CancellationError(
                f"{caller} is not the maker ({entry.order.maker}) of {order_hash}",
                reason="NOT_MAKER",
            )
        if entry.status.is_terminal:
            raise CancellationError(f"Order {order_hash} is already {entry.status.value}", reason="ORDER_CLOSED")
        if self.rpc is None:
            raise CancellationError("No chain client configured", reason="NO_CHAIN_CLIENT")

        calldata = abi.CANCEL_ORDER.encode_call(
            entry.order.traits, bytes.fromhex(entry.order_hash[2:])
        )
        try:
            tx_hash = await self.rpc.send_transaction(private_key, self.protocol_address.value, calldata)
        except RelayError as e:
            raise CancellationError(
                f"cancelOrder failed: {e.message}", reason=e.reason, transient=e.transient
            ) from e

        entry.cancel_tx_hash = tx_hash
        entry.advance(OrderStatus.CANCELLED, self._clock())
        self.cache.put(entry)
        self._logger.info(f"Cancelled order {order_hash[:10]}... (tx {tx_hash})")
        return tx_hash

    async def list_for_maker(self, maker, include_relay: bool = False) -> List[Order]:
        """Orders of ``maker``. Read-only: never changes cached state."""
        maker = Address.of(maker)
        orders = [entry.order for entry in self.cache.list(maker=maker)]
        if not include_relay:
            return orders

        known = {o.hash.lower() for o in orders}
        for record in await self.relay.get_orders_by_maker(maker):
            order_hash = record.get("orderHash", "")
            if not order_hash or order_hash.lower() in known or "data" not in record:
                continue
            order = Order.from_relay_payload(
                record["data"],
                domain=self.signer.domain,
                order_hash=order_hash,
                condition=self._recover_condition(record["data"].get("extension")),
            )
            state = parse_order_state(record)
            if state.status is not None:
                order.status = state.status
            orders.append(order)
        return orders

    def _recover_condition(self, extension_hex: Optional[str]):
        if self.compiler is None or not extension_hex or extension_hex == "0x":
            return None
        try:
            predicate = Extension.decode(bytes.fromhex(extension_hex[2:])).predicate
            return self.compiler.decompile(predicate) if predicate else None
        except ValidationError:
            return None

    def delete(self, order_hash: str) -> bool:
        return self.cache.delete(order_hash)

    def clear(self) -> int:
        return self.cache.delete_all()

    def prune(self, retention_seconds: float) -> int:
        """Drop entries created more than ``retention_seconds`` ago."""
        removed = self.cache.prune(self._clock() - retention_seconds)
        if removed:
            self._logger.info(f"Pruned {removed} orders past retention")
        return removed


class StatusPoller:
    """Periodically refreshes every non-terminal cached order.

    ``stop()`` cancels the task and waits for it, so no relay request is left
    in flight.
    """

    def __init__(
        self,
        manager: OrderLifecycleManager,
        interval_seconds: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.manager = manager
        self.interval_seconds = interval_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> int:
        """Refresh all open orders; returns how many changed status."""
        changed = 0
        for entry in self.manager.cache.list_open():
            before = entry.status
            try:
                after = (await self.manager.refresh(entry)).status
            except RelayError as e:
                self._logger.warning(f"Status poll failed for {entry.order_hash[:10]}...: {e}")
                continue
            if after != before:
                changed += 1
        return changed

    async def _run(self):
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if not self.running:
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
