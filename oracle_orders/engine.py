"""
Engine wiring.

Builds every component from an EngineConfig so the CLI, scripts and
integration tests share one construction path.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .chain.gate import RequestGate
from .chain.rpc import JsonRpcClient
from .config import EngineConfig
from .evaluator import ConditionEvaluator, FreshnessConfig
from .oracle.admin import OracleAdmin
from .oracle.feed import FeedSpec, ManagedFeed
from .oracle.source import IndexSource, InMemoryIndexSource, RpcIndexSource
from .orders.builder import OrderBuilder
from .orders.domain import ProtocolDomain
from .orders.predicate import PredicateCompiler
from .orders.signer import OrderSigner
from .persistence.order_cache import InMemoryOrderCache, OrderCacheRepository, SqliteOrderCache
from .relay.client import RelayClient
from .relay.manager import OrderLifecycleManager, StatusPoller


@dataclass
class Engine:
    """All engine components, wired together."""
    config: EngineConfig
    domain: ProtocolDomain
    source: IndexSource
    admin: OracleAdmin
    compiler: PredicateCompiler
    builder: OrderBuilder
    signer: OrderSigner
    relay: RelayClient
    cache: OrderCacheRepository
    manager: OrderLifecycleManager
    evaluator: ConditionEvaluator
    poller: StatusPoller
    rpc: Optional[JsonRpcClient] = None

    def managed_feed(self, feeds: List[FeedSpec], logger: Optional[logging.Logger] = None) -> ManagedFeed:
        """Feed that pushes into this engine's index source as the configured key."""
        return ManagedFeed(
            self.source,
            self.signer.address_for(),
            feeds,
            request_timeout=self.config.rpc.request_timeout,
            logger=logger,
        )

    async def close(self):
        await self.poller.stop()
        await self.relay.close()
        if self.rpc is not None:
            await self.rpc.close()
        self.cache.close()


def build_engine(
    config: EngineConfig,
    offline: bool = False,
    source: Optional[IndexSource] = None,
    cache: Optional[OrderCacheRepository] = None,
    relay: Optional[RelayClient] = None,
    logger: Optional[logging.Logger] = None,
) -> Engine:
    """Construct an Engine.

    Args:
        config: Engine configuration
        offline: Use the in-memory index source and cache instead of chain/SQLite
        source: Override the index source
        cache: Override the order cache
        relay: Override the relay client
        logger: Optional logger shared by all components
    """
    domain = ProtocolDomain.for_chain(config.chain_id, config.protocol_address)

    rpc = None
    if not offline:
        rpc = JsonRpcClient(
            config=config.rpc,
            chain_id=config.chain_id,
            gate=RequestGate(
                max_per_second=config.rpc.max_requests_per_second,
                timeout=config.rpc.request_timeout,
                logger=logger,
            ),
            logger=logger,
        )

    if source is None:
        if offline:
            source = InMemoryIndexSource(admins=config.oracle_admins, logger=logger)
        else:
            source = RpcIndexSource(
                rpc,
                config.oracle_address,
                private_key=config.private_key,
                managed_updater=config.managed_feed_updater,
                extra_admins=config.oracle_admins,
                logger=logger,
            )

    if cache is None:
        cache = InMemoryOrderCache() if offline else SqliteOrderCache(config.cache.db_path)

    compiler = PredicateCompiler(
        config.oracle_address,
        config.protocol_address,
        allow_and_combinator=config.allow_and_combinator,
        logger=logger,
    )
    builder = OrderBuilder(domain, compiler, logger=logger)
    signer = OrderSigner(domain, private_key=config.private_key, logger=logger)
    relay = relay or RelayClient(config.chain_id, config.relay, logger=logger)
    manager = OrderLifecycleManager(
        relay=relay,
        cache=cache,
        signer=signer,
        rpc=rpc,
        compiler=compiler,
        logger=logger,
    )

    return Engine(
        config=config,
        domain=domain,
        source=source,
        admin=OracleAdmin(source, logger=logger),
        compiler=compiler,
        builder=builder,
        signer=signer,
        relay=relay,
        cache=cache,
        manager=manager,
        evaluator=ConditionEvaluator(
            source,
            FreshnessConfig(max_age_seconds=config.oracle_max_age_seconds),
            logger=logger,
        ),
        poller=StatusPoller(manager, config.cache.poll_interval_seconds, logger=logger),
        rpc=rpc,
    )
