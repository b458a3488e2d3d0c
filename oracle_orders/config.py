"""
Configuration for the oracle-conditioned order engine.

Defaults target Base mainnet and the deployed index oracle. Every value can be
overridden from the environment (a ``.env`` file is honoured via python-dotenv).
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Base mainnet
BASE_CHAIN_ID = 8453
LIMIT_ORDER_PROTOCOL_ADDRESS = "0x111111125421ca6dc452d289314280a0f8842a65"
INDEX_ORACLE_ADDRESS = "0x55aafa1d3de3d05536c96ee9f1b965d6ce04a4c1"
DEFAULT_RPC_URL = "https://base.llamarpc.com"
DEFAULT_RELAY_URL = "https://api.1inch.dev/orderbook/v4.0"

# EIP-712 domain of the 1inch Aggregation Router v6 (hosts LOP v4)
PROTOCOL_DOMAIN_NAME = "1inch Aggregation Router"
PROTOCOL_DOMAIN_VERSION = "6"


@dataclass
class RelayConfig:
    """Relay (1inch orderbook) client settings."""
    base_url: str = DEFAULT_RELAY_URL
    api_key: Optional[str] = None
    request_timeout: float = 10.0
    max_requests_per_second: float = 1.0

    # Retry settings with exponential backoff
    max_retries: int = 3
    retry_base_delay_ms: int = 250
    retry_max_delay_ms: int = 4000
    retry_backoff_factor: float = 2.0


@dataclass
class RpcConfig:
    """JSON-RPC settings for oracle reads and on-chain writes."""
    url: str = DEFAULT_RPC_URL
    request_timeout: float = 10.0
    max_requests_per_second: float = 5.0
    gas_multiplier: float = 1.2


@dataclass
class CacheConfig:
    """Local order cache settings."""
    db_path: str = "logs/order_cache.db"
    retention_days: float = 30.0
    poll_interval_seconds: float = 30.0


@dataclass
class EngineConfig:
    """Top-level engine configuration."""
    chain_id: int = BASE_CHAIN_ID
    protocol_address: str = LIMIT_ORDER_PROTOCOL_ADDRESS
    oracle_address: str = INDEX_ORACLE_ADDRESS
    private_key: Optional[str] = None

    # Global oracle admins (may push values and toggle any index)
    oracle_admins: List[str] = field(default_factory=list)
    managed_feed_updater: Optional[str] = None

    # Managed feed quote API (Alpha Vantage GLOBAL_QUOTE) and push interval
    alpha_vantage_api_key: Optional[str] = None
    feed_interval_seconds: float = 300.0

    # Readings older than this are flagged stale by the evaluator
    oracle_max_age_seconds: float = 3600.0

    # Encode EQ as and(gt, lt) instead of rejecting it
    allow_and_combinator: bool = False

    default_expiration_seconds: int = 86400

    relay: RelayConfig = field(default_factory=RelayConfig)
    rpc: RpcConfig = field(default_factory=RpcConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    value = os.getenv(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config(env_file: Optional[str] = None) -> EngineConfig:
    """Build an EngineConfig from the environment.

    Args:
        env_file: Optional path to a dotenv file. Defaults to ``.env`` lookup.

    Returns:
        Populated EngineConfig
    """
    load_dotenv(env_file)

    relay = RelayConfig(
        base_url=os.getenv("RELAY_URL", DEFAULT_RELAY_URL),
        api_key=os.getenv("ONEINCH_API_KEY") or None,
        request_timeout=float(os.getenv("RELAY_TIMEOUT", "10")),
        max_requests_per_second=float(os.getenv("RELAY_MAX_RPS", "1")),
    )
    rpc = RpcConfig(
        url=os.getenv("RPC_URL", DEFAULT_RPC_URL),
        request_timeout=float(os.getenv("RPC_TIMEOUT", "10")),
    )
    cache = CacheConfig(
        db_path=os.getenv("ORDER_CACHE_PATH", "logs/order_cache.db"),
        retention_days=float(os.getenv("ORDER_RETENTION_DAYS", "30")),
        poll_interval_seconds=float(os.getenv("ORDER_POLL_INTERVAL", "30")),
    )

    return EngineConfig(
        chain_id=int(os.getenv("CHAIN_ID", str(BASE_CHAIN_ID))),
        protocol_address=os.getenv("LIMIT_ORDER_PROTOCOL", LIMIT_ORDER_PROTOCOL_ADDRESS),
        oracle_address=os.getenv("INDEX_ORACLE_ADDRESS", INDEX_ORACLE_ADDRESS),
        private_key=os.getenv("PRIVATE_KEY") or None,
        oracle_admins=_env_list("ORACLE_ADMINS"),
        managed_feed_updater=os.getenv("MANAGED_FEED_UPDATER") or None,
        alpha_vantage_api_key=os.getenv("ALPHA_VANTAGE_API_KEY") or None,
        feed_interval_seconds=float(os.getenv("FEED_INTERVAL_SECONDS", "300")),
        oracle_max_age_seconds=float(os.getenv("ORACLE_MAX_AGE_SECONDS", "3600")),
        allow_and_combinator=_env_bool("ALLOW_AND_COMBINATOR", False),
        default_expiration_seconds=int(os.getenv("ORDER_EXPIRATION_SECONDS", "86400")),
        relay=relay,
        rpc=rpc,
        cache=cache,
    )
