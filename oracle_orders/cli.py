"""
Command-line interface.

    python -m oracle_orders indices
    python -m oracle_orders check VIX gt 2000
    python -m oracle_orders create --sell USDC --buy WETH --making 100 --taking 0.03 \\
        --index VIX --op gt --threshold 2000 --submit
    python -m oracle_orders status 0xORDER_HASH
    python -m oracle_orders cancel 0xORDER_HASH
    python -m oracle_orders list --relay
    python -m oracle_orders feed AAPL=AAPL TSLA=TSLA --interval 300

Configuration comes from the environment / .env (see config.py).
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import load_config
from .engine import Engine, build_engine
from .errors import OrderEngineError, ValidationError
from .evaluator import ConditionWatcher, Evaluation
from .oracle.feed import FeedSpec
from .oracle.types import INDEX_IDS, OracleBackend
from .orders.address import Address
from .orders.tokens import parse_units, resolve_token
from .orders.types import Condition, Operator


def _index_id(value: str) -> int:
    if value.upper() in INDEX_IDS:
        return INDEX_IDS[value.upper()]
    return int(value)


def _caller(engine: Engine) -> Address:
    return engine.signer.address_for()


async def cmd_indices(engine: Engine, args) -> int:
    for index in await engine.admin.list_indices():
        state = "active" if index.active else "inactive"
        print(
            f"{index.id:>3}  {index.name:<12} {index.value:>14}  {state:<8} "
            f"{index.backend}  creator={index.creator}"
        )
    return 0


async def cmd_set_value(engine: Engine, args) -> int:
    index = await engine.admin.push_value(_caller(engine), _index_id(args.index), args.value)
    print(f"Index {index.id} ({index.name}) value={index.value}")
    return 0


async def cmd_set_active(engine: Engine, args) -> int:
    index = await engine.admin.set_active(_caller(engine), _index_id(args.index), args.state == "on")
    print(f"Index {index.id} ({index.name}) active={index.active}")
    return 0


async def cmd_set_backend(engine: Engine, args) -> int:
    if args.backend == "managed":
        updater = args.updater or engine.config.managed_feed_updater
        if not updater:
            print("--updater or MANAGED_FEED_UPDATER is required for a managed backend")
            return 2
        backend = OracleBackend.managed(updater)
    else:
        backend = OracleBackend.mock()
    index = await engine.admin.set_backend(_caller(engine), _index_id(args.index), backend)
    print(f"Index {index.id} ({index.name}) backend={index.backend}")
    return 0


def _print_evaluation(evaluation: Evaluation):
    verdict = "SATISFIED" if evaluation.satisfied else "not satisfied"
    line = (
        f"{evaluation.condition.describe()}: {verdict} "
        f"(value={evaluation.reading.value}, age={evaluation.age_seconds:.0f}s)"
    )
    if not evaluation.reliable:
        line += f" [UNRELIABLE: {evaluation.reason}]"
    print(line)


async def cmd_check(engine: Engine, args) -> int:
    condition = Condition(_index_id(args.index), Operator.parse(args.op), args.threshold)
    evaluation = await engine.evaluator.check(condition)
    _print_evaluation(evaluation)
    return 0 if evaluation.satisfied else 1


async def cmd_create(engine: Engine, args) -> int:
    sell = resolve_token(args.sell)
    buy = resolve_token(args.buy)
    condition = Condition(_index_id(args.index), Operator.parse(args.op), args.threshold)

    maker = _caller(engine)
    order = engine.builder.build(
        maker=maker,
        maker_asset=sell.address,
        taker_asset=buy.address,
        making_amount=parse_units(args.making, sell.decimals),
        taking_amount=parse_units(args.taking, buy.decimals),
        condition=condition,
        expiration_seconds=args.expiration or engine.config.default_expiration_seconds,
        allow_partial_fill=not args.no_partial,
        allow_multiple_fills=not args.single_fill,
    )
    signature = engine.signer.sign(order)
    engine.manager.record(order, signature=signature.signature)
    print(f"Order {order.hash}")
    print(f"  {args.making} {sell.symbol} -> {args.taking} {buy.symbol} when {condition.describe()}")

    if not args.submit:
        print("  cached locally, not submitted (use --submit)")
        return 0

    result = await engine.manager.submit(order, signature.signature)
    if result.accepted:
        print(f"  accepted by relay, status={result.status.value}")
        return 0
    print(f"  REJECTED ({result.error_reason}): {result.error}")
    return 1


async def cmd_resubmit(engine: Engine, args) -> int:
    result = await engine.manager.resubmit(args.order_hash)
    if result.accepted:
        print(f"Order {args.order_hash} accepted, status={result.status.value}")
        return 0
    print(f"Order {args.order_hash} REJECTED ({result.error_reason}): {result.error}")
    return 1


async def cmd_status(engine: Engine, args) -> int:
    status = await engine.manager.get_status(args.order_hash)
    entry = engine.cache.get(args.order_hash)
    print(f"Order {args.order_hash}: {status.value}")
    if entry is not None:
        if entry.submission_error:
            print(f"  last submission error: {entry.submission_error}")
        if entry.fill_tx_hash:
            print(f"  fill tx: {entry.fill_tx_hash}")
        if entry.cancel_tx_hash:
            print(f"  cancel tx: {entry.cancel_tx_hash}")
    return 0


async def cmd_cancel(engine: Engine, args) -> int:
    tx_hash = await engine.manager.cancel(args.order_hash, engine.config.private_key)
    print(f"Cancel transaction sent: {tx_hash}")
    return 0


async def cmd_list(engine: Engine, args) -> int:
    maker = Address(args.maker) if args.maker else _caller(engine)
    orders = await engine.manager.list_for_maker(maker, include_relay=args.relay)
    for order in orders:
        condition = order.condition.describe() if order.condition else "-"
        print(
            f"{order.hash}  {order.status.value:<9} "
            f"{order.making_amount} {order.maker_asset} -> {order.taking_amount} {order.taker_asset}  "
            f"[{condition}]"
        )
    stats = engine.cache.stats()
    print(f"{len(orders)} orders; cache: " + ", ".join(f"{k}={v}" for k, v in stats.items()))
    return 0


async def cmd_prune(engine: Engine, args) -> int:
    days = args.days if args.days is not None else engine.config.cache.retention_days
    removed = engine.manager.prune(days * 86400)
    print(f"Removed {removed} orders older than {days} days")
    return 0


async def cmd_watch(engine: Engine, args) -> int:
    async def on_satisfied(evaluation: Evaluation):
        _print_evaluation(evaluation)

    watcher = ConditionWatcher(engine.evaluator, on_satisfied, interval_seconds=args.interval)
    for entry in engine.cache.list_open():
        if entry.order.condition is not None:
            watcher.watch(entry.order.condition)

    engine.poller.interval_seconds = args.interval
    engine.poller.start()
    watcher.start()
    try:
        if args.duration:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    finally:
        await watcher.stop()
        await engine.poller.stop()
    return 0


def _feed_specs(pairs: List[str], api_key: Optional[str], scale: int) -> List[FeedSpec]:
    if not api_key:
        raise ValidationError("Managed feed needs ALPHA_VANTAGE_API_KEY or --api-key", reason="MISSING_API_KEY")
    specs = []
    for pair in pairs:
        index, sep, symbol = pair.partition("=")
        if not sep or not index or not symbol:
            raise ValidationError(f"Expected INDEX=SYMBOL, got {pair!r}", reason="INVALID_FEED")
        specs.append(FeedSpec.alpha_vantage(_index_id(index), symbol, api_key, scale))
    return specs


async def cmd_feed(engine: Engine, args) -> int:
    api_key = args.api_key or engine.config.alpha_vantage_api_key
    feed = engine.managed_feed(_feed_specs(args.pairs, api_key, args.scale))

    if args.once:
        try:
            results = await feed.update_all()
        finally:
            await feed.stop()
        for index_id, value in sorted(results.items()):
            print(f"index {index_id} = {value}")
        return 0 if len(results) == len(feed.feeds) else 1

    feed.start(args.interval or engine.config.feed_interval_seconds)
    try:
        if args.duration:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    finally:
        await feed.stop()
    return 0


COMMANDS = {
    "indices": cmd_indices,
    "set-value": cmd_set_value,
    "set-active": cmd_set_active,
    "set-backend": cmd_set_backend,
    "check": cmd_check,
    "create": cmd_create,
    "resubmit": cmd_resubmit,
    "status": cmd_status,
    "cancel": cmd_cancel,
    "list": cmd_list,
    "prune": cmd_prune,
    "watch": cmd_watch,
    "feed": cmd_feed,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oracle_orders",
        description="Oracle-conditioned limit orders for the 1inch Limit Order Protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--env-file", help="dotenv file to load")
    parser.add_argument("--offline", action="store_true", help="In-memory oracle and cache")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="cmd", help="Command")

    subparsers.add_parser("indices", help="List indices")

    p = subparsers.add_parser("set-value", help="Push an index value")
    p.add_argument("index")
    p.add_argument("value", type=int)

    p = subparsers.add_parser("set-active", help="Activate or deactivate an index")
    p.add_argument("index")
    p.add_argument("state", choices=["on", "off"])

    p = subparsers.add_parser("set-backend", help="Bind an index to a backend")
    p.add_argument("index")
    p.add_argument("backend", choices=["mock", "managed"])
    p.add_argument("--updater", help="Updater address for a managed backend")

    p = subparsers.add_parser("check", help="Evaluate a condition now")
    p.add_argument("index")
    p.add_argument("op")
    p.add_argument("threshold", type=int)

    p = subparsers.add_parser("create", help="Build and sign a conditional order")
    p.add_argument("--sell", required=True, help="Maker asset symbol or address")
    p.add_argument("--buy", required=True, help="Taker asset symbol or address")
    p.add_argument("--making", required=True, help="Amount to sell (human units)")
    p.add_argument("--taking", required=True, help="Amount to receive (human units)")
    p.add_argument("--index", required=True)
    p.add_argument("--op", required=True)
    p.add_argument("--threshold", required=True, type=int)
    p.add_argument("--expiration", type=int, help="Lifetime in seconds")
    p.add_argument("--no-partial", action="store_true", help="Disallow partial fills")
    p.add_argument("--single-fill", action="store_true", help="Disallow multiple fills")
    p.add_argument("--submit", action="store_true", help="Submit to the relay")

    p = subparsers.add_parser("resubmit", help="Retry a cached submission")
    p.add_argument("order_hash")

    p = subparsers.add_parser("status", help="Order status")
    p.add_argument("order_hash")

    p = subparsers.add_parser("cancel", help="Cancel an order on-chain")
    p.add_argument("order_hash")

    p = subparsers.add_parser("list", help="List orders of a maker")
    p.add_argument("--maker")
    p.add_argument("--relay", action="store_true", help="Include relay-only orders")

    p = subparsers.add_parser("prune", help="Drop cached orders past retention")
    p.add_argument("--days", type=float)

    p = subparsers.add_parser("watch", help="Poll order status and cached conditions")
    p.add_argument("--interval", type=float, default=30.0)
    p.add_argument("--duration", type=float, help="Stop after N seconds")

    p = subparsers.add_parser("feed", help="Push Alpha Vantage quotes into MANAGED indices")
    p.add_argument("pairs", nargs="+", metavar="INDEX=SYMBOL", help="e.g. AAPL=AAPL 6=MSFT")
    p.add_argument("--api-key", help="Alpha Vantage key (default ALPHA_VANTAGE_API_KEY)")
    p.add_argument("--scale", type=int, default=100, help="Multiplier applied to quotes")
    p.add_argument("--interval", type=float, help="Seconds between pushes")
    p.add_argument("--duration", type=float, help="Stop after N seconds")
    p.add_argument("--once", action="store_true", help="Push once and exit")

    return parser


async def run(args) -> int:
    config = load_config(args.env_file)
    engine = build_engine(config, offline=args.offline)
    try:
        return await COMMANDS[args.cmd](engine, args)
    except OrderEngineError as e:
        logging.getLogger(__name__).error(f"{args.cmd} failed: {e}")
        return 1
    finally:
        await engine.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.cmd not in COMMANDS:
        parser.print_help()
        return 1
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
