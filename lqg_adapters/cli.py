# cli.py
"""
Command-line entry point for the LQG adapters.

    lqg-adapters positions --protocol lqg-aave-v2 --product optimizer-supply \
        --chain ethereum --user 0x...

Results are printed as JSON, or written as flat CSV rows with --csv PATH.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Union

import pandas as pd

from .adapters.registry import ADAPTER_REGISTRY, build_adapter
from .config.rpc_config import get_web3
from .config.settings import Settings
from .core.types import flatten_rows, to_jsonable

logger = logging.getLogger("lqg_adapters")

MOVEMENT_COMMANDS = {
    "deposits": "get_deposits",
    "withdrawals": "get_withdrawals",
    "borrows": "get_borrows",
    "repays": "get_repays",
}


def die(msg: str, code: int = 1):
    print(f"[ERROR] {msg}", file=sys.stderr)
    sys.exit(code)


def parse_block(value: str) -> Union[int, str]:
    """int, or the 'latest' tag."""
    if value == "latest":
        return value
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid block: {value}") from None


def build_parser() -> argparse.ArgumentParser:
    protocols = sorted({p.value for p, _ in ADAPTER_REGISTRY})
    products = sorted({product for _, product in ADAPTER_REGISTRY})

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--protocol", required=True, choices=protocols)
    common.add_argument("--product", required=True, choices=products)
    common.add_argument("--chain", default="ethereum", help="chain name or id (default: ethereum)")
    common.add_argument("--rpc", help="RPC URL (default: resolved from environment)")
    common.add_argument("--cache-dir", help="metadata cache dir (default: $LQG_METADATA_CACHE_DIR)")
    common.add_argument("--no-cache", action="store_true", help="do not read or write metadata files")
    common.add_argument("--log-level", help="logging level (default: $LQG_LOG_LEVEL or WARNING)")
    common.add_argument("--csv", metavar="PATH", help="write flat rows to a CSV file instead of printing JSON")

    ap = argparse.ArgumentParser(prog="lqg-adapters", description="LQG DeFi position adapters")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("metadata", parents=[common], help="protocol details and protocol tokens")

    p = sub.add_parser("positions", parents=[common], help="open positions of a user")
    p.add_argument("--user", required=True)
    p.add_argument("--block", type=int)
    p.add_argument("--protocol-token", action="append", dest="protocol_tokens",
                   help="restrict to this protocol token (repeatable)")

    for name in MOVEMENT_COMMANDS:
        p = sub.add_parser(name, parents=[common], help=f"{name} of a user in one market")
        p.add_argument("--user", required=True)
        p.add_argument("--protocol-token", required=True)
        p.add_argument("--from-block", type=parse_block, required=True)
        p.add_argument("--to-block", type=parse_block, default="latest")

    p = sub.add_parser("tvl", parents=[common], help="total value locked per protocol token")
    p.add_argument("--block", type=int)
    p.add_argument("--protocol-token", action="append", dest="protocol_tokens",
                   help="restrict to this protocol token (repeatable)")

    p = sub.add_parser("unwrap", parents=[common], help="underlying exchange rate of a protocol token")
    p.add_argument("--protocol-token", required=True)
    p.add_argument("--block", type=int)

    return ap


async def run(args: argparse.Namespace, adapter) -> Any:
    if args.command == "metadata":
        return {
            "details": adapter.get_protocol_details(),
            "settings": adapter.adapter_settings,
            "protocol_tokens": await adapter.get_protocol_tokens(),
        }
    if args.command == "positions":
        return await adapter.get_positions(
            args.user,
            block_number=args.block,
            protocol_token_addresses=args.protocol_tokens,
        )
    if args.command in MOVEMENT_COMMANDS:
        method = getattr(adapter, MOVEMENT_COMMANDS[args.command])
        return await method(args.user, args.protocol_token, args.from_block, args.to_block)
    if args.command == "tvl":
        return await adapter.get_total_value_locked(
            block_number=args.block,
            protocol_token_addresses=args.protocol_tokens,
        )
    if args.command == "unwrap":
        return await adapter.unwrap(args.protocol_token, block_number=args.block)
    raise ValueError(f"Unknown command: {args.command}")


def write_output(result: Any, csv_path: Optional[str]) -> None:
    if csv_path is None:
        print(json.dumps(to_jsonable(result), indent=2))
        return

    if isinstance(result, dict):
        rows: List[Any] = result.get("protocol_tokens", [])
    elif isinstance(result, list):
        rows = result
    else:
        rows = [result]

    path = Path(csv_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # raw amounts overflow int64, keep them as exact strings
    df = pd.DataFrame(flatten_rows(rows)).astype(str)
    df.to_csv(path, index=False)
    print(f"[ok] rows → {path} (rows={len(df)})")


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.no_cache:
        cache_dir = None
    elif args.cache_dir:
        cache_dir = Path(args.cache_dir)
    else:
        cache_dir = settings.cache_dir

    try:
        web3 = get_web3(args.chain, args.rpc)
        adapter = build_adapter(args.protocol, args.product, args.chain, web3, cache_dir=cache_dir)
    except ValueError as e:
        die(str(e))

    logger.info(f"{args.command}: {args.protocol}/{args.product} on {adapter.chain_id.slug}")

    try:
        result = asyncio.run(run(args, adapter))
    except NotImplementedError as e:
        die(str(e))
    except LookupError as e:
        die(f"{e}: {getattr(e, 'protocol_token_address', '')}")

    write_output(result, args.csv)


if __name__ == "__main__":
    main()
