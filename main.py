#!/usr/bin/env python3
"""
WazirX client - command line entry point.

Loads config (YAML + .env + environment), configures logging, runs one
endpoint call and prints the JSON result. Typed exchange errors exit with
status 1 and print their serialized form plus the wait hint.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from wazirx.core.config import DEFAULT_CONFIG_PATH, load_config_with_overrides
from wazirx.core.logger import get_logger, setup_logging
from wazirx.exchange.client import WazirXClient
from wazirx.exchange.exceptions import ExchangeError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="WazirX REST client")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config YAML")
    parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Retry budget for this call (defaults to exchange.retry_count)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    ticker = sub.add_parser("ticker", help="24h ticker for one market")
    ticker.add_argument("symbol")

    sub.add_parser("tickers", help="24h tickers for all markets")
    sub.add_parser("funds", help="Account balances")

    status = sub.add_parser("order-status", help="Look up an order by client order id")
    status.add_argument("client_order_id")
    return parser


async def _run(args: argparse.Namespace) -> Any:
    config = load_config_with_overrides(args.config)
    setup_logging(
        log_level=config.app.log_level,
        log_dir=config.app.log_dir,
        json_output=config.app.json_logs,
    )
    async with WazirXClient.from_config(config) as client:
        if args.command == "ticker":
            return await client.get_ticker(args.symbol, retry_count=args.retries)
        if args.command == "tickers":
            return await client.get_tickers(retry_count=args.retries)
        if args.command == "funds":
            return await client.get_funds(retry_count=args.retries)
        return await client.get_order_status(args.client_order_id, retry_count=args.retries)


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logger = get_logger("main")
    try:
        result = asyncio.run(_run(args))
    except ExchangeError as e:
        logger.error("Request failed", error_type=type(e).__name__, error=e.message)
        print(json.dumps({"errors": e.serialize(), "retry_after": e.retry_after}), file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
