"""Command-line entry point: score one or more wallet addresses."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import json
import logging
import sys
from typing import Sequence

import httpx

from api_keys import get_masked_key, mask_secret
from monitoring import ApiHealthMonitor
from settings import ReputationSettings
from trustgate_models import ConfigurationError, InvalidInput
from trustgate_service import ReputationOptions, build_service

logger = logging.getLogger("trustgate")

EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trustgate",
        description="Compute on-chain reputation scores and verification modes for wallet addresses.",
    )
    parser.add_argument("addresses", nargs="+", help="wallet address(es) to score")
    parser.add_argument("--offline", action="store_true", help="skip the ledger API and use fallback scoring")
    parser.add_argument("--ttl", type=float, default=None, help="cache lifetime override in seconds")
    parser.add_argument("--api-key", default=None, help="Etherscan API key (defaults to ETHERSCAN_API_KEY)")
    parser.add_argument("--network", default=None, help="mainnet, sepolia, holesky or polygon")
    parser.add_argument("--verbose", "-v", action="store_true", help="enable debug logging")
    return parser


def load_settings(args: argparse.Namespace) -> ReputationSettings:
    base = ReputationSettings.from_env()
    ledger = base.ledger
    if args.api_key:
        ledger = replace(ledger, api_key=args.api_key)
    if args.network:
        ledger = replace(ledger, network=args.network.strip().lower())
    return ReputationSettings(
        ledger=ledger,
        reputation=base.reputation,
        cache=base.cache,
        analysis=base.analysis,
        batch_size=base.batch_size,
        live_data=base.live_data,
    )


async def run(args: argparse.Namespace, settings: ReputationSettings) -> dict[str, object]:
    options = ReputationOptions(
        force_live=False if args.offline else None,
        ttl_override=args.ttl,
    )
    monitor = ApiHealthMonitor()
    async with httpx.AsyncClient(timeout=httpx.Timeout(settings.ledger.timeout)) as session:
        service = build_service(settings, session=session, monitor=monitor)
        if len(args.addresses) == 1:
            address = args.addresses[0]
            results = {address: await service.get_reputation(address, options)}
        else:
            results = await service.batch_get_reputation(args.addresses, options)
    logger.debug("API status: %s", monitor.status_summary())
    return {address: result.to_dict() for address, result in results.items()}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = load_settings(args)
        key_display = mask_secret(args.api_key) if args.api_key else get_masked_key("etherscan")
        logger.debug("Using network %s with API key %s", settings.ledger.network, key_display)
        payload = asyncio.run(run(args, settings))
    except (ConfigurationError, InvalidInput) as exc:
        print(f"trustgate: {exc}", file=sys.stderr)
        return EXIT_USAGE
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
