# src/main.py
"""CLI entry point: operator commands over the shared store.

Usage:
    sitelift limits
    sitelift check <endpoint> <identity>
    sitelift facts <file> --url URL [--source ROLE]
    sitelift accent <hex> [<hex> ...]
    sitelift cache-purge <namespace>
    sitelift stats [endpoint ...]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import get_args

from sitelift.version import __version__
from sitelift.vision.models import ImageRole

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitelift",
        description=f"sitelift v{__version__}: rate limits, result cache and vision helpers",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    p_limits = subparsers.add_parser("limits", help="Show effective rate-limit policies")
    p_limits.set_defaults(func=_cmd_limits)

    p_check = subparsers.add_parser("check", help="Count one request against a limit")
    p_check.add_argument("endpoint", help="Endpoint name, e.g. scrapeWebsite")
    p_check.add_argument("identity", help="Caller identity, e.g. an IP address")
    p_check.set_defaults(func=_cmd_check)

    p_facts = subparsers.add_parser("facts", help="Extract facts from OCR text")
    p_facts.add_argument("file", help="Text file to read ('-' for stdin)")
    p_facts.add_argument("--url", default="", help="Image URL to attribute facts to")
    p_facts.add_argument(
        "--source", default="flyer", choices=get_args(ImageRole),
        help="Image role (default: flyer)",
    )
    p_facts.set_defaults(func=_cmd_facts)

    p_accent = subparsers.add_parser("accent", help="Pick the accent color from hex colors")
    p_accent.add_argument("colors", nargs="+", help="Hex colors, e.g. #FF5733")
    p_accent.set_defaults(func=_cmd_accent)

    p_purge = subparsers.add_parser("cache-purge", help="Delete all entries of a cache namespace")
    p_purge.add_argument("namespace", help="Cache namespace, e.g. scrape-result")
    p_purge.set_defaults(func=_cmd_cache_purge)

    p_stats = subparsers.add_parser("stats", help="Rate-limit activity over the last hour")
    p_stats.add_argument("endpoints", nargs="*", help="Endpoints (default: all configured)")
    p_stats.set_defaults(func=_cmd_stats)

    return parser


async def _cmd_limits(args: argparse.Namespace) -> int:
    facade = _open_facade()
    try:
        config = await facade.config.get()
    finally:
        await facade.close()

    print(f"Cache enabled: {config.cache_enabled} (TTL {config.cache_ttl_days} days)")
    for endpoint, policy in sorted(config.rate_limits.items()):
        state = "" if policy.enabled else " (disabled)"
        print(f"  {endpoint:24s} {policy.max_requests:>6d} / {policy.window_ms // 1000}s{state}")
    return 0


async def _cmd_check(args: argparse.Namespace) -> int:
    from sitelift.ratelimit.limiter import rate_limit_response

    facade = _open_facade()
    try:
        result = await facade.admit(args.identity, args.endpoint)
    finally:
        await facade.close()

    if result.allowed:
        print(json.dumps({"allowed": True, "remaining": result.remaining, "limit": result.limit}))
        return 0
    print(json.dumps(rate_limit_response(result)))
    return 2


async def _cmd_facts(args: argparse.Namespace) -> int:
    from sitelift.vision.ocr_facts import extract_facts

    if args.file == "-":
        text = sys.stdin.read()
    else:
        path = Path(args.file)
        if not path.is_file():
            logger.error("File not found: %s", path)
            return 1
        text = path.read_text(encoding="utf-8")

    facts = extract_facts(text, args.url, args.source)
    print(json.dumps([f.model_dump() for f in facts], indent=2))
    return 0


async def _cmd_accent(args: argparse.Namespace) -> int:
    from sitelift.vision.colors import find_accent_color
    from sitelift.vision.models import ColorSample

    accent = find_accent_color([ColorSample(hex=c) for c in args.colors])
    if accent is None:
        print("No accent color (all colors are grayscale)")
        return 1
    print(accent)
    return 0


async def _cmd_cache_purge(args: argparse.Namespace) -> int:
    facade = _open_facade()
    try:
        removed = await facade.cache.purge(args.namespace)
    finally:
        await facade.close()
    print(f"Removed {removed} entries from {args.namespace}")
    return 0


async def _cmd_stats(args: argparse.Namespace) -> int:
    facade = _open_facade()
    try:
        endpoints = args.endpoints or sorted((await facade.config.get()).rate_limits)
        stats = await facade.limiter.usage_stats(endpoints)
    finally:
        await facade.close()

    print("\nRate-limit activity (last hour):")
    for endpoint, usage in stats.items():
        print(
            f"  {endpoint:24s} identities: {usage.active_identities:>5d}"
            f"  requests: {usage.total_requests:>6d}"
        )
    return 0


def _open_facade():
    from sitelift.api.facade import SiteLiftFacade
    from sitelift.config.settings import Settings

    return SiteLiftFacade.from_settings(Settings())


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from sitelift.logging.logger import setup_logging

    setup_logging(level="DEBUG" if verbose else "WARNING", log_format="text")


if __name__ == "__main__":
    sys.exit(main())
