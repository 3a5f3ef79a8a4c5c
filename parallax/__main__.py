"""Parallax command-line entry point.

Usage::

    python -m parallax "Should I buy $AERO on Base?" [--tier premium | --premium]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from parallax.models import PipelineResult, QueryTier


def _print_result(result: PipelineResult, tier: QueryTier) -> None:
    print("\n" + "=" * 60)
    print(result.report)
    print("=" * 60)

    print(f"\n--- Cost Summary ({tier.value.upper()} tier) ---")
    for entry in result.cost_entries:
        print(f"  {entry.type:<4} | {entry.description}: ${entry.cost_usd:.4f}")
    pad = " " * 4
    print(f"  {pad}   Total: ${result.total_cost_usd:.4f}")
    print(f"  {pad}   x402:  ${result.x402_cost_usd:.4f}")
    print(f"  {pad}   LLM:   ${result.llm_cost_usd:.4f}")
    print(f"  {pad}   Time:  {result.total_latency_ms}ms")
    print(f"  {pad}   Calls: {result.endpoint_calls_succeeded}/{result.endpoint_calls} succeeded")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m parallax",
        description="Parallax — x402 intelligence orchestration agent",
    )
    parser.add_argument("query", nargs="?", help="The question to research")
    parser.add_argument(
        "--tier",
        choices=[t.value for t in QueryTier],
        default=QueryTier.STANDARD.value,
        help="standard: fast/cheap endpoints only; premium: everything",
    )
    parser.add_argument(
        "--premium",
        action="store_true",
        help="Shorthand for --tier premium",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Record the run in the local query history database",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(name)s] %(levelname)s: %(message)s",
    )
    logger = logging.getLogger("parallax")

    if not args.query:
        parser.print_help()
        return 0

    tier = QueryTier.PREMIUM if args.premium else QueryTier(args.tier)
    logger.info("Mock mode: %s", "ON" if os.environ.get("MOCK_MODE", "").lower() == "true" else "OFF")
    logger.info('Processing query: "%s"', args.query)

    from parallax.pipeline import run_pipeline

    memory = None
    if args.save:
        from parallax.db import get_db, init_db
        from parallax.memory import QueryMemory

        init_db()
        memory = QueryMemory(get_db())

    try:
        result = asyncio.run(run_pipeline(args.query, tier, memory=memory))
    except KeyboardInterrupt:
        print("\n\nCancelled.")
        return 1
    except Exception as exc:
        logger.error("Pipeline failed: %s", exc)
        return 1

    _print_result(result, tier)
    return 0


if __name__ == "__main__":
    sys.exit(main())
