#!/usr/bin/env python3
"""Reflection search CLI - run a reflect_on_past search from the shell.

Usage:
  search_cli.py <query> [options]

Example:
  search_cli.py "database indexing"
  search_cli.py "auth bug" --project my-app --min-score 0.5
  search_cli.py "deploy" --cross-project --decay --limit 10

Exit Codes:
- 0: Success (including no results)
- 1: Error
"""

import argparse
import asyncio
import logging
import sys

from reflection.config import get_config
from reflection.engine import ReflectionEngine
from reflection.tools import reflect_on_past

logger = logging.getLogger("reflection.cli")


def positive_int(value):
    """Validate limit is a positive integer.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer
    """
    try:
        ivalue = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"limit must be an integer, got {value}")
    if ivalue < 1:
        raise argparse.ArgumentTypeError(f"limit must be >= 1, got {value}")
    return ivalue


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Search past conversations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  search_cli.py "database indexing"
  search_cli.py "auth bug" --project my-app --min-score 0.5
  search_cli.py "deploy" --cross-project --decay
        """,
    )

    parser.add_argument("query", help="Search query text")

    parser.add_argument(
        "-l", "--limit",
        type=positive_int,
        default=None,
        help="Maximum number of results (default: DEFAULT_LIMIT, 5)",
    )

    parser.add_argument(
        "-p", "--project",
        help="Only search this project's conversations",
    )

    parser.add_argument(
        "-x", "--cross-project",
        action="store_true",
        default=None,
        help="Include other projects (hybrid isolation mode only)",
    )

    parser.add_argument(
        "-s", "--min-score",
        type=float,
        default=None,
        help="Minimum score, 0-1 (default: DEFAULT_MIN_SCORE, 0.7)",
    )

    parser.add_argument(
        "--decay",
        dest="use_decay",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Force time decay on or off (default: ENABLE_MEMORY_DECAY)",
    )

    return parser.parse_args(argv)


def build_arguments(args) -> dict:
    """Translate CLI arguments into reflect_on_past tool arguments."""
    arguments = {"query": args.query}
    if args.limit is not None:
        arguments["limit"] = args.limit
    if args.project:
        arguments["project"] = args.project
    if args.cross_project is not None:
        arguments["crossProject"] = args.cross_project
    if args.min_score is not None:
        arguments["minScore"] = args.min_score
    if args.use_decay is not None:
        arguments["useDecay"] = args.use_decay
    return arguments


async def run(arguments: dict, engine: ReflectionEngine | None = None) -> int:
    """Run one search and print the rendered result. Returns the exit code."""
    owns_engine = engine is None
    if engine is None:
        engine = ReflectionEngine.from_config(get_config())

    try:
        result = await reflect_on_past(arguments, engine)
    finally:
        if owns_engine:
            await engine.aclose()

    if result.is_error:
        print(result.text, file=sys.stderr)
        return 1
    print(result.text)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run(build_arguments(args)))
    except Exception as e:
        logger.error(
            "search_cli_failed",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
