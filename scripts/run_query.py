"""CLI entrypoint for searching entries or running a tool call."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from journal_memory.config import AppConfig  # noqa: E402
from journal_memory.logging_config import configure_logging  # noqa: E402
from journal_memory.pipeline import JournalMemory  # noqa: E402
from journal_memory.schemas import DateRange  # noqa: E402
from journal_memory.tools import format_tool_result  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search the journal or run one tool call.")
    parser.add_argument(
        "--config",
        type=str,
        default=str(PROJECT_ROOT / "config.yaml"),
        help="Path to YAML config.",
    )
    parser.add_argument("--query", type=str, help="Free-text hybrid search.")
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--start", type=str, default=None, help="Start date (YYYY-MM-DD).")
    parser.add_argument("--end", type=str, default=None, help="End date (YYYY-MM-DD).")
    parser.add_argument("--tool", type=str, help="Tool name, e.g. query_insights.")
    parser.add_argument("--args", type=str, default="{}", help="Tool arguments as JSON.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    return parser.parse_args()


async def run(args: argparse.Namespace) -> None:
    config = AppConfig.from_yaml(args.config)
    async with JournalMemory(config) as memory:
        if args.tool:
            result = await memory.execute_tool(args.tool, args.args)
            print(json.dumps(json.loads(format_tool_result(result)), indent=2, ensure_ascii=False))
            return

        date_range = None
        if args.start and args.end:
            date_range = DateRange.from_value({"start": args.start, "end": args.end})
        hits = await memory.hybrid_search(args.query, limit=args.limit, date_range=date_range)

    print(f"== {len(hits)} results for: {args.query} ==")
    for idx, hit in enumerate(hits, start=1):
        print(f"\n[{idx}] {hit.date} score={hit.score:.4f} source={hit.source}")
        print(f"    {hit.snippet[:300]}")


def main() -> None:
    args = parse_args()
    if not args.query and not args.tool:
        raise SystemExit("Provide --query or --tool.")
    configure_logging(args.verbose)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
