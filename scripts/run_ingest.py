"""CLI entrypoint for importing journal entries and embedding them."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from journal_memory.config import AppConfig  # noqa: E402
from journal_memory.logging_config import configure_logging, configure_ops_log  # noqa: E402
from journal_memory.pipeline import JournalMemory  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import journal entries, queue them for analysis and embed them.")
    parser.add_argument(
        "--config",
        type=str,
        default=str(PROJECT_ROOT / "config.yaml"),
        help="Path to YAML config.",
    )
    parser.add_argument(
        "--input",
        action="append",
        required=True,
        help="File or directory to import (repeatable).",
    )
    parser.add_argument("--no-embed", action="store_true", help="Skip embedding after import.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    return parser.parse_args()


async def run(args: argparse.Namespace) -> None:
    config = AppConfig.from_yaml(args.config)
    configure_ops_log(config.paths.log_dir)
    async with JournalMemory(config) as memory:
        stats = await memory.import_paths(args.input, embed=not args.no_embed)

    print("Import complete.")
    for key, value in stats.items():
        print(f"{key}: {value}")


def main() -> None:
    args = parse_args()
    configure_logging(args.verbose)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
