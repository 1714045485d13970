"""CLI entrypoint for draining the analytics queue."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from journal_memory.config import AppConfig  # noqa: E402
from journal_memory.logging_config import configure_logging, configure_ops_log  # noqa: E402
from journal_memory.pipeline import JournalMemory  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Extract emotions and people from queued journal entries.")
    parser.add_argument(
        "--config",
        type=str,
        default=str(PROJECT_ROOT / "config.yaml"),
        help="Path to YAML config.",
    )
    parser.add_argument("--show-failed", action="store_true", help="List failed items and exit.")
    parser.add_argument("--retry-failed", action="store_true", help="Reset failed items before processing.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    return parser.parse_args()


def _print_progress(current: int, total: int, entry_id: str) -> None:
    print(f"[{current}/{total}] {entry_id}")


async def run(args: argparse.Namespace) -> int:
    config = AppConfig.from_yaml(args.config)
    configure_ops_log(config.paths.log_dir)

    async with JournalMemory(config) as memory:
        if args.show_failed:
            failed = await memory.queue.get_failed_items()
            if not failed:
                print("No failed items.")
            for item in failed:
                print(f"{item.entry_id}  retries={item.retry_count}  error={item.error}")
            return 0

        if args.retry_failed:
            reset = await memory.queue.retry_all_failed()
            print(f"Reset {reset} failed items.")

        queued = await memory.queue.queue_all_entries_for_analysis()
        if queued:
            print(f"Queued {queued} unanalyzed entries.")

        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except NotImplementedError:
            # Windows event loops; Ctrl-C raises KeyboardInterrupt instead
            pass

        report = await memory.process_analytics_queue(on_progress=_print_progress, cancel_event=cancel_event)

    status = "cancelled" if report.cancelled else "complete"
    print(f"Analysis {status}: {report.success} succeeded, {report.failed} failed, {report.total} eligible.")
    for error in report.errors:
        print(f"  {error['entryId']}: {error['error']}")
    return 1 if report.failed else 0


def main() -> None:
    args = parse_args()
    configure_logging(args.verbose)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
