"""Durable retry queue for entry analysis and the batch driver that drains it.

Rows move ``pending -> processing -> completed``. A failed attempt puts
the row back to ``pending`` with ``retry_count`` incremented and the error
text recorded; once ``retry_count`` reaches the configured maximum the row
is considered failed and is only picked up again after an explicit retry.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional

from .config import QueueConfig
from .entries import EntryStore
from .errors import ConfigurationError
from .extraction import InsightExtractor
from .insights import InsightStore, delete_statement, insert_statements
from .schemas import AnalyticsQueueItem, ProcessingReport, utc_now
from .storage import JournalDatabase

logger = logging.getLogger(__name__)

QueueProgressCallback = Callable[[int, int, str], None]


class AnalyticsQueue:
    """Owns the ``analytics_queue`` table."""

    def __init__(
        self,
        db: JournalDatabase,
        entries: EntryStore,
        insights: InsightStore,
        config: QueueConfig,
        extractor: Optional[InsightExtractor] = None,
    ):
        self.db = db
        self.entries = entries
        self.insights = insights
        self.config = config
        self.extractor = extractor

    @property
    def max_retry_count(self) -> int:
        return self.config.max_retry_count

    async def queue_entry_for_analysis(self, entry_id: str) -> bool:
        """Queue an entry unless it is missing, already has insights or a queue row."""
        if await self.entries.get_entry(entry_id) is None:
            return False
        if await self.insights.has_insights(entry_id):
            return False
        now = utc_now()
        inserted = await self.db.execute(
            """
            INSERT INTO analytics_queue (id, entry_id, status, retry_count, error, created_at, updated_at)
            VALUES (?, ?, 'pending', 0, NULL, ?, ?)
            ON CONFLICT(entry_id) DO NOTHING
            """,
            (str(uuid.uuid4()), entry_id, now, now),
        )
        return inserted > 0

    async def queue_all_entries_for_analysis(self) -> int:
        rows = await self.db.select(
            """
            SELECT e.id FROM entries e
            WHERE e.id NOT IN (SELECT DISTINCT entry_id FROM journal_insights)
              AND e.id NOT IN (SELECT entry_id FROM analytics_queue)
            ORDER BY e.date, e.id
            """
        )
        now = utc_now()
        statements = [
            (
                """
                INSERT INTO analytics_queue (id, entry_id, status, retry_count, error, created_at, updated_at)
                VALUES (?, ?, 'pending', 0, NULL, ?, ?)
                ON CONFLICT(entry_id) DO NOTHING
                """,
                (str(uuid.uuid4()), row["id"], now, now),
            )
            for row in rows
        ]
        await self.db.execute_batch(statements)
        if statements:
            logger.info("Queued %d entries for analysis", len(statements))
        return len(statements)

    async def requeue_entry(self, entry_id: str) -> None:
        """Force re-analysis of an entry, e.g. after its text changed."""
        now = utc_now()
        await self.db.execute(
            """
            INSERT INTO analytics_queue (id, entry_id, status, retry_count, error, created_at, updated_at)
            VALUES (?, ?, 'pending', 0, NULL, ?, ?)
            ON CONFLICT(entry_id) DO UPDATE SET
                status='pending',
                retry_count=0,
                error=NULL,
                updated_at=excluded.updated_at
            """,
            (str(uuid.uuid4()), entry_id, now, now),
        )

    async def get_item(self, entry_id: str) -> Optional[AnalyticsQueueItem]:
        rows = await self.db.select("SELECT * FROM analytics_queue WHERE entry_id = ?", (entry_id,))
        return AnalyticsQueueItem.from_row(rows[0]) if rows else None

    async def get_pending_items(self) -> List[AnalyticsQueueItem]:
        """Eligible items, oldest first."""
        rows = await self.db.select(
            """
            SELECT * FROM analytics_queue
            WHERE status = 'pending' AND retry_count < ?
            ORDER BY created_at ASC, id ASC
            """,
            (self.max_retry_count,),
        )
        return [AnalyticsQueueItem.from_row(row) for row in rows]

    async def get_failed_items(self) -> List[AnalyticsQueueItem]:
        rows = await self.db.select(
            """
            SELECT * FROM analytics_queue
            WHERE status = 'pending' AND retry_count >= ?
            ORDER BY updated_at DESC, id ASC
            """,
            (self.max_retry_count,),
        )
        return [AnalyticsQueueItem.from_row(row) for row in rows]

    async def retry_failed(self, entry_id: str) -> bool:
        updated = await self.db.execute(
            """
            UPDATE analytics_queue SET retry_count = 0, error = NULL, status = 'pending', updated_at = ?
            WHERE entry_id = ? AND retry_count >= ?
            """,
            (utc_now(), entry_id, self.max_retry_count),
        )
        return updated > 0

    async def retry_all_failed(self) -> int:
        return await self.db.execute(
            """
            UPDATE analytics_queue SET retry_count = 0, error = NULL, status = 'pending', updated_at = ?
            WHERE status = 'pending' AND retry_count >= ?
            """,
            (utc_now(), self.max_retry_count),
        )

    async def dismiss_failed(self, entry_id: str) -> bool:
        return await self.db.execute("DELETE FROM analytics_queue WHERE entry_id = ?", (entry_id,)) > 0

    async def recover_interrupted_items(self) -> int:
        """Reset rows left in ``processing`` by a batch that never finished.

        Only claims older than ``stale_processing_seconds`` are reclaimed,
        so a batch still waiting on the provider keeps its items.
        """
        now = utc_now()
        recovered = await self.db.execute(
            """
            UPDATE analytics_queue SET status = 'pending', updated_at = ?
            WHERE status = 'processing'
              AND julianday(?) - julianday(updated_at) > ? / 86400.0
            """,
            (now, now, self.config.stale_processing_seconds),
        )
        if recovered:
            logger.info("Recovered %d interrupted queue items", recovered)
        return recovered

    async def get_queue_stats(self) -> Dict[str, int]:
        rows = await self.db.select(
            """
            SELECT
                SUM(CASE WHEN status = 'pending' AND retry_count < ? THEN 1 ELSE 0 END) AS pending,
                SUM(CASE WHEN status = 'processing' THEN 1 ELSE 0 END) AS processing,
                SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS completed,
                SUM(CASE WHEN status = 'pending' AND retry_count >= ? THEN 1 ELSE 0 END) AS failed
            FROM analytics_queue
            """,
            (self.max_retry_count, self.max_retry_count),
        )
        row = rows[0] if rows else {}
        return {key: int(row.get(key) or 0) for key in ("pending", "processing", "completed", "failed")}

    async def _set_status(self, item_id: str, status: str) -> None:
        await self.db.execute(
            "UPDATE analytics_queue SET status = ?, updated_at = ? WHERE id = ?",
            (status, utc_now(), item_id),
        )

    async def _record_failure(self, item_id: str, error: str) -> None:
        await self.db.execute(
            """
            UPDATE analytics_queue
            SET status = 'pending', retry_count = retry_count + 1, error = ?, updated_at = ?
            WHERE id = ?
            """,
            (error, utc_now(), item_id),
        )

    async def process_analytics_queue(
        self,
        on_progress: Optional[QueueProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProcessingReport:
        """Analyze every eligible pending entry, one at a time.

        A set ``cancel_event`` stops the run before the next item; rows not
        yet started are left untouched.
        """
        if self.extractor is None:
            raise ConfigurationError("No extraction provider configured")

        report = ProcessingReport()
        if cancel_event is not None and cancel_event.is_set():
            report.cancelled = True
            return report

        await self.recover_interrupted_items()
        items = await self.get_pending_items()
        report.total = len(items)

        for current, item in enumerate(items, start=1):
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                logger.info("Analysis cancelled after %d of %d items", current - 1, report.total)
                break

            entry = await self.entries.get_entry(item.entry_id)
            if entry is None:
                logger.warning("Dismissing queue item for missing entry %s", item.entry_id)
                await self.dismiss_failed(item.entry_id)
                continue

            try:
                await self._set_status(item.id, "processing")
                await self.insights.delete_entry_insights(entry.id)
                insights = (await self.extractor.analyze_entry(entry)).unwrap()
                await self.db.execute_batch(
                    [delete_statement(entry.id)]
                    + insert_statements(insights)
                    + [
                        (
                            "UPDATE analytics_queue SET status = 'completed', error = NULL, updated_at = ? WHERE id = ?",
                            (utc_now(), item.id),
                        )
                    ]
                )
            except Exception as exc:
                report.failed += 1
                report.errors.append({"entryId": entry.id, "error": str(exc)})
                logger.warning("Analysis failed for entry %s: %s", entry.id, exc)
                await self._record_failure(item.id, str(exc))
            else:
                report.success += 1

            if on_progress is not None:
                on_progress(current, report.total, entry.id)

        return report
