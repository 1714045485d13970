"""Persistence for extracted insights."""

from __future__ import annotations

from typing import List

from .schemas import Insight
from .storage import JournalDatabase, Statement

INSERT_INSIGHT_SQL = """
INSERT INTO journal_insights (id, entry_id, entry_date, insight_type, content, metadata, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?)
"""


def insert_statements(insights: List[Insight]) -> List[Statement]:
    return [
        (
            INSERT_INSIGHT_SQL,
            (
                insight.id,
                insight.entry_id,
                insight.entry_date,
                insight.insight_type,
                insight.content,
                insight.metadata_json(),
                insight.created_at,
            ),
        )
        for insight in insights
    ]


def delete_statement(entry_id: str) -> Statement:
    return ("DELETE FROM journal_insights WHERE entry_id = ?", (entry_id,))


class InsightStore:
    """Owns the ``journal_insights`` table."""

    def __init__(self, db: JournalDatabase):
        self.db = db

    async def save_insights(self, insights: List[Insight]) -> None:
        await self.db.execute_batch(insert_statements(insights))

    async def replace_entry_insights(self, entry_id: str, insights: List[Insight]) -> None:
        await self.db.execute_batch([delete_statement(entry_id)] + insert_statements(insights))

    async def delete_entry_insights(self, entry_id: str) -> None:
        query, params = delete_statement(entry_id)
        await self.db.execute(query, params)

    async def get_entry_insights(self, entry_id: str) -> List[Insight]:
        rows = await self.db.select(
            "SELECT * FROM journal_insights WHERE entry_id = ? ORDER BY insight_type, created_at, id",
            (entry_id,),
        )
        return [Insight.from_row(row) for row in rows]

    async def has_insights(self, entry_id: str) -> bool:
        rows = await self.db.select(
            "SELECT 1 AS present FROM journal_insights WHERE entry_id = ? LIMIT 1", (entry_id,)
        )
        return bool(rows)

    async def clear_all_insights(self) -> None:
        await self.db.execute("DELETE FROM journal_insights")
