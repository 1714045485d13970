"""Journal entry persistence and the FTS5 lexical search collaborator."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from .schemas import DateRange, JournalEntry
from .storage import JournalDatabase


TOKEN_RE = re.compile(r"\w+", re.UNICODE)

UPSERT_ENTRY_SQL = """
INSERT INTO entries (id, date, content) VALUES (?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    date=excluded.date,
    content=excluded.content,
    updated_at=datetime('now')
"""


def build_match_query(query: str) -> str:
    """Turn free text into an FTS5 expression that cannot be a syntax error."""
    tokens = TOKEN_RE.findall(query)
    return " OR ".join(f'"{token}"' for token in tokens)


def _to_entry(row: Dict) -> JournalEntry:
    return JournalEntry(id=row["id"], date=row["date"], content=row["content"])


class EntryStore:
    """Reads and writes the ``entries`` table."""

    def __init__(self, db: JournalDatabase):
        self.db = db

    async def save_entry(self, entry: JournalEntry) -> None:
        await self.db.execute(UPSERT_ENTRY_SQL, (entry.id, entry.date, entry.content))

    async def save_entries(self, entries: Iterable[JournalEntry]) -> int:
        statements = [(UPSERT_ENTRY_SQL, (e.id, e.date, e.content)) for e in entries]
        await self.db.execute_batch(statements)
        return len(statements)

    async def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry; chunks, insights and queue rows cascade."""
        return await self.db.execute("DELETE FROM entries WHERE id = ?", (entry_id,)) > 0

    async def get_entry(self, entry_id: str) -> Optional[JournalEntry]:
        rows = await self.db.select("SELECT id, date, content FROM entries WHERE id = ?", (entry_id,))
        return _to_entry(rows[0]) if rows else None

    async def get_entries_by_ids(self, entry_ids: List[str]) -> List[JournalEntry]:
        if not entry_ids:
            return []
        placeholders = ",".join("?" for _ in entry_ids)
        rows = await self.db.select(
            f"SELECT id, date, content FROM entries WHERE id IN ({placeholders}) ORDER BY date DESC",
            entry_ids,
        )
        return [_to_entry(row) for row in rows]

    async def get_entries_by_date_range(self, date_range: DateRange) -> List[JournalEntry]:
        return await self.list_entries(date_range=date_range, descending=False)

    async def list_entries(
        self,
        date_range: Optional[DateRange] = None,
        has_insights: Optional[bool] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[JournalEntry]:
        where = []
        params: List = []
        if date_range is not None:
            where.append("e.date >= ? AND e.date <= ?")
            params.extend([date_range.start, date_range.end])
        if has_insights is True:
            where.append("e.id IN (SELECT DISTINCT entry_id FROM journal_insights)")
        elif has_insights is False:
            where.append("e.id NOT IN (SELECT DISTINCT entry_id FROM journal_insights)")

        if limit is not None and limit <= 0:
            return []
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        direction = "DESC" if descending else "ASC"
        query = f"SELECT e.id, e.date, e.content FROM entries e {where_sql} ORDER BY e.date {direction}, e.id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = await self.db.select(query, params)
        return [_to_entry(row) for row in rows]

    async def count_entries(self) -> int:
        rows = await self.db.select("SELECT COUNT(*) AS n FROM entries")
        return int(rows[0]["n"]) if rows else 0

    async def search_fts(
        self,
        query: str,
        limit: int = 10,
        date_range: Optional[DateRange] = None,
    ) -> List[Dict]:
        """BM25 full-text match. Rows carry ``rank``; lower is better."""
        match = build_match_query(query)
        if not match or limit <= 0:
            return []
        sql = """
            SELECT e.id, e.date, e.content, bm25(entries_fts) AS rank
            FROM entries_fts
            JOIN entries e ON e.rowid = entries_fts.rowid
            WHERE entries_fts MATCH ?
        """
        params: List = [match]
        if date_range is not None:
            sql += " AND e.date >= ? AND e.date <= ?"
            params.extend([date_range.start, date_range.end])
        sql += " ORDER BY rank, e.id LIMIT ?"
        params.append(limit)
        return await self.db.select(sql, params)
