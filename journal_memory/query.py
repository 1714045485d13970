"""Read-only insight queries: filtering, per-entity grouping and ordering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .analytics_queue import AnalyticsQueue
from .retrieval import HybridSearchEngine
from .schemas import (
    DateRange,
    EmotionMetadata,
    Insight,
    InsightGroup,
    PersonMetadata,
)
from .storage import JournalDatabase

DEFAULT_QUERY_LIMIT = 10
MAX_QUERY_LIMIT = 50
MAX_GROUP_ENTRY_IDS = 10

CATEGORY_TO_TYPE = {"people": "person", "emotions": "emotion"}
SORT_FIELDS = ("count", "date", "intensity")


@dataclass
class InsightFilters:
    """Filters accepted by ``query_insights``."""

    categories: List[str] = field(default_factory=list)
    sentiments: List[str] = field(default_factory=list)
    date_range: Optional[DateRange] = None
    search: Optional[str] = None
    name: Optional[str] = None

    @property
    def insight_types(self) -> List[str]:
        return [CATEGORY_TO_TYPE[c] for c in self.categories if c in CATEGORY_TO_TYPE]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "InsightFilters":
        data = data or {}
        return cls(
            categories=list(data.get("category") or []),
            sentiments=list(data.get("sentiment") or []),
            date_range=DateRange.from_value(data.get("dateRange")),
            search=(data.get("search") or "").strip() or None,
            name=(data.get("name") or "").strip() or None,
        )


def _in_clause(column: str, values: List[str]) -> str:
    return f"{column} IN ({','.join('?' for _ in values)})"


def group_by_entity(insights: List[Insight]) -> List[InsightGroup]:
    """Fold insights into one group per (type, case-insensitive label).

    Display fields come from the first row seen and are only replaced by a
    row with a strictly later entry date.
    """
    groups: Dict[str, InsightGroup] = {}
    for insight in insights:
        key = f"{insight.insight_type}:{insight.content.lower()}"
        group = groups.get(key)
        if group is None:
            group = InsightGroup(
                name=insight.content,
                insight_type=insight.insight_type,
                most_recent_date=insight.entry_date,
            )
            _take_scalars(group, insight)
            groups[key] = group

        group.count += 1
        if insight.entry_id not in group.entry_ids and len(group.entry_ids) < MAX_GROUP_ENTRY_IDS:
            group.entry_ids.append(insight.entry_id)
        if isinstance(insight.metadata, EmotionMetadata):
            group.total_intensity += insight.metadata.intensity
        if insight.entry_date > group.most_recent_date:
            group.most_recent_date = insight.entry_date
            group.name = insight.content
            _take_scalars(group, insight)

    for group in groups.values():
        if group.insight_type == "emotion" and group.count:
            group.avg_intensity = round(group.total_intensity / group.count, 1)
    return list(groups.values())


def _take_scalars(group: InsightGroup, insight: Insight) -> None:
    meta = insight.metadata
    group.sentiment = meta.sentiment
    group.source_quote = insight.source.quote if insight.source is not None else None
    if isinstance(meta, PersonMetadata):
        group.relationship = meta.relationship
        group.context = meta.context
    else:
        group.trigger = meta.trigger


def _sort_value(group: InsightGroup, sort_field: str):
    if sort_field == "count":
        return group.count
    if sort_field == "date":
        return group.most_recent_date
    return group.avg_intensity or 0.0


def sort_groups(groups: List[InsightGroup], sort_field: str = "count", direction: str = "desc") -> List[InsightGroup]:
    """Stable sort of groups by count, most recent date or average intensity."""
    if sort_field not in SORT_FIELDS:
        raise ValueError(f"Unsupported order field: {sort_field!r}")
    return sorted(groups, key=lambda g: _sort_value(g, sort_field), reverse=direction == "desc")


class InsightQueryService:
    """Answers questions about stored insights."""

    def __init__(
        self,
        db: JournalDatabase,
        search: HybridSearchEngine,
        queue: Optional[AnalyticsQueue] = None,
    ):
        self.db = db
        self.search = search
        self.queue = queue

    async def _select(self, where: List[str], params: List[Any], limit: Optional[int] = None) -> List[Insight]:
        query = "SELECT * FROM journal_insights"
        if where:
            query += f" WHERE {' AND '.join(where)}"
        query += " ORDER BY entry_date DESC, id"
        if limit is not None:
            query += " LIMIT ?"
            params = params + [limit]
        rows = await self.db.select(query, params)
        return [Insight.from_row(row) for row in rows]

    async def get_filtered_insights(
        self,
        insight_type: Optional[str] = None,
        name: Optional[str] = None,
        sentiment: Optional[str] = None,
        limit: int = 20,
    ) -> List[Insight]:
        where: List[str] = []
        params: List[Any] = []
        if insight_type:
            where.append("insight_type = ?")
            params.append(insight_type)
        if name:
            where.append("LOWER(content) LIKE '%' || ? || '%'")
            params.append(name.lower())
        if sentiment:
            where.append("json_extract(metadata, '$.sentiment') = ?")
            params.append(sentiment)
        if limit <= 0:
            return []
        return await self._select(where, params, limit=limit)

    async def get_occurrences(self, insight_type: str, name: str) -> List[Insight]:
        """Every mention of one entity, newest first."""
        return await self._select(
            ["insight_type = ?", "LOWER(content) = ?"], [insight_type, name.strip().lower()]
        )

    async def query_insights(
        self,
        filters: Optional[InsightFilters] = None,
        group_by: Optional[str] = None,
        order_by: Optional[Dict[str, str]] = None,
        limit: Optional[int] = None,
        include_entry_ids: bool = True,
    ) -> List[Dict[str, Any]]:
        """JSON-ready insight rows or entity groups."""
        filters = filters or InsightFilters()
        limit = min(limit or DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT)
        if group_by not in (None, "entity"):
            raise ValueError(f"Unsupported group_by: {group_by!r}")
        if limit <= 0:
            return []

        if filters.search:
            hits = await self.search.hybrid_search(filters.search, limit=limit * 2, date_range=filters.date_range)
            entry_ids = [hit.entry_id for hit in hits]
            if not entry_ids:
                return []
            where = [_in_clause("entry_id", entry_ids)]
            params: List[Any] = list(entry_ids)
            where, params = self._apply_type_and_sentiment(filters, where, params)
            rows = await self._select(where, params, limit=limit)
            return [row.to_dict(include_entry_id=include_entry_ids) for row in rows]

        if group_by == "entity":
            types = filters.insight_types or ["person", "emotion"]
            where = [_in_clause("insight_type", types)]
            params = list(types)
            where, params = self._apply_type_and_sentiment(filters, where, params, with_types=False)
            if filters.date_range is not None:
                where.append("entry_date >= ? AND entry_date <= ?")
                params.extend([filters.date_range.start, filters.date_range.end])
            if filters.name:
                where.append("LOWER(content) LIKE '%' || ? || '%'")
                params.append(filters.name.lower())

            groups = group_by_entity(await self._select(where, params))
            if order_by:
                groups = sort_groups(groups, order_by.get("field", "count"), order_by.get("direction", "desc"))
            return [group.to_dict(include_entry_ids=include_entry_ids) for group in groups[:limit]]

        where, params = self._apply_type_and_sentiment(filters, [], [])
        if filters.date_range is not None:
            where.append("entry_date >= ? AND entry_date <= ?")
            params.extend([filters.date_range.start, filters.date_range.end])
        if filters.name:
            where.append("LOWER(content) LIKE '%' || ? || '%'")
            params.append(filters.name.lower())
        rows = await self._select(where, params, limit=limit)
        return [row.to_dict(include_entry_id=include_entry_ids) for row in rows]

    @staticmethod
    def _apply_type_and_sentiment(filters: InsightFilters, where: List[str], params: List[Any], with_types: bool = True):
        types = filters.insight_types
        if with_types and types:
            where.append(_in_clause("insight_type", types))
            params.extend(types)
        if filters.sentiments:
            where.append(_in_clause("json_extract(metadata, '$.sentiment')", filters.sentiments))
            params.extend(filters.sentiments)
        return where, params

    async def get_insight_stats(self) -> Dict[str, Any]:
        by_type = await self.db.select(
            "SELECT insight_type, COUNT(*) AS n FROM journal_insights GROUP BY insight_type"
        )
        analyzed = await self.db.select("SELECT COUNT(DISTINCT entry_id) AS n FROM journal_insights")
        counts = {row["insight_type"]: int(row["n"]) for row in by_type}
        stats: Dict[str, Any] = {
            "emotions": counts.get("emotion", 0),
            "people": counts.get("person", 0),
            "analyzedEntries": int(analyzed[0]["n"]) if analyzed else 0,
        }
        if self.queue is not None:
            stats["queue"] = await self.queue.get_queue_stats()
        return stats
