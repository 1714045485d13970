"""Function-calling tools exposed to a chat model."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from .query import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT, InsightFilters
from .retrieval import generate_snippet
from .schemas import DateRange

if TYPE_CHECKING:
    from .pipeline import JournalMemory

logger = logging.getLogger(__name__)

ENTRY_SNIPPET_LENGTH = 200

_DATE_RANGE_SCHEMA = {
    "type": "object",
    "properties": {
        "start": {"type": "string", "description": "Start date in YYYY-MM-DD format"},
        "end": {"type": "string", "description": "End date in YYYY-MM-DD format"},
    },
    "required": ["start", "end"],
}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "query_insights",
            "description": (
                "Query emotions and people extracted from the journal. Use for patterns, "
                "recurring people, how often a feeling shows up, or who the author felt a "
                "certain way about."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "filters": {
                        "type": "object",
                        "properties": {
                            "category": {
                                "type": "array",
                                "items": {"type": "string", "enum": ["people", "emotions"]},
                            },
                            "sentiment": {"type": "array", "items": {"type": "string"}},
                            "dateRange": _DATE_RANGE_SCHEMA,
                            "search": {
                                "type": "string",
                                "description": "Free text; restricts insights to entries matching it",
                            },
                            "name": {"type": "string", "description": "Substring of a person or emotion name"},
                        },
                    },
                    "groupBy": {"type": "string", "enum": ["entity"]},
                    "orderBy": {
                        "type": "object",
                        "properties": {
                            "field": {"type": "string", "enum": ["count", "date", "intensity"]},
                            "direction": {"type": "string", "enum": ["asc", "desc"]},
                        },
                    },
                    "limit": {"type": "number", "description": "Max results (default 10, max 50)"},
                    "includeEntryIds": {"type": "boolean"},
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "query_entries",
            "description": (
                "Find journal entries by free-text search (keyword and semantic), date range, "
                "or whether they have been analyzed."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "filters": {
                        "type": "object",
                        "properties": {
                            "dateRange": _DATE_RANGE_SCHEMA,
                            "search": {"type": "string"},
                            "hasInsights": {"type": "boolean"},
                        },
                    },
                    "orderBy": {
                        "type": "object",
                        "properties": {
                            "field": {"type": "string", "enum": ["date", "relevance"]},
                            "direction": {"type": "string", "enum": ["asc", "desc"]},
                        },
                    },
                    "limit": {"type": "number", "description": "Max results (default 10, max 50)"},
                    "returnFullText": {"type": "boolean"},
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_entries_by_ids",
            "description": "Fetch the full text of specific entries, e.g. ids returned by another tool.",
            "parameters": {
                "type": "object",
                "properties": {"entryIds": {"type": "array", "items": {"type": "string"}}},
                "required": ["entryIds"],
            },
        },
    },
]


@dataclass
class ToolResult:
    success: bool
    data: Any = None
    error: Optional[str] = None


def _limit(args: Dict[str, Any]) -> int:
    return min(int(args.get("limit") or DEFAULT_QUERY_LIMIT), MAX_QUERY_LIMIT)


async def _query_insights(memory: "JournalMemory", args: Dict[str, Any]) -> Any:
    return await memory.queries.query_insights(
        filters=InsightFilters.from_dict(args.get("filters")),
        group_by=args.get("groupBy"),
        order_by=args.get("orderBy"),
        limit=_limit(args),
        include_entry_ids=args.get("includeEntryIds") is not False,
    )


async def _query_entries(memory: "JournalMemory", args: Dict[str, Any]) -> Any:
    filters = args.get("filters") or {}
    limit = _limit(args)
    full_text = bool(args.get("returnFullText"))
    date_range = DateRange.from_value(filters.get("dateRange"))
    search = (filters.get("search") or "").strip()

    if search:
        hits = await memory.search.hybrid_search(search, limit=limit, date_range=date_range)
        out = []
        for hit in hits:
            item: Dict[str, Any] = {"entryId": hit.entry_id, "date": hit.date, "score": hit.score}
            if full_text:
                item["content"] = hit.content
            else:
                item["snippet"] = generate_snippet(hit.content, search, ENTRY_SNIPPET_LENGTH)
            out.append(item)
        return out

    order_by = args.get("orderBy") or {}
    entries = await memory.entries.list_entries(
        date_range=date_range,
        has_insights=filters.get("hasInsights"),
        descending=order_by.get("direction", "desc") != "asc",
        limit=limit,
    )
    out = []
    for entry in entries:
        item = {"entryId": entry.id, "date": entry.date}
        if full_text:
            item["content"] = entry.content
        else:
            item["snippet"] = entry.content[:ENTRY_SNIPPET_LENGTH]
        out.append(item)
    return out


async def _get_entries_by_ids(memory: "JournalMemory", args: Dict[str, Any]) -> Any:
    entries = await memory.entries.get_entries_by_ids(list(args.get("entryIds") or []))
    return [entry.to_dict() for entry in entries]


_HANDLERS = {
    "query_insights": _query_insights,
    "query_entries": _query_entries,
    "get_entries_by_ids": _get_entries_by_ids,
}


async def execute_tool_call(
    memory: "JournalMemory", name: str, args: Union[str, Dict[str, Any], None]
) -> ToolResult:
    """Run one tool call. Failures come back as ``success=False``, never raised."""
    handler = _HANDLERS.get(name)
    if handler is None:
        return ToolResult(success=False, error=f"Unknown tool: {name}")
    try:
        parsed = json.loads(args) if isinstance(args, str) else (args or {})
        data = await handler(memory, parsed)
    except Exception as exc:
        logger.warning("Tool %s failed: %s", name, exc)
        return ToolResult(success=False, error=str(exc))
    return ToolResult(success=True, data=data)


def format_tool_result(result: ToolResult) -> str:
    """The JSON string handed back to the model."""
    if not result.success:
        return json.dumps({"error": result.error}, ensure_ascii=False)
    return json.dumps(result.data, ensure_ascii=False)


def describe_tool_call(name: str, args: str) -> str:
    """Short human-readable label for a pending tool call."""
    try:
        parsed = json.loads(args)
    except json.JSONDecodeError:
        return name
    if not isinstance(parsed, dict):
        return name
    filters = parsed.get("filters") or {}
    if name == "query_insights":
        return f'Looking up insights for "{filters["search"]}"' if filters.get("search") else "Looking up insights"
    if name == "query_entries":
        return f'Searching entries for "{filters["search"]}"' if filters.get("search") else "Listing entries"
    if name == "get_entries_by_ids":
        return f"Reading {len(parsed.get('entryIds') or [])} entries"
    return name
