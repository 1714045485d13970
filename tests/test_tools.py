"""Tests for the function-calling tool layer."""

import json

import pytest

from journal_memory.schemas import JournalEntry
from journal_memory.tools import TOOL_DEFINITIONS, ToolResult, describe_tool_call, format_tool_result

ENTRIES = [
    JournalEntry("a", "2024-04-01", "Walked to the market with Kasia and I was happy the whole time."),
    JournalEntry("b", "2024-04-02", "Deadline stress at work, Tomek kept asking for updates. I was anxious."),
    JournalEntry("c", "2024-04-03", "Rainy day, read a novel on the couch. " * 20),
]


def test_tool_definitions_cover_every_tool():
    names = [tool["function"]["name"] for tool in TOOL_DEFINITIONS]
    assert names == ["query_insights", "query_entries", "get_entries_by_ids"]
    assert all(tool["type"] == "function" for tool in TOOL_DEFINITIONS)


class TestExecuteToolCall:

    @pytest.mark.asyncio
    async def test_unknown_tool(self, memory):
        result = await memory.execute_tool("delete_everything", {})
        assert result == ToolResult(success=False, error="Unknown tool: delete_everything")

    @pytest.mark.asyncio
    async def test_query_insights_grouped(self, memory):
        await memory.entries.save_entries(ENTRIES)
        await memory.queue.queue_all_entries_for_analysis()
        await memory.process_analytics_queue()

        result = await memory.execute_tool(
            "query_insights",
            {"filters": {"category": ["people"]}, "groupBy": "entity", "orderBy": {"field": "date", "direction": "desc"}},
        )
        assert result.success
        assert [g["name"] for g in result.data] == ["Tomek", "Kasia"]

    @pytest.mark.asyncio
    async def test_query_entries_search_returns_snippets(self, memory):
        await memory.entries.save_entries(ENTRIES)
        result = await memory.execute_tool("query_entries", json.dumps({"filters": {"search": "novel"}}))
        assert result.success
        assert [r["entryId"] for r in result.data] == ["c"]
        assert len(result.data[0]["snippet"]) <= 200 + 6
        assert "content" not in result.data[0]

    @pytest.mark.asyncio
    async def test_query_entries_listing(self, memory):
        await memory.entries.save_entries(ENTRIES)
        await memory.queue.queue_entry_for_analysis("a")
        await memory.process_analytics_queue()

        listed = await memory.execute_tool("query_entries", {"orderBy": {"direction": "asc"}, "limit": 2})
        assert [r["entryId"] for r in listed.data] == ["a", "b"]

        unanalyzed = await memory.execute_tool(
            "query_entries", {"filters": {"hasInsights": False}, "returnFullText": True}
        )
        assert [r["entryId"] for r in unanalyzed.data] == ["c", "b"]
        assert unanalyzed.data[1]["content"] == ENTRIES[1].content

        ranged = await memory.execute_tool(
            "query_entries", {"filters": {"dateRange": {"start": "2024-04-02", "end": "2024-04-02"}}}
        )
        assert [r["entryId"] for r in ranged.data] == ["b"]

    @pytest.mark.asyncio
    async def test_get_entries_by_ids(self, memory):
        await memory.entries.save_entries(ENTRIES)
        result = await memory.execute_tool("get_entries_by_ids", {"entryIds": ["a", "missing"]})
        assert result.data == [{"entryId": "a", "date": "2024-04-01", "content": ENTRIES[0].content}]

    @pytest.mark.asyncio
    async def test_errors_become_failed_results(self, memory):
        result = await memory.execute_tool("query_insights", {"groupBy": "sentiment"})
        assert not result.success
        assert "group_by" in result.error

        bad_json = await memory.execute_tool("query_entries", "{not json")
        assert not bad_json.success


def test_format_tool_result():
    assert json.loads(format_tool_result(ToolResult(success=True, data=[{"a": 1}]))) == [{"a": 1}]
    assert json.loads(format_tool_result(ToolResult(success=False, error="boom"))) == {"error": "boom"}


def test_describe_tool_call():
    assert describe_tool_call("query_entries", '{"filters": {"search": "beach"}}') == 'Searching entries for "beach"'
    assert describe_tool_call("get_entries_by_ids", '{"entryIds": ["a", "b"]}') == "Reading 2 entries"
    assert describe_tool_call("query_insights", "oops") == "query_insights"
