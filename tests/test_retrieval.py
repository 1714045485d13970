"""Tests for hybrid search."""

import pytest

from journal_memory.retrieval import generate_snippet, reciprocal_rank_fusion
from journal_memory.schemas import DateRange, JournalEntry

ANXIOUS = "I felt anxious before the dentist appointment today, and it lingered through the evening."
WORRIED = "I was worried about the deadline all afternoon and could not focus on anything else."
GARDEN = "Spent the whole afternoon in the garden planting tomatoes and basil with the radio on."


async def _add(memory, entries, embed=True):
    await memory.entries.save_entries(entries)
    if embed:
        for entry in entries:
            await memory.embeddings.embed_entry(entry.id, entry.date, entry.content)


class TestGenerateSnippet:

    def test_short_content_returned_stripped(self):
        assert generate_snippet("  hello there  ", "hello") == "hello there"

    def test_window_starts_before_first_hit(self):
        content = "x" * 1000 + " kasia " + "y" * 1000
        snippet = generate_snippet(content, "Kasia", max_length=300)
        assert snippet.startswith("...")
        assert snippet.endswith("...")
        assert "kasia" in snippet
        assert snippet.index("kasia") == 3 + 200

    def test_first_query_term_in_order_wins(self):
        content = "x" * 1000 + " alpha " + "y" * 1000 + " beta " + "z" * 3000
        snippet = generate_snippet(content, "beta alpha", max_length=300)
        assert "beta" in snippet
        assert "alpha" not in snippet

    def test_no_hit_starts_at_beginning(self):
        content = "a" * 500
        snippet = generate_snippet(content, "zz nothing", max_length=100)
        assert snippet == "a" * 100 + "..."

    def test_short_terms_are_ignored(self):
        content = "b" * 400 + " an apple"
        assert generate_snippet(content, "an", max_length=100).startswith("bbb")


def test_reciprocal_rank_fusion_uses_zero_based_positions():
    scores = reciprocal_rank_fusion([["a", "b"], ["b"]], k=60)
    assert scores["a"] == pytest.approx(1 / 61)
    assert scores["b"] == pytest.approx(1 / 62 + 1 / 61)


class TestHybridSearch:

    @pytest.mark.asyncio
    async def test_empty_corpus(self, memory):
        assert await memory.hybrid_search("anything at all") == []

    @pytest.mark.asyncio
    async def test_lexical_only_without_embeddings(self, memory, embedding_provider):
        await _add(memory, [JournalEntry("a", "2024-01-01", ANXIOUS)], embed=False)
        results = await memory.hybrid_search("dentist")
        assert [r.entry_id for r in results] == ["a"]
        assert results[0].source == "bm25"
        assert results[0].score > 0
        assert embedding_provider.calls == []

    @pytest.mark.asyncio
    async def test_semantic_branch_adds_synonym_matches(self, memory):
        await _add(memory, [
            JournalEntry("anx", "2024-01-01", ANXIOUS),
            JournalEntry("wor", "2024-01-02", WORRIED),
            JournalEntry("gar", "2024-01-03", GARDEN),
        ])
        results = await memory.hybrid_search("anxious")
        assert [r.entry_id for r in results] == ["anx", "wor"]
        assert all(r.source == "hybrid" for r in results)
        assert results[0].score == pytest.approx(2 / 61)
        assert results[1].score == pytest.approx(1 / 62)

    @pytest.mark.asyncio
    async def test_fusion_recalls_lexical_only_and_semantic_only_entries(self, memory):
        await _add(memory, [
            JournalEntry("gar", "2024-01-01", GARDEN),
            JournalEntry("wor", "2024-01-02", WORRIED),
        ])
        # "tomatoes" only matches the garden text; "nervous" only sits near "worried" in vector space
        results = await memory.hybrid_search("tomatoes nervous")
        assert [r.entry_id for r in results] == ["gar", "wor"]
        assert all(r.source == "hybrid" for r in results)
        assert results[0].score == pytest.approx(results[1].score)

    @pytest.mark.asyncio
    async def test_non_positive_limit_returns_nothing(self, memory):
        await _add(memory, [JournalEntry("gar", "2024-01-01", GARDEN)])
        assert await memory.hybrid_search("garden", limit=0) == []
        assert await memory.entries.search_fts("garden", limit=0) == []

    @pytest.mark.asyncio
    async def test_one_result_per_entry(self, memory):
        long_worry = " ".join([WORRIED] * 60)
        await _add(memory, [JournalEntry("long", "2024-01-01", long_worry)])
        results = await memory.hybrid_search("nervous")
        assert [r.entry_id for r in results] == ["long"]

    @pytest.mark.asyncio
    async def test_semantic_failure_degrades_to_lexical(self, memory, embedding_provider):
        await _add(memory, [
            JournalEntry("anx", "2024-01-01", ANXIOUS),
            JournalEntry("wor", "2024-01-02", WORRIED),
        ])
        embedding_provider.fail = True
        results = await memory.hybrid_search("anxious")
        assert [r.entry_id for r in results] == ["anx"]

    @pytest.mark.asyncio
    async def test_date_range_and_limit(self, memory):
        await _add(memory, [
            JournalEntry("jan", "2024-01-05", GARDEN),
            JournalEntry("feb", "2024-02-05", GARDEN + " Again."),
            JournalEntry("mar", "2024-03-05", GARDEN + " Once more."),
        ])
        results = await memory.hybrid_search("garden", date_range=DateRange("2024-02-01", "2024-03-31"))
        assert sorted(r.entry_id for r in results) == ["feb", "mar"]
        assert len(await memory.hybrid_search("garden", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_no_provider_means_lexical_only(self, memory):
        await _add(memory, [JournalEntry("anx", "2024-01-01", ANXIOUS)])
        memory.search.provider = None
        results = await memory.hybrid_search("anxious")
        assert [r.source for r in results] == ["bm25"]
