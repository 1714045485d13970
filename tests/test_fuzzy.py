"""Tests for locating model quotes in entry text."""

from journal_memory.fuzzy import approximate_substring_search, locate_source_quote

TEXT = "Had lunch with Kasia at the new place on Main Street. I felt really anxious about the review."


class TestLocateSourceQuote:

    def test_exact_match(self):
        source = locate_source_quote("felt really anxious", TEXT)
        assert TEXT[source.start:source.end] == "felt really anxious"
        assert source.quote == "felt really anxious"

    def test_case_insensitive_match_uses_entry_text(self):
        source = locate_source_quote("lunch with kasia", TEXT)
        assert source.quote == "lunch with Kasia"
        assert TEXT[source.start:source.end] == source.quote

    def test_small_paraphrase_is_located(self):
        source = locate_source_quote("I felt realy anxious about the reveiw", TEXT)
        assert source is not None
        assert "anxious about the" in source.quote
        assert source.quote == TEXT[source.start:source.end]

    def test_unrelated_quote_returns_none(self):
        assert locate_source_quote("we sailed to a distant island", TEXT) is None

    def test_too_short_or_empty(self):
        assert locate_source_quote("I ", TEXT) is None
        assert locate_source_quote(None, TEXT) is None
        assert locate_source_quote("anything", "") is None


class TestApproximateSubstringSearch:

    def test_returns_match_offsets_and_distance(self):
        matches = approximate_substring_search("Kasha", TEXT, max_distance=1)
        assert len(matches) >= 1
        best = min(matches, key=lambda m: m.dist)
        assert best.dist == 1
        assert TEXT[best.start:best.end] == "Kasia"

    def test_distance_is_capped_below_needle_length(self):
        # a distance of len(needle) would match anywhere
        matches = approximate_substring_search("abc", "zzzzzz", max_distance=10)
        assert matches == []
