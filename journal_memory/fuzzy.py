"""Mapping model-reported quotes back onto the entry text."""

from __future__ import annotations

from typing import Any, List, Optional

from fuzzysearch import find_near_matches

from .schemas import SourceRange

MIN_QUOTE_LENGTH = 3
FUZZY_DISTANCE_RATIO = 0.15


def approximate_substring_search(needle: str, haystack: str, max_distance: int) -> List[Any]:
    """Matches (``start``, ``end``, ``dist``) of ``needle`` in ``haystack`` within ``max_distance`` edits."""
    if not needle or not haystack:
        return []
    max_distance = max(0, min(max_distance, len(needle) - 1))
    return list(find_near_matches(needle, haystack, max_l_dist=max_distance))


def _fold(quote: str, text: str):
    """Lowercase both sides when that keeps character offsets intact."""
    folded_quote, folded_text = quote.lower(), text.lower()
    if len(folded_text) == len(text) and len(folded_quote) == len(quote):
        return folded_quote, folded_text
    return None


def locate_source_quote(quote: Optional[str], text: str) -> Optional[SourceRange]:
    """Find where ``quote`` occurs in ``text``, tolerating small paraphrase.

    Tries an exact match, then a case-insensitive one, then the closest
    approximate match. Returns None when nothing is close enough.
    """
    quote = (quote or "").strip()
    if len(quote) < MIN_QUOTE_LENGTH or not text:
        return None

    idx = text.find(quote)
    if idx != -1:
        return SourceRange(start=idx, end=idx + len(quote), quote=quote)

    folded = _fold(quote, text)
    if folded is not None:
        idx = folded[1].find(folded[0])
        if idx != -1:
            end = idx + len(quote)
            return SourceRange(start=idx, end=end, quote=text[idx:end])

    needle, haystack = folded if folded is not None else (quote, text)
    max_distance = max(3, int(len(quote) * FUZZY_DISTANCE_RATIO))
    matches = approximate_substring_search(needle, haystack, max_distance)
    if not matches:
        return None

    best = min(matches, key=lambda m: (m.dist, m.start))
    return SourceRange(start=best.start, end=best.end, quote=text[best.start:best.end])
