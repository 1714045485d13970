"""LLM extraction of emotions and people from a single journal entry."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from .config import ExtractionConfig
from .errors import ProviderError, Result
from .fuzzy import locate_source_quote
from .providers import ExtractionProvider
from .schemas import (
    EMOTION_SENTIMENTS,
    PERSON_SENTIMENTS,
    EmotionMetadata,
    Insight,
    JournalEntry,
    PersonMetadata,
    utc_now,
)

logger = logging.getLogger(__name__)


ANALYSIS_PROMPT = f"""
You are a careful analyst of personal journal entries.

Extract:
1) Emotions the author clearly expresses. For each:
   - emotion: a short name ("anxious", "relieved", "proud")
   - intensity: integer 1-10
   - trigger: what caused it, only if stated
   - sentiment: one of {list(EMOTION_SENTIMENTS)}
   - source_quote: the exact words from the entry that show it
2) People mentioned by name or relationship term. For each:
   - name: the name or term used ("Sarah", "Mom", "my boss")
   - relationship: relation to the author, only if stated
   - sentiment: one of {list(PERSON_SENTIMENTS)}
   - context: a brief note on the interaction
   - source_quote: the exact words from the entry that mention them

Rules:
1) Use only evidence in the text. Never invent names.
2) source_quote must be copied verbatim from the entry.
3) If nothing qualifies, return empty arrays.
4) Output STRICT JSON only, no markdown and no extra commentary.

Return exactly:
{{
  "emotions": [],
  "people": []
}}
"""


def _label(item: Dict[str, Any], key: str) -> Optional[str]:
    value = item.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def dedupe_insights(insights: List[Insight]) -> List[Insight]:
    """Collapse same type + case-insensitive label, keeping the earliest quote position."""
    ordered = sorted(
        enumerate(insights),
        key=lambda pair: (pair[1].source.start if pair[1].source is not None else 0, pair[0]),
    )
    seen: Dict[Tuple[str, str], Insight] = {}
    for _, insight in ordered:
        key = (insight.insight_type, insight.content.strip().lower())
        if key not in seen:
            seen[key] = insight
    return list(seen.values())


class InsightExtractor:
    """Turns entry text into typed insights via the configured provider."""

    def __init__(self, provider: ExtractionProvider, config: ExtractionConfig):
        self.provider = provider
        self.config = config

    async def analyze_entry(self, entry: JournalEntry) -> Result[List[Insight]]:
        content = (entry.content or "")[: self.config.max_content_chars]
        if not content.strip():
            return Result.success([])

        response = await self.provider.complete_json(ANALYSIS_PROMPT, f"Journal Entry:\n\n{content}")
        if not response.ok:
            return Result.failure(response.error)  # type: ignore[arg-type]

        try:
            insights = self.parse_payload(response.value or {}, entry, content)
        except ProviderError as exc:
            return Result.failure(exc)
        logger.debug("Extracted %d insights from entry %s", len(insights), entry.id)
        return Result.success(insights)

    def parse_payload(self, payload: Dict[str, Any], entry: JournalEntry, content: str) -> List[Insight]:
        emotions = payload.get("emotions", [])
        people = payload.get("people", [])
        if not isinstance(emotions, list) or not isinstance(people, list):
            raise ProviderError("Extraction response must contain 'emotions' and 'people' arrays")

        timestamp = utc_now()
        insights: List[Insight] = []

        for item in emotions:
            if not isinstance(item, dict):
                continue
            label = _label(item, "emotion")
            if label is None:
                continue
            insights.append(
                Insight(
                    id=str(uuid.uuid4()),
                    entry_id=entry.id,
                    entry_date=entry.date,
                    insight_type="emotion",
                    content=label.lower(),
                    metadata=EmotionMetadata.from_dict(item),
                    source=locate_source_quote(_label(item, "source_quote"), content),
                    created_at=timestamp,
                )
            )

        for item in people:
            if not isinstance(item, dict):
                continue
            label = _label(item, "name")
            if label is None:
                continue
            insights.append(
                Insight(
                    id=str(uuid.uuid4()),
                    entry_id=entry.id,
                    entry_date=entry.date,
                    insight_type="person",
                    content=label,
                    metadata=PersonMetadata.from_dict(item),
                    source=locate_source_quote(_label(item, "source_quote"), content),
                    created_at=timestamp,
                )
            )

        return dedupe_insights(insights)
