"""Core data structures shared across modules."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dateutil import parser as dt_parser


INSIGHT_TYPES = ("emotion", "person")
EMOTION_SENTIMENTS = ("positive", "negative", "neutral")
PERSON_SENTIMENTS = ("positive", "negative", "neutral", "tense", "mixed")
DEFAULT_INTENSITY = 5


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def normalize_date(value: Union[str, date, datetime]) -> str:
    """Normalize a date-like value to ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return dt_parser.parse(str(value)).date().isoformat()


def clamp_intensity(value: object, default: int = DEFAULT_INTENSITY) -> int:
    try:
        score = int(round(float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return max(1, min(10, score))


def _clean_sentiment(value: object, allowed: tuple) -> str:
    sentiment = str(value or "neutral").strip().lower()
    return sentiment if sentiment in allowed else "neutral"


def _optional_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class DateRange:
    """Inclusive date window over entry dates."""

    start: str
    end: str

    @classmethod
    def from_value(cls, value: Any) -> Optional["DateRange"]:
        """Accept a DateRange, a ``{"start", "end"}`` mapping or a pair."""
        if value is None or isinstance(value, DateRange):
            return value
        if isinstance(value, dict):
            start, end = value.get("start"), value.get("end")
        else:
            start, end = value
        return cls(start=normalize_date(start), end=normalize_date(end))


@dataclass
class JournalEntry:
    """A diary entry. Owned by the host application; never mutated here."""

    id: str
    date: str
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"entryId": self.id, "date": self.date, "content": self.content}


@dataclass
class EmbeddingChunk:
    """One embedded slice of an entry."""

    id: str
    entry_id: str
    entry_date: str
    content: str
    chunk_index: int
    embedding: List[float] = field(default_factory=list)


@dataclass
class SourceRange:
    """Span of the entry text that evidences an insight."""

    start: int
    end: int
    quote: str

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end, "quote": self.quote}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["SourceRange"]:
        if not isinstance(data, dict):
            return None
        try:
            return cls(start=int(data["start"]), end=int(data["end"]), quote=str(data.get("quote", "")))
        except (KeyError, TypeError, ValueError):
            return None


@dataclass
class EmotionMetadata:
    intensity: int = DEFAULT_INTENSITY
    trigger: Optional[str] = None
    sentiment: str = "neutral"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"intensity": self.intensity, "sentiment": self.sentiment}
        if self.trigger:
            out["trigger"] = self.trigger
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmotionMetadata":
        return cls(
            intensity=clamp_intensity(data.get("intensity")),
            trigger=_optional_text(data.get("trigger")),
            sentiment=_clean_sentiment(data.get("sentiment"), EMOTION_SENTIMENTS),
        )


@dataclass
class PersonMetadata:
    relationship: Optional[str] = None
    sentiment: str = "neutral"
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"sentiment": self.sentiment}
        if self.relationship:
            out["relationship"] = self.relationship
        if self.context:
            out["context"] = self.context
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersonMetadata":
        return cls(
            relationship=_optional_text(data.get("relationship")),
            sentiment=_clean_sentiment(data.get("sentiment"), PERSON_SENTIMENTS),
            context=_optional_text(data.get("context")),
        )


InsightMetadata = Union[EmotionMetadata, PersonMetadata]


def decode_metadata(insight_type: str, raw: Optional[str]):
    """Decode the stored metadata JSON into (metadata, source range)."""
    try:
        data = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    source = SourceRange.from_dict(data.get("source"))
    if insight_type == "emotion":
        return EmotionMetadata.from_dict(data), source
    if insight_type == "person":
        return PersonMetadata.from_dict(data), source
    raise ValueError(f"Unknown insight type: {insight_type!r}")


@dataclass
class Insight:
    """A named emotion or person extracted from one entry."""

    id: str
    entry_id: str
    entry_date: str
    insight_type: str
    content: str
    metadata: InsightMetadata
    source: Optional[SourceRange] = None
    created_at: str = field(default_factory=utc_now)

    @property
    def sentiment(self) -> str:
        return self.metadata.sentiment

    def metadata_json(self) -> str:
        payload = self.metadata.to_dict()
        if self.source is not None:
            payload["source"] = self.source.to_dict()
        return json.dumps(payload, ensure_ascii=False)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Insight":
        metadata, source = decode_metadata(row["insight_type"], row.get("metadata"))
        return cls(
            id=row["id"],
            entry_id=row["entry_id"],
            entry_date=row["entry_date"],
            insight_type=row["insight_type"],
            content=row["content"],
            metadata=metadata,
            source=source,
            created_at=row.get("created_at") or "",
        )

    def to_dict(self, include_entry_id: bool = True) -> Dict[str, Any]:
        """JSON shape handed to tool consumers."""
        out: Dict[str, Any] = {"type": self.insight_type, "entryDate": self.entry_date}
        if include_entry_id:
            out["entryId"] = self.entry_id
        if isinstance(self.metadata, EmotionMetadata):
            out["emotion"] = self.content
            out["intensity"] = self.metadata.intensity
            if self.metadata.trigger:
                out["trigger"] = self.metadata.trigger
        else:
            out["name"] = self.content
            if self.metadata.relationship:
                out["relationship"] = self.metadata.relationship
            if self.metadata.context:
                out["context"] = self.metadata.context
        out["sentiment"] = self.metadata.sentiment
        if self.source is not None:
            out["sourceText"] = self.source.quote
            out["sourceStart"] = self.source.start
            out["sourceEnd"] = self.source.end
        return out


@dataclass
class AnalyticsQueueItem:
    """Retry-tracked request to analyze one entry."""

    id: str
    entry_id: str
    status: str
    retry_count: int
    error: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AnalyticsQueueItem":
        return cls(
            id=row["id"],
            entry_id=row["entry_id"],
            status=row["status"],
            retry_count=int(row["retry_count"]),
            error=row.get("error"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "entryId": self.entry_id,
            "status": self.status,
            "retryCount": self.retry_count,
            "error": self.error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class SearchResult:
    """One ranked entry hit. Not persisted."""

    id: str
    entry_id: str
    date: str
    content: str
    snippet: str
    score: float
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "entryId": self.entry_id,
            "date": self.date,
            "content": self.content,
            "snippet": self.snippet,
            "score": self.score,
            "source": self.source,
        }


@dataclass
class InsightGroup:
    """All mentions of one entity (same type, case-insensitive label)."""

    name: str
    insight_type: str
    most_recent_date: str
    count: int = 0
    entry_ids: List[str] = field(default_factory=list)
    sentiment: Optional[str] = None
    relationship: Optional[str] = None
    context: Optional[str] = None
    trigger: Optional[str] = None
    source_quote: Optional[str] = None
    total_intensity: float = 0.0
    avg_intensity: Optional[float] = None

    def to_dict(self, include_entry_ids: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "type": self.insight_type,
            "count": self.count,
            "mostRecentDate": self.most_recent_date,
        }
        optional = {
            "sentiment": self.sentiment,
            "relationship": self.relationship,
            "context": self.context,
            "trigger": self.trigger,
            "sourceText": self.source_quote,
            "avgIntensity": self.avg_intensity,
        }
        out.update({key: value for key, value in optional.items() if value is not None})
        if include_entry_ids:
            out["entryIds"] = list(self.entry_ids)
        return out


@dataclass
class EmbedReport:
    """Aggregate outcome of a batch embedding run."""

    success: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "failed": self.failed, "errors": list(self.errors)}


@dataclass
class ProcessingReport:
    """Aggregate outcome of one analytics queue run."""

    success: int = 0
    failed: int = 0
    cancelled: bool = False
    total: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "total": self.total,
            "errors": list(self.errors),
        }
