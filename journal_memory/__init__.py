"""Local-first memory layer for a personal journal: hybrid search and insight extraction."""

from .config import AppConfig
from .errors import ConfigurationError, JournalMemoryError, ProviderError, Result, StorageLockError
from .pipeline import JournalMemory
from .schemas import DateRange, Insight, JournalEntry, SearchResult

__all__ = [
    "AppConfig",
    "ConfigurationError",
    "DateRange",
    "Insight",
    "JournalEntry",
    "JournalMemory",
    "JournalMemoryError",
    "ProviderError",
    "Result",
    "SearchResult",
    "StorageLockError",
]
