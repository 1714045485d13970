"""
Error taxonomy for the journal memory layer.

Provider calls never raise: they return a ``Result`` so each call site
decides what a failure means for its unit of work. Storage errors raise,
with lock contention retried inside the storage session first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class JournalMemoryError(Exception):
    """Base class for all journal memory errors."""


class ProviderError(JournalMemoryError):
    """An embedding or extraction provider failed or returned garbage.

    Covers HTTP failures, rate limits and unparseable JSON. Always
    recoverable at the granularity of one entry.
    """

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class StorageLockError(JournalMemoryError):
    """The database stayed locked after every retry attempt."""


class ConfigurationError(JournalMemoryError):
    """A required credential or setting is missing."""


@dataclass
class Result(Generic[T]):
    """Outcome of a provider call: either a value or a ProviderError."""

    value: Optional[T] = None
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ProviderError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
