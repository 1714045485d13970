"""
Shared pytest fixtures for journal_memory tests.

Provides deterministic fake providers so no test touches the network.
"""

import re
from typing import Any, Callable, Dict, List, Optional

import pytest
import pytest_asyncio

from journal_memory.config import AppConfig, PathsConfig, StorageConfig
from journal_memory.errors import ProviderError, Result
from journal_memory.pipeline import JournalMemory
from journal_memory.storage import JournalDatabase


# Words in the same group land on the same embedding axis, so synonyms
# are "semantically" close while sharing no tokens for BM25.
KEYWORD_GROUPS = [
    ("anxious", "anxiety", "worried", "nervous", "stressed", "dread"),
    ("happy", "joy", "delighted", "glad", "cheerful"),
    ("sad", "grief", "unhappy", "down", "miserable"),
    ("work", "office", "job", "meeting", "deadline"),
    ("family", "mom", "dad", "sister", "brother"),
    ("run", "running", "jog", "exercise", "workout"),
]

WORD_RE = re.compile(r"\w+")


class FakeEmbeddingProvider:
    """Deterministic keyword-group embeddings. Text with no known keyword embeds to zeros."""

    model = "fake-embedding"
    dimension = len(KEYWORD_GROUPS)

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[List[str]] = []

    def vector(self, text: str) -> List[float]:
        words = WORD_RE.findall(text.lower())
        return [float(sum(words.count(w) for w in group)) for group in KEYWORD_GROUPS]

    async def embed(self, texts: List[str]) -> Result[List[List[float]]]:
        self.calls.append(list(texts))
        if self.fail:
            return Result.failure(ProviderError("Rate limit exceeded", status=429, retryable=True))
        return Result.success([self.vector(t) for t in texts])


EMOTION_WORDS = {
    "anxious": ("anxious", "negative", 7),
    "happy": ("happy", "positive", 6),
    "sad": ("sad", "negative", 5),
    "proud": ("proud", "positive", 8),
}

KNOWN_PEOPLE = {
    "Kasia": "friend",
    "Mom": "mother",
    "Tomek": "coworker",
}


def default_extraction(entry_text: str) -> Dict[str, Any]:
    """Spot known emotion words and names, quoting the sentence they appear in."""
    emotions = []
    people = []
    sentences = re.split(r"(?<=[.!?])\s+", entry_text)
    for sentence in sentences:
        lowered = sentence.lower()
        for word, (label, sentiment, intensity) in EMOTION_WORDS.items():
            if re.search(rf"\b{word}\b", lowered):
                emotions.append({
                    "emotion": label.capitalize(),
                    "intensity": intensity,
                    "sentiment": sentiment,
                    "source_quote": sentence,
                })
        for name, relationship in KNOWN_PEOPLE.items():
            if re.search(rf"\b{name}\b", sentence):
                people.append({
                    "name": name,
                    "relationship": relationship,
                    "sentiment": "positive" if "happy" in lowered else "neutral",
                    "context": sentence[:60],
                    "source_quote": sentence,
                })
    return {"emotions": emotions, "people": people}


class FakeExtractionProvider:
    """Returns canned JSON built from the entry text.

    ``fail_on`` makes any entry containing that substring fail, which is
    how tests drive the retry path.
    """

    model = "fake-extraction"

    def __init__(
        self,
        handler: Optional[Callable[[str], Any]] = None,
        fail_on: Optional[str] = None,
    ):
        self.handler = handler or default_extraction
        self.fail_on = fail_on
        self.calls: List[str] = []

    async def complete_json(self, system_prompt: str, user_prompt: str) -> Result[Dict[str, Any]]:
        entry_text = user_prompt.split("\n\n", 1)[-1]
        self.calls.append(entry_text)
        if self.fail_on and self.fail_on in entry_text:
            return Result.failure(ProviderError("API error (500)", status=500, retryable=True))
        return Result.success(self.handler(entry_text))


@pytest.fixture
def config(tmp_path):
    """Config pointing at a throwaway database."""
    return AppConfig(
        paths=PathsConfig(
            sqlite_path=str(tmp_path / "journal.db"),
            log_dir=str(tmp_path / "logs"),
        ),
        storage=StorageConfig(lock_retries=3, lock_base_delay=0.0),
    )


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def extraction_provider():
    return FakeExtractionProvider()


@pytest_asyncio.fixture
async def db(tmp_path):
    database = JournalDatabase(str(tmp_path / "store.db"))
    await database.open()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def memory(config, embedding_provider, extraction_provider):
    """An open JournalMemory wired to the fake providers."""
    mem = JournalMemory(
        config,
        embedding_provider=embedding_provider,
        extraction_provider=extraction_provider,
        build_providers=False,
    )
    await mem.open()
    yield mem
    await mem.close()

