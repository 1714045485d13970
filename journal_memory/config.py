"""Configuration loading for the journal memory layer."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def _resolve_path(raw_path: str, base_dir: Path) -> str:
    path = Path(raw_path).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return str(path)


@dataclass
class PathsConfig:
    """Filesystem locations used by the memory layer."""

    sqlite_path: str = "data/journal.db"
    log_dir: str = "data/logs"


@dataclass
class ChunkingConfig:
    """Character-window chunking for embeddings."""

    chunk_size: int = 1600
    overlap: int = 320
    min_length: int = 50


@dataclass
class EmbeddingConfig:
    """Embedding provider settings."""

    provider: str = "openai"
    model: str = "text-embedding-3-small"
    base_url: str = "https://api.openai.com/v1"
    timeout: float = 60.0


@dataclass
class ExtractionConfig:
    """Insight extraction provider settings."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.3
    max_content_chars: int = 12000
    timeout: float = 120.0


@dataclass
class SearchConfig:
    """Hybrid search defaults."""

    default_limit: int = 10
    rrf_k: int = 60
    min_similarity: float = 0.35
    snippet_max_length: int = 3000


@dataclass
class QueueConfig:
    """Analytics queue retry policy."""

    max_retry_count: int = 3
    stale_processing_seconds: int = 600


@dataclass
class StorageConfig:
    """Lock-contention retry policy for the SQLite session."""

    lock_retries: int = 10
    lock_base_delay: float = 0.04


@dataclass
class AppConfig:
    """Top-level app configuration."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embeddings: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None

    def api_key_for(self, provider: str) -> Optional[str]:
        """Return the credential for a provider name, falling back to the environment."""
        if provider == "google":
            return self.google_api_key or os.getenv("GEMINI_API_KEY")
        return self.openai_api_key or os.getenv("OPENAI_API_KEY")

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "AppConfig":
        """Build config from a dictionary."""
        base = Path.cwd() if base_dir is None else base_dir

        paths_data = data.get("paths", {})
        paths = PathsConfig(
            sqlite_path=_resolve_path(paths_data.get("sqlite_path", "data/journal.db"), base),
            log_dir=_resolve_path(paths_data.get("log_dir", "data/logs"), base),
        )

        return cls(
            paths=paths,
            chunking=ChunkingConfig(**data.get("chunking", {})),
            embeddings=EmbeddingConfig(**data.get("embeddings", {})),
            extraction=ExtractionConfig(**data.get("extraction", {})),
            search=SearchConfig(**data.get("search", {})),
            queue=QueueConfig(**data.get("queue", {})),
            storage=StorageConfig(**data.get("storage", {})),
            openai_api_key=data.get("openai_api_key"),
            google_api_key=data.get("google_api_key"),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "AppConfig":
        """Load config from YAML."""
        config_path = Path(path).resolve()
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        return cls.from_dict(data, base_dir=config_path.parent)
