"""Orchestration layer wiring storage, embeddings, search and analysis together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from .analytics_queue import AnalyticsQueue, QueueProgressCallback
from .chunking import TextChunker
from .config import AppConfig
from .embeddings import EmbeddingStore, ProgressCallback
from .entries import EntryStore
from .errors import ConfigurationError
from .extraction import InsightExtractor
from .ingest import EntryImporter
from .insights import InsightStore
from .providers import (
    EmbeddingProvider,
    ExtractionProvider,
    build_embedding_provider,
    build_extraction_provider,
)
from .query import InsightQueryService
from .retrieval import HybridSearchEngine
from .schemas import DateRange, EmbedReport, JournalEntry, ProcessingReport, SearchResult
from .storage import JournalDatabase
from .tools import ToolResult, execute_tool_call

logger = logging.getLogger(__name__)


class JournalMemory:
    """High-level handle over one journal database.

    Providers are built from config unless passed in. A missing credential
    leaves that provider unset: search degrades to full-text only, and the
    embedding and analysis batch operations raise ConfigurationError.
    """

    def __init__(
        self,
        config: AppConfig,
        embedding_provider: Optional[EmbeddingProvider] = None,
        extraction_provider: Optional[ExtractionProvider] = None,
        build_providers: bool = True,
    ):
        self.config = config
        if build_providers:
            embedding_provider = embedding_provider or self._try_build(build_embedding_provider, "embedding")
            extraction_provider = extraction_provider or self._try_build(build_extraction_provider, "extraction")
        self.embedding_provider = embedding_provider
        self.extraction_provider = extraction_provider

        self.db = JournalDatabase(
            config.paths.sqlite_path,
            lock_retries=config.storage.lock_retries,
            lock_base_delay=config.storage.lock_base_delay,
        )
        self.importer = EntryImporter()
        self.entries = EntryStore(self.db)
        self.chunker = TextChunker(config.chunking)
        self.embeddings = EmbeddingStore(self.db, self.chunker, embedding_provider)
        self.search = HybridSearchEngine(self.entries, self.embeddings, config.search, embedding_provider)
        self.insights = InsightStore(self.db)
        extractor = InsightExtractor(extraction_provider, config.extraction) if extraction_provider else None
        self.queue = AnalyticsQueue(self.db, self.entries, self.insights, config.queue, extractor)
        self.queries = InsightQueryService(self.db, self.search, self.queue)

    def _try_build(self, builder, kind: str):
        try:
            return builder(self.config)
        except ConfigurationError as exc:
            logger.warning("No %s provider: %s", kind, exc)
            return None

    async def open(self) -> "JournalMemory":
        await self.db.open()
        return self

    async def close(self) -> None:
        for provider in {id(p): p for p in (self.embedding_provider, self.extraction_provider) if p}.values():
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()
        await self.db.close()

    async def __aenter__(self) -> "JournalMemory":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def save_entry(self, entry: JournalEntry, embed: bool = True) -> None:
        """Store or update an entry and schedule it for (re-)analysis.

        Embedding failures are logged, not raised: the entry stays
        unembedded and is picked up by the next ``embed_all_entries``.
        """
        await self.entries.save_entry(entry)
        await self.queue.requeue_entry(entry.id)
        if embed and self.embedding_provider is not None:
            try:
                await self.embeddings.embed_entry(entry.id, entry.date, entry.content)
            except Exception as exc:
                logger.warning("Embedding deferred for entry %s: %s", entry.id, exc)

    async def delete_entry(self, entry_id: str) -> bool:
        return await self.entries.delete_entry(entry_id)

    async def import_paths(self, paths: Iterable[str], embed: bool = True) -> Dict[str, Any]:
        """Import files, queue new entries for analysis and embed what is missing."""
        imported = self.importer.import_paths(paths)
        await self.entries.save_entries(imported)
        queued = await self.queue.queue_all_entries_for_analysis()

        summary: Dict[str, Any] = {
            "entries_imported": len(imported),
            "entries_total": await self.entries.count_entries(),
            "entries_queued": queued,
        }
        if embed and self.embedding_provider is not None:
            summary["embeddings"] = (await self.embed_all_entries()).to_dict()
        return summary

    async def embed_all_entries(self, on_progress: Optional[ProgressCallback] = None) -> EmbedReport:
        return await self.embeddings.embed_all_entries(on_progress=on_progress)

    async def process_analytics_queue(
        self,
        on_progress: Optional[QueueProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProcessingReport:
        return await self.queue.process_analytics_queue(on_progress=on_progress, cancel_event=cancel_event)

    async def hybrid_search(
        self, query: str, limit: Optional[int] = None, date_range: Optional[DateRange] = None
    ) -> List[SearchResult]:
        return await self.search.hybrid_search(query, limit=limit, date_range=date_range)

    async def execute_tool(self, name: str, args: Union[str, Dict[str, Any], None]) -> ToolResult:
        return await execute_tool_call(self, name, args)

    async def status(self) -> Dict[str, Any]:
        return {
            "embeddings": await self.embeddings.get_embedding_stats(),
            "insights": await self.queries.get_insight_stats(),
        }
