"""Chunk embeddings stored as packed float32 blobs with a brute-force cosine scan."""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Dict, List, Optional

import numpy as np

from .chunking import TextChunker
from .errors import ConfigurationError
from .providers import EmbeddingProvider
from .schemas import DateRange, EmbedReport, EmbeddingChunk, JournalEntry, utc_now
from .storage import JournalDatabase

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str, int], None]


def _safe_float(value: float) -> float:
    if np.isnan(value) or np.isinf(value):
        return 0.0
    return float(value)


def vector_to_blob(vector: List[float]) -> bytes:
    return np.asarray(vector, dtype="<f4").tobytes()


def blob_to_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype="<f4")


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0:
        return 0.0
    return _safe_float(float(np.dot(a, b)) / denom)


class EmbeddingStore:
    """Owns the ``embedding_chunks`` table."""

    def __init__(
        self,
        db: JournalDatabase,
        chunker: TextChunker,
        provider: Optional[EmbeddingProvider] = None,
    ):
        self.db = db
        self.chunker = chunker
        self.provider = provider

    def _require_provider(self) -> EmbeddingProvider:
        if self.provider is None:
            raise ConfigurationError("No embedding provider configured")
        return self.provider

    async def embed_entry(self, entry_id: str, date: str, content: str) -> int:
        """Replace the entry's chunk set. Returns the number of chunks stored.

        Existing chunks are removed before the provider call, so a failed
        request leaves the entry unembedded and safe to retry.
        """
        provider = self._require_provider()
        await self.delete_entry_embeddings(entry_id)

        chunks = self.chunker.chunk(content)
        if not chunks:
            return 0

        vectors = (await provider.embed(chunks)).unwrap()

        timestamp = utc_now()
        statements = [
            (
                """
                INSERT INTO embedding_chunks (id, entry_id, entry_date, content, embedding, chunk_index, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (str(uuid.uuid4()), entry_id, date, chunk, vector_to_blob(vector), index, timestamp),
            )
            for index, (chunk, vector) in enumerate(zip(chunks, vectors))
        ]
        await self.db.execute_batch(statements)
        logger.info("Embedded entry %s into %d chunks", entry_id, len(chunks))
        return len(chunks)

    async def delete_entry_embeddings(self, entry_id: str) -> None:
        await self.db.execute("DELETE FROM embedding_chunks WHERE entry_id = ?", (entry_id,))

    async def clear_all_embeddings(self) -> None:
        await self.db.execute("DELETE FROM embedding_chunks")

    async def has_embeddings(self) -> bool:
        rows = await self.db.select("SELECT 1 AS present FROM embedding_chunks LIMIT 1")
        return bool(rows)

    async def is_entry_embedded(self, entry_id: str) -> bool:
        rows = await self.db.select(
            "SELECT 1 AS present FROM embedding_chunks WHERE entry_id = ? LIMIT 1", (entry_id,)
        )
        return bool(rows)

    async def get_entry_chunks(self, entry_id: str) -> List[EmbeddingChunk]:
        rows = await self.db.select(
            """
            SELECT id, entry_id, entry_date, content, embedding, chunk_index
            FROM embedding_chunks WHERE entry_id = ? ORDER BY chunk_index
            """,
            (entry_id,),
        )
        return [
            EmbeddingChunk(
                id=row["id"],
                entry_id=row["entry_id"],
                entry_date=row["entry_date"],
                content=row["content"],
                chunk_index=row["chunk_index"],
                embedding=blob_to_vector(row["embedding"]).tolist(),
            )
            for row in rows
        ]

    async def get_embedding_stats(self) -> Dict:
        chunk_rows = await self.db.select("SELECT COUNT(*) AS n FROM embedding_chunks")
        embedded = await self.db.select("SELECT DISTINCT entry_id FROM embedding_chunks")
        total = await self.db.select("SELECT COUNT(*) AS n FROM entries")
        return {
            "totalChunks": int(chunk_rows[0]["n"]),
            "entriesWithEmbeddings": len(embedded),
            "totalEntries": int(total[0]["n"]),
            "embeddedEntryIds": [row["entry_id"] for row in embedded],
        }

    async def get_unembedded_entries(self, min_length: Optional[int] = None) -> List[JournalEntry]:
        """Entries with no chunks whose content could yield at least one chunk."""
        threshold = self.chunker.config.min_length if min_length is None else min_length
        rows = await self.db.select(
            """
            SELECT e.id, e.date, e.content FROM entries e
            WHERE e.id NOT IN (SELECT DISTINCT entry_id FROM embedding_chunks)
              AND LENGTH(e.content) >= ?
            ORDER BY e.date DESC
            """,
            (threshold,),
        )
        return [JournalEntry(id=row["id"], date=row["date"], content=row["content"]) for row in rows]

    async def embed_all_entries(self, on_progress: Optional[ProgressCallback] = None) -> EmbedReport:
        """Embed every unembedded entry, isolating failures per entry."""
        self._require_provider()
        pending = await self.get_unembedded_entries()
        report = EmbedReport()

        for i, entry in enumerate(pending, start=1):
            try:
                chunk_count = await self.embed_entry(entry.id, entry.date, entry.content)
            except Exception as exc:
                report.failed += 1
                report.errors.append(f"Entry {entry.id}: {exc}")
                logger.warning("Embedding failed for entry %s: %s", entry.id, exc)
                chunk_count = 0
            else:
                report.success += 1
            if on_progress is not None:
                on_progress(i, len(pending), entry.id, chunk_count)

        return report

    async def search_by_vector(
        self,
        query_vector: List[float],
        limit: int = 10,
        date_range: Optional[DateRange] = None,
        min_similarity: Optional[float] = None,
    ) -> List[Dict]:
        """Cosine similarity against every stored chunk, best first."""
        if limit <= 0:
            return []
        query = "SELECT id, entry_id, entry_date, content, embedding, chunk_index FROM embedding_chunks"
        params: List = []
        if date_range is not None:
            query += " WHERE entry_date >= ? AND entry_date <= ?"
            params.extend([date_range.start, date_range.end])
        rows = await self.db.select(query, params)

        query_vec = np.asarray(query_vector, dtype=np.float32)
        if float(np.linalg.norm(query_vec)) == 0:
            return []

        scored: List[Dict] = []
        for row in rows:
            emb_vec = blob_to_vector(row["embedding"])
            if emb_vec.shape != query_vec.shape:
                logger.debug("Skipping chunk %s with mismatched dimension", row["id"])
                continue
            if float(np.linalg.norm(emb_vec)) == 0:
                continue
            similarity = cosine_similarity(query_vec, emb_vec)
            if min_similarity is not None and similarity < min_similarity:
                continue
            scored.append(
                {
                    "id": row["id"],
                    "entry_id": row["entry_id"],
                    "entry_date": row["entry_date"],
                    "content": row["content"],
                    "chunk_index": row["chunk_index"],
                    "score": similarity,
                }
            )

        scored.sort(key=lambda x: (-x["score"], x["id"]))
        return scored[:limit]
