"""Hybrid retrieval: BM25 full-text + chunk vector similarity fused by reciprocal rank."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .config import SearchConfig
from .embeddings import EmbeddingStore
from .entries import EntryStore
from .providers import EmbeddingProvider
from .schemas import DateRange, SearchResult

logger = logging.getLogger(__name__)

SNIPPET_LEAD = 200


def generate_snippet(content: str, query: str, max_length: int = 3000) -> str:
    """Cut a window of ``content`` around the first query term, in query order, that occurs."""
    if len(content) <= max_length:
        return content.strip()

    lowered = content.lower()
    start = 0
    for term in query.lower().split():
        if len(term) <= 2:
            continue
        idx = lowered.find(term)
        if idx != -1:
            start = max(0, idx - SNIPPET_LEAD)
            break
    end = min(len(content), start + max_length)

    snippet = content[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(content):
        snippet = snippet + "..."
    return snippet


def reciprocal_rank_fusion(ranked_lists: List[List[str]], k: int = 60) -> Dict[str, float]:
    """Fuse ranked id lists; position 0 contributes ``1 / (k + 1)``."""
    scores: Dict[str, float] = {}
    for ranked in ranked_lists:
        for position, item_id in enumerate(ranked):
            scores[item_id] = scores.get(item_id, 0.0) + 1.0 / (k + position + 1)
    return scores


class HybridSearchEngine:
    """Ranks entries for a free-text query."""

    def __init__(
        self,
        entries: EntryStore,
        embeddings: EmbeddingStore,
        config: SearchConfig,
        provider: Optional[EmbeddingProvider] = None,
    ):
        self.entries = entries
        self.embeddings = embeddings
        self.config = config
        self.provider = provider

    def _result(self, row: Dict, query: str, score: float, source: str) -> SearchResult:
        return SearchResult(
            id=row["id"],
            entry_id=row["entry_id"],
            date=row["date"],
            content=row["content"],
            snippet=generate_snippet(row["content"], query, self.config.snippet_max_length),
            score=score,
            source=source,
        )

    async def search_lexical(
        self, query: str, limit: int = 10, date_range: Optional[DateRange] = None
    ) -> List[SearchResult]:
        rows = await self.entries.search_fts(query, limit=limit, date_range=date_range)
        return [
            self._result(
                {"id": row["id"], "entry_id": row["id"], "date": row["date"], "content": row["content"]},
                query,
                -float(row["rank"]),
                "bm25",
            )
            for row in rows
        ]

    async def search_vector(
        self, query: str, limit: int = 10, date_range: Optional[DateRange] = None
    ) -> List[SearchResult]:
        """Chunk-level hits, best first. Raises ProviderError if the query cannot be embedded."""
        if self.provider is None or not query.strip():
            return []
        vectors = (await self.provider.embed([query])).unwrap()
        hits = await self.embeddings.search_by_vector(
            vectors[0],
            limit=limit,
            date_range=date_range,
            min_similarity=self.config.min_similarity,
        )
        return [
            self._result(
                {"id": hit["id"], "entry_id": hit["entry_id"], "date": hit["entry_date"], "content": hit["content"]},
                query,
                hit["score"],
                "vector",
            )
            for hit in hits
        ]

    async def hybrid_search(
        self, query: str, limit: Optional[int] = None, date_range: Optional[DateRange] = None
    ) -> List[SearchResult]:
        if limit is None:
            limit = self.config.default_limit
        if limit <= 0:
            return []
        fetch = limit * 2

        lexical = await self.search_lexical(query, limit=fetch, date_range=date_range)

        semantic_ran = False
        vector: List[SearchResult] = []
        if self.provider is not None and await self.embeddings.has_embeddings():
            semantic_ran = True
            try:
                vector = await self.search_vector(query, limit=fetch, date_range=date_range)
            except Exception as exc:
                logger.warning("Semantic search failed, using lexical results only: %s", exc)
                vector = []

        if not semantic_ran:
            return lexical[:limit]
        if not lexical and not vector:
            return []

        best_chunk: Dict[str, SearchResult] = {}
        vector_order: List[str] = []
        for hit in vector:
            if hit.entry_id not in best_chunk:
                best_chunk[hit.entry_id] = hit
                vector_order.append(hit.entry_id)

        lexical_rows = {hit.entry_id: hit for hit in lexical}
        lexical_order = [hit.entry_id for hit in lexical]

        scores = reciprocal_rank_fusion([lexical_order, vector_order], k=self.config.rrf_k)
        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:limit]

        results: List[SearchResult] = []
        for entry_id, score in ranked:
            row = lexical_rows.get(entry_id) or best_chunk[entry_id]
            results.append(
                SearchResult(
                    id=row.id,
                    entry_id=entry_id,
                    date=row.date,
                    content=row.content,
                    snippet=row.snippet,
                    score=score,
                    source="hybrid",
                )
            )
        return results
