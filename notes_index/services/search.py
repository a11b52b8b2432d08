"""Hybrid semantic + lexical search with Reciprocal Rank Fusion."""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

from pydantic import ValidationError

from notes_index.config.logger import app_logger, log_performance
from notes_index.config.settings import settings
from notes_index.models.search import SearchFilters, SearchResult
from notes_index.services.embeddings import Embedder
from notes_index.services.errors import SearchError
from notes_index.services.note_store import NoteStore

T = TypeVar("T")


class FusionStrategy(str, Enum):
    RESULT_SET = "result_set"
    PUSHDOWN = "pushdown"


def result_key(result: SearchResult) -> Tuple[str, str]:
    """Merge key for fusing result lists: title plus body."""
    return (result.title, result.body)


def reciprocal_rank_fusion(
    *rankings: Iterable[T],
    k: int = 60,
    key: Callable[[T], Hashable] = lambda item: item,
) -> List[Tuple[T, float]]:
    """Fuse rankings with RRF.

    Each item scores sum(1 / (k + rank)) over the rankings it appears in, with
    0-based ranks. Output is sorted by score descending; ties keep the order
    in which items were first seen across the rankings.
    """
    scores: Dict[Hashable, float] = {}
    items: Dict[Hashable, T] = {}
    for ranking in rankings:
        for rank, item in enumerate(ranking):
            item_key = key(item)
            if item_key not in items:
                items[item_key] = item
                scores[item_key] = 0.0
            scores[item_key] += 1.0 / (k + rank)

    ordered = sorted(items, key=lambda item_key: scores[item_key], reverse=True)
    return [(items[item_key], scores[item_key]) for item_key in ordered]


FiltersInput = Union[SearchFilters, Dict[str, Any], None]


class RankFusionSearch:
    """Hybrid search over the note index.

    Without filters the vector and trigram rankings are fetched in parallel
    and fused in process. Date/image/folder filters or a date sort switch to a
    single fused SQL query with the predicates applied to both sub-rankings.
    """

    def __init__(
        self,
        store: NoteStore,
        embedder: Embedder,
        rrf_k: Optional[int] = None,
        fetch_size: Optional[int] = None,
        default_limit: Optional[int] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.rrf_k = rrf_k if rrf_k is not None else settings.RRF_K
        self.fetch_size = fetch_size if fetch_size is not None else settings.FUSED_FETCH_SIZE
        self.default_limit = default_limit if default_limit is not None else settings.SEARCH_DEFAULT_LIMIT
        if min(self.rrf_k, self.fetch_size, self.default_limit) < 1:
            raise ValueError("rrf_k, fetch_size and default_limit must be >= 1")

    @staticmethod
    def parse_filters(filters: FiltersInput) -> SearchFilters:
        if filters is None:
            return SearchFilters()
        if isinstance(filters, SearchFilters):
            return filters
        try:
            return SearchFilters.model_validate(filters)
        except ValidationError as exc:
            raise SearchError(f"Invalid search filters: {exc}", invalid_input=True) from exc

    @staticmethod
    def select_strategy(filters: SearchFilters) -> FusionStrategy:
        return FusionStrategy.PUSHDOWN if filters.requires_pushdown else FusionStrategy.RESULT_SET

    def _validate(self, query: str, limit: Optional[int]) -> Tuple[str, int]:
        if not isinstance(query, str) or not query.strip():
            raise SearchError("Query text must not be empty", invalid_input=True)
        if limit is None:
            limit = self.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise SearchError("limit must be a positive integer", invalid_input=True)
        return query.strip(), limit

    async def _embed_query(self, query: str) -> List[float]:
        try:
            return await self.embedder.embed(query)
        except Exception as exc:
            raise SearchError(f"Could not vectorize query: {exc}") from exc

    def fuse(self, vector_results: Sequence[SearchResult], text_results: Sequence[SearchResult], limit: int) -> List[SearchResult]:
        fused = reciprocal_rank_fusion(vector_results, text_results, k=self.rrf_k, key=result_key)
        return [result.model_copy(update={"score": score}) for result, score in fused[:limit]]

    async def search(self, query: str, limit: Optional[int] = None, filters: FiltersInput = None) -> List[SearchResult]:
        """Run a hybrid search; raises SearchError instead of returning partial results."""
        query, limit = self._validate(query, limit)
        parsed = self.parse_filters(filters)
        strategy = self.select_strategy(parsed)
        start = time.perf_counter()

        query_embedding = await self._embed_query(query)
        try:
            if strategy == FusionStrategy.PUSHDOWN:
                results = await self.store.fused_search(
                    query_embedding, query, parsed, limit=limit, fetch_size=self.fetch_size
                )
            else:
                vector_results, text_results = await asyncio.gather(
                    self.store.vector_search(query_embedding, limit),
                    self.store.text_search(query, limit),
                )
                results = self.fuse(vector_results, text_results, limit)
        except Exception as exc:
            app_logger.error(f"Search failed ({strategy.value}): {exc}")
            raise SearchError(f"Search failed: {exc}") from exc

        log_performance("hybrid_search", time.perf_counter() - start, strategy=strategy.value, results=len(results))
        return results

    async def semantic_search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        """Vector similarity only."""
        query, limit = self._validate(query, limit)
        query_embedding = await self._embed_query(query)
        try:
            return await self.store.vector_search(query_embedding, limit)
        except Exception as exc:
            raise SearchError(f"Semantic search failed: {exc}") from exc

    async def full_text_search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        """Trigram similarity only."""
        query, limit = self._validate(query, limit)
        try:
            return await self.store.text_search(query, limit)
        except Exception as exc:
            raise SearchError(f"Full-text search failed: {exc}") from exc
