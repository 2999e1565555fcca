"""
Retrieval & Re-ranker: semantic search plus composite scoring.
"""

from dataclasses import dataclass, replace
from typing import List, Optional

from ..models.core import Memory, MemoryCategory, SearchResult
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import now_ms, recency_score
from .vector_store import MemoryVectorStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class RerankWeights:
    """Weights of the composite retrieval score."""
    similarity: float = 0.5
    importance: float = 0.3
    recency: float = 0.2


DEFAULT_WEIGHTS = RerankWeights()


def composite_score(result: SearchResult, weights: RerankWeights, now: int) -> float:
    """similarity x W_sim + importance x W_imp + recency x W_rec."""
    return (result.relevance * weights.similarity + result.memory.importance * weights.importance +
            recency_score(result.memory.timestamp, now) * weights.recency)


def rerank(results: List[SearchResult], weights: RerankWeights = DEFAULT_WEIGHTS, now: Optional[int] = None) -> List[SearchResult]:
    """
    Order search results by composite score, highest first.

    Python's sort is stable, so ties keep their original scan order.

    Args:
        results: Results to order
        weights: Composite score weights
        now: Reference time in epoch milliseconds (current time if None)

    Returns:
        New list of results, best first
    """
    if now is None:
        now = now_ms()
    return sorted(results, key=lambda result: composite_score(result, weights, now), reverse=True)


class RetrievalService:
    """Retrieve a user's most relevant memories for a query."""

    def __init__(self, vector_store: MemoryVectorStore, weights: RerankWeights = DEFAULT_WEIGHTS):
        self.vector_store = vector_store
        self.weights = weights

    async def retrieve(self,
                       user_id: str,
                       query: str,
                       limit: int = 5,
                       threshold: float = 0.7,
                       category: Optional[MemoryCategory] = None) -> List[Memory]:
        """
        Search, filter and re-rank a user's memories.

        Args:
            user_id: User whose memories are searched
            query: Search query
            limit: Maximum number of memories to return
            threshold: Minimum relevance a result must reach
            category: Restrict results to one category

        Returns:
            Memories carrying their relevance, best first
        """
        results = await self.vector_store.search_by_text(query, user_id, limit * 2)

        if category is not None:
            results = [r for r in results if r.memory.category == category]

        results = [r for r in results if r.relevance >= threshold]

        ranked = rerank(results, self.weights)[:limit]
        logger.debug(f'Retrieved {len(ranked)} memories for user {user_id} (threshold {threshold})')

        return [replace(r.memory, relevance=r.relevance) for r in ranked]
