"""
Vector Store Adapter translating memory records to and from vector index operations.
"""

from typing import Any, Dict, List, Optional

from ..models.core import Memory, MemoryCategory, MemoryType, SearchFilters, SearchResult
from ..utils.embedding_cache import EmbeddingCache
from ..utils.errors import NotInitializedError
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient

logger = get_logger(__name__)

DEFAULT_IMPORTANCE = 0.5

# Metadata keys owned by the Memory record itself
CORE_METADATA_KEYS = ('userId', 'type', 'category', 'timestamp', 'sessionId', 'importance')


def memory_to_metadata(memory: Memory) -> Dict[str, Any]:
    """Flatten a memory's fields into the index metadata map."""
    metadata = dict(memory.metadata)
    metadata.update({
        'userId': memory.user_id,
        'type': memory.type.value,
        'category': memory.category.value,
        'timestamp': memory.timestamp,
        'sessionId': memory.session_id or '',
        'importance': memory.importance
    })
    return metadata


def _parse_importance(value: Any) -> float:
    try:
        importance = float(value)
    except (TypeError, ValueError):
        return DEFAULT_IMPORTANCE
    if importance != importance:  # NaN
        return DEFAULT_IMPORTANCE
    return importance


def record_to_memory(record_id: str,
                     text: str,
                     metadata: Optional[Dict[str, Any]],
                     embedding: Optional[List[float]] = None,
                     relevance: Optional[float] = None) -> Memory:
    """Build a Memory from a raw index record, defaulting missing fields.

    Missing or invalid fields fall back to type=conversation, category=general,
    importance=0.5 and timestamp=0.
    """
    metadata = metadata or {}
    timestamp = metadata.get('timestamp')
    try:
        timestamp = int(timestamp)
    except (TypeError, ValueError):
        timestamp = 0

    return Memory(id=record_id,
                  user_id=metadata.get('userId') or '',
                  content=text or '',
                  type=MemoryType.parse(metadata.get('type'), MemoryType.CONVERSATION),
                  category=MemoryCategory.parse(metadata.get('category'), MemoryCategory.GENERAL),
                  timestamp=timestamp,
                  importance=_parse_importance(metadata.get('importance', DEFAULT_IMPORTANCE)),
                  embedding=embedding,
                  session_id=metadata.get('sessionId') or None,
                  relevance=relevance,
                  metadata={key: value for key, value in metadata.items() if key not in CORE_METADATA_KEYS})


class MemoryVectorStore:
    """Memory-level operations over the vector index."""

    def __init__(self, index: OpenSearchClient, embedding_cache: EmbeddingCache):
        """
        Initialize the vector store adapter.

        Args:
            index: Vector index (OpenSearch k-NN index or compatible)
            embedding_cache: Cache used to embed text queries
        """
        self.index = index
        self.embedding_cache = embedding_cache
        self.initialized = False

    async def initialize(self) -> None:
        """Ensure the underlying index exists. Safe to call more than once."""
        if self.initialized:
            logger.debug('Vector store already initialized')
            return

        await self.index.create_index_if_not_exists()
        self.initialized = True

        count = await self.index.count()
        logger.info(f'Vector store ready, existing memories: {count}')

    def _ensure_initialized(self) -> None:
        if not self.initialized:
            raise NotInitializedError('Vector store not initialized. Call initialize() first.')

    async def add(self, memory: Memory) -> None:
        """
        Add a single memory.

        Args:
            memory: Memory carrying its embedding

        Raises:
            ValueError: If the memory has no embedding
        """
        self._ensure_initialized()
        if not memory.embedding:
            raise ValueError(f'Memory {memory.id} has no embedding and cannot be stored')

        await self.index.upsert(memory.id, memory.embedding, memory.content, memory_to_metadata(memory))
        logger.debug(f'Added memory: {memory.id} ({memory.category.value})')

    async def add_batch(self, memories: List[Memory]) -> None:
        """Add several memories in order."""
        self._ensure_initialized()
        if not memories:
            return

        for memory in memories:
            await self.add(memory)

        logger.debug(f'Added {len(memories)} memories in batch')

    async def search_by_text(self, query: str, user_id: str, limit: int = 5) -> List[SearchResult]:
        """
        Search a user's memories with a text query.

        Args:
            query: Search query
            user_id: User whose memories are searched
            limit: Maximum number of results

        Returns:
            Search results, nearest first
        """
        self._ensure_initialized()

        query_embedding = await self.embedding_cache.get_or_compute(query)
        hits = await self.index.query(query_embedding, {'userId': user_id}, limit)
        return self._format_hits(hits)

    async def search_by_embedding(self, embedding: List[float], filters: SearchFilters, limit: int = 5) -> List[SearchResult]:
        """
        Search with a pre-computed embedding.

        The index has no range predicate, so 2 x limit neighbours are fetched
        and the timestamp range is applied afterwards.

        Args:
            embedding: Query embedding
            filters: Equality and timestamp-range filters
            limit: Maximum number of results

        Returns:
            Search results, nearest first
        """
        self._ensure_initialized()

        where = {
            'userId': filters.user_id,
            'type': filters.type.value if filters.type else None,
            'category': filters.category.value if filters.category else None
        }
        where = {key: value for key, value in where.items() if value is not None}

        hits = await self.index.query(embedding, where or None, limit * 2)
        results = self._format_hits(hits)

        if filters.timestamp_gte is not None:
            results = [r for r in results if r.memory.timestamp >= filters.timestamp_gte]
        if filters.timestamp_lte is not None:
            results = [r for r in results if r.memory.timestamp <= filters.timestamp_lte]

        return results[:limit]

    async def delete_by_id(self, memory_id: str) -> None:
        """Delete one memory."""
        self._ensure_initialized()
        await self.index.delete(ids=[memory_id])
        logger.debug(f'Deleted memory: {memory_id}')

    async def delete_by_user(self, user_id: str) -> int:
        """Delete every memory of a user. Returns the number deleted."""
        self._ensure_initialized()
        deleted = await self.index.delete(filter={'userId': user_id})
        logger.info(f'Deleted {deleted} memories for user: {user_id}')
        return deleted

    async def get_by_id(self, memory_id: str) -> Optional[Memory]:
        """
        Get a memory by id.

        Returns:
            The memory with its embedding, or None if absent
        """
        self._ensure_initialized()
        records = await self.index.get(ids=[memory_id])
        if not records:
            return None

        record_id, text, metadata, embedding = records[0]
        return record_to_memory(record_id, text, metadata, embedding=embedding)

    async def get_by_user(self, user_id: str) -> List[Memory]:
        """Get every memory of a user in the index's native order."""
        self._ensure_initialized()
        records = await self.index.get(filter={'userId': user_id})
        return [record_to_memory(record_id, text, metadata, embedding=embedding) for record_id, text, metadata, embedding in records]

    async def count(self, user_id: Optional[str] = None) -> int:
        """Count memories, optionally for a single user."""
        self._ensure_initialized()
        return await self.index.count({'userId': user_id} if user_id else None)

    @staticmethod
    def _format_hits(hits) -> List[SearchResult]:
        results = []
        for record_id, text, metadata, distance in hits:
            relevance = 1 - distance
            memory = record_to_memory(record_id, text, metadata, relevance=relevance)
            results.append(SearchResult(memory=memory, distance=distance, relevance=relevance))
        return results
