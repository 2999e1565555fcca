"""
Memory Management Service: insertion with deduplication and conflict resolution,
retrieval, erasure and statistics.
"""

import uuid
from typing import Any, Dict, List, Optional, Tuple

from ..models.core import (ExtractedFact, Interaction, Memory, MemoryCategory, MemoryInput, MemoryStats, MemoryType,
                           SearchFilters)
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import AppConfig, config
from ..utils.embedding_cache import EmbeddingCache
from ..utils.errors import NotInitializedError, ProviderError
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient
from ..utils.timestamp_utils import now_ms
from .conflict_resolution import RESOLVABLE_TYPES, ConflictResolver
from .fact_extraction import FactExtractionService
from .retrieval import RetrievalService
from .vector_store import MemoryVectorStore

logger = get_logger(__name__)

DEDUP_SEARCH_LIMIT = 5


class MemoryManagementError(Exception):
    """Custom exception for memory management errors."""
    pass


def categorize_message(message: str) -> MemoryCategory:
    """Assign a support category to a raw user message by keywords."""
    lower = message.lower()

    if any(word in lower for word in ('bug', 'broken', 'error', 'not working')):
        return MemoryCategory.BUG_REPORT
    if any(word in lower for word in ('feature', 'add', 'want', 'need')):
        return MemoryCategory.FEATURE_REQUEST
    if any(word in lower for word in ('how', 'what', 'why', '?')):
        return MemoryCategory.QUESTION
    if any(word in lower for word in ('great', 'love', 'hate', 'terrible')):
        return MemoryCategory.FEEDBACK
    if any(word in lower for word in ('api', 'code', 'technical', 'developer')):
        return MemoryCategory.TECHNICAL
    return MemoryCategory.GENERAL


def calculate_importance(memory_type: MemoryType, category: MemoryCategory) -> float:
    """Default importance for a memory created without an explicit score."""
    score = 0.5

    if category == MemoryCategory.BUG_REPORT:
        score += 0.3
    elif category == MemoryCategory.FEATURE_REQUEST:
        score += 0.2

    if memory_type == MemoryType.PREFERENCE:
        score += 0.2
    elif memory_type == MemoryType.EVENT:
        score += 0.1

    return min(score, 1.0)


class MemoryManagementService:
    """Unified service for memory insertion, retrieval, erasure and statistics."""

    def __init__(self,
                 embedder: Optional[BedrockEmbed] = None,
                 index: Optional[OpenSearchClient] = None,
                 llm: Optional[BedrockLLM] = None,
                 app_config: Optional[AppConfig] = None):
        """
        Initialize the memory management service.

        Args:
            embedder: Embedding provider (Bedrock from config if None)
            index: Vector index (OpenSearch from config if None)
            llm: Chat model used for fact extraction (Bedrock from config if None)
            app_config: Application configuration (global config if None)
        """
        app_config = app_config or config
        self.config = app_config.memory

        self.embed = embedder if embedder is not None else BedrockEmbed(app_config.bedrock_embed)
        self.index = index if index is not None else OpenSearchClient(app_config.opensearch)
        self.llm = llm if llm is not None else BedrockLLM(app_config.bedrock_llm)

        self.embedding_cache = EmbeddingCache(self.embed, self.config.embedding_cache_size)
        self.vector_store = MemoryVectorStore(self.index, self.embedding_cache)
        self.fact_extraction = FactExtractionService(self.llm)
        self.conflict_resolver = ConflictResolver(self.vector_store)
        self.retrieval = RetrievalService(self.vector_store)

        self.initialized = False
        logger.info('Initialized MemoryManagementService')

    async def initialize(self) -> None:
        """Prepare the vector store. Safe to call more than once."""
        if self.initialized:
            return

        await self.vector_store.initialize()
        self.initialized = True
        logger.info('MemoryManagementService ready')

    def _ensure_initialized(self) -> None:
        if not self.initialized:
            raise NotInitializedError('MemoryManagementService not initialized. Call initialize() first.')

    async def add_memory(self, memory_input: MemoryInput) -> str:
        """Persist one memory unless a near-duplicate already exists.

        Steps: embed, dedup lookup, conflict lookup (preference and
        extracted_fact only), store.

        Args:
            memory_input: Memory to create

        Returns:
            Id of the stored memory, or of the existing near-duplicate

        Raises:
            ProviderError: If the embedding provider or vector index fails
            MemoryManagementError: On any other failure
        """
        self._ensure_initialized()

        try:
            embedding = await self.embedding_cache.get_or_compute(memory_input.content)

            duplicates = await self.vector_store.search_by_embedding(
                embedding, SearchFilters(user_id=memory_input.user_id, type=memory_input.type), DEDUP_SEARCH_LIMIT)
            if duplicates and duplicates[0].relevance > self.config.dedup_threshold:
                existing_id = duplicates[0].memory.id
                logger.debug(f'Duplicate memory detected, returning existing: {existing_id}')
                return existing_id

            if memory_input.type in RESOLVABLE_TYPES:
                conflicting = await self.conflict_resolver.resolve(memory_input.user_id, memory_input)
                if conflicting is not None:
                    memory_input = await self.conflict_resolver.supersede(conflicting, memory_input)

            importance = memory_input.importance
            if importance is None:
                importance = calculate_importance(memory_input.type, memory_input.category)

            memory = Memory(id=str(uuid.uuid4()),
                            user_id=memory_input.user_id,
                            content=memory_input.content,
                            type=memory_input.type,
                            category=memory_input.category,
                            timestamp=now_ms(),
                            importance=importance,
                            embedding=embedding,
                            session_id=memory_input.session_id,
                            metadata=dict(memory_input.metadata))

            await self.vector_store.add(memory)
            return memory.id

        except ProviderError:
            raise
        except Exception as e:
            logger.error(f'Unexpected error adding memory: {e}')
            raise MemoryManagementError(f'Memory add failed: {e}')

    async def store_fact(self, user_id: str, fact: ExtractedFact, session_id: Optional[str] = None, source: str = '') -> str:
        """Persist an extracted fact with its confidence and source message."""
        return await self.add_memory(
            MemoryInput(user_id=user_id,
                        content=fact.content,
                        type=fact.type,
                        category=fact.category,
                        session_id=session_id,
                        importance=fact.importance,
                        metadata={
                            'confidence': fact.confidence,
                            'extractedFrom': source
                        }))

    async def add_interaction(self, interaction: Interaction) -> Tuple[str, List[str]]:
        """
        Store a conversation turn and the facts extracted from it.

        Args:
            interaction: User message plus assistant reply

        Returns:
            Tuple of (conversation memory id, fact memory ids)
        """
        self._ensure_initialized()

        conversation_id = await self.add_memory(
            MemoryInput(user_id=interaction.user_id,
                        content=f'User: {interaction.user_message}\nAssistant: {interaction.assistant_message}',
                        type=MemoryType.CONVERSATION,
                        category=categorize_message(interaction.user_message),
                        session_id=interaction.session_id,
                        importance=0.5,
                        metadata={
                            'userMessage': interaction.user_message,
                            'assistantMessage': interaction.assistant_message,
                            **interaction.metadata
                        }))

        facts = await self.fact_extraction.extract(interaction)
        fact_ids = []
        for fact in facts:
            fact_ids.append(await self.store_fact(interaction.user_id, fact, interaction.session_id, interaction.user_message))

        logger.info(f'Stored interaction for user {interaction.user_id} with {len(fact_ids)} facts')
        return conversation_id, fact_ids

    async def search_relevant_memories(self,
                                       user_id: str,
                                       query: str,
                                       limit: Optional[int] = None,
                                       threshold: Optional[float] = None,
                                       category: Optional[MemoryCategory] = None) -> List[Memory]:
        """
        Search for a user's most relevant memories.

        Args:
            user_id: User to search for
            query: Search query
            limit: Maximum number of memories (config default if None)
            threshold: Minimum relevance (config default if None)
            category: Restrict results to one category

        Returns:
            Memories ranked by composite score
        """
        self._ensure_initialized()

        limit = self.config.search_limit if limit is None else limit
        threshold = self.config.search_threshold if threshold is None else threshold
        return await self.retrieval.retrieve(user_id, query, limit=limit, threshold=threshold, category=category)

    async def get_memory(self, memory_id: str) -> Optional[Memory]:
        """Get a single memory, or None if it does not exist."""
        self._ensure_initialized()
        return await self.vector_store.get_by_id(memory_id)

    async def get_recent_memories(self, user_id: str, limit: int = 10) -> List[Memory]:
        """Get a user's newest memories, most recent first."""
        self._ensure_initialized()

        memories = await self.vector_store.get_by_user(user_id)
        return sorted(memories, key=lambda m: m.timestamp, reverse=True)[:limit]

    async def get_memories_by_category(self, user_id: str, category: MemoryCategory, limit: int = 20) -> List[Memory]:
        """Get a user's memories in one category, most recent first."""
        self._ensure_initialized()

        memories = [m for m in await self.vector_store.get_by_user(user_id) if m.category == category]
        return sorted(memories, key=lambda m: m.timestamp, reverse=True)[:limit]

    async def delete_memory(self, memory_id: str) -> None:
        """Delete a single memory."""
        self._ensure_initialized()
        await self.vector_store.delete_by_id(memory_id)

    async def delete_user_data(self, user_id: str) -> int:
        """
        Delete all memories for a user (GDPR erase).

        Returns:
            Number of memories deleted
        """
        self._ensure_initialized()

        deleted = await self.vector_store.delete_by_user(user_id)
        logger.info(f'Deleted all data for user: {user_id}')
        return deleted

    async def count(self, user_id: Optional[str] = None) -> int:
        """Count memories, optionally for a single user."""
        self._ensure_initialized()
        return await self.vector_store.count(user_id)

    async def get_memory_stats(self, user_id: str) -> MemoryStats:
        """
        Get memory statistics for a user.

        Returns:
            Counts by type and category, average importance and the time span covered
        """
        self._ensure_initialized()

        memories = await self.vector_store.get_by_user(user_id)

        memory_by_type = {memory_type.value: 0 for memory_type in MemoryType}
        memory_by_category = {category.value: 0 for category in MemoryCategory}
        for memory in memories:
            memory_by_type[memory.type.value] += 1
            memory_by_category[memory.category.value] += 1

        timestamps = [m.timestamp for m in memories]
        return MemoryStats(total_memories=len(memories),
                           memory_by_type=memory_by_type,
                           memory_by_category=memory_by_category,
                           avg_importance=sum(m.importance for m in memories) / len(memories) if memories else 0.0,
                           oldest_memory=min(timestamps) if timestamps else None,
                           newest_memory=max(timestamps) if timestamps else None)

    def cache_stats(self) -> Dict[str, Any]:
        """Embedding cache statistics."""
        return self.embedding_cache.stats()
