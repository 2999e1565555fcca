"""
Support Agent: the per-turn chat flow over the memory engine.
"""

from typing import Any, Dict, Optional

from ..models.core import ChatResponse, Interaction, SessionState
from ..utils.bedrock_llm import BedrockLLM
from ..utils.errors import NotInitializedError
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import now_ms
from .context_assembly import assemble, build_prompt, build_session_context
from .memory_management import MemoryManagementService
from .session_tracker import SessionTracker

logger = get_logger(__name__)


class SupportAgent:
    """Answer customer messages with memory: retrieve, assemble, answer, persist."""

    def __init__(self, memory_service: MemoryManagementService, llm: Optional[BedrockLLM] = None):
        """
        Initialize the support agent.

        Args:
            memory_service: Memory engine used for retrieval and storage
            llm: Chat model answering the customer (the memory service's model if None)
        """
        self.memory = memory_service
        self.llm = llm if llm is not None else memory_service.llm
        self.sessions = SessionTracker()
        self.initialized = False

        self.total_interactions = 0
        self.total_response_time = 0
        self.total_memories_used = 0

        logger.info('Initialized SupportAgent')

    async def initialize(self) -> None:
        """Initialize the memory engine. Safe to call more than once."""
        if self.initialized:
            return

        await self.memory.initialize()
        self.initialized = True
        logger.info('SupportAgent ready')

    async def chat(self, user_id: str, message: str, session_id: str) -> ChatResponse:
        """
        Run one chat turn.

        Turns of the same session are serialized so message counts are never lost.

        Args:
            user_id: Customer id
            message: Customer message
            session_id: Conversation id

        Returns:
            The reply and the memories used to produce it

        Raises:
            NotInitializedError: If initialize() was not awaited
            ProviderError: If the chat model, embedding provider or index fails
        """
        if not self.initialized:
            raise NotInitializedError('SupportAgent not initialized. Call initialize() first.')

        async with self.sessions.lock(session_id):
            result = await self._chat_turn(user_id, message, session_id)

        self.total_interactions += 1
        self.total_response_time += result.response_time
        self.total_memories_used += result.memories_used
        return result

    async def _chat_turn(self, user_id: str, message: str, session_id: str) -> ChatResponse:
        start_time = now_ms()
        session = self.sessions.get_or_create(session_id, user_id)

        # 1. Retrieve relevant memories
        memories = await self.memory.search_relevant_memories(user_id,
                                                              message,
                                                              limit=self.memory.config.search_limit,
                                                              threshold=self.memory.config.chat_search_threshold)
        logger.debug(f'Found {len(memories)} relevant memories for session {session_id}')

        # 2. Build context from memories + session state
        context = assemble(memories, max_tokens=self.memory.config.context_max_tokens)
        full_context = f'{context}\n\n{build_session_context(session)}'

        # 3. Generate the answer
        response = await self.llm.complete([{'role': 'user', 'content': build_prompt(full_context, message)}])

        # 4. Store this interaction
        await self.memory.add_interaction(
            Interaction(user_id=user_id, user_message=message, assistant_message=response, session_id=session_id, timestamp=now_ms()))

        # 5. Update session state (the session may have been cleared mid-turn)
        self.sessions.get_or_create(session_id, user_id)
        self.sessions.touch(session_id, memories)

        response_time = now_ms() - start_time
        relevance_score = sum(m.relevance or 0.0 for m in memories) / len(memories) if memories else 0.0
        logger.info(f'Response generated in {response_time}ms using {len(memories)} memories')

        return ChatResponse(response=response,
                            context=memories,
                            memories_used=len(memories),
                            timestamp=now_ms(),
                            response_time=response_time,
                            relevance_score=relevance_score)

    def get_stats(self) -> Dict[str, Any]:
        """Agent-level statistics."""
        avg_response_time = self.total_response_time / self.total_interactions if self.total_interactions else 0
        avg_memories_used = self.total_memories_used / self.total_interactions if self.total_interactions else 0

        return {
            'total_interactions': self.total_interactions,
            'avg_response_time': round(avg_response_time),
            'avg_memories_used': f'{avg_memories_used:.1f}',
            'cache_hit_rate': self.memory.cache_stats()['hit_rate'],
            'active_sessions': self.sessions.active_sessions
        }

    def get_session_info(self, session_id: str) -> Optional[SessionState]:
        """Session state, or None for an unknown session."""
        return self.sessions.get(session_id)

    def clear_session(self, session_id: str) -> bool:
        return self.sessions.clear(session_id)
