"""
MCP Interface Layer using fastmcp to expose the support agent and its memory.
"""
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from .models.core import Memory, MemoryCategory
from .services.memory_management import MemoryManagementError, MemoryManagementService
from .services.support_agent import SupportAgent
from .utils.config import config
from .utils.errors import ProviderError
from .utils.health_check import get_health_status
from .utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Semantic Memory')
memory_service = MemoryManagementService()
agent = SupportAgent(memory_service)


def _memory_to_dict(memory: Memory) -> Dict[str, Any]:
    return {
        'id': memory.id,
        'content': memory.content,
        'type': memory.type.value,
        'category': memory.category.value,
        'timestamp': memory.timestamp,
        'importance': memory.importance,
        'relevance': memory.relevance,
        'metadata': memory.metadata
    }


@mcp.tool()
async def chat(user_id: str, message: str, session_id: str = 'default') -> Dict[str, Any]:
    """Answer a customer message using their memories.

    Args:
        user_id: Customer ID
        message: Customer message
        session_id: Conversation ID (default: 'default')

    Returns:
        Reply, memories used and timing metadata
    """
    if not user_id or not user_id.strip():
        raise ValueError('User ID is required')
    if not message or not message.strip():
        raise ValueError('Message is required')

    try:
        await agent.initialize()
        result = await agent.chat(user_id, message, session_id)
        return {
            'response': result.response,
            'context': [_memory_to_dict(m) for m in result.context],
            'memories_used': result.memories_used,
            'timestamp': result.timestamp,
            'metadata': {
                'response_time': result.response_time,
                'relevance_score': result.relevance_score
            }
        }
    except (ProviderError, MemoryManagementError) as e:
        logger.error(f'Chat failed for user {user_id}: {e}')
        raise Exception(f'Chat failed: {e}')


@mcp.tool()
async def search_memories(user_id: str, query: str, top_k: int = 5, category: Optional[str] = None) -> List[Dict[str, Any]]:
    """Search a customer's memories.

    Args:
        user_id: Customer ID
        query: Natural language query
        top_k: Maximum number of results to return (default: 5)
        category: Optional category filter

    Returns:
        Ranked memories
    """
    if not user_id or not user_id.strip():
        raise ValueError('User ID is required')
    if not query or not query.strip():
        return []

    await agent.initialize()
    memory_category = MemoryCategory.strict(category) if category else None
    memories = await memory_service.search_relevant_memories(user_id, query, limit=top_k, category=memory_category)

    logger.debug(f'MCP search returned {len(memories)} memories for user {user_id}')
    return [_memory_to_dict(m) for m in memories]


@mcp.tool()
async def get_memories(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """List a customer's most recent memories."""
    await agent.initialize()
    return [_memory_to_dict(m) for m in await memory_service.get_recent_memories(user_id, limit)]


@mcp.tool()
async def get_memory_stats(user_id: str) -> Dict[str, Any]:
    """Memory statistics for a customer."""
    await agent.initialize()
    return asdict(await memory_service.get_memory_stats(user_id))


@mcp.tool()
async def delete_user_data(user_id: str) -> Dict[str, Any]:
    """Erase every memory of a customer."""
    await agent.initialize()
    deleted = await memory_service.delete_user_data(user_id)
    return {'user_id': user_id, 'deleted': deleted}


@mcp.tool()
async def get_session(session_id: str) -> Optional[Dict[str, Any]]:
    """Session counters, or null for an unknown session."""
    session = agent.get_session_info(session_id)
    if session is None:
        return None
    return {
        'user_id': session.user_id,
        'message_count': session.message_count,
        'last_interaction_time': session.last_interaction_time,
        'recent_memories': [_memory_to_dict(m) for m in session.recent_memories]
    }


@mcp.tool()
async def clear_session(session_id: str) -> Dict[str, Any]:
    """Forget a session."""
    return {'session_id': session_id, 'cleared': agent.clear_session(session_id)}


@mcp.tool()
async def agent_stats() -> Dict[str, Any]:
    """Agent and embedding cache statistics."""
    return {**agent.get_stats(), 'cache': memory_service.cache_stats()}


@mcp.tool()
async def health() -> Dict[str, Any]:
    """Health of the chat model, embedding provider and vector index."""
    return await get_health_status(memory_service.llm, memory_service.embed, memory_service.index)


if __name__ == '__main__':
    mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
