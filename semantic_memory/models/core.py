"""
Core data models for the semantic memory engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MemoryType(str, Enum):
    """Kind of record a memory represents."""
    CONVERSATION = 'conversation'  # Full conversation turn
    EXTRACTED_FACT = 'extracted_fact'  # Key information
    PREFERENCE = 'preference'  # User preferences
    SENTIMENT = 'sentiment'  # Emotional state
    EVENT = 'event'  # Important actions

    @classmethod
    def parse(cls, value: Any, default: 'MemoryType') -> 'MemoryType':
        """Map a raw value onto the enum, falling back to default when invalid."""
        if isinstance(value, str):
            value = value.strip().lower()
        try:
            return cls(value)
        except (TypeError, ValueError):
            return default


class MemoryCategory(str, Enum):
    """Support topic a memory belongs to."""
    BUG_REPORT = 'bug_report'
    FEATURE_REQUEST = 'feature_request'
    QUESTION = 'question'
    FEEDBACK = 'feedback'
    TECHNICAL = 'technical'
    GENERAL = 'general'

    @classmethod
    def parse(cls, value: Any, default: Optional['MemoryCategory']) -> Optional['MemoryCategory']:
        """Map a raw value onto the enum, falling back to default when invalid."""
        if isinstance(value, str):
            value = value.strip().lower()
        try:
            return cls(value)
        except (TypeError, ValueError):
            return default

    @classmethod
    def strict(cls, value: str) -> 'MemoryCategory':
        """Map user input onto the enum, rejecting unknown values."""
        category = cls.parse(value, None)
        if category is None:
            raise ValueError(f"Unknown category '{value}'. Expected one of: {', '.join(c.value for c in cls)}")
        return category


@dataclass(frozen=True)
class Memory:
    """A stored, embedded record. Superseded rather than edited."""
    id: str
    user_id: str
    content: str
    type: MemoryType
    category: MemoryCategory
    timestamp: int  # Epoch milliseconds
    importance: float  # 0-1 score
    embedding: Optional[List[float]] = None
    session_id: Optional[str] = None
    relevance: Optional[float] = None  # Similarity score when retrieved
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MemoryInput:
    """Request to create a memory."""
    user_id: str
    content: str
    type: MemoryType
    category: MemoryCategory
    session_id: Optional[str] = None
    importance: Optional[float] = None  # Computed from type/category if None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Interaction:
    """One user/assistant exchange; input to memory creation, not persisted itself."""
    user_id: str
    user_message: str
    assistant_message: str
    session_id: Optional[str]
    timestamp: int
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchResult:
    """A memory returned by nearest-neighbour search."""
    memory: Memory
    distance: float  # Cosine distance
    relevance: float  # 1 - distance


@dataclass
class SearchFilters:
    """Equality filters plus a timestamp range applied after the kNN query."""
    user_id: Optional[str] = None
    type: Optional[MemoryType] = None
    category: Optional[MemoryCategory] = None
    timestamp_gte: Optional[int] = None
    timestamp_lte: Optional[int] = None


@dataclass
class ExtractedFact:
    """Candidate fact produced by the fact extractor."""
    content: str
    importance: float
    confidence: float
    type: MemoryType
    category: MemoryCategory


@dataclass
class SessionState:
    """Per-conversation counters kept in process memory only."""
    user_id: str
    message_count: int = 0
    last_interaction_time: int = 0
    recent_memories: List[Memory] = field(default_factory=list)


@dataclass
class MemoryStats:
    """Aggregate view over a user's memories."""
    total_memories: int
    memory_by_type: Dict[str, int]
    memory_by_category: Dict[str, int]
    avg_importance: float
    oldest_memory: Optional[int]
    newest_memory: Optional[int]


@dataclass
class ChatResponse:
    """Reply of the support agent together with the memories it used."""
    response: str
    context: List[Memory]
    memories_used: int
    timestamp: int
    response_time: int  # Milliseconds
    relevance_score: float  # Mean relevance of the memories used
