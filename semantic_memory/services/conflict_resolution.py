"""
Conflict Resolver: detect facts that supersede older facts about the same attribute.
"""

import re
from dataclasses import replace
from typing import Optional, Union

from ..models.core import ExtractedFact, Memory, MemoryInput, MemoryType
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import now_ms
from .vector_store import MemoryVectorStore

logger = get_logger(__name__)

# Only these fact types can supersede an older memory
RESOLVABLE_TYPES = (MemoryType.PREFERENCE, MemoryType.EXTRACTED_FACT)

_NAME_REGEX = re.compile(r'name.*is')
_PHONE_REGEX = re.compile(r'\d{3}[-.\s]?\d{3}[-.\s]?\d{4}')
_FROM_REGEX = re.compile(r'\bfrom\b')


def classify_fact(content: str) -> Optional[str]:
    """Assign a fact-type tag by fixed pattern rules, checked in order.

    Args:
        content: Fact text

    Returns:
        'name', 'email', 'phone', 'company', 'location', or None
    """
    lower = content.lower()

    if 'name is' in lower or 'called' in lower or _NAME_REGEX.search(lower):
        return 'name'
    if '@' in lower and 'email' in lower:
        return 'email'
    if _PHONE_REGEX.search(lower) and ('call' in lower or 'phone' in lower):
        return 'phone'
    if 'works at' in lower or 'work at' in lower or 'employed by' in lower:
        return 'company'
    if 'lives in' in lower or 'live in' in lower or 'located in' in lower or _FROM_REGEX.search(lower):
        return 'location'
    return None


def _normalize(content: str) -> str:
    return content.strip().lower()


class ConflictResolver:
    """Find and supersede the memory a new fact contradicts."""

    def __init__(self, vector_store: MemoryVectorStore):
        self.vector_store = vector_store

    async def resolve(self, user_id: str, new_fact: Union[ExtractedFact, MemoryInput]) -> Optional[Memory]:
        """
        Find the existing memory a new fact supersedes.

        Candidates are the user's non-conversation memories scanned oldest
        first; the first one with the same tag and different text wins.

        Args:
            user_id: Owner of the memories
            new_fact: Fact about to be stored

        Returns:
            The conflicting memory, or None
        """
        if new_fact.type not in RESOLVABLE_TYPES:
            return None

        tag = classify_fact(new_fact.content)
        if tag is None:
            return None

        new_content = _normalize(new_fact.content)
        candidates = await self.vector_store.get_by_user(user_id)
        candidates = sorted((m for m in candidates if m.type != MemoryType.CONVERSATION), key=lambda m: m.timestamp)

        for memory in candidates:
            if classify_fact(memory.content) == tag and _normalize(memory.content) != new_content:
                logger.debug(f"Fact '{new_fact.content}' conflicts with memory {memory.id} on tag '{tag}'")
                return memory

        return None

    async def supersede(self, existing: Memory, new_input: MemoryInput) -> MemoryInput:
        """
        Delete the superseded memory and link the replacement to it.

        Args:
            existing: Memory being replaced
            new_input: Replacement about to be inserted

        Returns:
            The replacement input carrying replacedMemoryId and replacedAt
        """
        await self.vector_store.delete_by_id(existing.id)

        metadata = dict(new_input.metadata)
        metadata['replacedMemoryId'] = existing.id
        metadata['replacedAt'] = now_ms()

        logger.info(f"Replaced memory {existing.id} for user {existing.user_id}: '{existing.content}' -> '{new_input.content}'")
        return replace(new_input, metadata=metadata)
