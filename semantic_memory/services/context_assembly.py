"""
Context Assembler: turn ranked memories into a token-budgeted prompt block.
"""

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..models.core import Memory, MemoryCategory, MemoryType, SessionState
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import age_descriptor, now_ms, recency_score

logger = get_logger(__name__)

NO_CONTEXT = 'No previous context available for this customer.'

SYSTEM_PROMPT = """You are a helpful AI assistant with memory of previous conversations.

HOW TO USE CONTEXT:
- The CONTEXT FROM MEMORY section shows previous conversations and known facts about the customer
- Example: If context shows "Customer's name is Alice", then the user's name is Alice
- Extract facts from what the user actually said in those conversations
- NEVER make up information not present in the context

RULES:
- Answer based on information found in the context
- If context doesn't contain the answer, say "I don't have that information"
- Be natural and conversational
- Don't roleplay or create fictional scenarios"""


@dataclass(frozen=True)
class Section:
    """One block of the assembled context."""
    title: str
    select: Callable[[Memory], bool]
    max_items: int
    char_limit: int


# Priority order; earlier sections are filled first
SECTIONS = (
    Section('CUSTOMER PROFILE:', lambda m: m.type in (MemoryType.PREFERENCE, MemoryType.EXTRACTED_FACT), 10, 150),
    Section('KNOWN ISSUES:', lambda m: m.category == MemoryCategory.BUG_REPORT, 5, 120),
    Section('FEATURE REQUESTS:', lambda m: m.category == MemoryCategory.FEATURE_REQUEST, 5, 120),
    Section('SENTIMENT HISTORY:', lambda m: m.type == MemoryType.SENTIMENT, 3, 100),
    Section('RECENT INTERACTIONS:', lambda m: m.type == MemoryType.CONVERSATION, 3, 200),
)


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)


def truncation_marker(dropped: int) -> str:
    return f'... ({dropped} more items truncated due to context limit)'


def context_score(memory: Memory, now: int) -> float:
    """importance x 0.7 + recency x 0.3, independent of the retrieval score."""
    return memory.importance * 0.7 + recency_score(memory.timestamp, now) * 0.3


def format_item(index: int, memory: Memory, char_limit: int, now: int) -> str:
    content = memory.content
    if len(content) > char_limit:
        content = content[:char_limit] + '...'
    return f'{index}. [{age_descriptor(memory.timestamp, now)}] {content}'


def _plan(memories: List[Memory], now: int) -> List[Tuple[str, bool]]:
    """Lay out every header and item line in priority order as (text, is_item)."""
    ranked = sorted(memories, key=lambda m: context_score(m, now), reverse=True)

    plan = []
    for section in SECTIONS:
        items = [m for m in ranked if section.select(m)][:section.max_items]
        if not items:
            continue
        plan.append((f'\n{section.title}', False))
        for i, memory in enumerate(items):
            plan.append((format_item(i + 1, memory, section.char_limit, now), True))
    return plan


def _marker_after(plan: List[Tuple[str, bool]], cut: int) -> str:
    return truncation_marker(sum(1 for _, is_item in plan[cut:] if is_item))


def assemble(memories: List[Memory], max_tokens: int = 2000, now: Optional[int] = None) -> str:
    """
    Build the context block for a set of memories.

    Lines are added in section order while the block stays within
    max_tokens. The first line that does not fit ends assembly: a single
    truncation marker counting the dropped items is emitted, and earlier
    lines are given back if the marker itself would not fit.

    Args:
        memories: Memories to include
        max_tokens: Token budget for the whole block
        now: Reference time in epoch milliseconds (current time if None)

    Returns:
        The context block
    """
    if not memories:
        return NO_CONTEXT

    if now is None:
        now = now_ms()

    plan = _plan(memories, now)
    lines: List[str] = []

    for position, (text, _) in enumerate(plan):
        if estimate_tokens('\n'.join(lines + [text])) <= max_tokens:
            lines.append(text)
            continue

        cut = position
        while lines and estimate_tokens('\n'.join(lines + [_marker_after(plan, cut)])) > max_tokens:
            lines.pop()
            cut -= 1
        # Do not leave a header without items
        while lines and not plan[cut - 1][1]:
            lines.pop()
            cut -= 1

        if estimate_tokens('\n'.join(lines + [_marker_after(plan, cut)])) <= max_tokens:
            lines.append(_marker_after(plan, cut))
        break

    result = '\n'.join(lines)
    logger.debug(f'Built context: {estimate_tokens(result)}/{max_tokens} tokens, {len(memories)} memories')
    return result


def build_session_context(session: SessionState, now: Optional[int] = None) -> str:
    """Describe the session for the prompt."""
    if session.message_count == 0:
        return 'SESSION INFO: First interaction in this session'

    if now is None:
        now = now_ms()
    minutes_ago = (now - session.last_interaction_time) // 60000
    last = f'{minutes_ago} minutes ago' if minutes_ago > 0 else 'just now'

    return (f'SESSION INFO:\n'
            f'- This is message #{session.message_count + 1} in this session\n'
            f'- Last interaction: {last}\n'
            f'- Recent context from this session available')


def build_prompt(context: str, user_message: str) -> str:
    """Build the complete prompt with memory context."""
    return f"""{SYSTEM_PROMPT}

CONTEXT FROM MEMORY:
{context}

CURRENT CONVERSATION:
User: {user_message}
Assistant:"""
