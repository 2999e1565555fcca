"""Tests for token-budgeted context assembly and prompt building."""

import re

import pytest

from semantic_memory.models.core import Memory, MemoryCategory, MemoryType, SessionState
from semantic_memory.services.context_assembly import (NO_CONTEXT, SYSTEM_PROMPT, assemble, build_prompt,
                                                       build_session_context, estimate_tokens, format_item)
from semantic_memory.utils.timestamp_utils import DAY_MS, age_descriptor

NOW = 1_700_000_000_000
ITEM_LINE = re.compile(r'^\d+\. \[')
MARKER = re.compile(r'^\.\.\. \((\d+) more items truncated due to context limit\)$')


def _memory(memory_id, content, memory_type, category=MemoryCategory.GENERAL, importance=0.5, timestamp=NOW):
    return Memory(id=memory_id,
                  user_id='u1',
                  content=content,
                  type=memory_type,
                  category=category,
                  timestamp=timestamp,
                  importance=importance)


def test_no_memories():
    assert assemble([], now=NOW) == NO_CONTEXT


def test_profile_precedes_known_issues():
    memories = [
        _memory('bug', 'Customer reported: login broken', MemoryType.EVENT, MemoryCategory.BUG_REPORT, 0.8),
        _memory('name', "Customer's name is Alice", MemoryType.PREFERENCE, importance=0.95),
    ]

    context = assemble(memories, max_tokens=2000, now=NOW)

    assert context.index('CUSTOMER PROFILE:') < context.index('KNOWN ISSUES:')
    assert "1. [today] Customer's name is Alice" in context
    assert '1. [today] Customer reported: login broken' in context
    assert 'truncated' not in context


def test_preference_and_bug_report_example():
    memories = [
        _memory('pref', 'User loves dark mode', MemoryType.PREFERENCE, importance=0.6),
        _memory('bug', 'Bug: login fails', MemoryType.EVENT, MemoryCategory.BUG_REPORT, 0.8),
    ]

    context = assemble(memories, max_tokens=2000, now=NOW)

    assert context.index('CUSTOMER PROFILE') < context.index('KNOWN ISSUES')
    assert context.index('User loves dark mode') < context.index('Bug: login fails')


def test_sections_are_omitted_when_empty():
    context = assemble([_memory('c', 'User: hi\nAssistant: hello', MemoryType.CONVERSATION)], now=NOW)

    assert 'RECENT INTERACTIONS:' in context
    assert 'CUSTOMER PROFILE:' not in context
    assert 'KNOWN ISSUES:' not in context


def test_items_ordered_by_importance_and_recency():
    memories = [
        _memory('low', 'low importance fact', MemoryType.EXTRACTED_FACT, importance=0.2),
        _memory('high', 'high importance fact', MemoryType.EXTRACTED_FACT, importance=0.9),
        _memory('old', 'old important fact', MemoryType.EXTRACTED_FACT, importance=0.9, timestamp=NOW - 200 * DAY_MS),
    ]

    context = assemble(memories, now=NOW)

    assert context.index('high importance fact') < context.index('old important fact') < context.index('low importance fact')
    assert '[200 days ago] old important fact' in context


def test_section_item_cap():
    memories = [_memory(f's{i}', f'mood {i}', MemoryType.SENTIMENT) for i in range(6)]

    lines = assemble(memories, now=NOW).split('\n')

    assert sum(1 for line in lines if ITEM_LINE.match(line)) == 3


def test_long_content_is_cut_at_section_limit():
    line = format_item(1, _memory('m', 'x' * 300, MemoryType.EVENT), 120, NOW)
    assert line == '1. [today] ' + 'x' * 120 + '...'


@pytest.mark.parametrize('max_tokens', [40, 120, 200, 333])
def test_budget_is_respected_and_marker_counts_dropped_items(max_tokens):
    memories = [_memory(f'p{i}', f'preference number {i} ' + 'y' * 120, MemoryType.PREFERENCE) for i in range(10)]

    context = assemble(memories, max_tokens=max_tokens, now=NOW)
    lines = context.split('\n')

    assert estimate_tokens(context) <= max_tokens

    kept = sum(1 for line in lines if ITEM_LINE.match(line))
    markers = [MARKER.match(line) for line in lines if MARKER.match(line)]
    assert len(markers) == 1
    assert kept + int(markers[0].group(1)) == 10


def test_marker_never_leaves_dangling_header():
    memories = [_memory(f'p{i}', 'z' * 140, MemoryType.PREFERENCE) for i in range(10)]
    memories.append(_memory('bug', 'w' * 110, MemoryType.EVENT, MemoryCategory.BUG_REPORT))

    for max_tokens in range(20, 500, 7):
        lines = assemble(memories, max_tokens=max_tokens, now=NOW).split('\n')
        for position, line in enumerate(lines):
            if line.endswith(':') and not ITEM_LINE.match(line):
                assert position + 1 < len(lines) and ITEM_LINE.match(lines[position + 1])


def test_tiny_budget_yields_empty_block():
    context = assemble([_memory('p', 'a' * 100, MemoryType.PREFERENCE)], max_tokens=5, now=NOW)
    assert estimate_tokens(context) <= 5


def test_age_descriptors():
    assert age_descriptor(NOW, NOW) == 'today'
    assert age_descriptor(NOW - DAY_MS, NOW) == 'yesterday'
    assert age_descriptor(NOW - 5 * DAY_MS - 1, NOW) == '5 days ago'


def test_session_context():
    assert build_session_context(SessionState(user_id='u1'), now=NOW) == 'SESSION INFO: First interaction in this session'

    session = SessionState(user_id='u1', message_count=2, last_interaction_time=NOW - 5 * 60000)
    text = build_session_context(session, now=NOW)

    assert 'message #3' in text
    assert '5 minutes ago' in text

    session = SessionState(user_id='u1', message_count=1, last_interaction_time=NOW - 1000)
    assert 'just now' in build_session_context(session, now=NOW)


def test_build_prompt():
    prompt = build_prompt('CTX', 'What is my name?')

    assert prompt.startswith(SYSTEM_PROMPT)
    assert 'CONTEXT FROM MEMORY:\nCTX' in prompt
    assert prompt.endswith('User: What is my name?\nAssistant:')
