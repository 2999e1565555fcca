"""
Fact Extraction Service: LLM extraction with a deterministic keyword fallback.
"""

import json
import math
import re
from typing import Any, List, Optional

from ..models.core import ExtractedFact, Interaction, MemoryCategory, MemoryType
from ..utils.bedrock_llm import BedrockLLM
from ..utils.errors import ProviderError
from ..utils.json_utils import clean_json_response
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

MAX_FACT_LENGTH = 500
MIN_CONFIDENCE = 0.5
DEFAULT_IMPORTANCE = 0.5
DEFAULT_CONFIDENCE = 0.7

EXTRACTION_SYSTEM_PROMPT = """
You are a fact extraction system for a customer support assistant. Extract facts the USER explicitly stated in their message.

Extract facts such as:
- Names and how the user wants to be addressed
- Contact information (email, phone)
- Location and company / employer
- Problems, errors and bug reports
- Feature requests and needs
- Preferences (tools, communication style, technical level)
- Sentiment (satisfaction, frustration)

Return a JSON array with this exact format:
```json
[
  {
    "content": "short third-person statement, e.g. Customer's name is Alice",
    "importance": 0.0-1.0,
    "confidence": 0.0-1.0,
    "type": "extracted_fact|preference|sentiment|event",
    "category": "bug_report|feature_request|question|feedback|technical|general"
  }
]
```

Only extract what is explicitly stated. Do not infer or assume facts.
Return empty array [] if there is nothing worth remembering."""

_NAME_PATTERN = re.compile(r'my name is ([a-zA-Z]+)', re.IGNORECASE)
_CALL_ME_PATTERN = re.compile(r'call me ([a-zA-Z]+)', re.IGNORECASE)
_I_AM_PATTERN = re.compile(r'i am ([a-zA-Z]+)', re.IGNORECASE)
_I_AM_STOPWORDS = ('a', 'the', 'an', 'having', 'getting')


def _parse_unit_interval(value: Any, default: float) -> float:
    """Parse a number and clamp it to [0, 1], using default when missing or invalid."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(1.0, max(0.0, number))


def validate_fact(raw: Any) -> Optional[ExtractedFact]:
    """Validate one LLM-produced fact.

    Invalid enums and numbers are defaulted or clamped; facts with unusable
    content or confidence below 0.5 are rejected.

    Args:
        raw: One element of the parsed JSON array

    Returns:
        ExtractedFact, or None when the fact is rejected
    """
    if not isinstance(raw, dict):
        logger.debug(f'Dropping non-object fact: {raw!r}')
        return None

    content = raw.get('content')
    if not isinstance(content, str) or not content.strip():
        logger.debug('Dropping fact with empty content')
        return None
    content = content.strip()
    if len(content) > MAX_FACT_LENGTH:
        logger.debug(f'Dropping fact longer than {MAX_FACT_LENGTH} characters')
        return None

    confidence = _parse_unit_interval(raw.get('confidence'), DEFAULT_CONFIDENCE)
    if confidence < MIN_CONFIDENCE:
        logger.debug(f'Dropping low-confidence fact ({confidence:.2f}): {content}')
        return None

    return ExtractedFact(content=content,
                         importance=_parse_unit_interval(raw.get('importance'), DEFAULT_IMPORTANCE),
                         confidence=confidence,
                         type=MemoryType.parse(raw.get('type'), MemoryType.EXTRACTED_FACT),
                         category=MemoryCategory.parse(raw.get('category'), MemoryCategory.GENERAL))


def extract_with_keywords(message: str) -> List[ExtractedFact]:
    """Deterministic keyword-based extraction. Never raises; may return [].

    Args:
        message: The user's message

    Returns:
        Facts built from canned templates with fixed importance weights
    """
    lower = message.lower()
    facts = []

    def add(content: str, importance: float, fact_type: MemoryType, category: MemoryCategory) -> None:
        facts.append(ExtractedFact(content=content, importance=importance, confidence=1.0, type=fact_type, category=category))

    # Explicit remember commands
    if any(phrase in lower for phrase in ('remember', 'my name is', 'call me', 'i am ')):
        remember_what = message
        if 'my name is' in lower:
            match = _NAME_PATTERN.search(message)
            if match:
                remember_what = f"Customer's name is {match.group(1)}"
        elif 'call me' in lower:
            match = _CALL_ME_PATTERN.search(message)
            if match:
                remember_what = f'Customer prefers to be called {match.group(1)}'
        elif 'i am ' in lower:
            match = _I_AM_PATTERN.search(message)
            if match and match.group(1).lower() not in _I_AM_STOPWORDS:
                remember_what = f'Customer is {match.group(1)}'

        add(remember_what, 0.95, MemoryType.PREFERENCE, MemoryCategory.GENERAL)

    if any(phrase in lower for phrase in ('broken', 'not working', 'error', 'bug')):
        add(f'Customer reported: {message}', 0.8, MemoryType.EVENT, MemoryCategory.BUG_REPORT)

    if any(phrase in lower for phrase in ('want', 'need', 'would like', 'feature')):
        add(f'Customer requested: {message}', 0.7, MemoryType.EVENT, MemoryCategory.FEATURE_REQUEST)

    if any(phrase in lower for phrase in ('prefer', 'like to', 'developer', 'technical')):
        add(f'Customer preference: {message}', 0.6, MemoryType.PREFERENCE, MemoryCategory.GENERAL)

    if any(phrase in lower for phrase in ('company', 'organization', 'work for', 'work at')):
        add(f'Customer info: {message}', 0.7, MemoryType.PREFERENCE, MemoryCategory.GENERAL)

    return facts


class FactExtractionService:
    """Turn a user message into candidate facts."""

    def __init__(self, llm: BedrockLLM):
        """
        Initialize the fact extraction service.

        Args:
            llm: Chat model used for primary extraction
        """
        self.llm = llm
        logger.info('Initialized FactExtractionService')

    async def extract(self, interaction: Interaction) -> List[ExtractedFact]:
        """Extract facts from the user's side of an interaction.

        The LLM extractor runs first; when it reports failure the keyword
        extractor is used instead.

        Args:
            interaction: The interaction to extract from

        Returns:
            Facts in extractor order
        """
        message = interaction.user_message
        if not message or not message.strip():
            logger.debug('Empty user message, nothing to extract')
            return []

        facts = await self.extract_with_llm(message)
        if facts is None:
            logger.warning('LLM fact extraction unavailable, using keyword extraction')
            facts = extract_with_keywords(message)

        logger.debug(f'Extracted {len(facts)} facts for user {interaction.user_id}')
        return facts

    async def extract_with_llm(self, message: str) -> Optional[List[ExtractedFact]]:
        """Primary extractor.

        Args:
            message: The user's message

        Returns:
            Validated facts, or None when the model failed or its reply was unusable
        """
        messages = [{
            'role': 'system',
            'content': EXTRACTION_SYSTEM_PROMPT
        }, {
            'role': 'user',
            'content': f'Extract facts from the customer message:\n{message}'
        }]

        try:
            response = await self.llm.complete(messages)
        except ProviderError as e:
            logger.error(f'LLM error during fact extraction: {e}')
            return None

        try:
            facts_data = json.loads(clean_json_response(response))
        except (json.JSONDecodeError, TypeError, AttributeError) as e:
            logger.error(f'Failed to parse fact extraction JSON: {e}')
            return None

        if not isinstance(facts_data, list):
            logger.warning(f'Expected list, got {type(facts_data).__name__}')
            return None

        facts = []
        for raw in facts_data:
            fact = validate_fact(raw)
            if fact is not None:
                facts.append(fact)

        logger.debug(f'LLM extracted {len(facts)}/{len(facts_data)} valid facts')
        return facts
