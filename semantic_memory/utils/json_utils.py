"""
JSON utilities for cleaning LLM responses.
"""

import re

_FENCED_BLOCK = re.compile(r'```(?:json|JSON)?\s*(.*?)\s*```', re.DOTALL)


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing Markdown code fences.

    Handles a fenced block anywhere in the reply as well as a reply that only
    opens or only closes a fence.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    match = _FENCED_BLOCK.search(response)
    if match:
        return match.group(1).strip()

    # Unbalanced fences
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()
