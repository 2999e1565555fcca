"""
Timestamp utilities for consistent time handling across the system.

Memory timestamps are integer epoch milliseconds.
"""

import time
from typing import Optional

DAY_MS = 24 * 60 * 60 * 1000
ONE_YEAR_MS = 365 * DAY_MS


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def recency_score(timestamp: int, now: Optional[int] = None) -> float:
    """Linear recency decay from 1.0 (now) to 0.0 (one year old), clamped to [0, 1].

    Args:
        timestamp: Creation time in epoch milliseconds
        now: Reference time in epoch milliseconds (current time if None)

    Returns:
        Recency score in [0, 1]
    """
    if now is None:
        now = now_ms()
    age_ms = now - timestamp
    return min(1.0, max(0.0, 1.0 - age_ms / ONE_YEAR_MS))


def age_descriptor(timestamp: int, now: Optional[int] = None) -> str:
    """Describe a timestamp's age as 'today', 'yesterday' or 'N days ago'."""
    if now is None:
        now = now_ms()
    days_ago = (now - timestamp) // DAY_MS
    if days_ago <= 0:
        return 'today'
    if days_ago == 1:
        return 'yesterday'
    return f'{days_ago} days ago'
