"""
Content-addressed embedding cache in front of the embedding provider.
"""

import hashlib
from collections import OrderedDict
from typing import Any, Dict, List

from .bedrock_embed import BedrockEmbed
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CAPACITY = 1000


def cache_key(text: str) -> str:
    """SHA-256 hex digest of the exact text (no normalization)."""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


class EmbeddingCache:
    """Bounded FIFO cache of embeddings keyed by content hash.

    Eviction follows insertion order only: reading an entry does not move it,
    so once capacity is exceeded the oldest inserted entry is dropped even if
    it is read constantly.
    """

    def __init__(self, provider: BedrockEmbed, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError('Embedding cache capacity must be at least 1')

        self.provider = provider
        self.capacity = capacity
        self._entries: 'OrderedDict[str, List[float]]' = OrderedDict()
        self.hits = 0
        self.misses = 0

        logger.info(f'Initialized EmbeddingCache with capacity {capacity}')

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: str) -> bool:
        return cache_key(text) in self._entries

    async def get_or_compute(self, text: str, use_cache: bool = True) -> List[float]:
        """
        Return the embedding for text, calling the provider only on a miss.

        Args:
            text: Text to embed
            use_cache: When False, call the provider directly and leave the cache untouched

        Returns:
            Embedding vector

        Raises:
            ProviderError: If the provider fails on a miss
        """
        if not use_cache:
            return await self.provider.embed(text)

        key = cache_key(text)
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            logger.debug(f'Embedding cache hit ({key[:12]})')
            return list(cached)

        self.misses += 1
        embedding = await self.provider.embed(text)
        self._store(key, embedding)
        return embedding

    def _store(self, key: str, embedding: List[float]) -> None:
        # A concurrent miss on the same text may already have stored it
        if key in self._entries:
            return

        self._entries[key] = list(embedding)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f'Embedding cache evicted {evicted[:12]}')

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with size, hits, misses, total lookups and hit rate
        """
        total = self.hits + self.misses
        hit_rate = (self.hits / total) * 100 if total > 0 else 0.0
        return {
            'cache_size': len(self._entries),
            'capacity': self.capacity,
            'cache_hits': self.hits,
            'cache_misses': self.misses,
            'total_lookups': total,
            'hit_rate': f'{hit_rate:.2f}%'
        }

    def clear(self) -> None:
        """Drop every entry and reset the counters."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        logger.info('Embedding cache cleared')
