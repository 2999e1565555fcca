"""Shared fixtures and in-memory fakes for the semantic memory test suite."""

import asyncio
import hashlib
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Union

import numpy as np
import pytest

from semantic_memory.services.memory_management import MemoryManagementService
from semantic_memory.utils.bedrock_embed import BedrockEmbedError
from semantic_memory.utils.bedrock_llm import BedrockLLMError
from semantic_memory.utils.config import load_config

DIMENSION = 32

# ---------------------------------------------------------------------------
# Async test helper (avoids pytest-asyncio dependency)
# ---------------------------------------------------------------------------


def run_async(coro):
    """Run an async coroutine synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------


class FakeEmbedder:
    """Deterministic embedder: a pseudo-random unit vector seeded by the text's hash.

    Distinct texts get near-orthogonal vectors; `overrides` pins exact vectors.
    """

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.calls: List[str] = []
        self.overrides: Dict[str, List[float]] = {}
        self.fail = False

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise BedrockEmbedError('embedding service unavailable')
        if text in self.overrides:
            return list(self.overrides[text])
        seed = int.from_bytes(hashlib.sha256(text.encode('utf-8')).digest()[:8], 'big')
        vector = np.random.default_rng(seed).normal(size=self.dimension)
        return (vector / np.linalg.norm(vector)).tolist()

    async def health_check(self) -> bool:
        return not self.fail


class FakeVectorIndex:
    """In-memory vector index with cosine distance and equality filters."""

    def __init__(self):
        self.records: Dict[str, tuple] = {}
        self.created = False

    @staticmethod
    def _matches(metadata: dict, filter: Optional[dict]) -> bool:
        return all(metadata.get(key) == value for key, value in (filter or {}).items())

    async def create_index_if_not_exists(self) -> str:
        if self.created:
            return 'exists'
        self.created = True
        return 'created'

    async def upsert(self, id, vector, text, metadata) -> None:
        self.records[id] = (list(vector), text, dict(metadata))

    async def query(self, vector, filter, k):
        query = np.asarray(vector, dtype=float)
        hits = []
        for record_id, (stored, text, metadata) in self.records.items():
            if not self._matches(metadata, filter):
                continue
            stored = np.asarray(stored, dtype=float)
            cosine = float(np.dot(query, stored) / (np.linalg.norm(query) * np.linalg.norm(stored)))
            hits.append((record_id, text, dict(metadata), 1.0 - cosine))
        hits.sort(key=lambda hit: hit[3])
        return hits[:k]

    async def get(self, ids=None, filter=None):
        if ids is not None:
            selected = [record_id for record_id in ids if record_id in self.records]
        else:
            selected = [record_id for record_id, record in self.records.items() if self._matches(record[2], filter)]
        return [(record_id, self.records[record_id][1], dict(self.records[record_id][2]), self.records[record_id][0])
                for record_id in selected]

    async def delete(self, ids=None, filter=None) -> int:
        if ids is None:
            ids = [record[0] for record in await self.get(filter=filter)]
        deleted = 0
        for record_id in ids:
            if self.records.pop(record_id, None) is not None:
                deleted += 1
        return deleted

    async def count(self, filter=None) -> int:
        return sum(1 for record in self.records.values() if self._matches(record[2], filter))

    async def health_check(self) -> bool:
        return True


class FakeChatModel:
    """Chat model returning canned replies (or the result of a callable)."""

    def __init__(self, reply: Union[str, Callable[[list], str]] = '[]'):
        self.reply = reply
        self.calls: List[list] = []
        self.fail = False

    async def complete(self, messages, max_tokens=None, temperature=None) -> str:
        self.calls.append(messages)
        if self.fail:
            raise BedrockLLMError('chat model unavailable')
        if callable(self.reply):
            return self.reply(messages)
        return self.reply

    async def health_check(self) -> bool:
        return not self.fail


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app_config():
    app_config = load_config()
    return replace(app_config, memory=replace(app_config.memory, embedding_cache_size=1000, dedup_threshold=0.95))


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def index():
    return FakeVectorIndex()


@pytest.fixture
def chat_model():
    return FakeChatModel()


@pytest.fixture
def memory_service(embedder, index, chat_model, app_config):
    service = MemoryManagementService(embedder=embedder, index=index, llm=chat_model, app_config=app_config)
    run_async(service.initialize())
    return service
