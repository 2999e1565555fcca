"""Tests for the content-addressed FIFO embedding cache."""

import pytest
from conftest import FakeEmbedder, run_async

from semantic_memory.utils.bedrock_embed import BedrockEmbedError
from semantic_memory.utils.embedding_cache import EmbeddingCache, cache_key


def test_second_lookup_is_a_hit_without_provider_call():
    embedder = FakeEmbedder()
    cache = EmbeddingCache(embedder, capacity=10)

    first = run_async(cache.get_or_compute('My name is Alice'))
    second = run_async(cache.get_or_compute('My name is Alice'))

    assert first == second
    assert embedder.calls == ['My name is Alice']
    assert cache.hits == 1
    assert cache.misses == 1


def test_callers_cannot_mutate_cached_vectors():
    embedder = FakeEmbedder()
    cache = EmbeddingCache(embedder, capacity=10)

    first = run_async(cache.get_or_compute('My name is Alice'))
    expected = list(first)
    first[0] = 99.0
    second = run_async(cache.get_or_compute('My name is Alice'))
    second.append(1.0)

    assert run_async(cache.get_or_compute('My name is Alice')) == expected


def test_keys_are_case_sensitive():
    embedder = FakeEmbedder()
    cache = EmbeddingCache(embedder, capacity=10)

    run_async(cache.get_or_compute('dark mode'))
    run_async(cache.get_or_compute('Dark mode'))

    assert len(embedder.calls) == 2
    assert cache_key('dark mode') != cache_key('Dark mode')
    assert len(cache) == 2


def test_eviction_is_insertion_order_not_access_order():
    embedder = FakeEmbedder()
    cache = EmbeddingCache(embedder, capacity=3)

    for text in ('first', 'second', 'third'):
        run_async(cache.get_or_compute(text))

    # Reading 'first' repeatedly must not protect it from eviction
    for _ in range(5):
        run_async(cache.get_or_compute('first'))

    run_async(cache.get_or_compute('fourth'))

    assert 'first' not in cache
    assert 'second' in cache
    assert 'third' in cache
    assert 'fourth' in cache
    assert len(cache) == 3


def test_evicted_entry_is_recomputed():
    embedder = FakeEmbedder()
    cache = EmbeddingCache(embedder, capacity=1)

    run_async(cache.get_or_compute('a'))
    run_async(cache.get_or_compute('b'))
    run_async(cache.get_or_compute('a'))

    assert embedder.calls == ['a', 'b', 'a']
    assert cache.misses == 3


def test_bypass_leaves_cache_and_counters_untouched():
    embedder = FakeEmbedder()
    cache = EmbeddingCache(embedder, capacity=10)

    run_async(cache.get_or_compute('text', use_cache=False))

    assert len(cache) == 0
    assert cache.hits == 0 and cache.misses == 0
    assert embedder.calls == ['text']


def test_provider_failure_propagates_and_caches_nothing():
    embedder = FakeEmbedder()
    embedder.fail = True
    cache = EmbeddingCache(embedder, capacity=10)

    with pytest.raises(BedrockEmbedError):
        run_async(cache.get_or_compute('text'))

    assert len(cache) == 0


def test_stats_and_clear():
    cache = EmbeddingCache(FakeEmbedder(), capacity=10)
    run_async(cache.get_or_compute('x'))
    run_async(cache.get_or_compute('x'))
    run_async(cache.get_or_compute('x'))
    run_async(cache.get_or_compute('y'))

    stats = cache.stats()
    assert stats['cache_size'] == 2
    assert stats['cache_hits'] == 2
    assert stats['cache_misses'] == 2
    assert stats['hit_rate'] == '50.00%'

    cache.clear()
    assert len(cache) == 0
    assert cache.stats()['total_lookups'] == 0


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        EmbeddingCache(FakeEmbedder(), capacity=0)


def test_default_capacity_evicts_exactly_the_first_text():
    cache = EmbeddingCache(FakeEmbedder())
    texts = [f'text {i}' for i in range(cache.capacity + 1)]

    run_async(cache.get_or_compute(texts[0]))
    run_async(cache.get_or_compute(texts[0]))
    for text in texts[1:]:
        run_async(cache.get_or_compute(text))

    assert cache.capacity == 1000
    assert texts[0] not in cache
    assert all(text in cache for text in texts[1:])
