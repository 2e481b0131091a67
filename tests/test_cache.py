from __future__ import annotations

import pytest

from flashfusion.cache import CacheEntry, InferenceMetrics, ResponseCache, cache_key, normalize_message
from flashfusion.cost import ModelTier


def _entry(key: str, text: str = "answer", created_at: float = 0.0) -> CacheEntry:
    return CacheEntry(
        key=key,
        text=text,
        metrics=InferenceMetrics(ttft=3.0, total_latency=10.0, cached=False, accelerated=False),
        cost_estimate=0.001,
        created_at=created_at,
    )


def test_cache_key_normalizes_case_and_whitespace():
    assert normalize_message("  HELLO   World ") == "hello world"
    assert cache_key("hello", ModelTier.FLASH) == cache_key("HELLO  ", ModelTier.FLASH)


def test_cache_key_partitions_by_tier():
    assert cache_key("hello", ModelTier.FLASH) != cache_key("hello", ModelTier.PRO)


def test_get_within_ttl_hits(clock):
    cache = ResponseCache(ttl_s=60, max_entries=4, clock=clock)
    cache.put("a", _entry("a", created_at=clock()))
    clock.advance(59.9)
    got = cache.get("a")
    assert got is not None and got.text == "answer"
    assert cache.hits == 1


def test_expired_entry_is_absent_but_still_stored(clock):
    cache = ResponseCache(ttl_s=60, max_entries=4, clock=clock)
    cache.put("a", _entry("a", created_at=clock()))
    clock.advance(60)
    assert cache.get("a") is None
    # lazy expiry: still occupies capacity
    assert cache.size == 1
    assert cache.misses == 1


def test_capacity_two_evicts_oldest_inserted(clock):
    cache = ResponseCache(ttl_s=60, max_entries=2, clock=clock)
    for k in ("A", "B", "C"):
        cache.put(k, _entry(k, created_at=clock()))
    assert cache.get("A") is None
    assert cache.get("B") is not None
    assert cache.get("C") is not None
    assert cache.evictions == 1
    assert cache.size == 2


def test_eviction_ignores_read_recency(clock):
    cache = ResponseCache(ttl_s=60, max_entries=2, clock=clock)
    cache.put("A", _entry("A", created_at=clock()))
    cache.put("B", _entry("B", created_at=clock()))
    assert cache.get("A") is not None  # reading A does not protect it
    cache.put("C", _entry("C", created_at=clock()))
    assert cache.keys() == ["B", "C"]


def test_overwrite_existing_key_does_not_evict(clock):
    cache = ResponseCache(ttl_s=60, max_entries=2, clock=clock)
    cache.put("A", _entry("A", created_at=clock()))
    cache.put("B", _entry("B", created_at=clock()))
    cache.put("A", _entry("A", text="newer", created_at=clock()))
    assert cache.evictions == 0
    assert cache.keys() == ["B", "A"]
    assert cache.get("A").text == "newer"


def test_each_overflowing_put_evicts_exactly_one(clock):
    cache = ResponseCache(ttl_s=60, max_entries=3, clock=clock)
    for i in range(10):
        cache.put(str(i), _entry(str(i), created_at=clock()))
        assert cache.size == min(i + 1, 3)
        assert cache.evictions == max(0, i + 1 - 3)
    assert cache.keys() == ["7", "8", "9"]


def test_clear_and_dispose(clock):
    cache = ResponseCache(ttl_s=60, max_entries=2, clock=clock)
    cache.put("A", _entry("A", created_at=clock()))
    cache.get("A")
    cache.clear()
    assert cache.size == 0 and cache.hits == 0
    cache.dispose()
    assert cache.disposed
    with pytest.raises(RuntimeError):
        cache.get("A")
    cache.dispose()  # idempotent


def test_rejects_bad_configuration():
    with pytest.raises(ValueError):
        ResponseCache(max_entries=0)
    with pytest.raises(ValueError):
        ResponseCache(ttl_s=0)
