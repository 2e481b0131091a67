from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Callable, MutableMapping

from .cost import ModelTier


@dataclass(frozen=True)
class InferenceMetrics:
    ttft: float  # ms, estimated (see InferenceOrchestrator)
    total_latency: float  # ms
    cached: bool
    accelerated: bool

    def to_dict(self) -> dict:
        return {
            "ttft": self.ttft,
            "totalLatency": self.total_latency,
            "cached": self.cached,
            "accelerated": self.accelerated,
        }


@dataclass(frozen=True)
class CacheEntry:
    key: str
    text: str
    metrics: InferenceMetrics
    cost_estimate: float
    created_at: float  # seconds, on the cache's clock


def normalize_message(message: str) -> str:
    return " ".join(message.casefold().split())


def cache_key(message: str, tier: ModelTier | str) -> str:
    """
    Deterministic key for (normalized message, tier).

    Normalization case-folds, trims and collapses whitespace runs, so
    "hello" and "HELLO  " share a key. The tier is part of the key so the
    same question under different tiers never collides.
    """
    tier_id = tier.value if isinstance(tier, ModelTier) else str(tier)
    raw = f"{tier_id}\x00{normalize_message(message)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ResponseCache:
    """
    TTL + bounded-size store of prior model responses.

    Expiry is lazy: `get` treats an entry older than the TTL as absent but
    leaves it in place, so expired entries keep occupying capacity until
    they are overwritten or evicted.

    Eviction is FIFO by insertion order, i.e. an approximation of LRU:
    reading an entry does not refresh its position.
    """

    def __init__(
        self,
        *,
        ttl_s: float = 300.0,
        max_entries: int = 128,
        clock: Callable[[], float] = time.monotonic,
        store: MutableMapping[str, CacheEntry] | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        self.ttl_s = float(ttl_s)
        self.max_entries = int(max_entries)
        self.clock = clock
        # dicts preserve insertion order, which is the eviction order.
        self._store: MutableMapping[str, CacheEntry] = store if store is not None else {}
        self._disposed = False
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _check_open(self) -> None:
        if self._disposed:
            raise RuntimeError("ResponseCache has been disposed")

    def now(self) -> float:
        return float(self.clock())

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.now() - entry.created_at < self.ttl_s

    def get(self, key: str) -> CacheEntry | None:
        self._check_open()
        entry = self._store.get(key)
        if entry is None or not self.is_fresh(entry):
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        self._check_open()
        if key in self._store:
            # Re-insert so the refreshed entry counts as newest.
            del self._store[key]
        elif len(self._store) >= self.max_entries:
            oldest = next(iter(self._store))
            del self._store[oldest]
            self.evictions += 1
        self._store[key] = entry

    def clear(self) -> None:
        self._check_open()
        self._store.clear()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def dispose(self) -> None:
        if self._disposed:
            return
        self._store.clear()
        self._disposed = True

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def size(self) -> int:
        return len(self._store)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def keys(self) -> list[str]:
        return list(self._store.keys())
