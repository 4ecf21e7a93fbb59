"""
Cache metrics.

Counters only ever grow. A snapshot is a frozen copy taken under a short
counter lock; shard occupancy is read without taking any shard lock, so
reading metrics never waits on a writer.
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence, Tuple


COUNTERS = (
    "hits",
    "misses",
    "evictions",
    "inserts",
    "removals",
    "rebuilds",
    "queries",
    "shard_timeouts",
    "shard_failures",
    "cancelled_queries",
    "rebuild_spills",
)


@dataclass(frozen=True)
class CacheMetrics:
    """Read-only snapshot of a cache's counters and occupancy."""

    cache_id: str
    created_at: float
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    inserts: int = 0
    removals: int = 0
    rebuilds: int = 0
    queries: int = 0
    shard_timeouts: int = 0
    shard_failures: int = 0
    cancelled_queries: int = 0
    rebuild_spills: int = 0
    total_query_latency_ms: float = 0.0
    total_count: int = 0
    shard_occupancy: Tuple[int, ...] = ()
    partition_version: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    @property
    def mean_query_latency_ms(self) -> float:
        return self.total_query_latency_ms / self.queries if self.queries else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, including derived rates."""
        data = asdict(self)
        data["shard_occupancy"] = list(self.shard_occupancy)
        data["hit_rate"] = self.hit_rate
        data["mean_query_latency_ms"] = self.mean_query_latency_ms
        return data


class MetricsCollector:
    """
    Thread-safe counters behind CacheMetrics.

    Example:
        >>> collector = MetricsCollector("my_cache")
        >>> collector.increment("inserts")
        >>> collector.snapshot(total_count=1, shard_occupancy=[1, 0]).inserts
        1
    """

    def __init__(self, cache_id: str, created_at: Optional[float] = None):
        self.cache_id = cache_id
        self.created_at = time.time() if created_at is None else created_at
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in COUNTERS}
        self._latency_ms = 0.0

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self._counters:
            raise KeyError(f"Unknown counter: {name}")
        if amount < 0:
            raise ValueError("Counters only grow")
        with self._lock:
            self._counters[name] += amount

    def record_query(
        self,
        latency_ms: float,
        hit: bool,
        timed_out: int = 0,
        failed: int = 0,
    ) -> None:
        """Account for one completed query."""
        with self._lock:
            self._counters["queries"] += 1
            self._counters["hits" if hit else "misses"] += 1
            self._counters["shard_timeouts"] += timed_out
            self._counters["shard_failures"] += failed
            self._latency_ms += latency_ms

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(
        self,
        total_count: int,
        shard_occupancy: Sequence[int],
        partition_version: int = 0,
    ) -> CacheMetrics:
        with self._lock:
            counters = dict(self._counters)
            latency = self._latency_ms

        return CacheMetrics(
            cache_id=self.cache_id,
            created_at=self.created_at,
            total_query_latency_ms=latency,
            total_count=total_count,
            shard_occupancy=tuple(shard_occupancy),
            partition_version=partition_version,
            **counters,
        )
