"""
Cache configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, fields
from enum import Enum
from typing import Any, Dict, List, Optional

from ..distance import get_metric


class EvictionPolicyType(str, Enum):
    """Available eviction policies."""
    LRU = "lru"
    LFU = "lfu"
    TTL = "ttl"
    RANDOM = "random"
    SCORE = "score"


class CapacityMode(str, Enum):
    """How capacity is enforced."""
    PER_SHARD = "per_shard"
    GLOBAL = "global"


@dataclass
class CacheConfig:
    """
    Configuration for a VectorCache.

    Everything here is fixed at construction time.

    Attributes:
        dimension: Embedding dimension
        shard_count: Number of shards (fixed for the cache's lifetime)
        distance_metric: euclidean, cosine or dot
        eviction_policy: lru, lfu, ttl, random, score, or None to reject
            inserts over capacity
        filter_false_positive_rate: Target false-positive rate of each
            shard's membership filter at its expected element count
        default_nprobe: Shards searched per query when not overridden
        shard_capacity: Maximum records per shard
        max_entries: Total capacity; split across shards in per_shard
            mode when shard_capacity is unset, enforced as a whole in
            global mode
        capacity_mode: per_shard or global
        ttl_seconds: Record lifetime for the ttl policy
        score_recency_weight: Weight of staleness vs. distance to the
            centroid for the score policy (0..1)
        kmeans_max_iterations: Rebuild iteration cap
        kmeans_tolerance: Rebuild convergence tolerance (max centroid shift)
        num_workers: Size of the shard worker pool
        shard_timeout: Per-query deadline in seconds for shard scans
        allow_custom_ids: Accept caller-supplied ids on insert
        spill_on_full: Place inserts (and rebuild overflow) on the nearest
            shard with room instead of evicting from the nearest shard
        rebuild_interval: Inserts between automatic background rebuilds
        hit_threshold: Best score a query must reach to count as a hit
        filter_expected_items: Filter sizing when shards are unbounded
        seed: Random seed for centroid initialisation and random eviction
        cache_id: Human-readable identifier used in logs and metrics
        debug: Verbose logging
    """

    dimension: int
    shard_count: int = 4
    distance_metric: str = "cosine"
    eviction_policy: Optional[str] = "lru"
    filter_false_positive_rate: float = 0.01
    default_nprobe: int = 2
    shard_capacity: Optional[int] = 1000
    max_entries: Optional[int] = None
    capacity_mode: str = "per_shard"

    # Eviction parameters
    ttl_seconds: float = 3600.0
    score_recency_weight: float = 0.5

    # Rebuild parameters
    kmeans_max_iterations: int = 25
    kmeans_tolerance: float = 1e-4
    rebuild_interval: Optional[int] = None

    # Execution
    num_workers: int = 4
    shard_timeout: Optional[float] = None

    # Behaviour
    allow_custom_ids: bool = False
    spill_on_full: bool = False
    hit_threshold: Optional[float] = None
    filter_expected_items: int = 10000

    seed: Optional[int] = None
    cache_id: str = "default_cache"
    debug: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration."""
        if self.dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {self.dimension}")

        if self.shard_count < 1:
            raise ValueError(f"shard_count must be >= 1, got {self.shard_count}")

        # Raises ValueError for unknown names
        self.distance_metric = get_metric(self.distance_metric).name

        if self.eviction_policy is not None:
            policy = str(self.eviction_policy).lower()
            if policy not in {p.value for p in EvictionPolicyType}:
                raise ValueError(f"Unknown eviction policy: '{self.eviction_policy}'")
            self.eviction_policy = policy

        if not 0.0 < self.filter_false_positive_rate < 1.0:
            raise ValueError(
                "filter_false_positive_rate must be in (0, 1), "
                f"got {self.filter_false_positive_rate}"
            )

        if self.default_nprobe < 1:
            raise ValueError(f"default_nprobe must be >= 1, got {self.default_nprobe}")

        if self.default_nprobe > self.shard_count:
            self.default_nprobe = self.shard_count

        mode = str(self.capacity_mode).lower()
        if mode not in {m.value for m in CapacityMode}:
            raise ValueError(f"Unknown capacity mode: '{self.capacity_mode}'")
        self.capacity_mode = mode

        if self.capacity_mode == CapacityMode.GLOBAL.value:
            if self.max_entries is None:
                raise ValueError("global capacity mode requires max_entries")
        elif self.shard_capacity is None and self.max_entries is None:
            raise ValueError("per_shard capacity mode requires shard_capacity or max_entries")

        if self.shard_capacity is not None and self.shard_capacity < 1:
            raise ValueError(f"shard_capacity must be >= 1, got {self.shard_capacity}")

        if self.max_entries is not None and self.max_entries < self.shard_count:
            raise ValueError(
                f"max_entries ({self.max_entries}) must be >= shard_count ({self.shard_count})"
            )

        if self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {self.ttl_seconds}")

        if not 0.0 <= self.score_recency_weight <= 1.0:
            raise ValueError(
                f"score_recency_weight must be in [0, 1], got {self.score_recency_weight}"
            )

        if self.kmeans_max_iterations < 1:
            raise ValueError(
                f"kmeans_max_iterations must be >= 1, got {self.kmeans_max_iterations}"
            )

        if self.kmeans_tolerance < 0:
            raise ValueError(f"kmeans_tolerance must be >= 0, got {self.kmeans_tolerance}")

        if self.rebuild_interval is not None and self.rebuild_interval < 1:
            raise ValueError(f"rebuild_interval must be >= 1, got {self.rebuild_interval}")

        if self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")

        if self.shard_timeout is not None and self.shard_timeout <= 0:
            raise ValueError(f"shard_timeout must be > 0, got {self.shard_timeout}")

        if self.filter_expected_items < 1:
            raise ValueError(
                f"filter_expected_items must be >= 1, got {self.filter_expected_items}"
            )

    @property
    def is_global_capacity(self) -> bool:
        return self.capacity_mode == CapacityMode.GLOBAL.value

    def shard_capacities(self) -> List[Optional[int]]:
        """
        Capacity of each shard, indexed by shard id.

        In global mode shards are unbounded (the cache enforces the
        total). Otherwise an explicit shard_capacity wins; failing that,
        max_entries is split evenly with the remainder going to the
        lowest shard ids.
        """
        if self.is_global_capacity:
            return [None] * self.shard_count

        if self.shard_capacity is not None:
            return [self.shard_capacity] * self.shard_count

        base, remainder = divmod(self.max_entries, self.shard_count)
        return [base + 1 if i < remainder else base for i in range(self.shard_count)]

    def filter_capacity(self, shard_capacity: Optional[int]) -> int:
        """Expected element count used to size a shard's filter."""
        if shard_capacity is not None:
            return shard_capacity
        if self.max_entries is not None:
            return max(1, -(-self.max_entries // self.shard_count))
        return self.filter_expected_items

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CacheConfig:
        """Create config from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
