"""
Eviction policies for VectorCache shards.

Available Policies:
    - LRUPolicy: least recently accessed
    - LFUPolicy: lowest access count, oldest first on ties
    - TTLPolicy: earliest expired, oldest otherwise
    - RandomPolicy: uniform sample
    - ScorePolicy: staleness combined with distance to centroid

Example:
    >>> from vectorcache.eviction import create_policy
    >>>
    >>> policy = create_policy("lru")
    >>> policy.on_insert(record)
    >>> victim = policy.select_victim()
"""

from typing import Optional

import numpy as np

from .base import EvictionPolicy, Clock
from .lru import LRUPolicy
from .lfu import LFUPolicy
from .ttl import TTLPolicy
from .random_policy import RandomPolicy
from .score import ScorePolicy

__all__ = [
    "EvictionPolicy",
    "LRUPolicy",
    "LFUPolicy",
    "TTLPolicy",
    "RandomPolicy",
    "ScorePolicy",
    "create_policy",
]


def create_policy(
    policy_type: Optional[str],
    centroid: Optional[np.ndarray] = None,
    ttl_seconds: float = 3600.0,
    recency_weight: float = 0.5,
    seed: Optional[int] = None,
    clock: Optional[Clock] = None,
) -> Optional[EvictionPolicy]:
    """
    Factory function to create an eviction policy.

    Args:
        policy_type: "lru", "lfu", "ttl", "random", "score", or None
        centroid: Shard centroid (score policy)
        ttl_seconds: Record lifetime (ttl policy)
        recency_weight: Staleness weight (score policy)
        seed: Random seed (random policy)
        clock: Source of "now" (ttl and score policies)

    Returns:
        Policy instance, or None when no policy is configured
    """
    if policy_type is None:
        return None

    policy_type = policy_type.lower()

    if policy_type == "lru":
        return LRUPolicy()
    elif policy_type == "lfu":
        return LFUPolicy()
    elif policy_type == "ttl":
        return TTLPolicy(ttl_seconds=ttl_seconds, clock=clock)
    elif policy_type == "random":
        return RandomPolicy(seed=seed)
    elif policy_type == "score":
        if centroid is None:
            raise ValueError("centroid required for score policy")
        return ScorePolicy(centroid=centroid, recency_weight=recency_weight, clock=clock)
    else:
        raise ValueError(f"Unknown eviction policy: {policy_type}")
