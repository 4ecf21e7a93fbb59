"""
Score-based eviction.

Combines how stale a record is with how far it sits from its shard's
centroid. Records that are both cold and peripheral go first.

    staleness = (now - last_accessed_at) / max staleness in the shard
    remoteness = distance_to_centroid / max distance in the shard
    score = w * staleness + (1 - w) * remoteness

The victim is the record with the highest (worst) score, ties going to
the lowest id. Distances are taken once at insert, since a shard's
centroid is fixed for the shard's lifetime.
"""

from __future__ import annotations

import time
from typing import Dict, Optional, Tuple

import numpy as np

from .base import EvictionPolicy, Clock
from ..core.record import VectorRecord
from ..distance import euclidean


class ScorePolicy(EvictionPolicy):
    """
    Weighted recency + distance-to-centroid eviction.

    Args:
        centroid: The shard's centroid
        recency_weight: Weight ``w`` of staleness in [0, 1]
        clock: Source of "now" (defaults to time.time)
    """

    name = "score"

    def __init__(
        self,
        centroid: np.ndarray,
        recency_weight: float = 0.5,
        clock: Optional[Clock] = None,
    ):
        if not 0.0 <= recency_weight <= 1.0:
            raise ValueError(f"recency_weight must be in [0, 1], got {recency_weight}")

        self.centroid = np.asarray(centroid, dtype=np.float32)
        self.recency_weight = recency_weight
        self._clock = clock or time.time
        # id -> (last_accessed_at, distance_to_centroid)
        self._entries: Dict[int, Tuple[float, float]] = {}

    def on_insert(self, record: VectorRecord) -> None:
        distance = euclidean(record.embedding, self.centroid)
        self._entries[record.id] = (record.last_accessed_at, distance)

    def on_access(self, record: VectorRecord) -> None:
        entry = self._entries.get(record.id)
        if entry is not None:
            self._entries[record.id] = (record.last_accessed_at, entry[1])

    def on_remove(self, id: int) -> None:
        self._entries.pop(id, None)

    def scores(self, now: Optional[float] = None) -> Dict[int, float]:
        """Current eviction score of every record (higher = evicted sooner)."""
        if not self._entries:
            return {}

        now = self._clock() if now is None else now
        ids = np.fromiter(self._entries.keys(), dtype=np.int64, count=len(self._entries))
        values = np.array(list(self._entries.values()), dtype=np.float64)

        staleness = np.maximum(now - values[:, 0], 0.0)
        remoteness = values[:, 1]

        stale_max = staleness.max()
        remote_max = remoteness.max()

        stale_norm = staleness / stale_max if stale_max > 0 else np.zeros_like(staleness)
        remote_norm = remoteness / remote_max if remote_max > 0 else np.zeros_like(remoteness)

        combined = self.recency_weight * stale_norm + (1.0 - self.recency_weight) * remote_norm
        return dict(zip(ids.tolist(), combined.tolist()))

    def select_victim(self) -> int:
        self._require_entries()
        scores = self.scores()
        return min(scores, key=lambda id: (-scores[id], id))

    def __len__(self) -> int:
        return len(self._entries)
