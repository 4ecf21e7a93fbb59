"""
Least-frequently-used eviction.
"""

from __future__ import annotations

from typing import Dict, Tuple

from .base import EvictionPolicy
from ..core.record import VectorRecord


class LFUPolicy(EvictionPolicy):
    """
    Evicts the record with the lowest access count.

    Ties go to the oldest ``inserted_at``, then the lowest id.
    Selection is a linear scan over the shard's records.
    """

    name = "lfu"

    def __init__(self):
        # id -> (access_count, inserted_at)
        self._stats: Dict[int, Tuple[int, float]] = {}

    def on_insert(self, record: VectorRecord) -> None:
        self._stats[record.id] = (record.access_count, record.inserted_at)

    def on_access(self, record: VectorRecord) -> None:
        if record.id in self._stats:
            self._stats[record.id] = (record.access_count, record.inserted_at)

    def on_remove(self, id: int) -> None:
        self._stats.pop(id, None)

    def select_victim(self) -> int:
        self._require_entries()
        return min(self._stats, key=lambda id: (*self._stats[id], id))

    def __len__(self) -> int:
        return len(self._stats)
