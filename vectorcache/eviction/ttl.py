"""
Time-to-live eviction.
"""

from __future__ import annotations

import time
from typing import Dict, List, Optional

from .base import EvictionPolicy, Clock
from ..core.record import VectorRecord


class TTLPolicy(EvictionPolicy):
    """
    Evicts the earliest expired record.

    A record expires once ``inserted_at + ttl <= now``. When nothing has
    expired yet, the record with the oldest ``inserted_at`` goes. Ties
    go to the lowest id.

    Args:
        ttl_seconds: Record lifetime
        clock: Source of "now" (defaults to time.time)
    """

    name = "ttl"

    def __init__(self, ttl_seconds: float, clock: Optional[Clock] = None):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.time
        self._inserted: Dict[int, float] = {}

    def on_insert(self, record: VectorRecord) -> None:
        self._inserted[record.id] = record.inserted_at

    def on_access(self, record: VectorRecord) -> None:
        # Access doesn't extend a record's lifetime
        pass

    def on_remove(self, id: int) -> None:
        self._inserted.pop(id, None)

    def is_expired(self, id: int, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        return self._inserted[id] + self.ttl_seconds <= now

    def expired(self, now: Optional[float] = None) -> List[int]:
        """IDs of every expired record, oldest first."""
        now = self._clock() if now is None else now
        cutoff = now - self.ttl_seconds
        expired = [id for id, ts in self._inserted.items() if ts <= cutoff]
        return sorted(expired, key=lambda id: (self._inserted[id], id))

    def select_victim(self) -> int:
        self._require_entries()

        # Earliest expired == oldest overall when anything has expired,
        # and the oldest is also the fallback otherwise.
        return min(self._inserted, key=lambda id: (self._inserted[id], id))

    def __len__(self) -> int:
        return len(self._inserted)
