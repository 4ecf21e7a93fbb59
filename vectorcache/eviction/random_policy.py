"""
Random eviction.
"""

from __future__ import annotations

from typing import Dict, List, Optional

import numpy as np

from .base import EvictionPolicy
from ..core.record import VectorRecord


class RandomPolicy(EvictionPolicy):
    """
    Evicts a uniformly sampled record.

    Ids live in a dense list with an index map so insert, remove and
    sampling are all O(1).
    """

    name = "random"

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.RandomState(seed)
        self._ids: List[int] = []
        self._positions: Dict[int, int] = {}

    def on_insert(self, record: VectorRecord) -> None:
        if record.id in self._positions:
            return
        self._positions[record.id] = len(self._ids)
        self._ids.append(record.id)

    def on_access(self, record: VectorRecord) -> None:
        pass

    def on_remove(self, id: int) -> None:
        position = self._positions.pop(id, None)
        if position is None:
            return

        # Swap with last for O(1) removal
        last = self._ids.pop()
        if position < len(self._ids):
            self._ids[position] = last
            self._positions[last] = position

    def select_victim(self) -> int:
        self._require_entries()
        return self._ids[self._rng.randint(len(self._ids))]

    def __len__(self) -> int:
        return len(self._ids)
