"""
Least-recently-used eviction.
"""

from __future__ import annotations

from collections import OrderedDict

from .base import EvictionPolicy
from ..core.record import VectorRecord


class LRUPolicy(EvictionPolicy):
    """
    Evicts the least recently accessed record.

    Keeps ids in access order; insertion counts as an access.
    O(1) for every operation.
    """

    name = "lru"

    def __init__(self):
        self._order: "OrderedDict[int, None]" = OrderedDict()

    def on_insert(self, record: VectorRecord) -> None:
        self._order[record.id] = None
        self._order.move_to_end(record.id)

    def on_access(self, record: VectorRecord) -> None:
        if record.id in self._order:
            self._order.move_to_end(record.id)

    def on_remove(self, id: int) -> None:
        self._order.pop(id, None)

    def select_victim(self) -> int:
        self._require_entries()
        return next(iter(self._order))

    def __len__(self) -> int:
        return len(self._order)
