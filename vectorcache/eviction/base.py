"""
Abstract base class for eviction policies.

A policy tracks the access state of one shard's records and picks the
record to drop when the shard is full. It is only ever touched while
the owning shard holds its write lock, so implementations need no
locking of their own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from ..core.record import VectorRecord

# Type alias for the clock policies read "now" from
Clock = Callable[[], float]


class EvictionPolicy(ABC):
    """
    Victim-selection strategy for a shard.

    Capabilities:
        on_insert(record): a record entered the shard
        on_access(record): a record was read (record carries new stats)
        on_remove(id): a record left the shard
        select_victim() -> id: pick the record to evict
    """

    name: str = "base"

    @abstractmethod
    def on_insert(self, record: VectorRecord) -> None:
        """Track a newly stored record."""
        pass

    @abstractmethod
    def on_access(self, record: VectorRecord) -> None:
        """Track an access; ``record`` holds the updated statistics."""
        pass

    @abstractmethod
    def on_remove(self, id: int) -> None:
        """Forget a record that left the shard."""
        pass

    @abstractmethod
    def select_victim(self) -> int:
        """
        Pick the record to evict.

        Returns:
            ID of the victim

        Raises:
            LookupError: If no records are tracked
        """
        pass

    @abstractmethod
    def __len__(self) -> int:
        """Number of tracked records."""
        pass

    def _require_entries(self) -> None:
        if len(self) == 0:
            raise LookupError(f"{self.name} policy has no records to evict")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(tracked={len(self)})"
