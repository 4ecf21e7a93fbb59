"""
Bounded max-heap for top-k selection.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar('T')


@dataclass
class SearchResult:
    """
    A single ranked hit.

    Attributes:
        id: Record ID
        score: Metric score (distance or similarity, see the metric)
        metadata: Record metadata
        shard_id: Shard that produced the hit
    """

    id: int
    score: float
    metadata: bytes = b""
    shard_id: int = -1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "score": self.score,
            "metadata": self.metadata,
            "shard_id": self.shard_id,
        }

    def __repr__(self) -> str:
        return f"SearchResult(id={self.id}, score={self.score:.4f}, shard_id={self.shard_id})"


class TopKHeap(Generic[T]):
    """
    Keeps the ``k`` best items seen so far.

    Items are ranked by ``(key, id)`` where a smaller key is better and
    ties go to the lower id. The heap root is the worst kept item; a
    candidate replaces it only when it ranks strictly better. Pushing
    ``n`` items costs O(n log k).

    Example:
        >>> heap = TopKHeap(k=2)
        >>> heap.push(0.5, 1, "a")
        >>> heap.push(0.1, 2, "b")
        >>> heap.push(0.9, 3, "c")   # rejected
        >>> [item for _, _, item in heap.sorted()]
        ['b', 'a']
    """

    def __init__(self, k: int):
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        self.k = k
        # Entries are (-key, -id, item): the root is the largest (key, id)
        self._heap: List[Tuple[float, int, T]] = []

    def push(self, key: float, id: int, item: T) -> bool:
        """
        Offer a candidate.

        Returns:
            True if the candidate was kept
        """
        entry = (-key, -id, item)

        if len(self._heap) < self.k:
            heapq.heappush(self._heap, entry)
            return True

        worst_key, worst_neg_id, _ = self._heap[0]
        if (key, id) < (-worst_key, -worst_neg_id):
            heapq.heapreplace(self._heap, entry)
            return True

        return False

    def worst_key(self) -> Optional[float]:
        """Key of the worst kept item, or None when empty."""
        if not self._heap:
            return None
        return -self._heap[0][0]

    def is_full(self) -> bool:
        return len(self._heap) >= self.k

    def sorted(self) -> List[Tuple[float, int, T]]:
        """Kept items as ``(key, id, item)``, best first."""
        entries = [(-neg_key, -neg_id, item) for neg_key, neg_id, item in self._heap]
        entries.sort(key=lambda e: (e[0], e[1]))
        return entries

    def __len__(self) -> int:
        return len(self._heap)
