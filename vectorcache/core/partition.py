"""
Partition map and cache state.

A PartitionMap is an immutable, versioned assignment of centroids to
shard ids. CacheState bundles a map with the shards built for it; the
cache replaces its CacheState with one attribute assignment, so readers
always see a complete version.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Tuple, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from .shard import Shard


class PartitionMap:
    """
    Immutable ``shard_id -> centroid`` snapshot.

    Shard ids are the row indices of the centroid matrix.

    Example:
        >>> pmap = PartitionMap(np.zeros((4, 8)), version=0)
        >>> pmap.centroid(2).shape
        (8,)
    """

    def __init__(self, centroids: NDArray, version: int = 0):
        centroids = np.array(centroids, dtype=np.float32)

        if centroids.ndim != 2 or len(centroids) == 0:
            raise ValueError(
                f"Centroids must be a non-empty 2D array, got shape {centroids.shape}"
            )
        if version < 0:
            raise ValueError(f"version must be >= 0, got {version}")

        centroids.setflags(write=False)
        self._centroids = centroids
        self._version = version

    @property
    def version(self) -> int:
        return self._version

    @property
    def centroids(self) -> NDArray:
        """Read-only centroid matrix of shape (shard_count, dimension)."""
        return self._centroids

    @property
    def shard_count(self) -> int:
        return len(self._centroids)

    @property
    def dimension(self) -> int:
        return self._centroids.shape[1]

    @property
    def shard_ids(self) -> List[int]:
        return list(range(len(self._centroids)))

    def centroid(self, shard_id: int) -> NDArray:
        """Centroid of one shard."""
        if shard_id < 0 or shard_id >= len(self._centroids):
            raise ValueError(f"Invalid shard_id: {shard_id}")
        return self._centroids[shard_id]

    def __iter__(self) -> Iterator[Tuple[int, NDArray]]:
        return iter(enumerate(self._centroids))

    def __len__(self) -> int:
        return len(self._centroids)

    def __repr__(self) -> str:
        return (
            f"PartitionMap(version={self._version}, shard_count={self.shard_count}, "
            f"dimension={self.dimension})"
        )


@dataclass(frozen=True)
class CacheState:
    """
    The ``(partition_version, PartitionMap, shard handles)`` triple.

    ``shards[i]`` is the shard whose centroid is ``partition_map.centroid(i)``.
    """

    partition_map: PartitionMap
    shards: Tuple["Shard", ...]

    def __post_init__(self):
        if len(self.shards) != self.partition_map.shard_count:
            raise ValueError(
                f"{len(self.shards)} shards for a map of {self.partition_map.shard_count}"
            )

    @property
    def version(self) -> int:
        return self.partition_map.version

    @property
    def total_count(self) -> int:
        return sum(len(shard) for shard in self.shards)

    def shard(self, shard_id: int) -> "Shard":
        return self.shards[shard_id]
