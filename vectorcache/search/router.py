"""
Query and insert routing over a partition map.
"""

from __future__ import annotations

from typing import List, Union

import numpy as np
from numpy.typing import NDArray

from ..core.partition import PartitionMap
from ..distance import MetricInfo, get_metric


class Router:
    """
    Orders shards by how close their centroid is to a vector.

    Routing is a pure function of the vector and the partition map, so
    the same inputs always give the same shard order. Ties go to the
    lower shard id.

    Example:
        >>> router = Router()
        >>> router.select_probe_shards(query, partition_map, nprobe=2)
        [3, 0]
    """

    def __init__(self, metric: Union[str, MetricInfo] = "euclidean"):
        """
        Args:
            metric: Metric used to compare vectors against centroids
        """
        self._metric = get_metric(metric) if isinstance(metric, str) else metric

    @property
    def metric(self) -> MetricInfo:
        return self._metric

    def centroid_keys(self, vector: NDArray, partition_map: PartitionMap) -> NDArray:
        """Smaller-is-better key of every centroid, indexed by shard id."""
        scores = self._metric.scores(vector, partition_map.centroids)
        return np.asarray(self._metric.rank_key(scores))

    def rank_shards(self, vector: NDArray, partition_map: PartitionMap) -> List[int]:
        """All shard ids, nearest centroid first."""
        keys = self.centroid_keys(vector, partition_map)
        return np.argsort(keys, kind="stable").tolist()

    def nearest_shard(self, vector: NDArray, partition_map: PartitionMap) -> int:
        """Shard id with the nearest centroid."""
        return int(np.argmin(self.centroid_keys(vector, partition_map)))

    def select_probe_shards(
        self,
        query: NDArray,
        partition_map: PartitionMap,
        nprobe: int,
    ) -> List[int]:
        """
        Shards to scan for a query.

        Args:
            query: Query vector
            partition_map: Current partition map
            nprobe: Number of shards, clamped to [1, shard_count]

        Returns:
            ``nprobe`` shard ids, nearest centroid first
        """
        nprobe = max(1, min(int(nprobe), partition_map.shard_count))
        return self.rank_shards(query, partition_map)[:nprobe]
