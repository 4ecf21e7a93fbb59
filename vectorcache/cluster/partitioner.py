"""
K-means partitioning of cache records into shards.

The partitioner is pure: it reads a list of records and returns a plan
(a new partition map plus the shard of every record). Installing the
plan is the cache's job.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from ..core.partition import PartitionMap
from ..core.record import VectorRecord
from ..distance import (
    MetricInfo,
    compute_centroid,
    get_metric,
    normalize_rows,
    pairwise_euclidean,
)
from ..search.router import Router
from ..utils.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class PartitionPlan:
    """
    Result of a k-means run.

    Attributes:
        partition_map: New centroids under the new version
        assignments: Record id -> shard id
        iterations: Lloyd iterations performed
        converged: True if the tolerance was reached
        inertia: Sum of squared distances to the assigned centroids
            (between unit vectors for similarity metrics)
    """

    partition_map: PartitionMap
    assignments: Dict[int, int] = field(default_factory=dict)
    iterations: int = 0
    converged: bool = False
    inertia: float = 0.0

    def shard_sizes(self) -> Dict[int, int]:
        """Number of records assigned to each shard."""
        sizes = {shard_id: 0 for shard_id in self.partition_map.shard_ids}
        for shard_id in self.assignments.values():
            sizes[shard_id] += 1
        return sizes


class KMeansPartitioner:
    """
    Lloyd's k-means with k-means++ seeding.

    With a similarity metric (cosine, dot) the clustering is spherical:
    vectors are compared by direction and every centroid is kept at unit
    length, so a record's nearest centroid does not depend on its norm.

    Example:
        >>> partitioner = KMeansPartitioner(seed=42)
        >>> plan = partitioner.rebuild(records, k=4, version=1)
        >>> plan.assignments[record.id]
        2
    """

    def __init__(
        self,
        metric: Union[str, MetricInfo] = "euclidean",
        max_iterations: int = 25,
        tolerance: float = 1e-4,
        seed: Optional[int] = None,
    ):
        """
        Args:
            metric: Metric used to assign records to centroids
            max_iterations: Default iteration cap
            tolerance: Default convergence threshold on centroid movement
            seed: Random seed for seeding and random fill
        """
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        if tolerance < 0:
            raise ValueError(f"tolerance must be >= 0, got {tolerance}")

        self._metric = get_metric(metric) if isinstance(metric, str) else metric
        self._router = Router(self._metric)
        self._spherical = self._metric.higher_is_better
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self._rng = np.random.RandomState(seed)

    def rebuild(
        self,
        records: Sequence[VectorRecord],
        k: int,
        max_iterations: Optional[int] = None,
        convergence_tolerance: Optional[float] = None,
        version: int = 0,
        dimension: Optional[int] = None,
    ) -> PartitionPlan:
        """
        Partition records into ``k`` clusters.

        Args:
            records: Records to cluster (may be empty)
            k: Number of shards
            max_iterations: Iteration cap (defaults to the instance's)
            convergence_tolerance: Stop once no centroid moves further
                than this (defaults to the instance's)
            version: Version of the resulting partition map
            dimension: Vector dimension, required when records is empty

        Returns:
            PartitionPlan covering every record
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        max_iterations = self.max_iterations if max_iterations is None else max_iterations
        tolerance = self.tolerance if convergence_tolerance is None else convergence_tolerance

        if records:
            vectors = np.stack([r.embedding for r in records]).astype(np.float64)
        else:
            if dimension is None:
                raise ValueError("dimension is required to partition an empty record set")
            vectors = np.empty((0, dimension), dtype=np.float64)

        if self._spherical:
            vectors = normalize_rows(vectors)

        start = time.time()
        centroids = self._init_centroids(vectors, k)
        if self._spherical:
            centroids = normalize_rows(centroids)

        iterations = 0
        converged = False
        if len(vectors) > 0:
            for iterations in range(1, max_iterations + 1):
                assignments = self._assign(vectors, centroids)
                new_centroids = centroids.copy()

                for c in range(k):
                    members = vectors[assignments == c]
                    # Empty clusters keep their previous centroid
                    if len(members) > 0:
                        new_centroids[c] = self._centroid_of(members, centroids[c])

                shift = float(np.max(np.linalg.norm(new_centroids - centroids, axis=1)))
                centroids = new_centroids

                if shift < tolerance:
                    converged = True
                    break
        else:
            converged = True

        partition_map = PartitionMap(centroids.astype(np.float32), version=version)

        # Final pass uses the router so every record lands where an
        # insert of the same vector would be routed.
        final_assignments: Dict[int, int] = {}
        inertia = 0.0
        for record, vector in zip(records, vectors):
            shard_id = self._router.nearest_shard(record.embedding, partition_map)
            final_assignments[record.id] = shard_id
            diff = vector - partition_map.centroid(shard_id)
            inertia += float(np.sum(diff * diff))

        logger.debug(
            f"k-means: {len(records)} records, k={k}, {iterations} iterations, "
            f"converged={converged}, inertia={inertia:.4f} "
            f"({(time.time() - start) * 1000:.1f}ms)"
        )

        return PartitionPlan(
            partition_map=partition_map,
            assignments=final_assignments,
            iterations=iterations,
            converged=converged,
            inertia=inertia,
        )

    def random_map(self, k: int, dimension: int, version: int = 0) -> PartitionMap:
        """Partition map with standard normal centroids, for an empty cache."""
        centroids = self._rng.standard_normal((k, dimension))
        if self._spherical:
            centroids = normalize_rows(centroids)
        return PartitionMap(centroids.astype(np.float32), version=version)

    def _init_centroids(self, vectors: NDArray, k: int) -> NDArray:
        """
        k-means++ over the distinct vectors.

        If there are fewer than ``k`` distinct vectors, the remaining
        centroids are uniform random points inside their bounding box,
        or standard normal points when there is no data at all.
        """
        n_samples, dimension = vectors.shape
        centroids = np.zeros((k, dimension), dtype=np.float64)

        if n_samples == 0:
            centroids[:] = self._rng.standard_normal((k, dimension))
            return centroids

        distinct = np.unique(vectors, axis=0)
        n_seeded = min(k, len(distinct))

        # First centroid: random point
        centroids[0] = distinct[self._rng.randint(len(distinct))]

        # Remaining centroids: sample proportional to squared distance
        for c in range(1, n_seeded):
            distances = np.min(
                pairwise_euclidean(distinct, centroids[:c]) ** 2,
                axis=1,
            )
            total = distances.sum()
            if total <= 0:
                idx = self._rng.randint(len(distinct))
            else:
                idx = self._rng.choice(len(distinct), p=distances / total)
            centroids[c] = distinct[idx]

        if n_seeded < k:
            low = vectors.min(axis=0)
            high = vectors.max(axis=0)
            centroids[n_seeded:] = self._rng.uniform(low, high, size=(k - n_seeded, dimension))

        return centroids

    def _centroid_of(self, members: NDArray, previous: NDArray) -> NDArray:
        """Mean of the members, projected back onto the unit sphere when spherical."""
        mean = compute_centroid(members)
        if not self._spherical:
            return mean
        norm = np.linalg.norm(mean)
        # Members that cancel out have no direction to follow
        return mean / norm if norm > 1e-8 else previous

    def _assign(self, vectors: NDArray, centroids: NDArray) -> NDArray:
        """Assign vectors to nearest centroids; ties go to the lower id."""
        keys = self._metric.rank_keys_pairwise(vectors, centroids)
        return np.argmin(keys, axis=1)
