"""
Clustering used to (re)partition the cache.
"""

from .partitioner import KMeansPartitioner, PartitionPlan

__all__ = [
    "KMeansPartitioner",
    "PartitionPlan",
]
