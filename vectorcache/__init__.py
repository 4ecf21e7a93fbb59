"""
VectorCache - a sharded vector similarity cache.

Example:
    >>> from vectorcache import VectorCache
    >>> import numpy as np
    >>>
    >>> # Create a cache of 4 shards, 1000 records each
    >>> cache = VectorCache(dimension=128, shard_count=4, shard_capacity=1000)
    >>>
    >>> # Cache an embedding with its payload
    >>> id = cache.insert(np.random.randn(128), metadata=b"answer")
    >>>
    >>> # Look up the nearest cached embeddings
    >>> results = cache.query(np.random.randn(128), k=5)
"""

from .core import (
    # Main classes
    VectorCache,
    VectorRecord,
    CacheConfig,
    CacheMetrics,
    CacheStatus,
    PartitionMap,
    # Exceptions
    VectorCacheError,
    ValidationError,
    InvalidDimensionError,
    RecordNotFoundError,
    DuplicateIDError,
    CapacityExceededError,
    AllShardsUnavailableError,
    QueryCancelledError,
    StorageError,
    LoadError,
)

from .search import SearchResult

from .distance import (
    # Metrics
    euclidean,
    cosine_similarity,
    dot_product,
    # Registry
    get_metric,
    list_metrics,
    DistanceMetric,
)

__version__ = "0.1.0"
__author__ = "VectorCache Team"

__all__ = [
    # Main classes
    "VectorCache",
    "VectorRecord",
    "CacheConfig",
    "CacheMetrics",
    "CacheStatus",
    "PartitionMap",
    "SearchResult",
    # Exceptions
    "VectorCacheError",
    "ValidationError",
    "InvalidDimensionError",
    "RecordNotFoundError",
    "DuplicateIDError",
    "CapacityExceededError",
    "AllShardsUnavailableError",
    "QueryCancelledError",
    "StorageError",
    "LoadError",
    # Distance functions
    "euclidean",
    "cosine_similarity",
    "dot_product",
    "get_metric",
    "list_metrics",
    "DistanceMetric",
]
