"""
Core components for VectorCache.
"""

from .exceptions import (
    VectorCacheError,
    ValidationError,
    InvalidDimensionError,
    RecordError,
    RecordNotFoundError,
    DuplicateIDError,
    CapacityExceededError,
    SearchError,
    AllShardsUnavailableError,
    QueryCancelledError,
    StorageError,
    LoadError,
)
from .record import VectorRecord
from .config import CacheConfig, CapacityMode, EvictionPolicyType
from .partition import PartitionMap, CacheState
from .metrics import CacheMetrics, MetricsCollector
from .shard import Shard, ShardInsertResult
from .cache import VectorCache, CacheStatus

__all__ = [
    # Record
    "VectorRecord",
    # Config
    "CacheConfig",
    "CapacityMode",
    "EvictionPolicyType",
    # Partitioning
    "PartitionMap",
    "CacheState",
    "Shard",
    "ShardInsertResult",
    # Cache
    "VectorCache",
    "CacheStatus",
    "CacheMetrics",
    "MetricsCollector",
    # Exceptions
    "VectorCacheError",
    "ValidationError",
    "InvalidDimensionError",
    "RecordError",
    "RecordNotFoundError",
    "DuplicateIDError",
    "CapacityExceededError",
    "SearchError",
    "AllShardsUnavailableError",
    "QueryCancelledError",
    "StorageError",
    "LoadError",
]
