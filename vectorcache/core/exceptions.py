"""
Custom exceptions for VectorCache.
"""


class VectorCacheError(Exception):
    """Base exception for VectorCache."""
    pass


class ValidationError(VectorCacheError):
    """Input validation error."""
    pass


class InvalidDimensionError(ValidationError):
    """Embedding length doesn't match the cache dimension."""
    pass


class RecordError(VectorCacheError):
    """Error related to record operations."""
    pass


class RecordNotFoundError(RecordError):
    """Record with given ID not found."""
    pass


class DuplicateIDError(RecordError):
    """Record with given ID already exists."""
    pass


class CapacityExceededError(VectorCacheError):
    """Insert over capacity with no eviction policy configured."""
    pass


class ShardRetiredError(VectorCacheError):
    """Shard was replaced by a rebuild; retry against the current state."""
    pass


class SearchError(VectorCacheError):
    """Error related to query execution."""
    pass


class AllShardsUnavailableError(SearchError):
    """Every probed shard timed out or failed."""
    pass


class QueryCancelledError(SearchError):
    """Query was cancelled by its caller before fan-out completed."""
    pass


class StorageError(VectorCacheError):
    """Error related to persistence."""
    pass


class LoadError(StorageError):
    """Persisted state is corrupt or incompatible."""
    pass
