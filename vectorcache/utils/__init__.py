"""
Utility functions for VectorCache.
"""

from .validation import (
    validate_id,
    validate_embedding,
    validate_metadata,
    validate_k,
    validate_nprobe,
)
from .logging import setup_logger, get_logger, set_level, LogContext
from .concurrency import ReadWriteLock, WorkerPool, read_lock_all, write_lock_all

__all__ = [
    "validate_id",
    "validate_embedding",
    "validate_metadata",
    "validate_k",
    "validate_nprobe",
    "setup_logger",
    "get_logger",
    "set_level",
    "LogContext",
    "ReadWriteLock",
    "WorkerPool",
    "read_lock_all",
    "write_lock_all",
]
