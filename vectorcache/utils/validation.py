"""
Input validation utilities.
"""

from typing import Any, Optional

import numpy as np

from ..core.exceptions import ValidationError, InvalidDimensionError


# Maximum limits
MAX_ID = 2 ** 63 - 1
MAX_METADATA_BYTES = 16 * 1024 * 1024


def validate_id(id: Any) -> int:
    """
    Validate a record ID.

    Args:
        id: The ID to validate

    Returns:
        The validated ID

    Raises:
        ValidationError: If ID is not a non-negative integer
    """
    if isinstance(id, bool) or not isinstance(id, (int, np.integer)):
        raise ValidationError(f"ID must be an integer, got {type(id).__name__}")

    id = int(id)

    if id < 0 or id > MAX_ID:
        raise ValidationError(f"ID out of range: {id}")

    return id


def validate_embedding(embedding: Any, dimension: int) -> np.ndarray:
    """
    Validate an embedding and convert it to float32.

    Args:
        embedding: Array-like embedding
        dimension: Expected dimension

    Returns:
        1-D float32 array

    Raises:
        InvalidDimensionError: If the length doesn't match
        ValidationError: If the embedding isn't a finite 1-D vector
    """
    try:
        vector = np.asarray(embedding, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Embedding is not numeric: {e}") from e

    if vector.ndim != 1:
        raise InvalidDimensionError(
            f"Embedding must be 1-dimensional, got {vector.ndim} dimensions"
        )

    if len(vector) != dimension:
        raise InvalidDimensionError(
            f"Embedding dimension {len(vector)} != cache dimension {dimension}"
        )

    if not np.isfinite(vector).all():
        raise ValidationError("Embedding contains NaN or Inf values")

    return vector


def validate_metadata(metadata: Optional[Any]) -> bytes:
    """
    Validate an opaque metadata payload.

    Args:
        metadata: bytes-like payload or None

    Returns:
        The payload as bytes (empty if None)
    """
    if metadata is None:
        return b""

    if not isinstance(metadata, (bytes, bytearray, memoryview)):
        raise ValidationError(
            f"Metadata must be bytes, got {type(metadata).__name__}"
        )

    data = bytes(metadata)

    if len(data) > MAX_METADATA_BYTES:
        raise ValidationError(
            f"Metadata too large: {len(data)} bytes (max {MAX_METADATA_BYTES})"
        )

    return data


def validate_k(k: Any) -> int:
    """Validate a top-k count."""
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k < 1:
        raise ValidationError(f"k must be a positive integer, got {k!r}")
    return int(k)


def validate_nprobe(nprobe: Any, shard_count: int) -> int:
    """Validate nprobe, clamping it to the shard count."""
    if isinstance(nprobe, bool) or not isinstance(nprobe, (int, np.integer)) or nprobe < 1:
        raise ValidationError(f"nprobe must be a positive integer, got {nprobe!r}")
    return min(int(nprobe), shard_count)
