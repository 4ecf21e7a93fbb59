"""
Serialization utilities for VectorCache storage.

Records are stored column-wise as raw numpy buffers so embeddings and
timestamps come back bit-for-bit; metadata and small structures go
through msgpack.
"""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

import msgpack
import numpy as np
from numpy.typing import NDArray

from ..core.record import VectorRecord


def pack(obj: Any) -> bytes:
    """Serialize a plain structure with msgpack."""
    return msgpack.packb(obj, use_bin_type=True)


def unpack(data: bytes) -> Any:
    """Deserialize a msgpack blob."""
    return msgpack.unpackb(data, raw=False)


def serialize_vector(vector: NDArray) -> bytes:
    """Raw float32 bytes of a vector."""
    return np.ascontiguousarray(vector, dtype=np.float32).tobytes()


def read_array(
    buffer: bytes,
    offset: int,
    dtype: np.dtype,
    count: int,
) -> Tuple[NDArray, int]:
    """
    Read ``count`` items of ``dtype`` at ``offset``.

    Returns:
        Tuple of (array copy, new_offset)
    """
    dtype = np.dtype(dtype)
    end = offset + dtype.itemsize * count
    if end > len(buffer):
        raise ValueError(f"Truncated array at offset {offset}: need {end - offset} bytes")

    array = np.frombuffer(buffer, dtype=dtype, count=count, offset=offset).copy()
    return array, end


def serialize_records(records: Sequence[VectorRecord], dimension: int) -> Tuple[bytes, bytes]:
    """
    Serialize records column by column.

    Returns:
        Tuple of (column bytes, msgpack metadata blob)
    """
    count = len(records)

    if count:
        embeddings = np.stack([r.embedding for r in records]).astype(np.float32, copy=False)
    else:
        embeddings = np.empty((0, dimension), dtype=np.float32)

    if embeddings.shape != (count, dimension):
        raise ValueError(f"Embeddings have shape {embeddings.shape}, expected ({count}, {dimension})")

    columns = b"".join([
        np.ascontiguousarray(embeddings).tobytes(),
        np.array([r.id for r in records], dtype='<i8').tobytes(),
        np.array([r.inserted_at for r in records], dtype='<f8').tobytes(),
        np.array([r.last_accessed_at for r in records], dtype='<f8').tobytes(),
        np.array([r.access_count for r in records], dtype='<i8').tobytes(),
    ])
    metadata = pack([r.metadata for r in records])

    return columns, metadata


def deserialize_records(
    buffer: bytes,
    offset: int,
    count: int,
    dimension: int,
    metadata_length: int,
) -> Tuple[List[VectorRecord], int]:
    """
    Inverse of ``serialize_records``.

    Returns:
        Tuple of (records in stored order, new_offset)
    """
    embeddings, offset = read_array(buffer, offset, np.dtype('<f4'), count * dimension)
    ids, offset = read_array(buffer, offset, np.dtype('<i8'), count)
    inserted_at, offset = read_array(buffer, offset, np.dtype('<f8'), count)
    last_accessed_at, offset = read_array(buffer, offset, np.dtype('<f8'), count)
    access_counts, offset = read_array(buffer, offset, np.dtype('<i8'), count)

    end = offset + metadata_length
    if end > len(buffer):
        raise ValueError(f"Truncated metadata blob at offset {offset}")
    metadata = unpack(buffer[offset:end])

    if not isinstance(metadata, list) or len(metadata) != count:
        raise ValueError(f"Metadata blob doesn't hold {count} entries")

    embeddings = embeddings.reshape(count, dimension)
    records = [
        VectorRecord(
            id=int(ids[i]),
            embedding=embeddings[i],
            metadata=metadata[i],
            inserted_at=float(inserted_at[i]),
            last_accessed_at=float(last_accessed_at[i]),
            access_count=int(access_counts[i]),
        )
        for i in range(count)
    ]

    return records, end
