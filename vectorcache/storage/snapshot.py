"""
Reading and writing whole-cache snapshot files.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np
from numpy.typing import NDArray

from .format import (
    FileFlags,
    FileFooter,
    FileHeader,
    ShardSectionHeader,
    compute_checksum,
)
from .serialization import (
    deserialize_records,
    pack,
    read_array,
    serialize_records,
    serialize_vector,
    unpack,
)
from ..core.exceptions import LoadError, StorageError
from ..core.record import VectorRecord
from ..utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class ShardSnapshot:
    """Everything needed to rebuild one shard."""

    shard_id: int
    centroid: NDArray
    records: List[VectorRecord] = field(default_factory=list)
    filter_state: Dict[str, Any] = field(default_factory=dict)
    filter_bits: bytes = b""


@dataclass
class CacheSnapshot:
    """Everything needed to rebuild a cache."""

    config: Dict[str, Any]
    partition_version: int
    next_id: int
    created_at: float
    shards: List[ShardSnapshot] = field(default_factory=list)

    @property
    def dimension(self) -> int:
        return int(self.config["dimension"])


def encode_snapshot(snapshot: CacheSnapshot) -> bytes:
    """Serialize a snapshot to the on-disk byte layout."""
    dimension = snapshot.dimension
    config_blob = pack(snapshot.config)

    flags = FileFlags.NONE
    if any(s.records for s in snapshot.shards):
        flags |= FileFlags.HAS_RECORDS
    if snapshot.config.get("capacity_mode") == "global":
        flags |= FileFlags.GLOBAL_CAPACITY

    header = FileHeader(
        flags=flags,
        dimension=dimension,
        shard_count=len(snapshot.shards),
        partition_version=snapshot.partition_version,
        next_id=snapshot.next_id,
        created_at=snapshot.created_at,
        config_length=len(config_blob),
    )

    parts = [header.to_bytes(), config_blob]

    for shard in snapshot.shards:
        columns, metadata = serialize_records(shard.records, dimension)
        filter_state = pack(shard.filter_state)

        section = ShardSectionHeader(
            shard_id=shard.shard_id,
            record_count=len(shard.records),
            metadata_length=len(metadata),
            filter_state_length=len(filter_state),
            filter_bits_length=len(shard.filter_bits),
        )
        parts.extend([
            section.to_bytes(),
            serialize_vector(shard.centroid),
            columns,
            metadata,
            filter_state,
            shard.filter_bits,
        ])

    body = b"".join(parts)
    return body + FileFooter(checksum=compute_checksum(body)).to_bytes()


def decode_snapshot(data: bytes) -> CacheSnapshot:
    """
    Parse the on-disk byte layout.

    Raises:
        ValueError: If the data is truncated, corrupt or inconsistent
    """
    if len(data) < FileHeader.SIZE + FileFooter.SIZE:
        raise ValueError(f"File too short: {len(data)} bytes")

    body = data[:-FileFooter.SIZE]
    footer = FileFooter.from_bytes(data[-FileFooter.SIZE:])
    if compute_checksum(body) != footer.checksum:
        raise ValueError("Checksum mismatch")

    header = FileHeader.from_bytes(body)
    offset = FileHeader.SIZE

    end = offset + header.config_length
    if end > len(body):
        raise ValueError("Truncated config blob")
    config = unpack(body[offset:end])
    offset = end

    if not isinstance(config, dict) or config.get("dimension") != header.dimension:
        raise ValueError("Config blob doesn't match the header")

    shards = []
    for _ in range(header.shard_count):
        section, offset = ShardSectionHeader.from_buffer(body, offset)

        centroid, offset = read_array(body, offset, np.dtype('<f4'), header.dimension)
        records, offset = deserialize_records(
            body,
            offset,
            section.record_count,
            header.dimension,
            section.metadata_length,
        )

        end = offset + section.filter_state_length
        if end > len(body):
            raise ValueError(f"Truncated filter state in shard {section.shard_id}")
        filter_state = unpack(body[offset:end])
        offset = end

        end = offset + section.filter_bits_length
        if end > len(body):
            raise ValueError(f"Truncated filter bits in shard {section.shard_id}")
        filter_bits = bytes(body[offset:end])
        offset = end

        shards.append(ShardSnapshot(
            shard_id=section.shard_id,
            centroid=centroid,
            records=records,
            filter_state=filter_state,
            filter_bits=filter_bits,
        ))

    if offset != len(body):
        raise ValueError(f"{len(body) - offset} trailing bytes after the last shard")

    return CacheSnapshot(
        config=config,
        partition_version=header.partition_version,
        next_id=header.next_id,
        created_at=header.created_at,
        shards=shards,
    )


def write_snapshot(path: Union[str, Path], snapshot: CacheSnapshot) -> None:
    """
    Atomically write a snapshot file.

    Raises:
        StorageError: If the file can't be written
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")

    data = encode_snapshot(snapshot)

    try:
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)

        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise StorageError(f"Failed to write {path}: {e}") from e

    logger.debug(f"Wrote {len(data)} bytes to {path}")


def read_snapshot(path: Union[str, Path]) -> CacheSnapshot:
    """
    Read a snapshot file.

    Raises:
        LoadError: If the file is missing, unreadable or corrupt
    """
    path = Path(path)

    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise LoadError(f"Failed to read {path}: {e}") from e

    try:
        return decode_snapshot(data)
    except (ValueError, TypeError, KeyError, struct.error) as e:
        raise LoadError(f"Corrupt cache file {path}: {e}") from e
