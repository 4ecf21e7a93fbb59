"""
File format definitions for VectorCache snapshots.

A snapshot file is laid out as:

    FileHeader (64 bytes)
    config blob (msgpack, header.config_length bytes)
    one section per shard, in shard id order:
        ShardSectionHeader (40 bytes)
        centroid          float32[dimension]
        embeddings        float32[record_count, dimension]
        ids               int64[record_count]
        inserted_at       float64[record_count]
        last_accessed_at  float64[record_count]
        access_count      int64[record_count]
        metadata blob     msgpack list of bytes
        filter state      msgpack map
        filter bits       uint8[filter_bits_length]
    FileFooter (32 bytes)

All integers are little-endian.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from enum import IntFlag


# Magic number: "VCACHE\x00\x00"
MAGIC_NUMBER = b'VCACHE\x00\x00'

# File format version
VERSION = 1


class FileFlags(IntFlag):
    """File format flags."""
    NONE = 0
    HAS_RECORDS = 1 << 0      # At least one shard holds records
    GLOBAL_CAPACITY = 1 << 1  # Cache enforces a total capacity


@dataclass
class FileHeader:
    """
    File header structure (64 bytes).

    Layout:
        0-7:   Magic number (8 bytes)
        8-11:  Version (4 bytes, uint32)
        12-15: Flags (4 bytes, uint32)
        16-19: Dimension (4 bytes, uint32)
        20-23: Shard count (4 bytes, uint32)
        24-31: Partition version (8 bytes, uint64)
        32-39: Next auto id (8 bytes, uint64)
        40-47: Created at (8 bytes, float64)
        48-51: Config blob length (4 bytes, uint32)
        52-63: Reserved (12 bytes)
    """

    magic: bytes = MAGIC_NUMBER
    version: int = VERSION
    flags: int = FileFlags.NONE
    dimension: int = 0
    shard_count: int = 0
    partition_version: int = 0
    next_id: int = 0
    created_at: float = 0.0
    config_length: int = 0

    FORMAT = '<8sIIIIQQdI12x'
    SIZE = 64

    def validate(self) -> bool:
        """Validate header."""
        if self.magic != MAGIC_NUMBER:
            raise ValueError(f"Invalid magic number: {self.magic!r}")
        if self.version > VERSION:
            raise ValueError(f"Unsupported version: {self.version}")
        if self.dimension <= 0:
            raise ValueError(f"Invalid dimension: {self.dimension}")
        if self.shard_count <= 0:
            raise ValueError(f"Invalid shard count: {self.shard_count}")
        return True

    def to_bytes(self) -> bytes:
        """Serialize header to bytes."""
        return struct.pack(
            self.FORMAT,
            self.magic,
            self.version,
            int(self.flags),
            self.dimension,
            self.shard_count,
            self.partition_version,
            self.next_id,
            self.created_at,
            self.config_length,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> FileHeader:
        """Deserialize and validate a header."""
        if len(data) < cls.SIZE:
            raise ValueError(f"Header too short: {len(data)} < {cls.SIZE}")

        unpacked = struct.unpack(cls.FORMAT, data[:cls.SIZE])

        header = cls(
            magic=unpacked[0],
            version=unpacked[1],
            flags=FileFlags(unpacked[2]),
            dimension=unpacked[3],
            shard_count=unpacked[4],
            partition_version=unpacked[5],
            next_id=unpacked[6],
            created_at=unpacked[7],
            config_length=unpacked[8],
        )

        header.validate()
        return header

    def __repr__(self) -> str:
        return (
            f"FileHeader(version={self.version}, dimension={self.dimension}, "
            f"shards={self.shard_count}, partition_version={self.partition_version})"
        )


@dataclass
class ShardSectionHeader:
    """
    Header of one shard section (40 bytes).

    Layout:
        0-3:   Shard id (4 bytes, uint32)
        4-11:  Record count (8 bytes, uint64)
        12-19: Metadata blob length (8 bytes, uint64)
        20-23: Filter state length (4 bytes, uint32)
        24-31: Filter bits length (8 bytes, uint64)
        32-39: Reserved (8 bytes)
    """

    shard_id: int
    record_count: int = 0
    metadata_length: int = 0
    filter_state_length: int = 0
    filter_bits_length: int = 0

    FORMAT = '<IQQIQ8x'
    SIZE = 40

    def to_bytes(self) -> bytes:
        return struct.pack(
            self.FORMAT,
            self.shard_id,
            self.record_count,
            self.metadata_length,
            self.filter_state_length,
            self.filter_bits_length,
        )

    @classmethod
    def from_buffer(cls, buffer: bytes, offset: int) -> tuple[ShardSectionHeader, int]:
        """
        Deserialize a section header at ``offset``.

        Returns:
            Tuple of (header, new_offset)
        """
        if len(buffer) - offset < cls.SIZE:
            raise ValueError(f"Truncated shard section header at offset {offset}")

        unpacked = struct.unpack_from(cls.FORMAT, buffer, offset)
        header = cls(
            shard_id=unpacked[0],
            record_count=unpacked[1],
            metadata_length=unpacked[2],
            filter_state_length=unpacked[3],
            filter_bits_length=unpacked[4],
        )
        return header, offset + cls.SIZE


@dataclass
class FileFooter:
    """
    File footer structure (32 bytes).

    Layout:
        0-7:   Checksum of everything before the footer (8 bytes, uint64)
        8-31:  Reserved (24 bytes)
    """

    checksum: int = 0

    FORMAT = '<Q24x'
    SIZE = 32

    def to_bytes(self) -> bytes:
        """Serialize footer to bytes."""
        return struct.pack(self.FORMAT, self.checksum)

    @classmethod
    def from_bytes(cls, data: bytes) -> FileFooter:
        """Deserialize footer from bytes."""
        if len(data) < cls.SIZE:
            raise ValueError(f"Footer too short: {len(data)} < {cls.SIZE}")

        checksum = struct.unpack(cls.FORMAT, data[:cls.SIZE])[0]
        return cls(checksum=checksum)


def compute_checksum(data: bytes) -> int:
    """64-bit BLAKE2b checksum."""
    digest = hashlib.blake2b(data, digest_size=8).digest()
    return struct.unpack('<Q', digest)[0]
