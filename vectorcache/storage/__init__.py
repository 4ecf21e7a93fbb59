"""
Persistence for VectorCache.

A cache is saved as a single file: a fixed header, the configuration,
one section per shard and a checksum footer. See ``format`` for the
exact layout.
"""

from .format import (
    MAGIC_NUMBER,
    VERSION,
    FileFlags,
    FileHeader,
    FileFooter,
    ShardSectionHeader,
    compute_checksum,
)
from .snapshot import (
    CacheSnapshot,
    ShardSnapshot,
    encode_snapshot,
    decode_snapshot,
    read_snapshot,
    write_snapshot,
)

__all__ = [
    "MAGIC_NUMBER",
    "VERSION",
    "FileFlags",
    "FileHeader",
    "FileFooter",
    "ShardSectionHeader",
    "compute_checksum",
    "CacheSnapshot",
    "ShardSnapshot",
    "encode_snapshot",
    "decode_snapshot",
    "read_snapshot",
    "write_snapshot",
]
