"""
Unit tests for the snapshot file format.
"""

import pytest
import numpy as np
from numpy.testing import assert_array_equal

from vectorcache.core.exceptions import LoadError
from vectorcache.core.record import VectorRecord
from vectorcache.storage import (
    CacheSnapshot,
    FileFooter,
    FileHeader,
    ShardSectionHeader,
    ShardSnapshot,
    decode_snapshot,
    encode_snapshot,
    read_snapshot,
    write_snapshot,
)
from vectorcache.storage.format import MAGIC_NUMBER, FileFlags, compute_checksum


def make_snapshot(dimension=4):
    rng = np.random.RandomState(0)
    records = [
        VectorRecord(
            id=i,
            embedding=rng.randn(dimension),
            metadata=f"payload-{i}".encode() if i % 2 else b"",
            inserted_at=100.0 + i,
            last_accessed_at=200.0 + i,
            access_count=i,
        )
        for i in range(5)
    ]
    return CacheSnapshot(
        config={"dimension": dimension, "shard_count": 2, "capacity_mode": "per_shard"},
        partition_version=3,
        next_id=5,
        created_at=1234.5,
        shards=[
            ShardSnapshot(
                shard_id=0,
                centroid=np.zeros(dimension, dtype=np.float32),
                records=records[:3],
                filter_state={"size": 64, "hash_count": 3, "count": 3},
                filter_bits=b"\x01" * 8,
            ),
            ShardSnapshot(
                shard_id=1,
                centroid=np.ones(dimension, dtype=np.float32),
                records=records[3:],
                filter_state={"size": 64, "hash_count": 3, "count": 2},
                filter_bits=b"\x02" * 8,
            ),
        ],
    )


class TestHeaders:
    """Tests for the fixed-size structures."""

    def test_header_roundtrip(self):
        header = FileHeader(
            flags=FileFlags.HAS_RECORDS,
            dimension=128,
            shard_count=8,
            partition_version=12,
            next_id=99,
            created_at=1.5,
            config_length=40,
        )
        data = header.to_bytes()
        restored = FileHeader.from_bytes(data)

        assert len(data) == FileHeader.SIZE
        assert data[:8] == MAGIC_NUMBER
        assert restored == header

    def test_header_bad_magic(self):
        data = b"NOTCACHE" + FileHeader(dimension=4, shard_count=1).to_bytes()[8:]
        with pytest.raises(ValueError, match="magic"):
            FileHeader.from_bytes(data)

    def test_header_future_version(self):
        data = FileHeader(version=99, dimension=4, shard_count=1).to_bytes()
        with pytest.raises(ValueError, match="version"):
            FileHeader.from_bytes(data)

    def test_header_too_short(self):
        with pytest.raises(ValueError):
            FileHeader.from_bytes(b"VCACHE")

    def test_section_header(self):
        section = ShardSectionHeader(shard_id=2, record_count=7, metadata_length=10,
                                     filter_state_length=20, filter_bits_length=30)
        data = b"xx" + section.to_bytes()

        restored, offset = ShardSectionHeader.from_buffer(data, 2)

        assert restored == section
        assert offset == 2 + ShardSectionHeader.SIZE

    def test_footer(self):
        footer = FileFooter(checksum=compute_checksum(b"hello"))
        assert len(footer.to_bytes()) == FileFooter.SIZE
        assert FileFooter.from_bytes(footer.to_bytes()).checksum == footer.checksum


class TestSnapshotEncoding:
    """Tests for encode_snapshot / decode_snapshot."""

    def test_roundtrip(self):
        snapshot = make_snapshot()
        restored = decode_snapshot(encode_snapshot(snapshot))

        assert restored.config == snapshot.config
        assert restored.partition_version == 3
        assert restored.next_id == 5
        assert restored.created_at == 1234.5
        assert [s.shard_id for s in restored.shards] == [0, 1]

        for original, loaded in zip(snapshot.shards, restored.shards):
            assert_array_equal(loaded.centroid, original.centroid)
            assert loaded.filter_state == original.filter_state
            assert loaded.filter_bits == original.filter_bits
            assert len(loaded.records) == len(original.records)
            for a, b in zip(original.records, loaded.records):
                assert a.id == b.id
                assert a.metadata == b.metadata
                assert a.inserted_at == b.inserted_at
                assert a.last_accessed_at == b.last_accessed_at
                assert a.access_count == b.access_count
                assert_array_equal(a.embedding, b.embedding)

    def test_empty_shards(self):
        snapshot = make_snapshot()
        for shard in snapshot.shards:
            shard.records = []

        data = encode_snapshot(snapshot)
        header = FileHeader.from_bytes(data)

        assert not header.flags & FileFlags.HAS_RECORDS
        assert all(s.records == [] for s in decode_snapshot(data).shards)

    def test_flipped_byte_fails_checksum(self):
        data = bytearray(encode_snapshot(make_snapshot()))
        data[FileHeader.SIZE + 10] ^= 0xFF

        with pytest.raises(ValueError, match="Checksum"):
            decode_snapshot(bytes(data))

    def test_truncated(self):
        data = encode_snapshot(make_snapshot())
        with pytest.raises(ValueError):
            decode_snapshot(data[:len(data) // 2])

    def test_too_short(self):
        with pytest.raises(ValueError):
            decode_snapshot(b"\x00" * 10)


class TestSnapshotFiles:
    """Tests for write_snapshot / read_snapshot."""

    def test_write_and_read(self, tmp_path):
        path = tmp_path / "cache.vcache"
        write_snapshot(path, make_snapshot())

        assert path.exists()
        assert not (tmp_path / "cache.vcache.tmp").exists()
        assert read_snapshot(path).next_id == 5

    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "cache.vcache"
        write_snapshot(path, make_snapshot())
        assert path.exists()

    def test_read_missing(self, tmp_path):
        with pytest.raises(LoadError):
            read_snapshot(tmp_path / "missing.vcache")

    def test_read_corrupt(self, tmp_path):
        path = tmp_path / "corrupt.vcache"
        path.write_bytes(b"garbage" * 20)
        with pytest.raises(LoadError):
            read_snapshot(path)
