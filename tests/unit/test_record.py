"""
Unit tests for VectorRecord.
"""

import dataclasses

import pytest
import numpy as np
from numpy.testing import assert_array_equal

from vectorcache.core.record import VectorRecord


class TestVectorRecord:
    """Tests for VectorRecord."""

    def test_create(self, sample_record):
        assert sample_record.id == 1
        assert sample_record.metadata == b"sample"
        assert sample_record.embedding.dtype == np.float32
        assert sample_record.dimension == 16

    def test_last_access_defaults_to_insert(self):
        record = VectorRecord(id=1, embedding=[1.0, 2.0], inserted_at=50.0)
        assert record.last_accessed_at == 50.0
        assert record.access_count == 0

    def test_embedding_is_copied_and_read_only(self):
        source = np.array([1.0, 2.0], dtype=np.float32)
        record = VectorRecord(id=1, embedding=source)
        source[0] = 99.0

        assert record.embedding[0] == 1.0
        with pytest.raises(ValueError):
            record.embedding[0] = 5.0

    def test_frozen(self, sample_record):
        with pytest.raises(dataclasses.FrozenInstanceError):
            sample_record.id = 2

    def test_touched(self, sample_record):
        touched = sample_record.touched(2000.0)

        assert touched.last_accessed_at == 2000.0
        assert touched.access_count == 1
        assert touched.inserted_at == sample_record.inserted_at
        assert sample_record.access_count == 0

    def test_invalid_embedding(self):
        with pytest.raises(ValueError):
            VectorRecord(id=1, embedding=[])
        with pytest.raises(ValueError):
            VectorRecord(id=1, embedding=[[1.0], [2.0]])

    def test_dict_roundtrip(self, sample_record):
        restored = VectorRecord.from_dict(sample_record.to_dict())

        assert restored.id == sample_record.id
        assert restored.metadata == sample_record.metadata
        assert restored.inserted_at == sample_record.inserted_at
        assert_array_equal(restored.embedding, sample_record.embedding)
