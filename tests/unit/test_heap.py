"""
Unit tests for the bounded top-k heap.
"""

import pytest
import numpy as np

from vectorcache.search import SearchResult, TopKHeap


class TestTopKHeap:
    """Tests for TopKHeap."""

    def test_keeps_best(self):
        heap = TopKHeap(k=3)
        for id, key in enumerate([5.0, 1.0, 4.0, 2.0, 3.0]):
            heap.push(key, id, id)

        assert [key for key, _, _ in heap.sorted()] == [1.0, 2.0, 3.0]
        assert len(heap) == 3
        assert heap.is_full()

    def test_fewer_than_k(self):
        heap = TopKHeap(k=10)
        heap.push(2.0, 1, "a")
        heap.push(1.0, 2, "b")

        assert [item for _, _, item in heap.sorted()] == ["b", "a"]
        assert not heap.is_full()

    def test_ties_prefer_lower_id(self):
        heap = TopKHeap(k=2)
        heap.push(1.0, 7, "seven")
        heap.push(1.0, 3, "three")
        heap.push(1.0, 5, "five")

        assert [id for _, id, _ in heap.sorted()] == [3, 5]

    def test_tie_on_worst_rejected_for_higher_id(self):
        heap = TopKHeap(k=1)
        assert heap.push(1.0, 2, None)
        assert not heap.push(1.0, 4, None)
        assert heap.push(1.0, 1, None)
        assert [id for _, id, _ in heap.sorted()] == [1]

    def test_worst_key(self):
        heap = TopKHeap(k=2)
        assert heap.worst_key() is None
        heap.push(3.0, 1, None)
        heap.push(1.0, 2, None)
        assert heap.worst_key() == 3.0

    def test_matches_full_sort(self):
        rng = np.random.RandomState(1)
        keys = rng.randint(0, 20, size=200).astype(float)

        heap = TopKHeap(k=15)
        for id, key in enumerate(keys):
            heap.push(float(key), id, None)

        expected = sorted((float(key), id) for id, key in enumerate(keys))[:15]
        assert [(key, id) for key, id, _ in heap.sorted()] == expected

    def test_invalid_k(self):
        with pytest.raises(ValueError):
            TopKHeap(k=0)


class TestSearchResult:
    """Tests for SearchResult."""

    def test_to_dict(self):
        result = SearchResult(id=4, score=0.5, metadata=b"x", shard_id=1)
        assert result.to_dict() == {"id": 4, "score": 0.5, "metadata": b"x", "shard_id": 1}

    def test_repr(self):
        assert "id=4" in repr(SearchResult(id=4, score=0.5))
