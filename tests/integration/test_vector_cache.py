"""
Integration tests for VectorCache operations.

Covers inserts, lookups, queries, eviction under both capacity modes,
cancellation and shard failures, and concurrent access.
"""

import threading

import pytest
import numpy as np

from vectorcache import (
    VectorCache,
    CacheConfig,
    CacheStatus,
    AllShardsUnavailableError,
    CapacityExceededError,
    DuplicateIDError,
    InvalidDimensionError,
    QueryCancelledError,
    RecordNotFoundError,
    ValidationError,
    VectorCacheError,
)

from . import integration


A = [0.0, 0.0, 0.0, 0.0]
B = [1.0, 1.0, 1.0, 1.0]
C = [5.0, 5.0, 5.0, 5.0]
D = [6.0, 6.0, 6.0, 6.0]
E = [0.1, 0.1, 0.1, 0.1]


def owning_shard(cache, id):
    return next(s.shard_id for s in cache._state.shards if s.contains(id))


@pytest.fixture
def make_cache(clock):
    """Factory for caches that are closed after the test."""
    caches = []

    def factory(**overrides):
        params = {
            "dimension": 4,
            "shard_count": 2,
            "distance_metric": "euclidean",
            "eviction_policy": "lru",
            "shard_capacity": 2,
            "seed": 7,
        }
        params.update(overrides)
        cache = VectorCache(CacheConfig(**params), clock=clock)
        caches.append(cache)
        return cache

    yield factory

    for cache in caches:
        cache.close()


@integration
class TestInsertAndQuery:
    """Basic insert / query behaviour."""

    def test_query_finds_inserted_vector(self, populated_cache, random_vectors):
        results = populated_cache.query(random_vectors[42], k=1)

        assert results[0].id == 42
        assert results[0].score == pytest.approx(0.0, abs=1e-5)
        assert results[0].metadata == b"record_042"

    def test_ids_are_sequential(self, cache, random_vectors):
        ids = [cache.insert(v) for v in random_vectors[:5]]
        assert ids == [0, 1, 2, 3, 4]

    def test_results_are_ordered(self, populated_cache, random_vector):
        results = populated_cache.query(random_vector, k=10)

        assert len(results) == 10
        scores = [r.score for r in results]
        assert scores == sorted(scores)

    def test_exhaustive_probe_is_exact(self, populated_cache, random_vectors, random_vector):
        results = populated_cache.query(random_vector, k=5, nprobe=4)

        distances = np.linalg.norm(random_vectors - random_vector, axis=1)
        expected = np.argsort(distances, kind="stable")[:5].tolist()
        assert [r.id for r in results] == expected

    def test_query_empty_cache(self, cache, random_vector):
        assert cache.query(random_vector, k=3) == []

    def test_insert_batch(self, cache, random_vectors):
        ids = cache.insert_batch(random_vectors[:3], metadata=[b"a", None, b"c"])

        assert ids == [0, 1, 2]
        assert cache.get(0).metadata == b"a"
        assert cache.get(1).metadata == b""

    def test_insert_batch_validates_everything_first(self, cache, random_vectors):
        bad = list(random_vectors[:3]) + [np.zeros(3)]
        with pytest.raises(InvalidDimensionError):
            cache.insert_batch(bad)
        assert len(cache) == 0

    def test_invalid_inputs(self, cache, dimension):
        with pytest.raises(InvalidDimensionError):
            cache.insert(np.zeros(dimension + 1))
        with pytest.raises(ValidationError):
            cache.insert([float("nan")] * dimension)
        with pytest.raises(ValidationError):
            cache.insert(np.zeros(dimension), metadata="not bytes")
        with pytest.raises(ValidationError):
            cache.query(np.zeros(dimension), k=0)
        with pytest.raises(InvalidDimensionError):
            cache.query(np.zeros(2))

    def test_cosine_cache(self, clock):
        config = CacheConfig(dimension=3, shard_count=2, distance_metric="cosine",
                             shard_capacity=10, seed=1)
        with VectorCache(config, clock=clock) as cache:
            cache.insert([1.0, 0.0, 0.0], metadata=b"x")
            cache.insert([0.0, 1.0, 0.0], metadata=b"y")

            results = cache.query([10.0, 1.0, 0.0], k=2, nprobe=2)

            assert [r.metadata for r in results] == [b"x", b"y"]
            assert results[0].score > results[1].score


@integration
class TestLookupAndRemove:
    """get / contains / remove."""

    def test_get(self, populated_cache, random_vectors):
        record = populated_cache.get(7)

        assert record.id == 7
        assert record.metadata == b"record_007"
        assert np.array_equal(record.embedding, random_vectors[7])
        assert record.access_count == 1

    def test_get_without_touch(self, populated_cache):
        assert populated_cache.get(7, touch=False).access_count == 0

    def test_get_missing(self, populated_cache):
        with pytest.raises(RecordNotFoundError):
            populated_cache.get(1000)
        assert populated_cache.metrics().misses == 1

    def test_contains(self, populated_cache):
        assert populated_cache.contains(5)
        assert 5 in populated_cache
        assert not populated_cache.contains(500)

    def test_remove(self, populated_cache, random_vectors):
        populated_cache.remove(42)

        assert not populated_cache.contains(42)
        assert len(populated_cache) == 99
        results = populated_cache.query(random_vectors[42], k=3, nprobe=4)
        assert 42 not in [r.id for r in results]

    def test_remove_missing(self, populated_cache):
        with pytest.raises(RecordNotFoundError):
            populated_cache.remove(1000)

    def test_removed_id_not_reused(self, cache, random_vectors):
        first = cache.insert(random_vectors[0])
        cache.remove(first)
        assert cache.insert(random_vectors[1]) == first + 1


@integration
class TestCustomIds:
    """Caller-chosen ids."""

    def test_disabled_by_default(self, cache, random_vector):
        with pytest.raises(ValidationError):
            cache.insert(random_vector, id=5)

    def test_custom_id(self, make_cache):
        cache = make_cache(allow_custom_ids=True, shard_capacity=10)

        assert cache.insert(A, id=100) == 100
        # Generated ids continue above the largest custom id
        assert cache.insert(B) == 101

    def test_duplicate_custom_id(self, make_cache):
        cache = make_cache(allow_custom_ids=True, shard_capacity=10)
        cache.insert(A, id=3)

        with pytest.raises(DuplicateIDError):
            cache.insert(B, id=3)
        assert len(cache) == 1

    def test_custom_id_after_removal(self, make_cache):
        cache = make_cache(allow_custom_ids=True, shard_capacity=10)
        cache.insert(A, id=3)
        cache.remove(3)
        assert cache.insert(B, id=3) == 3


@integration
class TestEviction:
    """Capacity enforcement and eviction."""

    def test_scenario_least_recent_of_pair_is_evicted(self, make_cache):
        """After a rebuild, E lands with A and B and evicts the older of the two."""
        # Spilling keeps all four records until the rebuild lays out the shards
        cache = make_cache(spill_on_full=True)
        a, b, c, d = (cache.insert(v, metadata=name) for v, name in
                      zip([A, B, C, D], [b"A", b"B", b"C", b"D"]))

        cache.rebuild()

        shard_of = {id: owning_shard(cache, id) for id in (a, b, c, d)}
        assert shard_of[a] == shard_of[b]
        assert shard_of[c] == shard_of[d]
        assert shard_of[a] != shard_of[c]

        low = cache.partition_map.centroid(shard_of[a])
        high = cache.partition_map.centroid(shard_of[c])
        assert np.allclose(low, [0.5] * 4)
        assert np.allclose(high, [5.5] * 4)

        results = cache.query(A, k=1)
        assert [r.id for r in results] == [a]

        # B becomes the most recently used of the pair
        cache.get(b)

        e = cache.insert(E, metadata=b"E")

        assert not cache.contains(a)
        assert cache.contains(b)
        assert cache.contains(e)
        assert cache.contains(c) and cache.contains(d)
        assert cache.metrics().evictions == 1

    def test_scenario_query_touch_protects_record(self, make_cache):
        cache = make_cache(spill_on_full=True)
        a, b, c, d = (cache.insert(v) for v in [A, B, C, D])
        cache.rebuild()

        # The hit on A makes B the least recently used
        cache.query(A, k=1)
        cache.insert(E)

        assert cache.contains(a)
        assert not cache.contains(b)

    def test_shards_never_exceed_capacity(self, make_cache, random_vectors):
        cache = make_cache(dimension=16, shard_count=4, shard_capacity=10)
        for vector in random_vectors:
            cache.insert(vector)

        occupancy = cache.metrics().shard_occupancy
        assert all(n <= 10 for n in occupancy)
        assert len(cache) <= 40
        assert cache.metrics().evictions == 100 - len(cache)

    def test_full_nearest_shard_evicts_even_with_room_elsewhere(self, make_cache):
        cache = make_cache()
        a = cache.insert(A)
        b = cache.insert(B)
        cache.rebuild()

        e = cache.insert(E)
        # A's shard is full, B's still has room
        cache.insert([0.05] * 4)

        assert cache.metrics().evictions == 1
        assert len(cache) == 3
        assert not cache.contains(a)
        assert cache.contains(b) and cache.contains(e)

    def test_inserted_vector_is_found_searching_one_shard(self, make_cache):
        cache = make_cache(dimension=2, default_nprobe=1)
        cache.insert([0.0, 0.0])
        cache.insert([10.0, 10.0])
        cache.rebuild()
        cache.insert([0.1, 0.1])

        v = cache.insert([0.2, 0.2])
        results = cache.query([0.2, 0.2], k=1)

        assert [r.id for r in results] == [v]
        assert owning_shard(cache, v) == cache._router.nearest_shard(
            np.array([0.2, 0.2], dtype=np.float32), cache.partition_map
        )
        assert not cache.contains(0)

    def test_spill_on_full_fills_other_shards_first(self, make_cache):
        cache = make_cache(spill_on_full=True)
        for vector in [A, B, E]:
            cache.insert(vector)

        assert len(cache) == 3
        assert cache.metrics().evictions == 0

    def test_no_policy_rejects_when_full(self, make_cache):
        cache = make_cache(eviction_policy=None, shard_count=1)
        for vector in [A, B]:
            cache.insert(vector)

        with pytest.raises(CapacityExceededError):
            cache.insert(E)
        assert len(cache) == 2

    def test_max_entries_split_across_shards(self, make_cache, random_vectors):
        cache = make_cache(dimension=16, shard_count=3, shard_capacity=None, max_entries=10)
        for vector in random_vectors[:30]:
            cache.insert(vector)

        assert sorted(s["capacity"] for s in cache.shard_stats()) == [3, 3, 4]
        assert all(s["size"] <= s["capacity"] for s in cache.shard_stats())

    def test_global_capacity(self, make_cache, random_vectors):
        cache = make_cache(dimension=16, shard_count=4, capacity_mode="global",
                           max_entries=10, shard_capacity=None)
        for vector in random_vectors[:30]:
            cache.insert(vector)

        metrics = cache.metrics()
        assert metrics.total_count == 10
        assert metrics.evictions == 20

    def test_global_capacity_without_policy(self, make_cache):
        cache = make_cache(capacity_mode="global", max_entries=3, eviction_policy=None)
        for vector in [A, B, C]:
            cache.insert(vector)

        with pytest.raises(CapacityExceededError):
            cache.insert(D)
        assert len(cache) == 3

    def test_lfu_keeps_popular_record(self, make_cache):
        cache = make_cache(eviction_policy="lfu", shard_count=1, shard_capacity=2)
        a = cache.insert(A)
        b = cache.insert(B)
        for _ in range(3):
            cache.get(b)
        cache.get(a)

        cache.insert(C)

        assert cache.contains(b)
        assert not cache.contains(a)

    def test_ttl_purge(self, make_cache, clock):
        cache = make_cache(eviction_policy="ttl", ttl_seconds=10.0, shard_capacity=10)
        old = [cache.insert(v) for v in [A, B]]
        clock.advance(100.0)
        fresh = cache.insert(C)

        assert cache.purge_expired() == 2
        assert [cache.contains(id) for id in old] == [False, False]
        assert cache.contains(fresh)
        assert cache.metrics().evictions == 2

    def test_purge_without_ttl(self, populated_cache):
        assert populated_cache.purge_expired() == 0


@integration
class TestQueryFailures:
    """Timeouts, failures and cancellation."""

    def test_cancelled_query(self, populated_cache, random_vector):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(QueryCancelledError):
            populated_cache.query(random_vector, k=3, cancel=cancel)
        assert populated_cache.metrics().cancelled_queries == 1

    def test_failed_shards_are_skipped(self, populated_cache, random_vector, monkeypatch):
        broken = populated_cache._state.shards[0]

        def fail(query, k):
            raise RuntimeError("scan failed")

        monkeypatch.setattr(broken, "local_search", fail)

        results = populated_cache.query(random_vector, k=5, nprobe=4)

        assert len(results) == 5
        assert all(r.shard_id != 0 for r in results)
        assert populated_cache.metrics().shard_failures == 1

    def test_all_shards_unavailable(self, populated_cache, random_vector, monkeypatch):
        def fail(query, k):
            raise RuntimeError("scan failed")

        for shard in populated_cache._state.shards:
            monkeypatch.setattr(shard, "local_search", fail)

        with pytest.raises(AllShardsUnavailableError):
            populated_cache.query(random_vector, k=5, nprobe=4)
        assert populated_cache.metrics().shard_failures == 4

    def test_slow_shard_is_dropped(self, populated_cache, random_vector, monkeypatch):
        slow = populated_cache._state.shards[1]
        original = slow.local_search
        release = threading.Event()

        def stall(query, k):
            release.wait(5.0)
            return original(query, k)

        monkeypatch.setattr(slow, "local_search", stall)

        try:
            results = populated_cache.query(random_vector, k=5, nprobe=4, timeout=0.2)
        finally:
            release.set()

        assert results
        assert all(r.shard_id != 1 for r in results)
        assert populated_cache.metrics().shard_timeouts == 1


@integration
class TestMetrics:
    """Counters reported by metrics()."""

    def test_counts(self, populated_cache, random_vectors):
        populated_cache.query(random_vectors[0], k=1)
        populated_cache.remove(3)
        metrics = populated_cache.metrics()

        assert metrics.inserts == 100
        assert metrics.removals == 1
        assert metrics.queries == 1
        assert metrics.hits == 1
        assert metrics.total_count == 99
        assert sum(metrics.shard_occupancy) == 99
        assert metrics.cache_id == "default_cache"

    def test_hit_threshold(self, make_cache):
        cache = make_cache(hit_threshold=0.5, shard_capacity=10)
        cache.insert(A)

        cache.query([0.1, 0.0, 0.0, 0.0], k=1)
        cache.query(D, k=1)

        metrics = cache.metrics()
        assert metrics.hits == 1
        assert metrics.misses == 1
        assert metrics.hit_rate == 0.5

    def test_empty_result_is_miss(self, cache, random_vector):
        cache.query(random_vector)
        assert cache.metrics().misses == 1

    def test_shard_stats(self, populated_cache):
        stats = populated_cache.shard_stats()

        assert [s["shard_id"] for s in stats] == [0, 1, 2, 3]
        assert sum(s["size"] for s in stats) == 100


@integration
class TestConcurrency:
    """Concurrent access keeps counts consistent."""

    def test_concurrent_insert_and_remove(self, make_cache, dimension):
        cache = make_cache(dimension=dimension, shard_count=4, shard_capacity=1000)
        errors = []
        removed = []

        def worker(seed):
            rng = np.random.RandomState(seed)
            try:
                ids = [cache.insert(rng.randn(dimension)) for _ in range(50)]
                for id in ids[::2]:
                    cache.remove(id)
                    removed.append(id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        metrics = cache.metrics()
        assert len(cache) == 200 - len(removed) == 100
        assert sum(metrics.shard_occupancy) == len(cache)
        assert metrics.inserts == 200
        assert metrics.removals == 100

    def test_concurrent_queries_and_inserts(self, populated_cache, dimension):
        errors = []
        stop = threading.Event()

        def reader():
            rng = np.random.RandomState(1)
            try:
                while not stop.is_set():
                    populated_cache.query(rng.randn(dimension), k=5)
            except Exception as e:
                errors.append(e)

        readers = [threading.Thread(target=reader) for _ in range(3)]
        for t in readers:
            t.start()

        rng = np.random.RandomState(2)
        for _ in range(100):
            populated_cache.insert(rng.randn(dimension))

        stop.set()
        for t in readers:
            t.join()

        assert not errors
        assert all(n <= 100 for n in populated_cache.metrics().shard_occupancy)


@integration
class TestLifecycle:
    """Closing and context management."""

    def test_closed_cache_rejects_calls(self, cache_config, random_vector):
        cache = VectorCache(cache_config)
        cache.close()
        cache.close()

        assert cache.closed
        with pytest.raises(VectorCacheError):
            cache.insert(random_vector)
        with pytest.raises(VectorCacheError):
            cache.query(random_vector)

    def test_context_manager(self, cache_config, random_vector):
        with VectorCache(cache_config) as cache:
            cache.insert(random_vector)
            assert cache.status is CacheStatus.READY
        assert cache.closed

    def test_kwargs_constructor(self):
        with VectorCache(dimension=8, shard_count=2, shard_capacity=5) as cache:
            assert cache.dimension == 8
            assert cache.partition_version == 0
            assert "count=0" in repr(cache)

    def test_config_and_kwargs_conflict(self, cache_config):
        with pytest.raises(ValueError):
            VectorCache(cache_config, dimension=8)

    def test_insert_succeeds_when_rebuild_cannot_be_scheduled(self, make_cache, monkeypatch):
        cache = make_cache(rebuild_interval=1, shard_capacity=10)

        def shut_down(*args, **kwargs):
            raise RuntimeError("cannot schedule new futures after shutdown")

        monkeypatch.setattr(cache._rebuild_executor, "submit", shut_down)

        id = cache.insert(A)

        assert cache.contains(id)
        assert cache.metrics().rebuilds == 0
