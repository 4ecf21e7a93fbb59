"""
Pytest fixtures for VectorCache tests.
"""

import pytest
import numpy as np
from typing import List

from vectorcache import VectorCache
from vectorcache.core.config import CacheConfig
from vectorcache.core.record import VectorRecord


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: multi-component tests")
    config.addinivalue_line("markers", "slow: long-running tests")
    config.addinivalue_line("markers", "requires_persistence: tests that write files")


class FakeClock:
    """Manually advanced clock for deterministic timestamps."""

    def __init__(self, start: float = 1000.0, step: float = 1.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        # Every reading moves time forward so timestamps never tie
        value = self.now
        self.now += self.step
        return value

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def dimension() -> int:
    """Default dimension for test vectors."""
    return 16


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def random_vector(dimension: int) -> np.ndarray:
    """Generate a random vector."""
    return np.random.randn(dimension).astype(np.float32)


@pytest.fixture
def random_vectors(dimension: int) -> np.ndarray:
    """Generate random vectors (100 vectors)."""
    rng = np.random.RandomState(42)
    return rng.randn(100, dimension).astype(np.float32)


@pytest.fixture
def sample_record(random_vector: np.ndarray) -> VectorRecord:
    """Create a sample VectorRecord."""
    return VectorRecord(
        id=1,
        embedding=random_vector,
        metadata=b"sample",
        inserted_at=1000.0,
    )


@pytest.fixture
def sample_records(random_vectors: np.ndarray) -> List[VectorRecord]:
    """Create sample VectorRecords with increasing timestamps."""
    return [
        VectorRecord(
            id=i,
            embedding=vector,
            metadata=f"record_{i:03d}".encode(),
            inserted_at=1000.0 + i,
        )
        for i, vector in enumerate(random_vectors)
    ]


@pytest.fixture
def cache_config(dimension: int) -> CacheConfig:
    """Small deterministic cache configuration."""
    return CacheConfig(
        dimension=dimension,
        shard_count=4,
        distance_metric="euclidean",
        eviction_policy="lru",
        shard_capacity=100,
        default_nprobe=4,
        num_workers=4,
        seed=42,
    )


@pytest.fixture
def cache(cache_config: CacheConfig, clock: FakeClock):
    """An empty cache, closed after the test."""
    cache = VectorCache(cache_config, clock=clock)
    yield cache
    cache.close()


@pytest.fixture
def populated_cache(cache: VectorCache, random_vectors: np.ndarray) -> VectorCache:
    """Cache holding the 100 random vectors, ids 0..99."""
    for i, vector in enumerate(random_vectors):
        cache.insert(vector, metadata=f"record_{i:03d}".encode())
    return cache
