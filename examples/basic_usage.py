"""
Basic usage example for VectorCache.
"""

import os
import tempfile

import numpy as np
from vectorcache import VectorCache, CacheConfig


def main():
    print("=" * 60)
    print("VectorCache Basic Usage Example")
    print("=" * 60)

    rng = np.random.RandomState(0)

    # 1. Create cache
    print("\n1. Creating cache...")
    config = CacheConfig(
        dimension=64,
        shard_count=4,
        distance_metric="cosine",
        eviction_policy="lru",
        shard_capacity=250,
        default_nprobe=2,
        seed=42,
    )
    cache = VectorCache(config)
    print(f"   Created: {cache}")

    # 2. Insert embeddings
    print("\n2. Inserting embeddings...")
    first_id = cache.insert(rng.randn(64), metadata=b"first answer")

    ids = cache.insert_batch(
        rng.randn(500, 64),
        metadata=[f"answer {i}".encode() for i in range(500)],
    )
    print(f"   Inserted {len(ids) + 1} embeddings (first id {first_id})")
    print(f"   Total in cache: {len(cache)}")

    # 3. Rebuild shards around the data
    print("\n3. Rebuilding partitions...")
    version = cache.rebuild()
    print(f"   Partition version: {version}")
    for stats in cache.shard_stats():
        print(f"   Shard {stats['shard_id']}: {stats['size']} records")

    # 4. Query
    print("\n4. Querying...")
    query = cache.get(ids[10], touch=False).embedding + rng.randn(64) * 0.05
    results = cache.query(query, k=3)
    for result in results:
        print(f"   id={result.id} score={result.score:.4f} "
              f"shard={result.shard_id} metadata={result.metadata!r}")

    # 5. Fill past capacity
    print("\n5. Inserting past capacity...")
    cache.insert_batch(rng.randn(800, 64))
    metrics = cache.metrics()
    print(f"   Records: {metrics.total_count}, evictions: {metrics.evictions}")
    print(f"   Occupancy: {list(metrics.shard_occupancy)}")

    # 6. Persist and reload
    print("\n6. Saving and loading...")
    path = os.path.join(tempfile.mkdtemp(prefix="vectorcache_example_"), "cache.vcache")
    cache.save(path)
    print(f"   Saved to {path} ({os.path.getsize(path)} bytes)")

    with VectorCache.load(path) as loaded:
        print(f"   Loaded: {loaded}")

    # 7. Metrics
    print("\n7. Metrics...")
    for name, value in cache.metrics().to_dict().items():
        print(f"   {name}: {value}")

    cache.close()

    print("\n" + "=" * 60)
    print("Example completed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
