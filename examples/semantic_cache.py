"""
Semantic response cache example for VectorCache.

Caches answers keyed by the embedding of the question, so a
paraphrased question can be served from the cache. The embedder here
is a toy bag-of-words hash; swap in a real sentence encoder.
"""

import hashlib
import time
from typing import Optional

import numpy as np

from config import Settings
from vectorcache import VectorCache

DIMENSION = 256


def embed(text: str) -> np.ndarray:
    """Hash each word into a fixed-size vector and normalize."""
    vector = np.zeros(DIMENSION, dtype=np.float32)
    for word in text.lower().split():
        digest = hashlib.md5(word.strip("?.,!").encode()).digest()
        vector[int.from_bytes(digest[:4], "little") % DIMENSION] += 1.0
    norm = np.linalg.norm(vector)
    return vector / norm if norm > 0 else vector


class SemanticCache:
    """Answer cache that matches questions by meaning."""

    def __init__(self, cache: VectorCache, min_similarity: float = 0.8):
        self.cache = cache
        self.min_similarity = min_similarity

    def lookup(self, question: str) -> Optional[str]:
        results = self.cache.query(embed(question), k=1)
        if results and results[0].score >= self.min_similarity:
            return results[0].metadata.decode()
        return None

    def store(self, question: str, answer: str) -> int:
        return self.cache.insert(embed(question), metadata=answer.encode())


def slow_model(question: str) -> str:
    time.sleep(0.2)
    return f"(model answer to: {question})"


def main():
    print("=" * 60)
    print("VectorCache Semantic Cache Example")
    print("=" * 60)

    settings = Settings.from_dict({
        "dimension": DIMENSION,
        "metric": "cosine",
        "sharding": {"shard_count": 4, "shard_capacity": 500, "default_nprobe": 2},
        "eviction": {"policy": "ttl", "ttl_seconds": 600.0},
        "hit_threshold": 0.8,
        "seed": 1,
    })
    settings.apply_logging()

    with VectorCache(settings.to_cache_config()) as cache:
        semantic = SemanticCache(cache, min_similarity=0.8)

        questions = [
            "What is the capital of France?",
            "How do I reverse a list in Python?",
            "what is the capital of france",
            "How do I reverse a Python list?",
            "Why is the sky blue?",
        ]

        for question in questions:
            start = time.time()
            answer = semantic.lookup(question)
            source = "cache"
            if answer is None:
                answer = slow_model(question)
                semantic.store(question, answer)
                source = "model"
            elapsed = (time.time() - start) * 1000
            print(f"\n   Q: {question}")
            print(f"   A: {answer}  [{source}, {elapsed:.1f}ms]")

        metrics = cache.metrics()
        print(f"\n   Queries: {metrics.queries}, hit rate: {metrics.hit_rate:.0%}")
        print(f"   Cached answers: {metrics.total_count}")

    print("\n" + "=" * 60)
    print("Example completed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
