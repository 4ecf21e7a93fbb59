"""
Distance and similarity metrics for vector similarity search.

Supported Metrics:
    - euclidean: L2 distance (smaller = more similar)
    - cosine: Cosine similarity (larger = more similar)
    - dot: Dot product (larger = more similar)

Example:
    >>> from vectorcache.distance import get_metric
    >>> import numpy as np
    >>>
    >>> metric = get_metric("euclidean")
    >>> metric.score(np.zeros(3), np.ones(3))
"""

from .metrics import (
    euclidean,
    cosine_similarity,
    dot_product,
    rowwise_euclidean,
    rowwise_cosine,
    rowwise_dot,
    pairwise_euclidean,
    pairwise_cosine,
    pairwise_dot,
    compute_centroid,
    normalize_rows,
)

from .registry import (
    DistanceMetric,
    MetricInfo,
    get_metric,
    list_metrics,
)

__all__ = [
    # Single vector functions
    "euclidean",
    "cosine_similarity",
    "dot_product",
    # Batch functions
    "rowwise_euclidean",
    "rowwise_cosine",
    "rowwise_dot",
    "pairwise_euclidean",
    "pairwise_cosine",
    "pairwise_dot",
    "compute_centroid",
    "normalize_rows",
    # Registry
    "DistanceMetric",
    "MetricInfo",
    "get_metric",
    "list_metrics",
]
