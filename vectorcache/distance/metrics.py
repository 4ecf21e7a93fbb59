"""
Core distance and similarity metric implementations.

All functions are NumPy vectorized. Each metric produces a *score*:
distances (euclidean) are better when smaller, similarities (cosine,
dot) are better when larger. The registry records the direction.

Row-wise functions compute every row independently of the others so a
vector's score never depends on where it sits in the matrix.
"""

from __future__ import annotations

import numpy as np
from typing import Optional
from numpy.typing import NDArray


# Type aliases
Vector = NDArray[np.floating]
VectorBatch = NDArray[np.floating]

EPS = 1e-8


# =============================================================================
# SINGLE VECTOR FUNCTIONS
# =============================================================================

def euclidean(a: Vector, b: Vector) -> float:
    """
    Compute Euclidean (L2) distance between two vectors.

    Formula: sqrt(sum((a_i - b_i)^2))

    Example:
        >>> a = np.array([0.0, 0.0])
        >>> b = np.array([3.0, 4.0])
        >>> euclidean(a, b)
        5.0
    """
    diff = np.asarray(a, dtype=np.float32) - np.asarray(b, dtype=np.float32)
    return float(np.sqrt(np.sum(diff * diff)))


def cosine_similarity(a: Vector, b: Vector, eps: float = EPS) -> float:
    """
    Compute cosine similarity between two vectors.

    Formula: (a · b) / (||a|| * ||b||)

    A zero vector has similarity 0 with everything.

    Example:
        >>> cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0]))
        1.0
    """
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    norm_a = np.sqrt(np.sum(a * a))
    norm_b = np.sqrt(np.sum(b * b))

    if norm_a < eps or norm_b < eps:
        return 0.0

    similarity = np.sum(a * b) / (norm_a * norm_b)
    return float(np.clip(similarity, -1.0, 1.0))


def dot_product(a: Vector, b: Vector) -> float:
    """
    Compute dot product (inner product) between two vectors.

    Example:
        >>> dot_product(np.array([1.0, 2.0, 3.0]), np.array([4.0, 5.0, 6.0]))
        32.0
    """
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    return float(np.sum(a * b))


# =============================================================================
# QUERY-TO-COLLECTION SCORES
# =============================================================================

def rowwise_euclidean(query: Vector, collection: VectorBatch) -> NDArray:
    """
    Euclidean distances from a query to every row of a collection.

    Args:
        query: Query vector of shape (d,)
        collection: Vectors of shape (n, d)

    Returns:
        Distances of shape (n,)
    """
    diff = collection - query
    return np.sqrt(np.sum(diff * diff, axis=1))


def rowwise_cosine(
    query: Vector,
    collection: VectorBatch,
    eps: float = EPS,
) -> NDArray:
    """
    Cosine similarities from a query to every row of a collection.

    Returns:
        Similarities of shape (n,) in [-1, 1]
    """
    q_norm = np.sqrt(np.sum(query * query))
    if q_norm < eps:
        return np.zeros(len(collection), dtype=np.float32)

    c_norms = np.sqrt(np.sum(collection * collection, axis=1))
    dots = np.sum(collection * query, axis=1)

    # Zero rows get similarity 0
    safe_norms = np.where(c_norms < eps, 1.0, c_norms)
    similarities = np.where(c_norms < eps, 0.0, dots / (q_norm * safe_norms))
    return np.clip(similarities, -1.0, 1.0)


def rowwise_dot(query: Vector, collection: VectorBatch) -> NDArray:
    """Dot products from a query to every row of a collection."""
    return np.sum(collection * query, axis=1)


# =============================================================================
# PAIRWISE (BATCH) FUNCTIONS
# =============================================================================

def pairwise_euclidean(X: VectorBatch, Y: Optional[VectorBatch] = None) -> NDArray:
    """
    Compute pairwise Euclidean distances between vectors.

    Uses the identity: ||a-b||^2 = ||a||^2 + ||b||^2 - 2*a·b

    Args:
        X: Array of shape (n, d)
        Y: Array of shape (m, d), or None to compute X vs X

    Returns:
        Distance matrix of shape (n, m)
    """
    if Y is None:
        Y = X

    X_sqnorm = np.sum(X ** 2, axis=1, keepdims=True)  # (n, 1)
    Y_sqnorm = np.sum(Y ** 2, axis=1, keepdims=True)  # (m, 1)

    sq_distances = X_sqnorm + Y_sqnorm.T - 2 * (X @ Y.T)

    # Clamp negative values (numerical errors) and sqrt
    return np.sqrt(np.maximum(sq_distances, 0))


def pairwise_cosine(
    X: VectorBatch,
    Y: Optional[VectorBatch] = None,
    eps: float = EPS,
) -> NDArray:
    """
    Compute pairwise cosine similarities between vectors.

    Returns:
        Similarity matrix of shape (n, m), values in [-1, 1]
    """
    if Y is None:
        Y = X

    X_norm = np.linalg.norm(X, axis=1, keepdims=True)
    Y_norm = np.linalg.norm(Y, axis=1, keepdims=True)

    X_zero = X_norm < eps
    Y_zero = Y_norm < eps

    X_normalized = X / np.where(X_zero, 1.0, X_norm)
    Y_normalized = Y / np.where(Y_zero, 1.0, Y_norm)

    similarity = X_normalized @ Y_normalized.T
    similarity = np.where(X_zero | Y_zero.T, 0.0, similarity)
    return np.clip(similarity, -1.0, 1.0)


def pairwise_dot(X: VectorBatch, Y: Optional[VectorBatch] = None) -> NDArray:
    """Compute pairwise dot products, shape (n, m)."""
    if Y is None:
        Y = X
    return X @ Y.T


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def compute_centroid(vectors: VectorBatch) -> Vector:
    """
    Compute the centroid (mean) of a set of vectors.

    Args:
        vectors: Array of shape (n, d)

    Returns:
        Centroid vector of shape (d,)
    """
    return np.mean(vectors, axis=0)


def normalize_rows(vectors: VectorBatch, eps: float = EPS) -> VectorBatch:
    """
    Scale every row to unit length. Zero rows stay zero.

    Example:
        >>> normalize_rows(np.array([[3.0, 4.0], [0.0, 0.0]]))
        array([[0.6, 0.8],
               [0. , 0. ]])
    """
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    return np.where(norms < eps, 0.0, vectors / np.where(norms < eps, 1.0, norms))
