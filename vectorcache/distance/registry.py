"""
Distance metric registry.

Provides a unified interface for accessing metrics by name, together
with the direction in which their scores improve.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Optional, Union
from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

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
)


# Type aliases
Vector = NDArray[np.floating]
ScoreFunction = Callable[[Vector, Vector], float]
RowwiseFunction = Callable[[Vector, NDArray], NDArray]
PairwiseFunction = Callable[[NDArray, Optional[NDArray]], NDArray]


class DistanceMetric(str, Enum):
    """Enumeration of supported metrics."""

    EUCLIDEAN = "euclidean"
    COSINE = "cosine"
    DOT = "dot"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MetricInfo:
    """
    Information about a metric.

    ``rank_key`` maps scores onto a "smaller is better" scale, so heaps
    and sorts can treat distances and similarities the same way.
    """

    name: str
    function: ScoreFunction
    rowwise_function: RowwiseFunction
    pairwise_function: PairwiseFunction
    higher_is_better: bool
    description: str

    def score(self, a: Vector, b: Vector) -> float:
        """Score a single pair of vectors."""
        return self.function(a, b)

    def scores(self, query: Vector, collection: NDArray) -> NDArray:
        """Score a query against every row of a collection."""
        return self.rowwise_function(query, collection)

    def rank_key(self, score: Union[float, NDArray]) -> Union[float, NDArray]:
        """Convert score(s) to smaller-is-better keys."""
        return -score if self.higher_is_better else score

    def rank_keys_pairwise(self, X: NDArray, Y: NDArray) -> NDArray:
        """Smaller-is-better key matrix of shape (len(X), len(Y))."""
        return self.rank_key(self.pairwise_function(X, Y))

    def is_better(self, a: float, b: float) -> bool:
        """True if score ``a`` is strictly better than ``b``."""
        return a > b if self.higher_is_better else a < b

    def __repr__(self) -> str:
        return f"MetricInfo(name='{self.name}', higher_is_better={self.higher_is_better})"


# =============================================================================
# METRIC REGISTRY
# =============================================================================

class MetricRegistry:
    """Registry for metrics, with aliases."""

    def __init__(self):
        self._metrics: Dict[str, MetricInfo] = {}
        self._aliases: Dict[str, str] = {}
        self._register_builtins()

    def _register_builtins(self) -> None:
        """Register built-in metrics."""

        self.register(
            MetricInfo(
                name="euclidean",
                function=euclidean,
                rowwise_function=rowwise_euclidean,
                pairwise_function=pairwise_euclidean,
                higher_is_better=False,
                description="Euclidean (L2) distance",
            ),
            aliases=["l2"],
        )

        self.register(
            MetricInfo(
                name="cosine",
                function=cosine_similarity,
                rowwise_function=rowwise_cosine,
                pairwise_function=pairwise_cosine,
                higher_is_better=True,
                description="Cosine similarity",
            ),
            aliases=["cosine_similarity"],
        )

        self.register(
            MetricInfo(
                name="dot",
                function=dot_product,
                rowwise_function=rowwise_dot,
                pairwise_function=pairwise_dot,
                higher_is_better=True,
                description="Dot product (inner product)",
            ),
            aliases=["inner_product", "ip"],
        )

    def register(self, info: MetricInfo, aliases: Optional[List[str]] = None) -> None:
        """Register a metric under its name and aliases."""
        name = info.name.lower()
        self._metrics[name] = info
        for alias in aliases or []:
            self._aliases[alias.lower()] = name

    def get(self, name: Union[str, DistanceMetric]) -> MetricInfo:
        """
        Look up a metric by name or alias.

        Raises:
            ValueError: If the metric is unknown
        """
        key = str(name).lower()
        key = self._aliases.get(key, key)

        if key not in self._metrics:
            raise ValueError(
                f"Unknown metric: '{name}'. Available: {', '.join(self.list())}"
            )

        return self._metrics[key]

    def list(self) -> List[str]:
        """List registered metric names."""
        return sorted(self._metrics)

    def __contains__(self, name: str) -> bool:
        key = str(name).lower()
        return key in self._metrics or key in self._aliases


_registry = MetricRegistry()


def get_metric(name: Union[str, DistanceMetric]) -> MetricInfo:
    """
    Get a metric by name.

    Example:
        >>> metric = get_metric("cosine")
        >>> metric.higher_is_better
        True
    """
    return _registry.get(name)


def list_metrics() -> List[str]:
    """List available metric names."""
    return _registry.list()
