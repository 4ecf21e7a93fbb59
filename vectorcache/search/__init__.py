"""
Search components: top-k heap, shard router and scatter-gather engine.
"""

from .heap import SearchResult, TopKHeap
from .router import Router
from .engine import SearchEngine, SearchOutcome

__all__ = [
    "SearchResult",
    "TopKHeap",
    "Router",
    "SearchEngine",
    "SearchOutcome",
]
