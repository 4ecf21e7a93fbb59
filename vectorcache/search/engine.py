"""
Scatter-gather search over the cache's shards.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from numpy.typing import NDArray

from .heap import SearchResult, TopKHeap
from .router import Router
from ..core.exceptions import QueryCancelledError
from ..core.partition import CacheState
from ..distance import MetricInfo
from ..utils.concurrency import WorkerPool
from ..utils.logging import get_logger


logger = get_logger(__name__)

# How often a waiting query re-checks its cancel flag (seconds)
CANCEL_POLL_INTERVAL = 0.01


@dataclass
class SearchOutcome:
    """
    Merged results of one query plus fan-out bookkeeping.

    Attributes:
        results: Up to k results, best first
        probed: Shard ids that were asked
        responded: Shard ids whose results were merged
        timed_out: Shard ids that missed the deadline
        failed: Shard ids whose scan raised
        partition_version: Version the query ran against
        latency_ms: Wall time of the query
    """

    results: List[SearchResult] = field(default_factory=list)
    probed: List[int] = field(default_factory=list)
    responded: List[int] = field(default_factory=list)
    timed_out: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    partition_version: int = 0
    latency_ms: float = 0.0

    @property
    def available(self) -> bool:
        """True if at least one probed shard answered."""
        return bool(self.responded)

    @property
    def partial(self) -> bool:
        """True if some probed shard didn't contribute."""
        return bool(self.timed_out or self.failed)


class SearchEngine:
    """
    Runs a query against the nearest shards in parallel and merges.

    Each probed shard's local search runs on the worker pool. The caller
    waits for all of them (or the deadline), then merges the per-shard
    top-k lists with the same bounded heap the shards use.

    Example:
        >>> engine = SearchEngine(Router(), WorkerPool(4), get_metric("cosine"))
        >>> outcome = engine.search(state, query, k=5, nprobe=2)
        >>> [r.id for r in outcome.results]
    """

    def __init__(self, router: Router, pool: WorkerPool, metric: MetricInfo):
        self._router = router
        self._pool = pool
        self._metric = metric

    def search(
        self,
        state: CacheState,
        query: NDArray,
        k: int,
        nprobe: int,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> SearchOutcome:
        """
        Search one version of the cache.

        Args:
            state: Cache state to search
            query: Validated query vector
            k: Number of results
            nprobe: Number of shards to probe
            cancel: Set to abandon the query
            timeout: Seconds to wait for shards; late shards are dropped

        Returns:
            SearchOutcome; ``available`` is False if no probed shard answered

        Raises:
            QueryCancelledError: If ``cancel`` was set before all shards answered
        """
        start = time.time()
        probe = self._router.select_probe_shards(query, state.partition_map, nprobe)

        if cancel is not None and cancel.is_set():
            raise QueryCancelledError("Query cancelled before dispatch")

        futures: Dict[Future, int] = {
            self._pool.submit(state.shard(shard_id).local_search, query, k): shard_id
            for shard_id in probe
        }

        deadline = start + timeout if timeout is not None else None
        pending = set(futures)
        done_all: List[Future] = []

        while pending:
            if cancel is not None and cancel.is_set():
                for future in pending:
                    future.cancel()
                raise QueryCancelledError(
                    f"Query cancelled with {len(pending)} of {len(probe)} shards pending"
                )

            wait_for = CANCEL_POLL_INTERVAL if cancel is not None else None
            if deadline is not None:
                remaining = deadline - time.time()
                if remaining <= 0:
                    break
                wait_for = remaining if wait_for is None else min(wait_for, remaining)

            done, pending = wait(pending, timeout=wait_for, return_when=FIRST_COMPLETED)
            done_all.extend(done)

        outcome = SearchOutcome(probed=probe, partition_version=state.version)

        for future in pending:
            future.cancel()
            outcome.timed_out.append(futures[future])
        if outcome.timed_out:
            logger.warning(
                f"Shards {sorted(outcome.timed_out)} missed the {timeout}s deadline"
            )

        merged: TopKHeap[SearchResult] = TopKHeap(k)
        for future in done_all:
            shard_id = futures[future]
            error = future.exception()
            if error is not None:
                logger.warning(f"Shard {shard_id} search failed: {error!r}")
                outcome.failed.append(shard_id)
                continue

            outcome.responded.append(shard_id)
            for result in future.result():
                merged.push(float(self._metric.rank_key(result.score)), result.id, result)

        outcome.responded.sort()
        outcome.failed.sort()
        outcome.timed_out.sort()
        outcome.results = [result for _, _, result in merged.sorted()]
        outcome.latency_ms = (time.time() - start) * 1000
        return outcome
