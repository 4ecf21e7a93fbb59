"""
VectorCache - sharded vector similarity cache.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from .config import CacheConfig
from .exceptions import (
    AllShardsUnavailableError,
    CapacityExceededError,
    DuplicateIDError,
    LoadError,
    QueryCancelledError,
    RecordNotFoundError,
    ShardRetiredError,
    ValidationError,
    VectorCacheError,
)
from .metrics import CacheMetrics, MetricsCollector
from .partition import CacheState, PartitionMap
from .record import VectorRecord
from .shard import Shard, ShardInsertResult
from ..cluster import KMeansPartitioner, PartitionPlan
from ..distance import get_metric
from ..eviction import create_policy
from ..filter import BloomFilter
from ..search import Router, SearchEngine, SearchResult
from ..storage import CacheSnapshot, ShardSnapshot, read_snapshot, write_snapshot
from ..utils.concurrency import WorkerPool, read_lock_all, write_lock_all
from ..utils.logging import get_logger, set_level
from ..utils.validation import (
    validate_embedding,
    validate_id,
    validate_k,
    validate_metadata,
    validate_nprobe,
)


logger = get_logger(__name__)


class CacheStatus(str, Enum):
    """Lifecycle state of a cache."""
    READY = "ready"
    REBUILDING = "rebuilding"


class VectorCache:
    """
    Sharded cache of embeddings with approximate nearest-neighbour lookup.

    Records are spread over a fixed number of shards, each owning the
    records nearest its centroid. Queries probe the ``nprobe`` nearest
    shards in parallel and merge their top-k lists. Full shards evict
    through the configured policy. ``rebuild()`` re-clusters the cache
    with k-means and swaps in the new layout in one step.

    Example:
        >>> cache = VectorCache(dimension=384, shard_count=8, shard_capacity=10000)
        >>>
        >>> # Insert embeddings
        >>> id = cache.insert(embedding, metadata=b"cached answer")
        >>>
        >>> # Query
        >>> results = cache.query(query_embedding, k=5)
        >>> results[0].metadata
        b'cached answer'
        >>>
        >>> # Rebalance, persist, reload
        >>> cache.rebuild()
        >>> cache.save("cache.vcache")
        >>> cache = VectorCache.load("cache.vcache")

    Thread Safety:
        Every public method may be called from any thread. Queries and
        inserts keep running during a rebuild against the previous
        layout; they only wait while the new layout is swapped in.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        created_at: Optional[float] = None,
        **kwargs: Any,
    ):
        """
        Initialize an empty cache.

        Args:
            config: Cache configuration
            clock: Source of "now" for record timestamps (defaults to time.time)
            created_at: Creation time to report (defaults to now)
            **kwargs: CacheConfig fields, used when config is None

        Raises:
            ValueError: If the configuration is invalid
        """
        if config is None:
            config = CacheConfig(**kwargs)
        elif kwargs:
            raise ValueError("Pass either a config or config fields, not both")

        self.config = config
        self._metric = get_metric(config.distance_metric)
        self._clock = clock or time.time
        self._capacities = config.shard_capacities()

        if config.debug:
            set_level("DEBUG")

        self._router = Router(self._metric)
        self._partitioner = KMeansPartitioner(
            metric=self._metric,
            max_iterations=config.kmeans_max_iterations,
            tolerance=config.kmeans_tolerance,
            seed=config.seed,
        )

        self._pool = WorkerPool(config.num_workers, name=f"{config.cache_id}-shard")
        self._engine = SearchEngine(self._router, self._pool, self._metric)
        self._rebuild_executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=f"{config.cache_id}-rebuild",
        )

        # Locks
        self._rebuild_lock = threading.Lock()
        self._id_lock = threading.Lock()
        self._custom_id_lock = threading.Lock()
        self._global_insert_lock = threading.Lock()

        # ID allocation
        self._next_id = 0
        self._pending_ids: set = set()
        self._inserts_since_rebuild = 0

        self._metrics = MetricsCollector(config.cache_id, created_at=created_at)
        self._status = CacheStatus.READY
        self._closed = False

        initial_map = self._partitioner.random_map(config.shard_count, config.dimension)
        self._state = self._build_state(initial_map, {})

        logger.info(
            f"VectorCache '{config.cache_id}' created: dimension={config.dimension}, "
            f"shards={config.shard_count}, metric={config.distance_metric}, "
            f"eviction={config.eviction_policy}, capacity_mode={config.capacity_mode}"
        )

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def cache_id(self) -> str:
        return self.config.cache_id

    @property
    def dimension(self) -> int:
        return self.config.dimension

    @property
    def status(self) -> CacheStatus:
        return self._status

    @property
    def partition_map(self) -> PartitionMap:
        return self._state.partition_map

    @property
    def partition_version(self) -> int:
        return self._state.version

    @property
    def total_count(self) -> int:
        return self._state.total_count

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # INSERT / REMOVE / LOOKUP
    # =========================================================================

    def insert(
        self,
        embedding: Union[NDArray, Sequence[float]],
        metadata: Optional[bytes] = None,
        id: Optional[int] = None,
    ) -> int:
        """
        Insert an embedding.

        Args:
            embedding: Vector of length ``dimension``
            metadata: Opaque payload returned with query results
            id: Caller-chosen id (requires ``allow_custom_ids``)

        Returns:
            The record's id

        Raises:
            InvalidDimensionError: If the embedding has the wrong length
            ValidationError: If a custom id is given but not allowed
            DuplicateIDError: If the custom id is already live
            CapacityExceededError: If full and no eviction policy is configured
        """
        self._check_open()

        vector = validate_embedding(embedding, self.config.dimension)
        metadata = validate_metadata(metadata)

        if id is None:
            with self._id_lock:
                id = self._next_id
                self._next_id += 1
                self._pending_ids.add(id)
            try:
                self._place(VectorRecord(id, vector, metadata, inserted_at=self._clock()))
            finally:
                with self._id_lock:
                    self._pending_ids.discard(id)
        else:
            if not self.config.allow_custom_ids:
                raise ValidationError("Custom ids are disabled (allow_custom_ids=False)")
            id = validate_id(id)

            with self._custom_id_lock:
                with self._id_lock:
                    if id in self._pending_ids:
                        raise DuplicateIDError(f"ID {id} is being inserted")
                    self._next_id = max(self._next_id, id + 1)

                if self.contains(id):
                    raise DuplicateIDError(f"ID {id} already exists")

                self._place(VectorRecord(id, vector, metadata, inserted_at=self._clock()))

        self._after_insert()
        return id

    def insert_batch(
        self,
        embeddings: Union[NDArray, Sequence[Sequence[float]]],
        metadata: Optional[Sequence[Optional[bytes]]] = None,
    ) -> List[int]:
        """
        Insert several embeddings with generated ids.

        Every input is validated before anything is inserted.

        Returns:
            IDs in input order
        """
        self._check_open()

        vectors = [validate_embedding(e, self.config.dimension) for e in embeddings]
        if metadata is None:
            metadata = [None] * len(vectors)
        elif len(metadata) != len(vectors):
            raise ValidationError(
                f"Got {len(metadata)} metadata entries for {len(vectors)} embeddings"
            )
        payloads = [validate_metadata(m) for m in metadata]

        return [self.insert(vector, payload) for vector, payload in zip(vectors, payloads)]

    def remove(self, id: int) -> None:
        """
        Remove a record.

        Raises:
            RecordNotFoundError: If no live record has this id
        """
        self._check_open()
        id = validate_id(id)

        while True:
            try:
                self._find(self._state, id, lambda shard: shard.remove(id))
            except ShardRetiredError:
                continue
            break

        self._metrics.increment("removals")
        logger.debug(f"Removed {id}")

    def get(self, id: int, touch: bool = True) -> VectorRecord:
        """
        Fetch a record by id.

        Args:
            id: Record ID
            touch: Count the lookup as an access (eviction recency/frequency)

        Raises:
            RecordNotFoundError: If no live record has this id
        """
        self._check_open()
        id = validate_id(id)

        while True:
            try:
                record = self._find(self._state, id, lambda shard: shard.get(id, touch=touch))
            except ShardRetiredError:
                continue
            except RecordNotFoundError:
                self._metrics.increment("misses")
                raise
            break

        self._metrics.increment("hits")
        return record

    def contains(self, id: int) -> bool:
        """True if a live record has this id."""
        id = validate_id(id)
        for shard in self._state.shards:
            if shard.contains_hint(id) and shard.contains(id):
                return True
        return False

    def purge_expired(self) -> int:
        """
        Drop every expired record (TTL policy only).

        Returns:
            Number of records removed
        """
        self._check_open()

        if self.config.eviction_policy != "ttl":
            return 0

        now = self._clock()
        removed = 0
        while True:
            try:
                for shard in self._state.shards:
                    removed += len(shard.purge_expired(now))
            except ShardRetiredError:
                continue
            break

        if removed:
            self._metrics.increment("evictions", removed)
            logger.info(f"Purged {removed} expired records")
        return removed

    # =========================================================================
    # QUERY
    # =========================================================================

    def query(
        self,
        embedding: Union[NDArray, Sequence[float]],
        k: int = 10,
        nprobe: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> List[SearchResult]:
        """
        Find the ``k`` nearest cached embeddings.

        Args:
            embedding: Query vector
            k: Number of results
            nprobe: Shards to probe (defaults to ``default_nprobe``)
            cancel: Event that abandons the query when set
            timeout: Seconds to wait for shards (defaults to ``shard_timeout``)

        Returns:
            Up to ``k`` results, best first; ties go to the lower id

        Raises:
            InvalidDimensionError: If the query has the wrong length
            QueryCancelledError: If ``cancel`` was set
            AllShardsUnavailableError: If no probed shard answered in time
        """
        self._check_open()

        vector = validate_embedding(embedding, self.config.dimension)
        k = validate_k(k)
        nprobe = validate_nprobe(
            self.config.default_nprobe if nprobe is None else nprobe,
            self.config.shard_count,
        )
        if timeout is None:
            timeout = self.config.shard_timeout

        state = self._state
        try:
            outcome = self._engine.search(state, vector, k, nprobe, cancel=cancel, timeout=timeout)
        except QueryCancelledError:
            self._metrics.increment("cancelled_queries")
            raise

        results = outcome.results
        self._metrics.record_query(
            outcome.latency_ms,
            hit=self._is_hit(results),
            timed_out=len(outcome.timed_out),
            failed=len(outcome.failed),
        )

        if not outcome.available:
            raise AllShardsUnavailableError(
                f"None of the {len(outcome.probed)} probed shards answered"
            )

        self._touch_results(state, results)
        return results

    def _is_hit(self, results: List[SearchResult]) -> bool:
        if not results:
            return False
        threshold = self.config.hit_threshold
        if threshold is None:
            return True
        return not self._metric.is_better(threshold, results[0].score)

    def _touch_results(self, state: CacheState, results: List[SearchResult]) -> None:
        by_shard: Dict[int, List[int]] = {}
        for result in results:
            by_shard.setdefault(result.shard_id, []).append(result.id)
        for shard_id, ids in by_shard.items():
            # Retired shards ignore touches
            state.shard(shard_id).touch(ids)

    # =========================================================================
    # REBUILD
    # =========================================================================

    def rebuild(self) -> int:
        """
        Re-cluster the cache and swap in the new layout.

        k-means runs on a snapshot while inserts and queries continue
        against the current layout. The swap then takes every shard's
        write lock in ascending id order, re-reads the live records,
        builds the new shards and publishes them in one assignment.

        Returns:
            The new partition version
        """
        self._check_open()

        with self._rebuild_lock:
            self._status = CacheStatus.REBUILDING
            start = time.time()
            try:
                old_state = self._state
                snapshots = self._pool.map_all(lambda shard: shard.snapshot(), old_state.shards)
                records = [record for snapshot in snapshots for record in snapshot]

                plan = self._partitioner.rebuild(
                    records,
                    k=self.config.shard_count,
                    version=old_state.version + 1,
                    dimension=self.config.dimension,
                )
                new_state = self._swap(old_state, plan)
            finally:
                self._status = CacheStatus.READY

        self._metrics.increment("rebuilds")
        logger.info(
            f"Rebuild of '{self.cache_id}' finished: version {new_state.version}, "
            f"{new_state.total_count} records, {plan.iterations} iterations, "
            f"occupancy={[len(s) for s in new_state.shards]} "
            f"({(time.time() - start) * 1000:.1f}ms)"
        )
        return new_state.version

    def rebuild_async(self) -> Future:
        """
        Schedule a rebuild on the background thread.

        Returns:
            Future resolving to the new partition version
        """
        self._check_open()
        return self._rebuild_executor.submit(self.rebuild)

    def _swap(self, old_state: CacheState, plan: PartitionPlan) -> CacheState:
        """
        Install a plan under every shard's write lock.

        A record that does not fit its nearest shard is evicted there by
        the policy. With ``spill_on_full``, or when there is no policy to
        evict with, it moves to the next-nearest shard with room instead.
        """
        pmap = plan.partition_map
        spill = self._spills()
        spilled = 0

        with self._global_insert_lock, write_lock_all(s.lock for s in old_state.shards):
            buckets: Dict[int, List[VectorRecord]] = {shard_id: [] for shard_id in pmap.shard_ids}

            # Records written while k-means ran are picked up here
            for shard in old_state.shards:
                for record in shard.records_locked():
                    shard_id = plan.assignments.get(record.id)
                    if shard_id is None:
                        shard_id = self._router.nearest_shard(record.embedding, pmap)
                    if spill and not self._bucket_has_room(buckets, shard_id):
                        shard_id = self._spill_target(record, pmap, buckets)
                        spilled += 1
                    buckets[shard_id].append(record)

            new_state = self._build_state(pmap, buckets, evict_overflow=not spill)
            self._state = new_state

            for shard in old_state.shards:
                shard.retire()

        if spilled:
            self._metrics.increment("rebuild_spills", spilled)
            logger.warning(
                f"Rebuild of '{self.cache_id}': {spilled} records did not fit their "
                f"nearest shard and were placed in the next nearest with room"
            )
        return new_state

    def _spills(self) -> bool:
        return self.config.spill_on_full or self.config.eviction_policy is None

    def _bucket_has_room(self, buckets: Dict[int, List[VectorRecord]], shard_id: int) -> bool:
        capacity = self._capacities[shard_id]
        return capacity is None or len(buckets[shard_id]) < capacity

    def _spill_target(
        self,
        record: VectorRecord,
        pmap: PartitionMap,
        buckets: Dict[int, List[VectorRecord]],
    ) -> int:
        for shard_id in self._router.rank_shards(record.embedding, pmap):
            if self._bucket_has_room(buckets, shard_id):
                return shard_id
        # Unreachable while every shard respects its capacity
        raise CapacityExceededError("No shard has room during rebuild")

    def _after_insert(self) -> None:
        interval = self.config.rebuild_interval
        if interval is None:
            return

        with self._id_lock:
            self._inserts_since_rebuild += 1
            due = self._inserts_since_rebuild >= interval
            if due:
                self._inserts_since_rebuild = 0

        if due and self._status is CacheStatus.READY and not self._closed:
            logger.debug(f"{interval} inserts since last rebuild, scheduling one")
            try:
                self._rebuild_executor.submit(self.rebuild)
            except RuntimeError as e:
                # close() shut the executor down after the insert landed
                logger.debug(f"Automatic rebuild not scheduled: {e}")

    # =========================================================================
    # METRICS
    # =========================================================================

    def metrics(self) -> CacheMetrics:
        """Snapshot of counters and occupancy. Takes no shard locks."""
        state = self._state
        occupancy = [len(shard) for shard in state.shards]
        return self._metrics.snapshot(
            total_count=sum(occupancy),
            shard_occupancy=occupancy,
            partition_version=state.version,
        )

    def shard_stats(self) -> List[Dict[str, Any]]:
        """Per-shard occupancy and filter statistics."""
        return [shard.stats() for shard in self._state.shards]

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def save(self, path: Union[str, Path]) -> None:
        """
        Write the cache to a single file.

        The write goes to a temporary file that replaces ``path`` once
        complete, so a crash never leaves a half-written file behind.
        """
        self._check_open()
        start = time.time()

        # Holding the rebuild lock keeps the layout fixed while saving
        with self._rebuild_lock:
            state = self._state
            with read_lock_all(s.lock for s in state.shards):
                shards = [
                    ShardSnapshot(
                        shard_id=shard.shard_id,
                        centroid=shard.centroid,
                        records=shard.records_locked(),
                        filter_state=shard.filter.state(),
                        filter_bits=shard.filter.to_bytes(),
                    )
                    for shard in state.shards
                ]
            with self._id_lock:
                next_id = self._next_id

        snapshot = CacheSnapshot(
            config=self.config.to_dict(),
            partition_version=state.version,
            next_id=next_id,
            created_at=self._metrics.created_at,
            shards=shards,
        )
        write_snapshot(path, snapshot)

        logger.info(
            f"Saved '{self.cache_id}' to {path}: {sum(len(s.records) for s in shards)} "
            f"records, version {state.version} ({(time.time() - start) * 1000:.1f}ms)"
        )

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        clock: Optional[Callable[[], float]] = None,
    ) -> "VectorCache":
        """
        Load a cache written by ``save``.

        Raises:
            LoadError: If the file is missing, corrupt or inconsistent
        """
        snapshot = read_snapshot(path)

        try:
            config = CacheConfig.from_dict(snapshot.config)
        except (TypeError, ValueError) as e:
            raise LoadError(f"Invalid configuration in {path}: {e}") from e

        cache = cls(config, clock=clock, created_at=snapshot.created_at)
        try:
            cache._restore(snapshot)
        except (ValueError, KeyError, TypeError, VectorCacheError) as e:
            cache.close()
            raise LoadError(f"Inconsistent cache file {path}: {e}") from e

        logger.info(
            f"Loaded '{cache.cache_id}' from {path}: {cache.total_count} records, "
            f"version {cache.partition_version}"
        )
        return cache

    def _restore(self, snapshot: CacheSnapshot) -> None:
        if len(snapshot.shards) != self.config.shard_count:
            raise ValueError(
                f"{len(snapshot.shards)} shard sections for {self.config.shard_count} shards"
            )

        centroids = np.stack([s.centroid for s in snapshot.shards])
        pmap = PartitionMap(centroids, version=snapshot.partition_version)

        seen: set = set()
        shards = []
        for shard_id, section in enumerate(snapshot.shards):
            if section.shard_id != shard_id:
                raise ValueError(f"Shard section {section.shard_id} out of order")

            for record in section.records:
                if record.id in seen:
                    raise ValueError(f"ID {record.id} appears in more than one shard")
                if record.dimension != self.config.dimension:
                    raise ValueError(f"Record {record.id} has dimension {record.dimension}")
                seen.add(record.id)

            bloom = BloomFilter.from_state(section.filter_state, section.filter_bits)
            shard = self._new_shard(shard_id, pmap.centroid(shard_id), bloom=bloom)
            shard.load_records(section.records)
            shards.append(shard)

        if seen and max(seen) >= snapshot.next_id:
            raise ValueError(f"next_id {snapshot.next_id} is not above every stored id")

        self._state = CacheState(pmap, tuple(shards))
        self._next_id = snapshot.next_id

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _new_shard(
        self,
        shard_id: int,
        centroid: NDArray,
        bloom: Optional[BloomFilter] = None,
    ) -> Shard:
        capacity = self._capacities[shard_id]
        if bloom is None:
            bloom = BloomFilter(
                self.config.filter_capacity(capacity),
                self.config.filter_false_positive_rate,
            )

        seed = self.config.seed
        policy = create_policy(
            self.config.eviction_policy,
            centroid=centroid,
            ttl_seconds=self.config.ttl_seconds,
            recency_weight=self.config.score_recency_weight,
            seed=None if seed is None else seed + shard_id,
            clock=self._clock,
        )
        return Shard(shard_id, centroid, self._metric, capacity, bloom, policy, self._clock)

    def _build_state(
        self,
        pmap: PartitionMap,
        buckets: Dict[int, List[VectorRecord]],
        evict_overflow: bool = False,
    ) -> CacheState:
        shards = []
        evicted = 0
        for shard_id, centroid in pmap:
            shard = self._new_shard(shard_id, centroid)
            evicted += len(shard.load_records(buckets.get(shard_id, []),
                                              evict_overflow=evict_overflow))
            shards.append(shard)

        if evicted:
            self._metrics.increment("evictions", evicted)
            logger.info(f"Evicted {evicted} records that did not fit their new shard")
        return CacheState(pmap, tuple(shards))

    def _place(self, record: VectorRecord) -> ShardInsertResult:
        """Store a record on the current layout, retrying across a swap."""
        while True:
            state = self._state
            try:
                if self.config.is_global_capacity:
                    result = self._place_global(state, record)
                else:
                    result = self._choose_shard(state, record.embedding).insert(record)
            except ShardRetiredError:
                continue
            break

        self._metrics.increment("inserts")
        if result.evicted:
            self._metrics.increment("evictions", len(result.evicted))
        logger.debug(
            f"Inserted {record.id} (evicted {[r.id for r in result.evicted]})"
        )
        return result

    def _choose_shard(self, state: CacheState, vector: NDArray) -> Shard:
        order = self._router.rank_shards(vector, state.partition_map)
        if self.config.spill_on_full:
            for shard_id in order:
                if state.shard(shard_id).has_room():
                    return state.shard(shard_id)
        return state.shard(order[0])

    def _place_global(self, state: CacheState, record: VectorRecord) -> ShardInsertResult:
        with self._global_insert_lock:
            # A swap holds this lock too, so the state can't be retired here
            state = self._state
            evicted = []

            if state.total_count >= self.config.max_entries:
                if self.config.eviction_policy is None:
                    raise CapacityExceededError(
                        f"Cache is full ({self.config.max_entries} records) "
                        "and no eviction policy is configured"
                    )
                largest = max(state.shards, key=lambda s: (len(s), -s.shard_id))
                evicted.append(largest.evict_one())

            shard = state.shard(self._router.nearest_shard(record.embedding, state.partition_map))
            result = shard.insert(record)
            return ShardInsertResult(result.id, tuple(evicted) + result.evicted)

    def _find(self, state: CacheState, id: int, action: Callable[[Shard], Any]) -> Any:
        """Apply ``action`` to the shard holding ``id``, filters first."""
        for shard in state.shards:
            if not shard.contains_hint(id):
                continue
            try:
                return action(shard)
            except RecordNotFoundError:
                # Filter false positive
                continue
        raise RecordNotFoundError(f"ID {id} not found")

    def _check_open(self) -> None:
        if self._closed:
            raise VectorCacheError(f"Cache '{self.cache_id}' is closed")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        """Shut down the worker threads. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._rebuild_executor.shutdown(wait=True)
        self._pool.shutdown(wait=True)
        logger.info(f"VectorCache '{self.cache_id}' closed")

    def __enter__(self) -> "VectorCache":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __len__(self) -> int:
        return self.total_count

    def __contains__(self, id: int) -> bool:
        return self.contains(id)

    def __repr__(self) -> str:
        return (
            f"VectorCache(cache_id='{self.cache_id}', dimension={self.config.dimension}, "
            f"shards={self.config.shard_count}, count={self.total_count}, "
            f"version={self.partition_version}, status={self._status.value})"
        )
