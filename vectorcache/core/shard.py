"""
Shard: one partition of the cache.

A shard owns a disjoint subset of records together with a membership
filter, an eviction policy and a centroid. Every mutation happens under
the shard's write lock; scans take the read lock, so any number of
queries can scan a shard at once.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from .exceptions import (
    CapacityExceededError,
    DuplicateIDError,
    RecordNotFoundError,
    ShardRetiredError,
)
from .record import VectorRecord
from ..distance import MetricInfo
from ..eviction import EvictionPolicy, TTLPolicy
from ..filter import BloomFilter
from ..search.heap import SearchResult, TopKHeap
from ..utils.concurrency import ReadWriteLock
from ..utils.logging import get_logger


logger = get_logger(__name__)


class ShardInsertResult(NamedTuple):
    """Outcome of a shard insert."""
    id: int
    evicted: Tuple[VectorRecord, ...]


class Shard:
    """
    A partition of the cache.

    Example:
        >>> shard = Shard(0, centroid, metric, capacity=100,
        ...               bloom=BloomFilter(100), policy=LRUPolicy())
        >>> shard.insert(record)
        >>> shard.local_search(query, k=5)

    Thread Safety:
        All public methods are safe to call concurrently. Once a rebuild
        retires the shard, mutating methods raise ShardRetiredError so
        the caller can retry against the current cache state.
    """

    def __init__(
        self,
        shard_id: int,
        centroid: NDArray,
        metric: MetricInfo,
        capacity: Optional[int],
        bloom: BloomFilter,
        policy: Optional[EvictionPolicy] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize an empty shard.

        Args:
            shard_id: Index of the shard in the partition map
            centroid: Centroid of the shard's cluster
            metric: Metric used for local search
            capacity: Maximum record count (None = unbounded)
            bloom: Membership filter for the shard's ids
            policy: Eviction policy (None = reject inserts when full)
            clock: Source of "now" (defaults to time.time)
        """
        if capacity is not None and capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")

        self._shard_id = shard_id
        self._centroid = np.array(centroid, dtype=np.float32)
        self._centroid.setflags(write=False)
        self._metric = metric
        self._capacity = capacity
        self._filter = bloom
        self._policy = policy
        self._clock = clock or time.time

        # Records in insertion order
        self._records: Dict[int, VectorRecord] = {}

        # Stacked embeddings for scanning, rebuilt lazily after mutations
        self._matrix: Optional[NDArray] = None
        self._matrix_ids: Optional[NDArray] = None
        self._matrix_dirty = True
        self._matrix_lock = threading.Lock()

        self._lock = ReadWriteLock()
        self._retired = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def shard_id(self) -> int:
        return self._shard_id

    @property
    def centroid(self) -> NDArray:
        return self._centroid

    @property
    def capacity(self) -> Optional[int]:
        return self._capacity

    @property
    def filter(self) -> BloomFilter:
        return self._filter

    @property
    def policy(self) -> Optional[EvictionPolicy]:
        return self._policy

    @property
    def lock(self) -> ReadWriteLock:
        return self._lock

    @property
    def retired(self) -> bool:
        return self._retired

    def has_room(self) -> bool:
        """True if an insert would not need an eviction."""
        return self._capacity is None or len(self._records) < self._capacity

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def insert(self, record: VectorRecord) -> ShardInsertResult:
        """
        Store a record, evicting first if the shard is full.

        The incoming record is never chosen as its own victim.

        Returns:
            ShardInsertResult with the id and any evicted records

        Raises:
            DuplicateIDError: If the id is already stored here
            CapacityExceededError: If full and no policy is configured
            ShardRetiredError: If a rebuild replaced this shard
        """
        with self._lock.write_lock():
            self._check_active()

            if record.id in self._records:
                raise DuplicateIDError(f"ID {record.id} already exists in shard {self._shard_id}")

            evicted: List[VectorRecord] = []
            if self._capacity is not None and len(self._records) >= self._capacity:
                if self._policy is None:
                    raise CapacityExceededError(
                        f"Shard {self._shard_id} is full ({self._capacity} records) "
                        "and no eviction policy is configured"
                    )
                while len(self._records) >= self._capacity:
                    evicted.append(self._evict_locked())

            self._store_locked(record)

            return ShardInsertResult(record.id, tuple(evicted))

    def evict_one(self) -> VectorRecord:
        """
        Evict the policy's current victim.

        Raises:
            CapacityExceededError: If no policy is configured
            RecordNotFoundError: If the shard is empty
            ShardRetiredError: If a rebuild replaced this shard
        """
        with self._lock.write_lock():
            self._check_active()

            if self._policy is None:
                raise CapacityExceededError(
                    f"Shard {self._shard_id} has no eviction policy"
                )
            if not self._records:
                raise RecordNotFoundError(f"Shard {self._shard_id} is empty")

            return self._evict_locked()

    def remove(self, id: int) -> VectorRecord:
        """
        Remove a record. Filter bits are not cleared.

        Raises:
            RecordNotFoundError: If the id isn't stored here
            ShardRetiredError: If a rebuild replaced this shard
        """
        with self._lock.write_lock():
            self._check_active()

            record = self._records.pop(id, None)
            if record is None:
                raise RecordNotFoundError(f"ID {id} not found in shard {self._shard_id}")

            if self._policy is not None:
                self._policy.on_remove(id)
            self._matrix_dirty = True

            return record

    def get(self, id: int, touch: bool = True) -> VectorRecord:
        """
        Look up a record.

        Args:
            id: Record ID
            touch: Count this lookup as an access

        Raises:
            RecordNotFoundError: If the id isn't stored here
            ShardRetiredError: If touching a replaced shard
        """
        if not touch:
            with self._lock.read_lock():
                record = self._records.get(id)
            if record is None:
                raise RecordNotFoundError(f"ID {id} not found in shard {self._shard_id}")
            return record

        with self._lock.write_lock():
            self._check_active()
            if id not in self._records:
                raise RecordNotFoundError(f"ID {id} not found in shard {self._shard_id}")
            return self._touch_locked(id, self._clock())

    def touch(self, ids: Iterable[int]) -> int:
        """
        Record an access on each id still stored here.

        Returns:
            Number of records touched (0 if the shard is retired)
        """
        with self._lock.write_lock():
            if self._retired:
                return 0

            now = self._clock()
            count = 0
            for id in ids:
                if id in self._records:
                    self._touch_locked(id, now)
                    count += 1
            return count

    def purge_expired(self, now: Optional[float] = None) -> List[VectorRecord]:
        """
        Remove every expired record (TTL policy only).

        Returns:
            Removed records, oldest first
        """
        with self._lock.write_lock():
            self._check_active()

            if not isinstance(self._policy, TTLPolicy):
                return []

            removed = []
            for id in self._policy.expired(now):
                removed.append(self._records.pop(id))
                self._policy.on_remove(id)

            if removed:
                self._matrix_dirty = True
            return removed

    def load_records(
        self,
        records: Iterable[VectorRecord],
        evict_overflow: bool = False,
    ) -> List[VectorRecord]:
        """
        Bulk-load records into a fresh shard.

        Records are stored in the given order. The eviction policy sees
        them ordered by last access, so recency survives a rebuild or a
        reload.

        Args:
            records: Records to store
            evict_overflow: Load everything, then let the policy evict
                until the shard is back within capacity

        Returns:
            Records evicted to make the load fit

        Raises:
            ValueError: If the records exceed capacity (and may not be
                evicted) or repeat an id
        """
        records = list(records)

        with self._lock.write_lock():
            self._check_active()

            overflow = (
                self._capacity is not None
                and len(self._records) + len(records) > self._capacity
            )
            if overflow and (not evict_overflow or self._policy is None):
                raise ValueError(
                    f"{len(records)} records exceed capacity {self._capacity} "
                    f"of shard {self._shard_id}"
                )

            for record in records:
                if record.id in self._records:
                    raise ValueError(f"Duplicate ID {record.id} in shard {self._shard_id}")
                self._records[record.id] = record
                self._filter.add(record.id)

            if self._policy is not None:
                for record in sorted(records, key=lambda r: (r.last_accessed_at, r.id)):
                    self._policy.on_insert(record)

            evicted = []
            if overflow:
                while len(self._records) > self._capacity:
                    evicted.append(self._evict_locked())

            self._matrix_dirty = True
            return evicted

    def retire(self) -> None:
        """
        Mark the shard as replaced.

        Caller must hold the write lock.
        """
        self._retired = True

    # =========================================================================
    # READS
    # =========================================================================

    def contains(self, id: int) -> bool:
        """Authoritative membership check."""
        with self._lock.read_lock():
            return id in self._records

    def contains_hint(self, id: int) -> bool:
        """Filter check: False means definitely absent."""
        return self._filter.maybe_contains(id)

    def local_search(self, query: NDArray, k: int) -> List[SearchResult]:
        """
        Top-k records for a query by linear scan.

        Scores every record and keeps the best ``k`` in a bounded
        max-heap. Ties go to the lower id.

        Returns:
            Up to ``k`` results, best first
        """
        with self._lock.read_lock():
            if not self._records:
                return []

            matrix, ids = self._get_matrix()
            scores = self._metric.scores(query, matrix)
            keys = self._metric.rank_key(scores)

            heap: TopKHeap[int] = TopKHeap(k)
            for row in range(len(ids)):
                heap.push(float(keys[row]), int(ids[row]), row)

            return [
                SearchResult(
                    id=id,
                    score=float(scores[row]),
                    metadata=self._records[id].metadata,
                    shard_id=self._shard_id,
                )
                for _, id, row in heap.sorted()
            ]

    def snapshot(self) -> List[VectorRecord]:
        """All records, in insertion order."""
        with self._lock.read_lock():
            return list(self._records.values())

    def records_locked(self) -> List[VectorRecord]:
        """All records; caller must hold the lock."""
        return list(self._records.values())

    def stats(self) -> Dict[str, object]:
        """Occupancy and filter statistics."""
        return {
            "shard_id": self._shard_id,
            "size": len(self._records),
            "capacity": self._capacity,
            "policy": self._policy.name if self._policy is not None else None,
            "filter_bits": self._filter.num_bits,
            "filter_hashes": self._filter.num_hashes,
            "filter_fill_ratio": self._filter.fill_ratio,
            "retired": self._retired,
        }

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _check_active(self) -> None:
        if self._retired:
            raise ShardRetiredError(f"Shard {self._shard_id} was replaced by a rebuild")

    def _store_locked(self, record: VectorRecord) -> None:
        self._records[record.id] = record
        self._filter.add(record.id)
        if self._policy is not None:
            self._policy.on_insert(record)
        self._matrix_dirty = True

    def _evict_locked(self) -> VectorRecord:
        victim_id = self._policy.select_victim()
        record = self._records.pop(victim_id)
        self._policy.on_remove(victim_id)
        self._matrix_dirty = True

        logger.debug(
            f"Shard {self._shard_id}: evicted {victim_id} ({self._policy.name})"
        )
        return record

    def _touch_locked(self, id: int, now: float) -> VectorRecord:
        record = self._records[id].touched(now)
        # Replacing the value keeps the dict's insertion order
        self._records[id] = record
        if self._policy is not None:
            self._policy.on_access(record)
        return record

    def _get_matrix(self) -> Tuple[NDArray, NDArray]:
        """Stacked embeddings and ids; caller holds at least the read lock."""
        with self._matrix_lock:
            if self._matrix_dirty or self._matrix is None:
                records = list(self._records.values())
                self._matrix = np.stack([r.embedding for r in records])
                self._matrix_ids = np.fromiter(
                    (r.id for r in records), dtype=np.int64, count=len(records)
                )
                self._matrix_dirty = False
            return self._matrix, self._matrix_ids

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, id: int) -> bool:
        return self.contains(id)

    def __repr__(self) -> str:
        return (
            f"Shard(shard_id={self._shard_id}, size={len(self._records)}, "
            f"capacity={self._capacity})"
        )
