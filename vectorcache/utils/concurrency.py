"""
Concurrency utilities for VectorCache.

Provides a reader/writer lock for shards and a bounded worker pool for
shard fan-out.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, Future, wait
from contextlib import contextmanager, ExitStack
from typing import Any, Callable, Iterable, Iterator, TypeVar

T = TypeVar('T')


class ReadWriteLock:
    """
    Reader/writer lock.

    Any number of readers may hold the lock at once; a writer holds it
    alone. Waiting writers block new readers so a stream of queries
    cannot starve an insert.

    Example:
        >>> lock = ReadWriteLock()
        >>> with lock.read_lock():
        ...     scan()
        >>> with lock.write_lock():
        ...     mutate()
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_lock(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@contextmanager
def write_lock_all(locks: Iterable[ReadWriteLock]) -> Iterator[None]:
    """
    Hold several write locks at once.

    Locks are acquired in the order given; callers pass them sorted by
    shard id.
    """
    with ExitStack() as stack:
        for lock in locks:
            stack.enter_context(lock.write_lock())
        yield


@contextmanager
def read_lock_all(locks: Iterable[ReadWriteLock]) -> Iterator[None]:
    """Hold several read locks at once, acquired in the order given."""
    with ExitStack() as stack:
        for lock in locks:
            stack.enter_context(lock.read_lock())
        yield


class WorkerPool:
    """
    Bounded thread pool for shard-local operations.

    Thin wrapper over ThreadPoolExecutor that names its threads and can
    run a function over many items behind a join barrier.
    """

    def __init__(self, max_workers: int = 4, name: str = "vectorcache-shard"):
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=name,
        )

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future:
        """Schedule ``fn`` on the pool."""
        return self._executor.submit(fn, *args, **kwargs)

    def map_all(self, fn: Callable[[Any], T], items: Iterable[Any]) -> list:
        """
        Apply ``fn`` to every item in parallel and wait for all of them.

        Results keep the order of ``items``. The first exception raised
        by any task is re-raised after every task has finished.
        """
        futures = [self._executor.submit(fn, item) for item in items]
        wait(futures)
        return [future.result() for future in futures]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
