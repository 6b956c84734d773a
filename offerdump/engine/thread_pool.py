"""Fixed-size worker group fed through a bounded queue."""

from __future__ import annotations

import contextvars
from concurrent.futures import Future, ThreadPoolExecutor
from queue import Queue
from threading import Lock
from typing import Callable, Generic, TypeVar

import structlog

T = TypeVar("T")

_CLOSED = object()


class WorkerPool(Generic[T]):
    """Bounded producer/consumer pool with an explicit join barrier.

    ``submit`` blocks while the queue is full. ``close`` tells every worker
    no more items are coming; ``wait`` returns once all of them drained the
    queue and exited. The first exception raised by ``handler`` is kept:
    remaining items are drained without being handled, and the error is
    re-raised from ``submit`` and ``wait``.
    """

    def __init__(
        self,
        handler: Callable[[T], None],
        workers: int = 8,
        queue_size: int = 16,
        *,
        name: str = "worker",
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.handler = handler
        self.workers = workers
        self.logger = logger or structlog.get_logger("offerdump.pool")
        self._queue: Queue = Queue(maxsize=queue_size)
        self._lock = Lock()
        self._error: BaseException | None = None
        self._closed = False
        self._cancelled = False
        self._processed = 0
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=name)
        # workers inherit the creator's contextvars (bound log fields)
        self._futures: list[Future[None]] = [
            self._executor.submit(contextvars.copy_context().run, self._run)
            for _ in range(workers)
        ]

    @property
    def processed(self) -> int:
        return self._processed

    @property
    def error(self) -> BaseException | None:
        return self._error

    def submit(self, item: T) -> None:
        if self._closed:
            raise RuntimeError("WorkerPool is closed")
        self._raise_if_failed()
        self._queue.put(item)

    def cancel(self) -> None:
        """Skip every item still queued; in-flight items finish normally."""
        self._cancelled = True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for _ in range(self.workers):
            self._queue.put(_CLOSED)

    def wait(self) -> None:
        for future in self._futures:
            future.result()
        self._executor.shutdown(wait=True)
        self._raise_if_failed()

    def __enter__(self) -> "WorkerPool[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            self.wait()
        else:
            # the original exception wins over any worker failure
            self.cancel()
            self.close()
            for future in self._futures:
                future.result()
            self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            if self._cancelled or self._error is not None:
                continue
            try:
                self.handler(item)
            except BaseException as exc:  # noqa: BLE001
                with self._lock:
                    if self._error is None:
                        self._error = exc
                        self.logger.error("worker_failed", error=str(exc))
                continue
            with self._lock:
                self._processed += 1

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error


__all__ = ["WorkerPool"]
