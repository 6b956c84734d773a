from __future__ import annotations

import threading
import time

import pytest
import structlog

from offerdump.engine import WorkerPool
from offerdump.logging_conf import export_context


def test_pool_handles_every_item_before_wait_returns() -> None:
    handled: list[int] = []
    lock = threading.Lock()

    def handler(item: int) -> None:
        time.sleep(0.001)
        with lock:
            handled.append(item)

    with WorkerPool(handler, workers=3, queue_size=2) as pool:
        for item in range(50):
            pool.submit(item)
    assert sorted(handled) == list(range(50))
    assert pool.processed == 50


def test_submit_blocks_while_queue_is_full() -> None:
    release = threading.Event()
    pool: WorkerPool[int] = WorkerPool(lambda item: release.wait(), workers=1, queue_size=1)
    pool.submit(1)  # taken by the worker
    pool.submit(2)  # fills the queue
    blocked = threading.Thread(target=pool.submit, args=(3,))
    blocked.start()
    blocked.join(timeout=0.1)
    assert blocked.is_alive()
    release.set()
    blocked.join(timeout=2)
    assert not blocked.is_alive()
    pool.close()
    pool.wait()
    assert pool.processed == 3


def test_first_handler_error_is_reraised_from_wait() -> None:
    def handler(item: int) -> None:
        if item == 3:
            raise ValueError("bad item")

    pool: WorkerPool[int] = WorkerPool(handler, workers=2, queue_size=4)
    for item in range(6):
        try:
            pool.submit(item)
        except ValueError:
            break
    pool.close()
    with pytest.raises(ValueError, match="bad item"):
        pool.wait()
    assert isinstance(pool.error, ValueError)


def test_exception_in_producer_cancels_queued_items() -> None:
    handled: list[int] = []
    gate = threading.Event()

    def handler(item: int) -> None:
        gate.wait()
        handled.append(item)

    with pytest.raises(KeyError):
        with WorkerPool(handler, workers=1, queue_size=10) as pool:
            for item in range(5):
                pool.submit(item)
            threading.Timer(0.1, gate.set).start()
            raise KeyError("producer failed")
    assert handled == [0]


def test_submit_after_close_is_rejected() -> None:
    pool: WorkerPool[int] = WorkerPool(lambda item: None, workers=1)
    pool.close()
    with pytest.raises(RuntimeError):
        pool.submit(1)
    pool.wait()


def test_pool_requires_a_worker() -> None:
    with pytest.raises(ValueError):
        WorkerPool(lambda item: None, workers=0)


def test_workers_see_log_fields_bound_before_the_pool_starts() -> None:
    seen: list[dict] = []
    with export_context(span="[1, 2]") as run_id:
        with WorkerPool(lambda item: seen.append(structlog.contextvars.get_contextvars()), workers=2) as pool:
            pool.submit(1)
            pool.submit(2)
    assert len(seen) == 2
    assert all(fields == {"run_id": run_id, "span": "[1, 2]"} for fields in seen)
    assert "run_id" not in structlog.contextvars.get_contextvars()
