from __future__ import annotations

import io
from concurrent.futures import ThreadPoolExecutor

import pytest
from rich.console import Console

from offerdump.ui import ProgressReporter, ProgressState


def test_reporter_counts_without_terminal() -> None:
    reporter = ProgressReporter(console=Console(file=io.StringIO()))
    reporter.start(total=4)
    reporter.advance(saved=3)
    reporter.advance(duplicates=1)
    reporter.close()
    assert reporter.enabled is False
    assert reporter.state == ProgressState(total=4, saved=3, duplicates=1)


def test_reporter_renders_on_terminal() -> None:
    console = Console(file=io.StringIO(), force_terminal=True, width=100)
    reporter = ProgressReporter(console=console)
    reporter.start(total=20)
    with ThreadPoolExecutor(max_workers=4) as executor:
        list(executor.map(lambda _: reporter.advance(saved=1, duplicates=1), range(10)))
    reporter.close()
    assert reporter.enabled is True
    assert reporter.state == ProgressState(total=20, saved=10, duplicates=10)


def test_advance_requires_start() -> None:
    reporter = ProgressReporter(enabled=False)
    with pytest.raises(RuntimeError):
        reporter.advance(saved=1)
    assert reporter.state is None
