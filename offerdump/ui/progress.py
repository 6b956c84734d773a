"""Terminal progress helpers with Rich-based rendering on stderr."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text


@dataclass
class ProgressState:
    total: int
    saved: int = 0
    duplicates: int = 0


class RateColumn(ProgressColumn):
    """Records written per second."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.1f} rec/s", style="progress.percentage")


class ProgressReporter:
    """Render export progress; safe to advance from any worker thread.

    Falls back to silent counting when stderr is not a terminal.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._lock = Lock()
        self.state: ProgressState | None = None

    def start(self, total: int) -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console(stderr=True)
        if not self._console.is_terminal:
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("[green]✓{task.fields[saved]:>7}", justify="right"),
            TextColumn("[yellow]↺{task.fields[duplicates]:>5}", justify="right"),
            refresh_per_second=8,
            expand=True,
            transient=True,
            console=self._console,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task("export", total=total, saved=0, duplicates=0)

    def advance(self, saved: int = 0, duplicates: int = 0) -> None:
        """Count ``saved`` written and ``duplicates`` dropped records."""
        if self.state is None:
            raise RuntimeError("ProgressReporter.start must be called before advance")
        with self._lock:
            self.state.saved += saved
            self.state.duplicates += duplicates
            if self._progress is not None and self._task_id is not None:
                self._progress.update(
                    self._task_id,
                    advance=saved + duplicates,
                    saved=self.state.saved,
                    duplicates=self.state.duplicates,
                )

    def close(self) -> None:
        with self._lock:
            if self._progress is not None:
                self._progress.stop()
                self._progress.__exit__(None, None, None)
                self._progress = None
            self._task_id = None


__all__ = ["ProgressReporter", "ProgressState", "RateColumn"]
