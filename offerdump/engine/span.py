"""Second-resolution time spans and the work items derived from them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

SEARCH_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass(frozen=True, slots=True)
class Span:
    """Inclusive interval ``[min, max]`` in whole seconds since the epoch."""

    min: int
    max: int

    def __post_init__(self) -> None:
        if self.min > self.max:
            raise ValueError(f"Span min must not exceed max: {self.min} > {self.max}")

    @classmethod
    def from_datetimes(cls, start: datetime, end: datetime) -> "Span":
        return cls(int(start.timestamp()), int(end.timestamp()))

    @property
    def seconds(self) -> int:
        return self.max - self.min + 1

    @property
    def splittable(self) -> bool:
        return self.max > self.min

    def split(self) -> tuple["Span", "Span"]:
        """Bisect by time value into two adjacent, non-empty halves."""

        if not self.splittable:
            raise ValueError(f"Cannot split one-second span {self.min}")
        mid = self.min + (self.max - self.min + 1) // 2
        return Span(self.min, mid - 1), Span(mid, self.max)

    def search_bounds(self) -> tuple[str, str]:
        """Return the (min, max) creation-date filters in the API's UTC format."""

        return _format_utc(self.min), _format_utc(self.max)

    def __str__(self) -> str:
        start, end = self.search_bounds()
        return f"{start}..{end}"


@dataclass(slots=True)
class WorkItem:
    """A span with its true match count, consumed page by page by one worker."""

    span: Span
    remaining: int


def _format_utc(seconds: int) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(SEARCH_DATE_FORMAT)


__all__ = ["SEARCH_DATE_FORMAT", "Span", "WorkItem"]
