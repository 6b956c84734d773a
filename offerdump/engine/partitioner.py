"""Recursive time-span bisection working around the per-query result cap."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Literal

import structlog

from .client import RateLimitedClient
from .errors import UnsplittableSpanError
from .parser import parse_results
from .span import Span, WorkItem


@dataclass
class PartitionStats:
    probes: int = 0
    splits: int = 0
    discarded: int = 0
    emitted: int = 0
    truncated: int = 0
    # count reported for the full requested span by the first probe
    expected: int | None = None


class SpanPartitioner:
    """Split a span until every piece can be enumerated by a single query.

    Spans are explored depth-first from an explicit stack; each popped span
    is probed with a one-item query. Spans with at least ``max_items``
    matches are halved and both halves re-probed, enumerable spans are
    yielded as :class:`WorkItem`, empty spans are dropped.
    """

    def __init__(
        self,
        client: RateLimitedClient,
        *,
        on_unsplittable: Literal["warn", "fail"] = "warn",
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.client = client
        self.max_items = client.api.max_items
        self.on_unsplittable = on_unsplittable
        self.logger = logger or structlog.get_logger("offerdump.partitioner")
        self.stats = PartitionStats()

    def probe(self, span: Span) -> int:
        """Return the true match count of ``span`` using a one-item query."""

        page = self.client.fetch_page(span, 0, 1)
        self.stats.probes += 1
        if page.remaining:
            return page.remaining
        if page.empty:
            return 0
        # 200 OK: everything fit in the requested item
        return len(parse_results(page.body, self.client.api.max_items_per_page))

    def partition(self, span: Span) -> Iterator[WorkItem]:
        stack = [span]
        while stack:
            current = stack.pop()
            count = self.probe(current)
            if self.stats.expected is None:
                self.stats.expected = count
                self.logger.info("export_started", span=str(current), expected=count)
            self.logger.debug("probe", span=str(current), count=count)

            if count >= self.max_items:
                if current.splittable:
                    first, second = current.split()
                    stack.append(second)
                    stack.append(first)
                    self.stats.splits += 1
                    self.logger.debug("span_split", span=str(current), count=count)
                    continue
                yield self._unsplittable(current, count)
            elif count > 0:
                self.stats.emitted += 1
                yield WorkItem(current, count)
            else:
                self.stats.discarded += 1

    def _unsplittable(self, span: Span, count: int) -> WorkItem:
        if self.on_unsplittable == "fail":
            raise UnsplittableSpanError(span, count)
        self.logger.warning(
            "span_truncated",
            span=str(span),
            count=count,
            retrievable=self.max_items,
        )
        self.stats.emitted += 1
        self.stats.truncated += 1
        return WorkItem(span, self.max_items)


__all__ = ["PartitionStats", "SpanPartitioner"]
