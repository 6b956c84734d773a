"""Export orchestrator wiring partitioning, fetching, dedup, cleanup and output."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock

import structlog

from .config import ExportConfig
from .engine import (
    Deduplicator,
    RateLimitedClient,
    Span,
    SpanPartitioner,
    TextNormalizer,
    WorkerPool,
    WorkItem,
    parse_results,
)
from .engine.exporter import BaseExporter
from .engine.parser import Record, record_id
from .ui import ProgressReporter


@dataclass
class ExportSummary:
    """Counters reported once the pool has joined."""

    expected: int = 0
    saved: int = 0
    duplicates: int = 0
    probes: int = 0
    work_items: int = 0
    requests: int = 0
    elapsed: float = 0.0
    max_rate: float = 0.0

    @property
    def request_rate(self) -> float:
        if self.elapsed <= 0:
            return 0.0
        return self.requests / self.elapsed


class ExportOrchestrator:
    """Run one export of ``span`` into ``sink``.

    The partitioner runs on the calling thread and feeds the worker pool;
    every worker pages through its span with the shared client. The sink is
    flushed after the pool joined but closed by the caller.
    """

    def __init__(
        self,
        config: ExportConfig,
        client: RateLimitedClient,
        sink: BaseExporter,
        *,
        dedup: Deduplicator | None = None,
        normalizer: TextNormalizer | None = None,
        progress: ProgressReporter | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.sink = sink
        self.dedup = dedup or Deduplicator()
        self.normalizer = normalizer or TextNormalizer(config.normalizer)
        self.progress = progress or ProgressReporter(enabled=False)
        self.logger = logger or structlog.get_logger("offerdump.orchestrator")
        self._lock = Lock()
        self._saved = 0

    def run(self, span: Span) -> ExportSummary:
        partitioner = SpanPartitioner(
            self.client,
            on_unsplittable=self.config.on_unsplittable,
            logger=self.logger.bind(component="partitioner"),
        )
        pool: WorkerPool[WorkItem] = WorkerPool(
            self._process_item,
            workers=self.config.workers,
            queue_size=self.config.queue_size,
            name="offerdump-worker",
        )
        requests_before = self.client.request_count
        started = time.monotonic()
        progress_started = False
        try:
            with pool:
                for item in partitioner.partition(span):
                    if not progress_started:
                        self.progress.start(total=partitioner.stats.expected or 0)
                        progress_started = True
                    self.logger.debug(
                        "work_item_queued", span=str(item.span), remaining=item.remaining
                    )
                    pool.submit(item)
            self.sink.flush()
        finally:
            self.progress.close()

        summary = ExportSummary(
            expected=partitioner.stats.expected or 0,
            saved=self._saved,
            duplicates=self.dedup.duplicates,
            probes=partitioner.stats.probes,
            work_items=partitioner.stats.emitted,
            requests=self.client.request_count - requests_before,
            elapsed=time.monotonic() - started,
            max_rate=self.client.api.max_requests_per_second,
        )
        self.logger.info(
            "export_finished",
            saved=summary.saved,
            duplicates=summary.duplicates,
            probes=summary.probes,
            requests=summary.requests,
            request_rate=round(summary.request_rate, 2),
        )
        return summary

    # ------------------------------------------------------------------
    def _process_item(self, item: WorkItem) -> None:
        per_page = self.client.api.max_items_per_page
        page_index = 0
        while item.remaining > 0:
            page = self.client.fetch_page(item.span, page_index, min(item.remaining, per_page))
            if page.empty:
                break
            records = parse_results(page.body, per_page)
            fresh = [record for record in records if self._first_sighting(record)]
            self.sink.export_many(self.normalizer.normalize_record(record) for record in fresh)
            with self._lock:
                self._saved += len(fresh)
            self.progress.advance(saved=len(fresh), duplicates=len(records) - len(fresh))
            self.logger.debug(
                "page_fetched",
                span=str(item.span),
                page=page_index,
                records=len(records),
                saved=len(fresh),
            )
            item.remaining -= per_page
            page_index += 1

    def _first_sighting(self, record: Record) -> bool:
        identifier = record_id(record, self.config.id_field)
        if self.dedup.check_and_mark(identifier):
            self.logger.debug("duplicate_record", id=identifier)
            return False
        return True


__all__ = ["ExportOrchestrator", "ExportSummary"]
