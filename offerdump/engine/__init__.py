"""Engine components orchestrating partition → fetch → dedup → normalize → export."""

from .client import AuthState, RateLimitedClient, SearchPage
from .dedup import Deduplicator
from .errors import (
    AuthenticationError,
    ExportError,
    IntegrityError,
    RetryExhaustedError,
    UnexpectedStatusError,
    UnsplittableSpanError,
)
from .normalizer import TextNormalizer
from .parser import parse_results
from .partitioner import PartitionStats, SpanPartitioner
from .span import Span, WorkItem
from .thread_pool import WorkerPool

__all__ = [
    "AuthState",
    "AuthenticationError",
    "Deduplicator",
    "ExportError",
    "IntegrityError",
    "PartitionStats",
    "RateLimitedClient",
    "RetryExhaustedError",
    "SearchPage",
    "Span",
    "SpanPartitioner",
    "TextNormalizer",
    "UnexpectedStatusError",
    "UnsplittableSpanError",
    "WorkItem",
    "WorkerPool",
    "parse_results",
]
