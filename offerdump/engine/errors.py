"""Fatal error kinds raised by the export pipeline.

Transient conditions (rate limiting, transport failures) never surface as
exceptions past the client; everything below aborts the whole export.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .span import Span


class ExportError(RuntimeError):
    """Base class for unrecoverable export failures."""


class AuthenticationError(ExportError):
    """The auth endpoint refused the credentials or returned garbage."""


class UnexpectedStatusError(ExportError):
    """The search endpoint answered with a status the pipeline cannot handle."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        label = f"{status_code} {reason}".strip()
        super().__init__(f"Unexpected status from search endpoint: {label}")


class RetryExhaustedError(ExportError):
    """A transient failure persisted past the configured attempt budget."""

    def __init__(self, attempts: int, last_error: str | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        message = f"Request still failing after {attempts} attempts"
        if last_error:
            message += f": {last_error}"
        super().__init__(message)


class IntegrityError(ExportError):
    """A response payload does not match what the pipeline expects."""


class UnsplittableSpanError(ExportError):
    """A one-second span still holds more matches than a query can return."""

    def __init__(self, span: "Span", count: int) -> None:
        self.span = span
        self.count = count
        super().__init__(
            f"Span {span.min}-{span.max} holds {count} matches and cannot be split further"
        )


__all__ = [
    "AuthenticationError",
    "ExportError",
    "IntegrityError",
    "RetryExhaustedError",
    "UnexpectedStatusError",
    "UnsplittableSpanError",
]
