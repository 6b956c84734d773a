"""Logging configuration built around structlog JSON logging.

Standard output carries the compressed export, so every console handler
writes to standard error.
"""

from __future__ import annotations

import logging
import logging.config
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import structlog

_LOGGING_INITIALISED = False


def _default_log_dir() -> Path:
    return Path.cwd() / "logs"


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    log_dir = log_dir or _default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    export_log = log_dir / "export.log"
    error_log = log_dir / "error.log"

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                        "stream": "ext://sys.stderr",
                    },
                    "export_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(export_log),
                        "formatter": "plain",
                        "encoding": "utf-8",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                        "encoding": "utf-8",
                    },
                },
                "loggers": {
                    "offerdump": {
                        "handlers": ["console", "export_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    elif verbose:
        # handlers were built by an earlier call; only the threshold moves
        logging.getLogger("offerdump").setLevel(logging.DEBUG)
        for handler in logging.getLogger("offerdump").handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                handler.setLevel(logging.DEBUG)
    return structlog.get_logger("offerdump")


@contextmanager
def export_context(**fields: Any) -> Iterator[str]:
    """Tag every event logged during one export with a fresh ``run_id``.

    Values are bound through contextvars, so they reach events from any
    thread whose context was copied while the block is active.
    """

    run_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(run_id=run_id, **fields):
        yield run_id


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


__all__ = ["configure_logging", "export_context", "tail_log"]
