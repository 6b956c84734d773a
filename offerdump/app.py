"""Typer CLI entrypoint for offerdump."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Optional

import structlog
import typer
import yaml
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from .config import (
    CONFIG_EXTENSIONS,
    LOCAL_DATETIME_FORMAT,
    ConfigRepository,
    Credentials,
    DateRange,
    ExportConfig,
)
from .engine import (
    Deduplicator,
    ExportError,
    RateLimitedClient,
    Span,
    TextNormalizer,
)
from .engine.exporter import ZstdStreamExporter
from .logging_conf import configure_logging, export_context, tail_log
from .orchestrator import ExportOrchestrator, ExportSummary
from .ui import ProgressReporter

app = typer.Typer(
    help="Bulk export job offers from the search API into a zstd stream.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Inspect log files.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

# stdout carries the export
console = Console(stderr=True)


@dataclass
class AppState:
    repository: ConfigRepository
    verbose: bool = False


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    return AppState(repository=repository, verbose=verbose)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if not isinstance(state, AppState):
        raise typer.Exit(code=1)
    return state


def _stdout_is_terminal() -> bool:
    return sys.stdout.isatty()


def _stdout_stream() -> BinaryIO:
    return sys.stdout.buffer


def _parse_local_datetime(value: Optional[str], option_name: str) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.strptime(value.strip(), LOCAL_DATETIME_FORMAT)
    except ValueError as exc:
        raise typer.BadParameter(
            f"{option_name} expects local time as YYYY-MM-DD HH:MM:SS, got {value!r}"
        ) from exc


def _render_summary(summary: ExportSummary) -> Table:
    table = Table(title="Export summary", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Expected", str(summary.expected))
    table.add_row("Saved", f"[green]{summary.saved}[/green]")
    table.add_row("Duplicates", f"[yellow]{summary.duplicates}[/yellow]")
    table.add_row("Probes", str(summary.probes))
    table.add_row("Requests", str(summary.requests))
    table.add_row(
        "Request rate",
        f"{summary.request_rate:.1f} req/s (maximum allowed: {summary.max_rate:g})",
    )
    return table


def _apply_overrides(
    config: ExportConfig,
    *,
    fmt: Optional[str],
    workers: Optional[int],
    clean_title: Optional[bool],
    on_unsplittable: Optional[str],
) -> ExportConfig:
    update: dict = {}
    if fmt is not None:
        update["output_format"] = fmt
    if workers is not None:
        update["workers"] = workers
    if on_unsplittable is not None:
        update["on_unsplittable"] = on_unsplittable
    if clean_title is not None:
        update["normalizer"] = {
            **config.normalizer.model_dump(),
            "clean_title": clean_title,
        }
    if not update:
        return config
    return ExportConfig.model_validate({**config.model_dump(), **update})


config_app = typer.Typer(
    name="config",
    help="Create or inspect the export configuration file.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

app.add_typer(log_app, name="log", help="Inspect log files.")
app.add_typer(config_app, name="config", help="Create or inspect the export configuration file.")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("dump", help="Export every offer created in [--min, --max] as zstd-compressed records.")
def dump(
    ctx: typer.Context,
    client_id: str = typer.Option(..., "--id", envvar="OFFERDUMP_CLIENT_ID", help="API client id."),
    client_secret: str = typer.Option(
        ..., "--secret", envvar="OFFERDUMP_CLIENT_SECRET", help="API client secret."
    ),
    min_date: Optional[str] = typer.Option(
        None, "--min", help="Minimum creation date in local time (default: one year before --max)."
    ),
    max_date: Optional[str] = typer.Option(
        None, "--max", help="Maximum creation date in local time (default: now)."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write to this file instead of standard output."
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="YAML or JSON export configuration file."
    ),
    fmt: Optional[str] = typer.Option(
        None, "--format", help="Record framing: jsonl (default) or framed."
    ),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Concurrent page fetchers."),
    clean_title: Optional[bool] = typer.Option(
        None, "--clean-title/--no-clean-title", help="Also clean the title field."
    ),
    on_unsplittable: Optional[str] = typer.Option(
        None,
        "--on-unsplittable",
        help="What to do with a one-second span above the result cap: warn or fail.",
    ),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Show a progress bar."),
) -> None:
    state = _get_state(ctx)
    if output is None and _stdout_is_terminal():
        console.print(
            "Refusing to write compressed data to a terminal: redirect standard output "
            "or pass --output.",
            style="red",
        )
        raise typer.Exit(code=1)

    state.repository.locator.ensure_directories()
    logger = configure_logging(state.verbose, state.repository.locator.logs_dir)
    try:
        config = _apply_overrides(
            state.repository.load_export_config(config_path),
            fmt=fmt,
            workers=workers,
            clean_title=clean_title,
            on_unsplittable=on_unsplittable,
        )
        credentials = Credentials(client_id=client_id, client_secret=client_secret)
        window = DateRange(
            start=_parse_local_datetime(min_date, "--min"),
            end=_parse_local_datetime(max_date, "--max"),
        )
        span = Span.from_datetimes(*window.resolve())
    except (ValidationError, ValueError, FileNotFoundError) as exc:
        console.print(f"Invalid configuration: {exc}", style="red")
        raise typer.Exit(code=2) from exc

    try:
        summary = run_export(config, credentials, span, output=output, progress=progress, logger=logger)
    except ExportError as exc:
        logger.error("export_failed", error=str(exc), error_type=type(exc).__name__)
        console.print(f"Export failed: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    except KeyboardInterrupt:
        logger.warning("export_interrupted")
        console.print("Interrupted.", style="yellow")
        raise typer.Exit(code=130)

    console.print(_render_summary(summary))
    console.print(
        f"saved {summary.saved} job offers at a rate of {summary.request_rate:.1f} req/sec "
        f"(maximum allowed: {summary.max_rate:g})"
    )


def run_export(
    config: ExportConfig,
    credentials: Credentials,
    span: Span,
    *,
    output: Path | None = None,
    progress: bool = True,
    transport=None,
    logger: structlog.BoundLogger | None = None,
) -> ExportSummary:
    """Build the pipeline for one export and run it to completion."""

    logger = logger or structlog.get_logger("offerdump")
    logger.info("export_requested", span=str(span), output=str(output or "<stdout>"))
    if output is not None:
        sink = ZstdStreamExporter.open(output, config.output_format, config.compression_level)
    else:
        sink = ZstdStreamExporter(
            _stdout_stream(), config.output_format, config.compression_level
        )
    try:
        with export_context(span=str(span)), RateLimitedClient(
            config.api,
            credentials,
            config.retry,
            transport=transport,
            logger=logger.bind(component="client"),
        ) as client:
            orchestrator = ExportOrchestrator(
                config,
                client,
                sink,
                dedup=Deduplicator(),
                normalizer=TextNormalizer(config.normalizer),
                progress=ProgressReporter(enabled=progress),
                logger=logger.bind(component="orchestrator"),
            )
            return orchestrator.run(span)
    finally:
        sink.close()


@config_app.command("init", help="Write the default export configuration to a YAML or JSON file.")
def config_init(
    ctx: typer.Context,
    path: Optional[Path] = typer.Option(
        None, "--path", help="Target file (default: offerdump.yaml in the project root)."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    target = path or state.repository.locator.default_config_path()
    if target.suffix not in CONFIG_EXTENSIONS:
        console.print(f"Unsupported configuration format: {target.suffix}", style="red")
        raise typer.Exit(code=2)
    if target.exists() and not force:
        console.print(f"{target} already exists; pass --force to overwrite it.", style="yellow")
        raise typer.Exit(code=1)
    written = state.repository.save_export_config(ExportConfig(), target)
    console.print(f"Wrote default configuration to {written}", style="green")


@config_app.command("show", help="Print the effective export configuration.")
def config_show(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="YAML or JSON export configuration file."
    ),
) -> None:
    state = _get_state(ctx)
    try:
        config = state.repository.load_export_config(config_path)
    except (ValidationError, ValueError, FileNotFoundError) as exc:
        console.print(f"Invalid configuration: {exc}", style="red")
        raise typer.Exit(code=2) from exc
    text = yaml.safe_dump(config.model_dump(mode="json"), allow_unicode=True, sort_keys=False)
    console.print(Syntax(text, "yaml", theme="ansi_dark", background_color="default"))


@log_app.command("show", help="Show the last lines of the export or error log.")
def log_show(
    ctx: typer.Context,
    errors: bool = typer.Option(False, "--errors", help="Show the error log instead.", is_flag=True),
    tail: int = typer.Option(100, "--tail", min=1, help="Number of lines to show."),
) -> None:
    state = _get_state(ctx)
    base_dir = state.repository.locator.logs_dir
    path = base_dir / ("error.log" if errors else "export.log")
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
