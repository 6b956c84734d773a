from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from offerdump.app import app, run_export
from offerdump.config import Credentials
from offerdump.engine import AuthenticationError, Span
from offerdump.engine.exporter import iter_records
from offerdump.orchestrator import ExportSummary

from conftest import YEAR_END, YEAR_START

DUMP_ARGS = [
    "dump",
    "--id", "client",
    "--secret", "s3cret",
    "--min", "2023-01-01 00:00:00",
    "--max", "2023-01-02 00:00:00",
]


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OFFERDUMP_HOME", str(tmp_path))


@pytest.fixture
def captured_export(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    calls: list[dict] = []

    def fake_run_export(config, credentials, span, **kwargs):
        calls.append({"config": config, "credentials": credentials, "span": span, **kwargs})
        return ExportSummary(expected=3, saved=3, probes=1, requests=4, elapsed=2.0, max_rate=4.0)

    monkeypatch.setattr("offerdump.app.run_export", fake_run_export)
    return calls


def test_dump_refuses_terminal_stdout(monkeypatch, captured_export) -> None:
    monkeypatch.setattr("offerdump.app._stdout_is_terminal", lambda: True)
    result = CliRunner().invoke(app, DUMP_ARGS)
    assert result.exit_code == 1, result.output
    assert "Refusing" in result.output
    assert captured_export == []


def test_dump_reports_summary(tmp_path, captured_export) -> None:
    output = tmp_path / "offers.zst"
    result = CliRunner().invoke(
        app, DUMP_ARGS + ["--output", str(output), "--workers", "2", "--format", "framed", "--no-progress"]
    )
    assert result.exit_code == 0, result.output
    assert "saved 3 job offers at a rate of 2.0 req/sec (maximum allowed: 4)" in result.output

    call = captured_export[0]
    assert call["output"] == output
    assert call["progress"] is False
    assert call["config"].workers == 2
    assert call["config"].output_format == "framed"
    assert call["credentials"].client_id == "client"
    assert call["span"].max - call["span"].min == 86400


def test_dump_reads_credentials_from_environment(monkeypatch, captured_export) -> None:
    monkeypatch.setenv("OFFERDUMP_CLIENT_ID", "env-id")
    monkeypatch.setenv("OFFERDUMP_CLIENT_SECRET", "env-secret")
    result = CliRunner().invoke(app, ["dump", "--clean-title", "--on-unsplittable", "fail"])
    assert result.exit_code == 0, result.output
    call = captured_export[0]
    assert call["credentials"].client_secret.get_secret_value() == "env-secret"
    assert call["config"].normalizer.clean_title is True
    assert call["config"].on_unsplittable == "fail"
    assert call["span"].seconds > 365 * 86400 - 86400


def test_dump_loads_config_file(tmp_path, captured_export) -> None:
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("workers: 5\ncompression_level: 9\n", encoding="utf-8")
    result = CliRunner().invoke(app, DUMP_ARGS + ["--config", str(config_path)])
    assert result.exit_code == 0, result.output
    assert captured_export[0]["config"].workers == 5
    assert captured_export[0]["config"].compression_level == 9


@pytest.mark.parametrize(
    "extra",
    [
        ["--format", "csv"],
        ["--on-unsplittable", "ignore"],
        ["--config", "missing.yaml"],
    ],
)
def test_dump_rejects_invalid_configuration(extra, captured_export) -> None:
    result = CliRunner().invoke(app, DUMP_ARGS + extra)
    assert result.exit_code == 2, result.output
    assert "Invalid configuration" in result.output
    assert captured_export == []


def test_dump_rejects_malformed_dates(captured_export) -> None:
    result = CliRunner().invoke(app, ["dump", "--id", "a", "--secret", "b", "--min", "yesterday"])
    assert result.exit_code == 2
    assert captured_export == []


def test_dump_exits_non_zero_on_export_error(monkeypatch) -> None:
    def failing_run_export(*args, **kwargs):
        raise AuthenticationError("Authentication failed: 401 Unauthorized")

    monkeypatch.setattr("offerdump.app.run_export", failing_run_export)
    result = CliRunner().invoke(app, DUMP_ARGS)
    assert result.exit_code == 1
    assert "Export failed" in result.output


def test_run_export_writes_compressed_file(tmp_path, service, export_config) -> None:
    for i in range(7):
        service.add(YEAR_START + i * 3600, id=f"r{i}", description="Poste (H/F)")
    output = tmp_path / "nested" / "offers.zst"
    config = export_config()
    summary = run_export(
        config,
        Credentials(client_id="client", client_secret="s3cret"),
        Span(YEAR_START, YEAR_END),
        output=output,
        progress=False,
        transport=service.transport(),
    )
    assert summary.saved == 7
    with output.open("rb") as stream:
        records = list(iter_records(stream))
    assert [record["id"] for record in records] == [f"r{i}" for i in range(7)]
    assert {record["description"] for record in records} == {"Poste"}


def test_log_show_without_entries(tmp_path) -> None:
    result = CliRunner().invoke(app, ["log", "show"])
    assert result.exit_code == 0, result.output
    assert "No log entries yet." in result.output


def test_log_show_tails_requested_file(tmp_path) -> None:
    logs_dir = tmp_path / "logs"
    logs_dir.mkdir()
    (logs_dir / "error.log").write_text(
        "".join(f'{{"message": "line {i}"}}\n' for i in range(5)), encoding="utf-8"
    )
    result = CliRunner().invoke(app, ["log", "show", "--errors", "--tail", "2"])
    assert result.exit_code == 0, result.output
    assert "line 4" in result.output
    assert "line 3" in result.output
    assert "line 2" not in result.output


def test_dump_creates_logs_directory(tmp_path, captured_export) -> None:
    result = CliRunner().invoke(app, DUMP_ARGS)
    assert result.exit_code == 0, result.output
    assert (tmp_path / "logs").is_dir()


def test_config_init_writes_defaults_once(tmp_path) -> None:
    result = CliRunner().invoke(app, ["config", "init"])
    assert result.exit_code == 0, result.output
    written = tmp_path / "offerdump.yaml"
    assert "workers: 8" in written.read_text(encoding="utf-8")

    written.write_text("workers: 3\n", encoding="utf-8")
    result = CliRunner().invoke(app, ["config", "init"])
    assert result.exit_code == 1
    assert written.read_text(encoding="utf-8") == "workers: 3\n"

    result = CliRunner().invoke(app, ["config", "init", "--force"])
    assert result.exit_code == 0, result.output
    assert "workers: 8" in written.read_text(encoding="utf-8")


def test_config_init_rejects_unknown_format(tmp_path) -> None:
    result = CliRunner().invoke(app, ["config", "init", "--path", str(tmp_path / "config.toml")])
    assert result.exit_code == 2
    assert not (tmp_path / "config.toml").exists()


def test_config_show_prints_effective_configuration(tmp_path) -> None:
    (tmp_path / "offerdump.yaml").write_text("workers: 6\n", encoding="utf-8")
    result = CliRunner().invoke(app, ["config", "show"])
    assert result.exit_code == 0, result.output
    assert "workers: 6" in result.output
    assert "compression_level" in result.output


def test_config_show_rejects_invalid_file(tmp_path) -> None:
    config_path = tmp_path / "broken.yaml"
    config_path.write_text("workers: 0\n", encoding="utf-8")
    result = CliRunner().invoke(app, ["config", "show", "--config", str(config_path)])
    assert result.exit_code == 2
    assert "Invalid configuration" in result.output
