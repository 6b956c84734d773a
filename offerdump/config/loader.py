"""Configuration loading helpers for offerdump."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import ExportConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
DEFAULT_CONFIG_FILENAME = "offerdump.yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("OFFERDUMP_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path.cwd()).resolve()
        self.project_root = root
        self.logs_dir = (root / "logs").resolve()

    def ensure_directories(self) -> None:
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def default_config_path(self) -> Path:
        return self.project_root / DEFAULT_CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()

    def load_export_config(self, path: Path | None = None) -> ExportConfig:
        """Load ``path`` (or the default file); fall back to defaults when absent.

        An explicitly requested file that does not exist is an error, a
        missing default file is not.
        """
        if path is not None:
            if not path.exists():
                raise FileNotFoundError(f"Configuration file not found: {path}")
            if path.suffix not in CONFIG_EXTENSIONS:
                raise ValueError(f"Unsupported configuration format: {path.suffix}")
            return ExportConfig.model_validate(_read_file(path))
        default_path = self.locator.default_config_path()
        if default_path.exists():
            return ExportConfig.model_validate(_read_file(default_path))
        return ExportConfig()

    def save_export_config(self, config: ExportConfig, path: Path | None = None) -> Path:
        target = path or self.locator.default_config_path()
        target.parent.mkdir(parents=True, exist_ok=True)
        _write_file(target, config.model_dump(mode="json"))
        return target


__all__ = ["ConfigLocator", "ConfigRepository", "CONFIG_EXTENSIONS", "DEFAULT_CONFIG_FILENAME"]
