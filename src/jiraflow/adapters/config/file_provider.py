"""
File configuration provider - YAML or TOML config files.

Looks for (in the working directory, then the home directory):
- .jiraflow.yaml / .jiraflow.yml
- .jiraflow.toml
- pyproject.toml with a [tool.jiraflow] table

Example .jiraflow.yaml:

    jira:
      url: https://jira.example.com
      email: me@example.com
      api_token: secret
      project: PROJ
    sync:
      interval: 5
    vault:
      path: ~/Notes/Jira
    database: ~/.local/share/jiraflow/jiraflow.db
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Fallback for older Python

from ...core.exceptions import ConfigError
from ...core.ports.config_provider import (
    AppConfig,
    ConfigProviderPort,
    SyncConfig,
    TrackerConfig,
    VaultConfig,
)


CONFIG_FILE_NAMES = (".jiraflow.yaml", ".jiraflow.yml", ".jiraflow.toml")

# Flat setting name -> dotted path in the config file
FILE_KEYS: dict[str, str] = {
    "jira_url": "jira.url",
    "jira_email": "jira.email",
    "jira_api_token": "jira.api_token",
    "jira_project": "jira.project",
    "jira_board_id": "jira.board_id",
    "jira_assignee": "jira.assignee",
    "jira_story_points_field": "jira.story_points_field",
    "jira_planned_end_field": "jira.planned_end_field",
    "jira_verify_ssl": "jira.verify_ssl",
    "jira_timeout": "jira.timeout",
    "interval": "sync.interval",
    "cursor_max_age_hours": "sync.cursor_max_age_hours",
    "remote_timeout": "sync.remote_timeout",
    "dry_run": "sync.dry_run",
    "verbose": "sync.verbose",
    "vault": "vault.path",
    "db": "database",
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Expected an integer, got {value!r}", cause=e) from e


def _to_float(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Expected a number, got {value!r}", cause=e) from e


def config_from_values(values: dict[str, Any]) -> AppConfig:
    """Build an AppConfig from flat setting names (see FILE_KEYS)."""
    tracker_defaults = TrackerConfig(url="", email="", api_token="")
    sync_defaults = SyncConfig()

    tracker = TrackerConfig(
        url=str(values.get("jira_url") or ""),
        email=str(values.get("jira_email") or ""),
        api_token=str(values.get("jira_api_token") or ""),
        project_key=values.get("jira_project") or None,
        board_id=_to_int(values.get("jira_board_id")),
        assignee=values.get("jira_assignee") or None,
        story_points_field=values.get("jira_story_points_field") or tracker_defaults.story_points_field,
        planned_end_field=values.get("jira_planned_end_field") or tracker_defaults.planned_end_field,
        verify_ssl=_to_bool(values.get("jira_verify_ssl", True)),
        timeout=_to_float(values.get("jira_timeout"), tracker_defaults.timeout),
    )
    sync = SyncConfig(
        auto_sync_minutes=_to_int(values.get("interval")) or sync_defaults.auto_sync_minutes,
        cursor_max_age_hours=_to_float(
            values.get("cursor_max_age_hours"), sync_defaults.cursor_max_age_hours
        ),
        remote_timeout=_to_float(values.get("remote_timeout"), sync_defaults.remote_timeout),
        dry_run=_to_bool(values.get("dry_run", False)),
        verbose=_to_bool(values.get("verbose", False)),
    )
    vault_path = values.get("vault")
    db_path = values.get("db")
    return AppConfig(
        tracker=tracker,
        sync=sync,
        vault=VaultConfig(path=str(Path(vault_path).expanduser()) if vault_path else None),
        database_path=str(Path(db_path).expanduser()) if db_path else None,
    )


def _dig(data: dict[str, Any], dotted: str) -> Any:
    current: Any = data
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


class FileConfigProvider(ConfigProviderPort):
    """Configuration provider that reads a YAML or TOML file."""

    def __init__(
        self,
        config_path: str | Path | None = None,
        cli_overrides: dict[str, Any] | None = None,
    ):
        self._explicit = config_path is not None
        self.config_path = Path(config_path) if config_path else self._find_config_file()
        self._overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
        self._raw: dict[str, Any] | None = None
        self.logger = logging.getLogger("FileConfigProvider")

    @property
    def name(self) -> str:
        if self.config_path is None:
            return "File (none found)"
        return f"File ({self.config_path})"

    @staticmethod
    def _find_config_file() -> Path | None:
        for directory in (Path.cwd(), Path.home()):
            for file_name in CONFIG_FILE_NAMES:
                candidate = directory / file_name
                if candidate.is_file():
                    return candidate
        pyproject = Path.cwd() / "pyproject.toml"
        if pyproject.is_file():
            try:
                with pyproject.open("rb") as f:
                    if "jiraflow" in tomllib.load(f).get("tool", {}):
                        return pyproject
            except tomllib.TOMLDecodeError:
                return None
        return None

    def raw(self) -> dict[str, Any]:
        """Parsed file contents (empty when no file is configured)."""
        if self._raw is None:
            self._raw = self._read() if self.config_path else {}
        return self._raw

    def _read(self) -> dict[str, Any]:
        assert self.config_path is not None
        if not self.config_path.is_file():
            raise ConfigError(f"Config file not found: {self.config_path}")

        try:
            if self.config_path.suffix == ".toml":
                with self.config_path.open("rb") as f:
                    data = tomllib.load(f)
                if self.config_path.name == "pyproject.toml":
                    data = data.get("tool", {}).get("jiraflow", {})
            else:
                data = yaml.safe_load(self.config_path.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Invalid config file {self.config_path}: {e}", cause=e) from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")
        self.logger.debug(f"Loaded config from {self.config_path}")
        return data

    def values(self) -> dict[str, Any]:
        """Flat settings from the file, before overrides."""
        raw = self.raw()
        return {name: value for name, path in FILE_KEYS.items() if (value := _dig(raw, path)) is not None}

    def load(self) -> AppConfig:
        return config_from_values({**self.values(), **self._overrides})

    def get(self, key: str, default: Any = None) -> Any:
        value = _dig(self.raw(), key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        self._overrides[key] = value

    def validate(self) -> list[str]:
        try:
            return self.load().validate()
        except ConfigError as e:
            return [str(e)]
