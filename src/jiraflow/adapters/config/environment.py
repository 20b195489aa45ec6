"""
Environment configuration provider.

Precedence, highest first: CLI overrides, environment variables, a .env
file in the working directory, then the config file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from ...core.exceptions import ConfigError
from ...core.ports.config_provider import AppConfig, ConfigProviderPort
from .file_provider import FileConfigProvider, config_from_values


ENV_KEYS: dict[str, str] = {
    "jira_url": "JIRA_URL",
    "jira_email": "JIRA_EMAIL",
    "jira_api_token": "JIRA_API_TOKEN",
    "jira_project": "JIRA_PROJECT",
    "jira_board_id": "JIRA_BOARD_ID",
    "jira_assignee": "JIRA_ASSIGNEE",
    "jira_verify_ssl": "JIRA_VERIFY_SSL",
    "interval": "JIRAFLOW_SYNC_INTERVAL",
    "dry_run": "JIRAFLOW_DRY_RUN",
    "verbose": "JIRAFLOW_VERBOSE",
    "vault": "JIRAFLOW_VAULT",
    "db": "JIRAFLOW_DB",
}


def parse_env_file(path: Path) -> dict[str, str]:
    """Read KEY=VALUE lines; comments, blanks and ``export`` prefixes are tolerated."""
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


class EnvironmentConfigProvider(ConfigProviderPort):
    """Configuration from env vars, layered over .env and the config file."""

    def __init__(
        self,
        config_file: str | Path | None = None,
        env_file: str | Path | None = None,
        cli_overrides: dict[str, Any] | None = None,
    ):
        self._file_provider = FileConfigProvider(config_path=config_file)
        self.env_file = Path(env_file) if env_file else Path.cwd() / ".env"
        self._overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
        self.logger = logging.getLogger("EnvironmentConfigProvider")

    @property
    def name(self) -> str:
        if self._file_provider.config_path is not None:
            return f"Environment + {self._file_provider.config_path.name}"
        return "Environment"

    def _layered_values(self) -> dict[str, Any]:
        values: dict[str, Any] = dict(self._file_provider.values())

        if self.env_file.is_file():
            dotenv = parse_env_file(self.env_file)
            values.update({name: dotenv[var] for name, var in ENV_KEYS.items() if var in dotenv})

        values.update(
            {name: os.environ[var] for name, var in ENV_KEYS.items() if os.environ.get(var)}
        )
        values.update({k: v for k, v in self._overrides.items() if k in ENV_KEYS})
        return values

    def load(self) -> AppConfig:
        return config_from_values(self._layered_values())

    def get(self, key: str, default: Any = None) -> Any:
        return self._layered_values().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._overrides[key] = value

    def validate(self) -> list[str]:
        try:
            return self.load().validate()
        except ConfigError as e:
            return [str(e)]
