"""
Configuration Provider Port - Abstract interface for configuration.

Implementations:
- FileConfigProvider: Load from YAML/TOML config files
- EnvironmentConfigProvider: Load from env vars, .env and a config file
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..constants import (
    DEFAULT_AUTO_SYNC_MINUTES,
    DEFAULT_CURSOR_MAX_AGE_HOURS,
    DEFAULT_PLANNED_END_FIELD,
    DEFAULT_REMOTE_TIMEOUT,
    DEFAULT_STORY_POINTS_FIELD,
    MIN_AUTO_SYNC_MINUTES,
)


@dataclass
class TrackerConfig:
    """Configuration for the remote tracker (Jira)."""

    url: str
    email: str
    api_token: str
    project_key: str | None = None
    board_id: int | None = None
    # Defaults to the authenticated user
    assignee: str | None = None

    story_points_field: str = DEFAULT_STORY_POINTS_FIELD
    planned_end_field: str = DEFAULT_PLANNED_END_FIELD
    verify_ssl: bool = True
    timeout: float = DEFAULT_REMOTE_TIMEOUT

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return bool(self.url and self.email and self.api_token)


@dataclass
class SyncConfig:
    """Configuration for board sync and moves."""

    auto_sync_minutes: int = DEFAULT_AUTO_SYNC_MINUTES
    cursor_max_age_hours: float = DEFAULT_CURSOR_MAX_AGE_HOURS
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT
    dry_run: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        self.auto_sync_minutes = max(MIN_AUTO_SYNC_MINUTES, int(self.auto_sync_minutes))

    @property
    def interval_seconds(self) -> float:
        return self.auto_sync_minutes * 60.0


@dataclass
class VaultConfig:
    """Configuration for the Obsidian vault."""

    path: str | None = None

    def is_configured(self) -> bool:
        return bool(self.path)


@dataclass
class AppConfig:
    """Complete application configuration."""

    tracker: TrackerConfig
    sync: SyncConfig = field(default_factory=SyncConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)

    database_path: str | None = None

    def validate(self) -> list[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.tracker.url:
            errors.append("Missing Jira URL (set jira.url in config file or JIRA_URL in environment)")
        if not self.tracker.email:
            errors.append("Missing Jira email (set jira.email in config file or JIRA_EMAIL in environment)")
        if not self.tracker.api_token:
            errors.append(
                "Missing API token (set jira.api_token in config file or JIRA_API_TOKEN in environment)"
            )
        if not self.tracker.project_key and self.tracker.board_id is None:
            errors.append("Missing project key or board id (jira.project / JIRA_PROJECT)")
        if self.sync.remote_timeout <= 0:
            errors.append("sync.remote_timeout must be positive")

        return errors


class ConfigProviderPort(ABC):
    """
    Abstract interface for configuration providers.

    Configuration can come from various sources:
    - Environment variables
    - .env files
    - YAML/TOML config files
    - Command line arguments
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the provider name."""
        ...

    @abstractmethod
    def load(self) -> AppConfig:
        """
        Load configuration from source.

        Returns:
            Complete application configuration
        """
        ...

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Get a single config value by dotted key (e.g. 'jira.url')."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Override a single config value."""
        ...

    @abstractmethod
    def validate(self) -> list[str]:
        """Validate loaded configuration, returning error messages."""
        ...
