"""
Ports - Abstract interfaces the application layer depends on.
"""

from .config_provider import (
    AppConfig,
    ConfigProviderPort,
    SyncConfig,
    TrackerConfig,
    VaultConfig,
)
from .issue_tracker import (
    BoardInfo,
    IssueBatch,
    IssueScope,
    RemoteTrackerPort,
    SprintInfo,
    TransitionErrorCode,
    TransitionResult,
)
from .note_vault import VAULT_NOT_CONFIGURED, NoteSyncResult, NoteVaultPort
from .task_store import TaskStorePort, WorkLogResult


__all__ = [
    "VAULT_NOT_CONFIGURED",
    "AppConfig",
    "BoardInfo",
    "ConfigProviderPort",
    "IssueBatch",
    "IssueScope",
    "NoteSyncResult",
    "NoteVaultPort",
    "RemoteTrackerPort",
    "SprintInfo",
    "SyncConfig",
    "TaskStorePort",
    "TrackerConfig",
    "TransitionErrorCode",
    "TransitionResult",
    "VaultConfig",
    "WorkLogResult",
]
