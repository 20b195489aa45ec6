"""
Note Vault Port - Abstract interface for the external note sync.

Implementations:
- ObsidianVault: Markdown notes in an Obsidian vault directory
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..domain.entities import Task


VAULT_NOT_CONFIGURED = "vault-not-configured"


@dataclass(frozen=True)
class NoteSyncResult:
    """
    Outcome of a note sync.

    Either ``success`` (with ``is_new``) or ``skipped`` (with ``reason``).
    """

    success: bool = False
    is_new: bool = False
    skipped: bool = False
    reason: str | None = None
    path: str | None = None

    @classmethod
    def skip(cls, reason: str) -> NoteSyncResult:
        return cls(skipped=True, reason=reason)


class NoteVaultPort(ABC):
    """Abstract interface for a note vault."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    def sync_task_note(self, task: Task) -> NoteSyncResult:
        """
        Create or update the note for a task snapshot.

        Returns a skipped result, never an error, when no vault is
        configured.
        """
        ...
