"""
Task Store Port - Abstract interface for local persistence.

All calls are blocking request/response. The store, not the caller,
enforces that there is at most one work log entry per task per day.

Implementations:
- SqliteTaskStore: single-file SQLite database
- InMemoryTaskStore: dictionaries, for tests and dry runs
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from ..domain.entities import Task, WorkLogEntry
from ..domain.enums import Column


@dataclass(frozen=True)
class WorkLogResult:
    """Outcome of a work log write. ``is_new`` is False for a same-day repeat."""

    is_new: bool
    entry: WorkLogEntry | None = None


class TaskStorePort(ABC):
    """
    Abstract interface for the persistent task store.

    Implementations raise PersistenceError when the store is unavailable.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_all_tasks(self) -> list[Task]:
        ...

    @abstractmethod
    def get_task(self, key: str) -> Task | None:
        ...

    @abstractmethod
    def upsert_task(self, task: Task) -> None:
        ...

    @abstractmethod
    def update_task_column(self, key: str, column: Column) -> None:
        """
        Persist a task's new column.

        Raises:
            PersistenceError: If the write fails or the task is unknown.
        """
        ...

    @abstractmethod
    def delete_tasks(self, keys: Iterable[str]) -> int:
        """Delete tasks by key, returning how many were removed."""
        ...

    def apply_sync(self, upserts: Iterable[Task], prune_keys: Iterable[str]) -> int:
        """
        Write a sync result: upsert every task, then prune.

        Implementations backed by a transactional store should override
        this so the batch commits all-or-nothing.

        Returns:
            Number of pruned tasks.
        """
        for task in upserts:
            self.upsert_task(task)
        return self.delete_tasks(prune_keys)

    # -------------------------------------------------------------------------
    # Work logs
    # -------------------------------------------------------------------------

    @abstractmethod
    def create_work_log_entry(self, entry: WorkLogEntry) -> WorkLogResult:
        ...

    @abstractmethod
    def get_work_logs(self, log_date: date | None = None) -> list[WorkLogEntry]:
        """Entries for one day, or every entry when ``log_date`` is None."""
        ...

    @abstractmethod
    def get_work_logs_between(self, start: date, end: date) -> list[WorkLogEntry]:
        """Entries from ``start`` to ``end``, both inclusive, oldest first."""
        ...

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_setting(self, key: str) -> str | None:
        ...

    @abstractmethod
    def set_setting(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete_setting(self, key: str) -> None:
        ...

    @abstractmethod
    def get_settings(self, prefix: str = "") -> dict[str, str]:
        """All settings whose key starts with ``prefix``."""
        ...
