"""
In-memory task store, for tests and dry runs.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import date

from ...core.domain.entities import Task, WorkLogEntry
from ...core.domain.enums import Column
from ...core.exceptions import PersistenceError
from ...core.ports.task_store import TaskStorePort, WorkLogResult


class InMemoryTaskStore(TaskStorePort):
    """Dictionary-backed TaskStorePort with the same uniqueness rules as SQLite."""

    def __init__(self, tasks: Iterable[Task] | None = None):
        self._tasks: dict[str, Task] = {task.key: task.copy() for task in tasks or []}
        self._work_logs: dict[tuple[str, date], WorkLogEntry] = {}
        self._settings: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    def get_all_tasks(self) -> list[Task]:
        with self._lock:
            return [task.copy() for _, task in sorted(self._tasks.items())]

    def get_task(self, key: str) -> Task | None:
        with self._lock:
            task = self._tasks.get(key)
            return task.copy() if task else None

    def upsert_task(self, task: Task) -> None:
        with self._lock:
            self._tasks[task.key] = task.copy()

    def update_task_column(self, key: str, column: Column) -> None:
        with self._lock:
            if key not in self._tasks:
                raise PersistenceError(f"Task {key} is not stored")
            self._tasks[key] = self._tasks[key].with_column(column)

    def delete_tasks(self, keys: Iterable[str]) -> int:
        with self._lock:
            removed = 0
            for key in keys:
                if self._tasks.pop(key, None) is not None:
                    removed += 1
            return removed

    def apply_sync(self, upserts: Iterable[Task], prune_keys: Iterable[str]) -> int:
        upserts = list(upserts)
        prune_keys = list(prune_keys)
        with self._lock:
            for task in upserts:
                self._tasks[task.key] = task.copy()
            removed = 0
            for key in prune_keys:
                if self._tasks.pop(key, None) is not None:
                    removed += 1
            return removed

    def create_work_log_entry(self, entry: WorkLogEntry) -> WorkLogResult:
        with self._lock:
            slot = (entry.task_key, entry.log_date)
            if slot in self._work_logs:
                return WorkLogResult(is_new=False)
            self._work_logs[slot] = entry
            return WorkLogResult(is_new=True, entry=entry)

    def get_work_logs(self, log_date: date | None = None) -> list[WorkLogEntry]:
        with self._lock:
            entries = list(self._work_logs.values())
        if log_date is not None:
            entries = [e for e in entries if e.log_date == log_date]
        return sorted(entries, key=lambda e: (e.log_date, e.task_key))

    def get_work_logs_between(self, start: date, end: date) -> list[WorkLogEntry]:
        with self._lock:
            entries = [e for e in self._work_logs.values() if start <= e.log_date <= end]
        return sorted(entries, key=lambda e: (e.log_date, e.task_key))

    def get_setting(self, key: str) -> str | None:
        with self._lock:
            return self._settings.get(key)

    def set_setting(self, key: str, value: str) -> None:
        with self._lock:
            self._settings[key] = value

    def delete_setting(self, key: str) -> None:
        with self._lock:
            self._settings.pop(key, None)

    def get_settings(self, prefix: str = "") -> dict[str, str]:
        with self._lock:
            return {k: v for k, v in self._settings.items() if k.startswith(prefix)}
