"""
Board Service - wires the cache, orchestrator and scheduler together.

This is the surface the CLI (or any other UI) talks to: read-only board
views, moves and syncs, plus local task and manual work log upkeep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from ...core.constants import (
    LOCAL_KEY_PREFIX,
    MANUAL_LOG_PREFIX,
    SETTING_AUTO_SYNC_INTERVAL,
)
from ...core.domain.entities import Task, WorkLogEntry
from ...core.domain.enums import Column, IssueKind, Priority, Swimlane, TaskSource, WorkLogOrigin
from ...core.ports.config_provider import SyncConfig, TrackerConfig
from ...core.ports.issue_tracker import RemoteTrackerPort
from ...core.ports.note_vault import NoteVaultPort
from ...core.ports.task_store import TaskStorePort, WorkLogResult
from .cache import TaskCache
from .reconciliation import EditOutcome, MoveOutcome, PendingMove, ReconciliationOrchestrator
from .scheduler import SyncResult, SyncScheduler


# Six-digit local keys
LOCAL_KEY_SPACE = 1_000_000


def generate_local_key(now: Callable[[], float] = time.time) -> str:
    """Key for a board-only task: ``ME-`` plus the last six digits of the ms clock."""
    millis = int(now() * 1000)
    return f"{LOCAL_KEY_PREFIX}{str(millis)[-6:]}"


def _next_local_key(key: str) -> str:
    number = int(key[len(LOCAL_KEY_PREFIX):]) + 1
    return f"{LOCAL_KEY_PREFIX}{number % LOCAL_KEY_SPACE:06d}"


class BoardService:
    """Facade over the reconciliation engine."""

    def __init__(
        self,
        store: TaskStorePort,
        tracker: RemoteTrackerPort,
        vault: NoteVaultPort | None = None,
        sync_config: SyncConfig | None = None,
        tracker_config: TrackerConfig | None = None,
        today: Callable[[], date] = date.today,
        key_factory: Callable[[], str] = generate_local_key,
    ):
        self.store = store
        self.tracker = tracker
        self.sync_config = sync_config or SyncConfig()
        self._today = today
        self._key_factory = key_factory
        self.logger = logging.getLogger("BoardService")

        self.cache = TaskCache()
        self.scheduler = SyncScheduler(
            self.cache,
            store,
            tracker,
            config=self.sync_config,
            tracker_config=tracker_config,
        )
        self.orchestrator = ReconciliationOrchestrator(
            self.cache,
            store,
            tracker,
            vault=vault,
            scheduler=self.scheduler,
            remote_timeout=self.sync_config.remote_timeout,
            today=today,
        )

    def load(self) -> int:
        """Fill the cache from the store. Returns the number of tasks loaded."""
        tasks = self.store.get_all_tasks()
        self.cache.replace_all(tasks)

        stored_interval = self.store.get_setting(SETTING_AUTO_SYNC_INTERVAL)
        if stored_interval:
            try:
                self.scheduler.interval_minutes = int(stored_interval)
            except ValueError:
                self.logger.warning(f"Ignoring invalid auto-sync interval {stored_interval!r}")

        self.logger.debug(f"Loaded {len(tasks)} tasks from {self.store.name}")
        return len(tasks)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def tasks(self) -> list[Task]:
        return self.cache.tasks()

    def grid(self, sprint: str | None = None) -> dict[Swimlane, dict[Column, list[Task]]]:
        return self.cache.grid(self._today(), sprint=sprint)

    def archived_tasks(self) -> list[Task]:
        return self.cache.archived()

    def work_logs(self, log_date: date | None = None, end_date: date | None = None) -> list[WorkLogEntry]:
        """Work logs for one day, for log_date..end_date inclusive, or all of them."""
        if end_date is not None:
            return self.store.get_work_logs_between(log_date or end_date, end_date)
        return self.store.get_work_logs(log_date)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def move_task(self, key: str, target: Column | str) -> MoveOutcome:
        return await self.orchestrator.move_task(key, target)

    async def begin_move(self, key: str, target: Column | str) -> PendingMove:
        return await self.orchestrator.begin_move(key, target)

    async def run_full_sync(self) -> SyncResult:
        return await self.scheduler.run_full_sync()

    async def run_incremental_sync(self) -> SyncResult:
        return await self.scheduler.run_incremental_sync()

    async def create_local_task(
        self,
        title: str,
        description: str = "",
        due_date: date | None = None,
        priority: Priority = Priority.MEDIUM,
        column: Column = Column.FUNNEL,
    ) -> Task:
        """
        Create a board-only task.

        Local tasks never reach the remote tracker and survive every
        full-sync prune. A generated key already taken by a cached or
        stored task is bumped until it is free.
        """
        if not title.strip():
            raise ValueError("Task title must not be empty")

        async with self.cache.lock:
            task = Task(
                key=await self._unused_local_key(),
                title=title.strip(),
                kind=IssueKind.OTHER,
                column=column,
                priority=priority,
                due_date=due_date,
                description=description,
                source=TaskSource.LOCAL,
            )
            await asyncio.to_thread(self.store.upsert_task, task)
            self.cache.put(task)
        self.logger.info(f"Created local task {task.key}: {task.title}")
        return task

    async def _unused_local_key(self) -> str:
        key = self._key_factory()
        for _ in range(LOCAL_KEY_SPACE):
            if key not in self.cache and await asyncio.to_thread(self.store.get_task, key) is None:
                return key
            key = _next_local_key(key)
        raise ValueError("No free local task key left")

    async def update_local_task(self, key: str, **changes: Any) -> EditOutcome:
        """Edit title, description, due date, priority or column of a local task."""
        return await self.orchestrator.edit_task(key, **changes)

    async def archive_local_task(self, key: str) -> EditOutcome:
        """Take a local task off the board without deleting it."""
        return await self.orchestrator.edit_task(key, archived=True)

    async def restore_local_task(self, key: str) -> EditOutcome:
        """Put an archived local task back on the board, in TO DO."""
        return await self.orchestrator.edit_task(key, archived=False, column=Column.TODO)

    async def delete_local_task(self, key: str) -> EditOutcome:
        return await self.orchestrator.delete_task(key)

    async def log_work(
        self,
        text: str,
        log_date: date | None = None,
        task_key: str | None = None,
    ) -> WorkLogResult:
        """
        Record a manual work log entry.

        Args:
            text: What was done.
            log_date: Day worked; defaults to today.
            task_key: Task the work belongs to. Without one the entry gets
                its own ``MANUAL-<yyyymmdd>-<n>`` key.

        Returns:
            WorkLogResult; ``is_new`` is False when the task already has an
            entry for that day.
        """
        text = text.strip()
        if not text:
            raise ValueError("Work log text must not be empty")
        log_date = log_date or self._today()

        if task_key is None:
            same_day = await asyncio.to_thread(self.store.get_work_logs, log_date)
            manual = sum(1 for e in same_day if e.task_key.startswith(MANUAL_LOG_PREFIX))
            task_key = f"{MANUAL_LOG_PREFIX}{log_date:%Y%m%d}-{manual + 1}"
        elif task_key not in self.cache:
            raise ValueError(f"Task {task_key} not found")

        entry = WorkLogEntry(
            task_key=task_key,
            log_date=log_date,
            origin=WorkLogOrigin.MANUAL,
            text=text,
            created_at=datetime.now(),
        )
        result = await asyncio.to_thread(self.store.create_work_log_entry, entry)
        if result.is_new:
            self.logger.info(f"Logged manual work {task_key} for {log_date.isoformat()}")
        return result

    def set_auto_sync_interval(self, minutes: int) -> int:
        """Persist a new timer period, clamped to the minimum."""
        self.scheduler.interval_minutes = minutes
        value = self.scheduler.interval_minutes
        self.store.set_setting(SETTING_AUTO_SYNC_INTERVAL, str(value))
        return value

    def reset_sync(self) -> None:
        """Call after the tracker configuration changed."""
        self.scheduler.reset_cursor()
