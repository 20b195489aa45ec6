"""
Reconciliation Orchestrator - optimistic task moves with rollback.

A move is applied to the cache immediately, persisted locally, then
confirmed against the remote tracker. A failure at either step restores
the pre-move snapshot. Side effects (work log, note sync) only run after
the remote tracker has confirmed the move.

Board-only tasks can also be edited or deleted here; those changes never
leave the local store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from ...core.domain.entities import Task, WorkLogEntry
from ...core.domain.enums import Column, IssueKind, WorkLogOrigin
from ...core.domain.workflow import validate
from ...core.exceptions import PersistenceError, TrackerError
from ...core.ports.issue_tracker import (
    RemoteTrackerPort,
    TransitionErrorCode,
    TransitionResult,
)
from ...core.ports.note_vault import NoteSyncResult, NoteVaultPort
from ...core.ports.task_store import TaskStorePort, WorkLogResult
from .cache import CacheSnapshot, TaskCache


if TYPE_CHECKING:
    from .scheduler import SyncScheduler


# Fields of a local task that can be changed after creation
EDITABLE_FIELDS = frozenset({"title", "description", "due_date", "priority", "column", "archived"})


class MoveStatus(Enum):
    """Final (or, for PENDING, provisional) state of a move."""

    NOOP = "noop"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    PERSISTENCE_FAILED = "persistence_failed"
    REMOTE_FAILED = "remote_failed"
    CONFIRMED = "confirmed"
    PENDING = "pending"


@dataclass
class MoveOutcome:
    """Structured result of a move, handed back to the UI/CLI."""

    key: str
    status: MoveStatus
    previous_column: Column | None = None
    target_column: Column | None = None
    reason: str | None = None
    error_code: TransitionErrorCode | None = None
    new_remote_status: str | None = None
    work_log: WorkLogResult | None = None
    note: NoteSyncResult | None = None

    @property
    def success(self) -> bool:
        return self.status in (MoveStatus.NOOP, MoveStatus.CONFIRMED, MoveStatus.PENDING)

    @property
    def rolled_back(self) -> bool:
        return self.status in (MoveStatus.PERSISTENCE_FAILED, MoveStatus.REMOTE_FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "status": self.status.value,
            "previous_column": self.previous_column.value if self.previous_column else None,
            "target_column": self.target_column.value if self.target_column else None,
            "reason": self.reason,
            "error_code": self.error_code.value if self.error_code else None,
            "new_remote_status": self.new_remote_status,
            "work_log_is_new": self.work_log.is_new if self.work_log else None,
            "note_synced": bool(self.note and self.note.success),
        }


@dataclass
class PendingMove:
    """
    Handle returned by begin_move.

    ``ack`` is available immediately and reflects the optimistic state;
    awaiting the handle (or ``settled``) yields the final outcome.
    """

    ack: MoveOutcome
    settled: asyncio.Future[MoveOutcome]

    def done(self) -> bool:
        return self.settled.done()

    def __await__(self):
        return self.settled.__await__()


@dataclass
class EditOutcome:
    """Result of editing or deleting a board-only task."""

    key: str
    status: MoveStatus
    task: Task | None = None
    reason: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (MoveStatus.NOOP, MoveStatus.CONFIRMED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "status": self.status.value,
            "reason": self.reason,
            "task": self.task.to_dict() if self.task else None,
        }


def _not_found(key: str) -> MoveOutcome:
    return MoveOutcome(key, MoveStatus.NOT_FOUND, reason=f"Task {key} not found")


def _resolved(outcome: MoveOutcome) -> PendingMove:
    future: asyncio.Future[MoveOutcome] = asyncio.get_running_loop().create_future()
    future.set_result(outcome)
    return PendingMove(ack=outcome, settled=future)


def work_log_origin(task: Task, target: Column) -> WorkLogOrigin | None:
    """
    Logging predicate for a confirmed move.

    Returns the origin tag to log with, or None when the move is not
    worth a work log entry.
    """
    if task.is_local:
        return WorkLogOrigin.LOCAL_AUTO if target is Column.EXECUTED else None
    if task.kind is IssueKind.STORY and target is Column.EXECUTED:
        return WorkLogOrigin.REMOTE_AUTO
    if task.kind is IssueKind.BUG and target is Column.VALIDATING:
        return WorkLogOrigin.REMOTE_AUTO
    return None


class ReconciliationOrchestrator:
    """
    Drives a single task move end to end.

    Ordering:
    1. no-op / validation checks (nothing mutated on rejection)
    2. snapshot + optimistic cache update, acknowledged to the caller
    3. local persistence; failure restores the snapshot, remote untouched
    4. remote transition; failure or timeout restores the snapshot and
       the persisted column
    5. side effects, each isolated, only after remote confirmation

    Steps 2-4 hold the cache lock and keep the sync scheduler paused.
    """

    def __init__(
        self,
        cache: TaskCache,
        store: TaskStorePort,
        tracker: RemoteTrackerPort | None,
        vault: NoteVaultPort | None = None,
        scheduler: SyncScheduler | None = None,
        remote_timeout: float = 30.0,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the orchestrator.

        Args:
            cache: Shared board state.
            store: Local persistence.
            tracker: Remote tracker; may be None for a board of local tasks.
            vault: Optional note vault.
            scheduler: Sync scheduler to pause while a move is in flight.
            remote_timeout: Seconds before a remote transition counts as failed.
            today: Clock for work log dates.
        """
        self.cache = cache
        self.store = store
        self.tracker = tracker
        self.vault = vault
        self.scheduler = scheduler
        self.remote_timeout = remote_timeout
        self._today = today
        self.logger = logging.getLogger("ReconciliationOrchestrator")

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def move_task(self, key: str, target: Column | str) -> MoveOutcome:
        """Move a task and wait for the final outcome."""
        pending = await self.begin_move(key, target)
        return await pending.settled

    async def begin_move(self, key: str, target: Column | str) -> PendingMove:
        """
        Start a move and return as soon as the optimistic update is applied.

        Args:
            key: Task key.
            target: Target column (enum or board label).

        Returns:
            PendingMove whose ``ack`` is PENDING for an accepted move, or a
            final outcome (NOOP, REJECTED, NOT_FOUND) already settled.
        """
        target_column = Column.from_value(target)
        if target_column is None:
            return _resolved(
                MoveOutcome(key, MoveStatus.REJECTED, reason=f"Invalid column: {target}")
            )

        self._pause_scheduler()
        try:
            await self.cache.lock.acquire()
        except BaseException:
            self._resume_scheduler()
            raise

        try:
            task = self.cache.get(key)
            if task is None:
                self._release()
                return _resolved(_not_found(key))

            early = self._check(task, target_column)
            if early is not None:
                self._release()
                return _resolved(early)

            snapshot = self.cache.snapshot([key])
            self.cache.set_column(key, target_column)
            self.logger.info(f"Moved {key} {task.column.value} -> {target_column.value} (optimistic)")

            settled = asyncio.ensure_future(self._settle(task, target_column, snapshot))
        except BaseException:
            self._release()
            raise

        ack = MoveOutcome(
            key,
            MoveStatus.PENDING,
            previous_column=task.column,
            target_column=target_column,
        )
        return PendingMove(ack=ack, settled=settled)

    def _check(self, task: Task, target: Column) -> MoveOutcome | None:
        key = task.key
        if task.archived:
            return MoveOutcome(
                key,
                MoveStatus.REJECTED,
                previous_column=task.column,
                target_column=target,
                reason=f"Task {key} is archived; restore it first",
            )

        if task.column is target:
            return MoveOutcome(
                key, MoveStatus.NOOP, previous_column=target, target_column=target
            )

        # Board-only tasks are free-form
        if not task.is_local:
            result = validate(task.kind, task.column, target)
            if not result.allowed:
                self.logger.info(f"Rejected move of {key}: {result.reason}")
                return MoveOutcome(
                    key,
                    MoveStatus.REJECTED,
                    previous_column=task.column,
                    target_column=target,
                    reason=result.reason,
                )
        return None

    # -------------------------------------------------------------------------
    # Local task edits
    # -------------------------------------------------------------------------

    async def edit_task(self, key: str, **changes: Any) -> EditOutcome:
        """
        Change fields of a board-only task and persist them.

        Remote tasks are owned by Jira and only ever change through a
        move or a sync. A failed write restores the cached task.

        Raises:
            ValueError: For a field outside EDITABLE_FIELDS or an empty title.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit {', '.join(sorted(unknown))}")
        if "title" in changes:
            changes["title"] = str(changes["title"]).strip()
            if not changes["title"]:
                raise ValueError("Task title must not be empty")

        async with self.cache.lock:
            task = self.cache.get(key)
            early = self._check_local(key, task)
            if early is not None:
                return early

            edited = replace(task, links=list(task.links), **changes)
            if edited == task:
                return EditOutcome(key, MoveStatus.NOOP, task=task)

            snapshot = self.cache.snapshot([key])
            self.cache.put(edited)
            try:
                await asyncio.to_thread(self.store.upsert_task, edited)
            except PersistenceError as e:
                self.cache.restore(snapshot)
                self.logger.error(f"Failed to save edit of {key}, reverted: {e}")
                return EditOutcome(
                    key, MoveStatus.PERSISTENCE_FAILED, task=task, reason=f"Failed to save edit: {e}"
                )

        self.logger.info(f"Edited {key}: {', '.join(sorted(changes))}")
        return EditOutcome(key, MoveStatus.CONFIRMED, task=edited)

    async def delete_task(self, key: str) -> EditOutcome:
        """Remove a board-only task from the store and the board."""
        async with self.cache.lock:
            task = self.cache.get(key)
            early = self._check_local(key, task)
            if early is not None:
                return early

            try:
                await asyncio.to_thread(self.store.delete_tasks, [key])
            except PersistenceError as e:
                self.logger.error(f"Failed to delete {key}: {e}")
                return EditOutcome(
                    key, MoveStatus.PERSISTENCE_FAILED, task=task, reason=f"Failed to delete: {e}"
                )
            self.cache.remove([key])

        self.logger.info(f"Deleted local task {key}")
        return EditOutcome(key, MoveStatus.CONFIRMED, task=task)

    def _check_local(self, key: str, task: Task | None) -> EditOutcome | None:
        if task is None:
            return EditOutcome(key, MoveStatus.NOT_FOUND, reason=f"Task {key} not found")
        if not task.is_local:
            return EditOutcome(
                key, MoveStatus.REJECTED, task=task, reason=f"{key} comes from Jira; change it there"
            )
        return None

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    async def _settle(self, task: Task, target: Column, snapshot: CacheSnapshot) -> MoveOutcome:
        try:
            outcome = await self._persist_and_confirm(task, target, snapshot)
        finally:
            self._release()

        if outcome.status is MoveStatus.CONFIRMED:
            confirmed = self.cache.get(task.key) or task.with_column(target)
            outcome.work_log = await self._record_work_log(confirmed, target)
            outcome.note = await self._sync_note(confirmed)
        return outcome

    async def _persist_and_confirm(
        self,
        task: Task,
        target: Column,
        snapshot: CacheSnapshot,
    ) -> MoveOutcome:
        key = task.key
        outcome = MoveOutcome(key, MoveStatus.CONFIRMED, previous_column=task.column, target_column=target)

        try:
            await asyncio.to_thread(self.store.update_task_column, key, target)
        except PersistenceError as e:
            self.cache.restore(snapshot)
            self.logger.error(f"Failed to persist move of {key}, reverted: {e}")
            outcome.status = MoveStatus.PERSISTENCE_FAILED
            outcome.reason = f"Failed to save move locally: {e}"
            return outcome
        except BaseException:
            self.cache.restore(snapshot)
            raise

        try:
            result = await self._transition(task, target)
        except BaseException:
            self.cache.restore(snapshot)
            await self._revert_persisted(key, task.column)
            raise

        if not result.success:
            self.cache.restore(snapshot)
            await self._revert_persisted(key, task.column)
            self.logger.warning(
                f"Remote rejected move of {key} to {target.value}, reverted: {result.message}"
            )
            outcome.status = MoveStatus.REMOTE_FAILED
            outcome.error_code = result.error_code
            outcome.reason = self._failure_reason(task, target, result)
            return outcome

        outcome.new_remote_status = result.new_remote_status
        if result.new_remote_status:
            current = self.cache.get(key)
            if current is not None:
                current.remote_status = result.new_remote_status
                self.cache.put(current)
                await self._store_remote_status(current)
        self.logger.info(f"Confirmed move of {key} to {target.value}")
        return outcome

    async def _store_remote_status(self, task: Task) -> None:
        # The tracker already moved; a failed write here is healed by the next sync.
        try:
            await asyncio.to_thread(self.store.upsert_task, task)
        except PersistenceError as e:
            self.logger.error(f"Could not save remote status of {task.key}: {e}")

    async def _transition(self, task: Task, target: Column) -> TransitionResult:
        if task.is_local or self.tracker is None:
            return TransitionResult.ok(None)

        try:
            # A timed-out worker thread cannot be interrupted; its late result is dropped.
            return await asyncio.wait_for(
                asyncio.to_thread(self.tracker.transition_issue, task.key, target),
                timeout=self.remote_timeout,
            )
        except asyncio.TimeoutError:
            return TransitionResult.failed(
                TransitionErrorCode.TIMEOUT,
                f"Jira did not answer within {self.remote_timeout:g}s",
            )
        except TrackerError as e:
            return TransitionResult.failed(TransitionErrorCode.REMOTE_ERROR, str(e))

    async def _revert_persisted(self, key: str, column: Column) -> None:
        try:
            await asyncio.to_thread(self.store.update_task_column, key, column)
        except PersistenceError as e:
            self.logger.error(f"Could not restore stored column of {key} to {column.value}: {e}")

    def _failure_reason(self, task: Task, target: Column, result: TransitionResult) -> str:
        if result.error_code is TransitionErrorCode.GUIDED_SCREEN_REQUIRED:
            return (
                f"Jira requires a screen (e.g. resolution) to move {task.key} to "
                f"{target.value}; please move it in Jira"
            )
        if result.error_code is TransitionErrorCode.TIMEOUT:
            return f"Timed out moving {task.key} in Jira: {result.message}"
        return result.message or f"Jira refused to move {task.key} to {target.value}"

    # -------------------------------------------------------------------------
    # Side effects
    # -------------------------------------------------------------------------

    async def _record_work_log(self, task: Task, target: Column) -> WorkLogResult | None:
        origin = work_log_origin(task, target)
        if origin is None:
            return None

        entry = WorkLogEntry(
            task_key=task.key,
            log_date=self._today(),
            origin=origin,
            text=f"{task.key} {task.title}",
            created_at=datetime.now(),
        )
        try:
            result = await asyncio.to_thread(self.store.create_work_log_entry, entry)
        except Exception as e:
            self.logger.warning(f"Work log for {task.key} failed: {e}")
            return None

        if result.is_new:
            self.logger.info(f"Logged work on {task.key} for {entry.log_date.isoformat()}")
        return result

    async def _sync_note(self, task: Task) -> NoteSyncResult | None:
        if self.vault is None:
            return None
        try:
            result = await asyncio.to_thread(self.vault.sync_task_note, task)
        except Exception as e:
            self.logger.warning(f"Note sync for {task.key} failed: {e}")
            return None

        if result.skipped:
            self.logger.debug(f"Note sync for {task.key} skipped: {result.reason}")
        return result

    # -------------------------------------------------------------------------
    # Scheduler coordination
    # -------------------------------------------------------------------------

    def _pause_scheduler(self) -> None:
        if self.scheduler is not None:
            self.scheduler.pause()

    def _resume_scheduler(self) -> None:
        if self.scheduler is not None:
            self.scheduler.resume()

    def _release(self) -> None:
        self.cache.lock.release()
        self._resume_scheduler()
