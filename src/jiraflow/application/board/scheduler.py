"""
Sync Scheduler - full and incremental board refresh.

A full sync rebuilds the board from the remote tracker in four stages
(board, sprint, issues, save) and prunes tasks the tracker no longer
returns. An incremental sync fetches only what changed since the last
cursor and falls back to a full sync whenever the cursor cannot be
trusted. Both take the cache lock, so a sync never interleaves with a
task move.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from ...core.constants import (
    CURSOR_SETTING_KEYS,
    MIN_AUTO_SYNC_MINUTES,
    SETTING_BOARD_ID,
    SETTING_BOARD_NAME,
    SETTING_LAST_SYNC,
    SETTING_LAST_SYNC_COUNT,
    SETTING_SPRINT_ID,
    SETTING_SPRINT_NAME,
    SETTING_SPRINT_STATE,
    SETTING_SYNC_METHOD,
)
from ...core.domain.entities import SyncCursor, Task
from ...core.exceptions import JiraFlowError, SyncStageError
from ...core.ports.config_provider import SyncConfig, TrackerConfig
from ...core.ports.issue_tracker import (
    BoardInfo,
    IssueBatch,
    IssueScope,
    RemoteTrackerPort,
    SprintInfo,
)
from ...core.ports.task_store import TaskStorePort
from .cache import TaskCache


T = TypeVar("T")


class SyncState(Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class SyncStage(Enum):
    BOARD = "board"
    SPRINT = "sprint"
    ISSUES = "issues"
    SAVE = "save"


class SyncMode(Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass
class SyncResult:
    """
    Result of a board sync.

    A failed sync commits nothing; ``stage`` names where it stopped.

    Attributes:
        success: Whether every stage completed.
        mode: Mode that actually ran (an incremental request may run full).
        stage: Failed stage, None on success.
        error: Human-readable failure reason.
        fetched: Issues received from the tracker.
        upserted: Tasks written to the store.
        pruned: Remote tasks removed because the tracker no longer has them.
        fallback_reason: Why an incremental request ran as a full sync.
    """

    success: bool = True
    mode: SyncMode = SyncMode.FULL
    stage: SyncStage | None = None
    error: str | None = None

    fetched: int = 0
    upserted: int = 0
    pruned: int = 0
    pruned_keys: list[str] = field(default_factory=list)

    board: BoardInfo | None = None
    sprint: SprintInfo | None = None
    fallback_reason: str | None = None

    started_at: datetime | None = None
    finished_at: datetime | None = None

    def fail(self, stage: SyncStage, error: str) -> SyncResult:
        self.success = False
        self.stage = stage
        self.error = error
        return self

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def summary(self) -> str:
        """One-line summary for logs and the CLI."""
        if not self.success:
            stage = self.stage.value if self.stage else "unknown"
            return f"{self.mode.value} sync failed at {stage}: {self.error}"
        text = (
            f"{self.mode.value} sync: {self.fetched} fetched, "
            f"{self.upserted} saved, {self.pruned} pruned"
        )
        if self.fallback_reason:
            text += f" (fell back: {self.fallback_reason})"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "mode": self.mode.value,
            "stage": self.stage.value if self.stage else None,
            "error": self.error,
            "fetched": self.fetched,
            "upserted": self.upserted,
            "pruned": self.pruned,
            "board": self.board.name if self.board else None,
            "sprint": self.sprint.name if self.sprint else None,
            "fallback_reason": self.fallback_reason,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class SyncScheduler:
    """
    Runs full and incremental syncs, on demand or on a timer.

    The timer is paused while a task move is in flight; ticks that land
    while paused, or while another operation holds the cache lock, are
    skipped rather than queued.
    """

    def __init__(
        self,
        cache: TaskCache,
        store: TaskStorePort,
        tracker: RemoteTrackerPort,
        config: SyncConfig | None = None,
        tracker_config: TrackerConfig | None = None,
        now: Callable[[], datetime] = datetime.now,
        on_state_change: Callable[[SyncState], None] | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            cache: Shared board state.
            store: Local persistence, also holds the cursor.
            tracker: Remote tracker.
            config: Interval, staleness and timeout settings.
            tracker_config: Assignee / project used to scope issue fetches.
            now: Clock.
            on_state_change: Called on every state transition.
        """
        self.cache = cache
        self.store = store
        self.tracker = tracker
        self.config = config or SyncConfig()
        self.tracker_config = tracker_config
        self._now = now
        self._on_state_change = on_state_change

        self._state = SyncState.IDLE
        self._last_result: SyncResult | None = None
        self._pause_count = 0
        self._running = False
        self._in_tick = False
        self._timer: asyncio.Task[None] | None = None

        self.logger = logging.getLogger("SyncScheduler")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def last_result(self) -> SyncResult | None:
        return self._last_result

    @property
    def is_paused(self) -> bool:
        return self._pause_count > 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval_minutes(self) -> int:
        return self.config.auto_sync_minutes

    @interval_minutes.setter
    def interval_minutes(self, minutes: int) -> None:
        self.config.auto_sync_minutes = max(MIN_AUTO_SYNC_MINUTES, int(minutes))

    def _set_state(self, state: SyncState) -> None:
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    # -------------------------------------------------------------------------
    # Cursor
    # -------------------------------------------------------------------------

    def load_cursor(self) -> SyncCursor | None:
        """Read the cursor from settings; None if missing or unreadable."""
        raw_time = self.store.get_setting(SETTING_LAST_SYNC)
        raw_count = self.store.get_setting(SETTING_LAST_SYNC_COUNT)
        if not raw_time or raw_count is None:
            return None
        try:
            millis = int(raw_time)
            count = int(raw_count)
        except ValueError:
            self.logger.warning(f"Ignoring unreadable sync cursor {raw_time!r}/{raw_count!r}")
            return None
        if millis <= 0:
            return None
        method = self.store.get_setting(SETTING_SYNC_METHOD) or SyncMode.FULL.value
        return SyncCursor(
            synced_at=datetime.fromtimestamp(millis / 1000.0),
            item_count=count,
            method=method,
        )

    def save_cursor(self, cursor: SyncCursor) -> None:
        self.store.set_setting(SETTING_LAST_SYNC, str(int(cursor.synced_at.timestamp() * 1000)))
        self.store.set_setting(SETTING_LAST_SYNC_COUNT, str(cursor.item_count))
        self.store.set_setting(SETTING_SYNC_METHOD, cursor.method)

    def reset_cursor(self) -> None:
        """Forget the cursor (e.g. after a configuration change)."""
        for key in CURSOR_SETTING_KEYS:
            self.store.delete_setting(key)
        self.logger.info("Sync cursor reset")

    # -------------------------------------------------------------------------
    # Full sync
    # -------------------------------------------------------------------------

    async def run_full_sync(self) -> SyncResult:
        """
        Rebuild the board from the tracker.

        Returns:
            SyncResult; on failure nothing in the cache or store changed.
        """
        async with self.cache.lock:
            return await self._full_sync_locked()

    async def _full_sync_locked(self, fallback_reason: str | None = None) -> SyncResult:
        started = self._now()
        result = SyncResult(mode=SyncMode.FULL, started_at=started, fallback_reason=fallback_reason)
        self._set_state(SyncState.SYNCING)
        self.logger.info("Starting full sync" + (f" ({fallback_reason})" if fallback_reason else ""))

        try:
            board = await self._stage(SyncStage.BOARD, self.tracker.discover_board)
            result.board = board

            sprint = await self._stage(SyncStage.SPRINT, self.tracker.discover_sprint, board)
            result.sprint = sprint
            if sprint is None:
                self.logger.info(f"Board {board.name} has no sprints, syncing backlog only")

            batch: IssueBatch = await self._stage(
                SyncStage.ISSUES, self.tracker.list_issues, self._scope(board, sprint)
            )
            result.fetched = len(batch.tasks)

            fetched_keys = batch.keys
            prune_keys = sorted(
                task.key
                for task in self.cache.tasks()
                if not task.is_local and task.key not in fetched_keys
            )
            result.pruned = await self._stage(
                SyncStage.SAVE, self.store.apply_sync, batch.tasks, prune_keys
            )
            result.pruned_keys = prune_keys
            result.upserted = len(batch.tasks)
        except SyncStageError as e:
            return self._finish_failed(result, e)

        local_tasks = [task for task in self.cache.tasks() if task.is_local]
        self.cache.replace_all(local_tasks + batch.tasks)

        self._record_board(board, sprint)
        self._write_cursor(SyncCursor(started, len(batch.tasks), SyncMode.FULL.value))
        return self._finish_ok(result)

    # -------------------------------------------------------------------------
    # Incremental sync
    # -------------------------------------------------------------------------

    async def run_incremental_sync(self) -> SyncResult:
        """
        Fetch changes since the cursor, or run a full sync if it can't be trusted.

        Falls back when the cursor is missing, older than the staleness
        threshold, has no recorded board, or when the remote item count no
        longer adds up (something was deleted or moved out of scope).
        """
        async with self.cache.lock:
            cursor = self.load_cursor()
            reason = self._fallback_reason(cursor)
            if reason is not None or cursor is None:
                return await self._full_sync_locked(fallback_reason=reason)

            result, reason = await self._incremental_locked(cursor)
            if reason is not None:
                return await self._full_sync_locked(fallback_reason=reason)
            return result

    def _fallback_reason(self, cursor: SyncCursor | None) -> str | None:
        if cursor is None:
            return "no sync cursor"
        if cursor.is_stale(self._now(), self.config.cursor_max_age_hours):
            return f"cursor older than {self.config.cursor_max_age_hours:g}h"
        if self.store.get_setting(SETTING_BOARD_ID) is None:
            return "no board recorded"
        return None

    async def _incremental_locked(self, cursor: SyncCursor) -> tuple[SyncResult, str | None]:
        started = self._now()
        result = SyncResult(mode=SyncMode.INCREMENTAL, started_at=started)
        board, sprint = self._recorded_board()
        result.board, result.sprint = board, sprint

        self._set_state(SyncState.SYNCING)
        self.logger.info(f"Starting incremental sync since {cursor.synced_at.isoformat()}")

        try:
            batch: IssueBatch = await self._stage(
                SyncStage.ISSUES,
                self.tracker.list_changed_issues,
                self._scope(board, sprint),
                cursor.synced_at,
            )
        except SyncStageError as e:
            return self._finish_failed(result, e), None

        known = {task.key for task in self.cache.tasks() if not task.is_local}
        new_keys = batch.keys - known
        expected = cursor.item_count + len(new_keys)
        if batch.total != expected:
            self.logger.info(
                f"Remote holds {batch.total} issues, expected {expected}; falling back to full sync"
            )
            return result, f"remote count {batch.total} != expected {expected}"

        result.fetched = len(batch.tasks)
        try:
            await self._stage(SyncStage.SAVE, self.store.apply_sync, batch.tasks, [])
        except SyncStageError as e:
            return self._finish_failed(result, e), None

        self.cache.upsert_many(batch.tasks)
        result.upserted = len(batch.tasks)
        self._write_cursor(SyncCursor(started, expected, SyncMode.INCREMENTAL.value))
        return self._finish_ok(result), None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _stage(self, stage: SyncStage, func: Callable[..., T], *args: Any) -> T:
        """Run one blocking stage in a worker thread, bounded by the remote timeout."""
        # Local writes are never abandoned half way; only remote stages time out.
        timeout = None if stage is SyncStage.SAVE else self.config.remote_timeout
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise SyncStageError(
                stage.value, f"timed out after {self.config.remote_timeout:g}s", cause=e
            ) from e
        except JiraFlowError as e:
            raise SyncStageError(stage.value, str(e), cause=e) from e
        except Exception as e:
            self.logger.exception(f"Unexpected error during {stage.value} stage")
            raise SyncStageError(stage.value, f"unexpected error: {e}", cause=e) from e

    def _scope(self, board: BoardInfo, sprint: SprintInfo | None) -> IssueScope:
        tracker_config = self.tracker_config
        return IssueScope(
            board=board,
            sprint=sprint,
            assignee=tracker_config.assignee if tracker_config else None,
            project_key=tracker_config.project_key if tracker_config else None,
        )

    def _record_board(self, board: BoardInfo, sprint: SprintInfo | None) -> None:
        try:
            self.store.set_setting(SETTING_BOARD_ID, str(board.id))
            self.store.set_setting(SETTING_BOARD_NAME, board.name)
            if sprint is None:
                for key in (SETTING_SPRINT_ID, SETTING_SPRINT_NAME, SETTING_SPRINT_STATE):
                    self.store.delete_setting(key)
            else:
                self.store.set_setting(SETTING_SPRINT_ID, str(sprint.id))
                self.store.set_setting(SETTING_SPRINT_NAME, sprint.name)
                self.store.set_setting(SETTING_SPRINT_STATE, sprint.state)
        except JiraFlowError as e:
            self.logger.warning(f"Could not record board/sprint settings: {e}")

    def _recorded_board(self) -> tuple[BoardInfo, SprintInfo | None]:
        board = BoardInfo(
            id=int(self.store.get_setting(SETTING_BOARD_ID) or 0),
            name=self.store.get_setting(SETTING_BOARD_NAME) or "",
        )
        sprint_id = self.store.get_setting(SETTING_SPRINT_ID)
        sprint = None
        if sprint_id:
            sprint = SprintInfo(
                id=int(sprint_id),
                name=self.store.get_setting(SETTING_SPRINT_NAME) or "",
                state=self.store.get_setting(SETTING_SPRINT_STATE) or "active",
            )
        return board, sprint

    def _write_cursor(self, cursor: SyncCursor) -> None:
        # The batch is already committed; a lost cursor only costs a full sync next time.
        try:
            self.save_cursor(cursor)
        except JiraFlowError as e:
            self.logger.warning(f"Could not save sync cursor: {e}")

    def _finish_ok(self, result: SyncResult) -> SyncResult:
        result.finished_at = self._now()
        self._last_result = result
        self.logger.info(result.summary())
        self._set_state(SyncState.IDLE)
        return result

    def _finish_failed(self, result: SyncResult, error: SyncStageError) -> SyncResult:
        result.fail(SyncStage(error.stage), error.message)
        result.finished_at = self._now()
        self._last_result = result
        self.logger.error(result.summary())
        self._set_state(SyncState.ERROR)
        self._set_state(SyncState.IDLE)
        return result

    # -------------------------------------------------------------------------
    # Timer
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic incremental sync timer on the running loop."""
        if self._running:
            return
        self._running = True
        self._start_timer()
        self.logger.info(f"Auto-sync every {self.interval_minutes} minute(s)")

    async def stop(self) -> None:
        """Stop the timer, waiting for a sync already in progress to finish."""
        self._running = False
        timer, self._timer = self._timer, None
        if timer is None:
            return
        if not self._in_tick:
            timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass

    def pause(self) -> None:
        """Suspend the timer; calls nest."""
        self._pause_count += 1
        if self._timer is not None and not self._in_tick:
            self._timer.cancel()
            self._timer = None

    def resume(self) -> None:
        """Undo one pause(); the timer restarts with a full interval."""
        if self._pause_count == 0:
            return
        self._pause_count -= 1
        if self._pause_count == 0 and self._running:
            self._start_timer()

    def _start_timer(self) -> None:
        if self.is_paused:
            return
        if self._timer is not None and not self._timer.done():
            return
        self._timer = asyncio.get_running_loop().create_task(self._timer_loop())

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.interval_seconds)
            await self.tick()

    async def tick(self) -> SyncResult | None:
        """
        One timer firing.

        Skipped (returns None) while paused or while a move or another
        sync holds the cache lock.
        """
        if self.is_paused or self.cache.lock.locked():
            self.logger.debug("Auto-sync tick skipped, board busy")
            return None
        self._in_tick = True
        try:
            return await self.run_incremental_sync()
        finally:
            self._in_tick = False
