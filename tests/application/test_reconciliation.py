"""
Tests for the ReconciliationOrchestrator (optimistic moves with rollback).
"""

from datetime import date
from unittest.mock import MagicMock

import pytest

from jiraflow.adapters.store import InMemoryTaskStore
from jiraflow.application.board.cache import TaskCache
from jiraflow.application.board.reconciliation import (
    MoveStatus,
    ReconciliationOrchestrator,
    work_log_origin,
)
from jiraflow.core.domain.enums import Column, IssueKind, Swimlane, TaskSource, WorkLogOrigin
from jiraflow.core.domain.swimlanes import classify_task
from jiraflow.core.exceptions import PersistenceError, TrackerError
from jiraflow.core.ports.issue_tracker import TransitionErrorCode, TransitionResult
from jiraflow.core.ports.note_vault import NoteSyncResult, NoteVaultPort


TODAY = date(2024, 5, 15)


# =============================================================================
# Fakes
# =============================================================================


class RecordingVault(NoteVaultPort):
    def __init__(self, error: Exception | None = None):
        self.synced: list[str] = []
        self.error = error

    @property
    def is_configured(self) -> bool:
        return True

    def sync_task_note(self, task):
        if self.error is not None:
            raise self.error
        self.synced.append(task.key)
        return NoteSyncResult(success=True, is_new=True, path=f"/vault/{task.key}.md")


class FailingStore(InMemoryTaskStore):
    def update_task_column(self, key, column):
        raise PersistenceError("disk full")


class ExplodingWorkLogStore(InMemoryTaskStore):
    def create_work_log_entry(self, entry):
        raise PersistenceError("work log table locked")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def vault():
    return RecordingVault()


@pytest.fixture
def build(tracker, vault):
    """Build an orchestrator over a cache and store seeded with the given tasks."""

    def _build(*tasks, store=None, scheduler=None, remote_timeout=2.0, vault=vault):
        store = store if store is not None else InMemoryTaskStore()
        for task in tasks:
            store.upsert_task(task)
        cache = TaskCache(tasks)
        return ReconciliationOrchestrator(
            cache,
            store,
            tracker,
            vault=vault,
            scheduler=scheduler,
            remote_timeout=remote_timeout,
            today=lambda: TODAY,
        )

    return _build


# =============================================================================
# Early exits
# =============================================================================


class TestEarlyOutcomes:
    """Moves that settle without touching anything."""

    @pytest.mark.asyncio
    async def test_noop(self, build, tracker, make_task):
        orchestrator = build(make_task("S-1", column=Column.EXECUTION))
        outcome = await orchestrator.move_task("S-1", Column.EXECUTION)
        assert outcome.status is MoveStatus.NOOP
        assert outcome.success
        assert tracker.transition_calls == []
        assert orchestrator.store.get_work_logs() == []

    @pytest.mark.asyncio
    async def test_rejected_by_workflow(self, build, tracker, make_task):
        """Test a disallowed move leaves cache, store and remote untouched."""
        orchestrator = build(make_task("S-1", column=Column.EXECUTION))
        outcome = await orchestrator.move_task("S-1", Column.DONE)

        assert outcome.status is MoveStatus.REJECTED
        assert outcome.reason == "Story not allowed to move from EXECUTION to DONE"
        assert orchestrator.cache.get("S-1").column is Column.EXECUTION
        assert orchestrator.store.get_task("S-1").column is Column.EXECUTION
        assert tracker.transition_calls == []
        assert not orchestrator.cache.lock.locked()

    @pytest.mark.asyncio
    async def test_remote_task_with_local_looking_key_is_validated(self, build, tracker, make_task):
        """Test a Jira project keyed ME is still held to the workflow."""
        orchestrator = build(make_task("ME-42", column=Column.EXECUTION))

        rejected = await orchestrator.move_task("ME-42", Column.DONE)
        confirmed = await orchestrator.move_task("ME-42", Column.EXECUTED)

        assert rejected.status is MoveStatus.REJECTED
        assert confirmed.status is MoveStatus.CONFIRMED
        assert tracker.transition_calls == [("ME-42", Column.EXECUTED)]
        assert confirmed.work_log.entry.origin is WorkLogOrigin.REMOTE_AUTO

    @pytest.mark.asyncio
    async def test_invalid_column(self, build, make_task):
        orchestrator = build(make_task("S-1"))
        outcome = await orchestrator.move_task("S-1", "LIMBO")
        assert outcome.status is MoveStatus.REJECTED
        assert outcome.reason == "Invalid column: LIMBO"

    @pytest.mark.asyncio
    async def test_not_found(self, build):
        orchestrator = build()
        outcome = await orchestrator.move_task("S-404", Column.DONE)
        assert outcome.status is MoveStatus.NOT_FOUND
        assert not outcome.success

    @pytest.mark.asyncio
    async def test_archived_task_rejected(self, build, tracker, make_task):
        task = make_task("ME-000001", source=TaskSource.LOCAL, column=Column.TODO, archived=True)
        orchestrator = build(task)

        outcome = await orchestrator.move_task("ME-000001", Column.EXECUTION)

        assert outcome.status is MoveStatus.REJECTED
        assert "archived" in outcome.reason
        assert orchestrator.store.get_task("ME-000001").column is Column.TODO
        assert not orchestrator.cache.lock.locked()


# =============================================================================
# Confirmed moves
# =============================================================================


class TestConfirmedMoves:
    """Moves the remote tracker accepts."""

    @pytest.mark.asyncio
    async def test_overdue_story_to_executed(self, build, tracker, vault, make_task, yesterday):
        """Test the full happy path: persist, confirm, log work, sync note."""
        orchestrator = build(make_task("S-1", column=Column.EXECUTION, due_date=yesterday))
        assert classify_task(orchestrator.cache.get("S-1"), TODAY) is Swimlane.OVERDUE

        outcome = await orchestrator.move_task("S-1", "EXECUTED")

        assert outcome.status is MoveStatus.CONFIRMED
        assert outcome.previous_column is Column.EXECUTION
        assert outcome.new_remote_status == "Build Done 构建完成"
        assert tracker.transition_calls == [("S-1", Column.EXECUTED)]

        assert orchestrator.cache.get("S-1").column is Column.EXECUTED
        assert orchestrator.cache.get("S-1").remote_status == "Build Done 构建完成"
        assert orchestrator.store.get_task("S-1").column is Column.EXECUTED

        assert outcome.work_log.is_new
        logs = orchestrator.store.get_work_logs(TODAY)
        assert len(logs) == 1
        assert logs[0].text == "S-1 Task S-1"
        assert logs[0].origin is WorkLogOrigin.REMOTE_AUTO

        assert vault.synced == ["S-1"]
        assert outcome.note.success
        assert outcome.to_dict()["work_log_is_new"] is True

    @pytest.mark.asyncio
    async def test_remote_status_persisted(self, build, make_task):
        """Test the store carries the tracker's new status, not just the cache."""
        orchestrator = build(
            make_task("S-1", column=Column.EXECUTION, remote_status="In Progress 处理中")
        )

        await orchestrator.move_task("S-1", Column.EXECUTED)

        stored = orchestrator.store.get_task("S-1")
        assert stored.remote_status == "Build Done 构建完成"
        assert stored.column is Column.EXECUTED

    @pytest.mark.asyncio
    async def test_remote_status_write_failure_keeps_move(self, build, make_task):
        class ReadOnlyUpsertStore(InMemoryTaskStore):
            def __init__(self):
                super().__init__()
                self.read_only = False

            def upsert_task(self, task):
                if self.read_only:
                    raise PersistenceError("database is locked")
                super().upsert_task(task)

        store = ReadOnlyUpsertStore()
        orchestrator = build(make_task("S-1", column=Column.EXECUTION), store=store)
        store.read_only = True

        outcome = await orchestrator.move_task("S-1", Column.EXECUTED)

        assert outcome.status is MoveStatus.CONFIRMED
        assert orchestrator.cache.get("S-1").remote_status == "Build Done 构建完成"
        assert store.get_task("S-1").column is Column.EXECUTED

    @pytest.mark.asyncio
    async def test_same_day_repeat_not_new(self, build, make_task):
        """Test the second qualifying move on one day reuses the entry."""
        orchestrator = build(make_task("S-1", column=Column.EXECUTION))
        first = await orchestrator.move_task("S-1", Column.EXECUTED)
        await orchestrator.move_task("S-1", Column.EXECUTION)
        second = await orchestrator.move_task("S-1", Column.EXECUTED)

        assert first.work_log.is_new
        assert second.status is MoveStatus.CONFIRMED
        assert not second.work_log.is_new
        assert len(orchestrator.store.get_work_logs()) == 1

    @pytest.mark.asyncio
    async def test_bug_to_validating_logs(self, build, make_task):
        orchestrator = build(make_task("B-1", kind=IssueKind.BUG, column=Column.EXECUTION))
        outcome = await orchestrator.move_task("B-1", Column.VALIDATING)
        assert outcome.status is MoveStatus.CONFIRMED
        assert outcome.work_log.is_new

    @pytest.mark.asyncio
    async def test_non_logging_move(self, build, make_task):
        orchestrator = build(make_task("S-1", column=Column.TODO))
        outcome = await orchestrator.move_task("S-1", Column.EXECUTION)
        assert outcome.status is MoveStatus.CONFIRMED
        assert outcome.work_log is None
        assert orchestrator.store.get_work_logs() == []

    @pytest.mark.asyncio
    async def test_local_task_skips_remote(self, build, tracker, make_task):
        """Test local tasks move freely and never reach the tracker."""
        orchestrator = build(
            make_task("ME-123456", kind=IssueKind.OTHER, column=Column.FUNNEL, source=TaskSource.LOCAL)
        )
        outcome = await orchestrator.move_task("ME-123456", Column.EXECUTED)

        assert outcome.status is MoveStatus.CONFIRMED
        assert tracker.transition_calls == []
        assert outcome.work_log.entry.origin is WorkLogOrigin.LOCAL_AUTO

    @pytest.mark.asyncio
    async def test_begin_move_acks_optimistically(self, build, make_task):
        """Test the ack is available before the remote answers."""
        orchestrator = build(make_task("S-1", column=Column.TODO))

        pending = await orchestrator.begin_move("S-1", Column.EXECUTION)

        assert pending.ack.status is MoveStatus.PENDING
        assert orchestrator.cache.get("S-1").column is Column.EXECUTION
        assert orchestrator.cache.lock.locked()

        outcome = await pending
        assert outcome.status is MoveStatus.CONFIRMED
        assert pending.done()
        assert not orchestrator.cache.lock.locked()


# =============================================================================
# Rollback
# =============================================================================


class TestRollback:
    """Moves that fail after the optimistic update."""

    @pytest.mark.asyncio
    async def test_guided_screen_rolls_back(self, build, tracker, vault, make_task):
        """Test a transition needing a screen reverts cache and store."""
        tracker.transition_result = TransitionResult.failed(
            TransitionErrorCode.GUIDED_SCREEN_REQUIRED, "Field 'resolution' is required"
        )
        orchestrator = build(make_task("S-1", column=Column.EXECUTION))

        outcome = await orchestrator.move_task("S-1", Column.EXECUTED)

        assert outcome.status is MoveStatus.REMOTE_FAILED
        assert outcome.rolled_back
        assert outcome.error_code is TransitionErrorCode.GUIDED_SCREEN_REQUIRED
        assert "please move it in Jira" in outcome.reason
        assert orchestrator.cache.get("S-1").column is Column.EXECUTION
        assert orchestrator.store.get_task("S-1").column is Column.EXECUTION
        assert orchestrator.store.get_work_logs() == []
        assert vault.synced == []

    @pytest.mark.asyncio
    async def test_timeout_rolls_back(self, build, tracker, make_task):
        tracker.transition_delay = 0.5
        orchestrator = build(make_task("S-1", column=Column.EXECUTION), remote_timeout=0.05)

        outcome = await orchestrator.move_task("S-1", Column.EXECUTED)

        assert outcome.status is MoveStatus.REMOTE_FAILED
        assert outcome.error_code is TransitionErrorCode.TIMEOUT
        assert orchestrator.cache.get("S-1").column is Column.EXECUTION
        assert orchestrator.store.get_work_logs() == []

    @pytest.mark.asyncio
    async def test_tracker_error_rolls_back(self, build, tracker, make_task):
        tracker.transition_error = TrackerError("API error 500: boom")
        orchestrator = build(make_task("S-1", column=Column.EXECUTION))

        outcome = await orchestrator.move_task("S-1", Column.EXECUTED)

        assert outcome.status is MoveStatus.REMOTE_FAILED
        assert outcome.error_code is TransitionErrorCode.REMOTE_ERROR
        assert outcome.reason == "API error 500: boom"
        assert orchestrator.store.get_task("S-1").column is Column.EXECUTION

    @pytest.mark.asyncio
    async def test_persistence_failure_skips_remote(self, build, tracker, make_task):
        """Test a failed local write reverts and never calls the tracker."""
        orchestrator = build(make_task("S-1", column=Column.EXECUTION), store=FailingStore())

        outcome = await orchestrator.move_task("S-1", Column.EXECUTED)

        assert outcome.status is MoveStatus.PERSISTENCE_FAILED
        assert "disk full" in outcome.reason
        assert orchestrator.cache.get("S-1").column is Column.EXECUTION
        assert tracker.transition_calls == []


# =============================================================================
# Side effects
# =============================================================================


class TestSideEffects:
    """Work log and note failures never undo a confirmed move."""

    @pytest.mark.asyncio
    async def test_vault_error_does_not_roll_back(self, build, make_task):
        orchestrator = build(
            make_task("S-1", column=Column.EXECUTION), vault=RecordingVault(OSError("read-only"))
        )
        outcome = await orchestrator.move_task("S-1", Column.EXECUTED)

        assert outcome.status is MoveStatus.CONFIRMED
        assert outcome.note is None
        assert outcome.work_log.is_new
        assert orchestrator.cache.get("S-1").column is Column.EXECUTED

    @pytest.mark.asyncio
    async def test_work_log_error_does_not_roll_back(self, build, vault, make_task):
        orchestrator = build(
            make_task("S-1", column=Column.EXECUTION), store=ExplodingWorkLogStore()
        )
        outcome = await orchestrator.move_task("S-1", Column.EXECUTED)

        assert outcome.status is MoveStatus.CONFIRMED
        assert outcome.work_log is None
        assert vault.synced == ["S-1"]

    @pytest.mark.asyncio
    async def test_skipped_vault(self, build, make_task):
        class UnconfiguredVault(RecordingVault):
            def sync_task_note(self, task):
                return NoteSyncResult.skip("vault-not-configured")

        orchestrator = build(make_task("S-1", column=Column.TODO), vault=UnconfiguredVault())
        outcome = await orchestrator.move_task("S-1", Column.EXECUTION)
        assert outcome.note.skipped
        assert outcome.to_dict()["note_synced"] is False


class TestLocalEdits:
    """Tests for edit_task and delete_task."""

    @pytest.mark.asyncio
    async def test_edit_persists_and_releases_lock(self, build, make_task):
        orchestrator = build(make_task("ME-000001", source=TaskSource.LOCAL))

        outcome = await orchestrator.edit_task("ME-000001", due_date=date(2024, 6, 1), column="DONE")

        assert outcome.success
        stored = orchestrator.store.get_task("ME-000001")
        assert stored.due_date == date(2024, 6, 1)
        assert stored.column is Column.DONE
        assert orchestrator.cache.get("ME-000001") == stored
        assert not orchestrator.cache.lock.locked()

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_task(self, build, make_task):
        class UndeletableStore(InMemoryTaskStore):
            def delete_tasks(self, keys):
                raise PersistenceError("database is locked")

        orchestrator = build(make_task("ME-000001", source=TaskSource.LOCAL), store=UndeletableStore())

        outcome = await orchestrator.delete_task("ME-000001")

        assert outcome.status is MoveStatus.PERSISTENCE_FAILED
        assert "ME-000001" in orchestrator.cache


class TestSchedulerCoordination:
    """The scheduler is paused for exactly the duration of a move."""

    @pytest.mark.asyncio
    async def test_pause_resume_balanced(self, build, make_task):
        scheduler = MagicMock()
        orchestrator = build(make_task("S-1", column=Column.TODO), scheduler=scheduler)

        await orchestrator.move_task("S-1", Column.EXECUTION)
        await orchestrator.move_task("S-1", Column.EXECUTION)
        await orchestrator.move_task("S-1", Column.CLOSED)

        assert scheduler.pause.call_count == 3
        assert scheduler.resume.call_count == 3


class TestWorkLogOrigin:
    """Tests for the logging predicate."""

    def test_origins(self, make_task):
        story = make_task("S-1")
        bug = make_task("B-1", kind=IssueKind.BUG)
        local = make_task("ME-000001", source=TaskSource.LOCAL, kind=IssueKind.OTHER)
        other = make_task("E-1", kind=IssueKind.OTHER)

        assert work_log_origin(story, Column.EXECUTED) is WorkLogOrigin.REMOTE_AUTO
        assert work_log_origin(story, Column.VALIDATING) is None
        assert work_log_origin(bug, Column.VALIDATING) is WorkLogOrigin.REMOTE_AUTO
        assert work_log_origin(bug, Column.EXECUTED) is None
        assert work_log_origin(local, Column.EXECUTED) is WorkLogOrigin.LOCAL_AUTO
        assert work_log_origin(other, Column.EXECUTED) is None
