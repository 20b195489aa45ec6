"""
Shared pytest fixtures for the jiraflow test suite.

Fixture Categories:
- Domain: task factory, fixed dates
- Configuration: TrackerConfig, SyncConfig
- Fakes: in-memory store, scripted remote tracker
"""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta

import pytest

from jiraflow.adapters.store import InMemoryTaskStore
from jiraflow.core.domain.entities import Task
from jiraflow.core.domain.enums import Column, IssueKind
from jiraflow.core.exceptions import TrackerError
from jiraflow.core.ports.config_provider import SyncConfig, TrackerConfig
from jiraflow.core.ports.issue_tracker import (
    BoardInfo,
    IssueBatch,
    IssueScope,
    RemoteTrackerPort,
    SprintInfo,
    TransitionResult,
)


TODAY = date(2024, 5, 15)
NOW = datetime(2024, 5, 15, 9, 30, 0)


# =============================================================================
# Fakes
# =============================================================================


class FakeTracker(RemoteTrackerPort):
    """Scripted RemoteTrackerPort that records what it was asked to do."""

    def __init__(self) -> None:
        self.board = BoardInfo(id=1, name="Team Board", board_type="scrum")
        self.sprint: SprintInfo | None = SprintInfo(id=10, name="Sprint 1", state="active")
        self.issues: list[Task] = []
        self.changed: list[Task] = []
        self.changed_total: int | None = None

        self.fail_stage: str | None = None
        self.transition_result = TransitionResult.ok("Build Done 构建完成")
        self.transition_error: Exception | None = None
        self.transition_delay = 0.0

        self.transition_calls: list[tuple[str, Column]] = []
        self.list_calls: list[IssueScope] = []
        self.changed_calls: list[datetime] = []

    @property
    def name(self) -> str:
        return "Fake"

    @property
    def is_connected(self) -> bool:
        return True

    def test_connection(self) -> bool:
        return True

    def get_current_user(self) -> dict:
        return {"name": "me"}

    def discover_board(self) -> BoardInfo:
        if self.fail_stage == "board":
            raise TrackerError("board lookup failed")
        return self.board

    def discover_sprint(self, board: BoardInfo) -> SprintInfo | None:
        if self.fail_stage == "sprint":
            raise TrackerError("sprint lookup failed")
        return self.sprint

    def list_issues(self, scope: IssueScope) -> IssueBatch:
        if self.fail_stage == "issues":
            raise TrackerError("issue fetch failed")
        self.list_calls.append(scope)
        return IssueBatch(tasks=[t.copy() for t in self.issues], total=len(self.issues))

    def list_changed_issues(self, scope: IssueScope, since: datetime) -> IssueBatch:
        if self.fail_stage == "issues":
            raise TrackerError("issue fetch failed")
        self.changed_calls.append(since)
        total = self.changed_total if self.changed_total is not None else len(self.issues)
        return IssueBatch(tasks=[t.copy() for t in self.changed], total=total)

    def transition_issue(self, issue_key: str, target: Column) -> TransitionResult:
        self.transition_calls.append((issue_key, target))
        if self.transition_delay:
            time.sleep(self.transition_delay)
        if self.transition_error is not None:
            raise self.transition_error
        return self.transition_result


# =============================================================================
# Domain
# =============================================================================


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_task():
    """Factory for tasks with sensible defaults."""

    def _make(
        key: str = "S-1",
        kind: IssueKind = IssueKind.STORY,
        column: Column = Column.EXECUTION,
        **kwargs,
    ) -> Task:
        kwargs.setdefault("title", f"Task {key}")
        return Task(key=key, kind=kind, column=column, **kwargs)

    return _make


@pytest.fixture
def yesterday() -> date:
    return TODAY - timedelta(days=1)


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def tracker_config() -> TrackerConfig:
    return TrackerConfig(
        url="https://jira.example.com",
        email="dev@example.com",
        api_token="secret",
        project_key="PROJ",
    )


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(auto_sync_minutes=5, cursor_max_age_hours=24, remote_timeout=2.0)


# =============================================================================
# Fakes
# =============================================================================


@pytest.fixture
def tracker() -> FakeTracker:
    return FakeTracker()


@pytest.fixture
def memory_store() -> InMemoryTaskStore:
    return InMemoryTaskStore()
