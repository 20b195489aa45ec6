"""
Remote Tracker Port - Abstract interface for the system of record.

The reconciliation core only ever speaks in board columns. Implementations
own authentication and translate a target column back into the remote
system's own transition vocabulary.

Implementations:
- JiraBoardAdapter: Jira Software (agile REST API)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..domain.entities import Task
from ..domain.enums import Column


class TransitionErrorCode(Enum):
    """Why a remote transition did not happen."""

    # The target status needs an interactive screen (e.g. resolution)
    # that the API cannot drive.
    GUIDED_SCREEN_REQUIRED = "guided-screen-required"
    NO_TRANSITION = "no-transition"
    REMOTE_ERROR = "remote-error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class BoardInfo:
    """A remote board."""

    id: int
    name: str
    board_type: str = "scrum"


@dataclass(frozen=True)
class SprintInfo:
    """A remote sprint."""

    id: int
    name: str
    state: str = "active"


@dataclass(frozen=True)
class IssueScope:
    """
    Which slice of the board to fetch.

    A scope with no sprint means the backlog only.
    """

    board: BoardInfo
    sprint: SprintInfo | None = None
    assignee: str | None = None
    project_key: str | None = None

    @property
    def is_backlog_only(self) -> bool:
        return self.sprint is None


@dataclass
class IssueBatch:
    """Issues returned by a fetch, already mapped into tasks."""

    tasks: list[Task] = field(default_factory=list)
    total: int = 0

    @property
    def keys(self) -> set[str]:
        return {task.key for task in self.tasks}


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a remote transition."""

    success: bool
    new_remote_status: str | None = None
    error_code: TransitionErrorCode | None = None
    message: str = ""
    available: tuple[str, ...] = ()

    @classmethod
    def ok(cls, new_remote_status: str | None) -> TransitionResult:
        return cls(success=True, new_remote_status=new_remote_status)

    @classmethod
    def failed(
        cls,
        code: TransitionErrorCode,
        message: str,
        available: tuple[str, ...] = (),
    ) -> TransitionResult:
        return cls(success=False, error_code=code, message=message, available=available)


class RemoteTrackerPort(ABC):
    """
    Abstract interface for the remote issue tracker.

    Read operations raise TrackerError subclasses on failure.
    transition_issue reports expected failures in its result instead.
    """

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tracker name (e.g., 'Jira')."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the tracker is connected and authenticated."""
        ...

    @abstractmethod
    def test_connection(self) -> bool:
        """Test the connection to the tracker."""
        ...

    @abstractmethod
    def get_current_user(self) -> dict[str, Any]:
        """Get the current authenticated user."""
        ...

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    @abstractmethod
    def discover_board(self) -> BoardInfo:
        """
        Find the board to sync.

        Raises:
            ResourceNotFoundError: If no board matches the configured project.
        """
        ...

    @abstractmethod
    def discover_sprint(self, board: BoardInfo) -> SprintInfo | None:
        """
        Find the most relevant sprint: active, else future, else closed.

        Returns:
            The sprint, or None if the board has no sprints at all.
        """
        ...

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    @abstractmethod
    def list_issues(self, scope: IssueScope) -> IssueBatch:
        """Fetch every issue in the scope (sprint + backlog)."""
        ...

    @abstractmethod
    def list_changed_issues(self, scope: IssueScope, since: datetime) -> IssueBatch:
        """
        Fetch issues in the scope updated since a point in time.

        ``IssueBatch.total`` is the size of the whole scope, not of the
        delta, so the caller can tell whether items disappeared.
        """
        ...

    @abstractmethod
    def transition_issue(self, issue_key: str, target: Column) -> TransitionResult:
        """Move a remote issue into the status that maps onto ``target``."""
        ...
