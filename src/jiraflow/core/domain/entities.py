"""
Domain Entities - Task, work log entries and the sync cursor.

A Task's column is always a member of the fixed column set. Its swimlane
is never stored here: see swimlanes.classify_task.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any

from ..constants import BACKLOG_SPRINT
from .enums import Column, IssueKind, Priority, TaskSource, WorkLogOrigin


def _parse_date(value: Any) -> date | None:
    """Accept date, datetime or ISO string; time of day is dropped."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class TaskLink:
    """A typed link from one task to another (e.g. 'blocks', 'relates to')."""

    link_type: str
    target_key: str
    target_title: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "link_type": self.link_type,
            "target_key": self.target_key,
            "target_title": self.target_title,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskLink:
        return cls(
            link_type=data.get("link_type", ""),
            target_key=data.get("target_key", ""),
            target_title=data.get("target_title", ""),
        )


@dataclass
class Task:
    """
    The unit of work tracked on the board.

    Remote tasks are created on first sync observation and replaced
    wholesale by every sync. Local tasks are created on the board and
    never touched by sync. An archived task stays stored but is left off
    the board.
    """

    key: str
    title: str
    kind: IssueKind = IssueKind.OTHER
    column: Column = Column.TODO
    sprint: str = BACKLOG_SPRINT
    priority: Priority = Priority.MEDIUM
    due_date: date | None = None
    assignee: str | None = None
    description: str = ""
    links: list[TaskLink] = field(default_factory=list)

    source: TaskSource = TaskSource.REMOTE
    remote_status: str = ""
    issue_type: str = ""
    story_points: float | None = None
    parent_key: str | None = None
    updated_at: datetime | None = None
    archived: bool = False

    def __post_init__(self) -> None:
        column = Column.from_value(self.column)
        self.column = column if column is not None else Column.triage_default()
        self.due_date = _parse_date(self.due_date)

    @property
    def is_done(self) -> bool:
        """Completion flag, derived from terminal-column membership."""
        return self.column.is_terminal

    @property
    def is_local(self) -> bool:
        return self.source is TaskSource.LOCAL

    def with_column(self, column: Column) -> Task:
        """Return a copy of this task sitting in another column."""
        return replace(self, column=column, links=list(self.links))

    def copy(self) -> Task:
        return replace(self, links=list(self.links))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "key": self.key,
            "title": self.title,
            "kind": self.kind.value,
            "column": self.column.value,
            "sprint": self.sprint,
            "priority": self.priority.value,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "assignee": self.assignee,
            "description": self.description,
            "links": [link.to_dict() for link in self.links],
            "source": self.source.value,
            "remote_status": self.remote_status,
            "issue_type": self.issue_type,
            "story_points": self.story_points,
            "parent_key": self.parent_key,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "archived": self.archived,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Rebuild a task from to_dict() output."""
        updated_at = data.get("updated_at")
        return cls(
            key=data["key"],
            title=data.get("title", ""),
            kind=IssueKind(data.get("kind", IssueKind.OTHER.value)),
            column=Column.from_value(data.get("column")) or Column.triage_default(),
            sprint=data.get("sprint") or BACKLOG_SPRINT,
            priority=Priority.from_string(data.get("priority")),
            due_date=_parse_date(data.get("due_date")),
            assignee=data.get("assignee"),
            description=data.get("description") or "",
            links=[TaskLink.from_dict(link) for link in data.get("links") or []],
            source=TaskSource.from_string(data.get("source")),
            remote_status=data.get("remote_status") or "",
            issue_type=data.get("issue_type") or "",
            story_points=data.get("story_points"),
            parent_key=data.get("parent_key"),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            archived=bool(data.get("archived", False)),
        )


@dataclass(frozen=True)
class WorkLogEntry:
    """
    A record that a task was worked on a given calendar day.

    (task_key, log_date) is unique; the store enforces it.
    """

    task_key: str
    log_date: date
    origin: WorkLogOrigin = WorkLogOrigin.MANUAL
    text: str = ""
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_key": self.task_key,
            "log_date": self.log_date.isoformat(),
            "origin": self.origin.value,
            "text": self.text,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class SyncCursor:
    """
    Bookkeeping marker for incremental sync.

    synced_at is the start of the last successful sync; item_count is how
    many remote tasks the board held afterwards.
    """

    synced_at: datetime
    item_count: int
    method: str = "full"

    def age_hours(self, now: datetime) -> float:
        return (now - self.synced_at).total_seconds() / 3600.0

    def is_stale(self, now: datetime, max_age_hours: float) -> bool:
        return self.age_hours(now) > max_age_hours
