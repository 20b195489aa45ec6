"""
Domain enums - Column, IssueKind, Priority and other enumerated types.
"""

from __future__ import annotations

from enum import Enum


class Column(Enum):
    """
    One of the twelve ordered workflow stages a task occupies on the board.

    The value is the board label, which is also what gets persisted.
    """

    FUNNEL = "FUNNEL"
    DEFINING = "DEFINING"
    READY = "READY"
    TODO = "TO DO"
    EXECUTION = "EXECUTION"
    EXECUTED = "EXECUTED"
    TESTING_REVIEW = "TESTING & REVIEW"
    TEST_DONE = "TEST DONE"
    VALIDATING = "VALIDATING"
    RESOLVED = "RESOLVED"
    DONE = "DONE"
    CLOSED = "CLOSED"

    @classmethod
    def from_value(cls, value: str | Column | None) -> Column | None:
        """
        Look up a column by board label or member name.

        Returns None for anything outside the fixed column set. Callers
        decide whether that is a hard failure or a coercion to TODO.
        """
        if isinstance(value, Column):
            return value
        if not value:
            return None
        text = value.strip()
        for column in cls:
            if text.upper() in (column.value, column.name):
                return column
        return None

    @classmethod
    def triage_default(cls) -> Column:
        """Column used when a remote status cannot be resolved."""
        return cls.TODO

    @classmethod
    def ordered(cls) -> list[Column]:
        """All columns in board order."""
        return list(cls)

    @property
    def order(self) -> int:
        """Zero-based position on the board."""
        return list(Column).index(self)

    @property
    def is_terminal(self) -> bool:
        """Tasks in a terminal column count as done."""
        return self in (Column.DONE, Column.CLOSED)

    def __str__(self) -> str:
        return self.value


class IssueKind(Enum):
    """Category of work item; selects the workflow ruleset."""

    STORY = "story"
    BUG = "bug"
    OTHER = "other"

    @classmethod
    def from_string(cls, value: str | None) -> IssueKind:
        """
        Parse issue kind from a remote issue type name.

        Bugs and defects are defect-like; stories, tasks and sub-tasks are
        story-like; everything else (epics, spikes, ...) is unconstrained.
        """
        if not value:
            return cls.OTHER
        value = value.strip().lower()

        if any(x in value for x in ["bug", "defect", "缺陷"]):
            return cls.BUG
        if any(x in value for x in ["story", "task", "improvement", "故事", "任务"]):
            return cls.STORY

        return cls.OTHER

    @property
    def display_name(self) -> str:
        """Human-readable name, used in workflow denial reasons."""
        return {
            IssueKind.STORY: "Story",
            IssueKind.BUG: "Bug",
            IssueKind.OTHER: "Issue",
        }[self]


class Priority(Enum):
    """Priority tier, mirroring Jira's default scheme."""

    HIGHEST = "Highest"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    LOWEST = "Lowest"

    @classmethod
    def from_string(cls, value: str | None) -> Priority:
        """Parse priority from string."""
        if not value:
            return cls.MEDIUM
        value = value.strip().lower()

        if any(x in value for x in ["highest", "blocker", "critical", "p0"]):
            return cls.HIGHEST
        if any(x in value for x in ["lowest", "trivial", "p4"]):
            return cls.LOWEST
        if any(x in value for x in ["high", "major", "p1"]):
            return cls.HIGH
        if any(x in value for x in ["low", "minor", "p3"]):
            return cls.LOW

        return cls.MEDIUM


class Swimlane(Enum):
    """Due-date-derived triage lane. Always recomputed, never stored."""

    OVERDUE = "overdue"
    ON_SCHEDULE = "onSchedule"
    UNSCHEDULED = "others"

    @property
    def display_name(self) -> str:
        return {
            Swimlane.OVERDUE: "Overdue",
            Swimlane.ON_SCHEDULE: "On Schedule",
            Swimlane.UNSCHEDULED: "Others",
        }[self]


class TaskSource(Enum):
    """Where a task came from."""

    REMOTE = "JIRA"
    LOCAL = "LOCAL"

    @classmethod
    def from_string(cls, value: str | None) -> TaskSource:
        if value and value.strip().upper() == cls.LOCAL.value:
            return cls.LOCAL
        return cls.REMOTE


class WorkLogOrigin(Enum):
    """Origin tag for a work log entry."""

    REMOTE_AUTO = "AUTO_JIRA"
    LOCAL_AUTO = "AUTO_LOCAL"
    MANUAL = "MANUAL"

    @classmethod
    def from_string(cls, value: str | None) -> WorkLogOrigin:
        for origin in cls:
            if value == origin.value:
                return origin
        return cls.MANUAL
