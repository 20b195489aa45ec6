"""
Swimlane Classifier - due date triage.

Callers classify a whole batch against a single ``today`` so a task cannot
flip lanes mid-render because the clock ticked over midnight.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from .entities import Task
from .enums import Swimlane


@dataclass(frozen=True)
class SwimlaneFlags:
    """Result of classification. At most one flag is ever set."""

    is_overdue: bool = False
    is_on_schedule: bool = False

    @property
    def lane(self) -> Swimlane:
        if self.is_overdue:
            return Swimlane.OVERDUE
        if self.is_on_schedule:
            return Swimlane.ON_SCHEDULE
        return Swimlane.UNSCHEDULED


def _as_day(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def classify(due_date: date | datetime | None, is_done: bool, today: date | datetime) -> SwimlaneFlags:
    """
    Classify a task into a triage lane.

    A done task is on schedule whatever its due date: overdue describes
    unfinished work, not historical lateness.

    Args:
        due_date: Optional due date; time of day is ignored.
        is_done: Whether the task sits in a terminal column.
        today: Reference day for the whole batch.

    Returns:
        SwimlaneFlags with is_overdue / is_on_schedule.
    """
    if due_date is None:
        return SwimlaneFlags()

    if _as_day(due_date) < _as_day(today) and not is_done:
        return SwimlaneFlags(is_overdue=True)

    return SwimlaneFlags(is_on_schedule=True)


def classify_task(task: Task, today: date | datetime) -> Swimlane:
    """Lane for a task on the given day."""
    return classify(task.due_date, task.is_done, today).lane
