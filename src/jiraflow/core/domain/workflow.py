"""
Workflow Validator - which column moves are legal for which issue kind.

Two adjacency tables, keyed by issue kind. Story-like work follows the
full board with a re-triage escape hatch; defect-like work follows a
shorter path with no escape hatch. Other kinds are unconstrained.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from .enums import Column, IssueKind


C = Column

STORY_TRANSITIONS: dict[Column, frozenset[Column]] = {
    C.READY: frozenset({C.TODO}),
    C.TODO: frozenset({C.READY, C.EXECUTION}),
    C.EXECUTION: frozenset({C.TODO, C.EXECUTED}),
    C.EXECUTED: frozenset({C.EXECUTION, C.TESTING_REVIEW}),
    C.TESTING_REVIEW: frozenset({C.EXECUTED, C.TEST_DONE}),
    C.TEST_DONE: frozenset({C.TESTING_REVIEW, C.VALIDATING}),
    C.VALIDATING: frozenset({C.TEST_DONE, C.RESOLVED}),
    C.RESOLVED: frozenset({C.VALIDATING, C.DONE}),
    C.DONE: frozenset({C.RESOLVED, C.CLOSED}),
    C.CLOSED: frozenset({C.DONE}),
}

# Re-triage targets a story may always move back to.
STORY_ALWAYS_ALLOWED: frozenset[Column] = frozenset({C.READY, C.TODO})

BUG_TRANSITIONS: dict[Column, frozenset[Column]] = {
    C.READY: frozenset({C.TODO}),
    C.TODO: frozenset({C.EXECUTION}),
    C.EXECUTION: frozenset({C.TODO, C.VALIDATING}),
    C.VALIDATING: frozenset({C.EXECUTION, C.TEST_DONE}),
    C.TEST_DONE: frozenset({C.VALIDATING, C.DONE}),
    C.DONE: frozenset({C.CLOSED}),
    C.CLOSED: frozenset(),
}

del C


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a workflow check."""

    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


@dataclass(frozen=True)
class WorkflowRules:
    """An adjacency map plus the targets that are always reachable."""

    transitions: Mapping[Column, frozenset[Column]]
    always_allowed: frozenset[Column] = frozenset()

    def allows(self, current: Column, target: Column) -> bool:
        if target in self.always_allowed:
            return True
        return target in self.transitions.get(current, frozenset())


WORKFLOWS: dict[IssueKind, WorkflowRules] = {
    IssueKind.STORY: WorkflowRules(STORY_TRANSITIONS, STORY_ALWAYS_ALLOWED),
    IssueKind.BUG: WorkflowRules(BUG_TRANSITIONS),
}


def validate(
    kind: IssueKind,
    current: Column | str | None,
    target: Column | str | None,
) -> ValidationResult:
    """
    Check whether a move is legal.

    Args:
        kind: Issue kind of the task being moved.
        current: Column the task is in.
        target: Column the user dropped it on.

    Returns:
        ValidationResult; denied results carry a human-readable reason.
    """
    current_column = Column.from_value(current)
    if current_column is None:
        return ValidationResult(False, f"Invalid column: {current}")
    target_column = Column.from_value(target)
    if target_column is None:
        return ValidationResult(False, f"Invalid column: {target}")

    rules = WORKFLOWS.get(kind)
    if rules is None:
        return ValidationResult(True)

    if rules.allows(current_column, target_column):
        return ValidationResult(True)

    return ValidationResult(
        False,
        f"{kind.display_name} not allowed to move from "
        f"{current_column.value} to {target_column.value}",
    )


def allowed_targets(kind: IssueKind, current: Column) -> list[Column]:
    """Columns reachable from ``current`` in board order."""
    return [c for c in Column if c is not current and validate(kind, current, c).allowed]
