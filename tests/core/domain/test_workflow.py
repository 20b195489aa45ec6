"""
Tests for workflow validation.
"""

import pytest

from jiraflow.core.domain.enums import Column, IssueKind
from jiraflow.core.domain.workflow import allowed_targets, validate


class TestStoryWorkflow:
    """Tests for story-like issues."""

    def test_forward_one_stage(self):
        """Test a single step forward."""
        assert validate(IssueKind.STORY, Column.EXECUTION, Column.EXECUTED).allowed

    def test_back_one_stage(self):
        """Test a single step back."""
        assert validate(IssueKind.STORY, Column.TEST_DONE, Column.TESTING_REVIEW).allowed

    def test_skip_denied_with_reason(self):
        """Test that skipping stages is denied with a reason naming both columns."""
        result = validate(IssueKind.STORY, Column.EXECUTION, Column.DONE)
        assert not result.allowed
        assert result.reason == "Story not allowed to move from EXECUTION to DONE"

    @pytest.mark.parametrize("current", list(Column))
    def test_retriage_always_allowed(self, current):
        """Test that READY and TO DO are reachable from anywhere."""
        assert validate(IssueKind.STORY, current, Column.READY).allowed
        assert validate(IssueKind.STORY, current, Column.TODO).allowed

    def test_funnel_only_reaches_retriage(self):
        """Test that FUNNEL has no forward edge except the escape hatch."""
        assert validate(IssueKind.STORY, Column.FUNNEL, Column.READY).allowed
        assert not validate(IssueKind.STORY, Column.FUNNEL, Column.DEFINING).allowed

    def test_allowed_targets(self):
        """Test allowed_targets lists reachable columns in board order."""
        assert allowed_targets(IssueKind.STORY, Column.EXECUTION) == [
            Column.READY,
            Column.TODO,
            Column.EXECUTED,
        ]


class TestBugWorkflow:
    """Tests for defect-like issues."""

    def test_happy_path(self):
        """Test the whole bug path."""
        path = [
            Column.READY,
            Column.TODO,
            Column.EXECUTION,
            Column.VALIDATING,
            Column.TEST_DONE,
            Column.DONE,
            Column.CLOSED,
        ]
        for current, target in zip(path, path[1:]):
            assert validate(IssueKind.BUG, current, target).allowed, (current, target)

    def test_no_retriage_escape(self):
        """Test that bugs cannot jump back to READY."""
        result = validate(IssueKind.BUG, Column.VALIDATING, Column.READY)
        assert not result.allowed
        assert result.reason == "Bug not allowed to move from VALIDATING to READY"

    def test_bug_skips_executed(self):
        """Test that bugs go from EXECUTION straight to VALIDATING."""
        assert not validate(IssueKind.BUG, Column.EXECUTION, Column.EXECUTED).allowed

    def test_closed_is_final(self):
        """Test that nothing leaves CLOSED."""
        assert allowed_targets(IssueKind.BUG, Column.CLOSED) == []


class TestOtherKinds:
    """Tests for unconstrained issue kinds."""

    def test_anything_goes(self):
        """Test that other kinds are never constrained."""
        assert validate(IssueKind.OTHER, Column.FUNNEL, Column.CLOSED).allowed


class TestInvalidColumns:
    """Tests for columns outside the board."""

    def test_unknown_target(self):
        """Test that an unknown target is a hard failure."""
        result = validate(IssueKind.OTHER, Column.TODO, "LIMBO")
        assert not result.allowed
        assert result.reason == "Invalid column: LIMBO"

    def test_unknown_current(self):
        """Test that an unknown current column is a hard failure."""
        assert not validate(IssueKind.STORY, "NOWHERE", Column.TODO).allowed

    def test_labels_accepted(self):
        """Test that board labels work as well as enum members."""
        assert validate(IssueKind.STORY, "TO DO", "EXECUTION").allowed
