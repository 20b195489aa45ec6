"""
Tests for domain entities and enums.
"""

from datetime import date, datetime

from jiraflow.core.domain.entities import SyncCursor, Task, TaskLink
from jiraflow.core.domain.enums import Column, IssueKind, Priority, TaskSource


class TestColumn:
    """Tests for the Column enum."""

    def test_from_value(self):
        """Test lookup by label and by member name."""
        assert Column.from_value("TESTING & REVIEW") is Column.TESTING_REVIEW
        assert Column.from_value("testing_review") is Column.TESTING_REVIEW
        assert Column.from_value("to do") is Column.TODO
        assert Column.from_value("LIMBO") is None

    def test_order(self):
        """Test board order."""
        assert Column.FUNNEL.order == 0
        assert Column.CLOSED.order == 11
        assert len(Column.ordered()) == 12

    def test_terminal(self):
        """Test the terminal set."""
        assert {c for c in Column if c.is_terminal} == {Column.DONE, Column.CLOSED}


class TestIssueKind:
    """Tests for IssueKind.from_string."""

    def test_kinds(self):
        """Test mapping of common Jira issue types."""
        assert IssueKind.from_string("Bug") is IssueKind.BUG
        assert IssueKind.from_string("Story") is IssueKind.STORY
        assert IssueKind.from_string("Sub-task") is IssueKind.STORY
        assert IssueKind.from_string("Epic") is IssueKind.OTHER
        assert IssueKind.from_string(None) is IssueKind.OTHER


class TestPriority:
    """Tests for Priority.from_string."""

    def test_priorities(self):
        assert Priority.from_string("Highest") is Priority.HIGHEST
        assert Priority.from_string("High") is Priority.HIGH
        assert Priority.from_string("Lowest") is Priority.LOWEST
        assert Priority.from_string("whatever") is Priority.MEDIUM


class TestTask:
    """Tests for the Task entity."""

    def test_unknown_column_coerced(self):
        """Test that an unknown column is coerced to TO DO."""
        task = Task(key="S-1", title="x", column="SOMEWHERE")
        assert task.column is Column.TODO

    def test_due_date_time_stripped(self):
        """Test that datetimes and ISO strings become dates."""
        assert Task(key="S-1", title="x", due_date=datetime(2024, 5, 1, 13, 0)).due_date == date(2024, 5, 1)
        assert Task(key="S-1", title="x", due_date="2024-05-01T10:00:00").due_date == date(2024, 5, 1)

    def test_is_done(self):
        """Test the derived completion flag."""
        assert Task(key="S-1", title="x", column=Column.CLOSED).is_done
        assert not Task(key="S-1", title="x", column=Column.RESOLVED).is_done

    def test_is_local(self):
        """Test local detection goes by source, never by key."""
        assert Task(key="ME-123456", title="x", source=TaskSource.LOCAL).is_local
        assert not Task(key="ME-42", title="x", source=TaskSource.REMOTE).is_local
        assert Task(key="X-1", title="x", source=TaskSource.LOCAL).is_local
        assert not Task(key="PROJ-1", title="x").is_local

    def test_dict_round_trip(self):
        """Test to_dict / from_dict keep every field."""
        task = Task(
            key="PROJ-7",
            title="Ship it",
            kind=IssueKind.BUG,
            column=Column.VALIDATING,
            sprint="Sprint 3",
            priority=Priority.HIGH,
            due_date=date(2024, 5, 20),
            links=[TaskLink("blocks", "PROJ-8", "Other")],
            remote_status="Validating 验证",
            story_points=3.0,
            updated_at=datetime(2024, 5, 14, 8, 0),
        )
        assert Task.from_dict(task.to_dict()) == task

    def test_archived_round_trip(self):
        task = Task(key="ME-000001", title="Old chore", source=TaskSource.LOCAL, archived=True)
        restored = Task.from_dict(task.to_dict())
        assert restored.archived
        assert restored.is_local
        assert not Task.from_dict({"key": "S-1"}).archived

    def test_with_column_is_a_copy(self):
        """Test that with_column leaves the original untouched."""
        task = Task(key="S-1", title="x", column=Column.TODO)
        moved = task.with_column(Column.EXECUTION)
        assert task.column is Column.TODO
        assert moved.column is Column.EXECUTION


class TestSyncCursor:
    """Tests for SyncCursor."""

    def test_staleness(self):
        cursor = SyncCursor(synced_at=datetime(2024, 5, 14, 9, 0), item_count=3)
        assert not cursor.is_stale(datetime(2024, 5, 14, 20, 0), 24)
        assert cursor.is_stale(datetime(2024, 5, 15, 9, 1), 24)
