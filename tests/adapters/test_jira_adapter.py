"""
Tests for JiraBoardAdapter with a mocked JiraApiClient.
"""

from datetime import date, datetime
from unittest.mock import Mock

import pytest

from jiraflow.adapters.jira.adapter import JiraBoardAdapter, jql_quote, parse_jira_datetime
from jiraflow.core.domain.enums import Column, IssueKind, Priority
from jiraflow.core.exceptions import ResourceNotFoundError, TrackerError
from jiraflow.core.ports.issue_tracker import (
    BoardInfo,
    IssueScope,
    SprintInfo,
    TransitionErrorCode,
)


BOARD = BoardInfo(id=1, name="Team Board", board_type="scrum")
SPRINT = SprintInfo(id=10, name="Sprint 1", state="active")


def issue(key, status="In Progress 处理中", issue_type="Story", **fields):
    data = {
        "summary": f"Summary {key}",
        "status": {"name": status},
        "issuetype": {"name": issue_type},
        "priority": {"name": "High"},
    }
    data.update(fields)
    return {"key": key, "fields": data}


@pytest.fixture
def client():
    client = Mock()
    client.base_url = "https://jira.example.com"
    client.get_backlog_issues.return_value = []
    client.get_sprint_issues.return_value = []
    return client


@pytest.fixture
def adapter(tracker_config, client):
    return JiraBoardAdapter(tracker_config, client=client)


class TestHelpers:
    """Tests for module helpers."""

    def test_jql_quote(self):
        assert jql_quote('a "b"') == '"a \\"b\\""'

    def test_parse_datetime(self):
        parsed = parse_jira_datetime("2024-05-14T08:00:00.000+0000")
        assert parsed.year == 2024 and parsed.hour == 8
        assert parse_jira_datetime("garbage") is None


class TestDiscovery:
    """Tests for board and sprint discovery."""

    def test_prefers_scrum_board(self, adapter, client):
        client.get_boards.return_value = [
            {"id": 3, "name": "Kanban", "type": "kanban"},
            {"id": 5, "name": "Scrum", "type": "scrum"},
        ]
        board = adapter.discover_board()
        assert board == BoardInfo(id=5, name="Scrum", board_type="scrum")
        client.get_boards.assert_called_once_with("PROJ")

    def test_configured_board_id(self, tracker_config, client):
        tracker_config.board_id = 7
        client.get_board.return_value = {"id": 7, "name": "Mine", "type": "kanban"}
        board = JiraBoardAdapter(tracker_config, client=client).discover_board()
        assert board.id == 7
        client.get_boards.assert_not_called()

    def test_no_board(self, adapter, client):
        client.get_boards.return_value = []
        with pytest.raises(ResourceNotFoundError):
            adapter.discover_board()

    def test_sprint_falls_through_states(self, adapter, client):
        client.get_sprints.side_effect = [[], [{"id": 11, "name": "Sprint 2", "state": "future"}]]
        sprint = adapter.discover_sprint(BOARD)
        assert sprint == SprintInfo(id=11, name="Sprint 2", state="future")
        assert [c.args[1] for c in client.get_sprints.call_args_list] == ["active", "future"]

    def test_kanban_has_no_sprint(self, adapter, client):
        assert adapter.discover_sprint(BoardInfo(3, "Kanban", "kanban")) is None
        client.get_sprints.assert_not_called()

    def test_no_sprints_at_all(self, adapter, client):
        client.get_sprints.return_value = []
        assert adapter.discover_sprint(BOARD) is None


class TestFetch:
    """Tests for list_issues / list_changed_issues."""

    def test_merges_backlog_and_sprint(self, adapter, client):
        client.get_backlog_issues.return_value = [
            issue("P-1", status="Funnel 漏斗"),
            issue("P-2", sprint={"id": 9, "name": "Old"}),
            issue("P-3"),
        ]
        client.get_sprint_issues.return_value = [issue("P-3", status="Done 完成")]

        batch = adapter.list_issues(IssueScope(board=BOARD, sprint=SPRINT))

        tasks = {t.key: t for t in batch.tasks}
        assert set(tasks) == {"P-1", "P-3"}
        assert batch.total == 2
        assert tasks["P-1"].sprint == "Backlog"
        assert tasks["P-1"].column is Column.FUNNEL
        assert tasks["P-3"].sprint == "Sprint 1"
        assert tasks["P-3"].column is Column.DONE

    def test_backlog_only(self, adapter, client):
        client.get_backlog_issues.return_value = [issue("P-1")]
        batch = adapter.list_issues(IssueScope(board=BOARD))
        assert batch.keys == {"P-1"}
        client.get_sprint_issues.assert_not_called()

    def test_scope_jql(self, adapter, client):
        adapter.list_issues(IssueScope(board=BOARD, sprint=SPRINT, assignee="dev@example.com"))

        backlog_jql = client.get_backlog_issues.call_args.kwargs["jql"]
        sprint_jql = client.get_sprint_issues.call_args.kwargs["jql"]
        assert backlog_jql == 'assignee = "dev@example.com" AND project = "PROJ" AND sprint is EMPTY'
        assert sprint_jql == 'assignee = "dev@example.com"'

    def test_default_assignee_is_current_user(self, adapter, client):
        adapter.list_issues(IssueScope(board=BOARD, sprint=SPRINT))
        assert client.get_sprint_issues.call_args.kwargs["jql"] == "assignee = currentUser()"

    def test_changed_issues_use_counts(self, adapter, client):
        client.get_sprint_issues.return_value = [issue("P-3")]
        client.count.side_effect = [4, 6]

        batch = adapter.list_changed_issues(
            IssueScope(board=BOARD, sprint=SPRINT), datetime(2024, 5, 15, 9, 30)
        )

        assert batch.total == 10
        assert batch.keys == {"P-3"}
        assert client.get_sprint_issues.call_args.kwargs["jql"].endswith(
            'AND updated >= "2024/05/15 09:30"'
        )

    def test_parse_issue_fields(self, adapter, client):
        client.get_backlog_issues.return_value = [
            issue(
                "P-1",
                status="Waiting 等待",
                issue_type="Bug",
                duedate="2024-05-20",
                customfield_10329="2024-05-18",
                customfield_10016=5,
                assignee={"displayName": "Dev"},
                parent={"key": "P-0"},
                issuelinks=[
                    {
                        "type": {"name": "Blocks", "outward": "blocks", "inward": "is blocked by"},
                        "outwardIssue": {"key": "P-9", "fields": {"summary": "Other"}},
                    }
                ],
                updated="2024-05-14T08:00:00.000+0000",
            )
        ]

        task = adapter.list_issues(IssueScope(board=BOARD)).tasks[0]

        assert task.kind is IssueKind.BUG
        assert task.column is Column.TODO
        assert task.remote_status == "Waiting 等待"
        assert task.priority is Priority.HIGH
        assert task.due_date == date(2024, 5, 18)
        assert task.story_points == 5.0
        assert task.assignee == "Dev"
        assert task.parent_key == "P-0"
        assert task.links[0].link_type == "blocks"
        assert task.links[0].target_key == "P-9"


class TestTransitions:
    """Tests for transition_issue."""

    TRANSITIONS = [
        {"id": "21", "name": "Start", "to": {"name": "In Progress 处理中"}},
        {"id": "31", "name": "Build", "to": {"name": "Build Done 构建完成"}},
        {"id": "41", "name": "Resolve", "to": {"name": "Resolved 已解决"}},
    ]

    def test_matches_by_destination(self, adapter, client):
        client.get_transitions.return_value = self.TRANSITIONS
        result = adapter.transition_issue("P-1", Column.EXECUTED)
        assert result.success
        assert result.new_remote_status == "Build Done 构建完成"
        client.transition_issue.assert_called_once_with("P-1", "31")

    def test_matches_by_name(self, adapter, client):
        client.get_transitions.return_value = [{"id": "51", "name": "Closed"}]
        assert adapter.transition_issue("P-1", Column.CLOSED).new_remote_status == "Closed"

    def test_no_transition(self, adapter, client):
        client.get_transitions.return_value = self.TRANSITIONS
        result = adapter.transition_issue("P-1", Column.CLOSED)
        assert result.error_code is TransitionErrorCode.NO_TRANSITION
        assert result.available == ("Start", "Build", "Resolve")
        client.transition_issue.assert_not_called()

    def test_resolution_required(self, adapter, client):
        client.get_transitions.return_value = self.TRANSITIONS
        client.transition_issue.side_effect = TrackerError("API error 400: resolution: required")
        result = adapter.transition_issue("P-1", Column.RESOLVED)
        assert result.error_code is TransitionErrorCode.GUIDED_SCREEN_REQUIRED

    def test_remote_error(self, adapter, client):
        client.get_transitions.side_effect = TrackerError("API error 500: boom")
        result = adapter.transition_issue("P-1", Column.EXECUTED)
        assert result.error_code is TransitionErrorCode.REMOTE_ERROR
        assert not result.success
