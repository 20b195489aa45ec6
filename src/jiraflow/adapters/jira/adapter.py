"""
Jira Board Adapter - Implements RemoteTrackerPort for Jira Software.

Discovery and issue fetches go through the Agile API (boards, sprints,
backlog); transitions go through the core REST API. Statuses are mapped
into board columns here, so nothing above this layer sees Jira's own
vocabulary.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from ...core.constants import BACKLOG_SPRINT
from ...core.domain.entities import Task, TaskLink
from ...core.domain.enums import Column, IssueKind, Priority, TaskSource
from ...core.domain.status_mapping import StatusMapper
from ...core.exceptions import ResourceNotFoundError, TrackerError
from ...core.ports.config_provider import TrackerConfig
from ...core.ports.issue_tracker import (
    BoardInfo,
    IssueBatch,
    IssueScope,
    RemoteTrackerPort,
    SprintInfo,
    TransitionErrorCode,
    TransitionResult,
)
from .client import JiraApiClient


SPRINT_STATES = ("active", "future", "closed")

BASE_FIELDS = [
    "summary",
    "status",
    "assignee",
    "priority",
    "issuetype",
    "sprint",
    "closedSprints",
    "created",
    "updated",
    "description",
    "parent",
    "issuelinks",
    "duedate",
]

JIRA_DATETIME_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


def jql_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_jira_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    for fmt in JIRA_DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_jira_date(value: Any) -> date | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


class JiraBoardAdapter(RemoteTrackerPort):
    """
    Jira implementation of the RemoteTrackerPort.

    Transitions are matched to a target column by mapping each available
    transition's destination status through the same StatusMapper used
    for sync, then by the transition's own name.
    """

    def __init__(
        self,
        config: TrackerConfig,
        dry_run: bool = False,
        mapper: StatusMapper | None = None,
        client: JiraApiClient | None = None,
    ):
        """
        Initialize the Jira adapter.

        Args:
            config: Tracker configuration
            dry_run: If True, don't make changes
            mapper: Status mapper (defaults to the built-in rules)
            client: Pre-built client, mainly for tests
        """
        self.config = config
        self._dry_run = dry_run
        self.mapper = mapper or StatusMapper()
        self.logger = logging.getLogger("JiraBoardAdapter")

        self._client = client or JiraApiClient(
            base_url=config.url,
            username=config.email,
            password=config.api_token,
            dry_run=dry_run,
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
        )

    # -------------------------------------------------------------------------
    # RemoteTrackerPort Implementation - Properties
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "Jira"

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    def test_connection(self) -> bool:
        return self._client.test_connection()

    def get_current_user(self) -> dict[str, Any]:
        return self._client.get_myself()

    @property
    def fields(self) -> list[str]:
        return BASE_FIELDS + [self.config.story_points_field, self.config.planned_end_field]

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def discover_board(self) -> BoardInfo:
        if self.config.board_id is not None:
            data = self._client.get_board(self.config.board_id)
            return self._parse_board(data)

        if not self.config.project_key:
            raise ResourceNotFoundError("No board id or project key configured")

        boards = self._client.get_boards(self.config.project_key)
        if not boards:
            raise ResourceNotFoundError(
                f"No board found for project {self.config.project_key}",
                issue_key=self.config.project_key,
            )

        scrum = [b for b in boards if (b.get("type") or "").lower() == "scrum"]
        board = self._parse_board((scrum or boards)[0])
        self.logger.info(f"Using board {board.name} ({board.id}, {board.board_type})")
        return board

    def discover_sprint(self, board: BoardInfo) -> SprintInfo | None:
        # Kanban boards reject the sprint endpoint outright
        if board.board_type.lower() != "scrum":
            return None

        for state in SPRINT_STATES:
            sprints = self._client.get_sprints(board.id, state)
            if sprints:
                sprint = sprints[0]
                self.logger.debug(f"Found {state} sprint {sprint.get('name')}")
                return SprintInfo(
                    id=int(sprint["id"]),
                    name=sprint.get("name", ""),
                    state=sprint.get("state", state),
                )
        return None

    @staticmethod
    def _parse_board(data: dict[str, Any]) -> BoardInfo:
        return BoardInfo(
            id=int(data["id"]),
            name=data.get("name", ""),
            board_type=data.get("type", "scrum"),
        )

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    def list_issues(self, scope: IssueScope) -> IssueBatch:
        return self._fetch(scope, since=None)

    def list_changed_issues(self, scope: IssueScope, since: datetime) -> IssueBatch:
        return self._fetch(scope, since=since)

    def _fetch(self, scope: IssueScope, since: datetime | None) -> IssueBatch:
        sprint_jql = self._scope_jql(scope, backlog=False)
        backlog_jql = self._scope_jql(scope, backlog=True)
        if since is not None:
            updated = f'updated >= "{since.strftime("%Y/%m/%d %H:%M")}"'
            sprint_jql = f"{sprint_jql} AND {updated}"
            backlog_jql = f"{backlog_jql} AND {updated}"

        merged: dict[str, Task] = {}
        total = 0

        backlog = self._client.get_backlog_issues(scope.board.id, jql=backlog_jql, fields=self.fields)
        for issue in backlog:
            fields = issue.get("fields") or {}
            if fields.get("sprint") or fields.get("closedSprints"):
                continue
            merged[issue["key"]] = self._parse_issue(issue, BACKLOG_SPRINT)

        # Sprint entries win over backlog entries with the same key
        if scope.sprint is not None:
            sprint_issues = self._client.get_sprint_issues(
                scope.sprint.id, jql=sprint_jql, fields=self.fields
            )
            for issue in sprint_issues:
                merged[issue["key"]] = self._parse_issue(issue, scope.sprint.name)

        if since is None:
            total = len(merged)
        else:
            total = self._client.count(
                f"board/{scope.board.id}/backlog", {"jql": self._scope_jql(scope, backlog=True)}
            )
            if scope.sprint is not None:
                total += self._client.count(
                    f"sprint/{scope.sprint.id}/issue", {"jql": self._scope_jql(scope, backlog=False)}
                )

        self.logger.debug(f"Fetched {len(merged)} issues (scope total {total})")
        return IssueBatch(tasks=list(merged.values()), total=total)

    def _scope_jql(self, scope: IssueScope, backlog: bool) -> str:
        clauses = []
        assignee = scope.assignee or self.config.assignee
        clauses.append(f"assignee = {jql_quote(assignee)}" if assignee else "assignee = currentUser()")
        project = scope.project_key or self.config.project_key
        if backlog and project:
            clauses.append(f"project = {jql_quote(project)}")
        if backlog:
            clauses.append("sprint is EMPTY")
        return " AND ".join(clauses)

    def _parse_issue(self, data: dict[str, Any], sprint_label: str) -> Task:
        """Convert a Jira issue into a board task."""
        fields = data.get("fields") or {}
        status = (fields.get("status") or {}).get("name", "")
        issue_type = (fields.get("issuetype") or {}).get("name", "")
        sprint = fields.get("sprint") or {}

        due = parse_jira_date(fields.get(self.config.planned_end_field)) or parse_jira_date(
            fields.get("duedate")
        )
        points = fields.get(self.config.story_points_field)

        return Task(
            key=data["key"],
            title=fields.get("summary") or "",
            kind=IssueKind.from_string(issue_type),
            column=self.mapper.map(status),
            sprint=sprint.get("name") or sprint_label,
            priority=Priority.from_string((fields.get("priority") or {}).get("name")),
            due_date=due,
            assignee=(fields.get("assignee") or {}).get("displayName"),
            description=fields.get("description") or "",
            links=self._parse_links(fields.get("issuelinks") or []),
            source=TaskSource.REMOTE,
            remote_status=status,
            issue_type=issue_type,
            story_points=float(points) if isinstance(points, (int, float)) else None,
            parent_key=(fields.get("parent") or {}).get("key"),
            updated_at=parse_jira_datetime(fields.get("updated")),
        )

    @staticmethod
    def _parse_links(links: list[dict[str, Any]]) -> list[TaskLink]:
        parsed = []
        for link in links:
            link_type = link.get("type") or {}
            if "outwardIssue" in link:
                other, label = link["outwardIssue"], link_type.get("outward", "")
            elif "inwardIssue" in link:
                other, label = link["inwardIssue"], link_type.get("inward", "")
            else:
                continue
            parsed.append(
                TaskLink(
                    link_type=label or link_type.get("name", ""),
                    target_key=other.get("key", ""),
                    target_title=(other.get("fields") or {}).get("summary", ""),
                )
            )
        return parsed

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def transition_issue(self, issue_key: str, target: Column) -> TransitionResult:
        try:
            transitions = self._client.get_transitions(issue_key)
        except TrackerError as e:
            self.logger.error(f"Failed to get transitions for {issue_key}: {e}")
            return TransitionResult.failed(TransitionErrorCode.REMOTE_ERROR, str(e))

        transition = self._match_transition(transitions, target)
        if transition is None:
            available = tuple(t.get("name", "") for t in transitions)
            return TransitionResult.failed(
                TransitionErrorCode.NO_TRANSITION,
                f"No transition to {target.value} for {issue_key}. "
                f"Available: {', '.join(available) or 'none'}",
                available=available,
            )

        new_status = (transition.get("to") or {}).get("name") or transition.get("name")
        try:
            self._client.transition_issue(issue_key, str(transition["id"]))
        except TrackerError as e:
            if "resolution" in str(e).lower():
                return TransitionResult.failed(TransitionErrorCode.GUIDED_SCREEN_REQUIRED, str(e))
            self.logger.error(f"Failed to transition {issue_key}: {e}")
            return TransitionResult.failed(TransitionErrorCode.REMOTE_ERROR, str(e))

        self.logger.info(f"Transitioned {issue_key} to {new_status}")
        return TransitionResult.ok(new_status)

    def _match_transition(
        self,
        transitions: list[dict[str, Any]],
        target: Column,
    ) -> dict[str, Any] | None:
        for transition in transitions:
            destination = (transition.get("to") or {}).get("name")
            if self.mapper.resolve(destination) is target:
                return transition
        for transition in transitions:
            if self.mapper.resolve(transition.get("name")) is target:
                return transition
        return None
