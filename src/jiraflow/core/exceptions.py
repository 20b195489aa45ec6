"""
Exception hierarchy for jiraflow.

Adapters raise these typed exceptions; the application layer turns the
expected ones into structured outcomes instead of letting them escape.
"""

from __future__ import annotations


class JiraFlowError(Exception):
    """Base exception for all jiraflow errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


# -----------------------------------------------------------------------------
# Remote tracker
# -----------------------------------------------------------------------------


class TrackerError(JiraFlowError):
    """Base exception for remote tracker errors."""

    def __init__(
        self,
        message: str,
        issue_key: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.issue_key = issue_key


class AuthenticationError(TrackerError):
    """Authentication failed (HTTP 401)."""


class AccessDeniedError(TrackerError):
    """Insufficient permissions (HTTP 403)."""


class ResourceNotFoundError(TrackerError):
    """Issue, board or sprint not found (HTTP 404)."""


class RateLimitError(TrackerError):
    """Rate limit exceeded (HTTP 429)."""

    def __init__(
        self,
        message: str,
        retry_after: int | None = None,
        issue_key: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, issue_key, cause)
        self.retry_after = retry_after


class TransientError(TrackerError):
    """Transient server error (5xx) that may succeed on retry."""


# -----------------------------------------------------------------------------
# Local
# -----------------------------------------------------------------------------


class PersistenceError(JiraFlowError):
    """The local task store could not complete a read or write."""


class ConfigError(JiraFlowError):
    """Configuration is missing or malformed."""


class SyncStageError(JiraFlowError):
    """A stage of a board sync failed."""

    def __init__(self, stage: str, message: str, cause: Exception | None = None):
        super().__init__(message, cause)
        self.stage = stage
