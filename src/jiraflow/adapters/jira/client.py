"""
Jira API Client - Low-level HTTP client for the Jira REST and Agile APIs.

This handles the raw HTTP communication with Jira.
The JiraBoardAdapter uses this to implement the RemoteTrackerPort.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Iterator
from typing import Any

import requests

from ...core.constants import DEFAULT_PAGE_SIZE, DEFAULT_REMOTE_TIMEOUT
from ...core.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    RateLimitError,
    ResourceNotFoundError,
    TrackerError,
    TransientError,
)


# HTTP status codes that should trigger retry
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RateLimiter:
    """
    Token bucket rate limiter shared by every request of one client.

    Tokens refill at ``requests_per_second`` up to ``burst_size``; a
    request that finds the bucket empty sleeps until a token is due.
    Thread-safe, since sync stages run in worker threads.
    """

    def __init__(self, requests_per_second: float = 5.0, burst_size: int = 10):
        self.requests_per_second = requests_per_second
        self.burst_size = max(1, burst_size)

        self._tokens = float(self.burst_size)
        self._last_update = time.monotonic()
        self._lock = threading.Lock()

        self.logger = logging.getLogger("RateLimiter")

    def acquire(self) -> None:
        """Take a token, blocking until one is available."""
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait_time = (1.0 - self._tokens) / self.requests_per_second

            if wait_time > 0.01:
                self.logger.debug(f"Rate limit: waiting {wait_time:.3f}s for token")
            time.sleep(wait_time)

    def _refill(self) -> None:
        """Must be called with lock held."""
        now = time.monotonic()
        elapsed = now - self._last_update
        self._last_update = now
        self._tokens = min(self.burst_size, self._tokens + elapsed * self.requests_per_second)

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def update_from_response(self, response: requests.Response) -> None:
        """Halve the rate when the server answers 429."""
        if response.status_code != 429:
            return
        with self._lock:
            old_rate = self.requests_per_second
            self.requests_per_second = max(0.5, self.requests_per_second * 0.5)
        self.logger.warning(
            f"Rate limited by server, reducing rate from "
            f"{old_rate:.1f} to {self.requests_per_second:.1f} req/s"
        )


class JiraApiClient:
    """
    Low-level Jira client.

    Handles authentication, request/response, rate limiting, and error handling.

    Features:
    - Automatic retry with exponential backoff for transient failures
    - Proactive rate limiting using a token bucket
    - Pagination helpers for the Agile board, sprint and backlog endpoints
    """

    API_VERSION = "2"
    AGILE_VERSION = "1.0"

    # Default retry configuration
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_INITIAL_DELAY = 1.0  # seconds
    DEFAULT_MAX_DELAY = 30.0  # seconds
    DEFAULT_BACKOFF_FACTOR = 2.0
    DEFAULT_JITTER = 0.1  # 10% jitter

    DEFAULT_REQUESTS_PER_SECOND = 5.0
    DEFAULT_BURST_SIZE = 10

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        dry_run: bool = False,
        timeout: float = DEFAULT_REMOTE_TIMEOUT,
        verify_ssl: bool = True,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        jitter: float = DEFAULT_JITTER,
        requests_per_second: float | None = DEFAULT_REQUESTS_PER_SECOND,
        burst_size: int = DEFAULT_BURST_SIZE,
    ):
        """
        Initialize the Jira client.

        Args:
            base_url: Jira instance URL (e.g., https://jira.example.com)
            username: User name or email for basic authentication
            password: Password or API token
            dry_run: If True, don't make write operations
            timeout: Per-request socket timeout in seconds
            verify_ssl: Verify TLS certificates (self-hosted Jira often can't)
            max_retries: Maximum number of retry attempts for transient failures
            initial_delay: Initial delay between retries in seconds
            max_delay: Maximum delay between retries in seconds
            backoff_factor: Multiplier for exponential backoff
            jitter: Random jitter factor (0.1 = 10% variation)
            requests_per_second: Maximum request rate (None to disable rate limiting)
            burst_size: Maximum burst capacity for rate limiting
        """
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/rest/api/{self.API_VERSION}"
        self.agile_url = f"{self.base_url}/rest/agile/{self.AGILE_VERSION}"
        self.dry_run = dry_run
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.logger = logging.getLogger("JiraApiClient")

        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

        self._rate_limiter: RateLimiter | None = None
        if requests_per_second is not None and requests_per_second > 0:
            self._rate_limiter = RateLimiter(
                requests_per_second=requests_per_second,
                burst_size=burst_size,
            )

        self._session = requests.Session()
        self._session.auth = (username, password)
        self._session.verify = verify_ssl
        self._session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

        self._current_user: dict[str, Any] | None = None

    # -------------------------------------------------------------------------
    # Core Request Methods
    # -------------------------------------------------------------------------

    def request(
        self,
        method: str,
        endpoint: str,
        agile: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Make an authenticated request with rate limiting and retry logic.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            endpoint: Endpoint relative to the API root (e.g., 'issue/PROJ-123')
            agile: Use the Agile API root instead of the core REST API
            **kwargs: Additional arguments for requests

        Returns:
            JSON response as dict

        Raises:
            AuthenticationError: On 401 (not retried)
            AccessDeniedError: On 403 (not retried)
            ResourceNotFoundError: On 404 (not retried)
            RateLimitError: On 429 after all retries exhausted
            TransientError: On 5xx after all retries exhausted
            TrackerError: On other API errors and connection failures
        """
        root = self.agile_url if agile else self.api_url
        url = f"{root}/{endpoint}"
        kwargs.setdefault("timeout", self.timeout)
        attempts = self.max_retries + 1
        last_exception: Exception | None = None

        for attempt in range(attempts):
            if self._rate_limiter is not None:
                self._rate_limiter.acquire()

            try:
                response = self._session.request(method, url, **kwargs)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_exception = e
                kind = "Timeout" if isinstance(e, requests.exceptions.Timeout) else "Connection error"
                if attempt < self.max_retries:
                    delay = self._calculate_delay(attempt)
                    self.logger.warning(
                        f"{kind} on {method} {endpoint}, "
                        f"attempt {attempt + 1}/{attempts}, retrying in {delay:.2f}s: {e}"
                    )
                    time.sleep(delay)
                    continue
                raise TrackerError(f"{kind} after {attempts} attempts: {e}", cause=e) from e

            if self._rate_limiter is not None:
                self._rate_limiter.update_from_response(response)

            if response.status_code in RETRYABLE_STATUS_CODES:
                retry_after = self._get_retry_after(response)
                if attempt < self.max_retries:
                    delay = self._calculate_delay(attempt, retry_after)
                    self.logger.warning(
                        f"Retryable error {response.status_code} on {method} {endpoint}, "
                        f"attempt {attempt + 1}/{attempts}, retrying in {delay:.2f}s"
                    )
                    time.sleep(delay)
                    continue

                if response.status_code == 429:
                    raise RateLimitError(
                        f"Rate limit exceeded for {endpoint} after {attempts} attempts",
                        retry_after=retry_after,
                        issue_key=endpoint,
                    )
                raise TransientError(
                    f"Server error {response.status_code} for {endpoint} after {attempts} attempts",
                    issue_key=endpoint,
                )

            return self._handle_response(response, endpoint)

        raise TrackerError(f"Request failed after {attempts} attempts", cause=last_exception)

    def _calculate_delay(self, attempt: int, retry_after: int | None = None) -> float:
        """Exponential backoff with jitter, honouring Retry-After when given."""
        if retry_after is not None:
            base_delay = min(retry_after, self.max_delay)
        else:
            base_delay = min(self.initial_delay * (self.backoff_factor**attempt), self.max_delay)

        jitter_range = base_delay * self.jitter
        return max(0.0, base_delay + random.uniform(-jitter_range, jitter_range))

    def _get_retry_after(self, response: requests.Response) -> int | None:
        retry_after = response.headers.get("Retry-After")
        if retry_after is None:
            return None
        try:
            return int(retry_after)
        except ValueError:
            # HTTP-date form is not worth parsing here
            return None

    def get(self, endpoint: str, agile: bool = False, **kwargs: Any) -> dict[str, Any]:
        return self.request("GET", endpoint, agile=agile, **kwargs)

    def post(
        self,
        endpoint: str,
        json: dict[str, Any] | None = None,
        agile: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Perform a POST request.

        Respects dry_run mode - no changes made in dry-run.
        """
        if self.dry_run:
            self.logger.info(f"[DRY-RUN] Would POST to {endpoint}")
            return {}
        return self.request("POST", endpoint, agile=agile, json=json, **kwargs)

    # -------------------------------------------------------------------------
    # Response Handling
    # -------------------------------------------------------------------------

    def _handle_response(self, response: requests.Response, endpoint: str) -> dict[str, Any]:
        """
        Convert a response into JSON or a typed exception.

        Raises:
            AuthenticationError: On 401 responses.
            AccessDeniedError: On 403 responses.
            ResourceNotFoundError: On 404 responses.
            TrackerError: On other error responses.
        """
        if response.ok:
            if response.text:
                return response.json()
            return {}

        status = response.status_code

        if status == 401:
            raise AuthenticationError(
                "Authentication failed. Check JIRA_EMAIL and JIRA_API_TOKEN."
            )
        if status == 403:
            raise AccessDeniedError(f"Permission denied for {endpoint}", issue_key=endpoint)
        if status == 404:
            raise ResourceNotFoundError(f"Not found: {endpoint}", issue_key=endpoint)

        raise TrackerError(
            f"API error {status}: {self._error_text(response)}",
            issue_key=endpoint,
        )

    @staticmethod
    def _error_text(response: requests.Response) -> str:
        """Flatten Jira's errorMessages / errors body into one line."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:500] if response.text else ""
        if not isinstance(body, dict):
            return str(body)[:500]

        parts = [str(message) for message in body.get("errorMessages") or []]
        parts.extend(f"{field}: {message}" for field, message in (body.get("errors") or {}).items())
        return "; ".join(parts) if parts else response.text[:500]

    # -------------------------------------------------------------------------
    # Pagination
    # -------------------------------------------------------------------------

    def paginate(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        items_key: str = "issues",
        agile: bool = True,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Iterator[dict[str, Any]]:
        """
        Yield every item of a startAt/maxResults paginated endpoint.

        Stops on an empty page, on ``isLast``, or once ``total`` is reached.
        """
        start_at = 0
        while True:
            page_params = dict(params or {}, startAt=start_at, maxResults=page_size)
            data = self.get(endpoint, agile=agile, params=page_params)
            items = data.get(items_key) or []
            yield from items

            start_at += len(items)
            total = data.get("total")
            if not items or data.get("isLast") or (total is not None and start_at >= total):
                return

    def count(self, endpoint: str, params: dict[str, Any] | None = None, agile: bool = True) -> int:
        """Total size of a paginated endpoint without fetching its items."""
        data = self.get(endpoint, agile=agile, params=dict(params or {}, startAt=0, maxResults=0))
        return int(data.get("total") or 0)

    # -------------------------------------------------------------------------
    # Agile endpoints
    # -------------------------------------------------------------------------

    def get_boards(self, project_key: str) -> list[dict[str, Any]]:
        return list(
            self.paginate("board", {"projectKeyOrId": project_key}, items_key="values")
        )

    def get_board(self, board_id: int) -> dict[str, Any]:
        return self.get(f"board/{board_id}", agile=True)

    def get_sprints(self, board_id: int, state: str) -> list[dict[str, Any]]:
        return list(
            self.paginate(f"board/{board_id}/sprint", {"state": state}, items_key="values")
        )

    def get_sprint_issues(
        self,
        sprint_id: int,
        jql: str | None = None,
        fields: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        return list(self.paginate(f"sprint/{sprint_id}/issue", self._issue_params(jql, fields)))

    def get_backlog_issues(
        self,
        board_id: int,
        jql: str | None = None,
        fields: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        return list(self.paginate(f"board/{board_id}/backlog", self._issue_params(jql, fields)))

    @staticmethod
    def _issue_params(jql: str | None, fields: list[str] | None) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if jql:
            params["jql"] = jql
        if fields:
            params["fields"] = ",".join(fields)
        return params

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    def get_transitions(self, issue_key: str) -> list[dict[str, Any]]:
        data = self.get(f"issue/{issue_key}/transitions")
        return data.get("transitions") or []

    def transition_issue(
        self,
        issue_key: str,
        transition_id: str,
        fields: dict[str, Any] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"transition": {"id": transition_id}}
        if fields:
            payload["fields"] = fields
        self.post(f"issue/{issue_key}/transitions", json=payload)

    # -------------------------------------------------------------------------
    # Convenience Methods
    # -------------------------------------------------------------------------

    def get_myself(self) -> dict[str, Any]:
        """Get the authenticated user, cached after the first call."""
        if self._current_user is None:
            self._current_user = self.get("myself")
        return self._current_user

    def test_connection(self) -> bool:
        try:
            self.get_myself()
            return True
        except TrackerError:
            return False

    @property
    def is_connected(self) -> bool:
        return self._current_user is not None

    @property
    def rate_limiter(self) -> RateLimiter | None:
        return self._rate_limiter

    def close(self) -> None:
        self._session.close()
