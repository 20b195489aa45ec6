"""
Jira adapter - HTTP client and RemoteTrackerPort implementation.
"""

from .adapter import JiraBoardAdapter
from .client import JiraApiClient, RateLimiter


__all__ = ["JiraApiClient", "JiraBoardAdapter", "RateLimiter"]
