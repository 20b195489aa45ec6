"""
Core module - Domain logic, ports and shared constants.

Nothing in here performs I/O; adapters implement the ports.
"""

from .exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ConfigError,
    JiraFlowError,
    PersistenceError,
    RateLimitError,
    ResourceNotFoundError,
    SyncStageError,
    TrackerError,
    TransientError,
)


__all__ = [
    "AccessDeniedError",
    "AuthenticationError",
    "ConfigError",
    "JiraFlowError",
    "PersistenceError",
    "RateLimitError",
    "ResourceNotFoundError",
    "SyncStageError",
    "TrackerError",
    "TransientError",
]
