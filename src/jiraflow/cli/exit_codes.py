"""
Exit codes for the jiraflow CLI.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes; scripts can rely on these staying stable."""

    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    CONNECTION_ERROR = 3
    VALIDATION_ERROR = 4
    SYNC_ERROR = 5
    MOVE_FAILED = 6
    NOT_FOUND = 7
    CANCELLED = 130
