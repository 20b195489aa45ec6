"""
Domain layer - entities, enums and the pure board rules.
"""

from .entities import SyncCursor, Task, TaskLink, WorkLogEntry
from .enums import Column, IssueKind, Priority, Swimlane, TaskSource, WorkLogOrigin
from .status_mapping import MappingRule, StatusMapper, map_status
from .swimlanes import SwimlaneFlags, classify, classify_task
from .workflow import ValidationResult, allowed_targets, validate


__all__ = [
    "Column",
    "IssueKind",
    "MappingRule",
    "Priority",
    "StatusMapper",
    "Swimlane",
    "SwimlaneFlags",
    "SyncCursor",
    "Task",
    "TaskLink",
    "TaskSource",
    "ValidationResult",
    "WorkLogEntry",
    "WorkLogOrigin",
    "allowed_targets",
    "classify",
    "classify_task",
    "map_status",
    "validate",
]
