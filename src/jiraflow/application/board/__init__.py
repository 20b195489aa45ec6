"""
Board application services - cache, reconciliation and sync.
"""

from .cache import CacheSnapshot, TaskCache
from .reconciliation import (
    EDITABLE_FIELDS,
    EditOutcome,
    MoveOutcome,
    MoveStatus,
    PendingMove,
    ReconciliationOrchestrator,
    work_log_origin,
)
from .scheduler import SyncMode, SyncResult, SyncScheduler, SyncStage, SyncState
from .service import BoardService, generate_local_key


__all__ = [
    "EDITABLE_FIELDS",
    "BoardService",
    "CacheSnapshot",
    "EditOutcome",
    "MoveOutcome",
    "MoveStatus",
    "PendingMove",
    "ReconciliationOrchestrator",
    "SyncMode",
    "SyncResult",
    "SyncScheduler",
    "SyncStage",
    "SyncState",
    "TaskCache",
    "generate_local_key",
    "work_log_origin",
]
