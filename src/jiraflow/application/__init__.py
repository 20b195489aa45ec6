"""
Application layer - use cases built on the core ports.
"""

from .board import (
    BoardService,
    MoveOutcome,
    MoveStatus,
    ReconciliationOrchestrator,
    SyncResult,
    SyncScheduler,
    TaskCache,
)


__all__ = [
    "BoardService",
    "MoveOutcome",
    "MoveStatus",
    "ReconciliationOrchestrator",
    "SyncResult",
    "SyncScheduler",
    "TaskCache",
]
