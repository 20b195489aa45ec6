"""
Task store adapters.
"""

from .memory import InMemoryTaskStore
from .sqlite import DEFAULT_DB_PATH, SqliteTaskStore


__all__ = ["DEFAULT_DB_PATH", "InMemoryTaskStore", "SqliteTaskStore"]
