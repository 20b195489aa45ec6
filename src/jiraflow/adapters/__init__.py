"""
Adapters - Concrete implementations of the core ports.
"""

from .config import EnvironmentConfigProvider, FileConfigProvider
from .jira import JiraApiClient, JiraBoardAdapter
from .store import InMemoryTaskStore, SqliteTaskStore
from .vault import ObsidianVault


__all__ = [
    "EnvironmentConfigProvider",
    "FileConfigProvider",
    "InMemoryTaskStore",
    "JiraApiClient",
    "JiraBoardAdapter",
    "ObsidianVault",
    "SqliteTaskStore",
]
