"""
jiraflow - Keep a local Kanban board in agreement with Jira.

The board is offline-capable: every move is applied locally first and
confirmed (or rolled back) against Jira, and the whole board is refreshed
periodically from the remote tracker.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
