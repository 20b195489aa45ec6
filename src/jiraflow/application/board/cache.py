"""
Task Cache - in-memory board state with derived indices.

The cache is the single owned state object shared by the reconciliation
orchestrator and the sync scheduler. Individual mutations are synchronous
and therefore atomic on the event loop; multi-step operations (a move, a
sync) serialize on ``cache.lock``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from ...core.domain.entities import Task
from ...core.domain.enums import Column, Swimlane
from ...core.domain.swimlanes import classify_task


@dataclass(frozen=True)
class CacheSnapshot:
    """
    Copies of some tasks taken before a mutation.

    ``absent`` holds keys that were snapshotted but not present, so a
    restore removes them again.
    """

    tasks: dict[str, Task] = field(default_factory=dict)
    absent: frozenset[str] = frozenset()


class TaskCache:
    """
    In-memory collection of tasks.

    Indices by column and by sprint are maintained on every write and
    skip archived tasks; the swimlane view depends on the reference day
    and is derived on read.
    """

    def __init__(self, tasks: Iterable[Task] | None = None):
        self._tasks: dict[str, Task] = {}
        self._by_column: dict[Column, set[str]] = defaultdict(set)
        self._by_sprint: dict[str, set[str]] = defaultdict(set)
        self.lock = asyncio.Lock()
        self.logger = logging.getLogger("TaskCache")

        if tasks:
            self.replace_all(tasks)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def get(self, key: str) -> Task | None:
        """Get a copy of a task, or None."""
        task = self._tasks.get(key)
        return task.copy() if task is not None else None

    def keys(self) -> set[str]:
        return set(self._tasks)

    def tasks(self) -> list[Task]:
        """All tasks in board order (column, then key)."""
        return sorted(
            (task.copy() for task in self._tasks.values()),
            key=lambda t: (t.column.order, t.key),
        )

    def by_column(self, column: Column) -> list[Task]:
        return self._collect(self._by_column.get(column, ()))

    def by_sprint(self, sprint: str) -> list[Task]:
        return self._collect(self._by_sprint.get(sprint, ()))

    def sprints(self) -> list[str]:
        return sorted(name for name, keys in self._by_sprint.items() if keys)

    def on_board(self) -> list[Task]:
        """Tasks shown on the board, i.e. everything not archived."""
        return [task for task in self.tasks() if not task.archived]

    def archived(self) -> list[Task]:
        return [task for task in self.tasks() if task.archived]

    def by_swimlane(self, today: date) -> dict[Swimlane, list[Task]]:
        """Group tasks by lane using one reference day for the whole batch."""
        lanes: dict[Swimlane, list[Task]] = {lane: [] for lane in Swimlane}
        for task in self.on_board():
            lanes[classify_task(task, today)].append(task)
        return lanes

    def grid(
        self,
        today: date,
        sprint: str | None = None,
    ) -> dict[Swimlane, dict[Column, list[Task]]]:
        """
        Board view: swimlane rows by column cells.

        Args:
            today: Reference day for swimlane classification.
            sprint: Restrict to one sprint label, or None for every task.
        """
        rows: dict[Swimlane, dict[Column, list[Task]]] = {
            lane: {column: [] for column in Column} for lane in Swimlane
        }
        tasks = self.by_sprint(sprint) if sprint is not None else self.on_board()
        for task in tasks:
            rows[classify_task(task, today)][task.column].append(task)
        return rows

    def _collect(self, keys: Iterable[str]) -> list[Task]:
        return sorted(
            (self._tasks[key].copy() for key in keys if key in self._tasks),
            key=lambda t: (t.column.order, t.key),
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def put(self, task: Task) -> None:
        """Insert or replace a single task."""
        self._unindex(task.key)
        stored = task.copy()
        self._tasks[stored.key] = stored
        self._index(stored)

    def set_column(self, key: str, column: Column) -> Task:
        """
        Move a task to another column.

        Returns:
            The task as it was before the move.

        Raises:
            KeyError: If the task is not cached.
        """
        previous = self._tasks[key]
        self.put(previous.with_column(column))
        return previous.copy()

    def upsert_many(self, tasks: Iterable[Task]) -> int:
        count = 0
        for task in tasks:
            self.put(task)
            count += 1
        return count

    def remove(self, keys: Iterable[str]) -> int:
        removed = 0
        for key in keys:
            if key in self._tasks:
                self._unindex(key)
                del self._tasks[key]
                removed += 1
        if removed:
            return removed

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Bulk replace: the cache afterwards holds exactly ``tasks``."""
        self._tasks.clear()
        self._by_column.clear()
        self._by_sprint.clear()
        for task in tasks:
            stored = task.copy()
            self._tasks[stored.key] = stored
            self._index(stored)
        self.logger.debug(f"Cache replaced with {len(self._tasks)} tasks")

    # -------------------------------------------------------------------------
    # Snapshot / rollback
    # -------------------------------------------------------------------------

    def snapshot(self, keys: Iterable[str] | None = None) -> CacheSnapshot:
        """Copy the given tasks (or every task) for a later restore."""
        wanted = list(self._tasks) if keys is None else list(keys)
        present = {key: self._tasks[key].copy() for key in wanted if key in self._tasks}
        absent = frozenset(key for key in wanted if key not in self._tasks)
        return CacheSnapshot(tasks=present, absent=absent)

    def restore(self, snapshot: CacheSnapshot) -> None:
        """Put snapshotted tasks back exactly as they were."""
        for task in snapshot.tasks.values():
            self.put(task)
        self.remove(snapshot.absent)

    # -------------------------------------------------------------------------
    # Indexing
    # -------------------------------------------------------------------------

    def _index(self, task: Task) -> None:
        if task.archived:
            return
        self._by_column[task.column].add(task.key)
        self._by_sprint[task.sprint].add(task.key)

    def _unindex(self, key: str) -> None:
        task = self._tasks.get(key)
        if task is None:
            return
        self._by_column[task.column].discard(key)
        self._by_sprint[task.sprint].discard(key)
