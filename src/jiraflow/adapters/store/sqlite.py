"""
SQLite task store.

One file holds tasks, work logs and settings. Work log uniqueness is a
table constraint, so a same-day repeat is rejected by the database
itself rather than filtered by the caller.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from ...core.domain.entities import Task, TaskLink, WorkLogEntry
from ...core.domain.enums import Column, IssueKind, Priority, TaskSource, WorkLogOrigin
from ...core.exceptions import PersistenceError
from ...core.ports.task_store import TaskStorePort, WorkLogResult


DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "jiraflow" / "jiraflow.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS t_tasks (
    key TEXT PRIMARY KEY,
    summary TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'other',
    issue_type TEXT DEFAULT '',
    status TEXT DEFAULT '',
    mapped_column TEXT NOT NULL,
    sprint TEXT DEFAULT 'Backlog',
    priority TEXT DEFAULT 'Medium',
    due_date TEXT,
    assignee TEXT,
    description TEXT DEFAULT '',
    links TEXT DEFAULT '[]',
    source TEXT NOT NULL DEFAULT 'JIRA',
    story_points REAL,
    parent_key TEXT,
    updated_at TEXT,
    archived INTEGER NOT NULL DEFAULT 0,
    synced_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_column ON t_tasks(mapped_column);

CREATE TABLE IF NOT EXISTS t_work_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_key TEXT NOT NULL,
    action TEXT NOT NULL,
    log_date TEXT NOT NULL,
    comment TEXT DEFAULT '',
    created_at TEXT NOT NULL,
    UNIQUE (task_key, log_date)
);
CREATE INDEX IF NOT EXISTS idx_work_logs_date ON t_work_logs(log_date);

CREATE TABLE IF NOT EXISTS t_settings (
    s_key TEXT PRIMARY KEY,
    s_value TEXT NOT NULL
);
"""

# Columns added to t_tasks after its first schema; older files get them on open.
ADDED_TASK_COLUMNS = {"archived": "INTEGER NOT NULL DEFAULT 0"}

TASK_COLUMNS = (
    "key, summary, kind, issue_type, status, mapped_column, sprint, priority, due_date, "
    "assignee, description, links, source, story_points, parent_key, updated_at, archived, synced_at"
)


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection usable from the worker threads asyncio.to_thread uses."""
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SqliteTaskStore(TaskStorePort):
    """SQLite-backed TaskStorePort."""

    def __init__(self, db_path: str | Path | None = None):
        """
        Open (and if needed create) the database.

        Args:
            db_path: Database file, or ':memory:'. Defaults to
                ~/.local/share/jiraflow/jiraflow.db.
        """
        path = str(db_path or DEFAULT_DB_PATH)
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = path
        self.logger = logging.getLogger("SqliteTaskStore")

        self._lock = threading.RLock()
        try:
            self._conn = _connect(path)
            with self._conn:
                self._conn.executescript(SCHEMA)
                self._migrate(self._conn)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {path}: {e}", cause=e) from e

    @staticmethod
    def _migrate(conn: sqlite3.Connection) -> None:
        existing = {row["name"] for row in conn.execute("PRAGMA table_info(t_tasks)")}
        for name, ddl in ADDED_TASK_COLUMNS.items():
            if name not in existing:
                conn.execute(f"ALTER TABLE t_tasks ADD COLUMN {name} {ddl}")

    @property
    def name(self) -> str:
        return f"SQLite ({self.db_path})"

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialize access and commit (or roll back) as one unit."""
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                raise PersistenceError(f"Database error: {e}", cause=e) from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def get_all_tasks(self) -> list[Task]:
        with self._transaction() as conn:
            rows = conn.execute(f"SELECT {TASK_COLUMNS} FROM t_tasks ORDER BY key").fetchall()
        return [self._row_to_task(row) for row in rows]

    def get_task(self, key: str) -> Task | None:
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {TASK_COLUMNS} FROM t_tasks WHERE key = ?", (key,)
            ).fetchone()
        return self._row_to_task(row) if row else None

    def upsert_task(self, task: Task) -> None:
        with self._transaction() as conn:
            self._upsert(conn, task)

    def update_task_column(self, key: str, column: Column) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE t_tasks SET mapped_column = ? WHERE key = ?",
                (column.value, key),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"Task {key} is not stored")

    def delete_tasks(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        with self._transaction() as conn:
            return self._delete(conn, keys)

    def apply_sync(self, upserts: Iterable[Task], prune_keys: Iterable[str]) -> int:
        """Upsert and prune in a single transaction."""
        upserts = list(upserts)
        prune_keys = list(prune_keys)
        with self._transaction() as conn:
            for task in upserts:
                self._upsert(conn, task)
            pruned = self._delete(conn, prune_keys) if prune_keys else 0
        self.logger.debug(f"Applied sync: {len(upserts)} upserted, {pruned} pruned")
        return pruned

    def _upsert(self, conn: sqlite3.Connection, task: Task) -> None:
        conn.execute(
            f"""
            INSERT INTO t_tasks ({TASK_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                summary = excluded.summary,
                kind = excluded.kind,
                issue_type = excluded.issue_type,
                status = excluded.status,
                mapped_column = excluded.mapped_column,
                sprint = excluded.sprint,
                priority = excluded.priority,
                due_date = excluded.due_date,
                assignee = excluded.assignee,
                description = excluded.description,
                links = excluded.links,
                source = excluded.source,
                story_points = excluded.story_points,
                parent_key = excluded.parent_key,
                updated_at = excluded.updated_at,
                archived = excluded.archived,
                synced_at = excluded.synced_at
            """,
            (
                task.key,
                task.title,
                task.kind.value,
                task.issue_type,
                task.remote_status,
                task.column.value,
                task.sprint,
                task.priority.value,
                task.due_date.isoformat() if task.due_date else None,
                task.assignee,
                task.description,
                json.dumps([link.to_dict() for link in task.links]),
                task.source.value,
                task.story_points,
                task.parent_key,
                task.updated_at.isoformat() if task.updated_at else None,
                int(task.archived),
                datetime.now().isoformat(),
            ),
        )

    @staticmethod
    def _delete(conn: sqlite3.Connection, keys: list[str]) -> int:
        placeholders = ", ".join("?" for _ in keys)
        cursor = conn.execute(f"DELETE FROM t_tasks WHERE key IN ({placeholders})", keys)
        return cursor.rowcount

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        column = Column.from_value(row["mapped_column"])
        if column is None:
            self.logger.warning(
                f"Task {row['key']} has unknown column {row['mapped_column']!r}, showing it in TO DO"
            )
            column = Column.triage_default()
        return Task(
            key=row["key"],
            title=row["summary"],
            kind=IssueKind(row["kind"]) if row["kind"] in {k.value for k in IssueKind} else IssueKind.OTHER,
            column=column,
            sprint=row["sprint"] or "Backlog",
            priority=Priority.from_string(row["priority"]),
            due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
            assignee=row["assignee"],
            description=row["description"] or "",
            links=[TaskLink.from_dict(link) for link in json.loads(row["links"] or "[]")],
            source=TaskSource.from_string(row["source"]),
            remote_status=row["status"] or "",
            issue_type=row["issue_type"] or "",
            story_points=row["story_points"],
            parent_key=row["parent_key"],
            updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
            archived=bool(row["archived"]),
        )

    # -------------------------------------------------------------------------
    # Work logs
    # -------------------------------------------------------------------------

    def create_work_log_entry(self, entry: WorkLogEntry) -> WorkLogResult:
        created_at = entry.created_at or datetime.now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO t_work_logs (task_key, action, log_date, comment, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    entry.task_key,
                    entry.origin.value,
                    entry.log_date.isoformat(),
                    entry.text,
                    created_at.isoformat(),
                ),
            )
            is_new = cursor.rowcount == 1
        return WorkLogResult(is_new=is_new, entry=entry if is_new else None)

    def get_work_logs(self, log_date: date | None = None) -> list[WorkLogEntry]:
        if log_date is None:
            return self._select_work_logs("", ())
        return self._select_work_logs(" WHERE log_date = ?", (log_date.isoformat(),))

    def get_work_logs_between(self, start: date, end: date) -> list[WorkLogEntry]:
        return self._select_work_logs(
            " WHERE log_date BETWEEN ? AND ?", (start.isoformat(), end.isoformat())
        )

    def _select_work_logs(self, where: str, params: tuple[str, ...]) -> list[WorkLogEntry]:
        query = (
            "SELECT task_key, action, log_date, comment, created_at FROM t_work_logs"
            f"{where} ORDER BY log_date, created_at"
        )
        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            WorkLogEntry(
                task_key=row["task_key"],
                log_date=date.fromisoformat(row["log_date"]),
                origin=WorkLogOrigin.from_string(row["action"]),
                text=row["comment"] or "",
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        with self._transaction() as conn:
            row = conn.execute("SELECT s_value FROM t_settings WHERE s_key = ?", (key,)).fetchone()
        return row["s_value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO t_settings (s_key, s_value) VALUES (?, ?) "
                "ON CONFLICT(s_key) DO UPDATE SET s_value = excluded.s_value",
                (key, value),
            )

    def delete_setting(self, key: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM t_settings WHERE s_key = ?", (key,))

    def get_settings(self, prefix: str = "") -> dict[str, str]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT s_key, s_value FROM t_settings WHERE s_key LIKE ? ESCAPE '\\'",
                (prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%",),
            ).fetchall()
        return {row["s_key"]: row["s_value"] for row in rows}
