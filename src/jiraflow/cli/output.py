"""
Output - Console output formatting for the jiraflow CLI.
"""

from __future__ import annotations

import json
import sys
from typing import Any

from ..application.board import EditOutcome, MoveOutcome, MoveStatus, SyncResult
from ..core.domain.entities import Task, WorkLogEntry
from ..core.domain.enums import Column, Swimlane
from ..core.ports.task_store import WorkLogResult


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"


class Symbols:
    """Unicode symbols for terminal output."""

    CHECK = "✓"
    CROSS = "✗"
    ARROW = "→"
    DOT = "•"
    WARN = "⚠"
    INFO = "ℹ"
    BOX_H = "─"


LANE_COLORS = {
    Swimlane.OVERDUE: Colors.RED,
    Swimlane.ON_SCHEDULE: Colors.GREEN,
    Swimlane.UNSCHEDULED: Colors.DIM,
}


class Console:
    """
    Console output helper with colors and formatting.

    Attributes:
        color: Whether to use ANSI color codes.
        verbose: Whether to print debug messages.
        quiet: Whether to suppress most output (for CI/scripting).
        json_mode: Whether to output JSON format for programmatic use.
    """

    def __init__(
        self,
        color: bool = True,
        verbose: bool = False,
        quiet: bool = False,
        json_mode: bool = False,
    ):
        """
        Initialize the console output helper.

        Args:
            color: Enable colored output. Automatically disabled if stdout is not a TTY.
            verbose: Enable verbose debug output.
            quiet: Suppress most output, only show errors and final summary.
            json_mode: Output JSON format instead of text.
        """
        self.json_mode = json_mode
        self.color = color and sys.stdout.isatty() and not json_mode
        self.quiet = quiet or json_mode
        self.verbose = verbose and not self.quiet

    def _c(self, text: str, *codes: str) -> str:
        if not self.color:
            return text
        return "".join(codes) + text + Colors.RESET

    def print(self, text: str = "", force: bool = False) -> None:
        if self.quiet and not force:
            return
        print(text)

    def json(self, payload: Any) -> None:
        """Emit a JSON document regardless of quiet mode."""
        print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def header(self, text: str) -> None:
        if self.quiet:
            return
        width = max(len(text) + 4, 50)
        border = self._c(Symbols.BOX_H * width, Colors.CYAN) if self.color else "-" * width
        self.print()
        self.print(border)
        self.print(self._c(f"  {text}", Colors.BOLD, Colors.CYAN))
        self.print(border)
        self.print()

    def section(self, text: str) -> None:
        if self.quiet:
            return
        self.print()
        self.print(self._c(text, Colors.BOLD))

    def success(self, text: str) -> None:
        self.print(self._c(f"{Symbols.CHECK} {text}", Colors.GREEN))

    def error(self, text: str) -> None:
        # Errors always reach stderr, even in quiet mode
        print(self._c(f"{Symbols.CROSS} {text}", Colors.RED), file=sys.stderr)

    def warning(self, text: str) -> None:
        self.print(self._c(f"{Symbols.WARN} {text}", Colors.YELLOW))

    def info(self, text: str) -> None:
        self.print(self._c(f"{Symbols.INFO} {text}", Colors.BLUE))

    def detail(self, text: str) -> None:
        self.print(self._c(f"    {text}", Colors.DIM))

    def debug(self, text: str) -> None:
        if self.verbose:
            self.print(self._c(f"  [debug] {text}", Colors.DIM))

    def config_errors(self, errors: list[str]) -> None:
        self.error("Configuration errors:")
        for error in errors:
            print(f"  {Symbols.DOT} {error}", file=sys.stderr)

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        if self.quiet:
            return
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row[: len(widths)]):
                widths[i] = max(widths[i], len(str(cell)))

        self.print("  " + "  ".join(self._c(h.ljust(widths[i]), Colors.BOLD) for i, h in enumerate(headers)))
        self.print("  " + "  ".join("-" * w for w in widths))
        for row in rows:
            self.print("  " + "  ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row[: len(widths)])))

    # -------------------------------------------------------------------------
    # Domain output
    # -------------------------------------------------------------------------

    def sync_result(self, result: SyncResult) -> None:
        if self.json_mode:
            self.json(result.to_dict())
            return
        if result.success:
            self.success(result.summary())
        else:
            self.error(result.summary())
        if result.board is not None:
            sprint = result.sprint.name if result.sprint else "backlog only"
            self.detail(f"Board {result.board.name} {Symbols.ARROW} {sprint}")
        for key in result.pruned_keys:
            self.detail(f"pruned {key}")
        self.debug(f"took {result.duration_seconds:.2f}s")

    def move_outcome(self, outcome: MoveOutcome) -> None:
        if self.json_mode:
            self.json(outcome.to_dict())
            return
        source = outcome.previous_column.value if outcome.previous_column else "?"
        target = outcome.target_column.value if outcome.target_column else "?"

        if outcome.status is MoveStatus.NOOP:
            self.info(f"{outcome.key} is already in {target}")
        elif outcome.status is MoveStatus.CONFIRMED:
            self.success(f"{outcome.key}: {source} {Symbols.ARROW} {target}")
            if outcome.new_remote_status:
                self.detail(f"Jira status: {outcome.new_remote_status}")
            if outcome.work_log is not None:
                self.detail("work logged" if outcome.work_log.is_new else "already logged today")
            if outcome.note is not None and outcome.note.success:
                self.detail(f"note {'created' if outcome.note.is_new else 'updated'}: {outcome.note.path}")
        else:
            self.error(f"{outcome.key}: {outcome.reason or outcome.status.value}")

    def board(self, grid: dict[Swimlane, dict[Column, list[Task]]]) -> None:
        if self.json_mode:
            self.json(
                {
                    lane.value: {
                        column.value: [task.to_dict() for task in tasks]
                        for column, tasks in columns.items()
                        if tasks
                    }
                    for lane, columns in grid.items()
                }
            )
            return

        for lane, columns in grid.items():
            count = sum(len(tasks) for tasks in columns.values())
            if not count:
                continue
            self.section(self._c(f"{lane.display_name} ({count})", LANE_COLORS[lane]))
            for column, tasks in columns.items():
                if not tasks:
                    continue
                self.print(f"  {self._c(column.value, Colors.CYAN)}")
                for task in tasks:
                    due = f" (due {task.due_date.isoformat()})" if task.due_date else ""
                    self.print(f"    {Symbols.DOT} {task.key} {task.title}{self._c(due, Colors.DIM)}")

    def work_logs(self, entries: list[WorkLogEntry]) -> None:
        if self.json_mode:
            self.json([entry.to_dict() for entry in entries])
            return
        if not entries:
            self.info("No work logged")
            return
        self.table(
            ["Date", "Task", "Origin", "Text"],
            [[e.log_date.isoformat(), e.task_key, e.origin.value, e.text] for e in entries],
        )

    def work_log_result(self, result: WorkLogResult) -> None:
        if self.json_mode:
            self.json({"is_new": result.is_new, "entry": result.entry.to_dict() if result.entry else None})
            return
        if result.is_new and result.entry is not None:
            self.success(f"Logged {result.entry.task_key} on {result.entry.log_date.isoformat()}")
        else:
            self.info("Already logged for that day")

    def edit_outcome(self, outcome: EditOutcome, done: str) -> None:
        if self.json_mode:
            self.json(outcome.to_dict())
            return
        if outcome.status is MoveStatus.NOOP:
            self.info(f"{outcome.key} is unchanged")
        elif outcome.success:
            self.success(f"{outcome.key} {done}")
        else:
            self.error(f"{outcome.key}: {outcome.reason or outcome.status.value}")

    def tasks(self, tasks: list[Task]) -> None:
        if self.json_mode:
            self.json([task.to_dict() for task in tasks])
            return
        if not tasks:
            self.info("No tasks")
            return
        self.table(
            ["Key", "Column", "Due", "Title"],
            [
                [t.key, t.column.value, t.due_date.isoformat() if t.due_date else "", t.title]
                for t in tasks
            ],
        )
