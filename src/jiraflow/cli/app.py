"""
CLI App - Main entry point for the jiraflow command line tool.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from typing import Any

from ..adapters import EnvironmentConfigProvider, JiraBoardAdapter, ObsidianVault, SqliteTaskStore
from ..application.board import BoardService, EditOutcome, MoveStatus
from ..core.constants import SETTING_JIRA_HOST, SETTING_JIRA_USERNAME, STATUS_MAP_PREFIX
from ..core.domain.enums import Column, Priority
from ..core.domain.status_mapping import StatusMapper
from ..core.exceptions import ConfigError, PersistenceError
from ..core.ports.config_provider import AppConfig
from .exit_codes import ExitCode
from .logging import setup_logging
from .output import Console


COMMANDS_NEEDING_JIRA = {"sync", "watch"}


def create_parser() -> argparse.ArgumentParser:
    """
    Create the command-line argument parser for jiraflow.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="jiraflow",
        description="Keep a local Kanban board in agreement with Jira",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Rebuild the board from Jira
  jiraflow sync --full

  # Pick up changes since the last sync
  jiraflow sync

  # Show the board for the current sprint
  jiraflow board --sprint "Sprint 42"

  # Move a task (validated against the board workflow, then sent to Jira)
  jiraflow move PROJ-123 EXECUTED

  # Add a personal task that never goes to Jira
  jiraflow create "Prepare demo" --due 2024-06-01

  # Log work by hand, then list a week of work logs
  jiraflow log "Reviewed release notes"
  jiraflow logs --from 2024-06-03 --to 2024-06-07

  # Keep syncing every few minutes until interrupted
  jiraflow watch --interval 5
        """,
    )

    parser.add_argument("--config", "-c", help="Path to .jiraflow.yaml / .jiraflow.toml")
    parser.add_argument("--db", help="Path to the SQLite database")
    parser.add_argument("--vault", help="Obsidian vault directory for task notes")
    parser.add_argument("--jira-url", dest="jira_url", help="Jira base URL")
    parser.add_argument("--dry-run", action="store_true", default=None, help="Don't change anything in Jira")
    parser.add_argument("--verbose", "-v", action="store_true", default=None, help="Verbose output")
    parser.add_argument("--log-format", choices=["text", "json"], default="text", help="Log format")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Sync the board with Jira")
    sync.add_argument("--full", action="store_true", help="Force a full sync")

    board = subparsers.add_parser("board", help="Show the board")
    board.add_argument("--sprint", help="Only show one sprint (e.g. 'Backlog')")

    move = subparsers.add_parser("move", help="Move a task to another column")
    move.add_argument("key", help="Task key, e.g. PROJ-123")
    move.add_argument(
        "column",
        help="Target column: " + ", ".join(column.value for column in Column),
    )

    create = subparsers.add_parser("create", help="Create a local (board-only) task")
    create.add_argument("title", help="Task title")
    create.add_argument("--description", default="", help="Task description")
    create.add_argument("--due", type=date.fromisoformat, help="Due date (YYYY-MM-DD)")
    create.add_argument(
        "--priority", type=Priority.from_string, default=Priority.MEDIUM, help="Priority, e.g. High"
    )

    logs = subparsers.add_parser("logs", help="Show work logs")
    logs.add_argument("--date", type=date.fromisoformat, help="Only this day (YYYY-MM-DD)")
    logs.add_argument("--from", dest="start", type=date.fromisoformat, help="First day of a range")
    logs.add_argument("--to", dest="end", type=date.fromisoformat, help="Last day of a range (default: today)")

    log = subparsers.add_parser("log", help="Log work by hand")
    log.add_argument("text", help="What was done")
    log.add_argument("--date", type=date.fromisoformat, help="Day worked (default: today)")
    log.add_argument("--task", help="Task the work belongs to")

    edit = subparsers.add_parser("edit", help="Edit a local task")
    edit.add_argument("key", help="Local task key, e.g. ME-123456")
    edit.add_argument("--title", help="New title")
    edit.add_argument("--description", help="New description")
    due = edit.add_mutually_exclusive_group()
    due.add_argument("--due", type=date.fromisoformat, help="New due date (YYYY-MM-DD)")
    due.add_argument("--no-due", action="store_true", help="Clear the due date")
    edit.add_argument("--priority", type=Priority.from_string, help="New priority, e.g. High")

    for name, text in (
        ("archive", "Take a local task off the board"),
        ("restore", "Put an archived local task back in TO DO"),
        ("delete", "Delete a local task"),
    ):
        command = subparsers.add_parser(name, help=text)
        command.add_argument("key", help="Local task key")

    subparsers.add_parser("archived", help="List archived local tasks")

    watch = subparsers.add_parser("watch", help="Sync periodically until interrupted")
    watch.add_argument("--interval", type=int, help="Minutes between syncs (minimum 1)")

    return parser


def load_config(args: argparse.Namespace, console: Console) -> AppConfig | None:
    overrides = {
        "jira_url": args.jira_url,
        "db": args.db,
        "vault": args.vault,
        "dry_run": args.dry_run,
        "verbose": args.verbose,
    }
    provider = EnvironmentConfigProvider(config_file=args.config, cli_overrides=overrides)
    try:
        config = provider.load()
    except ConfigError as e:
        console.config_errors([str(e)])
        return None

    if args.command in COMMANDS_NEEDING_JIRA:
        errors = config.validate()
        if errors:
            console.config_errors(errors)
            return None
    return config


def build_service(config: AppConfig, store: SqliteTaskStore) -> BoardService:
    """Wire adapters into a BoardService."""
    mapper = StatusMapper.with_overrides(store.get_settings(STATUS_MAP_PREFIX))
    tracker = JiraBoardAdapter(config.tracker, dry_run=config.sync.dry_run, mapper=mapper)
    vault = ObsidianVault(config.vault.path, jira_host=config.tracker.url)

    service = BoardService(
        store,
        tracker,
        vault=vault,
        sync_config=config.sync,
        tracker_config=config.tracker,
    )
    service.load()

    # A different Jira instance or account invalidates the cursor
    for key, value in ((SETTING_JIRA_HOST, config.tracker.url), (SETTING_JIRA_USERNAME, config.tracker.email)):
        if not value:
            continue
        previous = store.get_setting(key)
        if previous is not None and previous != value:
            service.reset_sync()
        store.set_setting(key, value)
    return service


def _is_local_task(service: BoardService, key: str) -> bool:
    # Local moves never reach Jira, so they work without a Jira configuration
    task = service.cache.get(key)
    return task is not None and task.is_local


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------


def run_sync(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    if args.full:
        result = asyncio.run(service.run_full_sync())
    else:
        result = asyncio.run(service.run_incremental_sync())
    console.sync_result(result)
    return ExitCode.SUCCESS if result.success else ExitCode.SYNC_ERROR


def run_board(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    console.header(f"Board ({len(service.cache)} tasks)")
    console.board(service.grid(sprint=args.sprint))
    return ExitCode.SUCCESS


def run_move(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    outcome = asyncio.run(service.move_task(args.key, args.column))
    console.move_outcome(outcome)

    if outcome.success:
        return ExitCode.SUCCESS
    if outcome.status is MoveStatus.NOT_FOUND:
        return ExitCode.NOT_FOUND
    if outcome.status is MoveStatus.REJECTED:
        return ExitCode.VALIDATION_ERROR
    return ExitCode.MOVE_FAILED


def run_create(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    try:
        task = asyncio.run(
            service.create_local_task(
                args.title, description=args.description, due_date=args.due, priority=args.priority
            )
        )
    except ValueError as e:
        console.error(str(e))
        return ExitCode.VALIDATION_ERROR
    console.success(f"Created {task.key}: {task.title}")
    return ExitCode.SUCCESS


def run_logs(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    if args.start is not None or args.end is not None:
        end = args.end or date.today()
        start = args.start or end
        if start > end:
            console.error(f"--from {start.isoformat()} is after --to {end.isoformat()}")
            return ExitCode.VALIDATION_ERROR
        console.work_logs(service.work_logs(start, end))
    else:
        console.work_logs(service.work_logs(args.date))
    return ExitCode.SUCCESS


def run_log(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    try:
        result = asyncio.run(service.log_work(args.text, log_date=args.date, task_key=args.task))
    except ValueError as e:
        console.error(str(e))
        return ExitCode.VALIDATION_ERROR
    console.work_log_result(result)
    return ExitCode.SUCCESS


def _edit_exit_code(outcome: EditOutcome) -> int:
    if outcome.success:
        return ExitCode.SUCCESS
    if outcome.status is MoveStatus.NOT_FOUND:
        return ExitCode.NOT_FOUND
    if outcome.status is MoveStatus.REJECTED:
        return ExitCode.VALIDATION_ERROR
    return ExitCode.ERROR


def run_edit(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    changes: dict[str, Any] = {}
    if args.title is not None:
        changes["title"] = args.title
    if args.description is not None:
        changes["description"] = args.description
    if args.due is not None or args.no_due:
        changes["due_date"] = args.due
    if args.priority is not None:
        changes["priority"] = args.priority
    if not changes:
        console.error("Nothing to change; pass --title, --description, --due, --no-due or --priority")
        return ExitCode.VALIDATION_ERROR

    try:
        outcome = asyncio.run(service.update_local_task(args.key, **changes))
    except ValueError as e:
        console.error(str(e))
        return ExitCode.VALIDATION_ERROR
    console.edit_outcome(outcome, "updated")
    return _edit_exit_code(outcome)


def run_archive(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    outcome = asyncio.run(service.archive_local_task(args.key))
    console.edit_outcome(outcome, "archived")
    return _edit_exit_code(outcome)


def run_restore(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    outcome = asyncio.run(service.restore_local_task(args.key))
    console.edit_outcome(outcome, f"restored to {Column.TODO.value}")
    return _edit_exit_code(outcome)


def run_delete(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    outcome = asyncio.run(service.delete_local_task(args.key))
    console.edit_outcome(outcome, "deleted")
    return _edit_exit_code(outcome)


def run_archived(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    console.tasks(service.archived_tasks())
    return ExitCode.SUCCESS


def run_watch(service: BoardService, args: argparse.Namespace, console: Console) -> int:
    if args.interval is not None:
        service.set_auto_sync_interval(args.interval)

    async def watch() -> None:
        result = await service.run_incremental_sync()
        console.sync_result(result)
        service.scheduler.start()
        console.info(f"Syncing every {service.scheduler.interval_minutes} minute(s), Ctrl+C to stop")
        try:
            await asyncio.Event().wait()
        finally:
            await service.scheduler.stop()

    try:
        asyncio.run(watch())
    except KeyboardInterrupt:
        console.print()
        console.info("Stopped")
        return ExitCode.CANCELLED
    return ExitCode.SUCCESS


HANDLERS = {
    "sync": run_sync,
    "board": run_board,
    "move": run_move,
    "create": run_create,
    "logs": run_logs,
    "log": run_log,
    "edit": run_edit,
    "archive": run_archive,
    "restore": run_restore,
    "delete": run_delete,
    "archived": run_archived,
    "watch": run_watch,
}


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    console = Console(color=not args.no_color, verbose=bool(args.verbose), json_mode=args.json)
    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level, log_format=args.log_format)

    config = load_config(args, console)
    if config is None:
        return ExitCode.CONFIG_ERROR

    try:
        store = SqliteTaskStore(config.database_path)
    except PersistenceError as e:
        console.error(str(e))
        return ExitCode.ERROR

    try:
        service = build_service(config, store)
        if args.command == "move" and not _is_local_task(service, args.key):
            errors = config.validate()
            if errors:
                console.config_errors(errors)
                return ExitCode.CONFIG_ERROR
        return HANDLERS[args.command](service, args, console)
    except PersistenceError as e:
        console.error(f"Local store failed: {e}")
        return ExitCode.ERROR
    finally:
        store.close()


def run() -> None:
    """Entry point for the console script."""
    sys.exit(main())


if __name__ == "__main__":
    run()
