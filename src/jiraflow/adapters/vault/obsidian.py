"""
Obsidian vault - one Markdown note per task.

A new note gets YAML frontmatter and a short body. An existing note is
the user's to edit, so only its frontmatter ``status:`` line is ever
rewritten.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from ...core.domain.entities import Task
from ...core.ports.note_vault import VAULT_NOT_CONFIGURED, NoteSyncResult, NoteVaultPort


ILLEGAL_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
STATUS_LINE = re.compile(r"^status:.*$", re.MULTILINE)
MAX_TITLE_LENGTH = 100


def sanitize_filename(text: str) -> str:
    """Make a title safe as a file name on every platform."""
    cleaned = ILLEGAL_FILENAME_CHARS.sub(" ", text)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:MAX_TITLE_LENGTH]


def note_filename(task: Task) -> str:
    return f"[{task.key}] {sanitize_filename(task.title)}.md"


def _yaml_line(key: str, value: Any) -> str:
    return yaml.safe_dump({key: value}, allow_unicode=True, default_flow_style=False).strip()


class ObsidianVault(NoteVaultPort):
    """Writes task notes into an Obsidian vault directory."""

    def __init__(
        self,
        vault_path: str | Path | None,
        jira_host: str = "",
        today: Callable[[], date] = date.today,
    ):
        """
        Args:
            vault_path: Vault directory; None or empty disables the vault.
            jira_host: Base URL used for the ``link`` field.
            today: Clock for the ``created`` field.
        """
        self.vault_path = Path(vault_path).expanduser() if vault_path else None
        self.jira_host = jira_host.rstrip("/")
        self._today = today
        self.logger = logging.getLogger("ObsidianVault")

    @property
    def is_configured(self) -> bool:
        return self.vault_path is not None

    def note_path(self, task: Task) -> Path | None:
        if self.vault_path is None:
            return None
        return self.vault_path / note_filename(task)

    def sync_task_note(self, task: Task) -> NoteSyncResult:
        path = self.note_path(task)
        if path is None:
            return NoteSyncResult.skip(VAULT_NOT_CONFIGURED)

        status = task.remote_status or task.column.value
        if path.exists():
            content = path.read_text(encoding="utf-8")
            path.write_text(self.replace_status(content, status), encoding="utf-8")
            self.logger.info(f"Updated note {path.name}")
            return NoteSyncResult(success=True, is_new=False, path=str(path))

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(task, status), encoding="utf-8")
        self.logger.info(f"Created note {path.name}")
        return NoteSyncResult(success=True, is_new=True, path=str(path))

    def link_for(self, task: Task) -> str | None:
        if task.is_local or not self.jira_host:
            return None
        return f"{self.jira_host}/browse/{task.key}"

    def render(self, task: Task, status: str) -> str:
        """Full content of a new note."""
        link = self.link_for(task)
        frontmatter: dict[str, Any] = {
            "key": task.key,
            "type": task.issue_type or "Task",
            "status": status,
        }
        if link:
            frontmatter["link"] = link
        frontmatter["created"] = self._today()

        header = yaml.safe_dump(frontmatter, allow_unicode=True, sort_keys=False, default_flow_style=False)
        body = f"# {task.title}\n\n{task.description or ''}\n"
        if link:
            body += f"\n## Links\n\n- [Jira Issue]({link})\n"
        return f"---\n{header}---\n\n{body}"

    @staticmethod
    def replace_status(content: str, status: str) -> str:
        """
        Rewrite the frontmatter status line, leaving everything else alone.

        Inserts the line when the frontmatter has none, and adds a
        frontmatter block when the note has none.
        """
        line = _yaml_line("status", status)

        if content.startswith("---"):
            end = content.find("\n---", 3)
            if end != -1:
                frontmatter, rest = content[:end], content[end:]
                if STATUS_LINE.search(frontmatter):
                    frontmatter = STATUS_LINE.sub(lambda _: line, frontmatter, count=1)
                else:
                    first_newline = frontmatter.find("\n")
                    if first_newline == -1:
                        frontmatter = f"{frontmatter}\n{line}"
                    else:
                        frontmatter = (
                            frontmatter[: first_newline + 1] + line + "\n" + frontmatter[first_newline + 1:]
                        )
                return frontmatter + rest

        return f"---\n{line}\n---\n\n{content}"
