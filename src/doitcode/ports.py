"""Ports (interfaces) used by the core.

The scanner and the reconciliation engine depend on these Protocols instead of
concrete implementations, so the local-disk source, the JSON state file and the
console notifier can be swapped for fakes in tests or for other hosts.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from doitcode.tasks.model import Task


class FileSource(Protocol):
    """Where file contents and workspace listings come from."""

    def read_text(self, path: str) -> str:
        """Return the current text of *path*; raise FileUnreadable on failure."""
        ...

    def list_files(
        self,
        root: str,
        extensions: Sequence[str],
        exclude_patterns: Sequence[str],
    ) -> list[str]: ...


class TaskPersistence(Protocol):
    def save_tasks(self, tasks: list[Task]) -> None: ...
    def load_tasks(self) -> list[Task] | None: ...


class Notifier(Protocol):
    """Best-effort, fire-and-forget user notification."""

    def notify(self, message: str) -> None: ...
