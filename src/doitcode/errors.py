"""Error types shared by the scanner, the reconciliation engine and the store.

Nothing here is fatal to a scan: ``FileUnreadable`` degrades to "annotation
not found" and ``InvalidPattern`` drops the offending pattern. The task errors
are raised by explicit user mutations and reported by the CLI.
"""

from __future__ import annotations


class DoitError(Exception):
    """Base class for doit-code errors."""


class FileUnreadable(DoitError):
    """A source file vanished or could not be decoded/read."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        msg = f"Cannot read {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidPattern(DoitError):
    """A user-supplied match pattern failed to compile."""

    def __init__(self, pattern: str, reason: str = "") -> None:
        self.pattern = pattern
        self.reason = reason
        msg = f"Invalid pattern {pattern!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TaskNotFoundError(DoitError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"No task with id {task_id!r}")


class DuplicateTaskError(DoitError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"A task with id {task_id!r} already exists")


class TaskLockedError(DoitError):
    """Raised when un-completing a task whose source line was removed."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(
            "This task was deleted from the file. It cannot be marked as pending."
        )


# ── classification helpers ───────────────────────────────────────────

UNREADABLE_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    UnicodeDecodeError,
)


def describe_os_error(exc: BaseException) -> str:
    """Short human-readable reason for an I/O failure."""
    if isinstance(exc, FileNotFoundError):
        return "file not found"
    if isinstance(exc, PermissionError):
        return "permission denied"
    if isinstance(exc, IsADirectoryError):
        return "is a directory"
    if isinstance(exc, UnicodeDecodeError):
        return "not valid UTF-8"
    return str(exc) or exc.__class__.__name__
