"""Rich presentation of task views and task details."""

from __future__ import annotations

from datetime import datetime, timezone

from rich.markup import escape
from rich.table import Table

from doitcode.tasks.model import OriginStatus, Task


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n != 1 else ''}"


def format_time_lapsed(created_at: datetime, now: datetime | None = None) -> str:
    """Coarse age of a task: "3 days", "1 hour", "5 minutes", "12 seconds"."""
    now = now or datetime.now(timezone.utc)
    seconds = max(0, int((now - created_at).total_seconds()))

    if seconds / 86400 > 1:
        return _plural(seconds // 86400, "day")
    if seconds / 3600 > 1:
        return _plural(seconds // 3600, "hour")
    if seconds / 60 > 1:
        return _plural(seconds // 60, "minute")
    return _plural(seconds, "second")


def describe(task: Task) -> str:
    """Short origin label, e.g. ``◈ TODO | parser.py``."""
    if task.origin is None:
        return ""
    return f"◈ {task.origin.tag.value} | {task.origin.file_name}"


def status_marker(task: Task) -> str:
    if not task.completed:
        return "[yellow]●[/yellow]"
    if task.is_removed:
        return "[dim]⊘[/dim]"
    return "[green]✔[/green]"


def task_details(task: Task, now: datetime | None = None) -> list[str]:
    lines = [
        task.text,
        f"Id: {task.id}",
        f"Created: {task.created_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}",
        f"Project: {task.project}",
        f"Time lapsed: {format_time_lapsed(task.created_at, now)}",
        f"Completed: {'yes' if task.completed else 'no'}",
    ]
    if task.origin is not None:
        lines += [
            f"Type: {task.origin.tag.value}",
            f"Found in: {task.origin.file_path}",
            f"Line: {task.origin.line_number + 1}",
            f"Status: {task.origin.status.value}",
            f"Original text: {task.origin.raw_line}",
        ]
    return lines


def task_table(tasks: list[Task], title: str, now: datetime | None = None) -> Table:
    table = Table(title=title, title_justify="left", show_lines=False)
    table.add_column("", width=1, no_wrap=True)
    table.add_column("Task", overflow="fold")
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Age", style="dim", no_wrap=True)
    table.add_column("Id", style="dim", overflow="fold")

    for task in tasks:
        source = describe(task)
        if task.origin is not None and task.origin.status == OriginStatus.STALE:
            source += " (stale)"
        table.add_row(
            status_marker(task),
            escape(task.text),
            escape(source),
            format_time_lapsed(task.created_at, now),
            escape(task.id),
        )
    return table
