"""Pending/completed views: pure predicates over the single stored task list."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from doitcode.tasks.model import Task

if TYPE_CHECKING:
    from doitcode.tasks.store import TaskStore

TaskPredicate = Callable[[Task], bool]


def is_pending(task: Task) -> bool:
    return not task.completed


def is_completed(task: Task) -> bool:
    return task.completed


def in_project(project: str | None) -> TaskPredicate:
    """Predicate for the active project scope (``None`` means no scope)."""
    if project is None:
        return lambda task: True
    return lambda task: task.project == project


def filter_tasks(
    tasks: Iterable[Task],
    predicate: TaskPredicate,
    project: str | None = None,
) -> list[Task]:
    """Apply *predicate* and the project scope, newest first."""
    scope = in_project(project)
    selected = [t for t in tasks if predicate(t) and scope(t)]
    selected.sort(key=lambda t: t.created_at, reverse=True)
    return selected


def pending_view(store: TaskStore) -> list[Task]:
    return filter_tasks(store.tasks, is_pending, store.project)


def completed_view(store: TaskStore) -> list[Task]:
    return filter_tasks(store.tasks, is_completed, store.project)
