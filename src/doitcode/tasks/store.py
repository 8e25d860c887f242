"""Authoritative in-memory task list with persistence and a change channel."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from doitcode import log
from doitcode.errors import DuplicateTaskError, TaskLockedError, TaskNotFoundError
from doitcode.io_utils import read_text, write_json
from doitcode.ports import TaskPersistence
from doitcode.tasks.model import OriginStatus, Task, manual_task_id


class ChangeKind(str, Enum):
    LOADED = "loaded"
    ADDED = "added"
    EDITED = "edited"
    UPDATED = "updated"
    COMPLETED = "completed"
    REOPENED = "reopened"
    REMOVED = "removed"
    DELETED = "deleted"
    RESET = "reset"


@dataclass(frozen=True)
class TaskChange:
    kind: ChangeKind
    task_ids: tuple[str, ...] = ()


Subscriber = Callable[[TaskChange], None]


class TaskStore:
    """Single source of truth for tasks.

    Every mutation is persisted immediately and then published to subscribers,
    so views and presenters never hold their own copy of the list.

    Usage::

        store = TaskStore(JsonTaskPersistence(path), project="my-repo")
        store.load()
        store.add_manual("Write release notes")
        unsubscribe = store.subscribe(print)
    """

    def __init__(self, persistence: TaskPersistence, *, project: str | None = None) -> None:
        self._persistence = persistence
        self._tasks: list[Task] = []
        self._subscribers: list[Subscriber] = []
        self.project = project

    # ── queries ──────────────────────────────────────────────────────

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def get(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def require(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def __contains__(self, task_id: object) -> bool:
        return any(t.id == task_id for t in self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    # ── change channel ───────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for every change; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _publish(self, kind: ChangeKind, *task_ids: str) -> None:
        change = TaskChange(kind=kind, task_ids=tuple(task_ids))
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception as exc:
                log.error(f"Task change subscriber failed: {exc}")

    def _commit(self, kind: ChangeKind, *task_ids: str) -> None:
        self._persistence.save_tasks(self.tasks)
        self._publish(kind, *task_ids)

    # ── persistence ──────────────────────────────────────────────────

    def load(self) -> None:
        loaded = self._persistence.load_tasks()
        self._tasks = list(loaded) if loaded else []
        log.debug(f"Loaded {len(self._tasks)} tasks")
        self._publish(ChangeKind.LOADED)

    # ── user mutations ───────────────────────────────────────────────

    def add(self, task: Task) -> Task:
        if task.id in self:
            raise DuplicateTaskError(task.id)
        self._tasks.append(task)
        self._commit(ChangeKind.ADDED, task.id)
        return task

    def add_manual(self, text: str) -> Task:
        text = text.strip()
        if not text:
            raise ValueError("Task text cannot be empty")
        return self.add(Task(id=manual_task_id(), text=text, project=self.project))

    def edit(self, task_id: str, text: str) -> Task:
        text = text.strip()
        if not text:
            raise ValueError("Task text cannot be empty")
        task = self.require(task_id)
        task.text = text
        self._commit(ChangeKind.EDITED, task.id)
        return task

    def delete(self, task_id: str) -> Task:
        task = self.require(task_id)
        self._tasks.remove(task)
        self._commit(ChangeKind.DELETED, task.id)
        return task

    def toggle(self, task_id: str) -> Task:
        """Flip ``completed``. An explicit toggle revives a removed task as STALE."""
        task = self.require(task_id)
        if task.completed:
            return self.reopen(task_id, force=True)
        task.completed = True
        self._commit(ChangeKind.COMPLETED, task.id)
        return task

    def reopen(self, task_id: str, *, force: bool = False) -> Task:
        """Mark a task pending again.

        A task whose source line was removed stays completed unless *force*;
        reviving it detaches it from reconciliation (origin becomes STALE).
        """
        task = self.require(task_id)
        if not task.completed:
            return task
        if task.is_removed:
            if not force:
                raise TaskLockedError(task.id)
            assert task.origin is not None
            task.origin.status = OriginStatus.STALE
        task.completed = False
        self._commit(ChangeKind.REOPENED, task.id)
        return task

    def reset(self) -> None:
        self._tasks = []
        self._commit(ChangeKind.RESET)

    # ── reconciliation mutations ─────────────────────────────────────

    def claim(self, task: Task, found: Task) -> None:
        """Rewrite *task* in place as the edited continuation of *found*."""
        old_id = task.id
        task.id = found.id
        task.text = found.text
        task.origin = replace(found.origin) if found.origin else None
        self._commit(ChangeKind.UPDATED, old_id, task.id)

    def mark_removed(self, task: Task) -> None:
        """Auto-complete a task whose source annotation disappeared."""
        task.completed = True
        if task.origin is not None:
            task.origin.status = OriginStatus.REMOVED
        self._commit(ChangeKind.REMOVED, task.id)

    def discard(self, task: Task) -> None:
        """Auto-delete a task whose source annotation disappeared."""
        if any(t is task for t in self._tasks):
            self._tasks = [t for t in self._tasks if t is not task]
            self._commit(ChangeKind.DELETED, task.id)


# ── persistence backends ─────────────────────────────────────────────


class JsonTaskPersistence:
    """Task list stored as a JSON array in a single file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def save_tasks(self, tasks: list[Task]) -> None:
        write_json(self.path, [t.to_dict() for t in tasks])

    def load_tasks(self) -> list[Task] | None:
        if not self.path.is_file():
            return None
        try:
            raw = json.loads(read_text(self.path))
        except OSError as exc:
            log.error(f"Cannot load tasks from {self.path}: {exc}")
            return None
        except ValueError as exc:
            self._set_aside(str(exc))
            return None
        if not isinstance(raw, list):
            self._set_aside("expected a JSON array")
            return None

        tasks: list[Task] = []
        for item in raw:
            try:
                tasks.append(Task.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                log.warn(f"Skipping malformed task record: {exc}")
        return tasks

    def _set_aside(self, reason: str) -> None:
        """Move an undecodable state file to ``<name>.corrupt``."""
        backup = self.path.with_name(f"{self.path.name}.corrupt")
        try:
            os.replace(self.path, backup)
        except OSError as exc:
            log.error(f"Cannot load tasks from {self.path}: {reason} (could not move it aside: {exc})")
            return
        log.error(f"Cannot load tasks from {self.path}: {reason}; moved it to {backup}")


class MemoryTaskPersistence:
    """Keeps serialized snapshots in memory; used by tests and embedders."""

    def __init__(self, tasks: list[Task] | None = None) -> None:
        self.saved: list[dict] | None = [t.to_dict() for t in tasks] if tasks is not None else None
        self.save_count = 0

    def save_tasks(self, tasks: list[Task]) -> None:
        self.saved = [t.to_dict() for t in tasks]
        self.save_count += 1

    def load_tasks(self) -> list[Task] | None:
        if self.saved is None:
            return None
        return [Task.from_dict(d) for d in self.saved]


__all__ = [
    "ChangeKind",
    "JsonTaskPersistence",
    "MemoryTaskPersistence",
    "TaskChange",
    "TaskStore",
]
