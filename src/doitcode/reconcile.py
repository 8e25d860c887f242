"""Reconciliation engine: match freshly found annotations against tracked tasks.

Two modes share the same removal policy:

- **ingest** runs on annotations a scan has not seen before. Each one either
  is a duplicate (skipped), continues an existing task from the same file
  (similarity at or above the threshold, task rewritten in place), or is
  added as a new task. Same-file pending tasks that neither match nor are
  still present in the file get the removal policy.
- **validate** runs periodically, re-reads the files behind every tracked
  pending task and applies the removal policy to tasks whose text is gone.

The removal policy is auto-complete (``completed=True``, origin REMOVED) or
auto-delete, chosen by ``Config.auto_complete``. Manual tasks are never
touched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from doitcode import log
from doitcode.config import Config
from doitcode.ports import Notifier
from doitcode.scanner import Scanner
from doitcode.similarity import similarity
from doitcode.tasks.model import Task
from doitcode.tasks.store import TaskStore
from doitcode.workspace import normalize_path


@dataclass
class ReconcileResult:
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.completed or self.deleted)

    def merge(self, other: ReconcileResult) -> ReconcileResult:
        self.added.extend(other.added)
        self.updated.extend(other.updated)
        self.completed.extend(other.completed)
        self.deleted.extend(other.deleted)
        return self


def ingest_message(result: ReconcileResult) -> str:
    messages: list[str] = []
    if result.added:
        messages.append(f"Added {len(result.added)} tasks from files")
    if result.updated:
        messages.append(f"Updated {len(result.updated)} tasks from files")
    if result.completed:
        messages.append(f"Completed {len(result.completed)} tasks in files")
    if result.deleted:
        messages.append(f"Removed {len(result.deleted)} tasks in files")
    return ", ".join(messages)


def removal_message(result: ReconcileResult) -> str:
    if result.completed:
        n = len(result.completed)
        if n == 1:
            return "1 task completed (removed from file)"
        return f"{n} tasks completed (removed from files)"
    if result.deleted:
        n = len(result.deleted)
        if n == 1:
            return "1 task deleted (removed from file)"
        return f"{n} tasks deleted (removed from files)"
    return ""


class ReconciliationEngine:
    """Applies scan results to the task store."""

    def __init__(
        self,
        store: TaskStore,
        scanner: Scanner,
        cfg: Config,
        *,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.scanner = scanner
        self.cfg = cfg
        self.notifier = notifier
        self._validating = False
        self._background: set[asyncio.Task[None]] = set()

    @property
    def is_validating(self) -> bool:
        return self._validating

    # ── helpers ──────────────────────────────────────────────────────

    def _notify(self, message: str) -> None:
        if not message or self.notifier is None:
            return
        try:
            self.notifier.notify(message)
        except Exception as exc:
            log.debug(f"Notification failed: {exc}")

    def _apply_removal(self, task: Task, result: ReconcileResult) -> None:
        if self.cfg.auto_complete:
            self.store.mark_removed(task)
            result.completed.append(task.id)
            log.debug(f"Task {task.id}: source removed -> completed")
        else:
            self.store.discard(task)
            result.deleted.append(task.id)
            log.debug(f"Task {task.id}: source removed -> deleted")

    def _is_live(self, task: Task) -> bool:
        """Still in the store, pending and tracked (state may change across awaits)."""
        current = self.store.get(task.id)
        return current is task and not task.completed and task.is_tracked

    # ── mode A: ingest ───────────────────────────────────────────────

    async def ingest(self, new_tasks: Iterable[Task]) -> ReconcileResult:
        """Reconcile candidate tasks built from newly seen annotations."""
        result = ReconcileResult()
        threshold = self.cfg.similarity_threshold
        # Tasks claimed, removed or added in this pass; keyed by identity.
        settled: dict[int, Task] = {}

        for found in new_tasks:
            if found.origin is None:
                continue
            if found.id in self.store:
                log.debug(f"Skipping duplicate task {found.id}")
                continue

            file_path = found.origin.file_path
            candidates = [
                t for t in self.store.tasks
                if id(t) not in settled
                and not t.completed
                and t.is_tracked
                and t.origin is not None
                and t.origin.file_path == file_path
            ]

            claimed = False
            for task in candidates:
                if not claimed and similarity(task.text, found.text) >= threshold:
                    old_id = task.id
                    self.store.claim(task, found)
                    settled[id(task)] = task
                    claimed = True
                    result.updated.append(task.id)
                    log.debug(f"Task {old_id}: edited in place -> {task.id}")
                    continue

                if await self.scanner.task_exists_in_file(task):
                    continue
                if not self._is_live(task):
                    continue
                self._apply_removal(task, result)
                settled[id(task)] = task

            if claimed or found.id in self.store:
                continue
            self.store.add(found)
            settled[id(found)] = found
            result.added.append(found.id)

        self._notify(ingest_message(result))
        return result

    # ── mode B: validation ───────────────────────────────────────────

    def handle_removed(self, task_ids: Iterable[str]) -> ReconcileResult:
        """Apply the removal policy to *task_ids* in one batch."""
        result = ReconcileResult()
        for task_id in task_ids:
            task = self.store.get(task_id)
            if task is None or task.completed or task.origin is None:
                continue
            self._apply_removal(task, result)
        self._notify(removal_message(result))
        return result

    def _tracked_pending(self, file_path: str | None = None) -> list[Task]:
        return [
            t for t in self.store.tasks
            if t.is_tracked
            and not t.completed
            and (file_path is None or (t.origin is not None and t.origin.file_path == file_path))
        ]

    async def validate(self) -> ReconcileResult:
        """Re-check every tracked pending task against its file.

        Single flight: returns a ``skipped`` result while another run is active.
        """
        if self._validating:
            log.debug("Validation already in progress, skipping...")
            return ReconcileResult(skipped=True)

        tasks = self._tracked_pending()
        if not tasks:
            return ReconcileResult()

        self._validating = True
        try:
            missing = await self.scanner.find_missing(tasks)
            result = self.handle_removed(missing)
            if missing:
                log.info(f"Validated: {len(missing)} tasks no longer exist in files")
            return result
        finally:
            self._validating = False

    async def validate_file(self, file_path: str) -> ReconcileResult:
        """Validate only the tasks found in *file_path* (after a save or delete)."""
        tasks = self._tracked_pending(normalize_path(file_path))
        if not tasks:
            return ReconcileResult()
        missing = await self.scanner.find_missing(tasks)
        return self.handle_removed(missing)

    async def _validate_logged(self) -> None:
        try:
            await self.validate()
        except Exception as exc:
            log.error(f"Error validating tasks: {exc}")

    async def run_periodic_validation(self, interval: float | None = None) -> None:
        """Validate every *interval* seconds until cancelled.

        Each tick starts validation in the background, so a run that outlasts
        the interval makes the next tick a no-op instead of queueing it.
        """
        sleep_s = max(0.01, float(interval if interval is not None else self.cfg.validation_interval))
        try:
            while True:
                await asyncio.sleep(sleep_s)
                job = asyncio.create_task(self._validate_logged())
                self._background.add(job)
                job.add_done_callback(self._background.discard)
        finally:
            for job in list(self._background):
                job.cancel()
