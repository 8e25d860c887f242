"""Tracker: wires scanner, reconciliation engine and store for one workspace."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from doitcode import log
from doitcode.config import Config
from doitcode.ports import FileSource, Notifier
from doitcode.reconcile import ReconcileResult, ReconciliationEngine
from doitcode.scanner import Scanner, ScanReport
from doitcode.tasks.store import JsonTaskPersistence, TaskStore
from doitcode.workspace import normalize_path, project_name


@dataclass
class ScanOutcome:
    report: ScanReport = field(default_factory=ScanReport)
    result: ReconcileResult = field(default_factory=ReconcileResult)


class Tracker:
    """Everything the host needs for one workspace.

    The host feeds events in (``file_saved``, ``file_deleted``) and drives the
    clock (``run_periodic_validation``); the tracker never watches files itself.
    """

    def __init__(
        self,
        cfg: Config,
        root: str | Path,
        *,
        store: TaskStore | None = None,
        source: FileSource | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.cfg = cfg
        self.root = normalize_path(root)
        self.project = cfg.project or project_name(root)
        self.store = (
            store
            if store is not None
            else TaskStore(JsonTaskPersistence(cfg.state_file), project=self.project)
        )
        self.scanner = Scanner(cfg, source=source, root=self.root, project=self.project)
        self.engine = ReconciliationEngine(self.store, self.scanner, cfg, notifier=notifier)

    def load(self) -> None:
        self.store.load()

    async def scan_workspace(self, *, force: bool = False) -> ScanOutcome:
        report = await self.scanner.scan_workspace(force=force)
        result = await self.engine.ingest(report.new_tasks)
        log.debug(
            f"Scan: {report.files_scanned} files, {len(report.new_tasks)} new annotations, "
            f"{len(result.added)} added, {len(result.updated)} updated"
        )
        return ScanOutcome(report=report, result=result)

    async def file_saved(self, file_path: str) -> ReconcileResult:
        if not self.cfg.auto_scan or not self.scanner.should_scan_path(file_path):
            return ReconcileResult()
        self.scanner.invalidate(file_path)
        new_tasks = await self.scanner.scan_file(file_path)
        result = await self.engine.ingest(new_tasks)
        # Lines removed without a new annotation appearing are caught here.
        return result.merge(await self.engine.validate_file(file_path))

    async def file_deleted(self, file_path: str) -> ReconcileResult:
        self.scanner.invalidate(file_path)
        return await self.engine.validate_file(file_path)

    async def validate(self) -> ReconcileResult:
        return await self.engine.validate()

    async def rescan(self, *, force: bool = False) -> ScanOutcome:
        """Forget seen annotations and cached files, scan again, then validate."""
        self.scanner.clear()
        outcome = await self.scan_workspace(force=force)
        outcome.result.merge(await self.engine.validate())
        return outcome

    async def run_periodic_validation(self) -> None:
        await self.engine.run_periodic_validation(self.cfg.validation_interval)
