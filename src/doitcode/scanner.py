"""File scanning: extraction per file, seen-key suppression, batched workspace scans."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from doitcode import log
from doitcode.cache import ScanCache
from doitcode.config import Config
from doitcode.errors import FileUnreadable
from doitcode.parser import compile_custom_patterns, extract, is_noise, should_parse_file
from doitcode.ports import FileSource
from doitcode.tasks.model import Annotation, Task, task_from_annotation
from doitcode.workspace import LocalFileSource, PathFilter, normalize_path

SeenKey = tuple[str, int, str, str]


@dataclass
class ScanReport:
    files_scanned: int = 0
    new_tasks: list[Task] = field(default_factory=list)
    unreadable: list[str] = field(default_factory=list)


class Scanner:
    """Turns file contents into candidate tasks and answers "is this task still there?".

    An annotation is emitted once per ``(file, line, tag, text)`` key for the
    lifetime of the scanner, so re-saving an unchanged file yields nothing.
    """

    def __init__(
        self,
        cfg: Config,
        *,
        source: FileSource | None = None,
        cache: ScanCache | None = None,
        root: str | None = None,
        project: str | None = None,
    ) -> None:
        self.cfg = cfg
        self.source: FileSource = source if source is not None else LocalFileSource()
        self.cache = cache if cache is not None else ScanCache(cfg.file_cache_ttl_ms)
        self.root = root
        self.project = project
        self._patterns = compile_custom_patterns(cfg.custom_patterns)
        self._path_filter = PathFilter(cfg.exclude_patterns, root=root)
        self._seen: set[SeenKey] = set()

    # ── seen keys ────────────────────────────────────────────────────

    def mark_processed(self, file_path: str, line_number: int, tag: str, text: str) -> None:
        self._seen.add((normalize_path(file_path), line_number, tag, text.strip()))

    def clear(self) -> None:
        """Forget every seen annotation and cached file (used by rescan)."""
        self._seen.clear()
        self.cache.clear()

    def invalidate(self, file_path: str) -> None:
        self.cache.invalidate(normalize_path(file_path))

    def should_scan_path(self, file_path: str) -> bool:
        return self._path_filter.should_scan(file_path)

    # ── per-file extraction ──────────────────────────────────────────

    def extract(self, text: str) -> list[Annotation]:
        return extract(text, self._patterns)

    def collect_new(self, file_path: str, text: str, *, force: bool = False) -> list[Task]:
        """Candidate tasks for the annotations in *text* not seen before."""
        if not self.should_scan_path(file_path):
            return []
        if not should_parse_file(file_path, text, self.cfg, force=force):
            return []

        path = normalize_path(file_path)
        annotations = self.extract(text)
        self.cache.put(path, annotations)

        new_tasks: list[Task] = []
        for annotation in annotations:
            if is_noise(annotation):
                continue
            key = (path, annotation.line_number, annotation.tag.value, annotation.text.strip())
            if key in self._seen:
                continue
            self._seen.add(key)
            new_tasks.append(task_from_annotation(annotation, path, project=self.project))
        return new_tasks

    async def _read(self, file_path: str) -> str:
        return await asyncio.to_thread(self.source.read_text, file_path)

    async def scan_file(self, file_path: str, *, force: bool = False) -> list[Task]:
        _, new_tasks, _ = await self._scan_for_report(file_path, force)
        return new_tasks

    # ── workspace ────────────────────────────────────────────────────

    async def list_files(self) -> list[str]:
        if self.root is None:
            return []
        return await asyncio.to_thread(
            self.source.list_files,
            self.root,
            self.cfg.supported_extensions,
            self.cfg.exclude_patterns,
        )

    async def scan_files(self, files: Iterable[str], *, force: bool = False) -> ScanReport:
        """Scan *files* in fixed-size concurrent groups with a short pause between groups."""
        report = ScanReport()
        paths = [f for f in files if self.should_scan_path(f)]
        batch_size = self.cfg.scan_batch_size
        pause = self.cfg.scan_batch_pause_ms / 1000.0

        for start in range(0, len(paths), batch_size):
            batch = paths[start:start + batch_size]
            results = await asyncio.gather(*(self._scan_for_report(p, force) for p in batch))
            for path, new_tasks, ok in results:
                report.files_scanned += 1
                if not ok:
                    report.unreadable.append(path)
                report.new_tasks.extend(new_tasks)

            if start + batch_size < len(paths):
                await asyncio.sleep(pause)

        log.debug(f"Scanned {report.files_scanned} files, found {len(report.new_tasks)} TODOs")
        return report

    async def _scan_for_report(self, file_path: str, force: bool) -> tuple[str, list[Task], bool]:
        try:
            text = await self._read(file_path)
        except FileUnreadable as exc:
            log.warn(f"Failed to scan file: {exc}")
            self.invalidate(file_path)
            return file_path, [], False
        return file_path, self.collect_new(file_path, text, force=force), True

    async def scan_workspace(self, *, force: bool = False) -> ScanReport:
        if not self.cfg.auto_scan and not force:
            log.debug("autoScan is off; skipping workspace scan")
            return ScanReport()
        files = await self.list_files()
        return await self.scan_files(files, force=force)

    # ── presence checks ──────────────────────────────────────────────

    async def current_annotations(self, file_path: str) -> list[Annotation] | None:
        """Annotations currently in *file_path* (cache or fresh read); ``None`` if unreadable."""
        path = normalize_path(file_path)
        cached = self.cache.get(path)
        if cached is not None:
            return cached

        try:
            text = await self._read(path)
        except FileUnreadable as exc:
            log.debug(f"Could not validate file: {exc}")
            self.cache.invalidate(path)
            return None

        annotations = self.extract(text)
        self.cache.put(path, annotations)
        return annotations

    @staticmethod
    def contains_text(annotations: Iterable[Annotation], text: str) -> bool:
        wanted = text.strip()
        return any(a.text.strip() == wanted for a in annotations)

    async def task_exists_in_file(self, task: Task) -> bool:
        if task.origin is None:
            return False
        annotations = await self.current_annotations(task.origin.file_path)
        if annotations is None:
            return False
        return self.contains_text(annotations, task.text)

    async def find_missing(self, tasks: Iterable[Task]) -> list[str]:
        """Ids of file-derived *tasks* whose text no longer appears in their file.

        Files are checked concurrently; an unreadable file counts every task
        tied to it as missing.
        """
        by_file: dict[str, list[Task]] = {}
        for task in tasks:
            if task.origin is None:
                continue
            by_file.setdefault(task.origin.file_path, []).append(task)

        async def _check(file_path: str, file_tasks: list[Task]) -> list[str]:
            annotations = await self.current_annotations(file_path)
            if annotations is None:
                return [t.id for t in file_tasks]
            return [t.id for t in file_tasks if not self.contains_text(annotations, t.text)]

        results = await asyncio.gather(*(_check(p, ts) for p, ts in by_file.items()))
        return [task_id for ids in results for task_id in ids]
