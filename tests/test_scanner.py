"""Tests for the Scanner: seen-key suppression, batched scans and presence checks."""

from __future__ import annotations

import asyncio

import pytest

from doitcode.cache import ScanCache
from doitcode.config import Config
from doitcode.scanner import Scanner
from fakes import WORKSPACE, FakeClock, FakeFileSource, ws


def _scanner(source: FakeFileSource, **cfg_kwargs) -> Scanner:
    cfg_kwargs.setdefault("scan_batch_pause_ms", 0)
    cfg = Config(state_file="-", **cfg_kwargs)
    return Scanner(cfg, source=source, root=WORKSPACE, project="proj")


# ═══════════════════════════════════════════════════════════════════════
# Per-file extraction
# ═══════════════════════════════════════════════════════════════════════


class TestCollectNew:
    """Each (file, line, tag, text) key is emitted once."""

    def test_builds_candidate_tasks(self, source):
        scanner = _scanner(source)
        tasks = scanner.collect_new(ws("a.py"), "x = 1\n# TODO: wire the config loader\n")
        assert len(tasks) == 1
        task = tasks[0]
        assert task.id == f"{ws('a.py')}:wire the config loader"
        assert task.project == "proj"
        assert task.origin.line_number == 1
        assert task.origin.raw_line == "# TODO: wire the config loader"
        assert not task.completed

    def test_same_key_is_emitted_once(self, source):
        scanner = _scanner(source)
        text = "# TODO: wire the config loader\n"
        assert len(scanner.collect_new(ws("a.py"), text)) == 1
        assert scanner.collect_new(ws("a.py"), text) == []

    def test_moved_line_is_a_new_key(self, source):
        scanner = _scanner(source)
        scanner.collect_new(ws("a.py"), "# TODO: wire the config loader\n")
        moved = scanner.collect_new(ws("a.py"), "\n\n# TODO: wire the config loader\n")
        assert [t.origin.line_number for t in moved] == [2]

    def test_mark_processed_suppresses(self, source):
        scanner = _scanner(source)
        scanner.mark_processed(ws("a.py"), 0, "TODO", "wire the config loader")
        assert scanner.collect_new(ws("a.py"), "# TODO: wire the config loader\n") == []

    def test_clear_forgets_seen_keys(self, source):
        scanner = _scanner(source)
        text = "# TODO: wire the config loader\n"
        scanner.collect_new(ws("a.py"), text)
        scanner.clear()
        assert len(scanner.collect_new(ws("a.py"), text)) == 1

    def test_noise_is_cached_but_not_emitted(self, source):
        scanner = _scanner(source)
        assert scanner.collect_new(ws("a.py"), "# TODO: short\n") == []
        assert len(scanner.cache.get(ws("a.py"))) == 1

    def test_excluded_path_yields_nothing(self, source):
        scanner = _scanner(source)
        assert scanner.collect_new(ws("node_modules/x.js"), "// TODO: from a dependency\n") == []


# ═══════════════════════════════════════════════════════════════════════
# Workspace scans
# ═══════════════════════════════════════════════════════════════════════


class TestScanWorkspace:
    @pytest.mark.asyncio
    async def test_scans_every_listed_file(self, source):
        source.write(ws("a.py"), "# TODO: first file annotation\n")
        source.write(ws("b.ts"), "// FIXME: second file annotation\n")
        source.write(ws("c.md"), "nothing here\n")
        report = await _scanner(source).scan_workspace()
        assert report.files_scanned == 3
        assert sorted(t.text for t in report.new_tasks) == [
            "first file annotation",
            "second file annotation",
        ]
        assert report.unreadable == []

    @pytest.mark.asyncio
    async def test_unreadable_file_is_reported_and_skipped(self, source):
        source.write(ws("a.py"), "# TODO: first file annotation\n")
        bad = source.write(ws("b.py"), "# TODO: never read at all\n")
        source.failing.add(bad)
        report = await _scanner(source).scan_workspace()
        assert report.unreadable == [bad]
        assert [t.text for t in report.new_tasks] == ["first file annotation"]

    @pytest.mark.asyncio
    async def test_auto_scan_off_needs_force(self, source):
        source.write(ws("a.py"), "# TODO: first file annotation\n")
        scanner = _scanner(source, auto_scan=False)
        report = await scanner.scan_workspace()
        assert report.files_scanned == 0
        report = await scanner.scan_workspace(force=True)
        assert len(report.new_tasks) == 1

    @pytest.mark.asyncio
    async def test_batches_pause_between_groups(self, source, monkeypatch):
        for i in range(25):
            source.write(ws(f"f{i:02}.py"), f"# TODO: annotation number {i:02}\n")

        pauses: list[float] = []
        real_sleep = asyncio.sleep

        async def _sleep(delay, *args, **kwargs):
            pauses.append(delay)
            await real_sleep(0)

        monkeypatch.setattr("doitcode.scanner.asyncio.sleep", _sleep)
        report = await _scanner(source, scan_batch_size=10, scan_batch_pause_ms=10).scan_workspace()
        assert report.files_scanned == 25
        assert len(report.new_tasks) == 25
        assert pauses == [0.01, 0.01]


# ═══════════════════════════════════════════════════════════════════════
# Presence checks
# ═══════════════════════════════════════════════════════════════════════


class TestPresence:
    """Text membership against the file's current annotations."""

    @pytest.mark.asyncio
    async def test_find_missing(self, source, make_task):
        source.write(ws("a.py"), "# TODO: still here in file\n")
        present = make_task("still here in file", file_path=ws("a.py"))
        gone = make_task("no longer in the file", file_path=ws("a.py"))
        manual = make_task("manual task text")
        missing = await _scanner(source).find_missing([present, gone, manual])
        assert missing == [gone.id]

    @pytest.mark.asyncio
    async def test_presence_ignores_line_number(self, source, make_task):
        source.write(ws("a.py"), "\n\n\n# TODO: still here in file\n")
        task = make_task("still here in file", file_path=ws("a.py"), line_number=0)
        assert await _scanner(source).task_exists_in_file(task)

    @pytest.mark.asyncio
    async def test_unreadable_file_counts_all_tasks_missing(self, source, make_task):
        first = make_task("first task in gone file", file_path=ws("gone.py"))
        second = make_task("second task in gone file", file_path=ws("gone.py"))
        missing = await _scanner(source).find_missing([first, second])
        assert sorted(missing) == sorted([first.id, second.id])

    @pytest.mark.asyncio
    async def test_fresh_cache_avoids_rereads(self, source):
        path = source.write(ws("a.py"), "# TODO: cached read check\n")
        scanner = _scanner(source)
        await scanner.scan_file(path)
        await scanner.current_annotations(path)
        await scanner.current_annotations(path)
        assert source.reads[path] == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_reread(self, source):
        path = source.write(ws("a.py"), "# TODO: cached read check\n")
        scanner = _scanner(source)
        await scanner.current_annotations(path)
        source.write(path, "")
        scanner.invalidate(path)
        assert await scanner.current_annotations(path) == []
        assert source.reads[path] == 2


class TestInjectedCollaborators:
    """Injected store and cache are used even while they are still empty."""

    def test_empty_cache_is_kept(self, source):
        cache = ScanCache(5000, clock=FakeClock())
        cfg = Config(state_file="-", scan_batch_pause_ms=0)
        scanner = Scanner(cfg, source=source, cache=cache, root=WORKSPACE)
        assert len(cache) == 0
        assert scanner.cache is cache

    @pytest.mark.asyncio
    async def test_read_after_ttl_rereads_file(self, source):
        clock = FakeClock()
        cfg = Config(state_file="-", scan_batch_pause_ms=0)
        scanner = Scanner(cfg, source=source, cache=ScanCache(5000, clock=clock), root=WORKSPACE)
        path = source.write(ws("a.py"), "# TODO: cached read check\n")

        await scanner.current_annotations(path)
        clock.advance(4.0)
        await scanner.current_annotations(path)
        assert source.reads[path] == 1

        source.write(path, "# TODO: rewritten after the ttl\n")
        clock.advance(1.5)
        found = await scanner.current_annotations(path)
        assert source.reads[path] == 2
        assert [a.text for a in found] == ["rewritten after the ttl"]


class TestScannerWithOddText:
    @pytest.mark.asyncio
    async def test_non_ascii_tag_lookalike_does_not_abort_scan(self, source):
        source.write(ws("a.py"), "# TODO: first file annotation\n")
        source.write(ws("b.py"), "# HAC\u212A: rewrite the retry loop\n")
        report = await _scanner(source).scan_workspace()
        assert report.files_scanned == 2
        assert [t.text for t in report.new_tasks] == ["first file annotation"]
