"""Shared fixtures for doit-code tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Use fakes.write_file and doitcode.io_utils.read_text for consistent UTF-8 I/O.
- Core tests run against FakeFileSource / MemoryTaskPersistence instead of the disk.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from doitcode import log
from doitcode.config import Config
from doitcode.tasks.model import Origin, OriginStatus, Tag, Task
from doitcode.tasks.store import MemoryTaskPersistence, TaskStore
from doitcode.tracker import Tracker
from doitcode.workspace import normalize_path
from fakes import WORKSPACE, FakeFileSource, RecordingNotifier


@pytest.fixture(autouse=True)
def _isolated_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Never touch ~/.doitcode; drop DOITCODE_* variables from the host."""
    for name in list(os.environ):
        if name.startswith("DOITCODE_"):
            monkeypatch.delenv(name, raising=False)
    log.set_quiet(False)
    log.set_verbose(False)
    monkeypatch.setenv("DOITCODE_STATE_FILE", str(tmp_path / "state" / "tasks.json"))


def _make_task(
    text: str,
    *,
    file_path: str | None = None,
    line_number: int = 0,
    tag: Tag = Tag.TODO,
    completed: bool = False,
    status: OriginStatus = OriginStatus.IN_FILE,
    project: str | None = "proj",
    age_seconds: int = 0,
    id: str | None = None,
) -> Task:
    origin = None
    if file_path is not None:
        path = normalize_path(file_path)
        origin = Origin(
            file_path=path,
            line_number=line_number,
            raw_line=f"// {tag.value}: {text}",
            tag=tag,
            status=status,
        )
        task_id = id or f"{path}:{text}"
    else:
        task_id = id or f"manual_{abs(hash(text))}"
    return Task(
        id=task_id,
        text=text,
        completed=completed,
        project=project,
        created_at=datetime.now(timezone.utc) - timedelta(seconds=age_seconds),
        origin=origin,
    )


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances (file-derived when file_path is given)."""
    return _make_task


@pytest.fixture
def source() -> FakeFileSource:
    return FakeFileSource()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def persistence() -> MemoryTaskPersistence:
    return MemoryTaskPersistence()


@pytest.fixture
def store(persistence: MemoryTaskPersistence) -> TaskStore:
    s = TaskStore(persistence, project="proj")
    s.load()
    return s


@pytest.fixture
def make_tracker(source: FakeFileSource, notifier: RecordingNotifier, store: TaskStore):
    """Factory for a Tracker over WORKSPACE wired to the in-memory fakes."""

    def _make(cfg: Config | None = None) -> Tracker:
        cfg = cfg or Config(state_file="-", scan_batch_pause_ms=0, project="proj")
        return Tracker(cfg, WORKSPACE, store=store, source=source, notifier=notifier)

    return _make

