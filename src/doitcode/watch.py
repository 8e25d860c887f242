"""File system watch binding: save/delete events delivered to the asyncio loop."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from doitcode import log

FileCallback = Callable[[str], Awaitable[object]]

SAVE = "save"
DELETE = "delete"


class WorkspaceEventHandler(FileSystemEventHandler):
    """Forwards file events from the observer thread onto an asyncio queue."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[tuple[str, str]]) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue

    def _put(self, kind: str, path: str | bytes) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, (kind, os.fsdecode(path)))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(SAVE, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(SAVE, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(DELETE, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._put(DELETE, event.src_path)
        self._put(SAVE, event.dest_path)


async def watch_workspace(
    root: str,
    on_save: FileCallback,
    on_delete: FileCallback,
    *,
    debounce: float = 0.2,
) -> None:
    """Dispatch save/delete events under *root* until cancelled.

    Events for the same path arriving within *debounce* seconds are coalesced,
    since editors usually emit several writes per save.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
    observer = Observer()
    observer.schedule(WorkspaceEventHandler(loop, queue), root, recursive=True)
    observer.start()
    log.debug(f"Watching {root}")

    try:
        while True:
            kind, path = await queue.get()
            pending: dict[str, str] = {path: kind}
            await asyncio.sleep(debounce)
            while not queue.empty():
                more_kind, more_path = queue.get_nowait()
                pending[more_path] = more_kind

            for event_path, event_kind in pending.items():
                try:
                    if event_kind == DELETE:
                        await on_delete(event_path)
                    else:
                        await on_save(event_path)
                except Exception as exc:
                    log.error(f"Failed to process {event_kind} of {event_path}: {exc}")
    finally:
        observer.stop()
        observer.join(timeout=5)
