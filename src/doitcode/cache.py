"""Short-TTL memoization of per-file extraction results."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from doitcode.tasks.model import Annotation

DEFAULT_TTL_MS = 5_000


@dataclass
class CacheEntry:
    file_path: str
    annotations: list[Annotation]
    captured_at: float


class ScanCache:
    """Per-file annotation cache with lazy expiry.

    Usage::

        cache = ScanCache(ttl_ms=5000)
        cache.put(path, annotations)
        cache.get(path)          # annotations, or None once older than the TTL
        cache.invalidate(path)   # file saved / deleted
    """

    def __init__(
        self,
        ttl_ms: int = DEFAULT_TTL_MS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_ms / 1000.0
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, file_path: str) -> list[Annotation] | None:
        entry = self._entries.get(file_path)
        if entry is None:
            return None
        if self._clock() - entry.captured_at > self._ttl:
            del self._entries[file_path]
            return None
        return entry.annotations

    def put(self, file_path: str, annotations: list[Annotation]) -> None:
        self._entries[file_path] = CacheEntry(
            file_path=file_path,
            annotations=list(annotations),
            captured_at=self._clock(),
        )

    def invalidate(self, file_path: str) -> None:
        self._entries.pop(file_path, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, file_path: object) -> bool:
        return file_path in self._entries
