"""Workspace file discovery, path normalization and the local-disk FileSource."""

from __future__ import annotations

import fnmatch
import os
import re
from collections.abc import Iterable, Sequence
from pathlib import Path

from doitcode import log
from doitcode.config import EXCLUDED_DIR_NAMES, EXCLUDED_FILE_FRAGMENTS
from doitcode.errors import UNREADABLE_ERRORS, FileUnreadable, InvalidPattern, describe_os_error
from doitcode.io_utils import read_text
from doitcode.parser import has_supported_extension


def normalize_path(path: str | Path) -> str:
    """Absolute, case-normalized (on Windows), forward-slash form of *path*."""
    return os.path.normcase(os.path.abspath(str(path))).replace("\\", "/")


def project_name(root: str | Path) -> str:
    """Project scope label for tasks found under *root* (its folder name)."""
    return Path(os.path.abspath(str(root))).name or str(root)


# ── exclusion ────────────────────────────────────────────────────────


def compile_exclude_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob such as ``**/generated/**`` or ``*.min.css``."""
    try:
        return re.compile(fnmatch.translate(pattern.strip()), re.IGNORECASE)
    except re.error as exc:
        raise InvalidPattern(pattern, str(exc)) from exc


class PathFilter:
    """Built-in exclusions plus user exclude globs.

    A glob without a slash also matches any single path component, so
    ``temp`` excludes every ``temp/`` directory.
    """

    def __init__(self, exclude_patterns: Iterable[str] = (), root: str | Path | None = None) -> None:
        self._root = normalize_path(root) if root is not None else None
        self._globs: list[tuple[str, re.Pattern[str]]] = []
        for raw in exclude_patterns:
            if not raw or not raw.strip():
                continue
            try:
                self._globs.append((raw.strip(), compile_exclude_pattern(raw)))
            except InvalidPattern as exc:
                log.warn(f"{exc}; ignoring exclude pattern")

    def _candidates(self, normalized: str) -> list[str]:
        out = [normalized]
        if self._root and normalized.startswith(self._root + "/"):
            out.append(normalized[len(self._root) + 1:])
        return out

    def is_excluded_dir(self, name: str) -> bool:
        if name.lower() in EXCLUDED_DIR_NAMES:
            return True
        return any(
            "/" not in raw and pattern.match(name) for raw, pattern in self._globs
        )

    def should_scan(self, path: str | Path) -> bool:
        normalized = normalize_path(path)
        # Only components below the workspace root count, so a root living in
        # e.g. ~/env/project is still scanned.
        parts = self._candidates(normalized)[-1].split("/")

        for part in parts[:-1]:
            if part.lower() in EXCLUDED_DIR_NAMES:
                return False

        lowered = parts[-1].lower()
        if any(fragment.lower() in lowered for fragment in EXCLUDED_FILE_FRAGMENTS):
            return False

        for raw, pattern in self._globs:
            if "/" in raw:
                if any(pattern.match(c) for c in self._candidates(normalized)):
                    return False
            elif any(pattern.match(part) for part in parts):
                return False

        return True


def list_workspace_files(
    root: str | Path,
    extensions: Sequence[str],
    exclude_patterns: Sequence[str] = (),
) -> list[str]:
    """Walk *root* and return normalized paths of scannable files, sorted."""
    path_filter = PathFilter(exclude_patterns, root=root)
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not path_filter.is_excluded_dir(d))
        for name in filenames:
            full = os.path.join(dirpath, name)
            if not has_supported_extension(name, extensions):
                continue
            if path_filter.should_scan(full):
                found.append(normalize_path(full))
    found.sort()
    return found


class LocalFileSource:
    """FileSource backed by the local file system."""

    def read_text(self, path: str) -> str:
        try:
            return read_text(path)
        except UNREADABLE_ERRORS as exc:
            raise FileUnreadable(path, describe_os_error(exc)) from exc

    def list_files(
        self,
        root: str,
        extensions: Sequence[str],
        exclude_patterns: Sequence[str],
    ) -> list[str]:
        return list_workspace_files(root, extensions, exclude_patterns)
