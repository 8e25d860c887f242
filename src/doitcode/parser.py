"""Annotation extraction: comment lead-in patterns, custom patterns, file eligibility."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from pathlib import PurePath

from doitcode import log
from doitcode.config import Config
from doitcode.errors import InvalidPattern
from doitcode.io_utils import utf8_size
from doitcode.tasks.model import Annotation, Tag

# Annotations whose trimmed text is this long or shorter are noise.
NOISE_TEXT_MAX_LENGTH = 8

_TAGS = "|".join(t.value for t in Tag)

# Tried in order; the first pattern that matches a line wins.
BUILTIN_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("single_line", re.compile(rf"^\s*//\s*({_TAGS}):?\s*(.+)$", re.IGNORECASE | re.ASCII)),
    ("block_comment", re.compile(rf"^\s*/\*\s*({_TAGS}):?\s*(.+?)\s*\*/$", re.IGNORECASE | re.ASCII)),
    ("html_comment", re.compile(rf"^\s*<!--\s*({_TAGS}):?\s*(.+?)\s*-->$", re.IGNORECASE | re.ASCII)),
    ("hash_comment", re.compile(rf"^\s*#\s*({_TAGS}):?\s*(.+)$", re.IGNORECASE | re.ASCII)),
    ("dash_comment", re.compile(rf"^\s*--\s*({_TAGS}):?\s*(.+)$", re.IGNORECASE | re.ASCII)),
)


def parse_line(
    line: str,
    line_number: int,
    extra_patterns: Sequence[re.Pattern[str]] = (),
) -> Annotation | None:
    """Return the annotation on *line*, or ``None`` when no pattern matches."""
    for _name, pattern in BUILTIN_PATTERNS:
        match = pattern.match(line)
        if match:
            annotation = _annotation(match, line, line_number)
            if annotation is not None:
                return annotation

    for pattern in extra_patterns:
        match = pattern.search(line)
        if match:
            annotation = _annotation(match, line, line_number)
            if annotation is not None:
                return annotation

    return None


def _annotation(match: re.Match[str], line: str, line_number: int) -> Annotation | None:
    # Tags outside the known set (odd case folds, loose custom groups) are skipped.
    raw_tag = (match.group(1) or "").strip().upper()
    if raw_tag not in Tag.__members__:
        return None
    return Annotation(
        tag=Tag[raw_tag],
        text=(match.group(2) or "").strip(),
        line_number=line_number,
        raw_line=line.strip(),
    )


def extract(
    file_text: str,
    extra_patterns: Sequence[re.Pattern[str]] = (),
) -> list[Annotation]:
    """Extract every tagged annotation from *file_text*, one per line at most.

    Line numbers are 0-based. Pure: no I/O, no filtering by length.
    """
    annotations: list[Annotation] = []
    for i, line in enumerate(file_text.splitlines()):
        annotation = parse_line(line, i, extra_patterns)
        if annotation is not None:
            annotations.append(annotation)
    return annotations


def is_noise(annotation: Annotation) -> bool:
    text = annotation.text.strip()
    return not text or len(text) <= NOISE_TEXT_MAX_LENGTH


# ── custom patterns ──────────────────────────────────────────────────


def compile_custom_pattern(raw: str) -> re.Pattern[str]:
    """Compile one user pattern. Group 1 must capture the tag, group 2 the text."""
    try:
        pattern = re.compile(raw, re.IGNORECASE | re.ASCII)
    except re.error as exc:
        raise InvalidPattern(raw, str(exc)) from exc
    if pattern.groups < 2:
        raise InvalidPattern(raw, "needs two capture groups (tag, text)")
    return pattern


def compile_custom_patterns(raw_patterns: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile the valid patterns; warn about and skip the rest."""
    compiled: list[re.Pattern[str]] = []
    for raw in raw_patterns:
        if not raw:
            continue
        try:
            compiled.append(compile_custom_pattern(raw))
        except InvalidPattern as exc:
            log.warn(f"{exc}; ignoring it")
    return compiled


# ── file eligibility ─────────────────────────────────────────────────


def has_supported_extension(path: str, extensions: Iterable[str]) -> bool:
    suffix = PurePath(path).suffix.lower().lstrip(".")
    if path.lower().endswith(".txt"):
        return True
    return bool(suffix) and suffix in set(extensions)


def should_parse_file(path: str, text: str, cfg: Config, *, force: bool = False) -> bool:
    """Decide whether *path* (with contents *text*) is scanned at all."""
    if not cfg.auto_scan and not force:
        return False

    size = utf8_size(text)
    if size > cfg.max_file_size:
        log.debug(f"Skipping large file: {path} ({size} bytes)")
        return False

    return has_supported_extension(path, cfg.supported_extensions)
