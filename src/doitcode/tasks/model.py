"""Annotation, Task and Origin data models used across scanning, reconciliation and storage."""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Tag(str, Enum):
    TODO = "TODO"
    FIXME = "FIXME"
    HACK = "HACK"
    NOTE = "NOTE"
    BUG = "BUG"

    @classmethod
    def parse(cls, raw: str | None) -> Tag:
        """Case-insensitive lookup; unknown values fall back to TODO."""
        try:
            return cls((raw or "").strip().upper())
        except ValueError:
            return cls.TODO


class OriginStatus(str, Enum):
    IN_FILE = "in-file"
    REMOVED = "on-removed"
    STALE = "stale"

    @classmethod
    def parse(cls, raw: str | None) -> OriginStatus:
        if not raw:
            return cls.IN_FILE
        try:
            return cls(raw)
        except ValueError:
            return cls.IN_FILE


@dataclass(frozen=True)
class Annotation:
    """A tagged comment found on one line of a file. Identity is positional."""

    tag: Tag
    text: str
    line_number: int
    raw_line: str


@dataclass
class Origin:
    file_path: str
    line_number: int
    raw_line: str
    tag: Tag
    status: OriginStatus = OriginStatus.IN_FILE

    @property
    def file_name(self) -> str:
        return self.file_path.replace("\\", "/").rsplit("/", 1)[-1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "rawLine": self.raw_line,
            "tag": self.tag.value,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Origin:
        return cls(
            file_path=str(data.get("filePath") or ""),
            line_number=int(data.get("lineNumber") or 0),
            raw_line=str(data.get("rawLine", data.get("originalText")) or ""),
            tag=Tag.parse(data.get("tag", data.get("type"))),
            status=OriginStatus.parse(data.get("status")),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Task:
    id: str
    text: str
    completed: bool = False
    project: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    origin: Origin | None = None

    @property
    def is_manual(self) -> bool:
        return self.origin is None

    @property
    def is_removed(self) -> bool:
        return self.origin is not None and self.origin.status == OriginStatus.REMOVED

    @property
    def is_tracked(self) -> bool:
        """File-derived and still followed by reconciliation."""
        return self.origin is not None and self.origin.status == OriginStatus.IN_FILE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "completed": self.completed,
            "project": self.project,
            "createdAt": self.created_at.isoformat(),
            "origin": self.origin.to_dict() if self.origin else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        origin_raw = data.get("origin", data.get("sourceFile"))
        return cls(
            id=str(data["id"]),
            text=str(data.get("text") or ""),
            completed=bool(data.get("completed", False)),
            project=data.get("project"),
            created_at=_parse_timestamp(data.get("createdAt")),
            origin=Origin.from_dict(origin_raw) if isinstance(origin_raw, dict) else None,
        )


def _parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
    if isinstance(raw, str) and raw:
        # Accept the trailing "Z" JavaScript's toISOString() writes.
        text = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return _utcnow()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return _utcnow()


# ── ids ──────────────────────────────────────────────────────────────

_BASE36 = string.digits + string.ascii_lowercase


def file_task_id(file_path: str, text: str) -> str:
    """Id of a file-derived task: normalized path plus annotation text."""
    return f"{file_path}:{text}"


def manual_task_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"manual_{int(time.time() * 1000)}_{suffix}"


def task_from_annotation(
    annotation: Annotation,
    file_path: str,
    *,
    project: str | None = None,
) -> Task:
    """Build the candidate task for an annotation found in *file_path* (already normalized)."""
    text = annotation.text.strip()
    return Task(
        id=file_task_id(file_path, text),
        text=text,
        completed=False,
        project=project,
        origin=Origin(
            file_path=file_path,
            line_number=annotation.line_number,
            raw_line=annotation.raw_line,
            tag=annotation.tag,
            status=OriginStatus.IN_FILE,
        ),
    )
