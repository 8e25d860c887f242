"""Configuration defaults, workspace config file, env vars, and runtime options."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from doitcode import log
from doitcode.io_utils import read_json, write_json

WORKSPACE_CONFIG_FILE = ".doitcode.json"
ENV_PREFIX = "DOITCODE_"

DEFAULT_STATE_FILE = Path.home() / ".doitcode" / "tasks.json"

DEFAULT_SUPPORTED_EXTENSIONS: tuple[str, ...] = (
    "js", "ts", "jsx", "tsx", "py", "java", "cs", "cpp", "c", "php", "go",
    "rs", "html", "css", "scss", "sql", "md", "txt", "vue", "svelte", "rb",
    "swift", "kt", "scala", "clj",
)

# Directory names that are never scanned, wherever they appear in a path.
EXCLUDED_DIR_NAMES: frozenset[str] = frozenset({
    "node_modules", "chunks", "dist", "build", "out", ".git", ".vscode",
    "vendor", "target", "bin", "obj", ".next", ".nuxt", "coverage",
    ".nyc_output", "logs", ".webpack", ".parcel-cache", "__pycache__",
    ".pytest_cache", ".idea", ".venv", "venv", "env", "next-env",
})

# File-name fragments that are never scanned.
EXCLUDED_FILE_FRAGMENTS: tuple[str, ...] = (
    ".min.js", ".bundle.js", ".chunk.js", ".DS_Store", "next-env.d.ts",
)

# Workspace config keys as written by the editor extension (camelCase).
_CAMEL_KEYS: dict[str, str] = {
    "autoScan": "auto_scan",
    "maxFileSize": "max_file_size",
    "supportedFileTypes": "supported_extensions",
    "supportedExtensions": "supported_extensions",
    "excludePatterns": "exclude_patterns",
    "customPatterns": "custom_patterns",
    "similarityThreshold": "similarity_threshold",
    "autoComplete": "auto_complete",
    "validationInterval": "validation_interval_ms",
    "validationIntervalMs": "validation_interval_ms",
    "fileCacheTtl": "file_cache_ttl_ms",
    "fileCacheTtlMs": "file_cache_ttl_ms",
    "scanBatchSize": "scan_batch_size",
    "scanBatchPauseMs": "scan_batch_pause_ms",
}


@dataclass
class Config:
    """Runtime configuration consumed by the scanner and the reconciliation engine."""

    # Scanning
    auto_scan: bool = True
    max_file_size: int = 1_048_576
    supported_extensions: list[str] = field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_EXTENSIONS)
    )
    exclude_patterns: list[str] = field(default_factory=list)
    custom_patterns: list[str] = field(default_factory=list)
    scan_batch_size: int = 10
    scan_batch_pause_ms: int = 10

    # Reconciliation
    similarity_threshold: float = 0.7
    auto_complete: bool = True
    validation_interval_ms: int = 180_000
    file_cache_ttl_ms: int = 5_000

    # Storage
    state_file: str = ""
    project: str | None = None

    def __post_init__(self) -> None:
        if not self.state_file:
            self.state_file = os.environ.get(f"{ENV_PREFIX}STATE_FILE") or str(DEFAULT_STATE_FILE)
        self.similarity_threshold = max(0.0, min(1.0, float(self.similarity_threshold)))
        self.supported_extensions = [e.lower().lstrip(".") for e in self.supported_extensions if e]
        self.scan_batch_size = max(1, int(self.scan_batch_size))
        self.scan_batch_pause_ms = max(0, int(self.scan_batch_pause_ms))

    @property
    def validation_interval(self) -> float:
        """Validation interval in seconds."""
        return self.validation_interval_ms / 1000.0


# ── loading ──────────────────────────────────────────────────────────


def _field_names() -> set[str]:
    return {f.name for f in fields(Config)}


def _coerce(name: str, raw: Any) -> Any:
    """Convert a raw file/env value to the type of Config field *name*."""
    default = getattr(Config(state_file="-"), name)
    if isinstance(default, bool):
        if isinstance(raw, str):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        return bool(raw)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        if isinstance(raw, str):
            return [item.strip() for item in raw.split(",") if item.strip()]
        return [str(item) for item in raw]
    return raw


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    known = _field_names()
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = _CAMEL_KEYS.get(key, key)
        if name not in known:
            log.debug(f"Ignoring unknown config key: {key}")
            continue
        out[name] = value
    return out


def read_workspace_config(root: Path) -> dict[str, Any]:
    """Return the settings stored in ``<root>/.doitcode.json`` (empty if absent)."""
    path = root / WORKSPACE_CONFIG_FILE
    if not path.is_file():
        return {}
    try:
        data = read_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        log.warn(f"Ignoring unreadable {path}: {exc}")
        return {}
    if not isinstance(data, dict):
        log.warn(f"Ignoring {path}: expected a JSON object")
        return {}
    return _normalize_keys(data)


def read_env_config(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect ``DOITCODE_<FIELD>`` overrides from the environment."""
    env = os.environ if environ is None else environ
    out: dict[str, Any] = {}
    for name in _field_names():
        raw = env.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None:
            out[name] = raw
    return out


def load_config(root: Path, **overrides: Any) -> Config:
    """Build a Config: defaults < workspace file < environment < *overrides*.

    ``None`` overrides are ignored so CLI options can pass through unset values.
    """
    merged: dict[str, Any] = {}
    merged.update(read_workspace_config(root))
    merged.update(read_env_config())
    merged.update({k: v for k, v in overrides.items() if v is not None})

    kwargs: dict[str, Any] = {}
    for name, raw in merged.items():
        if name in ("state_file", "project"):
            kwargs[name] = raw
            continue
        try:
            kwargs[name] = _coerce(name, raw)
        except (TypeError, ValueError):
            log.warn(f"Invalid value for {name}: {raw!r}; using default")
    return Config(**kwargs)


def save_workspace_config(root: Path, **values: Any) -> Path:
    """Merge *values* into ``<root>/.doitcode.json`` and return its path."""
    path = root / WORKSPACE_CONFIG_FILE
    current: dict[str, Any] = {}
    if path.is_file():
        try:
            loaded = read_json(path)
            if isinstance(loaded, dict):
                current = loaded
        except (OSError, json.JSONDecodeError):
            log.warn(f"Overwriting unreadable {path}")
    # Drop camelCase aliases of the keys being written.
    for key in list(current):
        if _CAMEL_KEYS.get(key) in values:
            del current[key]
    current.update(values)
    write_json(path, current)
    return path
