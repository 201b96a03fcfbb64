from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .constants import (
    DEFAULT_ARCHIVE_NAME,
    DEFAULT_BASE_URL,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_COMPRESS_LEVEL,
    DEFAULT_PIPE_DEPTH,
    DEFAULT_TIMEOUT,
)
from .errors import ConfigError
from .header import ContainerHeader


@dataclass(frozen=True)
class Options:
    """Process-wide settings, built once at the command-line boundary.

    ``compress``/``encrypt``/``archive``/``salted`` select the transforms on
    upload. On download they are only consulted when ``header`` is False
    (legacy headerless streams); otherwise the container header decides.
    """

    base_url: str = DEFAULT_BASE_URL
    compress: bool = True
    encrypt: bool = False
    archive: bool = False
    salted: bool = True
    header: bool = True
    checksum: bool = False
    progress: bool = False
    max_days: int = 0
    max_downloads: int = 0
    dest: str = "."
    stdout: bool = False
    archive_name: str = DEFAULT_ARCHIVE_NAME
    chunk_size: int = DEFAULT_CHUNK_SIZE
    pipe_depth: int = DEFAULT_PIPE_DEPTH
    compress_level: int = DEFAULT_COMPRESS_LEVEL
    timeout: float = DEFAULT_TIMEOUT

    def container_header(self, archived: Optional[bool] = None) -> ContainerHeader:
        return ContainerHeader(
            compressed=self.compress,
            encrypted=self.encrypt,
            archived=self.archive if archived is None else archived,
            unsalted=self.encrypt and not self.salted,
        )


_FIELD_TYPES: Dict[str, type] = {
    f.name: type(f.default) for f in dataclasses.fields(Options)
}


def _check_value(key: str, value: Any) -> Any:
    expected = _FIELD_TYPES[key]
    if expected is bool:
        ok = isinstance(value, bool)
    elif expected is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif expected is float:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        value = float(value) if ok else value
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise ConfigError(f"config key {key!r} must be {expected.__name__}, got {type(value).__name__}")
    if key == "compress_level" and not -1 <= value <= 9:
        raise ConfigError(f"config key {key!r} must be between -1 and 9")
    if key in ("chunk_size", "pipe_depth") and value < 1:
        raise ConfigError(f"config key {key!r} must be positive")
    if expected is int and key != "compress_level" and value < 0:
        raise ConfigError(f"config key {key!r} must not be negative")
    return value


def load_config(path: str) -> Dict[str, Any]:
    """Read a JSON config file into validated option values."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    unknown = sorted(k for k in raw if k not in _FIELD_TYPES)
    if unknown:
        raise ConfigError(f"unknown config keys in {path}: {', '.join(unknown)}")
    return {k: _check_value(k, v) for k, v in raw.items()}


def build_options(
    file_values: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Options:
    """Merge defaults < config file < command line. ``None`` overrides are ignored."""
    values: Dict[str, Any] = {}
    values.update(file_values or {})
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key not in _FIELD_TYPES:
            raise ConfigError(f"unknown option {key!r}")
        values[key] = _check_value(key, value)
    return Options(**values)
