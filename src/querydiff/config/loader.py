"""
Locating and reading TOML configuration
=======================================

Runtime defaults ship inside the package as ``defaults.toml``. A second file
named by ``QUERYDIFF_DEFAULTS_PATH`` may be layered on top of it. Reading
never raises: every outcome, including a missing or malformed file, comes
back as a ConfigSource whose ``error_kind`` says what went wrong.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources as importlib_resources
import os
from pathlib import Path
import tempfile
import tomllib
from types import MappingProxyType
from typing import Any, Mapping

_RESOURCE_PACKAGE = "querydiff.config"
_RUNTIME_DEFAULTS_FILE = "defaults.toml"
DEFAULTS_PATH_ENV_VAR = "QUERYDIFF_DEFAULTS_PATH"
PACKAGED_ORIGIN = "packaged_toml"
OVERRIDE_ORIGIN = "override_toml"
_MAX_CONFIG_FILE_BYTES = 1_048_576
_MATERIALIZED: dict[str, Path] = {}
_MATERIALIZE_DIR: tempfile.TemporaryDirectory | None = None


@dataclass(frozen=True)
class ConfigSource:
    origin: str
    path: str
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    error_kind: str | None = None
    size_bytes: int | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None


def _packaged_path(filename: str) -> Path:
    resource = importlib_resources.files(_RESOURCE_PACKAGE).joinpath(filename)
    if isinstance(resource, Path):
        return resource
    # Zipped installs hand back a Traversable; copy it out once per process.
    global _MATERIALIZE_DIR
    cached = _MATERIALIZED.get(filename)
    if cached is not None and cached.exists():
        return cached
    if _MATERIALIZE_DIR is None:
        _MATERIALIZE_DIR = tempfile.TemporaryDirectory(prefix="querydiff-config-")
    target = Path(_MATERIALIZE_DIR.name) / filename
    target.write_bytes(resource.read_bytes())
    _MATERIALIZED[filename] = target
    return target


def override_path() -> Path | None:
    value = os.getenv(DEFAULTS_PATH_ENV_VAR, "").strip()
    return Path(value) if value else None


def resolve_runtime_defaults_path() -> Path:
    """The file that wins: the override when one is set, else the packaged defaults."""
    return override_path() or _packaged_path(_RUNTIME_DEFAULTS_FILE)


@lru_cache(maxsize=16)
def _parse_file(path_str: str, mtime_ns: int, size_bytes: int):
    # mtime and size only key the cache so that edited files are re-read.
    del mtime_ns, size_bytes
    with Path(path_str).open("rb") as handle:
        return tomllib.load(handle)


def read_toml_source(path, origin: str = OVERRIDE_ORIGIN) -> ConfigSource:
    path = Path(path)
    try:
        resolved = path.expanduser().resolve()
        stat = resolved.stat()
    except FileNotFoundError:
        return ConfigSource(origin, str(path), error_kind="missing")
    except OSError:
        return ConfigSource(origin, str(path), error_kind="unreadable")

    size = int(stat.st_size)
    if size > _MAX_CONFIG_FILE_BYTES:
        return ConfigSource(origin, str(resolved), error_kind="oversized", size_bytes=size)
    try:
        loaded = _parse_file(str(resolved), int(stat.st_mtime_ns), size)
    except (tomllib.TOMLDecodeError, UnicodeDecodeError):
        return ConfigSource(origin, str(resolved), error_kind="invalid_toml", size_bytes=size)
    except OSError:
        return ConfigSource(origin, str(resolved), error_kind="unreadable", size_bytes=size)
    return ConfigSource(origin, str(resolved), MappingProxyType(loaded), size_bytes=size)


def packaged_defaults_source() -> ConfigSource:
    return read_toml_source(_packaged_path(_RUNTIME_DEFAULTS_FILE), PACKAGED_ORIGIN)


def override_defaults_source() -> ConfigSource | None:
    path = override_path()
    if path is None:
        return None
    return read_toml_source(path, OVERRIDE_ORIGIN)


def load_runtime_defaults() -> dict:
    """Raw payload of the winning file, or an empty dict when it cannot be read."""
    source = override_defaults_source() or packaged_defaults_source()
    return dict(source.payload) if source.ok else {}
