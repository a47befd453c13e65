from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import logging
from types import MappingProxyType
from typing import Any, Mapping

from querydiff.config.loader import ConfigSource, override_defaults_source, packaged_defaults_source
from querydiff.util.logging import log_structured_event

_MAX_CONFIG_STRING_LENGTH = 256
_MAX_CONFIG_INT = 1 << 34
_MAX_CONFIG_LIST_ITEMS = 64
_MAX_SKIP_ENTRIES = 4096
_VALID_CSV_ANNOTATIONS = frozenset({"datatype", "group", "default"})
RUNTIME_DEFAULTS_SCHEMA_VERSION = 1
_RUNTIME_DEFAULTS_LOG = logging.getLogger("querydiff.config.runtime_defaults")


@dataclass(frozen=True)
class DecoderDefaults:
    default_result_name: str = "_result"
    csv_annotations: tuple[str, ...] = ("datatype", "group", "default")
    error_preview_max_chars: int = 2048


@dataclass(frozen=True)
class HarnessDefaults:
    default_cluster: str = "cluster"
    default_database: str = "db0"
    spool_max_bytes: int = 8 * 1024 * 1024
    diff_context_lines: int = 3
    http_timeout_seconds: int = 60
    missing_expected_reason: str = "expected output is missing"
    missing_query_reason: str = "influxql query is missing"


@dataclass(frozen=True)
class RuntimeDefaults:
    decoder_defaults: DecoderDefaults
    harness_defaults: HarnessDefaults
    mappings: tuple[Mapping[str, Any], ...] = ()
    skips: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


_BUILTIN_RUNTIME_DEFAULTS = RuntimeDefaults(
    decoder_defaults=DecoderDefaults(),
    harness_defaults=HarnessDefaults(),
)


def _to_mapping(value: Any) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    return {}


def _schema_status(payload: Mapping[str, Any]) -> str:
    raw = _to_mapping(payload.get("meta")).get("schema_version")
    if raw is None:
        return "absent"
    try:
        version = int(raw)
    except (TypeError, ValueError):
        return "mismatch"
    return "ok" if version == RUNTIME_DEFAULTS_SCHEMA_VERSION else "mismatch"


def _parse_positive_int(raw: Any, default: int) -> int:
    try:
        parsed = int(raw)
    except (TypeError, ValueError):
        return int(default)
    if parsed <= 0:
        return int(default)
    return min(parsed, _MAX_CONFIG_INT)


def _parse_non_negative_int(raw: Any, default: int) -> int:
    try:
        parsed = int(raw)
    except (TypeError, ValueError):
        return int(default)
    if parsed < 0:
        return int(default)
    return min(parsed, _MAX_CONFIG_INT)


def _parse_small_string(raw: Any, default: str) -> str:
    if raw is None:
        return str(default)
    value = str(raw).strip()
    if not value or len(value) > _MAX_CONFIG_STRING_LENGTH:
        return str(default)
    return value


def _parse_annotations(raw: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        return tuple(default)
    result: list[str] = []
    for value in raw[:_MAX_CONFIG_LIST_ITEMS]:
        item = str(value).strip().lower()
        if item in _VALID_CSV_ANNOTATIONS and item not in result:
            result.append(item)
    # Decoding needs to know column types.
    if "datatype" not in result:
        return tuple(default)
    return tuple(result)


def _parse_mappings(raw: Any) -> tuple[Mapping[str, Any], ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    parsed = []
    for entry in raw[:_MAX_CONFIG_LIST_ITEMS]:
        entry = _to_mapping(entry)
        database = _parse_small_string(entry.get("database"), "")
        bucket_id = _parse_small_string(entry.get("bucket_id"), "")
        if not database or not bucket_id:
            continue
        parsed.append(
            MappingProxyType(
                {
                    "cluster": _parse_small_string(entry.get("cluster"), ""),
                    "database": database,
                    "retention_policy": _parse_small_string(entry.get("retention_policy"), ""),
                    "default": bool(entry.get("default", False)),
                    "organization_id": _parse_small_string(entry.get("organization_id"), ""),
                    "bucket_id": bucket_id,
                }
            )
        )
    return tuple(parsed)


def _parse_skips(raw: Any) -> Mapping[str, str]:
    skips: dict[str, str] = {}
    for name, reason in list(_to_mapping(raw).items())[:_MAX_SKIP_ENTRIES]:
        name = str(name).strip()
        reason = str(reason).strip()
        if name and reason:
            skips[name] = reason
    return MappingProxyType(skips)


def parse_runtime_defaults(payload: Mapping[str, Any] | None, *, base: RuntimeDefaults | None = None) -> RuntimeDefaults:
    root = _to_mapping(payload)
    runtime_base = _BUILTIN_RUNTIME_DEFAULTS if base is None else base

    decoder_raw = _to_mapping(root.get("decoder_defaults"))
    decoder_builtin = runtime_base.decoder_defaults
    decoder_defaults = DecoderDefaults(
        default_result_name=_parse_small_string(
            decoder_raw.get("default_result_name"), decoder_builtin.default_result_name
        ),
        csv_annotations=_parse_annotations(decoder_raw.get("csv_annotations"), decoder_builtin.csv_annotations),
        error_preview_max_chars=_parse_positive_int(
            decoder_raw.get("error_preview_max_chars"), decoder_builtin.error_preview_max_chars
        ),
    )

    harness_raw = _to_mapping(root.get("harness_defaults"))
    harness_builtin = runtime_base.harness_defaults
    harness_defaults = HarnessDefaults(
        default_cluster=_parse_small_string(harness_raw.get("default_cluster"), harness_builtin.default_cluster),
        default_database=_parse_small_string(harness_raw.get("default_database"), harness_builtin.default_database),
        spool_max_bytes=_parse_positive_int(harness_raw.get("spool_max_bytes"), harness_builtin.spool_max_bytes),
        diff_context_lines=_parse_non_negative_int(
            harness_raw.get("diff_context_lines"), harness_builtin.diff_context_lines
        ),
        http_timeout_seconds=_parse_positive_int(
            harness_raw.get("http_timeout_seconds"), harness_builtin.http_timeout_seconds
        ),
        missing_expected_reason=_parse_small_string(
            harness_raw.get("missing_expected_reason"), harness_builtin.missing_expected_reason
        ),
        missing_query_reason=_parse_small_string(
            harness_raw.get("missing_query_reason"), harness_builtin.missing_query_reason
        ),
    )

    mappings = _parse_mappings(root.get("mappings")) if "mappings" in root else runtime_base.mappings
    skips = _parse_skips(root.get("skips")) if "skips" in root else runtime_base.skips
    return RuntimeDefaults(
        decoder_defaults=decoder_defaults,
        harness_defaults=harness_defaults,
        mappings=mappings,
        skips=skips,
    )


def _log_source(source: ConfigSource, schema_status: str, used: bool) -> None:
    log_structured_event(
        _RUNTIME_DEFAULTS_LOG,
        logging.DEBUG if used else logging.WARNING,
        "runtime_defaults_source",
        source=source.origin,
        path=source.path,
        error_kind=source.error_kind,
        schema_status=schema_status,
        used=used,
    )


@lru_cache(maxsize=1)
def get_runtime_defaults() -> RuntimeDefaults:
    """
    Built-in defaults, overlaid with the packaged TOML, overlaid with the
    override file. A layer that cannot be read or carries another schema
    version is skipped with a warning; the packaged file must declare its
    schema version, an override may leave it out.
    """
    defaults = _BUILTIN_RUNTIME_DEFAULTS

    packaged = packaged_defaults_source()
    packaged_status = _schema_status(packaged.payload) if packaged.ok else "unavailable"
    use_packaged = packaged_status == "ok"
    _log_source(packaged, packaged_status, use_packaged)
    if use_packaged:
        defaults = parse_runtime_defaults(packaged.payload, base=defaults)

    override = override_defaults_source()
    if override is not None:
        override_status = _schema_status(override.payload) if override.ok else "unavailable"
        use_override = override_status in ("ok", "absent")
        _log_source(override, override_status, use_override)
        if use_override:
            defaults = parse_runtime_defaults(override.payload, base=defaults)
    return defaults


def clear_runtime_defaults_cache() -> None:
    get_runtime_defaults.cache_clear()
