from querydiff.config.loader import (
    DEFAULTS_PATH_ENV_VAR,
    ConfigSource,
    read_toml_source,
    load_runtime_defaults,
    resolve_runtime_defaults_path,
)
from querydiff.config.runtime_defaults import (
    RUNTIME_DEFAULTS_SCHEMA_VERSION,
    DecoderDefaults,
    HarnessDefaults,
    RuntimeDefaults,
    clear_runtime_defaults_cache,
    get_runtime_defaults,
    parse_runtime_defaults,
)

__all__ = [
    "DEFAULTS_PATH_ENV_VAR",
    "ConfigSource",
    "read_toml_source",
    "resolve_runtime_defaults_path",
    "load_runtime_defaults",
    "RUNTIME_DEFAULTS_SCHEMA_VERSION",
    "DecoderDefaults",
    "HarnessDefaults",
    "RuntimeDefaults",
    "parse_runtime_defaults",
    "get_runtime_defaults",
    "clear_runtime_defaults_cache",
]
