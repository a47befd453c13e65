from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "HTTPExecutionService",
    "execute_to_buffer",
    "PROXY_URL_ENV_VAR",
    "build_session",
    "resolve_proxy_url",
]

# Resolved lazily: querydiff.util imports the transport module during start-up.
_SYMBOL_TO_MODULE = {
    "HTTPExecutionService": "querydiff.execute.service",
    "execute_to_buffer": "querydiff.execute.service",
    "PROXY_URL_ENV_VAR": "querydiff.execute.transport",
    "build_session": "querydiff.execute.transport",
    "resolve_proxy_url": "querydiff.execute.transport",
}


def __getattr__(name: str) -> Any:
    module_name = _SYMBOL_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(name)
    module = import_module(module_name)
    return getattr(module, name)
