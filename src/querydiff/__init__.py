from querydiff._version import VERSION, __version__

from importlib import import_module
from typing import Any

__all__ = [
    "VERSION",
    "__version__",
    "AnnotatedCSVDialect",
    "InfluxQLJSONDialect",
    "ResultIterator",
    "compare_results",
    "compare_text",
    "GoldenCase",
    "GoldenDriver",
    "discover_cases",
    "SkipRegistry",
    "StaticDBRPMappingService",
]

_SYMBOL_TO_MODULE = {
    "AnnotatedCSVDialect": "querydiff.codec.dialects",
    "InfluxQLJSONDialect": "querydiff.codec.dialects",
    "ResultIterator": "querydiff.table.model",
    "compare_results": "querydiff.compare.comparator",
    "compare_text": "querydiff.compare.comparator",
    "GoldenCase": "querydiff.harness.cases",
    "GoldenDriver": "querydiff.harness.driver",
    "discover_cases": "querydiff.harness.cases",
    "SkipRegistry": "querydiff.harness.skips",
    "StaticDBRPMappingService": "querydiff.compiler.mapping",
}


def __getattr__(name: str) -> Any:
    module_name = _SYMBOL_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError("module 'querydiff' has no attribute %r" % name)
    return getattr(import_module(module_name), name)
