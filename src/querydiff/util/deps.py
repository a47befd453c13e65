from __future__ import annotations

from functools import lru_cache
from importlib import import_module

MISSING_DEP_TEMPLATE = "{pkg} is required for {api_name}. Install with: pip install 'querydiff[{extra}]'"


@lru_cache(maxsize=4)
def _optional_module(module_name):
    try:
        return import_module(module_name)
    except ImportError:
        return None


def optional_polars():
    return _optional_module("polars")


def require_polars(api_name):
    polars_module = optional_polars()
    if polars_module is None:
        raise ImportError(MISSING_DEP_TEMPLATE.format(pkg="polars", api_name=api_name, extra="dataframe"))
    return polars_module
