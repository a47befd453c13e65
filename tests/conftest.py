from __future__ import annotations

import pytest

from querydiff.config import runtime_defaults as runtime_defaults_mod
from querydiff.config.loader import DEFAULTS_PATH_ENV_VAR


@pytest.fixture(autouse=True)
def _packaged_runtime_defaults(monkeypatch):
    monkeypatch.delenv(DEFAULTS_PATH_ENV_VAR, raising=False)
    runtime_defaults_mod.clear_runtime_defaults_cache()
    yield
    runtime_defaults_mod.clear_runtime_defaults_cache()
