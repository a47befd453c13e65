from __future__ import annotations

from querydiff.util.core import ManagedByteStream, ReadableException, open_fixture
from querydiff.util.logging import log_structured_event, new_run_id
from querydiff.util.timing import timed

__all__ = [
    "ManagedByteStream",
    "open_fixture",
    "ReadableException",
    "new_run_id",
    "log_structured_event",
    "timed",
]
