from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter


@dataclass
class Elapsed:
    """Wall-clock time of a ``timed()`` block; filled in when the block exits."""

    seconds: float = 0.0

    @property
    def milliseconds(self) -> float:
        return round(self.seconds * 1000.0, 3)


@contextmanager
def timed():
    elapsed = Elapsed()
    start = perf_counter()
    try:
        yield elapsed
    finally:
        elapsed.seconds = perf_counter() - start
