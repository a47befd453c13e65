from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Iterator, Sequence

from querydiff.errors import StreamReleasedError
from querydiff.table.types import VALID_TYPES, format_value, values_equal
from querydiff.util.deps import require_polars

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnMeta:
    label: str
    type: str

    def __post_init__(self):
        if self.type not in VALID_TYPES:
            raise ValueError("unknown column type %r for column %r" % (self.type, self.label))


class GroupKey(object):
    """
    The columns whose values identify the series a table belongs to
    ===============================================================

    A group key is an ordered list of columns with one value each. Two keys
    are equal when they carry the same labels, types and values, independent
    of column order.
    """

    __slots__ = ("_columns", "_values")

    def __init__(self, columns: Sequence[ColumnMeta] = (), values: Sequence[Any] = ()):
        if len(columns) != len(values):
            raise ValueError("group key has %d columns but %d values" % (len(columns), len(values)))
        self._columns = tuple(columns)
        self._values = tuple(values)

    @property
    def columns(self) -> tuple[ColumnMeta, ...]:
        return self._columns

    @property
    def values(self) -> tuple:
        return self._values

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(c.label for c in self._columns)

    def has(self, label: str) -> bool:
        return label in self.labels

    def get(self, label: str, default=None):
        for column, value in zip(self._columns, self._values):
            if column.label == label:
                return value
        return default

    def items(self):
        return [(c.label, v) for c, v in zip(self._columns, self._values)]

    def sorted_entries(self) -> tuple[tuple[str, str, Any], ...]:
        return tuple(sorted(((c.label, c.type, v) for c, v in zip(self._columns, self._values)), key=lambda e: e[0]))

    def canonical(self) -> tuple[tuple[str, str, bool, str], ...]:
        """
        Hashable, label-sorted rendering used to match keys across streams.
        Each entry carries a null flag, so a null value and an empty string
        name different series.
        """
        return tuple(
            (label, type_, value is None, format_value(value, type_)) for label, type_, value in self.sorted_entries()
        )

    def __len__(self):
        return len(self._columns)

    def __eq__(self, other):
        if not isinstance(other, GroupKey):
            return NotImplemented
        mine, theirs = self.sorted_entries(), other.sorted_entries()
        if len(mine) != len(theirs):
            return False
        return all(
            a[0] == b[0] and a[1] == b[1] and values_equal(a[2], b[2]) for a, b in zip(mine, theirs)
        )

    def __hash__(self):
        return hash(self.canonical())

    def __str__(self):
        return "{" + ",".join(
            "%s=%s" % (label, "null" if is_null else text) for label, _t, is_null, text in self.canonical()
        ) + "}"

    def __repr__(self):
        return "GroupKey(%s)" % self


class BufferedTable(object):
    """A fully materialized table: group key, ordered columns and ordered rows."""

    def __init__(self, key: GroupKey, columns: Sequence[ColumnMeta], rows: Sequence[Sequence[Any]] = ()):
        self.key = key
        self.columns = tuple(columns)
        labels = [c.label for c in self.columns]
        if len(set(labels)) != len(labels):
            raise ValueError("duplicate column labels in %r" % labels)
        for key_column in key.columns:
            if key_column not in self.columns:
                raise ValueError("group key column %r is not a table column" % key_column.label)
        width = len(self.columns)
        self.rows = []
        for row in rows:
            row = tuple(row)
            if len(row) != width:
                raise ValueError("row has %d values, table has %d columns" % (len(row), width))
            self.rows.append(row)

    def __len__(self):
        return len(self.rows)

    def __repr__(self):
        return "BufferedTable(key=%s, columns=%s, rows=%d)" % (self.key, list(self.column_labels()), len(self.rows))

    @property
    def empty(self) -> bool:
        return not self.rows

    def column_labels(self) -> tuple[str, ...]:
        return tuple(c.label for c in self.columns)

    def column_index(self, label: str) -> int:
        for idx, column in enumerate(self.columns):
            if column.label == label:
                return idx
        raise KeyError(label)

    def column_set(self) -> tuple[tuple[str, str], ...]:
        return tuple(sorted((c.label, c.type) for c in self.columns))

    def identity(self):
        """The (group key, column set) pair that names the logical series of this table."""
        return self.key.canonical(), self.column_set()

    def to_dicts(self) -> list[dict[str, Any]]:
        labels = self.column_labels()
        return [dict(zip(labels, row)) for row in self.rows]

    def to_polars(self):
        pl = require_polars("BufferedTable.to_polars")
        labels = self.column_labels()
        data = {label: [row[idx] for row in self.rows] for idx, label in enumerate(labels)}
        return pl.DataFrame(data)


@dataclass
class BufferedResult:
    name: str
    tables: list[BufferedTable] = field(default_factory=list)


class Result(object):
    """
    One named result of a query
    ===========================

    A Result hands out its tables lazily through ``tables()``; it shares the
    underlying stream with its ResultIterator, so tables must be read before
    advancing to the next Result. Tables that were not read are skipped when
    the iterator moves on.
    """

    def __init__(self, name: str, owner: "ResultIterator"):
        self.name = name
        self._owner = owner
        self._done = False

    def __repr__(self):
        return "Result(%r)" % self.name

    def __iter__(self):
        return self.tables()

    def tables(self) -> Iterator[BufferedTable]:
        while not self._done:
            pending = self._owner._peek()
            if pending is None or pending[0] != self.name or self._owner._current is not self:
                self._done = True
                return
            self._owner._pending = None
            yield pending[1]

    def _drain(self):
        for _table in self.tables():
            pass


class ResultIterator(object):
    """
    A forward-only, single-pass sequence of Results
    ===============================================

    Built over a source iterator of ``(result_name, table)`` pairs, as produced
    by the decoders, plus the byte stream they read from. Consecutive tables
    with the same result name form one Result.

    The iterator owns the byte stream: it is closed when the source is
    exhausted, and at the latest when ``release()`` is called. ``release()``
    may be called any number of times but closes the stream only once; any
    iteration after release raises StreamReleasedError. A decoding error ends
    the stream, and every later read raises that same error again.

    Prefer the context manager form:

        >>> with decoder.decode(stream) as results:
        ...     for result in results:
        ...         for table in result.tables():
        ...             print(table.key)
    """

    def __init__(self, source: Iterator[tuple[str, BufferedTable]], resource=None):
        self._source = source
        self._resource = resource
        self._pending = None
        self._current: Result | None = None
        self._exhausted = False
        self._failure: BaseException | None = None
        self._released = False
        self._resource_closed = resource is None

    @property
    def released(self) -> bool:
        return self._released

    def _check_released(self):
        if self._released:
            raise StreamReleasedError("result stream has already been released")

    def _peek(self):
        self._check_released()
        if self._failure is not None:
            raise self._failure
        if self._pending is None and not self._exhausted:
            try:
                self._pending = next(self._source)
            except StopIteration:
                self._exhausted = True
                self._close_resource()
            except Exception as exc:
                # The source generator is finished; keep reporting why.
                self._failure = exc
                self._exhausted = True
                self._close_resource()
                raise
        return self._pending

    def prime(self):
        """Read ahead to the first table so that decoding errors surface immediately."""
        self._peek()
        return self

    def more(self) -> bool:
        self._check_released()
        if self._current is not None:
            self._current._drain()
        return self._peek() is not None

    def __iter__(self):
        return self

    def __next__(self) -> Result:
        if not self.more():
            raise StopIteration
        self._current = Result(self._pending[0], self)
        return self._current

    def next(self) -> Result:
        return self.__next__()

    def _close_resource(self):
        if self._resource_closed:
            return
        self._resource_closed = True
        close = getattr(self._resource, "close", None)
        if callable(close):
            close()

    def release(self):
        if self._released:
            return
        self._released = True
        self._pending = None
        try:
            close_source = getattr(self._source, "close", None)
            if callable(close_source):
                close_source()
        finally:
            self._close_resource()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class ListResultIterator(ResultIterator):
    """A ResultIterator over results that are already in memory."""

    def __init__(self, results: Sequence[BufferedResult]):
        self.results = list(results)
        pairs = ((result.name, table) for result in self.results for table in result.tables)
        super(ListResultIterator, self).__init__(pairs)


def buffer_results(results: ResultIterator) -> list[BufferedResult]:
    """Drain and release a ResultIterator, keeping every table in memory."""
    buffered = []
    with results:
        for result in results:
            buffered.append(BufferedResult(result.name, list(result.tables())))
    if LOG.isEnabledFor(logging.DEBUG):
        LOG.debug(
            "buffer_results results=%d tables=%d",
            len(buffered),
            sum(len(r.tables) for r in buffered),
        )
    return buffered
