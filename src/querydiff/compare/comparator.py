"""
Differential comparison of result streams
=========================================

Two streams are equal when they hold the same results (matched by name) and,
within each result, the same tables. Tables are matched by their group key
and column set, not by arrival order or column order; tables that share a
key inside one stream are the same series and are merged in arrival order.

Matched tables must have the same rows in the same order. Row order is kept
significant because ordered outputs (windowed and sorted aggregates) would
otherwise hide regressions. Values are compared exactly, with NaN equal to
NaN.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from querydiff.codec.annotated_csv import DATATYPE_ANNOTATION, DEFAULT_ANNOTATION, GROUP_ANNOTATION, AnnotatedCSVEncoder
from querydiff.compare.diff import text_diff
from querydiff.errors import ComparisonMismatch
from querydiff.table.model import BufferedResult, BufferedTable, ResultIterator, buffer_results
from querydiff.table.types import format_value, values_equal

LOG = logging.getLogger(__name__)
_TEXT_MISMATCH_REASON = "result not as expected want(-) got(+)"
_CANONICAL_ANNOTATIONS = (DATATYPE_ANNOTATION, GROUP_ANNOTATION, DEFAULT_ANNOTATION)


@dataclass(frozen=True)
class ComparisonVerdict:
    equal: bool
    reason: str = ""
    diff: str = ""

    def __bool__(self):
        return self.equal

    def raise_for_mismatch(self):
        if not self.equal:
            raise ComparisonMismatch(self.reason, self.diff)


EQUAL = ComparisonVerdict(True)


def _materialize(results) -> list[BufferedResult]:
    if isinstance(results, ResultIterator):
        return buffer_results(results)
    return list(results)


def _release(results):
    if isinstance(results, ResultIterator):
        results.release()


def _canonical_table(table: BufferedTable) -> BufferedTable:
    order = sorted(range(len(table.columns)), key=lambda idx: table.columns[idx].label)
    columns = [table.columns[idx] for idx in order]
    rows = [tuple(row[idx] for idx in order) for row in table.rows]
    return BufferedTable(table.key, columns, rows)


def normalize_results(results: list[BufferedResult]) -> dict[str, dict[tuple, BufferedTable]]:
    """Index tables by result name and (group key, column set), merging same-key tables."""
    normalized: dict[str, dict[tuple, BufferedTable]] = {}
    for result in results:
        tables = normalized.setdefault(result.name, {})
        for table in result.tables:
            canonical = _canonical_table(table)
            identity = canonical.identity()
            merged = tables.get(identity)
            if merged is None:
                tables[identity] = canonical
            else:
                merged.rows.extend(canonical.rows)
    return normalized


def _describe_table(table: BufferedTable) -> str:
    columns = ",".join("%s:%s" % (c.label, c.type) for c in table.columns)
    return "table %s with columns [%s]" % (table.key, columns)


def _first_row_divergence(table: BufferedTable, want: BufferedTable) -> str | None:
    if len(table.rows) != len(want.rows):
        return "%s: expected %d rows, got %d" % (_describe_table(want), len(want.rows), len(table.rows))
    for row_idx, (got_row, want_row) in enumerate(zip(table.rows, want.rows)):
        for column, got_value, want_value in zip(want.columns, got_row, want_row):
            if not values_equal(want_value, got_value):
                return "%s: row %d column %r: expected %s, got %s" % (
                    _describe_table(want),
                    row_idx,
                    column.label,
                    format_value(want_value, column.type) if want_value is not None else "null",
                    format_value(got_value, column.type) if got_value is not None else "null",
                )
    return None


def first_divergence(expected, actual) -> str | None:
    """Describe the first difference between two normalized streams, or None."""
    for name in sorted(set(expected) | set(actual)):
        if name not in actual:
            return "result %r is missing" % name
        if name not in expected:
            return "unexpected result %r" % name
        want_tables, got_tables = expected[name], actual[name]
        for identity in sorted(set(want_tables) | set(got_tables)):
            if identity not in got_tables:
                return "result %r: %s is missing" % (name, _describe_table(want_tables[identity]))
            if identity not in want_tables:
                return "result %r: unexpected %s" % (name, _describe_table(got_tables[identity]))
            divergence = _first_row_divergence(got_tables[identity], want_tables[identity])
            if divergence is not None:
                return "result %r: %s" % (name, divergence)
    return None


def render_canonical(normalized) -> str:
    """Annotated CSV of a normalized stream: results by name, tables by key, columns by label."""
    ordered = [
        BufferedResult(name, [normalized[name][identity] for identity in sorted(normalized[name])])
        for name in sorted(normalized)
    ]
    return AnnotatedCSVEncoder(_CANONICAL_ANNOTATIONS, lineterminator="\n").encode_to_string(ordered)


def compare_results(expected, actual, *, context_lines: int | None = None) -> ComparisonVerdict:
    """
    Compare two result streams.

    Both inputs are drained completely and released on every path, including
    decode errors raised while draining. Inputs may also be lists of
    BufferedResult.
    """
    try:
        want = _materialize(expected)
        got = _materialize(actual)
    finally:
        _release(expected)
        _release(actual)

    want_normalized = normalize_results(want)
    got_normalized = normalize_results(got)
    reason = first_divergence(want_normalized, got_normalized)
    if reason is None:
        return EQUAL
    LOG.debug("compare_results mismatch: %s", reason)
    diff = text_diff(
        render_canonical(want_normalized),
        render_canonical(got_normalized),
        context_lines=context_lines,
    )
    return ComparisonVerdict(False, reason, diff)


def compare_text(want: str, got: str, *, context_lines: int | None = None) -> ComparisonVerdict:
    """Compare raw encoded output, ignoring surrounding whitespace."""
    want, got = want.strip(), got.strip()
    if want == got:
        return EQUAL
    return ComparisonVerdict(False, _TEXT_MISMATCH_REASON, text_diff(want, got, context_lines=context_lines))
