"""
InfluxQL JSON results
=====================

The legacy query endpoint answers with an envelope of statement results:

    {"results": [
        {"statement_id": 0,
         "series": [{"name": "cpu",
                     "tags": {"host": "a"},
                     "columns": ["time", "usage"],
                     "values": [["2018-05-22T19:53:26Z", 1.5]]}]}
    ]}

Chunked responses send one such envelope per line. Each statement becomes a
Result named by its ``statement_id``; each series becomes a Table grouped by
``_measurement`` and its tags.
"""

from __future__ import annotations

import io

from querydiff.codec.base import Decoder, decode_binary, preview_for_error
from querydiff.errors import DecodeError, QueryResultError
from querydiff.table.model import BufferedResult, BufferedTable, ColumnMeta, GroupKey, ResultIterator
from querydiff.table.types import (
    BINARY,
    BOOLEAN,
    DOUBLE,
    STRING,
    TIME_NANO,
    TIME_TYPES,
    format_rfc3339,
    format_value,
    parse_rfc3339,
)
from querydiff.util.json import json_dumps, json_loads

MEASUREMENT_LABEL = "_measurement"
TIME_LABEL = "time"


def _value_kind(value):
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        return DOUBLE
    if isinstance(value, str):
        return STRING
    return None


class InfluxQLJSONDecoder(Decoder):
    format_name = "influxql_json"

    def _load(self, text, line):
        try:
            return json_loads(text)
        except ValueError as exc:
            raise DecodeError("invalid JSON: " + preview_for_error(text), line=line, cause=exc)

    def _iter_documents(self, stream):
        """Yield (document, line) pairs from a single document, an array, or NDJSON."""
        lineno = 0
        first = None
        for raw in stream:
            lineno += 1
            text = decode_binary(raw, lineno).strip()
            if text:
                first = text
                break
        if first is None:
            return
        start_line = lineno

        if not first.startswith("["):
            try:
                document = json_loads(first)
            except ValueError:
                document = None
            if isinstance(document, dict):
                yield document, start_line
                for raw in stream:
                    lineno += 1
                    text = decode_binary(raw, lineno).strip()
                    if text:
                        yield self._load(text, lineno), lineno
                return

        # A document spread over several lines has to be read whole.
        parts = [first]
        for raw in stream:
            lineno += 1
            parts.append(decode_binary(raw, lineno))
        document = self._load("\n".join(parts), start_line)
        if isinstance(document, list):
            for item in document:
                yield item, start_line
        else:
            yield document, start_line

    def _iter_statements(self, stream):
        counter = 0
        for document, line in self._iter_documents(stream):
            if not isinstance(document, dict):
                raise DecodeError("expected a JSON object, got %s" % type(document).__name__, line=line)
            if "results" in document:
                statements = document["results"]
                if not isinstance(statements, list):
                    raise DecodeError("'results' must be an array", line=line)
            elif "error" in document and "series" not in document and "statement_id" not in document:
                raise QueryResultError(str(document["error"]))
            else:
                statements = [document]
            for statement in statements:
                if not isinstance(statement, dict):
                    raise DecodeError("statement result must be an object", line=line)
                if statement.get("error"):
                    raise QueryResultError(str(statement["error"]), statement.get("statement_id"))
                statement_id = statement.get("statement_id", counter)
                counter += 1
                yield str(statement_id), statement, line

    def _iter_tables(self, stream):
        for name, statement, line in self._iter_statements(stream):
            series_list = statement.get("series") or []
            if not isinstance(series_list, list):
                raise DecodeError("'series' must be an array", line=line)
            for series in series_list:
                yield name, self._series_table(series, line)

    def _series_table(self, series, line):
        if not isinstance(series, dict):
            raise DecodeError("series must be an object", line=line)
        labels = series.get("columns") or []
        rows = series.get("values") or []
        tags = series.get("tags") or {}
        if not isinstance(labels, list) or not isinstance(rows, list) or not isinstance(tags, dict):
            raise DecodeError("series has malformed columns, values or tags", line=line)

        key_columns = [ColumnMeta(MEASUREMENT_LABEL, STRING)]
        key_values = [str(series.get("name", ""))]
        for tag in sorted(tags):
            key_columns.append(ColumnMeta(str(tag), STRING))
            value = tags[tag]
            key_values.append("" if value is None else str(value))
        key_labels = {c.label for c in key_columns}
        for label in labels:
            if label in key_labels:
                raise DecodeError("series column %r collides with a group key column" % label, line=line)

        for row in rows:
            if not isinstance(row, list) or len(row) != len(labels):
                raise DecodeError(
                    "series %r row %s does not match %d columns" % (key_values[0], preview_for_error(row), len(labels)),
                    line=line,
                )
        value_columns = [ColumnMeta(label, self._infer_type(label, idx, rows, line)) for idx, label in enumerate(labels)]
        converted = []
        for row in rows:
            values = [self._convert(value, column, line) for value, column in zip(row, value_columns)]
            converted.append(tuple(key_values) + tuple(values))
        try:
            return BufferedTable(GroupKey(key_columns, key_values), key_columns + value_columns, converted)
        except ValueError as exc:
            raise DecodeError("invalid series %r" % key_values[0], line=line, cause=exc)

    def _infer_type(self, label, idx, rows, line):
        if label == TIME_LABEL:
            return TIME_NANO
        kind = None
        for row in rows:
            value = row[idx]
            if value is None:
                continue
            value_kind = _value_kind(value)
            if value_kind is None:
                raise DecodeError("unsupported value %s in column %r" % (preview_for_error(value), label), line=line)
            if kind is None:
                kind = value_kind
            elif kind != value_kind:
                raise DecodeError("column %r mixes %s and %s values" % (label, kind, value_kind), line=line)
        return kind or STRING

    def _convert(self, value, column, line):
        if value is None:
            return None
        if column.type == TIME_NANO:
            if isinstance(value, bool):
                raise DecodeError("invalid time value %r" % value, line=line)
            if isinstance(value, int):
                return value
            if isinstance(value, str):
                try:
                    return parse_rfc3339(value)
                except ValueError as exc:
                    raise DecodeError("invalid time value %r" % value, line=line, cause=exc)
            raise DecodeError("invalid time value %r" % (value,), line=line)
        if column.type == DOUBLE:
            return float(value)
        return value


class InfluxQLJSONEncoder(object):
    """Writes results in the InfluxQL JSON envelope, optionally one statement per line."""

    def __init__(self, chunked: bool = False):
        self.chunked = chunked

    def _cell(self, value, column):
        if value is None:
            return None
        if column.type in TIME_TYPES:
            return format_rfc3339(value)
        if column.type == BINARY:
            return format_value(value, column.type)
        return value

    def _series(self, table):
        tag_labels = [label for label in table.key.labels if label != MEASUREMENT_LABEL]
        skip = set(tag_labels) | {MEASUREMENT_LABEL}
        value_indexes = [idx for idx, c in enumerate(table.columns) if c.label not in skip]
        series = {"name": str(table.key.get(MEASUREMENT_LABEL, "") or "")}
        if tag_labels:
            series["tags"] = {label: table.key.get(label) for label in sorted(tag_labels)}
        series["columns"] = [table.columns[idx].label for idx in value_indexes]
        series["values"] = [[self._cell(row[idx], table.columns[idx]) for idx in value_indexes] for row in table.rows]
        return series

    def _statements(self, results):
        for position, result in enumerate(results):
            tables = result.tables if isinstance(result, BufferedResult) else list(result.tables())
            name = str(result.name)
            statement_id = int(name) if name.isdigit() else position
            yield {"statement_id": statement_id, "series": [self._series(t) for t in tables]}

    def encode(self, results, out) -> int:
        if not isinstance(results, ResultIterator):
            results = iter(results)
        statements = list(self._statements(results)) if not self.chunked else self._statements(results)
        rows = 0
        if self.chunked:
            for statement in statements:
                rows += sum(len(s["values"]) for s in statement["series"])
                out.write(json_dumps({"results": [statement]}))
                out.write("\n")
            return rows
        for statement in statements:
            rows += sum(len(s["values"]) for s in statement["series"])
        out.write(json_dumps({"results": statements}))
        return rows

    def encode_to_string(self, results) -> str:
        buf = io.StringIO()
        self.encode(results, buf)
        return buf.getvalue()

    def encode_to_bytes(self, results) -> bytes:
        return self.encode_to_string(results).encode("utf-8")


__all__ = ["InfluxQLJSONDecoder", "InfluxQLJSONEncoder", "MEASUREMENT_LABEL", "TIME_LABEL"]
