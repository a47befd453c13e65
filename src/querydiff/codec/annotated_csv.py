"""
Annotated CSV
=============

Tables are written as blocks. Each block starts with annotation rows, then a
header row, then data rows:

    #datatype,string,long,dateTime:RFC3339,double,string
    #group,false,false,false,false,true
    #default,_result,,,,
    ,result,table,_time,_value,host
    ,,0,2018-05-22T19:53:26Z,1.5,a
    ,,0,2018-05-22T19:53:36Z,2.5,a
    ,,1,2018-05-22T19:53:26Z,0.5,b

The first column holds annotation names and is empty on the header and data
rows. ``result`` and ``table`` are reserved columns naming the result and the
table within it. Blank cells take the ``#default`` of their column. A blank
line, a new annotation row or a change of table id ends the current table.
"""

from __future__ import annotations

import csv
import io

from querydiff.codec.base import Decoder, iter_text_lines, preview_for_error
from querydiff.config import get_runtime_defaults
from querydiff.errors import DecodeError, QueryResultError
from querydiff.table.model import BufferedResult, BufferedTable, ColumnMeta, GroupKey, ResultIterator
from querydiff.table.types import BOOLEAN, LONG, STRING, format_value, is_valid_type, parse_value

RESULT_LABEL = "result"
TABLE_LABEL = "table"
ERROR_LABELS = ("error", "reference")
DATATYPE_ANNOTATION = "datatype"
GROUP_ANNOTATION = "group"
DEFAULT_ANNOTATION = "default"
KNOWN_ANNOTATIONS = frozenset({DATATYPE_ANNOTATION, GROUP_ANNOTATION, DEFAULT_ANNOTATION})
_GROUP_TOKENS = {"true": True, "false": False}


class _BlockSchema(object):
    """Column layout of one annotation block."""

    def __init__(self, labels, types, group_flags, defaults, default_result_name):
        self.labels = labels
        self.width = len(labels) + 1
        self.is_error = tuple(labels) == ERROR_LABELS
        self.result_index = labels.index(RESULT_LABEL) if RESULT_LABEL in labels else None
        self.table_index = labels.index(TABLE_LABEL) if TABLE_LABEL in labels else None
        reserved = {self.result_index, self.table_index}
        self.data_indexes = [i for i in range(len(labels)) if i not in reserved]
        self.columns = tuple(ColumnMeta(labels[i], types[i]) for i in self.data_indexes)
        self.key_positions = [pos for pos, i in enumerate(self.data_indexes) if group_flags[i]]
        self.key_columns = tuple(self.columns[pos] for pos in self.key_positions)
        self.defaults = [defaults[i] for i in self.data_indexes]
        self.default_result = default_result_name
        if self.result_index is not None and defaults[self.result_index] not in (None, ""):
            self.default_result = str(defaults[self.result_index])
        self.default_table = ""
        if self.table_index is not None and defaults[self.table_index] is not None:
            self.default_table = str(defaults[self.table_index])

    def key_from_defaults(self):
        return GroupKey(self.key_columns, [self.defaults[pos] for pos in self.key_positions])


class _TableBuilder(object):
    def __init__(self, schema, result_name, table_id, first_row):
        self.schema = schema
        self.result_name = result_name
        self.table_id = table_id
        self.key_values = [first_row[pos] for pos in schema.key_positions]
        self.rows = [first_row]

    def matches(self, result_name, table_id):
        return self.result_name == result_name and self.table_id == table_id

    def add(self, row, line):
        for value, pos in zip(self.key_values, self.schema.key_positions):
            if row[pos] != value:
                raise DecodeError(
                    "group key column %r changed within table %s" % (self.schema.columns[pos].label, self.table_id),
                    line=line,
                )
        self.rows.append(row)

    def build(self):
        key = GroupKey(self.schema.key_columns, self.key_values)
        return self.result_name, BufferedTable(key, self.schema.columns, self.rows)


class AnnotatedCSVDecoder(Decoder):
    format_name = "annotated_csv"

    def __init__(self, default_result_name: str | None = None):
        if default_result_name is None:
            default_result_name = get_runtime_defaults().decoder_defaults.default_result_name
        self.default_result_name = default_result_name

    def _parse_header(self, cells, annotations, line):
        labels = cells[1:]
        if DATATYPE_ANNOTATION not in annotations:
            raise DecodeError("header row %r is not preceded by a #datatype annotation" % preview_for_error(labels), line=line)
        if len(set(labels)) != len(labels):
            raise DecodeError("duplicate column labels in header %r" % preview_for_error(labels), line=line)
        for name, (values, annotation_line) in annotations.items():
            if len(values) != len(labels):
                raise DecodeError(
                    "#%s annotation has %d columns but header has %d" % (name, len(values), len(labels)),
                    line=annotation_line,
                )

        types, type_line = annotations[DATATYPE_ANNOTATION]
        for label, token in zip(labels, types):
            if not is_valid_type(token):
                raise DecodeError("unknown type %r for column %r" % (token, label), line=type_line)

        group_flags = [False] * len(labels)
        if GROUP_ANNOTATION in annotations:
            tokens, group_line = annotations[GROUP_ANNOTATION]
            for idx, token in enumerate(tokens):
                if token not in _GROUP_TOKENS:
                    raise DecodeError("invalid #group value %r for column %r" % (token, labels[idx]), line=group_line)
                group_flags[idx] = _GROUP_TOKENS[token]

        defaults = [None] * len(labels)
        if DEFAULT_ANNOTATION in annotations:
            texts, default_line = annotations[DEFAULT_ANNOTATION]
            for idx, text in enumerate(texts):
                if text == "":
                    continue
                try:
                    defaults[idx] = parse_value(text, types[idx])
                except ValueError as exc:
                    raise DecodeError("invalid #default for column %r" % labels[idx], line=default_line, cause=exc)
        return _BlockSchema(labels, types, group_flags, defaults, self.default_result_name)

    def _parse_row(self, schema, cells, line):
        if len(cells) != schema.width:
            raise DecodeError("row has %d cells, header declares %d" % (len(cells), schema.width), line=line)
        if cells[0] != "":
            raise DecodeError("unexpected value %r in annotation column" % preview_for_error(cells[0]), line=line)
        values = cells[1:]
        if schema.is_error:
            raise QueryResultError(values[0], values[1] or None)
        result_name = schema.default_result
        if schema.result_index is not None and values[schema.result_index] != "":
            result_name = values[schema.result_index]
        table_id = schema.default_table
        if schema.table_index is not None and values[schema.table_index] != "":
            table_id = values[schema.table_index]
        row = []
        for column, idx, default in zip(schema.columns, schema.data_indexes, schema.defaults):
            text = values[idx]
            if text == "":
                row.append(default)
                continue
            try:
                row.append(parse_value(text, column.type))
            except ValueError as exc:
                raise DecodeError("invalid value for column %r" % column.label, line=line, cause=exc)
        return result_name, table_id, tuple(row)

    def _iter_tables(self, stream):
        reader = csv.reader(iter_text_lines(stream))
        annotations = {}
        schema = None
        builder = None
        block_has_rows = False

        def finish_block():
            if builder is not None:
                return builder.build()
            if schema is not None and not block_has_rows and not schema.is_error:
                return schema.default_result, BufferedTable(schema.key_from_defaults(), schema.columns)
            return None

        try:
            for cells in reader:
                line = reader.line_num
                if not cells or (len(cells) == 1 and cells[0].strip() == ""):
                    finished = finish_block()
                    if finished is not None:
                        yield finished
                    if annotations:
                        raise DecodeError("annotations are not followed by a header row", line=line)
                    schema, builder, block_has_rows = None, None, False
                    continue

                if cells[0].startswith("#"):
                    if schema is not None:
                        finished = finish_block()
                        if finished is not None:
                            yield finished
                        schema, builder, block_has_rows = None, None, False
                    name = cells[0][1:]
                    if name not in KNOWN_ANNOTATIONS:
                        raise DecodeError("unknown annotation %r" % preview_for_error(cells[0]), line=line)
                    if name in annotations:
                        raise DecodeError("duplicate #%s annotation" % name, line=line)
                    annotations[name] = (cells[1:], line)
                    continue

                if schema is None:
                    if cells[0] != "":
                        raise DecodeError("expected a header row, got %r" % preview_for_error(cells[0]), line=line)
                    schema = self._parse_header(cells, annotations, line)
                    annotations = {}
                    continue

                result_name, table_id, row = self._parse_row(schema, cells, line)
                block_has_rows = True
                if builder is not None and builder.matches(result_name, table_id):
                    builder.add(row, line)
                    continue
                if builder is not None:
                    yield builder.build()
                builder = _TableBuilder(schema, result_name, table_id, row)
        except csv.Error as exc:
            raise DecodeError("malformed CSV", line=reader.line_num, cause=exc)

        if annotations:
            raise DecodeError("annotations are not followed by a header row", line=reader.line_num)
        finished = finish_block()
        if finished is not None:
            yield finished


class AnnotatedCSVEncoder(object):
    """Writes results as annotated CSV, one annotation block per table."""

    def __init__(self, annotations=None, lineterminator="\r\n"):
        if annotations is None:
            annotations = get_runtime_defaults().decoder_defaults.csv_annotations
        self.annotations = tuple(annotations)
        self.lineterminator = lineterminator

    def _write_table(self, writer, result_name, table_id, table):
        with_default = DEFAULT_ANNOTATION in self.annotations
        key_labels = set(table.key.labels)
        if DATATYPE_ANNOTATION in self.annotations:
            writer.writerow(["#" + DATATYPE_ANNOTATION, STRING, LONG] + [c.type for c in table.columns])
        if GROUP_ANNOTATION in self.annotations:
            writer.writerow(
                ["#" + GROUP_ANNOTATION, "false", "false"]
                + ["true" if c.label in key_labels else "false" for c in table.columns]
            )
        if with_default:
            defaults = [result_name, ""]
            for column in table.columns:
                if table.empty and column.label in key_labels:
                    defaults.append(format_value(table.key.get(column.label), column.type))
                else:
                    defaults.append("")
            writer.writerow(["#" + DEFAULT_ANNOTATION] + defaults)
        writer.writerow(["", RESULT_LABEL, TABLE_LABEL] + list(table.column_labels()))
        result_cell = "" if with_default else result_name
        for row in table.rows:
            writer.writerow(
                ["", result_cell, str(table_id)] + [format_value(v, c.type) for v, c in zip(row, table.columns)]
            )
        return len(table.rows)

    def encode(self, results, out) -> int:
        """Encode results (a ResultIterator or BufferedResults) to a text writer; returns rows written."""
        if isinstance(results, ResultIterator):
            results_iter = results
        else:
            results_iter = iter(results)
        writer = csv.writer(out, lineterminator=self.lineterminator)
        rows = 0
        first = True
        for result in results_iter:
            tables = result.tables() if not isinstance(result, BufferedResult) else result.tables
            for table_id, table in enumerate(tables):
                if not first:
                    out.write(self.lineterminator)
                first = False
                rows += self._write_table(writer, result.name, table_id, table)
        return rows

    def encode_to_string(self, results) -> str:
        buf = io.StringIO()
        self.encode(results, buf)
        return buf.getvalue()

    def encode_to_bytes(self, results) -> bytes:
        return self.encode_to_string(results).encode("utf-8")


__all__ = [
    "AnnotatedCSVDecoder",
    "AnnotatedCSVEncoder",
    "KNOWN_ANNOTATIONS",
    "RESULT_LABEL",
    "TABLE_LABEL",
]
