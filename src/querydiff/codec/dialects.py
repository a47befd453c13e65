from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from querydiff.codec.annotated_csv import KNOWN_ANNOTATIONS, AnnotatedCSVDecoder, AnnotatedCSVEncoder
from querydiff.codec.influxql_json import InfluxQLJSONDecoder, InfluxQLJSONEncoder
from querydiff.config import get_runtime_defaults

CSV_DIALECT = "csv"
JSON_DIALECT = "influxql_json"


def _default_annotations():
    return tuple(get_runtime_defaults().decoder_defaults.csv_annotations)


@dataclass(frozen=True)
class AnnotatedCSVDialect:
    """Annotated CSV output; ``annotations`` selects which annotation rows are written."""

    annotations: tuple[str, ...] = field(default_factory=_default_annotations)
    name = CSV_DIALECT
    content_type = "text/csv; charset=utf-8"
    extension = ".csv"

    def __post_init__(self):
        unknown = [a for a in self.annotations if a not in KNOWN_ANNOTATIONS]
        if unknown:
            raise ValueError("unknown annotations %r" % unknown)

    def decoder(self):
        return AnnotatedCSVDecoder()

    def encoder(self):
        return AnnotatedCSVEncoder(self.annotations)

    def as_dict(self):
        return {"type": self.name, "annotations": list(self.annotations)}


@dataclass(frozen=True)
class InfluxQLJSONDialect:
    chunked: bool = False
    name = JSON_DIALECT
    content_type = "application/json"
    extension = ".json"

    def decoder(self):
        return InfluxQLJSONDecoder()

    def encoder(self):
        return InfluxQLJSONEncoder(chunked=self.chunked)

    def as_dict(self):
        return {"type": self.name, "chunked": bool(self.chunked)}


def dialect_for_path(path) -> AnnotatedCSVDialect | InfluxQLJSONDialect:
    suffix = Path(path).suffix.lower()
    if suffix == ".csv":
        return AnnotatedCSVDialect()
    if suffix in (".json", ".ndjson"):
        return InfluxQLJSONDialect()
    raise ValueError("no dialect for fixture %s" % path)
