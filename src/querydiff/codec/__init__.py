from querydiff.codec.annotated_csv import AnnotatedCSVDecoder, AnnotatedCSVEncoder
from querydiff.codec.base import Decoder
from querydiff.codec.dialects import (
    CSV_DIALECT,
    JSON_DIALECT,
    AnnotatedCSVDialect,
    InfluxQLJSONDialect,
    dialect_for_path,
)
from querydiff.codec.influxql_json import InfluxQLJSONDecoder, InfluxQLJSONEncoder

__all__ = [
    "Decoder",
    "AnnotatedCSVDecoder",
    "AnnotatedCSVEncoder",
    "InfluxQLJSONDecoder",
    "InfluxQLJSONEncoder",
    "AnnotatedCSVDialect",
    "InfluxQLJSONDialect",
    "CSV_DIALECT",
    "JSON_DIALECT",
    "dialect_for_path",
]
