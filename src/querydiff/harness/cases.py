from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any

from querydiff.codec.dialects import AnnotatedCSVDialect, InfluxQLJSONDialect
from querydiff.compiler.compilers import FLUX, INFLUXQL, LANGUAGE_BY_EXTENSION

LOG = logging.getLogger(__name__)

TEXT_MODE = "text"
DECODED_MODE = "decoded"
MODES = frozenset({TEXT_MODE, DECODED_MODE})
INPUT_CSV_SUFFIX = ".in.csv"
INPUT_JSON_SUFFIX = ".in.json"
OUTPUT_CSV_SUFFIX = ".out.csv"
OUTPUT_JSON_SUFFIX = ".out.json"
_EXTENSION_BY_LANGUAGE = {language: ext for ext, language in LANGUAGE_BY_EXTENSION.items()}


@dataclass(frozen=True)
class GoldenCase:
    """
    One golden-file comparison: a query, the fixture standing in for its
    input data, the expected output and the dialect it is encoded in.

    ``mode`` selects how output is checked: ``text`` compares the encoded
    bytes with the fixture, ``decoded`` decodes both sides into tables.
    """

    name: str
    language: str
    query_path: Path
    expected_path: Path
    dialect: Any
    input_path: Path | None = None
    mode: str = TEXT_MODE

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError("unknown case mode %r" % self.mode)
        if self.language not in (FLUX, INFLUXQL):
            raise ValueError("unknown query language %r" % self.language)

    @property
    def case_id(self) -> str:
        return "%s%s[%s]" % (self.name, _EXTENSION_BY_LANGUAGE[self.language], self.dialect.name)


def _with_suffix(prefix: Path, suffix: str) -> Path:
    return prefix.parent / (prefix.name + suffix)


def discover_cases(directory, *, generated_directory=None) -> list[GoldenCase]:
    """
    Build cases from fixture files sharing a stem.

    In ``directory`` every ``<stem>.flux`` yields a Flux case and InfluxQL
    cases (CSV and JSON dialects) for ``<stem>.influxql``, all reading
    ``<stem>.in.csv``. In ``generated_directory`` every ``<stem>.influxql``
    yields a decoded JSON case reading ``<stem>.in.json``.
    """
    cases = []
    directory = Path(directory)
    for flux_file in sorted(directory.glob("*.flux")):
        prefix = flux_file.with_suffix("")
        name = prefix.name
        input_path = _with_suffix(prefix, INPUT_CSV_SUFFIX)
        influxql_file = _with_suffix(prefix, ".influxql")
        cases.append(
            GoldenCase(name, FLUX, flux_file, _with_suffix(prefix, OUTPUT_CSV_SUFFIX), AnnotatedCSVDialect(), input_path)
        )
        cases.append(
            GoldenCase(
                name, INFLUXQL, influxql_file, _with_suffix(prefix, OUTPUT_CSV_SUFFIX), AnnotatedCSVDialect(), input_path
            )
        )
        cases.append(
            GoldenCase(
                name, INFLUXQL, influxql_file, _with_suffix(prefix, OUTPUT_JSON_SUFFIX), InfluxQLJSONDialect(), input_path
            )
        )

    if generated_directory is not None:
        for influxql_file in sorted(Path(generated_directory).glob("*.influxql")):
            prefix = influxql_file.with_suffix("")
            cases.append(
                GoldenCase(
                    prefix.name,
                    INFLUXQL,
                    influxql_file,
                    _with_suffix(prefix, OUTPUT_JSON_SUFFIX),
                    InfluxQLJSONDialect(),
                    _with_suffix(prefix, INPUT_JSON_SUFFIX),
                    DECODED_MODE,
                )
            )
    LOG.debug("discover_cases directory=%s cases=%d", directory, len(cases))
    return cases
