from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any

from querydiff.compiler.mapping import DBRPMapping, DBRPMappingFilter
from querydiff.errors import CompileError, MappingNotFoundError
from querydiff.util.logging import log_structured_event

LOG = logging.getLogger(__name__)

FLUX = "flux"
INFLUXQL = "influxql"
LANGUAGES = frozenset({FLUX, INFLUXQL})
LANGUAGE_BY_EXTENSION = {".flux": FLUX, ".influxql": INFLUXQL}
# Failures a frontend may raise for a query it cannot compile.
_FRONTEND_ERRORS = (ValueError, SyntaxError, LookupError, TypeError)


@dataclass(frozen=True)
class Plan:
    """A compiled query bound to an output dialect, ready for an execution service."""

    language: str
    query: str
    dialect: Any
    input_override: str | None = None
    spec: Any = None
    mapping: DBRPMapping | None = None

    def describe(self):
        payload = {
            "language": self.language,
            "query": self.query,
            "dialect": self.dialect.as_dict(),
            "input_override": self.input_override,
        }
        if self.mapping is not None:
            payload["organization_id"] = self.mapping.organization_id
            payload["bucket_id"] = self.mapping.bucket_id
        return payload


class Compiler(object):
    """
    Base of the two compiler adapters
    =================================

    An adapter holds a query and an optional input override and hands them to
    an external frontend, whose ``compile(language, query, input_override,
    dialect, mapping=None)`` returns an opaque spec. Frontend failures come
    back as CompileError; they never escape as arbitrary exceptions.
    """

    language = None

    def __init__(self, query: str, input_override=None):
        self.query = query
        self.input_override = None if input_override is None else str(input_override)

    def __repr__(self):
        return "%s(query=%r, input_override=%r)" % (type(self).__name__, self.query, self.input_override)

    def resolve_mapping(self) -> DBRPMapping | None:
        return None

    def compile(self, frontend, dialect) -> Plan:
        mapping = self.resolve_mapping()
        try:
            spec = frontend.compile(self.language, self.query, self.input_override, dialect, mapping=mapping)
        except CompileError:
            raise
        except _FRONTEND_ERRORS as exc:
            raise CompileError("failed to compile %s query" % self.language, exc) from exc
        log_structured_event(
            LOG,
            logging.DEBUG,
            "query_compiled",
            language=self.language,
            dialect=dialect.name,
            input_override=self.input_override,
            bucket_id=None if mapping is None else mapping.bucket_id,
        )
        return Plan(
            language=self.language,
            query=self.query,
            dialect=dialect,
            input_override=self.input_override,
            spec=spec,
            mapping=mapping,
        )


class FluxCompiler(Compiler):
    language = FLUX


class InfluxQLCompiler(Compiler):
    """
    Transpiling adapter. The legacy database and retention policy are
    resolved to a bucket before compiling: an exact (cluster, database,
    retention policy) match when both are given, otherwise the default
    mapping registered for the cluster and database.
    """

    language = INFLUXQL

    def __init__(
        self,
        query: str,
        mapping_service,
        *,
        cluster: str = "",
        database: str = "",
        retention_policy: str = "",
        input_override=None,
    ):
        super(InfluxQLCompiler, self).__init__(query, input_override)
        self.mapping_service = mapping_service
        self.cluster = cluster
        self.database = database
        self.retention_policy = retention_policy

    def resolve_mapping(self) -> DBRPMapping:
        if self.mapping_service is None:
            raise CompileError("influxql compiler requires a mapping service")
        if self.database and self.retention_policy:
            mapping = self.mapping_service.find_mapping(
                DBRPMappingFilter(self.cluster, self.database, self.retention_policy)
            )
        elif self.database:
            mapping = self.mapping_service.find_default_mapping(self.cluster, self.database, self.retention_policy)
        else:
            mapping = self.mapping_service.find_mapping(DBRPMappingFilter(cluster=self.cluster, default=True))
        if mapping is None:
            raise MappingNotFoundError(self.cluster, self.database, self.retention_policy)
        return mapping


def language_for_path(path) -> str:
    suffix = Path(path).suffix.lower()
    try:
        return LANGUAGE_BY_EXTENSION[suffix]
    except KeyError:
        raise ValueError("no query language for %s" % path) from None


def compiler_for(
    language: str,
    query: str,
    *,
    input_override=None,
    mapping_service=None,
    cluster: str = "",
    database: str = "",
    retention_policy: str = "",
) -> Compiler:
    if language == FLUX:
        return FluxCompiler(query, input_override)
    if language == INFLUXQL:
        return InfluxQLCompiler(
            query,
            mapping_service,
            cluster=cluster,
            database=database,
            retention_policy=retention_policy,
            input_override=input_override,
        )
    raise ValueError("unknown query language %r (expected one of %s)" % (language, sorted(LANGUAGES)))
