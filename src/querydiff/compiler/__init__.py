from querydiff.compiler.compilers import (
    FLUX,
    INFLUXQL,
    Compiler,
    FluxCompiler,
    InfluxQLCompiler,
    Plan,
    compiler_for,
    language_for_path,
)
from querydiff.compiler.mapping import DBRPMapping, DBRPMappingFilter, StaticDBRPMappingService

__all__ = [
    "FLUX",
    "INFLUXQL",
    "Compiler",
    "FluxCompiler",
    "InfluxQLCompiler",
    "Plan",
    "compiler_for",
    "language_for_path",
    "DBRPMapping",
    "DBRPMappingFilter",
    "StaticDBRPMappingService",
]
