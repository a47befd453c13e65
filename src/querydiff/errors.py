from querydiff.util.core import ReadableException


class QueryDiffError(ReadableException):
    """Base class of every error the harness raises on purpose."""

    kind = "error"


class FixtureMissingError(QueryDiffError):
    kind = "fixture_missing"

    def __init__(self, message, path, cause=None):
        self.path = str(path)
        super(FixtureMissingError, self).__init__(message, cause)


class FixtureUnreadableError(QueryDiffError):
    kind = "fixture_unreadable"

    def __init__(self, message, path, cause=None):
        self.path = str(path)
        super(FixtureUnreadableError, self).__init__(message, cause)


class DecodeError(QueryDiffError):
    kind = "decode_error"

    def __init__(self, message, line=None, cause=None):
        self.line = line
        super(DecodeError, self).__init__(message, cause)

    def __str__(self):
        base = super(DecodeError, self).__str__()
        if self.line is None:
            return base
        return "line %d: %s" % (self.line, base)


class QueryResultError(QueryDiffError):
    """An error reported inside a result payload by the engine that produced it."""

    kind = "execution_error"

    def __init__(self, message, reference=None):
        self.reference = reference
        super(QueryResultError, self).__init__(message)

    def __str__(self):
        if self.reference:
            return "%s (reference %s)" % (self.message, self.reference)
        return str(self.message)


class CompileError(QueryDiffError):
    kind = "compile_error"


class MappingNotFoundError(CompileError):
    def __init__(self, cluster, database, retention_policy):
        self.cluster = cluster
        self.database = database
        self.retention_policy = retention_policy
        super(MappingNotFoundError, self).__init__(
            "no bucket mapping for cluster=%r database=%r retention_policy=%r"
            % (cluster, database, retention_policy)
        )


class ExecutionError(QueryDiffError):
    kind = "execution_error"


class ComparisonMismatch(QueryDiffError):
    kind = "mismatch"

    def __init__(self, message, diff=""):
        self.diff = diff
        super(ComparisonMismatch, self).__init__(message)


class StreamReleasedError(QueryDiffError):
    kind = "released"


__all__ = [
    "QueryDiffError",
    "FixtureMissingError",
    "FixtureUnreadableError",
    "DecodeError",
    "QueryResultError",
    "CompileError",
    "MappingNotFoundError",
    "ExecutionError",
    "ComparisonMismatch",
    "StreamReleasedError",
]
