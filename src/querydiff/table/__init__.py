from querydiff.table.model import (
    BufferedResult,
    BufferedTable,
    ColumnMeta,
    GroupKey,
    ListResultIterator,
    Result,
    ResultIterator,
    buffer_results,
)
from querydiff.table import types

__all__ = [
    "BufferedResult",
    "BufferedTable",
    "ColumnMeta",
    "GroupKey",
    "ListResultIterator",
    "Result",
    "ResultIterator",
    "buffer_results",
    "types",
]
