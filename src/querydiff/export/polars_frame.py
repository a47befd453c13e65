from __future__ import annotations

import logging

from querydiff.table.model import ResultIterator, buffer_results
from querydiff.util.deps import require_polars

LOG = logging.getLogger(__name__)
RESULT_COLUMN = "result"
TABLE_COLUMN = "table"


def results_to_dataframe(results):
    """
    Flatten results into one polars DataFrame with ``result`` and ``table``
    columns in front. Tables with different schemas are stacked diagonally,
    so columns missing from a table are null.
    """
    pl = require_polars("results_to_dataframe")
    if isinstance(results, ResultIterator):
        results = buffer_results(results)
    frames = []
    for result in results:
        for table_id, table in enumerate(result.tables):
            frame = table.to_polars()
            frame = frame.select(
                pl.lit(result.name).alias(RESULT_COLUMN),
                pl.lit(table_id, dtype=pl.Int64).alias(TABLE_COLUMN),
                pl.all(),
            )
            frames.append(frame)
    if not frames:
        return pl.DataFrame({RESULT_COLUMN: [], TABLE_COLUMN: []}, schema={RESULT_COLUMN: pl.Utf8, TABLE_COLUMN: pl.Int64})
    LOG.debug("results_to_dataframe frames=%d", len(frames))
    return pl.concat(frames, how="diagonal_relaxed")
