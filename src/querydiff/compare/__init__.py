from querydiff.compare.comparator import (
    EQUAL,
    ComparisonVerdict,
    compare_results,
    compare_text,
    first_divergence,
    normalize_results,
    render_canonical,
)
from querydiff.compare.diff import text_diff

__all__ = [
    "EQUAL",
    "ComparisonVerdict",
    "compare_results",
    "compare_text",
    "first_divergence",
    "normalize_results",
    "render_canonical",
    "text_diff",
]
