from __future__ import annotations

import difflib

from querydiff.config import get_runtime_defaults


def text_diff(want: str, got: str, *, context_lines: int | None = None) -> str:
    """Unified line diff of ``want`` (-) against ``got`` (+)."""
    if context_lines is None:
        context_lines = get_runtime_defaults().harness_defaults.diff_context_lines
    lines = difflib.unified_diff(
        want.splitlines(),
        got.splitlines(),
        fromfile="want",
        tofile="got",
        lineterm="",
        n=context_lines,
    )
    return "\n".join(lines)
