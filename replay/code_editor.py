"""Replay a single-line change as character-level cursor edits."""
from typing import Optional

from orchestrator.executors import CodeExecutor

from .text_diff import DELETE, EQUAL, INSERT, diff_chars


def apply_line_diff(
    executor: CodeExecutor,
    line_number: int,
    before: str,
    after: str,
    delay_ms: Optional[int] = None,
) -> None:
    if before == after:
        return

    ops = diff_chars(before, after)
    executor.move_cursor(line_number, 1)
    column = 1

    for op in ops:
        if op.kind == EQUAL:
            column += op.count
            executor.move_cursor(line_number, column)
        elif op.kind == DELETE:
            # Deleting to the right leaves the cursor column unchanged.
            executor.delete_right(op.count, delay_ms=delay_ms)
        elif op.kind == INSERT:
            executor.write_char(op.text, delay_ms=delay_ms)
            column += op.count
