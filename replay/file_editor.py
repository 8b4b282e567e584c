"""Replay a whole-file change through a live editor session.

Replaced line blocks are paired index-for-index and edited character by
character, so unchanged lines are never retyped.
"""
from typing import List, Optional

from orchestrator.executors import CodeExecutor

from .code_editor import apply_line_diff
from .text_diff import DELETE, EQUAL, INSERT, diff_sequence, split_lines


def apply_file_diff(
    executor: CodeExecutor,
    before: str,
    after: str,
    delay_ms: Optional[int] = None,
) -> None:
    if before == after:
        return

    ops = diff_sequence(split_lines(before), split_lines(after))
    current = split_lines(before)
    line_number = 1
    i = 0

    while i < len(ops):
        op = ops[i]

        if op.kind == EQUAL:
            line_number += len(op.items)
            i += 1
            continue

        if op.kind == DELETE:
            nxt = ops[i + 1] if i + 1 < len(ops) else None
            if nxt is not None and nxt.kind == INSERT:
                deleted = op.items
                inserted = nxt.items
                paired = min(len(deleted), len(inserted))
                start = line_number - 1

                for j in range(paired):
                    apply_line_diff(executor, line_number + j, deleted[j], inserted[j], delay_ms=delay_ms)
                    current[start + j] = inserted[j]

                if len(deleted) > paired:
                    executor.move_cursor(line_number + paired, 1)
                    executor.delete_line(len(deleted) - paired, delay_ms=delay_ms)
                    del current[start + paired : start + len(deleted)]

                if len(inserted) > paired:
                    extra = inserted[paired:]
                    _insert_lines(executor, line_number + paired, extra, current, delay_ms)
                    current[start + paired : start + paired] = extra

                line_number += len(inserted)
                i += 2
                continue

            executor.move_cursor(line_number, 1)
            executor.delete_line(len(op.items), delay_ms=delay_ms)
            del current[line_number - 1 : line_number - 1 + len(op.items)]
            i += 1
            continue

        if op.kind == INSERT:
            _insert_lines(executor, line_number, op.items, current, delay_ms)
            current[line_number - 1 : line_number - 1] = op.items
            line_number += len(op.items)
        i += 1


def _insert_lines(
    executor: CodeExecutor,
    line_number: int,
    lines: List[str],
    current: List[str],
    delay_ms: Optional[int],
) -> None:
    if not lines:
        return

    if line_number > len(current):
        if current:
            last = current[-1]
            executor.move_cursor(len(current), len(last) + 1)
            executor.write_char("\n", delay_ms=delay_ms)
        else:
            executor.move_cursor(1, 1)
        # Appended after the last line: no trailing newline of our own.
        for idx, text in enumerate(lines):
            chunk = text if idx == len(lines) - 1 else f"{text}\n"
            if chunk:
                executor.write_char(chunk, delay_ms=delay_ms)
        return

    executor.move_cursor(line_number, 1)
    for text in lines:
        executor.write_char(f"{text}\n", delay_ms=delay_ms)
