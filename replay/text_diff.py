"""Myers shortest-edit-script diff over arbitrary sequences."""
from dataclasses import dataclass, field
from typing import Any, List, Sequence

EQUAL = "equal"
INSERT = "insert"
DELETE = "delete"


@dataclass
class DiffOp:
    kind: str
    items: List[Any] = field(default_factory=list)


@dataclass
class TextDiffOp:
    kind: str
    text: str
    count: int


def diff_sequence(before: Sequence[Any], after: Sequence[Any]) -> List[DiffOp]:
    """Return the merged equal/insert/delete runs that turn ``before`` into ``after``.

    Runs in O((N+M)*D). Items are compared with ``==``.
    """
    before = list(before)
    after = list(after)
    n = len(before)
    m = len(after)
    if n == 0 and m == 0:
        return []
    if n == 0:
        return [DiffOp(INSERT, list(after))]
    if m == 0:
        return [DiffOp(DELETE, list(before))]

    max_d = n + m
    offset = max_d
    size = 2 * max_d + 2
    v = [-1] * size
    v[offset + 1] = 0
    trace: List[List[int]] = []

    for d in range(max_d + 1):
        v_next = [-1] * size
        for k in range(-d, d + 1, 2):
            if k == -d or (k != d and v[offset + k - 1] < v[offset + k + 1]):
                x = v[offset + k + 1]
            else:
                x = v[offset + k - 1] + 1
            y = x - k
            while x < n and y < m and before[x] == after[y]:
                x += 1
                y += 1
            v_next[offset + k] = x
            if x >= n and y >= m:
                trace.append(v_next)
                return _backtrack(trace, before, after, offset)
        trace.append(v_next)
        v = v_next

    raise RuntimeError("diff_sequence: no edit script found")


def _backtrack(trace: List[List[int]], before: List[Any], after: List[Any], offset: int) -> List[DiffOp]:
    x = len(before)
    y = len(after)
    steps: List[tuple] = []

    for d in range(len(trace) - 1, 0, -1):
        v_prev = trace[d - 1]
        k = x - y
        if k == -d or (k != d and v_prev[offset + k - 1] < v_prev[offset + k + 1]):
            prev_k = k + 1
        else:
            prev_k = k - 1
        prev_x = v_prev[offset + prev_k]
        prev_y = prev_x - prev_k

        while x > prev_x and y > prev_y:
            steps.append((EQUAL, before[x - 1]))
            x -= 1
            y -= 1

        if x == prev_x:
            steps.append((INSERT, after[prev_y]))
            y -= 1
        else:
            steps.append((DELETE, before[prev_x]))
            x -= 1

    while x > 0 and y > 0:
        steps.append((EQUAL, before[x - 1]))
        x -= 1
        y -= 1
    while x > 0:
        steps.append((DELETE, before[x - 1]))
        x -= 1
    while y > 0:
        steps.append((INSERT, after[y - 1]))
        y -= 1

    steps.reverse()
    merged: List[DiffOp] = []
    for kind, item in steps:
        if merged and merged[-1].kind == kind:
            merged[-1].items.append(item)
            continue
        merged.append(DiffOp(kind, [item]))
    return [op for op in merged if op.items]


def diff_chars(before: str, after: str) -> List[TextDiffOp]:
    """Character-level diff; each op carries its joined text and code point count."""
    ops = diff_sequence(list(before), list(after))
    return [TextDiffOp(op.kind, "".join(op.items), len(op.items)) for op in ops if op.items]


def diff_lines(before: str, after: str) -> List[DiffOp]:
    return diff_sequence(split_lines(before), split_lines(after))


def split_lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").split("\n")
