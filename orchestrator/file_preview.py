"""Per-file replay state and the static, line-numbered preview text."""
import errno
import os
import sys
from dataclasses import dataclass
from typing import List, Optional

MODE_INPUT = "input"
MODE_EDIT = "edit"


@dataclass
class FileContext:
    display_path: str
    resolved_path: str
    mode: Optional[str] = None
    lines: Optional[List[str]] = None
    revealed_line_count: int = 0
    typed_line_count: int = 0

    @property
    def has_lines(self) -> bool:
        return bool(self.lines)

    def line(self, line_number: int) -> Optional[str]:
        if not self.lines or line_number < 1 or line_number > len(self.lines):
            return None
        return self.lines[line_number - 1]


def resolve_script_path(base_dir: Optional[str], path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.abspath(os.path.join(base_dir or os.getcwd(), path))


def try_read_file_lines(path: str) -> Optional[List[str]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as exc:
        if exc.errno not in (errno.ENOENT, errno.ENOTDIR):
            print(f"[file] cannot read {path}: {exc}", file=sys.stderr, flush=True)
        return None
    except UnicodeDecodeError as exc:
        print(f"[file] {path} is not utf-8 text: {exc.reason}", file=sys.stderr, flush=True)
        return None
    return raw.replace("\r\n", "\n").split("\n")


def max_visible_lines(screen_height: int) -> int:
    return 18 if screen_height <= 720 else 26


def render_file_preview(
    context: FileContext,
    highlight_line: Optional[int] = None,
    narration: Optional[str] = None,
    screen_height: int = 720,
) -> str:
    lines = context.lines or []
    total = len(lines)
    revealed = max(0, min(context.revealed_line_count, total))
    visible = lines[:revealed]
    limit = max_visible_lines(screen_height)

    start = max(0, len(visible) - limit)
    if highlight_line is not None:
        idx = highlight_line - 1
        if idx < start or idx >= start + limit:
            start = max(0, idx - limit // 2)
        start = min(start, max(0, len(visible) - limit))

    window = visible[start : start + limit]
    width = len(str(max(1, total)))

    header = [context.display_path]
    if context.mode:
        header.append(f"({context.mode})")
    if total:
        header.append(f"{revealed}/{total}")

    if window:
        rows = []
        for offset, text in enumerate(window):
            number = start + offset + 1
            marker = ">" if highlight_line is not None and number == highlight_line else " "
            rows.append(f"{marker}{str(number).rjust(width)}| {text}")
        body = "\n".join(rows)
    elif context.mode == MODE_INPUT:
        body = "(waiting for input...)"
    else:
        body = "(empty file)"

    preview = f"{' '.join(header)}\n{body}"
    if narration and narration.strip():
        preview += f"\n\nNarration: {narration.strip()}"
    return preview
