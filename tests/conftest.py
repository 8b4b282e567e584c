import os
import subprocess
from typing import Any, Dict, List, Optional, Tuple

import pytest


class FakeCodeExecutor:
    """Editor double holding a text buffer, so replays can be checked by result."""

    def __init__(self, capture_path: str = "/tmp/code-capture.mp4") -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.buffers: Dict[str, str] = {}
        self.saved: Dict[str, str] = {}
        self.path: Optional[str] = None
        self.text = ""
        self.offset = 0
        self.capture_path = capture_path
        self.fail_start = False
        self.fail_stop = False

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def load(self, path: str, text: str) -> None:
        self.buffers[path] = text

    def open_file(self, path: str, create_if_missing: bool = False, clear: bool = False) -> None:
        self._record("open_file", path=path, create_if_missing=create_if_missing, clear=clear)
        if self.path is not None:
            self.buffers[self.path] = self.text
        self.path = path
        if clear:
            self.text = ""
        elif path in self.buffers:
            self.text = self.buffers[path]
        elif os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                self.text = f.read()
        else:
            self.text = ""
        self.offset = 0

    def write_line(self, content, line_number=None, delay_ms=None, append_new_line=True) -> None:
        self._record("write_line", content=content, line_number=line_number, append_new_line=append_new_line)
        self._insert(content + ("\n" if append_new_line else ""))

    def write_char(self, text, delay_ms=None) -> None:
        self._record("write_char", text=text)
        self._insert(text)

    def delete_left(self, count, delay_ms=None) -> None:
        self._record("delete_left", count=count)
        start = max(0, self.offset - count)
        self.text = self.text[:start] + self.text[self.offset :]
        self.offset = start

    def delete_right(self, count, delay_ms=None) -> None:
        self._record("delete_right", count=count)
        self.text = self.text[: self.offset] + self.text[self.offset + count :]

    def delete_line(self, count=1, delay_ms=None) -> None:
        self._record("delete_line", count=count)
        lines = self.text.split("\n")
        line, _ = self._line_col()
        del lines[line - 1 : line - 1 + count]
        self.text = "\n".join(lines)
        self._move(min(line, max(1, len(lines))), 1)

    def highlight_line(self, line_number, duration_ms=None) -> None:
        self._record("highlight_line", line_number=line_number)

    def move_cursor(self, line, column) -> None:
        self._record("move_cursor", line=line, column=column)
        self._move(line, column)

    def save_file(self) -> None:
        self._record("save_file")
        self.saved[self.path] = self.text
        self.buffers[self.path] = self.text

    def start_recording(self) -> None:
        self._record("start_recording")
        if self.fail_start:
            raise RuntimeError("recorder unavailable")

    def stop_recording(self) -> str:
        self._record("stop_recording")
        if self.fail_stop:
            raise RuntimeError("recorder crashed")
        return self.capture_path

    def _insert(self, text: str) -> None:
        self.text = self.text[: self.offset] + text + self.text[self.offset :]
        self.offset += len(text)

    def _move(self, line: int, column: int) -> None:
        lines = self.text.split("\n")
        line = min(max(1, line), len(lines))
        self.offset = sum(len(l) + 1 for l in lines[: line - 1]) + min(column - 1, len(lines[line - 1]))

    def _line_col(self) -> Tuple[int, int]:
        before = self.text[: self.offset]
        line = before.count("\n") + 1
        return line, len(before) - (before.rfind("\n") + 1) + 1


class FakeBrowserExecutor:
    def __init__(self, capture_path: str = "/tmp/browser-capture.webm", screenshot_path: str = "/tmp/shot.png") -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.capture_path = capture_path
        self.screenshot_path = screenshot_path
        self.fail_start = False
        self.fail_stop = False

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def navigate(self, url) -> None:
        self.calls.append(("navigate", {"url": url}))

    def click(self, selector) -> None:
        self.calls.append(("click", {"selector": selector}))

    def type(self, selector, text) -> None:
        self.calls.append(("type", {"selector": selector, "text": text}))

    def highlight(self, selector) -> None:
        self.calls.append(("highlight", {"selector": selector}))

    def screenshot(self) -> str:
        self.calls.append(("screenshot", {}))
        return self.screenshot_path

    def start_recording(self) -> None:
        self.calls.append(("start_recording", {}))
        if self.fail_start:
            raise RuntimeError("no display")

    def stop_recording(self) -> str:
        self.calls.append(("stop_recording", {}))
        if self.fail_stop:
            raise RuntimeError("recorder crashed")
        return self.capture_path


class FakeMedia:
    """MediaTools double: records ffmpeg invocations, duration lookups return fixed values."""

    def __init__(self, audio_duration: Optional[float] = None) -> None:
        self.ffmpeg_calls: List[List[str]] = []
        self.audio_duration = audio_duration
        self.fail_transcode = False
        self.checked: List[List[str]] = []
        self.concats: List[Tuple[List[str], str, str]] = []

    def run_ffmpeg(self, args: List[str]) -> None:
        from orchestrator.errors import MediaToolError

        if self.fail_transcode and "-vf" in args and "tpad" in args[args.index("-vf") + 1]:
            raise MediaToolError("ffmpeg exited with code 1: invalid data", command=args)
        self.ffmpeg_calls.append(list(args))

    def get_media_duration(self, path: str) -> Optional[float]:
        return self.audio_duration

    def assert_segments_compatible(self, paths: List[str]) -> None:
        self.checked.append(list(paths))

    def concat(self, paths: List[str], out_path: str, list_path: str) -> None:
        self.concats.append((list(paths), out_path, list_path))


@pytest.fixture
def code_executor():
    return FakeCodeExecutor()


@pytest.fixture
def browser_executor():
    return FakeBrowserExecutor()


@pytest.fixture
def fake_media():
    return FakeMedia()


@pytest.fixture
def no_sleep(monkeypatch):
    import time

    slept: List[float] = []
    monkeypatch.setattr(time, "sleep", lambda sec: slept.append(sec))
    return slept


def git(repo: str, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", repo, "-c", "user.name=Test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false", *args],
        check=True,
        capture_output=True,
    )
    return result.stdout.decode("utf-8").strip()


@pytest.fixture
def run_git():
    return git
