"""Capability interfaces for the editor and browser drivers the runtime steers.

Line and column numbers are 1-based on this side of the boundary.
"""
from typing import Optional, Protocol


class CodeExecutor(Protocol):
    def open_file(self, path: str, create_if_missing: bool = False, clear: bool = False) -> None:
        ...

    def write_line(
        self,
        content: str,
        line_number: Optional[int] = None,
        delay_ms: Optional[int] = None,
        append_new_line: bool = True,
    ) -> None:
        ...

    def write_char(self, text: str, delay_ms: Optional[int] = None) -> None:
        ...

    def delete_left(self, count: int, delay_ms: Optional[int] = None) -> None:
        ...

    def delete_right(self, count: int, delay_ms: Optional[int] = None) -> None:
        ...

    def delete_line(self, count: int = 1, delay_ms: Optional[int] = None) -> None:
        ...

    def highlight_line(self, line_number: int, duration_ms: Optional[int] = None) -> None:
        ...

    def move_cursor(self, line: int, column: int) -> None:
        ...

    def save_file(self) -> None:
        ...

    def start_recording(self) -> None:
        ...

    def stop_recording(self) -> str:
        """Return the path of the raw capture."""
        ...


class BrowserExecutor(Protocol):
    def navigate(self, url: str) -> None:
        ...

    def click(self, selector: str) -> None:
        ...

    def type(self, selector: str, text: str) -> None:
        ...

    def highlight(self, selector: str) -> None:
        ...

    def screenshot(self) -> str:
        ...

    def start_recording(self) -> None:
        ...

    def stop_recording(self) -> str:
        ...
