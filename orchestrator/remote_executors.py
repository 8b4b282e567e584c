"""Code and browser executors driven over MCP tool calls (HTTP JSON-RPC or SSE).

Transports only move a ``tools/call`` request and hand back whatever the server
answered. The executors own the rest: unwrapping the tool payload, checking the
fields they need, and turning every failure into an ``ExecutorError`` that names
the tool and the server.
"""
from __future__ import annotations

import http.client
import json
import os
import urllib.error
import urllib.request
from datetime import timedelta
from typing import Any, Dict, Optional

import anyio
import httpx
from mcp.client.session import ClientSession
from mcp.client.sse import sse_client
from mcp.shared.exceptions import McpError

from .errors import ExecutorError


class ToolCallFailed(RuntimeError):
    """The server answered, but reported the tool call as failed."""

    def __init__(self, detail: Any) -> None:
        self.detail = detail
        super().__init__(str(detail))


class HttpToolTransport:
    def __init__(self, url: str, timeout_sec: Optional[float] = None) -> None:
        self.url = url
        self.timeout_sec = float(timeout_sec or os.getenv("MCP_HTTP_TIMEOUT_SEC", "60"))
        self._next_id = 0

    def call(self, name: str, args: Dict[str, Any]) -> Any:
        self._next_id += 1
        request = {
            "jsonrpc": "2.0",
            "id": self._next_id,
            "method": "tools/call",
            "params": {"name": name, "arguments": args},
        }
        req = urllib.request.Request(
            self.url,
            data=json.dumps(request).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
            envelope = json.loads(resp.read().decode("utf-8"))
        if not isinstance(envelope, dict):
            raise ValueError(f"not a JSON-RPC response: {envelope!r}")
        if "error" in envelope:
            raise ToolCallFailed(envelope["error"])
        return envelope.get("result")


class SseToolTransport:
    def __init__(self, url: str, timeout_sec: Optional[float] = None) -> None:
        self.url = url
        self.timeout_sec = float(timeout_sec or os.getenv("MCP_HTTP_TIMEOUT_SEC", "60"))
        self.read_timeout_sec = float(os.getenv("MCP_SSE_READ_TIMEOUT_SEC", "300"))

    def call(self, name: str, args: Dict[str, Any]) -> Any:
        return anyio.run(self._call_async, name, args)

    async def _call_async(self, name: str, args: Dict[str, Any]) -> Any:
        async with sse_client(
            self.url,
            timeout=self.timeout_sec,
            sse_read_timeout=self.read_timeout_sec,
        ) as (read_stream, write_stream):
            async with ClientSession(
                read_stream,
                write_stream,
                read_timeout_seconds=timedelta(seconds=self.read_timeout_sec),
            ) as session:
                await session.initialize()
                result = await session.call_tool(name, arguments=args)
        if result.isError:
            raise ToolCallFailed(_text_of(result.content) or "tool reported an error")
        if result.structuredContent is not None:
            return result.structuredContent
        text = _text_of(result.content)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text


def _text_of(content: Any) -> Optional[str]:
    for item in content or []:
        if getattr(item, "type", None) == "text":
            return item.text
    return None


def _transport(url: str) -> str:
    explicit = (os.getenv("MCP_TRANSPORT") or "").strip().lower()
    if explicit:
        return explicit
    return "sse" if url.rstrip("/").endswith("/sse") else "http"


def _make_client(url: str, timeout_sec: Optional[float] = None) -> HttpToolTransport | SseToolTransport:
    if _transport(url) == "sse":
        return SseToolTransport(url, timeout_sec=timeout_sec)
    return HttpToolTransport(url, timeout_sec=timeout_sec)


class _RemoteExecutor:
    def __init__(self, url: str, timeout_sec: Optional[float] = None) -> None:
        self.url = url
        self.client = _make_client(url, timeout_sec=timeout_sec)

    def _call(self, tool: str, **args: Any) -> Dict[str, Any]:
        try:
            answer = self.client.call(tool, args)
        except ToolCallFailed as exc:
            raise ExecutorError(f"{tool} failed: {exc.detail}", tool=tool, url=self.url) from exc
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise ExecutorError(
                f"{tool}: executor answered HTTP {exc.code} {exc.reason}: {body}", tool=tool, url=self.url
            ) from exc
        except (OSError, http.client.HTTPException, httpx.HTTPError, McpError) as exc:
            raise ExecutorError(f"{tool}: cannot reach executor at {self.url}: {exc}", tool=tool, url=self.url) from exc
        except ValueError as exc:
            raise ExecutorError(f"{tool}: unreadable executor response: {exc}", tool=tool, url=self.url) from exc
        # Servers may nest the tool's fields under "result".
        if isinstance(answer, dict) and isinstance(answer.get("result"), dict):
            return answer["result"]
        if isinstance(answer, dict):
            return answer
        return {} if answer is None else {"value": answer}

    def _path(self, tool: str) -> str:
        path = self._call(tool).get("path")
        if not path or not isinstance(path, str):
            raise ExecutorError(f"{tool} returned no path", tool=tool, url=self.url)
        return path


class RemoteCodeExecutor(_RemoteExecutor):
    """Editor driver behind an MCP server. Cursor positions are 0-based on the wire."""

    def open_file(self, path: str, create_if_missing: bool = False, clear: bool = False) -> None:
        self._call("open_file", path=path, create_if_missing=create_if_missing, clear=clear)

    def write_line(
        self,
        content: str,
        line_number: Optional[int] = None,
        delay_ms: Optional[int] = None,
        append_new_line: bool = True,
    ) -> None:
        self._call(
            "write_line",
            content=content,
            line=None if line_number is None else line_number - 1,
            delay_ms=delay_ms,
            append_new_line=append_new_line,
        )

    def write_char(self, text: str, delay_ms: Optional[int] = None) -> None:
        self._call("write_char", text=text, delay_ms=delay_ms)

    def delete_left(self, count: int, delay_ms: Optional[int] = None) -> None:
        self._call("delete_left", count=count, delay_ms=delay_ms)

    def delete_right(self, count: int, delay_ms: Optional[int] = None) -> None:
        self._call("delete_right", count=count, delay_ms=delay_ms)

    def delete_line(self, count: int = 1, delay_ms: Optional[int] = None) -> None:
        self._call("delete_line", count=count, delay_ms=delay_ms)

    def highlight_line(self, line_number: int, duration_ms: Optional[int] = None) -> None:
        self._call("highlight_line", line=line_number - 1, duration_ms=duration_ms)

    def move_cursor(self, line: int, column: int) -> None:
        self._call("move_cursor", line=line - 1, column=column - 1)

    def save_file(self) -> None:
        self._call("save_file")

    def start_recording(self) -> None:
        self._call("start_recording")

    def stop_recording(self) -> str:
        return self._path("stop_recording")


class RemoteBrowserExecutor(_RemoteExecutor):
    def navigate(self, url: str) -> None:
        self._call("navigate", url=url)

    def click(self, selector: str) -> None:
        self._call("click", selector=selector)

    def type(self, selector: str, text: str) -> None:
        self._call("type", selector=selector, text=text)

    def highlight(self, selector: str) -> None:
        self._call("highlight", selector=selector)

    def screenshot(self) -> str:
        return self._path("screenshot")

    def start_recording(self) -> None:
        self._call("start_recording")

    def stop_recording(self) -> str:
        return self._path("stop_recording")
