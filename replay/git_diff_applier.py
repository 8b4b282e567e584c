"""Surgical commit-to-commit replay through a live editor session."""
import os
from typing import Dict, Optional

from orchestrator.executors import CodeExecutor

from .file_editor import apply_file_diff
from .git_helper import GitChange, GitHelper, parse_name_status
from .text_diff import split_lines


class GitDiffApplier:
    """Replays every file changed between two commits as editor keystrokes.

    Files are opened under ``root_dir`` (the live worktree), never under the
    caller's own checkout.
    """

    def __init__(
        self,
        helper: GitHelper,
        root_dir: str,
        executor: CodeExecutor,
        project_prefix: str = "",
        delay_ms: Optional[int] = None,
    ) -> None:
        self.helper = helper
        self.root_dir = root_dir
        self.executor = executor
        self.project_prefix = project_prefix
        self.delay_ms = delay_ms
        self._contents: Dict[str, str] = {}

    def apply(self, from_commit: str, to_commit: str) -> None:
        raw = self.helper.get_name_status_diff(from_commit, to_commit)
        for change in parse_name_status(raw):
            self._apply_change(change, from_commit, to_commit)

    def _apply_change(self, change: GitChange, from_commit: str, to_commit: str) -> None:
        if change.kind == "rename":
            if change.from_path and self.should_handle(change.from_path):
                self._apply_delete(from_commit, change.from_path)
            if self.should_handle(change.path):
                self._apply_add(to_commit, change.path)
            return
        if not self.should_handle(change.path):
            return
        if change.kind == "delete":
            self._apply_delete(from_commit, change.path)
        elif change.kind == "add":
            self._apply_add(to_commit, change.path)
        else:
            self._apply_modify(from_commit, to_commit, change.path)

    def should_handle(self, path: str) -> bool:
        if not self.project_prefix:
            return True
        return path == self.project_prefix or path.startswith(f"{self.project_prefix}/")

    def _apply_modify(self, from_commit: str, to_commit: str, path: str) -> None:
        before = self._cached_or_git(from_commit, path)
        after = self.helper.get_file_content(to_commit, path)
        self.executor.open_file(self._abs(path), create_if_missing=True, clear=False)
        apply_file_diff(self.executor, before, after, delay_ms=self.delay_ms)
        self.executor.save_file()
        self._contents[path] = after

    def _apply_add(self, to_commit: str, path: str) -> None:
        after = self.helper.get_file_content(to_commit, path)
        self.executor.open_file(self._abs(path), create_if_missing=True, clear=True)
        if after:
            self.executor.write_char(after, delay_ms=self.delay_ms)
        self.executor.save_file()
        self._contents[path] = after

    def _apply_delete(self, from_commit: str, path: str) -> None:
        before = self._cached_or_git(from_commit, path)
        self.executor.open_file(self._abs(path), create_if_missing=False, clear=False)
        self.executor.move_cursor(1, 1)
        self.executor.delete_line(max(1, len(split_lines(before))), delay_ms=self.delay_ms)
        self.executor.save_file()
        self._contents.pop(path, None)

    def _cached_or_git(self, commit: str, path: str) -> str:
        cached = self._contents.get(path)
        if cached is not None:
            return cached
        return self.helper.get_file_content(commit, path)

    def _abs(self, path: str) -> str:
        return os.path.join(self.root_dir, *path.split("/"))
