"""Disposable detached worktrees, one per checked-out commit."""
import os
import re
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Optional

from .git_helper import GitHelper

UNINITIALIZED = "uninitialized"
ACTIVE = "active"
TORN_DOWN = "torn_down"


@dataclass
class WorktreeSession:
    repo_root: str
    relative_project_prefix: str
    temp_root_dir: Optional[str] = None
    current_worktree_dir: Optional[str] = None


def resolve_project_prefix(repo_root: str, project_dir: str) -> str:
    """Project dir relative to the repo root, '' when it is the root or outside it."""
    rel = os.path.relpath(os.path.realpath(project_dir), os.path.realpath(repo_root))
    if rel == "." or rel.startswith(".."):
        return ""
    return rel.replace(os.sep, "/")


class GitWorktreeManager:
    def __init__(self, helper: GitHelper, session: WorktreeSession, original_project_dir: Optional[str]) -> None:
        self.helper = helper
        self.session = session
        self.original_project_dir = original_project_dir
        self.state = UNINITIALIZED

    @classmethod
    def create(cls, project_dir: Optional[str] = None, git_bin: Optional[str] = None) -> "GitWorktreeManager":
        resolved = os.path.abspath(project_dir or os.getcwd())
        repo_root = GitHelper(resolved, git_bin=git_bin).get_repo_root()
        session = WorktreeSession(
            repo_root=repo_root,
            relative_project_prefix=resolve_project_prefix(repo_root, resolved),
        )
        return cls(GitHelper(repo_root, git_bin=git_bin), session, original_project_dir=project_dir)

    def checkout(self, commit: str) -> str:
        """Swap the live worktree for one at ``commit``; return the project dir inside it."""
        sha = self.helper.rev_parse(commit)
        self._ensure_temp_dir()
        if self.session.current_worktree_dir:
            self._remove_worktree(self.session.current_worktree_dir)
            self.session.current_worktree_dir = None

        worktree_dir = os.path.join(
            self.session.temp_root_dir,
            f"worktree-{int(time.time() * 1000)}-{sanitize_ref(commit)}",
        )
        self.helper.worktree_add_detached(worktree_dir, sha)
        self.session.current_worktree_dir = worktree_dir
        self.state = ACTIVE
        return self.project_dir()

    def project_dir(self) -> Optional[str]:
        if not self.session.current_worktree_dir:
            return None
        prefix = self.session.relative_project_prefix
        if not prefix:
            return self.session.current_worktree_dir
        return os.path.join(self.session.current_worktree_dir, *prefix.split("/"))

    def cleanup(self) -> Optional[str]:
        """Remove the worktree and scratch dir; return the original project dir."""
        worktree_dir = self.session.current_worktree_dir
        temp_dir = self.session.temp_root_dir
        self.session.current_worktree_dir = None
        self.session.temp_root_dir = None
        try:
            if worktree_dir:
                self._remove_worktree(worktree_dir)
        finally:
            if temp_dir:
                shutil.rmtree(temp_dir, ignore_errors=True)
            self.state = TORN_DOWN
        return self.original_project_dir

    def _ensure_temp_dir(self) -> None:
        if self.session.temp_root_dir:
            return
        self.session.temp_root_dir = tempfile.mkdtemp(prefix="tutoreel-git-")

    def _remove_worktree(self, worktree_dir: str) -> None:
        self.helper.worktree_remove(worktree_dir, force=True)
        self.helper.worktree_prune()


def sanitize_ref(ref: str) -> str:
    normalized = ref.strip().replace("/", "-").replace("\\", "-")
    cleaned = re.sub(r"[^a-zA-Z0-9._-]+", "-", normalized)
    collapsed = re.sub(r"-+", "-", cleaned).strip("-")
    return collapsed[:48] if collapsed else "ref"
