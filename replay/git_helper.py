"""Thin wrapper over the git CLI. Every failure is fatal."""
import os
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from orchestrator.errors import GitCommandError


@dataclass
class GitChange:
    kind: str  # modify | add | delete | rename
    path: str
    from_path: Optional[str] = None


class GitHelper:
    def __init__(self, repo_dir: str, git_bin: Optional[str] = None) -> None:
        self.repo_dir = repo_dir
        self.git_bin = git_bin or os.getenv("GIT_BIN", "git")

    def get_repo_root(self) -> str:
        return self._run(["rev-parse", "--show-toplevel"]).strip()

    def rev_parse(self, ref: str) -> str:
        return self._run(["rev-parse", "--verify", f"{ref}^{{commit}}"]).strip()

    def get_name_status_diff(self, from_commit: str, to_commit: str) -> str:
        return self._run(["diff", "--name-status", "-M", from_commit, to_commit])

    def get_file_content(self, commit: str, path: str) -> str:
        return self._run(["show", f"{commit}:{path}"])

    def worktree_add_detached(self, worktree_dir: str, commit: str) -> None:
        self._run(["worktree", "add", "--detach", worktree_dir, commit])

    def worktree_remove(self, worktree_dir: str, force: bool = True) -> None:
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(worktree_dir)
        self._run(args)

    def worktree_prune(self) -> None:
        self._run(["worktree", "prune"])

    def _run(self, args: List[str]) -> str:
        cmd = [self.git_bin, "-C", self.repo_dir, *args]
        try:
            result = subprocess.run(cmd, capture_output=True, check=False)
        except OSError as exc:
            raise GitCommandError(
                f"git could not be started: {exc}",
                command=cmd,
                returncode=None,
                stderr="",
            ) from exc
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise GitCommandError(
                f"git {' '.join(args)} failed in {self.repo_dir} (code {result.returncode}): {stderr}",
                command=cmd,
                returncode=result.returncode,
                stderr=stderr,
            )
        return result.stdout.decode("utf-8", errors="replace")


def parse_name_status(raw: str) -> List[GitChange]:
    changes: List[GitChange] = []
    for line in raw.split("\n"):
        line = line.rstrip()
        if not line:
            continue
        parts = [p for p in line.split("\t") if p]
        status = parts[0][:1] if parts else ""

        if status in ("R", "C") and len(parts) >= 3:
            changes.append(GitChange(kind="rename", path=parts[2], from_path=parts[1]))
            continue
        if len(parts) < 2:
            continue

        path = parts[1]
        if status == "A":
            changes.append(GitChange(kind="add", path=path))
        elif status == "D":
            changes.append(GitChange(kind="delete", path=path))
        else:
            changes.append(GitChange(kind="modify", path=path))
    return changes
