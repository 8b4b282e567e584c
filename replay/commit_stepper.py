"""Steps the live project directory through a sequence of commits.

The first checkout creates a detached worktree. Later checkouts replay the
diff through the attached editor (surgical replace) when one is present, and
otherwise swap the whole worktree.
"""
from typing import Optional

from orchestrator.executors import CodeExecutor

from .git_diff_applier import GitDiffApplier
from .git_helper import GitHelper
from .git_worktree import UNINITIALIZED, GitWorktreeManager


class CommitStepper:
    def __init__(
        self,
        project_dir: Optional[str],
        executor: Optional[CodeExecutor] = None,
        delay_ms: Optional[int] = None,
        git_bin: Optional[str] = None,
    ) -> None:
        self.original_project_dir = project_dir
        self.executor = executor
        self.delay_ms = delay_ms
        self.git_bin = git_bin
        self.manager: Optional[GitWorktreeManager] = None
        self.applier: Optional[GitDiffApplier] = None
        self.current_commit: Optional[str] = None
        self.project_dir = project_dir

    @property
    def state(self) -> str:
        return self.manager.state if self.manager else UNINITIALIZED

    def checkout(self, commit: str) -> Optional[str]:
        """Move to ``commit`` and return the project dir later reads should use."""
        if self.manager is None:
            self.manager = GitWorktreeManager.create(self.original_project_dir, git_bin=self.git_bin)
            self.project_dir = self.manager.checkout(commit)
            self.current_commit = commit
            return self.project_dir

        if self.executor is not None and self.current_commit:
            if self.applier is None:
                self.applier = self._make_applier()
            self.applier.apply(self.current_commit, commit)
            self.current_commit = commit
            return self.project_dir

        self.project_dir = self.manager.checkout(commit)
        self.current_commit = commit
        return self.project_dir

    def cleanup(self) -> Optional[str]:
        """Tear down any worktree; safe when nothing was ever checked out."""
        manager = self.manager
        self.manager = None
        self.applier = None
        self.current_commit = None
        self.project_dir = self.original_project_dir
        if manager is not None:
            manager.cleanup()
        return self.original_project_dir

    def _make_applier(self) -> GitDiffApplier:
        worktree_dir = self.manager.session.current_worktree_dir
        return GitDiffApplier(
            GitHelper(worktree_dir, git_bin=self.git_bin),
            root_dir=worktree_dir,
            executor=self.executor,
            project_prefix=self.manager.session.relative_project_prefix,
            delay_ms=self.delay_ms,
        )
