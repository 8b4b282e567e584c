import os
import shutil
import subprocess

import pytest

from orchestrator.errors import GitCommandError
from replay.commit_stepper import CommitStepper
from replay.git_helper import GitHelper, parse_name_status
from replay.git_worktree import ACTIVE, TORN_DOWN, UNINITIALIZED, resolve_project_prefix, sanitize_ref

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")

TEN_LINES = "".join(f"line {i}\n" for i in range(1, 11))


def _commit(repo, run_git, files, message):
    for rel, content in files.items():
        path = os.path.join(repo, rel)
        if content is None:
            os.remove(path)
            continue
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    run_git(repo, "add", "-A")
    run_git(repo, "commit", "-q", "-m", message)
    return run_git(repo, "rev-parse", "HEAD")


@pytest.fixture
def repo(tmp_path, run_git):
    root = tmp_path / "repo"
    root.mkdir()
    run_git(str(root), "init", "-q")
    return str(root)


def test_parse_name_status_kinds():
    raw = "M\tsrc/a.py\nA\tsrc/new.py\nD\told.txt\nR087\tsrc/x.py\tsrc/y.py\nC100\ta.txt\tb.txt\nT\tlink\n"
    changes = parse_name_status(raw)
    assert [(c.kind, c.path, c.from_path) for c in changes] == [
        ("modify", "src/a.py", None),
        ("add", "src/new.py", None),
        ("delete", "old.txt", None),
        ("rename", "src/y.py", "src/x.py"),
        ("rename", "b.txt", "a.txt"),
        ("modify", "link", None),
    ]


def test_sanitize_ref():
    assert sanitize_ref("feature/foo bar") == "feature-foo-bar"
    assert sanitize_ref("///") == "ref"
    assert len(sanitize_ref("a" * 100)) == 48


def test_project_prefix_outside_repo_is_empty(tmp_path):
    assert resolve_project_prefix(str(tmp_path / "repo"), str(tmp_path / "other")) == ""
    assert resolve_project_prefix(str(tmp_path), str(tmp_path)) == ""
    assert resolve_project_prefix(str(tmp_path), str(tmp_path / "app" / "web")) == "app/web"


def test_git_failure_is_fatal(repo):
    with pytest.raises(GitCommandError) as info:
        GitHelper(repo).get_file_content("deadbeef", "missing.txt")
    assert info.value.payload["stage"] == "git"
    assert info.value.payload["returncode"] != 0


def test_wholesale_swap_without_executor(repo, run_git):
    first = _commit(repo, run_git, {"app/main.txt": "v1\n"}, "first")
    second = _commit(repo, run_git, {"app/main.txt": "v2\n"}, "second")
    project = os.path.join(repo, "app")

    stepper = CommitStepper(project)
    assert stepper.state == UNINITIALIZED

    dir_a = stepper.checkout(first)
    assert stepper.state == ACTIVE
    assert dir_a.endswith(os.path.join("", "app"))
    with open(os.path.join(dir_a, "main.txt"), encoding="utf-8") as f:
        assert f.read() == "v1\n"
    worktree_a = stepper.manager.session.current_worktree_dir

    dir_b = stepper.checkout(second)
    with open(os.path.join(dir_b, "main.txt"), encoding="utf-8") as f:
        assert f.read() == "v2\n"
    assert not os.path.exists(worktree_a)

    manager = stepper.manager
    temp_root = manager.session.temp_root_dir
    assert stepper.cleanup() == project
    assert manager.state == TORN_DOWN
    assert not os.path.exists(temp_root)
    assert stepper.project_dir == project
    listed = run_git(repo, "worktree", "list")
    assert len(listed.splitlines()) == 1


def test_surgical_replace_touches_only_changed_line(repo, run_git, code_executor):
    first = _commit(repo, run_git, {"src/app.txt": TEN_LINES}, "ten lines")
    second = _commit(repo, run_git, {"src/app.txt": TEN_LINES.replace("line 6\n", "line six\n")}, "edit six")

    stepper = CommitStepper(repo, executor=code_executor)
    worktree_project = stepper.checkout(first)
    worktree_dir = stepper.manager.session.current_worktree_dir

    returned = stepper.checkout(second)
    assert returned == worktree_project
    assert stepper.manager.session.current_worktree_dir == worktree_dir

    edits = [(n, a) for n, a in code_executor.calls if n not in ("open_file", "save_file")]
    assert edits
    assert {a["line"] for n, a in edits if n == "move_cursor"} == {6}
    assert "write_line" not in code_executor.names()
    assert "delete_line" not in code_executor.names()
    assert code_executor.text == TEN_LINES.replace("line 6\n", "line six\n")
    opened = [a["path"] for n, a in code_executor.calls if n == "open_file"]
    assert opened == [os.path.join(worktree_dir, "src", "app.txt")]

    stepper.cleanup()
    assert not os.path.exists(worktree_dir)
    assert stepper.project_dir == repo


def test_surgical_replace_add_delete_rename(repo, run_git, code_executor):
    first = _commit(repo, run_git, {"keep.txt": "k\n", "gone.txt": "a\nb\n", "old.txt": "same\n"}, "one")
    subprocess.run(["git", "-C", repo, "mv", "old.txt", "new.txt"], check=True, capture_output=True)
    second = _commit(repo, run_git, {"gone.txt": None, "fresh.txt": "hello\nworld\n"}, "two")

    stepper = CommitStepper(repo, executor=code_executor)
    stepper.checkout(first)
    root = stepper.manager.session.current_worktree_dir
    stepper.checkout(second)

    saved = {os.path.relpath(p, root): text for p, text in code_executor.saved.items()}
    assert saved["fresh.txt"] == "hello\nworld\n"
    assert saved["new.txt"] == "same\n"
    assert saved["gone.txt"] == ""
    assert saved["old.txt"] == ""
    assert "keep.txt" not in saved
    stepper.cleanup()


def test_cleanup_is_idempotent_when_never_started(tmp_path):
    stepper = CommitStepper(str(tmp_path))
    assert stepper.cleanup() == str(tmp_path)
    assert stepper.cleanup() == str(tmp_path)


def test_unknown_commit_fails_before_any_worktree(repo, run_git):
    _commit(repo, run_git, {"a.txt": "a\n"}, "only")
    stepper = CommitStepper(repo)
    with pytest.raises(GitCommandError) as info:
        stepper.checkout("no-such-ref")
    assert "rev-parse" in info.value.message
    assert stepper.manager.session.current_worktree_dir is None
    stepper.cleanup()
