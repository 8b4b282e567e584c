import json

import pytest

from orchestrator import cli
from orchestrator.actions import Action


def _script(tmp_path, actions):
    path = tmp_path / "script.json"
    path.write_text(json.dumps(actions), encoding="utf-8")
    return str(path)


def test_dry_run_prints_actions_and_exits_cleanly(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("TUTO_CODE_EXECUTOR_URL", raising=False)
    monkeypatch.delenv("TUTO_BROWSER_EXECUTOR_URL", raising=False)
    script = _script(
        tmp_path,
        [
            {"action": "narrate", "text": "Hello"},
            {"action": "openFile", "path": "app.py", "mode": "edit"},
            {"action": "merge"},
        ],
    )
    run_dir = tmp_path / "run"

    code = cli.main([script, "--dry-run", "--project-dir", str(tmp_path), "--run-dir", str(run_dir)])

    assert code == 0
    out = capsys.readouterr().out
    assert "[narrate] Hello" in out
    assert "[openFile] app.py mode=edit" in out
    with open(run_dir / "run_manifest.json", encoding="utf-8") as f:
        manifest = json.load(f)
    assert len(manifest["actions"]) == 3
    assert manifest["segments"] == []


def test_fatal_errors_exit_with_stage(tmp_path, capsys):
    script = _script(tmp_path, [{"action": "warp", "speed": 9}])
    assert cli.main([script, "--dry-run"]) == 1
    err = capsys.readouterr().err
    assert err.startswith("error[script]: ")
    assert "unknown action 'warp'" in err


def test_missing_script_is_reported(tmp_path, capsys):
    assert cli.main([str(tmp_path / "nope.json")]) == 1
    assert "error[script]: cannot read action script" in capsys.readouterr().err


def test_with_output_fills_or_appends_merge():
    actions = [Action("narrate", {"text": "a"}), Action("merge", {})]
    filled = cli.with_output(actions, "final.mp4")
    assert filled[-1] == Action("merge", {"output": "final.mp4"})

    kept = cli.with_output([Action("merge", {"output": "mine.mp4"})], "final.mp4")
    assert kept == [Action("merge", {"output": "mine.mp4"})]

    appended = cli.with_output([Action("narrate", {"text": "a"})], "final.mp4")
    assert [a.name for a in appended] == ["narrate", "merge"]
    assert cli.with_output(actions, None) is actions


def test_cleanup_runs_even_when_an_action_fails(tmp_path, monkeypatch):
    calls = []
    monkeypatch.setattr(cli.Runtime, "cleanup", lambda self: calls.append("cleanup"))
    script = _script(tmp_path, [{"action": "inputLine", "path": "a.py", "lineNumber": 1}])

    def explode(self, actions):
        raise RuntimeError("editor went away")

    monkeypatch.setattr(cli.Runtime, "run", explode)
    with pytest.raises(RuntimeError):
        cli.main([script, "--dry-run"])
    assert calls == ["cleanup"]


def test_fatal_error_payload_lands_in_run_log(tmp_path, capsys, monkeypatch):
    script = _script(tmp_path, [{"action": "editLine", "path": "a.py", "lineNumber": 1}])
    run_dir = tmp_path / "run"

    def fail(self, path, line_number, text=None):
        raise cli.FatalError("editor rejected the edit", path=path)

    monkeypatch.setattr(cli.Runtime, "edit_line", fail)
    assert cli.main([script, "--dry-run", "--run-dir", str(run_dir)]) == 1

    with open(run_dir / "run.log", encoding="utf-8") as f:
        log = f.read()
    fatal = [line for line in log.splitlines() if "fatal: " in line]
    assert fatal and json.loads(fatal[0].split("fatal: ", 1)[1])["path"] == "a.py"
    assert "error[runtime]: editor rejected the edit" in capsys.readouterr().err
