"""Per-run log file and manifest."""
import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class RunLogger:
    def __init__(self, run_dir: str) -> None:
        self.run_dir = run_dir
        os.makedirs(self.run_dir, exist_ok=True)
        self.log_path = os.path.join(self.run_dir, "run.log")
        self.manifest_path = os.path.join(self.run_dir, "run_manifest.json")
        self.manifest: Dict[str, Any] = {
            "run_id": os.path.basename(os.path.normpath(run_dir)),
            "started_at": _now(),
            "actions": [],
            "segments": [],
            "output": None,
        }
        self._flush()

    def log(self, message: str) -> None:
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(f"[{_now()}] {message}\n")

    def warn(self, component: str, reason: str) -> None:
        self.log(f"warning:{component}: {reason}")

    def record_action(self, line: str) -> None:
        self.log(line)
        self.manifest["actions"].append(line)
        self._flush()

    def record_segment(self, path: str, kind: str, duration: Optional[float] = None) -> None:
        self.manifest["segments"].append({"path": path, "kind": kind, "duration_sec": duration})
        self._flush()

    def set_output(self, path: str) -> None:
        self.manifest["output"] = path
        self._flush()

    def _flush(self) -> None:
        self.manifest["updated_at"] = _now()
        with open(self.manifest_path, "w", encoding="utf-8") as f:
            json.dump(self.manifest, f, ensure_ascii=True, indent=2)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
