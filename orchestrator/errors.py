"""Error taxonomy: fatal errors abort the run, degraded ones have a fallback."""
import json
from typing import Any, Dict


class FatalError(RuntimeError):
    stage = "runtime"

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.payload: Dict[str, Any] = {"stage": self.stage, "message": message, **details}
        super().__init__(message)

    def to_json(self) -> str:
        return json.dumps(self.payload, ensure_ascii=True, default=str)


class GitCommandError(FatalError):
    stage = "git"


class SegmentMismatchError(FatalError):
    stage = "merge"


class SourceUnavailableError(FatalError):
    stage = "source"


class ScriptError(FatalError):
    stage = "script"


class MediaToolError(FatalError):
    stage = "media"


class ExecutorError(FatalError):
    stage = "executor"


class DegradedError(RuntimeError):
    """Recoverable failure; the runtime logs it and substitutes a fallback."""


class NarrationError(DegradedError):
    pass


class TransientProviderError(NarrationError):
    """Rate limit or network blip from the speech provider; worth retrying."""


class CaptureError(DegradedError):
    pass
