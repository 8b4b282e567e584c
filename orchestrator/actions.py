"""Action model and the JSON action-script loader."""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .errors import ScriptError

NARRATE = "narrate"
OPEN_FILE = "openFile"
CLOSE_FILE = "closeFile"
INPUT_LINE = "inputLine"
EDIT_LINE = "editLine"
HIGHLIGHT = "highlight"
CLICK = "click"
NAVIGATE = "navigate"
CLOSE_BROWSER = "closeBrowser"
CHECKOUT_COMMIT = "checkoutCommit"
INSERT_CLIP = "insertClip"
MERGE = "merge"

# action name -> (required params, optional params)
ACTION_PARAMS: Dict[str, Any] = {
    NARRATE: (("text",), ("browser",)),
    OPEN_FILE: (("path",), ("mode",)),
    CLOSE_FILE: (("path",), ()),
    INPUT_LINE: (("path",), ("line_number", "text")),
    EDIT_LINE: (("path", "line_number"), ("text",)),
    HIGHLIGHT: (("selector",), ("text",)),
    CLICK: (("selector",), ("text",)),
    NAVIGATE: (("target",), ()),
    CLOSE_BROWSER: (("target",), ()),
    CHECKOUT_COMMIT: (("commit",), ()),
    INSERT_CLIP: (("path",), ()),
    MERGE: ((), ("output",)),
}

MODE_ALIASES = {"i": "input", "input": "input", "e": "edit", "edit": "edit"}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class Action:
    name: str
    params: Dict[str, Any] = field(default_factory=dict)


def snake_case(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def parse_action(raw: Dict[str, Any], index: int = 0) -> Action:
    if not isinstance(raw, dict):
        raise ScriptError(f"action #{index} must be an object", index=index)
    name = raw.get("action")
    if name not in ACTION_PARAMS:
        raise ScriptError(f"action #{index}: unknown action {name!r}", index=index, action=name)

    params = {snake_case(k): v for k, v in raw.items() if k != "action"}
    required, optional = ACTION_PARAMS[name]
    missing = [p for p in required if params.get(p) in (None, "")]
    if missing:
        raise ScriptError(f"action #{index} ({name}) missing {', '.join(missing)}", index=index, action=name)
    unknown = sorted(set(params) - set(required) - set(optional))
    if unknown:
        raise ScriptError(f"action #{index} ({name}) has unknown keys {', '.join(unknown)}", index=index, action=name)

    if "mode" in params and params["mode"] is not None:
        mode = MODE_ALIASES.get(str(params["mode"]).lower())
        if mode is None:
            raise ScriptError(f"action #{index} ({name}) has invalid mode {params['mode']!r}", index=index)
        params["mode"] = mode
    if params.get("line_number") is not None:
        try:
            params["line_number"] = int(params["line_number"])
        except (TypeError, ValueError) as exc:
            raise ScriptError(f"action #{index} ({name}) line_number must be an integer", index=index) from exc
    return Action(name=name, params=params)


def load_actions(path: str) -> List[Action]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ScriptError(f"cannot read action script {path}: {exc}", path=path) from exc
    if isinstance(data, dict):
        data = data.get("actions")
    if not isinstance(data, list):
        raise ScriptError(f"action script {path} must be a list of actions", path=path)
    return [parse_action(item, idx) for idx, item in enumerate(data)]
