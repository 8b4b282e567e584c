"""CLI entrypoint: run a JSON action script and write the merged video."""
import argparse
import os
import sys
from typing import List, Optional

from .actions import MERGE, Action, load_actions
from .config import RuntimeConfig, load_config_file
from .errors import FatalError
from .remote_executors import RemoteBrowserExecutor, RemoteCodeExecutor
from .run_logger import RunLogger
from .runtime import Runtime


def build_config(args: argparse.Namespace) -> RuntimeConfig:
    overrides = {
        "project_dir": args.project_dir,
        "temp_dir": args.temp_dir,
        "cache_dir": args.cache_dir,
    }
    if args.dry_run:
        overrides["render_video"] = False
    if args.config:
        return load_config_file(args.config, **overrides)
    return RuntimeConfig.from_env(**overrides)


def build_runtime(args: argparse.Namespace, config: RuntimeConfig) -> Runtime:
    logger = RunLogger(os.path.abspath(args.run_dir)) if args.run_dir else None
    code_url = args.code_executor_url or os.getenv("TUTO_CODE_EXECUTOR_URL")
    browser_url = args.browser_executor_url or os.getenv("TUTO_BROWSER_EXECUTOR_URL")
    runtime = Runtime(config=config, logger=logger)
    if code_url:
        runtime.set_code_executor(RemoteCodeExecutor(code_url))
    if browser_url:
        runtime.set_browser_executor(RemoteBrowserExecutor(browser_url))
    return runtime


def with_output(actions: List[Action], output: Optional[str]) -> List[Action]:
    """Fill merge targets from --output, appending a merge when the script has none."""
    if not output:
        return actions
    merged = False
    result: List[Action] = []
    for action in actions:
        if action.name == MERGE:
            merged = True
            if not action.params.get("output"):
                action = Action(name=MERGE, params={**action.params, "output": output})
        result.append(action)
    if not merged:
        result.append(Action(name=MERGE, params={"output": output}))
    return result


def run_script(args: argparse.Namespace) -> str:
    config = build_config(args)
    actions = with_output(load_actions(args.script), args.output)
    runtime = build_runtime(args, config)
    try:
        runtime.run(actions)
    except FatalError as exc:
        if runtime.logger:
            runtime.logger.log(f"fatal: {exc.to_json()}")
        raise
    finally:
        runtime.cleanup()
    return args.output or ""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render a tutorial video from an action script")
    parser.add_argument("script", help="JSON action script")
    parser.add_argument("--output", "-o", default=None, help="Merged video path")
    parser.add_argument("--config", default=None, help="JSON file with runtime settings")
    parser.add_argument("--project-dir", default=None)
    parser.add_argument("--temp-dir", default=None)
    parser.add_argument("--cache-dir", default=None)
    parser.add_argument("--run-dir", default=None, help="Write run.log and run_manifest.json here")
    parser.add_argument("--dry-run", action="store_true", help="Drive executors and log actions, render nothing")
    parser.add_argument("--code-executor-url", default=None)
    parser.add_argument("--browser-executor-url", default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        output = run_script(args)
    except FatalError as exc:
        print(f"error[{exc.stage}]: {exc.message}", file=sys.stderr, flush=True)
        return 1
    if output and not args.dry_run:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
