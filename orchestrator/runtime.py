"""
Runtime: executes the action stream one action at a time and turns each into
at most one ordered media segment.
"""
import os
import sys
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .actions import (
    CHECKOUT_COMMIT,
    CLICK,
    CLOSE_BROWSER,
    CLOSE_FILE,
    EDIT_LINE,
    HIGHLIGHT,
    INPUT_LINE,
    INSERT_CLIP,
    MERGE,
    NARRATE,
    NAVIGATE,
    OPEN_FILE,
    Action,
)
from .config import RuntimeConfig
from .errors import CaptureError, DegradedError, MediaToolError, ScriptError, SourceUnavailableError
from .executors import BrowserExecutor, CodeExecutor
from .file_preview import (
    MODE_INPUT,
    FileContext,
    render_file_preview,
    resolve_script_path,
    try_read_file_lines,
)
from .narration import NarrationGenerator
from .run_logger import RunLogger
from render.media_tools import MediaTools
from render.segments import (
    AUDIO_PAD_SEC,
    LAYOUT_CENTER,
    LAYOUT_CODE,
    create_image_slide_segment,
    create_slide_segment,
    transcode_capture_to_segment,
)
from replay.commit_stepper import CommitStepper

LINE_SLIDE_SEC = 1.4
CAPTURE_MIN_SEC = 1.2
FLUSH_MIN_SEC = 0.8
END_SLIDE_SEC = 1.2
HIGHLIGHT_SETTLE_MS = 150
CLICK_SETTLE_MS = 250

SEGMENT_SLIDE = "slide"
SEGMENT_IMAGE = "image"
SEGMENT_CAPTURE = "capture"
SEGMENT_CLIP = "clip"


@dataclass
class Segment:
    path: str
    kind: str
    duration: Optional[float] = None


class Runtime:
    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        code_executor: Optional[CodeExecutor] = None,
        browser_executor: Optional[BrowserExecutor] = None,
        narration: Optional[NarrationGenerator] = None,
        media: Optional[MediaTools] = None,
        logger: Optional[RunLogger] = None,
    ) -> None:
        self.config = config or RuntimeConfig.from_env()
        self.code_executor = code_executor
        self.browser_executor = browser_executor
        self.narration = narration
        self.media = media or MediaTools(self.config)
        self.logger = logger
        self.settings = self.config.segment_settings()
        self.segments: List[Segment] = []
        self.file_contexts: Dict[str, FileContext] = {}
        self.project_dir = self.config.project_dir
        self.stepper: Optional[CommitStepper] = None
        self.temp_dir: Optional[str] = None
        self._actions: List[str] = []

    def set_code_executor(self, executor: Optional[CodeExecutor]) -> None:
        self.code_executor = executor

    def set_browser_executor(self, executor: Optional[BrowserExecutor]) -> None:
        self.browser_executor = executor

    def get_actions(self) -> List[str]:
        return list(self._actions)

    def run(self, actions: Iterable[Action]) -> None:
        for action in actions:
            self.execute(action)

    def execute(self, action: Action) -> Any:
        handlers: Dict[str, Callable[..., Any]] = {
            NARRATE: self.narrate,
            OPEN_FILE: self.open_file,
            CLOSE_FILE: self.close_file,
            INPUT_LINE: self.input_line,
            EDIT_LINE: self.edit_line,
            HIGHLIGHT: self.highlight,
            CLICK: self.click,
            NAVIGATE: self.navigate,
            CLOSE_BROWSER: self.close_browser,
            CHECKOUT_COMMIT: self.checkout_commit,
            INSERT_CLIP: self.insert_clip,
            MERGE: self.merge,
        }
        handler = handlers.get(action.name)
        if handler is None:
            raise ScriptError(f"unknown action {action.name!r}", action=action.name)
        return handler(**action.params)

    def cleanup(self) -> None:
        """Tear down commit stepping and restore the original project dir."""
        stepper = self.stepper
        self.stepper = None
        self.project_dir = self.config.project_dir
        if stepper is not None:
            stepper.cleanup()

    # -- actions -----------------------------------------------------------

    def narrate(self, text: str, browser: Optional[str] = None) -> None:
        extra = f" browser={browser}" if browser is not None else ""
        self._log(NARRATE, f"{text}{extra}")
        audio_path = self._generate_narration(text)

        if self.config.render_video and self.browser_executor and browser:
            target = str(browser).strip()
            if target and target.lower() != "true":
                self.browser_executor.navigate(self.resolve_browser_target(target))
            self._capture_browser(None, CAPTURE_MIN_SEC, audio_path, text)
            return

        self._create_slide(text, None, audio_path)

    def open_file(self, path: str, mode: Optional[str] = None) -> None:
        self._log(OPEN_FILE, f"{path} mode={mode or '-'}")
        resolved = resolve_script_path(self.project_dir, path)
        live = bool(self.config.render_video and self.code_executor and mode == MODE_INPUT)
        if self.code_executor:
            if live:
                self.code_executor.open_file(resolved, create_if_missing=True, clear=True)
            else:
                self.code_executor.open_file(resolved)

        lines = try_read_file_lines(resolved)
        shown = 0 if mode == MODE_INPUT else len(lines or [])
        context = FileContext(
            display_path=path,
            resolved_path=resolved,
            mode=mode,
            lines=lines,
            revealed_line_count=shown,
            typed_line_count=shown,
        )
        self.file_contexts[path] = context

        if live:
            return
        if context.has_lines:
            self._create_slide(self._preview(context), None, None, layout=LAYOUT_CODE)
        else:
            self._create_slide(f"File: {path}  mode: {mode or '-'}", None, None)

    def close_file(self, path: str) -> None:
        self._log(CLOSE_FILE, path)
        context = self.file_contexts.pop(path, None)
        if self.config.render_video and self.code_executor and context is not None and context.mode == MODE_INPUT:
            self._flush_remaining_lines(context)
            return
        if context is not None and context.has_lines:
            context.revealed_line_count = len(context.lines)
            self._create_slide(self._preview(context), END_SLIDE_SEC, None, layout=LAYOUT_CODE)
        else:
            self._create_slide(f"End of file: {path}", END_SLIDE_SEC, None)

    def input_line(self, path: str, line_number: Optional[int] = None, text: Optional[str] = None) -> None:
        self._log(INPUT_LINE, f"{path}:{line_number if line_number is not None else '?'} {text or ''}".strip())
        context = self.file_contexts.get(path)
        if (
            self.config.render_video
            and self.code_executor
            and context is not None
            and context.mode == MODE_INPUT
            and line_number is not None
        ):
            self._record_code_segment(context, line_number, text)
            return
        self._line_slide(path, context, line_number, text, reveal_all=False, label="Input")

    def edit_line(self, path: str, line_number: int, text: Optional[str] = None) -> None:
        self._log(EDIT_LINE, f"{path}:{line_number} {text or ''}".strip())
        context = self.file_contexts.get(path)
        if (
            self.config.render_video
            and self.code_executor
            and context is not None
            and (context.mode == MODE_INPUT or context.has_lines)
        ):
            self._record_code_segment(context, line_number, text)
            return
        self._line_slide(path, context, line_number, text, reveal_all=True, label="Edit")

    def highlight(self, selector: str, text: Optional[str] = None) -> None:
        self._log(HIGHLIGHT, selector)
        self._browser_action("Highlight", selector, text, HIGHLIGHT_SETTLE_MS, lambda b: b.highlight(selector))

    def click(self, selector: str, text: Optional[str] = None) -> None:
        self._log(CLICK, selector)
        self._browser_action("Click", selector, text, CLICK_SETTLE_MS, lambda b: b.click(selector))

    def navigate(self, target: str) -> None:
        self._log(NAVIGATE, target)
        if self.browser_executor:
            self.browser_executor.navigate(self.resolve_browser_target(target))
            if self.config.render_video:
                return
        self._create_slide(f"Browse: {target}", END_SLIDE_SEC, None)

    def close_browser(self, target: str) -> None:
        self._log(CLOSE_BROWSER, target)
        if self.config.render_video and self.browser_executor:
            return
        self._create_slide(f"End of browsing: {target}", 1.0, None)

    def checkout_commit(self, commit: str) -> Optional[str]:
        self._log(CHECKOUT_COMMIT, commit)
        if self.stepper is None:
            self.stepper = CommitStepper(
                self.project_dir,
                executor=self.code_executor,
                delay_ms=self.config.typing_delay_ms,
                git_bin=self.config.git_bin,
            )
        self.project_dir = self.stepper.checkout(commit)
        return self.project_dir

    def insert_clip(self, path: str) -> None:
        self._log(INSERT_CLIP, path)
        self._add_segment(os.path.abspath(path), SEGMENT_CLIP)

    def merge(self, output: Optional[str] = None) -> str:
        target = output or os.path.join(self.temp_dir or os.getcwd(), "tutoreel-output.mp4")
        self._log(MERGE, f"{target} ({len(self.segments)} segments)")
        if not self.config.render_video:
            return target
        if not self.segments:
            self._create_slide("Nothing to show yet", 1.0, None)

        self._ensure_temp_dir()
        paths = [seg.path for seg in self.segments]
        self.media.assert_segments_compatible(paths)
        out_dir = os.path.dirname(os.path.abspath(target))
        os.makedirs(out_dir, exist_ok=True)
        self.media.concat(paths, target, os.path.join(self.temp_dir, "concat.txt"))
        if self.logger:
            self.logger.set_output(target)
        return target

    def resolve_browser_target(self, target: str) -> str:
        trimmed = target.strip()
        if trimmed.startswith(("http://", "https://", "file://")):
            return trimmed
        return Path(resolve_script_path(self.project_dir, trimmed)).as_uri()

    # -- code capture ------------------------------------------------------

    def _record_code_segment(self, context: FileContext, line_number: int, narration: Optional[str]) -> None:
        if not context.has_lines:
            raise SourceUnavailableError(
                f"cannot read source {context.display_path}: live input replay needs an existing file",
                path=context.resolved_path,
            )
        if line_number < 1 or line_number > len(context.lines):
            raise ScriptError(
                f"line out of range: {context.display_path}:{line_number} ({len(context.lines)} lines)",
                path=context.display_path,
                line_number=line_number,
            )

        audio_path = self._generate_narration(narration)
        desired = self._desired_duration(CAPTURE_MIN_SEC, audio_path)

        def perform() -> None:
            self._type_lines(context, line_number)
            context.revealed_line_count = max(context.revealed_line_count, line_number)
            self.code_executor.highlight_line(line_number)

        self._capture_code(
            perform,
            desired,
            audio_path,
            lambda: self._preview(context, highlight_line=line_number, narration=narration),
        )

    def _flush_remaining_lines(self, context: FileContext) -> None:
        if not context.has_lines or context.typed_line_count >= len(context.lines):
            return

        def perform() -> None:
            self._type_lines(context, len(context.lines))
            context.revealed_line_count = len(context.lines)

        self._capture_code(perform, FLUSH_MIN_SEC, None, lambda: self._preview(context))

    def _type_lines(self, context: FileContext, through_line: int) -> None:
        for number in range(context.typed_line_count + 1, through_line + 1):
            self.code_executor.write_line(
                context.lines[number - 1],
                delay_ms=self.config.typing_delay_ms,
                append_new_line=True,
            )
        context.typed_line_count = max(context.typed_line_count, through_line)

    def _capture_code(
        self,
        perform: Callable[[], None],
        desired: float,
        audio_path: Optional[str],
        fallback_text: Callable[[], str],
    ) -> None:
        self._ensure_temp_dir()
        started = time.monotonic()
        try:
            self._start_recording(self.code_executor)
        except CaptureError as exc:
            self._warn("editor", f"{exc}, using a static preview")
            perform()
            self._create_slide(fallback_text(), desired, audio_path, layout=LAYOUT_CODE)
            return

        try:
            perform()
            self._wait_until(started, desired)
        finally:
            stopped = time.monotonic()
            capture_path = self._stop_recording(self.code_executor, "editor")

        duration = max(desired, stopped - started)
        if capture_path and self._transcode(capture_path, duration, audio_path):
            return
        self._create_slide(fallback_text(), desired, audio_path, layout=LAYOUT_CODE)

    # -- browser capture ---------------------------------------------------

    def _browser_action(
        self,
        label: str,
        selector: str,
        narration: Optional[str],
        settle_ms: int,
        perform: Callable[[BrowserExecutor], None],
    ) -> None:
        audio_path = self._generate_narration(narration)
        caption = f"{label} {selector}\n{narration}" if narration else f"{label} {selector}"
        min_duration = CAPTURE_MIN_SEC if narration else 1.0
        if self.config.render_video and self.browser_executor:
            browser = self.browser_executor
            self._capture_browser(lambda: perform(browser), min_duration, audio_path, caption, settle_ms)
            return
        if self.browser_executor:
            perform(self.browser_executor)
        self._create_slide(caption, min_duration, audio_path)

    def _capture_browser(
        self,
        action: Optional[Callable[[], None]],
        min_duration: float,
        audio_path: Optional[str],
        fallback_text: str,
        settle_ms: int = 0,
    ) -> None:
        desired = self._desired_duration(min_duration, audio_path)
        self._ensure_temp_dir()
        try:
            self._start_recording(self.browser_executor)
        except CaptureError as exc:
            self._warn("browser", f"{exc}, using a screenshot")
            self._screenshot_slide(fallback_text, desired, audio_path)
            return

        started = time.monotonic()
        try:
            if action is not None:
                action()
            if settle_ms:
                time.sleep(settle_ms / 1000.0)
            self._wait_until(started, desired)
        finally:
            stopped = time.monotonic()
            capture_path = self._stop_recording(self.browser_executor, "browser")

        if not capture_path:
            self._screenshot_slide(fallback_text, desired, audio_path)
            return
        if not self._transcode(capture_path, max(desired, stopped - started), audio_path):
            self._screenshot_slide(fallback_text, desired, audio_path)

    def _screenshot_slide(self, text: str, duration: float, audio_path: Optional[str]) -> None:
        try:
            image_path = self.browser_executor.screenshot()
        except Exception as exc:
            self._warn("browser", f"screenshot failed, using a text slide: {exc}")
            image_path = None
        if image_path:
            try:
                self._create_image_slide(image_path, text, duration, audio_path)
                return
            except MediaToolError as exc:
                self._warn("browser", f"screenshot slide failed, using a text slide: {exc.message}")
        self._create_slide(text, duration, audio_path)

    # -- helpers -----------------------------------------------------------

    def _start_recording(self, executor: Any) -> None:
        try:
            executor.start_recording()
        except Exception as exc:
            raise CaptureError(f"recording did not start: {exc}") from exc

    def _stop_recording(self, executor: Any, component: str) -> Optional[str]:
        try:
            return executor.stop_recording()
        except Exception as exc:
            self._warn(component, f"recording did not stop cleanly: {exc}")
            return None

    def _transcode(self, capture_path: str, duration: float, audio_path: Optional[str]) -> bool:
        try:
            path = transcode_capture_to_segment(
                self.settings,
                self.media,
                self.temp_dir,
                len(self.segments),
                capture_path,
                duration,
                audio_path=audio_path,
            )
        except MediaToolError as exc:
            self._warn("capture", f"transcode of {capture_path} failed: {exc.message}")
            return False
        self._add_segment(path, SEGMENT_CAPTURE, duration)
        return True

    def _line_slide(
        self,
        path: str,
        context: Optional[FileContext],
        line_number: Optional[int],
        text: Optional[str],
        reveal_all: bool,
        label: str,
    ) -> None:
        code_line = context.line(line_number) if context is not None and line_number is not None else None
        if self.code_executor:
            self.code_executor.write_line(code_line if code_line is not None else (text or ""), line_number)
        audio_path = self._generate_narration(text)

        if context is not None and context.has_lines and line_number is not None:
            if reveal_all or context.mode != MODE_INPUT:
                context.revealed_line_count = len(context.lines)
            else:
                context.revealed_line_count = min(max(context.revealed_line_count, line_number), len(context.lines))
            preview = self._preview(context, highlight_line=line_number, narration=text)
            self._create_slide(preview, LINE_SLIDE_SEC, audio_path, layout=LAYOUT_CODE)
            return

        where = line_number if line_number is not None else "?"
        self._create_slide(f"{label} {path}:{where}\n{text or ''}", LINE_SLIDE_SEC, audio_path)

    def _preview(
        self,
        context: FileContext,
        highlight_line: Optional[int] = None,
        narration: Optional[str] = None,
    ) -> str:
        return render_file_preview(
            context,
            highlight_line=highlight_line,
            narration=narration,
            screen_height=self.config.height,
        )

    def _generate_narration(self, text: Optional[str]) -> Optional[str]:
        if not self.config.render_video:
            return None
        trimmed = (text or "").strip()
        if not trimmed:
            return None
        if self.narration is None:
            if (self.config.narration_engine or "none").lower() == "none":
                return None
            self._ensure_temp_dir()
            self.narration = NarrationGenerator.from_config(
                self.config, output_dir=os.path.join(self.temp_dir, "narration")
            )
        try:
            return self.narration.generate(trimmed)
        except DegradedError as exc:
            self._warn("tts", f"narration dropped: {exc}")
            return None

    def _desired_duration(self, minimum: float, audio_path: Optional[str]) -> float:
        desired = minimum
        if audio_path:
            audio_duration = self.media.get_media_duration(audio_path)
            if audio_duration:
                desired = max(desired, audio_duration + AUDIO_PAD_SEC)
        return desired

    def _wait_until(self, started: float, desired: float) -> None:
        remaining = desired - (time.monotonic() - started)
        if remaining > 0:
            time.sleep(remaining)

    def _create_slide(
        self,
        text: str,
        duration: Optional[float],
        audio_path: Optional[str],
        layout: str = LAYOUT_CENTER,
    ) -> None:
        if not self.config.render_video:
            return
        self._ensure_temp_dir()
        path = create_slide_segment(
            self.settings,
            self.media,
            self.temp_dir,
            len(self.segments),
            text,
            duration=duration,
            audio_path=audio_path,
            layout=layout,
            speaking_rate=self.config.speaking_rate,
            font_file=self.config.font_file,
        )
        self._add_segment(path, SEGMENT_SLIDE, duration)

    def _create_image_slide(self, image_path: str, caption: str, duration: float, audio_path: Optional[str]) -> None:
        if not self.config.render_video:
            return
        self._ensure_temp_dir()
        path = create_image_slide_segment(
            self.settings,
            self.media,
            self.temp_dir,
            len(self.segments),
            image_path,
            duration,
            audio_path=audio_path,
            caption=caption,
            font_file=self.config.font_file,
        )
        self._add_segment(path, SEGMENT_IMAGE, duration)

    def _add_segment(self, path: str, kind: str, duration: Optional[float] = None) -> None:
        self.segments.append(Segment(path=path, kind=kind, duration=duration))
        if self.logger:
            self.logger.record_segment(path, kind, duration)

    def _ensure_temp_dir(self) -> str:
        if self.temp_dir:
            return self.temp_dir
        if self.config.temp_dir:
            os.makedirs(self.config.temp_dir, exist_ok=True)
            self.temp_dir = self.config.temp_dir
        else:
            self.temp_dir = tempfile.mkdtemp(prefix="tutoreel-")
        return self.temp_dir

    def _log(self, action: str, message: str) -> None:
        line = f"[{action}] {message}"
        self._actions.append(line)
        print(line, flush=True)
        if self.logger:
            self.logger.record_action(line)

    def _warn(self, component: str, reason: str) -> None:
        print(f"[{component}] {reason}", file=sys.stderr, flush=True)
        if self.logger:
            self.logger.warn(component, reason)
