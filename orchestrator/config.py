"""Runtime configuration: environment defaults, JSON overrides, canonical media settings."""
import json
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .errors import ScriptError


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass
class RuntimeConfig:
    render_video: bool = True
    project_dir: Optional[str] = None
    temp_dir: Optional[str] = None
    cache_dir: Optional[str] = None
    width: int = 1280
    height: int = 720
    fps: int = 30
    sample_rate: int = 24000
    speaking_rate: float = 1.0
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    font_file: Optional[str] = None
    narration_engine: str = "none"  # gemini | http | none
    narration_model: str = "gemini-2.5-flash-preview-tts"
    narration_voice: str = "Kore"
    narration_api_key: Optional[str] = None
    narration_url: Optional[str] = None
    narration_min_interval_sec: float = 0.5
    narration_max_retries: int = 3
    typing_delay_ms: Optional[int] = None
    git_bin: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides: Any) -> "RuntimeConfig":
        values: Dict[str, Any] = {
            "render_video": _env_bool("TUTO_RENDER_VIDEO", "1"),
            "project_dir": _env_optional("TUTO_PROJECT_DIR"),
            "temp_dir": _env_optional("TUTO_TEMP_DIR"),
            "cache_dir": _env_optional("TUTO_CACHE_DIR"),
            "width": int(os.getenv("RENDER_WIDTH", "1280")),
            "height": int(os.getenv("RENDER_HEIGHT", "720")),
            "fps": int(os.getenv("RENDER_FPS", "30")),
            "sample_rate": int(os.getenv("NARRATION_SAMPLE_RATE", "24000")),
            "speaking_rate": float(os.getenv("NARRATION_SPEAKING_RATE", "1.0")),
            "ffmpeg_bin": os.getenv("FFMPEG_BIN", "ffmpeg"),
            "ffprobe_bin": os.getenv("FFPROBE_BIN", "ffprobe"),
            "font_file": _env_optional("SLIDE_FONT_FILE"),
            "narration_engine": os.getenv("NARRATION_ENGINE", "none").strip().lower(),
            "narration_model": os.getenv("NARRATION_MODEL", "gemini-2.5-flash-preview-tts"),
            "narration_voice": os.getenv("NARRATION_VOICE", "Kore"),
            "narration_api_key": _env_optional("GOOGLE_API_KEY"),
            "narration_url": _env_optional("NARRATION_URL"),
            "narration_min_interval_sec": float(os.getenv("NARRATION_MIN_INTERVAL_MS", "500")) / 1000.0,
            "narration_max_retries": int(os.getenv("NARRATION_MAX_RETRIES", "3")),
            "git_bin": _env_optional("GIT_BIN"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def segment_settings(self) -> "SegmentSettings":
        return SegmentSettings(
            width=self.width,
            height=self.height,
            fps=self.fps,
            sample_rate=self.sample_rate,
        )


@dataclass(frozen=True)
class SegmentSettings:
    """Canonical encoding shared by every produced segment."""

    width: int
    height: int
    fps: int
    sample_rate: int
    video_codec: str = "libx264"
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    channels: int = 1


def load_config_file(path: str, **overrides: Any) -> RuntimeConfig:
    """Environment config with a JSON object of RuntimeConfig keys merged on top."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ScriptError(f"cannot read config file {path}: {exc}", path=path) from exc
    if not isinstance(data, dict):
        raise ScriptError(f"config file {path} must hold a JSON object", path=path)

    known = {f.name for f in fields(RuntimeConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ScriptError(f"unknown config keys in {path}: {', '.join(unknown)}", path=path)

    merged = dict(data)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return RuntimeConfig.from_env(**merged)


def resolve_cache_root(explicit: Optional[str] = None) -> str:
    root = explicit or os.getenv("TUTO_CACHE_DIR") or os.path.join(os.getcwd(), ".tutoreel-cache")
    return os.path.abspath(root)
