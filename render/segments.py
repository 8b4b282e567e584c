"""
Segment producers. Every segment is encoded with the same SegmentSettings and
always carries exactly one video and one audio stream.
"""
import os
import textwrap
from typing import List, Optional

from orchestrator.config import SegmentSettings

from .media_tools import MediaTools, fmt_time

AUDIO_PAD_SEC = 0.2
MIN_ESTIMATE_SEC = 1.8
MAX_ESTIMATE_SEC = 15.0
WORDS_PER_SEC = 2.6
CENTER_WRAP_CHARS = 56

LAYOUT_CENTER = "center"
LAYOUT_CODE = "code"


def segment_path(temp_dir: str, index: int) -> str:
    return os.path.join(temp_dir, f"{index:04d}.mp4")


def estimate_duration(text: str, speaking_rate: float = 1.0) -> float:
    """Reading time from word count, clamped to [1.8, 15] seconds."""
    words = len(text.split())
    base = words / WORDS_PER_SEC if words else MIN_ESTIMATE_SEC
    rate = speaking_rate if speaking_rate and speaking_rate > 0 else 1.0
    return min(max(base / rate, MIN_ESTIMATE_SEC), MAX_ESTIMATE_SEC)


def resolve_duration(
    media: MediaTools,
    text: str,
    duration: Optional[float],
    audio_path: Optional[str],
    speaking_rate: float = 1.0,
) -> float:
    if audio_path:
        audio_duration = media.get_media_duration(audio_path)
        if audio_duration:
            # Narration is never cut short by a shorter explicit duration.
            return max(duration or 0.0, audio_duration + AUDIO_PAD_SEC)
    if duration is not None:
        return duration
    return estimate_duration(text, speaking_rate)


def create_slide_segment(
    settings: SegmentSettings,
    media: MediaTools,
    temp_dir: str,
    index: int,
    text: str,
    duration: Optional[float] = None,
    audio_path: Optional[str] = None,
    layout: str = LAYOUT_CENTER,
    speaking_rate: float = 1.0,
    font_file: Optional[str] = None,
) -> str:
    out_path = segment_path(temp_dir, index)
    target = resolve_duration(media, text, duration, audio_path, speaking_rate)

    text_file = f"{out_path}.txt"
    with open(text_file, "w", encoding="utf-8") as f:
        f.write(_layout_text(text, layout))

    args = [
        "-y",
        "-f",
        "lavfi",
        "-i",
        f"color=size={settings.width}x{settings.height}:duration={fmt_time(target)}:rate={settings.fps}:color=black",
    ]
    args += _audio_input(settings, audio_path)
    args += ["-vf", _drawtext(text_file, layout, font_file)]
    args += _output_args(settings, target)
    args += ["-shortest", out_path]
    media.run_ffmpeg(args)
    return out_path


def create_image_slide_segment(
    settings: SegmentSettings,
    media: MediaTools,
    temp_dir: str,
    index: int,
    image_path: str,
    duration: float,
    audio_path: Optional[str] = None,
    caption: Optional[str] = None,
    font_file: Optional[str] = None,
) -> str:
    out_path = segment_path(temp_dir, index)
    target = resolve_duration(media, caption or "", duration, audio_path)

    vf = _fit_filter(settings)
    if caption:
        caption_file = f"{out_path}.txt"
        with open(caption_file, "w", encoding="utf-8") as f:
            f.write("\n".join(textwrap.wrap(caption, CENTER_WRAP_CHARS * 2)) or caption)
        vf += "," + _drawtext(caption_file, "caption", font_file)

    args = ["-y", "-loop", "1", "-t", fmt_time(target), "-i", image_path]
    args += _audio_input(settings, audio_path)
    args += ["-vf", vf]
    args += _output_args(settings, target)
    args += ["-t", fmt_time(target), out_path]
    media.run_ffmpeg(args)
    return out_path


def transcode_capture_to_segment(
    settings: SegmentSettings,
    media: MediaTools,
    temp_dir: str,
    index: int,
    capture_path: str,
    duration: float,
    audio_path: Optional[str] = None,
) -> str:
    """Letterbox a raw capture into the canonical frame, padded or cut to ``duration``."""
    out_path = segment_path(temp_dir, index)
    args = ["-y", "-i", capture_path]
    args += _audio_input(settings, audio_path)
    vf = f"{_fit_filter(settings)},tpad=stop_mode=clone:stop_duration={fmt_time(duration)}"
    args += ["-vf", vf]
    args += _output_args(settings, duration)
    args += ["-t", fmt_time(duration), out_path]
    media.run_ffmpeg(args)
    return out_path


def _audio_input(settings: SegmentSettings, audio_path: Optional[str]) -> List[str]:
    if audio_path:
        return ["-i", audio_path]
    return ["-f", "lavfi", "-i", f"anullsrc=channel_layout=mono:sample_rate={settings.sample_rate}"]


def _output_args(settings: SegmentSettings, duration: float) -> List[str]:
    # Output-side only: must follow every -i.
    return [
        "-af",
        f"apad=whole_dur={fmt_time(duration)}",
        "-map",
        "0:v:0",
        "-map",
        "1:a:0",
        "-r",
        str(settings.fps),
        "-c:v",
        settings.video_codec,
        "-pix_fmt",
        settings.pixel_format,
        "-c:a",
        settings.audio_codec,
        "-ac",
        str(settings.channels),
        "-ar",
        str(settings.sample_rate),
    ]


def _fit_filter(settings: SegmentSettings) -> str:
    w, h = settings.width, settings.height
    return (
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={settings.fps},format={settings.pixel_format}"
    )


def _drawtext(text_file: str, layout: str, font_file: Optional[str]) -> str:
    parts = ["drawtext="]
    if font_file:
        parts.append(f"fontfile={_escape_filter_value(font_file)}:")
    parts.append(f"textfile={_escape_filter_value(text_file)}:fontcolor=white:line_spacing=6:box=1:")
    if layout == LAYOUT_CODE:
        parts.append("fontsize=26:boxcolor=0x000000cc:boxborderw=18:x=60:y=60")
    elif layout == "caption":
        parts.append("fontsize=28:boxcolor=0x000000aa:boxborderw=14:x=(w-text_w)/2:y=h-text_h-48")
    else:
        parts.append("fontsize=32:boxcolor=0x00000099:boxborderw=20:x=(w-text_w)/2:y=(h-text_h)/2")
    return "".join(parts)


def _escape_filter_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def _layout_text(text: str, layout: str) -> str:
    normalized = text.replace("\r\n", "\n")
    if layout == LAYOUT_CODE:
        return normalized
    wrapped: List[str] = []
    for paragraph in normalized.split("\n"):
        wrapped.extend(textwrap.wrap(paragraph, CENTER_WRAP_CHARS) or [""])
    return "\n".join(wrapped)
