"""
ffmpeg/ffprobe wrappers plus the pre-merge compatibility gate.
"""
import json
import os
import subprocess
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import soundfile as sf

from orchestrator.config import RuntimeConfig
from orchestrator.errors import MediaToolError, SegmentMismatchError

SIGNATURE_ENTRIES = "stream=codec_type,codec_name,width,height,pix_fmt,r_frame_rate,avg_frame_rate,channels,sample_rate"


@dataclass(frozen=True)
class Signature:
    video_codec: str
    width: int
    height: int
    pixel_format: str
    frame_rate: str
    audio_codec: str
    channels: int
    sample_rate: str

    def describe(self) -> str:
        return (
            f"v={self.video_codec} {self.width}x{self.height} {self.pixel_format} fps={self.frame_rate}; "
            f"a={self.audio_codec} ch={self.channels} rate={self.sample_rate}"
        )


class MediaTools:
    def __init__(self, config: RuntimeConfig) -> None:
        self.ffmpeg_bin = config.ffmpeg_bin
        self.ffprobe_bin = config.ffprobe_bin

    def run_ffmpeg(self, args: List[str]) -> None:
        cmd = [self.ffmpeg_bin, "-loglevel", "error", *args]
        self._run(cmd, "ffmpeg")

    def run_ffprobe(self, args: List[str]) -> str:
        cmd = [self.ffprobe_bin, *args]
        return self._run(cmd, "ffprobe")

    def get_media_duration(self, path: str) -> Optional[float]:
        """Duration in seconds, or None when ffprobe cannot read it."""
        wav_duration = _wav_duration_sec(path)
        if wav_duration:
            return wav_duration
        try:
            out = self.run_ffprobe(
                ["-v", "error", "-show_entries", "format=duration", "-of", "default=noprint_wrappers=1:nokey=1", path]
            )
        except MediaToolError as exc:
            print(f"[ffprobe] cannot read duration of {path}: {exc.message}", file=sys.stderr, flush=True)
            return None
        try:
            return float(out.strip())
        except ValueError:
            return None

    def get_segment_signature(self, path: str) -> Signature:
        raw = self.run_ffprobe(["-v", "error", "-show_entries", SIGNATURE_ENTRIES, "-of", "json", path])
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MediaToolError(f"ffprobe returned invalid JSON for {path}", path=path) from exc

        streams = [s for s in data.get("streams", []) if isinstance(s, dict)]
        video = next((s for s in streams if s.get("codec_type") == "video"), None)
        audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
        if video is None:
            raise MediaToolError(f"segment has no video stream: {path}", path=path)
        if audio is None:
            raise MediaToolError(f"segment has no audio stream: {path}", path=path)

        frame_rate = str(video.get("r_frame_rate") or video.get("avg_frame_rate") or "")
        if not frame_rate:
            raise MediaToolError(f"segment frame rate unknown: {path}", path=path)

        return Signature(
            video_codec=_require(video, "codec_name", path),
            width=int(_require(video, "width", path)),
            height=int(_require(video, "height", path)),
            pixel_format=_require(video, "pix_fmt", path),
            frame_rate=frame_rate,
            audio_codec=_require(audio, "codec_name", path),
            channels=int(_require(audio, "channels", path)),
            sample_rate=str(_require(audio, "sample_rate", path)),
        )

    def assert_segments_compatible(self, paths: List[str]) -> None:
        """Every segment must match the first one's Signature field for field."""
        if len(paths) <= 1:
            return
        first, rest = paths[0], paths[1:]
        expected = self.get_segment_signature(first)
        for path in rest:
            actual = self.get_segment_signature(path)
            if actual != expected:
                raise SegmentMismatchError(
                    "segment encoding differs, refusing to concat with -c copy\n"
                    f"- expected: {expected.describe()}\n"
                    f"- actual: {actual.describe()}\n"
                    f"- file: {path}",
                    expected=expected.describe(),
                    actual=actual.describe(),
                    path=path,
                )

    def concat(self, paths: List[str], out_path: str, list_path: str) -> None:
        with open(list_path, "w", encoding="utf-8") as f:
            for path in paths:
                escaped = os.path.abspath(path).replace("'", "'\\''")
                f.write(f"file '{escaped}'\n")
        self.run_ffmpeg(["-y", "-f", "concat", "-safe", "0", "-i", list_path, "-c", "copy", out_path])

    def _run(self, cmd: List[str], tool: str) -> str:
        try:
            result = subprocess.run(cmd, check=True, capture_output=True)
        except OSError as exc:
            raise MediaToolError(f"{tool} could not be started: {exc}", command=cmd) from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
            raise MediaToolError(
                f"{tool} exited with code {exc.returncode}: {stderr}",
                command=cmd,
                returncode=exc.returncode,
                stderr=stderr,
            ) from exc
        return result.stdout.decode("utf-8", errors="replace")


def _require(stream: Dict[str, Any], key: str, path: str) -> Any:
    value = stream.get(key)
    if value in (None, "", 0):
        raise MediaToolError(f"ffprobe stream field {key} missing for {path}", path=path)
    return value


def _wav_duration_sec(path: str) -> float:
    if not path.lower().endswith(".wav"):
        return 0.0
    try:
        return float(sf.info(path).duration)
    except (RuntimeError, OSError):
        return 0.0


def fmt_time(value: float) -> str:
    return f"{value:.3f}"
