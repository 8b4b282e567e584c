import json
import subprocess
from types import SimpleNamespace

import numpy as np
import pytest
import soundfile as sf

from orchestrator.config import RuntimeConfig
from orchestrator.errors import MediaToolError, SegmentMismatchError
from render.media_tools import MediaTools, Signature


def _stream_json(frame_rate="30/1", width=1280, sample_rate="24000"):
    return json.dumps(
        {
            "streams": [
                {
                    "codec_type": "video",
                    "codec_name": "h264",
                    "width": width,
                    "height": 720,
                    "pix_fmt": "yuv420p",
                    "r_frame_rate": frame_rate,
                },
                {"codec_type": "audio", "codec_name": "aac", "channels": 1, "sample_rate": sample_rate},
            ]
        }
    ).encode("utf-8")


@pytest.fixture
def media_info(monkeypatch):
    """Map of media path -> ffprobe JSON bytes; every command run is recorded."""
    table = {}
    commands = []

    def fake_run(cmd, check=False, capture_output=False):
        commands.append(cmd)
        if cmd[0] == "ffprobe":
            return SimpleNamespace(stdout=table[cmd[-1]], returncode=0)
        return SimpleNamespace(stdout=b"", returncode=0)

    monkeypatch.setattr(subprocess, "run", fake_run)
    return SimpleNamespace(table=table, commands=commands)


def test_signature_reads_video_and_audio_streams(media_info):
    media_info.table["a.mp4"] = _stream_json()
    sig = MediaTools(RuntimeConfig()).get_segment_signature("a.mp4")
    assert sig == Signature("h264", 1280, 720, "yuv420p", "30/1", "aac", 1, "24000")
    assert sig.describe() == "v=h264 1280x720 yuv420p fps=30/1; a=aac ch=1 rate=24000"


def test_matching_segments_pass_the_gate(media_info):
    media_info.table["a.mp4"] = _stream_json()
    media_info.table["b.mp4"] = _stream_json()
    MediaTools(RuntimeConfig()).assert_segments_compatible(["a.mp4", "b.mp4"])


def test_frame_rate_mismatch_names_both_signatures_and_file(media_info, tmp_path):
    media_info.table["a.mp4"] = _stream_json("30/1")
    media_info.table["b.mp4"] = _stream_json("25/1")

    with pytest.raises(SegmentMismatchError) as info:
        MediaTools(RuntimeConfig()).assert_segments_compatible(["a.mp4", "b.mp4"])

    message = str(info.value)
    assert "expected:" in message and "30/1" in message
    assert "actual:" in message and "25/1" in message
    assert "file: b.mp4" in message
    assert info.value.payload["stage"] == "merge"
    assert info.value.payload["path"] == "b.mp4"
    assert not any(cmd[0] == "ffmpeg" for cmd in media_info.commands)


def test_missing_audio_stream_is_an_error(media_info):
    data = json.loads(_stream_json())
    data["streams"] = data["streams"][:1]
    media_info.table["silent.mp4"] = json.dumps(data).encode("utf-8")
    with pytest.raises(MediaToolError, match="no audio stream"):
        MediaTools(RuntimeConfig()).get_segment_signature("silent.mp4")


def test_concat_writes_list_and_copies_streams(media_info, tmp_path):
    list_path = str(tmp_path / "concat.txt")
    MediaTools(RuntimeConfig()).concat([str(tmp_path / "0000.mp4"), str(tmp_path / "it's.mp4")], "out.mp4", list_path)

    with open(list_path, encoding="utf-8") as f:
        lines = f.read().splitlines()
    assert lines[0] == f"file '{tmp_path / '0000.mp4'}'"
    assert lines[1].endswith("it'\\''s.mp4'")
    cmd = media_info.commands[-1]
    assert cmd[:3] == ["ffmpeg", "-loglevel", "error"]
    assert cmd[-3:] == ["-c", "copy", "out.mp4"]


def test_ffmpeg_failure_maps_to_media_error(monkeypatch):
    def failing_run(cmd, check=False, capture_output=False):
        raise subprocess.CalledProcessError(1, cmd, output=b"", stderr=b"Invalid data found")

    monkeypatch.setattr(subprocess, "run", failing_run)
    with pytest.raises(MediaToolError) as info:
        MediaTools(RuntimeConfig()).run_ffmpeg(["-i", "x.mp4", "y.mp4"])
    assert info.value.payload["returncode"] == 1
    assert "Invalid data found" in info.value.message


def test_missing_binary_maps_to_media_error(monkeypatch):
    def missing(cmd, check=False, capture_output=False):
        raise FileNotFoundError(2, "No such file or directory", cmd[0])

    monkeypatch.setattr(subprocess, "run", missing)
    with pytest.raises(MediaToolError, match="could not be started"):
        MediaTools(RuntimeConfig(ffmpeg_bin="nope-ffmpeg")).run_ffmpeg(["-version"])


def test_wav_duration_comes_from_header(tmp_path):
    path = str(tmp_path / "n.wav")
    sf.write(path, np.zeros(12000, dtype="int16"), 24000, subtype="PCM_16")
    assert MediaTools(RuntimeConfig()).get_media_duration(path) == pytest.approx(0.5)


def test_unreadable_duration_is_none(monkeypatch, capsys):
    def failing_run(cmd, check=False, capture_output=False):
        raise subprocess.CalledProcessError(1, cmd, output=b"", stderr=b"moov atom not found")

    monkeypatch.setattr(subprocess, "run", failing_run)
    assert MediaTools(RuntimeConfig()).get_media_duration("broken.mp4") is None
    assert "broken.mp4" in capsys.readouterr().err
