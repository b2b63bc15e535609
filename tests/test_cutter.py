from __future__ import annotations

import re
import shutil
import subprocess
from pathlib import Path

import pytest

from clip_pipeline.clipping.cutter import (
    ClipCutter,
    aspect_from_dimensions,
    aspect_suffix,
    build_cut_args,
    resolve_aspect_ratio,
)
from clip_pipeline.errors import ExternalToolError
from clip_pipeline.ingest.probe import probe_media
from clip_pipeline.tools.invoker import MediaToolInvoker


def test_vertical_cut_scales_crops_and_reencodes(tmp_path: Path, rendering_invoker) -> None:
    clip = ClipCutter(rendering_invoker).cut(
        tmp_path / "source.mp4", 12.5, 42.5, output_dir=tmp_path / "out", aspect_ratio="9:16"
    )

    args = rendering_invoker.calls_for("ffmpeg")[0]
    assert args[:6] == ["-ss", "12.5", "-i", str(tmp_path / "source.mp4"), "-t", "30"]
    assert args[args.index("-vf") + 1] == "scale=1080:1920:force_original_aspect_ratio=increase,crop=1080:1920"
    assert args[args.index("-c:v") + 1] == "libx264"
    assert args[args.index("-preset") + 1] == "medium"
    assert args[args.index("-crf") + 1] == "23"
    assert args[args.index("-c:a") + 1] == "aac"
    assert args[-4:-1] == ["-avoid_negative_ts", "make_zero", "-y"]
    assert clip.duration == pytest.approx(30.0)
    assert clip.aspect_ratio == "9:16"
    assert clip.size_bytes == len(b"media-bytes")
    assert re.fullmatch(r"clip_\d+_[0-9a-f]{6}_12\.5s-42\.5s\.mp4", clip.file_name)


def test_short_form_hint_forces_vertical_and_names_file(tmp_path: Path, rendering_invoker) -> None:
    clip = ClipCutter(rendering_invoker).cut(
        tmp_path / "source.mp4", 0, 15, output_dir=tmp_path, aspect_ratio="original", platform_hint="reels"
    )

    assert clip.aspect_ratio == "9:16"
    assert clip.file_name.endswith("_0s-15s_reels.mp4")


def test_original_aspect_copies_streams() -> None:
    args = build_cut_args("in.mp4", 3.0, 10.0, Path("out.mp4"), "original")

    assert args == ["-ss", "3", "-i", "in.mp4", "-t", "10", "-c", "copy", "-avoid_negative_ts", "make_zero", "-y", "out.mp4"]


def test_cinematic_aspect_pads_to_wide_frame() -> None:
    args = build_cut_args("in.mp4", 0.0, 10.0, Path("out.mp4"), "2.35:1")

    assert "scale=2540:1080:force_original_aspect_ratio=decrease,pad=2540:1080:(ow-iw)/2:(oh-ih)/2" in args
    assert "libx264" in args


def test_aspect_resolution_and_suffix() -> None:
    assert resolve_aspect_ratio("16:9", "youtube_shorts") == "9:16"
    assert resolve_aspect_ratio("2.35:1", None) == "2.35:1"
    assert resolve_aspect_ratio(None, "youtube") == "original"
    assert aspect_suffix("9:16") == "9x16"
    assert aspect_suffix("2.35:1") == "2.35x1"
    assert aspect_suffix("original") == "original"


def test_aspect_from_dimensions_names_rendered_frames() -> None:
    assert aspect_from_dimensions(1080, 1920) == "9:16"
    assert aspect_from_dimensions(2540, 1080) == "2.35:1"
    assert aspect_from_dimensions(1920, 1080) == "16:9"
    assert aspect_from_dimensions(None, 1080) is None


@pytest.mark.parametrize(("start", "end"), [(10.0, 10.0), (20.0, 5.0), (-1.0, 5.0)])
def test_invalid_bounds_rejected_before_invoking(tmp_path: Path, rendering_invoker, start: float, end: float) -> None:
    with pytest.raises(ValueError):
        ClipCutter(rendering_invoker).cut(tmp_path / "source.mp4", start, end, output_dir=tmp_path)

    assert rendering_invoker.calls == []


def test_tool_failure_propagates(tmp_path: Path, make_invoker) -> None:
    def _fail(executable: str, args: list[str]):
        raise ExternalToolError(executable, 1, "Invalid data found when processing input")

    with pytest.raises(ExternalToolError, match="Invalid data found"):
        ClipCutter(make_invoker(_fail)).cut(tmp_path / "source.mp4", 0, 5, output_dir=tmp_path)


def test_extract_audio_resamples_to_16k_mono(tmp_path: Path, rendering_invoker) -> None:
    audio = ClipCutter(rendering_invoker).extract_audio(tmp_path / "source.mp4", 5, 20, output_dir=tmp_path)

    args = rendering_invoker.calls_for("ffmpeg")[0]
    assert args[:6] == ["-ss", "5", "-i", str(tmp_path / "source.mp4"), "-t", "15"]
    assert args[6:14] == ["-vn", "-acodec", "pcm_s16le", "-ar", "16000", "-ac", "1", "-y"]
    assert audio.file_name.endswith(".wav")
    assert audio.duration == pytest.approx(15.0)


@pytest.mark.skipif(shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None, reason="ffmpeg not installed")
def test_original_aspect_cut_preserves_duration(tmp_path: Path) -> None:
    source = tmp_path / "source.mp4"
    subprocess.run(
        [
            "ffmpeg",
            "-v",
            "error",
            "-f",
            "lavfi",
            "-i",
            "testsrc=size=320x240:rate=25:duration=6",
            "-c:v",
            "libx264",
            "-g",
            "1",
            "-y",
            str(source),
        ],
        check=True,
    )
    invoker = MediaToolInvoker()

    clip = ClipCutter(invoker).cut(source, 1.0, 4.0, output_dir=tmp_path / "out", aspect_ratio="original")
    probed = probe_media(clip.file_path, invoker)

    assert probed["duration_seconds"] == pytest.approx(3.0, abs=1 / 25 + 0.01)
