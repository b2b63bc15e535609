from __future__ import annotations

import logging
import math
import time
import uuid
from pathlib import Path

from clip_pipeline.ingest.platforms import VERTICAL_HINTS
from clip_pipeline.models import RenderedClip
from clip_pipeline.tools.invoker import MediaToolInvoker

logger = logging.getLogger(__name__)

VERTICAL_ASPECT = "9:16"
CINEMATIC_ASPECT = "2.35:1"
ORIGINAL_ASPECT = "original"

VERTICAL_FILTER = "scale=1080:1920:force_original_aspect_ratio=increase,crop=1080:1920"
CINEMATIC_FILTER = "scale=2540:1080:force_original_aspect_ratio=decrease,pad=2540:1080:(ow-iw)/2:(oh-ih)/2"
ENCODE_ARGS = ["-c:v", "libx264", "-preset", "medium", "-crf", "23", "-c:a", "aac"]

AUDIO_SAMPLE_RATE = 16000
ASPECT_TOLERANCE = 0.01


class ClipCutter:
    """Cut clip segments and speech audio out of a source file with ffmpeg."""

    def __init__(self, invoker: MediaToolInvoker) -> None:
        self.invoker = invoker

    def cut(
        self,
        input_path: str | Path,
        start: float,
        end: float,
        *,
        output_dir: Path,
        aspect_ratio: str = ORIGINAL_ASPECT,
        platform_hint: str | None = None,
    ) -> RenderedClip:
        _validate_bounds(start, end)
        duration = end - start
        effective_aspect = resolve_aspect_ratio(aspect_ratio, platform_hint)

        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / clip_file_name(start, end, platform_hint)
        args = build_cut_args(input_path, start, duration, output_path, effective_aspect)

        logger.info("Cutting %.2fs-%.2fs (%s) from %s", start, end, effective_aspect, Path(input_path).name)
        self.invoker.invoke(self.invoker.ffmpeg, args)

        return RenderedClip(
            file_path=str(output_path),
            file_name=output_path.name,
            size_bytes=output_path.stat().st_size,
            duration=duration,
            aspect_ratio=effective_aspect,
        )

    def extract_audio(
        self,
        input_path: str | Path,
        start: float,
        end: float,
        *,
        output_dir: Path,
    ) -> RenderedClip:
        """Extract the segment as 16 kHz mono PCM WAV for speech transcription."""

        _validate_bounds(start, end)
        duration = end - start
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / f"audio_{_token()}_{_seconds(start)}s-{_seconds(end)}s.wav"

        self.invoker.invoke(
            self.invoker.ffmpeg,
            [
                "-ss",
                _seconds(start),
                "-i",
                str(input_path),
                "-t",
                _seconds(duration),
                "-vn",
                "-acodec",
                "pcm_s16le",
                "-ar",
                str(AUDIO_SAMPLE_RATE),
                "-ac",
                "1",
                "-y",
                str(output_path),
            ],
        )

        return RenderedClip(
            file_path=str(output_path),
            file_name=output_path.name,
            size_bytes=output_path.stat().st_size,
            duration=duration,
            aspect_ratio="audio",
        )


def resolve_aspect_ratio(aspect_ratio: str | None, platform_hint: str | None) -> str:
    if aspect_ratio == VERTICAL_ASPECT or (platform_hint or "").lower() in VERTICAL_HINTS:
        return VERTICAL_ASPECT
    if aspect_ratio == CINEMATIC_ASPECT:
        return CINEMATIC_ASPECT
    return ORIGINAL_ASPECT


def build_cut_args(
    input_path: str | Path,
    start: float,
    duration: float,
    output_path: Path,
    aspect_ratio: str,
) -> list[str]:
    args = ["-ss", _seconds(start), "-i", str(input_path), "-t", _seconds(duration)]

    if aspect_ratio == VERTICAL_ASPECT:
        args.extend(["-vf", VERTICAL_FILTER, *ENCODE_ARGS])
    elif aspect_ratio == CINEMATIC_ASPECT:
        args.extend(["-vf", CINEMATIC_FILTER, *ENCODE_ARGS])
    else:
        args.extend(["-c", "copy"])

    args.extend(["-avoid_negative_ts", "make_zero", "-y", str(output_path)])
    return args


def clip_file_name(start: float, end: float, platform_hint: str | None = None) -> str:
    hint = f"_{platform_hint}" if platform_hint else ""
    return f"clip_{_token()}_{_seconds(start)}s-{_seconds(end)}s{hint}.mp4"


def aspect_suffix(aspect_ratio: str) -> str:
    if aspect_ratio == VERTICAL_ASPECT:
        return "9x16"
    if aspect_ratio == CINEMATIC_ASPECT:
        return "2.35x1"
    return "original"


def aspect_from_dimensions(width: int | None, height: int | None) -> str | None:
    """Name the aspect ratio of a rendered frame, or None when dimensions are unknown."""

    if not width or not height:
        return None
    ratio = width / height
    if abs(ratio - 9 / 16) < ASPECT_TOLERANCE:
        return VERTICAL_ASPECT
    if abs(ratio - 2.35) < ASPECT_TOLERANCE:
        return CINEMATIC_ASPECT
    divisor = math.gcd(width, height)
    return f"{width // divisor}:{height // divisor}"


def _validate_bounds(start: float, end: float) -> None:
    if start < 0:
        raise ValueError(f"Clip start must be >= 0, got {start}.")
    if start >= end:
        raise ValueError(f"Clip start must be before end, got {start} >= {end}.")


def _seconds(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.3f}".rstrip("0").rstrip(".")


def _token() -> str:
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"
