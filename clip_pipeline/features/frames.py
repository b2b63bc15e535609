from __future__ import annotations

from pathlib import Path

from clip_pipeline.models import FrameSample
from clip_pipeline.tools.invoker import MediaToolInvoker


def sample_frames(
    video_path: str | Path,
    duration_seconds: float,
    output_dir: Path,
    invoker: MediaToolInvoker,
    count: int = 10,
) -> list[FrameSample]:
    """Extract evenly spaced JPEG frames and describe them as FrameSamples."""

    if duration_seconds <= 0 or count <= 0:
        return []

    output_dir.mkdir(parents=True, exist_ok=True)
    sample_rate = count / duration_seconds
    invoker.invoke(
        invoker.ffmpeg,
        [
            "-v",
            "error",
            "-i",
            str(video_path),
            "-vf",
            f"fps={sample_rate:.6f}",
            "-frames:v",
            str(count),
            "-q:v",
            "2",
            "-f",
            "image2",
            "-y",
            str(output_dir / "frame_%03d.jpg"),
        ],
    )

    frame_files = sorted(output_dir.glob("frame_*.jpg"))
    return [
        FrameSample(
            frame_index=index,
            timestamp_seconds=round(frame_timestamp(index, duration_seconds, count), 3),
            path=str(frame_path),
        )
        for index, frame_path in enumerate(frame_files[:count])
    ]


def frame_timestamp(index: int, duration_seconds: float, count: int) -> float:
    if count <= 0:
        return 0.0
    return index * duration_seconds / count
