from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from clip_pipeline.errors import ExternalToolError
from clip_pipeline.tools.invoker import MediaToolInvoker


def probe_media(video_path: str | Path, invoker: MediaToolInvoker) -> dict[str, Any]:
    """Probe a local media file via ffprobe and return normalized stream info."""

    source_path = Path(video_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Video file not found: {source_path}")

    payload = _run_ffprobe(source_path, invoker)
    return _normalize_probe_payload(source_path, payload)


def _run_ffprobe(video_path: Path, invoker: MediaToolInvoker) -> dict[str, Any]:
    result = invoker.invoke(
        invoker.ffprobe,
        [
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(video_path),
        ],
    )

    try:
        return json.loads(result.text)
    except json.JSONDecodeError as exc:
        raise ExternalToolError(invoker.ffprobe, result.exit_code, "ffprobe returned invalid JSON output.") from exc


def _normalize_probe_payload(video_path: Path, payload: dict[str, Any]) -> dict[str, Any]:
    streams = payload.get("streams", [])
    format_entry = payload.get("format", {})

    video_stream = next((s for s in streams if s.get("codec_type") == "video"), {})
    audio_streams = [s for s in streams if s.get("codec_type") == "audio"]

    duration = _to_float(format_entry.get("duration")) or _to_float(video_stream.get("duration")) or 0.0

    return {
        "path": str(video_path),
        "title": (format_entry.get("tags") or {}).get("title") or video_path.stem,
        "duration_seconds": duration,
        "size_bytes": _to_int(format_entry.get("size")),
        "format_name": format_entry.get("format_name"),
        "width": _to_int(video_stream.get("width")),
        "height": _to_int(video_stream.get("height")),
        "fps": _parse_frame_rate(video_stream.get("avg_frame_rate")),
        "video_codec": video_stream.get("codec_name"),
        "audio_stream_count": len(audio_streams),
    }


def _parse_frame_rate(raw_value: Any) -> float | None:
    if raw_value in (None, "", "0/0"):
        return None
    text = str(raw_value)
    if "/" in text:
        numerator, denominator = text.split("/", 1)
        if float(denominator) == 0:
            return None
        return round(float(numerator) / float(denominator), 3)
    return float(text)


def _to_float(raw_value: Any) -> float | None:
    if raw_value in (None, "N/A", ""):
        return None
    return float(raw_value)


def _to_int(raw_value: Any) -> int | None:
    if raw_value in (None, "N/A", ""):
        return None
    return int(raw_value)
