from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, TypeVar

import typer

from clip_pipeline.captions.fonts import FontRegistry
from clip_pipeline.config import Settings, load_settings
from clip_pipeline.features.frames import frame_timestamp
from clip_pipeline.ingest.platforms import is_remote
from clip_pipeline.logging_config import configure_logging
from clip_pipeline.models import CaptionPayload, FrameSample
from clip_pipeline.pipeline import RUN_STEPS, build_pipeline, request_from_settings
from clip_pipeline.propose.exporter import batch_summary, export_batch_result, export_windows
from clip_pipeline.scoring.engagement import score_frames, select_clip_windows

app = typer.Typer(help="Clip extraction and captioning pipeline.")
config_app = typer.Typer(help="Configuration commands.")

app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_OPTION = typer.Option(
    Path("configs/default.yaml"),
    "--config",
    "-c",
    envvar="CLIP_PIPELINE_CONFIG",
    help="Path to YAML configuration file.",
)


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _progress_runner(total_steps: int) -> Callable[[str, Callable[[], Any]], Any]:
    counter = {"step": 0}

    def _step(label: str, work: Callable[[], Any]) -> Any:
        counter["step"] += 1
        return _run_with_progress(counter["step"], total_steps, label, work)

    return _step


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def _fail(exc: Exception) -> typer.Exit:
    logger.error("Command failed: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=1)


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


@config_app.command("show")
def show_config(config_path: Path = CONFIG_OPTION) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    payload = settings.model_dump(mode="json")
    if payload["remote"]["secret"]:
        payload["remote"]["secret"] = "***"
    _echo_json(payload)


@app.command("metadata")
def metadata(source: str, config_path: Path = CONFIG_OPTION) -> None:
    """Fetch normalized metadata for a URL or a local file."""

    settings = _bootstrap(config_path)
    pipeline = build_pipeline(settings)
    request = request_from_settings(
        settings,
        source_url=source if is_remote(source) else None,
        local_path=None if is_remote(source) else source,
    )
    try:
        result = pipeline.fetch_metadata(request.source())
    except (RuntimeError, ValueError, OSError) as exc:
        raise _fail(exc) from exc

    payload = asdict(result)
    thumbnail = payload.get("thumbnail") or ""
    if thumbnail.startswith("data:"):
        payload["thumbnail"] = f"{thumbnail[:32]}... ({len(thumbnail)} chars)"
    _echo_json(payload)


@app.command("score")
def score(
    duration: float = typer.Option(..., help="Source duration in seconds."),
    title: str = typer.Option("", help="Source title used for lexical bonuses."),
    platform: str = typer.Option("other", help="Source platform: youtube, tiktok, instagram, ..."),
    num_frames: int | None = typer.Option(None, help="Number of evenly spaced sample points."),
    min_score: float | None = typer.Option(None, help="Minimum engagement score for a clip window."),
    clip_duration: float | None = typer.Option(None, help="Clip window length in seconds."),
    max_clips: int | None = typer.Option(None, help="Maximum number of clip windows."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write windows to JSON or CSV."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Score evenly spaced timestamps and print the resulting clip windows."""

    settings = _bootstrap(config_path)
    count = num_frames or settings.pipeline.num_frames
    try:
        samples = [
            FrameSample(frame_index=index, timestamp_seconds=round(frame_timestamp(index, duration, count), 3), path="")
            for index in range(count)
        ]
        scored = score_frames(samples, title=title, duration=duration, platform=platform)
        windows = select_clip_windows(
            scored,
            min_score=settings.pipeline.min_engagement_score if min_score is None else min_score,
            clip_duration=clip_duration or settings.pipeline.clip_duration_seconds,
            max_clips=settings.pipeline.max_clips if max_clips is None else max_clips,
            source_duration=duration,
        )
    except (RuntimeError, ValueError) as exc:
        raise _fail(exc) from exc

    if output is not None:
        export_windows(windows, output)
    _echo_json(
        {
            "scored_frames": [
                {"timestamp": frame.timestamp_seconds, "score": frame.engagement_score, "description": frame.description}
                for frame in scored
            ],
            "windows": [asdict(window) for window in windows],
        }
    )


@app.command("cut")
def cut(
    input_path: Path,
    start: float,
    end: float,
    aspect_ratio: str = typer.Option("original", help="original, 9:16 or 2.35:1."),
    platform_hint: str | None = typer.Option(None, help="Platform hint; tiktok/reels/shorts force 9:16."),
    output_dir: Path = typer.Option(Path("data/clips"), "--output-dir", "-o", help="Directory for rendered clips."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Cut one segment out of a local video."""

    settings = _bootstrap(config_path)
    pipeline = build_pipeline(settings)
    try:
        clip = pipeline.cutter.cut(
            input_path,
            start,
            end,
            output_dir=output_dir,
            aspect_ratio=aspect_ratio,
            platform_hint=platform_hint,
        )
    except (RuntimeError, ValueError, OSError) as exc:
        raise _fail(exc) from exc
    _echo_json(asdict(clip))


@app.command("extract-audio")
def extract_audio(
    input_path: Path,
    start: float,
    end: float,
    output_dir: Path = typer.Option(Path("data/clips"), "--output-dir", "-o", help="Directory for audio files."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Extract a 16 kHz mono WAV segment for transcription."""

    settings = _bootstrap(config_path)
    pipeline = build_pipeline(settings)
    try:
        audio = pipeline.cutter.extract_audio(input_path, start, end, output_dir=output_dir)
    except (RuntimeError, ValueError, OSError) as exc:
        raise _fail(exc) from exc
    _echo_json(asdict(audio))


@app.command("burn")
def burn(
    video: str,
    captions_path: Path = typer.Argument(..., help="Caption JSON: {captions: [{text, startTime, endTime}], fontKey, position}."),
    output: Path = typer.Option(Path("data/clips/captioned.mp4"), "--output", "-o", help="Output video path."),
    font_key: str | None = typer.Option(None, help="Overrides fontKey from the caption file."),
    position: str | None = typer.Option(None, help="top, center or bottom."),
    platform: str | None = typer.Option(None, help="Platform styling: tiktok, instagram, youtube."),
    clip_id: str = typer.Option("preview", help="Clip id forwarded to the remote backend."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Burn caption cues into a video, remotely when a backend is configured."""

    settings = _bootstrap(config_path)
    pipeline = build_pipeline(settings)
    try:
        payload = CaptionPayload.from_dict(json.loads(captions_path.read_text(encoding="utf-8")))
        if font_key:
            payload.font_key = font_key
        if position:
            payload.position = position
        rendered = pipeline.burn_captions(video, payload, output, clip_id=clip_id, platform=platform)
    except (RuntimeError, ValueError, OSError) as exc:
        raise _fail(exc) from exc
    _echo_json({"status": "ok", "output": str(rendered), "font": payload.font_key})


@app.command("fonts")
def fonts(config_path: Path = CONFIG_OPTION) -> None:
    """List caption fonts."""

    settings = _bootstrap(config_path)
    registry = FontRegistry(default_key=settings.captions.default_font)
    _echo_json(
        {
            "default": registry.default_key,
            "fonts": [{"key": key, **asdict(spec)} for key, spec in registry.items()],
        }
    )


@app.command("run")
def run_pipeline(
    source: str,
    project_id: str = typer.Option("project", help="Prefix for uploaded clip keys."),
    clip_count: int | None = typer.Option(None, help="Maximum number of clips to produce."),
    min_score: float | None = typer.Option(None, help="Minimum engagement score for a clip."),
    clip_duration: float | None = typer.Option(None, help="Clip length in seconds."),
    aspect_ratio: str | None = typer.Option(None, help="both, 9:16, 2.35:1 or original."),
    platform_hint: str | None = typer.Option(None, help="Platform hint for rendering (tiktok, reels, shorts, ...)."),
    num_frames: int | None = typer.Option(None, help="Number of frames sampled for scoring."),
    font_key: str | None = typer.Option(None, help="Burn transcript captions in this font (needs transcription)."),
    caption_position: str | None = typer.Option(None, help="Caption position: top, center or bottom."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the batch summary to this JSON file."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Run the complete pipeline for a URL or a local video file."""

    settings = _bootstrap(config_path)
    remote = is_remote(source)

    try:
        request = request_from_settings(
            settings,
            source_url=source if remote else None,
            local_path=None if remote else source,
            project_id=project_id,
            requested_clip_count=clip_count,
            min_engagement_score=min_score,
            clip_duration_seconds=clip_duration,
            aspect_ratio=aspect_ratio,
            platform_hint=platform_hint,
            num_frames=num_frames,
            font_key=font_key,
            caption_position=caption_position,
        )
        pipeline = build_pipeline(settings)
        result = pipeline.run(request, step=_progress_runner(len(RUN_STEPS)))
    except (RuntimeError, ValueError, OSError) as exc:
        logger.error("Pipeline failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if output is not None:
        export_batch_result(result.batch, output)

    _echo_json(
        {
            "status": "ok",
            "source": source,
            "title": result.metadata.title,
            "platform": result.metadata.platform,
            "duration": result.metadata.duration,
            "windows": len(result.windows),
            **batch_summary(result.batch),
        }
    )
