from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable

from clip_pipeline.captions.burner import CaptionBurner
from clip_pipeline.captions.timing import align_captions_to_clip, generate_caption_data
from clip_pipeline.clipping.cutter import (
    CINEMATIC_ASPECT,
    VERTICAL_ASPECT,
    ClipCutter,
    aspect_suffix,
    resolve_aspect_ratio,
)
from clip_pipeline.models import BatchResult, ClipOutcome, ClipWindow
from clip_pipeline.storage.artifacts import ArtifactStore
from clip_pipeline.tempfiles import TempScope, remove_quietly

logger = logging.getLogger(__name__)

Transcriber = Callable[[Path], dict[str, Any]]

FILLER_PATTERN = re.compile(r"\b(um|uh|er|ah|like|you know|so)\b", re.IGNORECASE)
MAX_TITLE_CHARS = 60
MIN_WORD_BOUNDARY_CHARS = 30
MIN_TITLE_CHARS = 3

BOTH_ASPECTS = "both"
DEFAULT_RENDER_ASPECTS = (VERTICAL_ASPECT, CINEMATIC_ASPECT)


def render_aspects(aspect_ratio: str | None, platform_hint: str | None = None) -> list[str]:
    """Effective aspect ratios rendered for every window, without duplicates.

    ``both`` (or no value) renders the vertical and the cinematic cut.
    """

    requested = DEFAULT_RENDER_ASPECTS if aspect_ratio in (None, BOTH_ASPECTS) else (aspect_ratio,)
    return list(dict.fromkeys(resolve_aspect_ratio(aspect, platform_hint) for aspect in requested))


def process_clips_from_metadata(
    input_path: str | Path,
    windows: list[ClipWindow],
    *,
    project_id: str,
    source_title: str,
    cutter: ClipCutter,
    store: ArtifactStore,
    scope: TempScope,
    transcriber: Transcriber | None = None,
    aspect_ratio: str = BOTH_ASPECTS,
    platform_hint: str | None = None,
    burner: CaptionBurner | None = None,
    font_key: str | None = None,
    caption_position: str = "bottom",
) -> BatchResult:
    """Cut, title, caption and upload every window in order.

    Each window is rendered once per aspect ratio and every render is
    uploaded. Captions are burned only when a font key and a burner are
    given and the clip audio produced word timings. A failing window is
    recorded as an error outcome and the batch moves on. Temporary renders
    and audio are removed after each window whatever happened to it.
    """

    result = BatchResult()
    clips_dir = scope.subdir("clips")
    aspects = render_aspects(aspect_ratio, platform_hint)

    for index, window in enumerate(windows, start=1):
        logger.info(
            "Processing clip %d/%d: %.2fs-%.2fs (score %.1f)",
            index,
            len(windows),
            window.start_time,
            window.end_time,
            window.virality_score,
        )
        temp_files: list[str | Path] = []
        fallback_title = f"{source_title} - {_seconds_label(window.start_time)}s"
        try:
            renders: dict[str, Path] = {}
            for aspect in aspects:
                clip = cutter.cut(
                    input_path,
                    window.start_time,
                    window.end_time,
                    output_dir=clips_dir,
                    aspect_ratio=aspect,
                    platform_hint=platform_hint,
                )
                temp_files.append(clip.file_path)
                renders[aspect_suffix(aspect)] = Path(clip.file_path)

            audio = cutter.extract_audio(
                input_path,
                window.start_time,
                window.end_time,
                output_dir=clips_dir,
            )
            temp_files.append(audio.file_path)

            transcript = _transcribe(transcriber, Path(audio.file_path)) if transcriber is not None else None
            title = fallback_title
            if transcript is not None:
                title = derive_clip_title(str(transcript.get("text") or ""), fallback_title)

            if burner is not None and font_key is not None:
                cues = align_captions_to_clip(
                    generate_caption_data((transcript or {}).get("words") or []),
                    0.0,
                    window.duration,
                )
                if cues:
                    for suffix, render in list(renders.items()):
                        captioned = clips_dir / f"{render.stem}_captioned.mp4"
                        temp_files.append(captioned)
                        renders[suffix] = burner.burn(
                            render,
                            cues,
                            font_key,
                            captioned,
                            scope=scope,
                            position=caption_position,
                            platform=platform_hint,
                        )
                else:
                    logger.info("No word timings for %s; uploading without captions", window.clip_id)

            uploads = {
                suffix: store.upload(
                    render,
                    f"{project_id}_clip_{_seconds_label(window.start_time)}s_{suffix}.mp4",
                    mime_type="video/mp4",
                )
                for suffix, render in renders.items()
            }
            result.outcomes.append(
                ClipOutcome(
                    clip_id=window.clip_id,
                    status="ok",
                    start_time=window.start_time,
                    end_time=window.end_time,
                    virality_score=window.virality_score,
                    title=title,
                    uploads=uploads,
                )
            )
        except Exception as exc:
            logger.error("Clip %s failed: %s", window.clip_id, exc)
            result.outcomes.append(
                ClipOutcome(
                    clip_id=window.clip_id,
                    status="error",
                    start_time=window.start_time,
                    end_time=window.end_time,
                    virality_score=window.virality_score,
                    error=str(exc),
                )
            )
        finally:
            for temp_file in temp_files:
                remove_quietly(temp_file)

    logger.info("Batch finished: %d processed, %d errors", result.processed, result.errors)
    return result

def derive_clip_title(transcript: str | None, fallback_title: str) -> str:
    """Turn a clip transcript into a short title, or return the fallback."""

    title = FILLER_PATTERN.sub("", transcript or "")
    title = re.sub(r"\s+", " ", title).strip()
    if title:
        title = title[0].upper() + title[1:]

    if len(title) > MAX_TITLE_CHARS:
        title = title[:MAX_TITLE_CHARS].strip()
        last_space = title.rfind(" ")
        if last_space > MIN_WORD_BOUNDARY_CHARS:
            title = title[:last_space]
        title += "..."

    if len(title) < MIN_TITLE_CHARS:
        return fallback_title
    return title


def _transcribe(transcriber: Transcriber, audio_path: Path) -> dict[str, Any] | None:
    try:
        return transcriber(audio_path)
    except Exception as exc:
        logger.warning("Transcription failed for %s, using fallback title: %s", audio_path.name, exc)
        return None


def _seconds_label(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.3f}".rstrip("0").rstrip(".")
