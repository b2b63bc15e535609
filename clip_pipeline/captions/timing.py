from __future__ import annotations

from typing import Any, Iterable

from clip_pipeline.models import CaptionCue

DEFAULT_MAX_WORDS_PER_LINE = 3
DEFAULT_MIN_DISPLAY_SECONDS = 0.5


def generate_caption_data(
    words: Iterable[dict[str, Any]],
    *,
    max_words_per_line: int = DEFAULT_MAX_WORDS_PER_LINE,
    min_display_time: float = DEFAULT_MIN_DISPLAY_SECONDS,
) -> list[CaptionCue]:
    """Group word timings (word/start/end) into short caption lines."""

    if max_words_per_line <= 0:
        raise ValueError("max_words_per_line must be positive.")

    cues: list[CaptionCue] = []
    group: list[dict[str, Any]] = []

    for word in words:
        if not str(word.get("word", "")).strip():
            continue
        if len(group) == max_words_per_line:
            cues.append(_cue_from_group(group, min_display_time))
            group = []
        group.append(word)

    if group:
        cues.append(_cue_from_group(group, min_display_time))
    return cues


def align_captions_to_clip(
    cues: Iterable[CaptionCue],
    clip_start: float,
    clip_duration: float,
) -> list[CaptionCue]:
    """Shift source-timed cues onto the clip timeline for live preview.

    Cues whose shifted start or end falls outside [0, clip_duration] are
    dropped rather than clipped.
    """

    aligned: list[CaptionCue] = []
    for cue in cues:
        start = cue.start_time - clip_start
        end = cue.end_time - clip_start
        if 0 <= start <= clip_duration and 0 <= end <= clip_duration:
            aligned.append(CaptionCue(text=cue.text, start_time=round(start, 3), end_time=round(end, 3)))
    return aligned


def to_srt(cues: Iterable[CaptionCue]) -> str:
    blocks = [
        f"{index}\n{_timestamp(cue.start_time, ',')} --> {_timestamp(cue.end_time, ',')}\n{cue.text}\n"
        for index, cue in enumerate(cues, start=1)
    ]
    return "\n".join(blocks)


def to_webvtt(cues: Iterable[CaptionCue]) -> str:
    blocks = [
        f"{_timestamp(cue.start_time, '.')} --> {_timestamp(cue.end_time, '.')}\n{cue.text}\n" for cue in cues
    ]
    return "WEBVTT\n\n" + "\n".join(blocks)


def _cue_from_group(group: list[dict[str, Any]], min_display_time: float) -> CaptionCue:
    start = float(group[0]["start"])
    end = float(group[-1]["end"])
    if end - start < min_display_time:
        end = start + min_display_time
    text = " ".join(str(word["word"]).strip() for word in group)
    return CaptionCue(text=text, start_time=start, end_time=end)


def _timestamp(seconds: float, separator: str) -> str:
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{millis:03d}"
