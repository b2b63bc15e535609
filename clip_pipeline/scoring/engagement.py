from __future__ import annotations

from dataclasses import dataclass, replace

from clip_pipeline.ingest.platforms import SHORT_FORM_PLATFORMS
from clip_pipeline.models import ClipWindow, FrameSample

BASE_SCORE = 30.0
GOLDEN_RATIO = 0.618
PROXIMITY_SPAN_RATIO = 0.1
LONG_VIDEO_SECONDS = 60.0

HIGH_ENGAGEMENT_WORDS = (
    "amazing",
    "incredible",
    "shocking",
    "unbelievable",
    "epic",
    "insane",
    "crazy",
    "mind-blowing",
    "viral",
    "trending",
)
ACTION_WORDS = ("watch", "see", "look", "check", "must", "need", "how", "why", "what")

HIGH_ENGAGEMENT_BONUS = 15.0
ACTION_BONUS = 8.0
SHORT_FORM_EARLY_BONUS = 20.0
SHORT_FORM_EARLY_RATIO = 0.3
MIDDLE_SECTION_BONUS = 10.0

PLATFORM_DESCRIPTION_SUFFIX = {
    "tiktok": " (optimized for TikTok engagement patterns)",
    "instagram": " (optimized for Instagram Reels engagement)",
    "youtube": " (optimized for YouTube engagement and retention)",
}


@dataclass(frozen=True, slots=True)
class OptimalMoment:
    time: float
    kind: str
    weight: float
    reason: str


def optimal_moments(duration: float, platform: str) -> list[OptimalMoment]:
    moments = [
        OptimalMoment(duration * 0.15, "hook_end", 85.0, "End of hook/intro"),
        OptimalMoment(duration * GOLDEN_RATIO, "golden_primary", 95.0, "Primary golden ratio point"),
        OptimalMoment(duration * (1 - GOLDEN_RATIO), "golden_secondary", 90.0, "Secondary golden ratio point"),
    ]
    if platform in SHORT_FORM_PLATFORMS:
        moments.append(OptimalMoment(duration * 0.05, "short_form_hook", 88.0, "Short-form platform early hook"))
    if duration > LONG_VIDEO_SECONDS:
        moments.append(OptimalMoment(duration * 0.85, "climax", 82.0, "Video climax/conclusion"))
    return moments


def title_bonus(title: str) -> float:
    lowered = (title or "").lower()
    bonus = sum(HIGH_ENGAGEMENT_BONUS for word in HIGH_ENGAGEMENT_WORDS if word in lowered)
    bonus += sum(ACTION_BONUS for word in ACTION_WORDS if word in lowered)
    return bonus


def score_timestamp(
    timestamp: float,
    *,
    duration: float,
    title: str = "",
    platform: str = "other",
    moments: list[OptimalMoment] | None = None,
) -> float:
    """Engagement score in [0, 100] for one timestamp. No I/O."""

    score = BASE_SCORE

    if duration > 0:
        span = duration * PROXIMITY_SPAN_RATIO
        for moment in moments if moments is not None else optimal_moments(duration, platform):
            proximity = max(0.0, 1.0 - abs(timestamp - moment.time) / span)
            if proximity > 0:
                score += moment.weight * proximity

    score += title_bonus(title)

    if duration > 0:
        if platform in SHORT_FORM_PLATFORMS and timestamp < duration * SHORT_FORM_EARLY_RATIO:
            score += SHORT_FORM_EARLY_BONUS

        relative_position = timestamp / duration
        if 0.2 < relative_position < 0.8:
            score += MIDDLE_SECTION_BONUS

    return _clamp(score)


def describe_position(timestamp: float, duration: float, platform: str) -> str:
    relative_position = timestamp / duration if duration > 0 else 0.0

    if relative_position < 0.15:
        description = "Opening sequence with potential hook content"
    elif relative_position < 0.4:
        description = "Early content development with building engagement"
    elif relative_position < 0.65:
        description = "Core content section with peak engagement potential"
    elif relative_position < 0.85:
        description = "Advanced content with climax development"
    else:
        description = "Conclusion section with resolution and call-to-action"

    return description + PLATFORM_DESCRIPTION_SUFFIX.get(platform, "")


def score_frames(
    frames: list[FrameSample],
    *,
    title: str,
    duration: float,
    platform: str,
) -> list[FrameSample]:
    """Score every frame and return new samples ordered by descending score."""

    moments = optimal_moments(duration, platform)
    scored = [
        replace(
            frame,
            engagement_score=score_timestamp(
                frame.timestamp_seconds,
                duration=duration,
                title=title,
                platform=platform,
                moments=moments,
            ),
            description=describe_position(frame.timestamp_seconds, duration, platform),
        )
        for frame in frames
    ]
    # sorted() is stable, ties keep sampling order
    return sorted(scored, key=lambda frame: frame.engagement_score, reverse=True)


def select_clip_windows(
    scored_frames: list[FrameSample],
    *,
    min_score: float,
    clip_duration: float,
    max_clips: int,
    source_duration: float | None = None,
) -> list[ClipWindow]:
    """Turn the best frames into clip windows centered on their timestamps.

    start = max(0, t - d/2) and end = start + d, so every window lasts
    exactly d seconds. When the source is at least d long, windows that
    would run past its end are shifted left to finish at the end.
    """

    if clip_duration <= 0:
        raise ValueError("clip_duration must be positive.")

    eligible = [frame for frame in scored_frames if frame.engagement_score >= min_score]
    eligible.sort(key=lambda frame: frame.engagement_score, reverse=True)

    windows: list[ClipWindow] = []
    for rank, frame in enumerate(eligible[: max(0, max_clips)], start=1):
        start = max(0.0, frame.timestamp_seconds - clip_duration / 2)
        end = start + clip_duration
        if source_duration is not None and source_duration >= clip_duration and end > source_duration:
            end = source_duration
            start = end - clip_duration

        windows.append(
            ClipWindow(
                clip_id=f"clip_{rank}",
                start_time=round(start, 3),
                end_time=round(end, 3),
                virality_score=round(frame.engagement_score, 2),
                reason="High engagement moment",
                center_timestamp=frame.timestamp_seconds,
                description=frame.description,
            )
        )

    return windows


def _clamp(value: float, minimum: float = 0.0, maximum: float = 100.0) -> float:
    return max(minimum, min(maximum, value))
