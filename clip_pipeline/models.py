from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class SourceDescriptor:
    """One ingestion request: either a remote URL or a local file."""

    url: str | None = None
    local_path: str | None = None
    platform: str = "other"
    declared_duration: float = 0.0
    title: str = ""
    uploader: str = ""

    def __post_init__(self) -> None:
        if bool(self.url) == bool(self.local_path):
            raise ValueError("SourceDescriptor needs exactly one of url or local_path.")

    @property
    def location(self) -> str:
        return self.url or self.local_path or ""


@dataclass(slots=True)
class ThumbnailCandidate:
    url: str | None
    width: int | None = None
    height: int | None = None
    is_placeholder: bool = False
    id: str | None = None

    @property
    def area(self) -> int:
        if not self.width or not self.height:
            return 0
        return self.width * self.height


@dataclass(slots=True)
class Metadata:
    """Normalized metadata for a source video, whichever backend produced it."""

    title: str
    duration: float
    thumbnail: str | None
    platform: str
    description: str = ""
    uploader: str = "Unknown"
    thumbnails: list[ThumbnailCandidate] = field(default_factory=list)
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    is_live: bool = False
    source_url: str | None = None
    video_id: str | None = None
    upload_date: str | None = None
    view_count: int | None = None


@dataclass(slots=True)
class FrameSample:
    """A sampled frame; scored and then discarded, never persisted."""

    frame_index: int
    timestamp_seconds: float
    path: str
    engagement_score: float = 0.0
    description: str = ""


@dataclass(slots=True)
class ClipWindow:
    """Scored candidate segment. Duration is always derived from the bounds."""

    clip_id: str
    start_time: float
    end_time: float
    virality_score: float
    reason: str
    center_timestamp: float | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.start_time < 0:
            raise ValueError(f"Clip {self.clip_id} starts before 0: {self.start_time}")
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Clip {self.clip_id} needs start_time < end_time, got {self.start_time} >= {self.end_time}"
            )

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass(slots=True)
class RenderedClip:
    """A rendered media file; transient until uploaded.

    Duration and aspect ratio are None when the producer could not report them.
    """

    file_path: str
    file_name: str
    size_bytes: int
    duration: float | None
    aspect_ratio: str | None


@dataclass(slots=True)
class CaptionCue:
    text: str
    start_time: float
    end_time: float


@dataclass(slots=True)
class CaptionPayload:
    captions: list[CaptionCue]
    font_key: str = "roboto"
    position: str = "bottom"

    def to_dict(self) -> dict[str, Any]:
        return {
            "captions": [
                {"text": cue.text, "startTime": cue.start_time, "endTime": cue.end_time}
                for cue in self.captions
            ],
            "fontKey": self.font_key,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> CaptionPayload:
        cues = [
            CaptionCue(
                text=str(row["text"]),
                start_time=float(row.get("startTime", row.get("start_time", 0.0))),
                end_time=float(row.get("endTime", row.get("end_time", 0.0))),
            )
            for row in payload.get("captions", [])
        ]
        return cls(
            captions=cues,
            font_key=str(payload.get("fontKey", payload.get("font_key", "roboto"))),
            position=str(payload.get("position", "bottom")),
        )


@dataclass(slots=True)
class UploadResult:
    url: str
    path: str
    size: int
    mime_type: str = "video/mp4"


@dataclass(slots=True)
class ClipOutcome:
    """Per-window result of a batch run."""

    clip_id: str
    status: str
    start_time: float
    end_time: float
    virality_score: float = 0.0
    title: str | None = None
    uploads: dict[str, UploadResult] = field(default_factory=dict)
    error: str | None = None


@dataclass(slots=True)
class BatchResult:
    outcomes: list[ClipOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "ok")

    @property
    def errors(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "error")
