from __future__ import annotations

import base64
import json
import logging
from pathlib import Path
from typing import Any

from clip_pipeline.errors import ClipPipelineError, ExternalToolError
from clip_pipeline.ingest.platforms import FRAME_EXTRACTION_PLATFORMS, detect_platform
from clip_pipeline.ingest.probe import probe_media
from clip_pipeline.models import Metadata, ThumbnailCandidate
from clip_pipeline.tools.invoker import MediaToolInvoker

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_TIMEOUT_SECONDS = 30
DEFAULT_EXTRACTOR_RETRIES = 3
PERMISSIVE_EXTRACTOR_RETRIES = 5
PERMISSIVE_PLATFORMS = frozenset({"rumble"})

MIN_PREFERRED_THUMBNAIL_WIDTH = 480
MAX_FRAME_SEEK_SECONDS = 5.0
DEFAULT_FORMAT_SELECTOR = "best[height<=720]/best"
HTTP_FORMAT_SELECTOR = "best[height<=720][protocol^=http]/best[height<=720]/best"
HTTP_FORMAT_PLATFORMS = frozenset({"kick", "twitch"})


class MetadataExtractor:
    """Fetch source metadata with yt-dlp and pick a usable thumbnail."""

    def __init__(
        self,
        invoker: MediaToolInvoker,
        *,
        socket_timeout_seconds: int = DEFAULT_SOCKET_TIMEOUT_SECONDS,
        extractor_retries: int = DEFAULT_EXTRACTOR_RETRIES,
    ) -> None:
        self.invoker = invoker
        self.socket_timeout_seconds = socket_timeout_seconds
        self.extractor_retries = extractor_retries

    def extract(self, source_url: str) -> Metadata:
        platform = detect_platform(source_url)
        result = self.invoker.invoke(self.invoker.ytdlp, self.build_metadata_args(source_url, platform))

        try:
            info = json.loads(result.text.strip().splitlines()[0] if result.text.strip() else "")
        except (json.JSONDecodeError, IndexError) as exc:
            raise ExternalToolError(self.invoker.ytdlp, result.exit_code, "metadata output was not valid JSON") from exc

        metadata = parse_metadata(info, source_url=source_url, platform=platform)
        thumbnail = select_thumbnail(info, platform)
        metadata.thumbnail = thumbnail

        if metadata.is_live:
            logger.info("Live source %s; keeping listed thumbnail", source_url)
            return metadata

        if needs_frame_extraction(platform, thumbnail):
            frame = self._frame_thumbnail_from_stream(source_url, platform, metadata.duration)
            if frame:
                metadata.thumbnail = frame

        return metadata

    def extract_local(self, video_path: str | Path) -> Metadata:
        probe = probe_media(video_path, self.invoker)
        duration = float(probe["duration_seconds"] or 0.0)
        metadata = Metadata(
            title=str(probe["title"]),
            duration=duration,
            thumbnail=None,
            platform="local",
            uploader="Local upload",
            width=probe["width"],
            height=probe["height"],
            fps=probe["fps"],
            source_url=None,
        )
        try:
            metadata.thumbnail = self.extract_frame(probe["path"], _frame_seek_seconds(duration))
        except ClipPipelineError as exc:
            logger.warning("Thumbnail frame extraction failed for %s: %s", video_path, exc)
        return metadata

    def build_metadata_args(self, source_url: str, platform: str | None = None) -> list[str]:
        platform = platform or detect_platform(source_url)
        retries = self.extractor_retries
        extra: list[str] = []
        if platform in PERMISSIVE_PLATFORMS:
            retries = max(retries, PERMISSIVE_EXTRACTOR_RETRIES)
            extra = ["--ignore-errors", "--no-check-certificate"]

        return [
            "--dump-json",
            "--no-download",
            "--no-warnings",
            "--extractor-retries",
            str(retries),
            "--socket-timeout",
            str(self.socket_timeout_seconds),
            *extra,
            source_url,
        ]

    def resolve_stream_url(self, source_url: str, platform: str) -> str:
        selector = HTTP_FORMAT_SELECTOR if platform in HTTP_FORMAT_PLATFORMS else DEFAULT_FORMAT_SELECTOR
        args = [
            "-g",
            "-f",
            selector,
            "--no-warnings",
            "--socket-timeout",
            str(self.socket_timeout_seconds),
        ]
        if platform in PERMISSIVE_PLATFORMS:
            args.append("--no-check-certificate")
        args.append(source_url)

        result = self.invoker.invoke(self.invoker.ytdlp, args)
        lines = [line.strip() for line in result.text.splitlines() if line.strip()]
        if not lines:
            raise ExternalToolError(self.invoker.ytdlp, result.exit_code, "no playable stream URL returned")
        return lines[0]

    def extract_frame(self, media_location: str, seek_seconds: float) -> str:
        """Grab one frame as a data URI, skipping the first decoded frame."""

        result = self.invoker.invoke(
            self.invoker.ffmpeg,
            [
                "-v",
                "error",
                "-ss",
                f"{seek_seconds:.3f}",
                "-i",
                media_location,
                "-vf",
                "select=gte(n\\,1),scale=720:-2",
                "-frames:v",
                "1",
                "-f",
                "image2pipe",
                "-vcodec",
                "mjpeg",
                "pipe:1",
            ],
        )
        if not result.stdout:
            raise ExternalToolError(self.invoker.ffmpeg, result.exit_code, "no frame data produced")
        return "data:image/jpeg;base64," + base64.b64encode(result.stdout).decode("ascii")

    def _frame_thumbnail_from_stream(self, source_url: str, platform: str, duration: float) -> str | None:
        try:
            stream_url = self.resolve_stream_url(source_url, platform)
            return self.extract_frame(stream_url, _frame_seek_seconds(duration))
        except ClipPipelineError as exc:
            logger.warning("Frame thumbnail fallback failed for %s: %s", source_url, exc)
            return None


def parse_metadata(info: dict[str, Any], *, source_url: str, platform: str) -> Metadata:
    return Metadata(
        title=info.get("title") or "Unknown Title",
        description=info.get("description") or "",
        duration=float(info.get("duration") or 0.0),
        thumbnail=info.get("thumbnail"),
        thumbnails=parse_thumbnails(info),
        uploader=info.get("uploader") or "Unknown",
        width=info.get("width"),
        height=info.get("height"),
        fps=info.get("fps"),
        is_live=bool(info.get("is_live")),
        platform=platform,
        source_url=source_url,
        video_id=info.get("id"),
        upload_date=info.get("upload_date"),
        view_count=info.get("view_count"),
    )


def parse_thumbnails(info: dict[str, Any]) -> list[ThumbnailCandidate]:
    candidates: list[ThumbnailCandidate] = []
    for raw in info.get("thumbnails") or []:
        if not isinstance(raw, dict):
            continue
        url = raw.get("url")
        candidates.append(
            ThumbnailCandidate(
                url=url,
                width=_to_int(raw.get("width")),
                height=_to_int(raw.get("height")),
                is_placeholder=is_placeholder_thumbnail(url),
                id=str(raw["id"]) if raw.get("id") is not None else None,
            )
        )
    return candidates


def select_thumbnail(info: dict[str, Any], platform: str) -> str | None:
    """Pick the best listed thumbnail for a platform. Pure; same input, same output."""

    candidates = [c for c in parse_thumbnails(info) if c.url]
    raw_thumbnail = info.get("thumbnail")

    if platform == "youtube":
        for marker in ("maxresdefault", "hqdefault"):
            match = next((c for c in candidates if _matches_variant(c, marker)), None)
            if match:
                return match.url
        return _largest_or_first(candidates, raw_thumbnail)

    if platform in {"twitch", "vimeo"}:
        largest = _largest(candidates)
        if largest:
            return largest.url
        return _largest_or_first(candidates, raw_thumbnail)

    if platform == "kick":
        wide = _largest([c for c in candidates if (c.width or 0) >= MIN_PREFERRED_THUMBNAIL_WIDTH])
        if wide:
            return wide.url
        return _largest_or_first(candidates, raw_thumbnail)

    return _largest_or_first(candidates, raw_thumbnail)


def is_placeholder_thumbnail(url: str | None) -> bool:
    if not url:
        return True
    return "placeholder" in url or url.startswith("data:image/svg")


def needs_frame_extraction(platform: str, thumbnail: str | None) -> bool:
    return platform in FRAME_EXTRACTION_PLATFORMS or is_placeholder_thumbnail(thumbnail)


def _matches_variant(candidate: ThumbnailCandidate, marker: str) -> bool:
    return candidate.id == marker or marker in (candidate.url or "")


def _largest(candidates: list[ThumbnailCandidate]) -> ThumbnailCandidate | None:
    dimensioned = [c for c in candidates if c.area > 0]
    if not dimensioned:
        return None
    # max() keeps the first of equal areas, so selection is order-stable
    return max(dimensioned, key=lambda c: c.area)


def _largest_or_first(candidates: list[ThumbnailCandidate], raw_thumbnail: str | None) -> str | None:
    largest = _largest(candidates)
    if largest:
        return largest.url
    if candidates:
        return candidates[0].url
    return raw_thumbnail


def _frame_seek_seconds(duration: float) -> float:
    if duration <= 0:
        return 0.0
    return min(MAX_FRAME_SEEK_SECONDS, duration * 0.1)


def _to_int(raw_value: Any) -> int | None:
    if raw_value in (None, ""):
        return None
    return int(raw_value)
