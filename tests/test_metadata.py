from __future__ import annotations

import json

import pytest

from clip_pipeline.errors import ExternalToolError
from clip_pipeline.ingest.metadata import (
    MetadataExtractor,
    needs_frame_extraction,
    select_thumbnail,
)
from clip_pipeline.ingest.platforms import detect_platform
from clip_pipeline.tools.invoker import ToolResult

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"


def _yt_dlp_handler(info: dict, *, stream_url: str = "https://cdn.example/stream.m3u8", frame: bytes = JPEG_BYTES):
    def _handler(executable: str, args: list[str]):
        if executable == "yt-dlp" and "--dump-json" in args:
            return json.dumps(info).encode()
        if executable == "yt-dlp" and "-g" in args:
            return f"{stream_url}\n".encode()
        if executable == "ffmpeg":
            return frame
        return None

    return _handler


def test_detect_platform_from_url() -> None:
    assert detect_platform("https://www.youtube.com/watch?v=abc") == "youtube"
    assert detect_platform("https://youtu.be/abc") == "youtube"
    assert detect_platform("https://kick.com/streamer/videos/1") == "kick"
    assert detect_platform("https://example.org/video.mp4") == "other"
    assert detect_platform(None) == "other"


def test_youtube_prefers_maxres_variant() -> None:
    info = {
        "thumbnails": [
            {"id": "maxresdefault", "url": "A"},
            {"id": "hqdefault", "url": "B"},
        ]
    }

    assert select_thumbnail(info, "youtube") == "A"


def test_youtube_falls_back_to_hq_variant_by_url() -> None:
    info = {
        "thumbnails": [
            {"url": "https://i.ytimg.com/vi/x/default.jpg", "width": 120, "height": 90},
            {"url": "https://i.ytimg.com/vi/x/hqdefault.jpg", "width": 480, "height": 360},
        ]
    }

    assert select_thumbnail(info, "youtube") == "https://i.ytimg.com/vi/x/hqdefault.jpg"


def test_thumbnail_selection_is_idempotent() -> None:
    info = {
        "thumbnail": "https://img.example/raw.jpg",
        "thumbnails": [
            {"url": "https://img.example/small.jpg", "width": 320, "height": 180},
            {"url": "https://img.example/large.jpg", "width": 1280, "height": 720},
        ],
    }

    first = select_thumbnail(info, "vimeo")
    second = select_thumbnail(info, "vimeo")

    assert first == second == "https://img.example/large.jpg"


def test_kick_prefers_wide_thumbnails_and_falls_back_to_raw() -> None:
    info = {
        "thumbnails": [
            {"url": "https://kick.example/tiny.jpg", "width": 320, "height": 180},
            {"url": "https://kick.example/wide.jpg", "width": 640, "height": 360},
        ]
    }
    assert select_thumbnail(info, "kick") == "https://kick.example/wide.jpg"
    assert select_thumbnail({"thumbnail": "https://kick.example/raw.jpg"}, "kick") == "https://kick.example/raw.jpg"


def test_placeholder_thumbnails_need_frame_extraction() -> None:
    assert needs_frame_extraction("other", None)
    assert needs_frame_extraction("other", "https://cdn.example/placeholder.png")
    assert needs_frame_extraction("twitch", "https://cdn.example/real.jpg")
    assert not needs_frame_extraction("youtube", "https://i.ytimg.com/vi/x/maxresdefault.jpg")


def test_rumble_metadata_args_are_permissive(make_invoker) -> None:
    extractor = MetadataExtractor(make_invoker(), socket_timeout_seconds=20, extractor_retries=3)

    args = extractor.build_metadata_args("https://rumble.com/v123-demo.html")

    assert args[:3] == ["--dump-json", "--no-download", "--no-warnings"]
    assert args[args.index("--extractor-retries") + 1] == "5"
    assert args[args.index("--socket-timeout") + 1] == "20"
    assert "--ignore-errors" in args
    assert "--no-check-certificate" in args
    assert args[-1] == "https://rumble.com/v123-demo.html"


def test_extract_youtube_metadata_keeps_listed_thumbnail(make_invoker) -> None:
    info = {
        "id": "abc",
        "title": "Epic moments",
        "duration": 600,
        "uploader": "Channel",
        "thumbnails": [{"id": "maxresdefault", "url": "https://i.ytimg.com/vi/abc/maxresdefault.jpg"}],
    }
    invoker = make_invoker(_yt_dlp_handler(info))

    metadata = MetadataExtractor(invoker).extract("https://www.youtube.com/watch?v=abc")

    assert metadata.title == "Epic moments"
    assert metadata.duration == 600
    assert metadata.platform == "youtube"
    assert metadata.thumbnail == "https://i.ytimg.com/vi/abc/maxresdefault.jpg"
    assert invoker.calls_for("ffmpeg") == []


def test_extract_twitch_replaces_thumbnail_with_frame(make_invoker) -> None:
    info = {"title": "Stream", "duration": 3600, "thumbnail": "https://static.twitch.example/thumb.jpg"}
    invoker = make_invoker(_yt_dlp_handler(info))

    metadata = MetadataExtractor(invoker).extract("https://www.twitch.tv/videos/1")

    assert metadata.thumbnail.startswith("data:image/jpeg;base64,")
    stream_args = invoker.calls_for("yt-dlp")[1]
    assert "best[height<=720][protocol^=http]/best[height<=720]/best" in stream_args
    ffmpeg_args = invoker.calls_for("ffmpeg")[0]
    assert ffmpeg_args[ffmpeg_args.index("-ss") + 1] == "5.000"
    assert ffmpeg_args[ffmpeg_args.index("-i") + 1] == "https://cdn.example/stream.m3u8"


def test_frame_fallback_failure_keeps_original_thumbnail(make_invoker) -> None:
    info = {"title": "Stream", "duration": 30, "thumbnail": "https://static.kick.example/thumb.jpg"}

    def _handler(executable: str, args: list[str]):
        if "--dump-json" in args:
            return json.dumps(info).encode()
        raise ExternalToolError(executable, 1, "stream unavailable")

    metadata = MetadataExtractor(make_invoker(_handler)).extract("https://kick.com/someone/videos/1")

    assert metadata.thumbnail == "https://static.kick.example/thumb.jpg"


def test_live_source_skips_frame_extraction(make_invoker) -> None:
    info = {"title": "Live now", "duration": None, "is_live": True, "thumbnail": "https://rumble.example/t.jpg"}
    invoker = make_invoker(_yt_dlp_handler(info))

    metadata = MetadataExtractor(invoker).extract("https://rumble.com/live-1")

    assert metadata.is_live is True
    assert metadata.duration == 0.0
    assert metadata.thumbnail == "https://rumble.example/t.jpg"
    assert len(invoker.calls) == 1


def test_primary_metadata_failure_propagates(make_invoker) -> None:
    def _handler(executable: str, args: list[str]):
        raise ExternalToolError(executable, 1, "ERROR: Unsupported URL")

    with pytest.raises(ExternalToolError, match="Unsupported URL"):
        MetadataExtractor(make_invoker(_handler)).extract("https://example.org/page")


def test_invalid_metadata_json_is_rejected(make_invoker) -> None:
    invoker = make_invoker(lambda executable, args: ToolResult(exit_code=0, stdout=b"<html>", stderr=""))

    with pytest.raises(ExternalToolError, match="not valid JSON"):
        MetadataExtractor(invoker).extract("https://www.youtube.com/watch?v=abc")
