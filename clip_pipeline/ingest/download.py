from __future__ import annotations

import logging
import shutil
from pathlib import Path
from urllib import request
from urllib.error import HTTPError, URLError

from clip_pipeline.errors import ClipPipelineError, ExternalToolError
from clip_pipeline.ingest.platforms import detect_platform
from clip_pipeline.tools.invoker import MediaToolInvoker

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_FORMAT = "best[height<=1080]/best"
DOWNLOAD_CHUNK_BYTES = 1024 * 1024


def download_source(
    source_url: str,
    output_dir: Path,
    invoker: MediaToolInvoker,
    *,
    quality: str = DEFAULT_DOWNLOAD_FORMAT,
    socket_timeout_seconds: int = 30,
) -> Path:
    """Download a source video with yt-dlp into output_dir and return the file path."""

    output_dir.mkdir(parents=True, exist_ok=True)
    args = [
        "--format",
        quality,
        "--merge-output-format",
        "mp4",
        "--no-warnings",
        "--no-playlist",
        "--socket-timeout",
        str(socket_timeout_seconds),
        "-o",
        str(output_dir / "source.%(ext)s"),
        "--print",
        "after_move:filepath",
    ]
    if detect_platform(source_url) == "rumble":
        args.extend(["--no-check-certificate", "--extractor-retries", "5"])
    args.append(source_url)

    result = invoker.invoke(invoker.ytdlp, args)
    printed = [line.strip() for line in result.text.splitlines() if line.strip()]
    if printed and Path(printed[-1]).exists():
        return Path(printed[-1])

    downloaded = sorted(output_dir.glob("source.*"))
    if not downloaded:
        raise ExternalToolError(invoker.ytdlp, result.exit_code, "download finished but no file was written")
    return downloaded[0]


def fetch_to_file(url: str, destination: Path, *, timeout_seconds: int = 300) -> Path:
    """Stream an HTTP(S) resource to disk."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    req = request.Request(url, method="GET")
    try:
        with request.urlopen(req, timeout=timeout_seconds) as response, destination.open("wb") as handle:
            shutil.copyfileobj(response, handle, DOWNLOAD_CHUNK_BYTES)
    except HTTPError as exc:
        raise ClipPipelineError(f"Failed to download video: {exc.code} {exc.reason}") from exc
    except URLError as exc:
        raise ClipPipelineError(f"Failed to download video: {exc.reason}") from exc

    logger.info("Fetched %s -> %s (%d bytes)", url, destination, destination.stat().st_size)
    return destination
