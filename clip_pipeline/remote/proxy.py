from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from urllib import request
from urllib.error import HTTPError, URLError

from clip_pipeline.clipping.cutter import aspect_from_dimensions
from clip_pipeline.config import RemoteSettings
from clip_pipeline.errors import ClipPipelineError, RemoteBackendError
from clip_pipeline.ingest.metadata import parse_thumbnails, select_thumbnail
from clip_pipeline.ingest.platforms import detect_platform
from clip_pipeline.ingest.probe import probe_media
from clip_pipeline.models import CaptionPayload, Metadata, RenderedClip
from clip_pipeline.tools.invoker import MediaToolInvoker

logger = logging.getLogger(__name__)


class RemoteProcessingProxy:
    """Forward metadata and caption work to a remote processing server.

    The remote side runs the same tools; this class only speaks HTTP with
    a shared bearer secret and passes remote error messages through as-is.
    """

    def __init__(
        self,
        base_url: str,
        secret: str,
        *,
        timeout_seconds: int = 300,
        invoker: MediaToolInvoker | None = None,
    ) -> None:
        if not base_url or not secret:
            raise ValueError("Remote processing needs both a base URL and a secret.")
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout_seconds = timeout_seconds
        self.invoker = invoker

    @classmethod
    def from_settings(
        cls, settings: RemoteSettings, *, invoker: MediaToolInvoker | None = None
    ) -> RemoteProcessingProxy | None:
        if not settings.configured:
            return None
        return cls(settings.base_url, settings.secret, timeout_seconds=settings.timeout_seconds, invoker=invoker)

    def extract_metadata(self, source_url: str) -> Metadata:
        body = self._request_json("POST", "/metadata", {"url": source_url})
        raw = body.get("metadata") or {}
        platform = str(body.get("platform") or detect_platform(source_url))
        return Metadata(
            title=raw.get("title") or "Unknown Title",
            description=raw.get("description") or "",
            duration=float(raw.get("duration") or 0.0),
            thumbnail=raw.get("thumbnail") or select_thumbnail(raw, platform),
            thumbnails=parse_thumbnails(raw),
            uploader=raw.get("uploader") or "Unknown",
            width=raw.get("width"),
            height=raw.get("height"),
            fps=raw.get("fps"),
            is_live=bool(raw.get("isLive") or raw.get("is_live")),
            platform=platform,
            source_url=source_url,
            video_id=raw.get("id"),
            upload_date=raw.get("uploadDate"),
            view_count=raw.get("viewCount"),
        )

    def apply_captions(
        self,
        video_url: str,
        payload: CaptionPayload,
        *,
        clip_id: str,
        output_path: Path,
    ) -> RenderedClip:
        data = self._request(
            "POST",
            "/apply-captions",
            {
                "videoUrl": video_url,
                "captionData": payload.to_dict(),
                "fontKey": payload.font_key,
                "clipId": clip_id,
                "position": payload.position,
            },
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(data)
        logger.info("Remote caption render for %s returned %d bytes", clip_id, len(data))
        duration, aspect_ratio = self._describe_render(output_path)
        return RenderedClip(
            file_path=str(output_path),
            file_name=output_path.name,
            size_bytes=len(data),
            duration=duration,
            aspect_ratio=aspect_ratio,
        )

    def list_fonts(self) -> list[dict[str, Any]]:
        body = self._request_json("GET", "/fonts")
        fonts = body.get("fonts") or []
        if isinstance(fonts, dict):
            return [{"key": key, **value} for key, value in fonts.items()]
        return list(fonts)

    def health(self) -> dict[str, Any]:
        return self._request_json("GET", "/health")

    def _describe_render(self, path: Path) -> tuple[float | None, str | None]:
        # the server returns bare mp4 bytes, so duration and aspect come from probing the file
        if self.invoker is None:
            return None, None
        try:
            info = probe_media(path, self.invoker)
        except ClipPipelineError as exc:
            logger.warning("Could not probe remote render %s: %s", path.name, exc)
            return None, None
        return info["duration_seconds"] or None, aspect_from_dimensions(info["width"], info["height"])

    def _request_json(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        raw = self._request(method, path, payload)
        try:
            return json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ClipPipelineError(f"Remote backend returned invalid JSON for {path}") from exc

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> bytes:
        headers = {"Authorization": f"Bearer {self.secret}"}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = request.Request(f"{self.base_url}{path}", data=data, headers=headers, method=method)
        logger.debug("Remote %s %s", method, path)
        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                return response.read()
        except HTTPError as exc:
            raise RemoteBackendError(exc.code, _error_message(exc)) from exc
        except URLError as exc:
            raise ClipPipelineError(f"Remote backend unreachable at {self.base_url}: {exc.reason}") from exc


def _error_message(exc: HTTPError) -> str:
    raw = exc.read() if exc.fp is not None else b""
    text = raw.decode("utf-8", errors="replace").strip()
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return text or f"HTTP {exc.code}"

    if isinstance(body, dict):
        for field in ("error", "details"):
            if body.get(field):
                return str(body[field])
    return text or f"HTTP {exc.code}"
