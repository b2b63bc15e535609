from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TypeVar

from clip_pipeline.captions.burner import CaptionBurner
from clip_pipeline.captions.fonts import POSITIONS, FontRegistry
from clip_pipeline.clipping.batch import BOTH_ASPECTS, Transcriber, process_clips_from_metadata
from clip_pipeline.clipping.cutter import ClipCutter
from clip_pipeline.config import Settings
from clip_pipeline.features.frames import sample_frames
from clip_pipeline.features.transcribe import WhisperTranscriber
from clip_pipeline.ingest.download import download_source
from clip_pipeline.ingest.metadata import MetadataExtractor
from clip_pipeline.ingest.platforms import is_remote
from clip_pipeline.ingest.probe import probe_media
from clip_pipeline.models import BatchResult, CaptionPayload, ClipWindow, Metadata, SourceDescriptor
from clip_pipeline.remote.proxy import RemoteProcessingProxy
from clip_pipeline.scoring.engagement import score_frames, select_clip_windows
from clip_pipeline.storage.artifacts import ArtifactStore, build_artifact_store
from clip_pipeline.tempfiles import TempScope
from clip_pipeline.tools.invoker import MediaToolInvoker

logger = logging.getLogger(__name__)

T = TypeVar("T")
StepRunner = Callable[[str, Callable[[], T]], T]

RUN_STEPS = ("Fetch metadata", "Prepare source", "Sample frames", "Score frames", "Select clip windows", "Cut and upload clips")


@dataclass(slots=True)
class ClipRequest:
    source_url: str | None = None
    local_path: str | None = None
    platform: str | None = None
    platform_hint: str | None = None
    requested_clip_count: int = 10
    min_engagement_score: float = 30.0
    clip_duration_seconds: float = 30.0
    aspect_ratio: str = BOTH_ASPECTS
    project_id: str = "project"
    num_frames: int = 10
    font_key: str | None = None
    caption_position: str = "bottom"

    def __post_init__(self) -> None:
        if self.requested_clip_count < 0:
            raise ValueError("requested_clip_count must be >= 0.")
        if self.clip_duration_seconds <= 0:
            raise ValueError("clip_duration_seconds must be positive.")
        if self.num_frames <= 0:
            raise ValueError("num_frames must be positive.")
        if self.caption_position not in POSITIONS:
            raise ValueError(f"caption_position must be one of: {', '.join(POSITIONS)}.")

    def source(self) -> SourceDescriptor:
        return SourceDescriptor(url=self.source_url, local_path=self.local_path, platform=self.platform or "other")


@dataclass(slots=True)
class PipelineResult:
    metadata: Metadata
    windows: list[ClipWindow] = field(default_factory=list)
    batch: BatchResult = field(default_factory=BatchResult)


def _run_directly(label: str, work: Callable[[], T]) -> T:
    return work()


class ClipPipeline:
    """Metadata, frame sampling, scoring, cutting and upload for one source.

    Everything runs in one temporary scope that is removed when the run
    ends, successfully or not.
    """

    def __init__(
        self,
        *,
        invoker: MediaToolInvoker,
        extractor: MetadataExtractor,
        cutter: ClipCutter,
        burner: CaptionBurner,
        store: ArtifactStore,
        proxy: RemoteProcessingProxy | None = None,
        transcriber: Transcriber | None = None,
        temp_dir: Path | None = None,
        socket_timeout_seconds: int = 30,
    ) -> None:
        self.invoker = invoker
        self.extractor = extractor
        self.cutter = cutter
        self.burner = burner
        self.store = store
        self.proxy = proxy
        self.transcriber = transcriber
        self.temp_dir = temp_dir
        self.socket_timeout_seconds = socket_timeout_seconds

    def fetch_metadata(self, source: SourceDescriptor) -> Metadata:
        if source.local_path:
            return self.extractor.extract_local(source.local_path)
        if self.proxy is not None:
            return self.proxy.extract_metadata(source.location)
        return self.extractor.extract(source.location)

    def run(self, request: ClipRequest, step: StepRunner | None = None) -> PipelineResult:
        step = step or _run_directly
        source = request.source()
        if request.font_key is not None:
            self.burner.registry.get(request.font_key)
            if self.transcriber is None:
                logger.warning("Captions need word timings but transcription is disabled; clips upload without captions.")

        with TempScope(self.temp_dir) as scope:
            metadata = step(RUN_STEPS[0], lambda: self.fetch_metadata(source))
            platform = request.platform or metadata.platform

            video_path = step(RUN_STEPS[1], lambda: self._prepare_source(source, scope))
            duration = metadata.duration
            if duration <= 0:
                duration = float(probe_media(video_path, self.invoker)["duration_seconds"] or 0.0)

            frames = step(
                RUN_STEPS[2],
                lambda: sample_frames(video_path, duration, scope.subdir("frames"), self.invoker, request.num_frames),
            )
            scored = step(
                RUN_STEPS[3],
                lambda: score_frames(frames, title=metadata.title, duration=duration, platform=platform),
            )
            windows = step(
                RUN_STEPS[4],
                lambda: select_clip_windows(
                    scored,
                    min_score=request.min_engagement_score,
                    clip_duration=request.clip_duration_seconds,
                    max_clips=request.requested_clip_count,
                    source_duration=duration,
                ),
            )
            logger.info("Selected %d of %d scored frames as clip windows", len(windows), len(scored))

            batch = step(
                RUN_STEPS[5],
                lambda: process_clips_from_metadata(
                    video_path,
                    windows,
                    project_id=request.project_id,
                    source_title=metadata.title,
                    cutter=self.cutter,
                    store=self.store,
                    scope=scope,
                    transcriber=self.transcriber,
                    aspect_ratio=request.aspect_ratio,
                    platform_hint=request.platform_hint,
                    burner=self.burner,
                    font_key=request.font_key,
                    caption_position=request.caption_position,
                ),
            )

        return PipelineResult(metadata=metadata, windows=windows, batch=batch)

    def burn_captions(
        self,
        video: str | Path,
        payload: CaptionPayload,
        output_path: Path,
        *,
        clip_id: str = "preview",
        platform: str | None = None,
    ) -> Path:
        """Burn captions remotely when a backend is configured and the video is a URL."""

        self.burner.registry.get(payload.font_key)
        if not payload.captions:
            raise ValueError("No captions to burn.")

        if self.proxy is not None and isinstance(video, str) and is_remote(video):
            with TempScope(self.temp_dir) as scope:
                rendered = self.proxy.apply_captions(
                    video, payload, clip_id=clip_id, output_path=scope.file(f"remote_{clip_id}", ".mp4")
                )
                output_path.parent.mkdir(parents=True, exist_ok=True)
                Path(rendered.file_path).replace(output_path)
            return output_path

        with TempScope(self.temp_dir) as scope:
            return self.burner.burn(
                video,
                payload.captions,
                payload.font_key,
                output_path,
                scope=scope,
                position=payload.position,
                platform=platform,
            )

    def _prepare_source(self, source: SourceDescriptor, scope: TempScope) -> Path:
        if source.local_path:
            local = Path(source.local_path).expanduser().resolve()
            if not local.exists():
                raise FileNotFoundError(f"Video file not found: {local}")
            return local
        return download_source(
            source.location,
            scope.subdir("source"),
            self.invoker,
            socket_timeout_seconds=self.socket_timeout_seconds,
        )


def build_pipeline(settings: Settings, *, store: ArtifactStore | None = None) -> ClipPipeline:
    invoker = MediaToolInvoker(settings.tools)
    proxy = RemoteProcessingProxy.from_settings(settings.remote, invoker=invoker)
    if proxy is None:
        logger.info("Remote processing backend not configured; running media tools locally.")
    else:
        logger.info("Using remote processing backend at %s", proxy.base_url)

    transcriber = None
    if settings.transcription.enabled:
        transcriber = WhisperTranscriber(
            model_size=settings.transcription.model_size,
            language=settings.transcription.language,
            device=settings.transcription.device,
            compute_type=settings.transcription.compute_type,
        )

    return ClipPipeline(
        invoker=invoker,
        extractor=MetadataExtractor(
            invoker,
            socket_timeout_seconds=settings.tools.socket_timeout_seconds,
            extractor_retries=settings.tools.extractor_retries,
        ),
        cutter=ClipCutter(invoker),
        burner=CaptionBurner(
            invoker,
            FontRegistry(default_key=settings.captions.default_font),
            download_timeout_seconds=settings.remote.timeout_seconds,
        ),
        store=store or build_artifact_store(settings.storage),
        proxy=proxy,
        transcriber=transcriber,
        temp_dir=settings.pipeline.temp_dir,
        socket_timeout_seconds=settings.tools.socket_timeout_seconds,
    )


def request_from_settings(settings: Settings, **overrides: object) -> ClipRequest:
    values: dict[str, object] = {
        "requested_clip_count": settings.pipeline.max_clips,
        "min_engagement_score": settings.pipeline.min_engagement_score,
        "clip_duration_seconds": settings.pipeline.clip_duration_seconds,
        "aspect_ratio": settings.pipeline.aspect_ratio,
        "num_frames": settings.pipeline.num_frames,
        "caption_position": settings.captions.position,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return ClipRequest(**values)  # type: ignore[arg-type]
