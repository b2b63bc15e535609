from __future__ import annotations

import logging
from pathlib import Path

from clip_pipeline.captions.fonts import FontRegistry, FontSpec, style_for_platform, y_expression
from clip_pipeline.ingest.download import fetch_to_file
from clip_pipeline.ingest.platforms import is_remote
from clip_pipeline.models import CaptionCue
from clip_pipeline.tempfiles import TempScope, remove_quietly
from clip_pipeline.tools.invoker import MediaToolInvoker

logger = logging.getLogger(__name__)


class CaptionBurner:
    """Render timed caption cues into a video with ffmpeg drawtext filters.

    Each cue text goes into its own file referenced with ``textfile=`` so
    caption content never needs filter-graph escaping, and text expansion is
    off so ``%`` and backslashes render literally.
    """

    def __init__(
        self,
        invoker: MediaToolInvoker,
        registry: FontRegistry | None = None,
        *,
        download_timeout_seconds: int = 300,
    ) -> None:
        self.invoker = invoker
        self.registry = registry or FontRegistry()
        self.download_timeout_seconds = download_timeout_seconds

    def burn(
        self,
        video: str | Path,
        captions: list[CaptionCue],
        font_key: str,
        output_path: Path,
        *,
        scope: TempScope,
        position: str = "bottom",
        platform: str | None = None,
    ) -> Path:
        font = self.registry.get(font_key)
        if not captions:
            raise ValueError("No captions to burn.")

        input_path = self._materialize_input(video, scope)
        work_files: list[Path] = []
        try:
            filter_script = scope.file("captions_filter", ".txt")
            work_files.append(filter_script)
            chains: list[str] = []
            for index, cue in enumerate(captions):
                text_file = scope.file(f"caption_{index}", ".txt")
                text_file.write_text(cue.text.strip(), encoding="utf-8")
                work_files.append(text_file)
                chains.append(drawtext_filter(text_file, cue, font, position=position, platform=platform))

            filter_script.write_text(build_filter_graph(chains), encoding="utf-8")

            output_path.parent.mkdir(parents=True, exist_ok=True)
            logger.info("Burning %d captions with %s into %s", len(captions), font.name, output_path.name)
            self.invoker.invoke(
                self.invoker.ffmpeg,
                [
                    "-i",
                    str(input_path),
                    "-filter_complex_script",
                    str(filter_script),
                    "-map",
                    "[v]",
                    "-map",
                    "0:a?",
                    "-c:v",
                    "libx264",
                    "-c:a",
                    "aac",
                    "-preset",
                    "medium",
                    "-crf",
                    "23",
                    "-y",
                    str(output_path),
                ],
            )
        finally:
            for work_file in work_files:
                remove_quietly(work_file)

        return output_path

    def burn_to_bytes(
        self,
        video: str | Path,
        captions: list[CaptionCue],
        font_key: str,
        *,
        clip_id: str,
        scope: TempScope,
        position: str = "bottom",
        platform: str | None = None,
    ) -> tuple[bytes, str]:
        """Burn captions and return (mp4 bytes, suggested file name)."""

        self.registry.get(font_key)
        input_path = self._materialize_input(video, scope)
        output_path = scope.file(f"captioned_{clip_id}", ".mp4")
        try:
            self.burn(input_path, captions, font_key, output_path, scope=scope, position=position, platform=platform)
            payload = output_path.read_bytes()
        finally:
            if input_path != Path(video):
                remove_quietly(input_path)
            remove_quietly(output_path)

        return payload, f"clip_{clip_id}_font_{font_key}.mp4"

    def _materialize_input(self, video: str | Path, scope: TempScope) -> Path:
        if isinstance(video, str) and is_remote(video):
            return fetch_to_file(video, scope.file("input_video", ".mp4"), timeout_seconds=self.download_timeout_seconds)
        return Path(video)


def drawtext_filter(
    text_file: Path,
    cue: CaptionCue,
    font: FontSpec,
    *,
    position: str = "bottom",
    platform: str | None = None,
) -> str:
    style = style_for_platform(platform)
    return (
        f"drawtext=textfile='{text_file}'"
        f":font='{font.family}'"
        f":fontsize={style.font_size}"
        f":fontcolor={style.font_color}"
        f":bordercolor={style.outline_color}"
        f":borderw={style.outline_width}"
        f":x=(w-text_w)/2"
        f":y={y_expression(position)}"
        f":enable='between(t,{cue.start_time},{cue.end_time})'"
        ":expansion=none"
    )


def build_filter_graph(chains: list[str]) -> str:
    return f"[0:v]{','.join(chains)}[v]"
