from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "CLIP_PIPELINE_"


class ToolSettings(BaseModel):
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    ytdlp_path: str = "yt-dlp"
    socket_timeout_seconds: int = 30
    extractor_retries: int = 3


class PipelineSettings(BaseModel):
    temp_dir: Path = Path("data/tmp")
    num_frames: int = 10
    clip_duration_seconds: float = 30.0
    max_clips: int = 10
    min_engagement_score: float = 30.0
    aspect_ratio: str = "both"


class RemoteSettings(BaseModel):
    base_url: str = ""
    secret: str = ""
    timeout_seconds: int = 300

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.secret)


class StorageSettings(BaseModel):
    backend: str = "local"
    local_root: Path = Path("data/artifacts")
    public_base_url: str | None = None
    bucket: str = ""
    prefix: str = "clipper"


class CaptionSettings(BaseModel):
    default_font: str = "roboto"
    position: str = "bottom"


class TranscriptionSettings(BaseModel):
    enabled: bool = False
    model_size: str = "small"
    language: str | None = None
    device: str = "auto"
    compute_type: str = "default"


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    tools: ToolSettings = Field(default_factory=ToolSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    captions: CaptionSettings = Field(default_factory=CaptionSettings)
    transcription: TranscriptionSettings = Field(default_factory=TranscriptionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides."""

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config: dict[str, Any] = {}
    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    return raw_value
