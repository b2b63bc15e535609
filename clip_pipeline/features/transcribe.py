from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class WhisperTranscriber:
    """Transcribe 16 kHz mono clip audio with faster-whisper.

    The model is loaded lazily on first use and reused for every clip of a
    batch run.
    """

    def __init__(
        self,
        model_size: str = "small",
        language: str | None = None,
        device: str = "auto",
        compute_type: str = "default",
    ) -> None:
        self.model_size = model_size
        self.language = language
        self.device = device
        self.compute_type = compute_type
        self._model: Any = None

    def __call__(self, audio_path: str | Path) -> dict[str, Any]:
        return self.transcribe(audio_path)

    def transcribe(self, audio_path: str | Path) -> dict[str, Any]:
        source_path = Path(audio_path).expanduser().resolve()
        if not source_path.exists():
            raise FileNotFoundError(f"Audio file not found: {source_path}")

        model = self._load_model()
        segments_iter, info = model.transcribe(
            str(source_path),
            language=self.language,
            vad_filter=True,
            word_timestamps=True,
        )

        segments: list[dict[str, Any]] = []
        words: list[dict[str, Any]] = []
        for segment in segments_iter:
            segments.append(
                {
                    "start_seconds": round(float(segment.start), 3),
                    "end_seconds": round(float(segment.end), 3),
                    "text": segment.text.strip(),
                    "confidence": _segment_confidence(getattr(segment, "avg_logprob", None)),
                }
            )
            for word in getattr(segment, "words", None) or []:
                words.append(
                    {
                        "word": str(word.word).strip(),
                        "start": round(float(word.start), 3),
                        "end": round(float(word.end), 3),
                    }
                )

        text = " ".join(segment["text"] for segment in segments if segment["text"]).strip()
        logger.debug("Transcribed %s: %d segments, %d words", source_path.name, len(segments), len(words))
        return {
            "text": text,
            "language": getattr(info, "language", self.language),
            "segments": segments,
            "words": words,
        }

    def _load_model(self) -> Any:
        if self._model is None:
            from faster_whisper import WhisperModel

            self._model = WhisperModel(self.model_size, device=self.device, compute_type=self.compute_type)
        return self._model


def _segment_confidence(avg_logprob: Any) -> float | None:
    if avg_logprob is None:
        return None

    value = float(avg_logprob)
    # map log-probability to [0, 1] in a simple, monotonic way
    return round(min(max(math.exp(value), 0.0), 1.0), 4)
