from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from clip_pipeline.features.frames import frame_timestamp, sample_frames
from clip_pipeline.features.transcribe import WhisperTranscriber


class _FakeWhisperModel:
    def __init__(self) -> None:
        self.kwargs: dict = {}

    def transcribe(self, path: str, **kwargs):
        self.kwargs = kwargs
        segments = [
            SimpleNamespace(
                start=0.0,
                end=1.2,
                text=" What a goal ",
                avg_logprob=-0.1,
                words=[
                    SimpleNamespace(word=" What", start=0.0, end=0.3),
                    SimpleNamespace(word=" a", start=0.3, end=0.4),
                    SimpleNamespace(word=" goal", start=0.4, end=1.2),
                ],
            )
        ]
        return iter(segments), SimpleNamespace(language="en")


def test_transcriber_returns_text_and_word_timings(tmp_path: Path) -> None:
    audio = tmp_path / "clip.wav"
    audio.write_bytes(b"RIFF")
    model = _FakeWhisperModel()
    transcriber = WhisperTranscriber(language="en")
    transcriber._model = model

    result = transcriber(audio)

    assert result["text"] == "What a goal"
    assert result["language"] == "en"
    assert [word["word"] for word in result["words"]] == ["What", "a", "goal"]
    assert result["words"][2] == {"word": "goal", "start": 0.4, "end": 1.2}
    assert 0.0 < result["segments"][0]["confidence"] <= 1.0
    assert model.kwargs["word_timestamps"] is True


def test_transcriber_missing_audio(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Audio file not found"):
        WhisperTranscriber().transcribe(tmp_path / "missing.wav")


def test_sample_frames_spreads_timestamps_over_duration(tmp_path: Path, make_invoker) -> None:
    def _handler(executable: str, args: list[str]):
        out_dir = Path(args[-1]).parent
        for index in range(1, 5):
            (out_dir / f"frame_{index:03d}.jpg").write_bytes(b"jpg")
        return None

    invoker = make_invoker(_handler)

    frames = sample_frames(tmp_path / "in.mp4", 120.0, tmp_path / "frames", invoker, count=4)

    assert [frame.timestamp_seconds for frame in frames] == [0.0, 30.0, 60.0, 90.0]
    args = invoker.calls[0][1]
    assert args[args.index("-vf") + 1] == "fps=0.033333"
    assert args[args.index("-frames:v") + 1] == "4"
    assert args[-1].endswith("frame_%03d.jpg")


def test_sample_frames_with_zero_duration_is_empty(tmp_path: Path, make_invoker) -> None:
    invoker = make_invoker()

    assert sample_frames(tmp_path / "in.mp4", 0.0, tmp_path / "frames", invoker) == []
    assert invoker.calls == []
    assert frame_timestamp(3, 100.0, 10) == pytest.approx(30.0)
