from __future__ import annotations

from pathlib import Path

import pytest

from clip_pipeline.clipping.batch import derive_clip_title, process_clips_from_metadata, render_aspects
from clip_pipeline.captions.burner import CaptionBurner
from clip_pipeline.clipping.cutter import ClipCutter
from clip_pipeline.errors import ExternalToolError
from clip_pipeline.models import ClipWindow
from clip_pipeline.storage.artifacts import LocalArtifactStore
from clip_pipeline.tempfiles import TempScope
from conftest import write_output_file


def _windows() -> list[ClipWindow]:
    return [
        ClipWindow("clip_1", 0.0, 30.0, 92.0, "High engagement moment"),
        ClipWindow("clip_2", 40.0, 70.0, 85.0, "High engagement moment"),
        ClipWindow("clip_3", 80.0, 110.0, 71.5, "High engagement moment"),
    ]


def test_partial_failure_isolated_to_one_window(tmp_path: Path, make_invoker) -> None:
    def _handler(executable: str, args: list[str]):
        if args[args.index("-ss") + 1] == "40":
            raise ExternalToolError(executable, 1, "corrupt packet at 40s")
        write_output_file(executable, args)
        return None

    store = LocalArtifactStore(tmp_path / "store")
    with TempScope(tmp_path / "tmp") as scope:
        result = process_clips_from_metadata(
            tmp_path / "source.mp4",
            _windows(),
            project_id="proj42",
            source_title="Big Match",
            cutter=ClipCutter(make_invoker(_handler)),
            store=store,
            scope=scope,
        )
        assert list((scope.path / "clips").iterdir()) == []

    assert result.processed == 2
    assert result.errors == 1
    failed = [outcome for outcome in result.outcomes if outcome.status == "error"]
    assert [outcome.clip_id for outcome in failed] == ["clip_2"]
    assert "corrupt packet" in failed[0].error
    stored = sorted(path.name for path in (tmp_path / "store").iterdir())
    assert stored == [
        "proj42_clip_0s_2.35x1.mp4",
        "proj42_clip_0s_9x16.mp4",
        "proj42_clip_80s_2.35x1.mp4",
        "proj42_clip_80s_9x16.mp4",
    ]
    assert result.outcomes[0].title == "Big Match - 0s"
    assert sorted(result.outcomes[0].uploads) == ["2.35x1", "9x16"]


def test_empty_batch_reports_zero_counts(tmp_path: Path, make_invoker) -> None:
    with TempScope(tmp_path / "tmp") as scope:
        result = process_clips_from_metadata(
            tmp_path / "source.mp4",
            [],
            project_id="p",
            source_title="t",
            cutter=ClipCutter(make_invoker()),
            store=LocalArtifactStore(tmp_path / "store"),
            scope=scope,
        )

    assert (result.processed, result.errors) == (0, 0)


def test_transcript_becomes_title_and_audio_is_cleaned_up(tmp_path: Path, rendering_invoker) -> None:
    seen_audio: list[Path] = []

    def _transcriber(audio_path: Path) -> dict:
        seen_audio.append(audio_path)
        return {"text": "um so this is the craziest save of the whole season"}

    with TempScope(tmp_path / "tmp") as scope:
        result = process_clips_from_metadata(
            tmp_path / "source.mp4",
            _windows()[:1],
            project_id="p",
            source_title="Match",
            cutter=ClipCutter(rendering_invoker),
            store=LocalArtifactStore(tmp_path / "store"),
            scope=scope,
            transcriber=_transcriber,
            aspect_ratio="original",
        )

    assert result.outcomes[0].title == "This is the craziest save of the whole season"
    assert seen_audio and not seen_audio[0].exists()
    assert (tmp_path / "store" / "p_clip_0s_original.mp4").exists()


def test_transcriber_failure_falls_back_to_source_title(tmp_path: Path, rendering_invoker) -> None:
    def _broken(audio_path: Path) -> dict:
        raise RuntimeError("model not available")

    with TempScope(tmp_path / "tmp") as scope:
        result = process_clips_from_metadata(
            tmp_path / "source.mp4",
            _windows()[1:2],
            project_id="p",
            source_title="Match",
            cutter=ClipCutter(rendering_invoker),
            store=LocalArtifactStore(tmp_path / "store"),
            scope=scope,
            transcriber=_broken,
        )

    assert result.outcomes[0].status == "ok"
    assert result.outcomes[0].title == "Match - 40s"


def test_derive_clip_title_truncates_on_word_boundary() -> None:
    transcript = "you know the referee had no idea what was happening when the ball crossed the line twice"

    title = derive_clip_title(transcript, "fallback")

    assert title.endswith("...")
    assert len(title) <= 63
    assert title.startswith("The referee had no idea")
    assert not title[:-3].endswith(" ")


@pytest.mark.parametrize("transcript", ["", "um uh", "so", None])
def test_derive_clip_title_uses_fallback_for_short_text(transcript: str | None) -> None:
    assert derive_clip_title(transcript, "Source - 12s") == "Source - 12s"


def test_each_window_renders_both_aspects_and_extracts_audio(tmp_path: Path, rendering_invoker) -> None:
    with TempScope(tmp_path / "tmp") as scope:
        result = process_clips_from_metadata(
            tmp_path / "source.mp4",
            _windows()[:1],
            project_id="p",
            source_title="Match",
            cutter=ClipCutter(rendering_invoker),
            store=LocalArtifactStore(tmp_path / "store"),
            scope=scope,
        )
        assert list((scope.path / "clips").iterdir()) == []

    ffmpeg_calls = rendering_invoker.calls_for("ffmpeg")
    assert len(ffmpeg_calls) == 3
    filters = [args[args.index("-vf") + 1] for args in ffmpeg_calls if "-vf" in args]
    assert filters[0].startswith("scale=1080:1920")
    assert filters[1].startswith("scale=2540:1080")
    assert ffmpeg_calls[2][-1].endswith(".wav")
    assert "pcm_s16le" in ffmpeg_calls[2]
    uploads = result.outcomes[0].uploads
    assert uploads["9x16"].path == "p_clip_0s_9x16.mp4"
    assert uploads["2.35x1"].path == "p_clip_0s_2.35x1.mp4"


def test_render_aspects_collapse_for_vertical_hint() -> None:
    assert render_aspects("both") == ["9:16", "2.35:1"]
    assert render_aspects(None) == ["9:16", "2.35:1"]
    assert render_aspects("original") == ["original"]
    assert render_aspects("both", "tiktok") == ["9:16"]


def test_transcript_words_are_burned_as_captions_into_every_render(tmp_path: Path, make_invoker) -> None:
    scripts: list[str] = []

    def _handler(executable: str, args: list[str]):
        if "-filter_complex_script" in args:
            scripts.append(Path(args[args.index("-filter_complex_script") + 1]).read_text(encoding="utf-8"))
        write_output_file(executable, args)
        return None

    def _transcriber(audio_path: Path) -> dict:
        return {
            "text": "what a finish",
            "words": [
                {"word": "what", "start": 0.2, "end": 0.4},
                {"word": "a", "start": 0.4, "end": 0.5},
                {"word": "finish", "start": 0.5, "end": 1.1},
                {"word": "50%", "start": 40.0, "end": 40.5},
            ],
        }

    invoker = make_invoker(_handler)
    with TempScope(tmp_path / "tmp") as scope:
        result = process_clips_from_metadata(
            tmp_path / "source.mp4",
            _windows()[:1],
            project_id="p",
            source_title="Match",
            cutter=ClipCutter(invoker),
            store=LocalArtifactStore(tmp_path / "store"),
            scope=scope,
            transcriber=_transcriber,
            burner=CaptionBurner(invoker),
            font_key="anton",
            caption_position="top",
        )
        assert list((scope.path / "clips").iterdir()) == []

    assert result.outcomes[0].status == "ok"
    assert len(scripts) == 2
    # the cue past the 30s clip end is dropped
    assert all(script.count("drawtext=") == 1 for script in scripts)
    assert all("font='Anton'" in script and ":y=150" in script for script in scripts)
    assert sorted(path.name for path in (tmp_path / "store").iterdir()) == ["p_clip_0s_2.35x1.mp4", "p_clip_0s_9x16.mp4"]


def test_captions_skipped_without_word_timings(tmp_path: Path, rendering_invoker) -> None:
    with TempScope(tmp_path / "tmp") as scope:
        result = process_clips_from_metadata(
            tmp_path / "source.mp4",
            _windows()[:1],
            project_id="p",
            source_title="Match",
            cutter=ClipCutter(rendering_invoker),
            store=LocalArtifactStore(tmp_path / "store"),
            scope=scope,
            burner=CaptionBurner(rendering_invoker),
            font_key="roboto",
        )

    assert result.outcomes[0].status == "ok"
    assert not any("-filter_complex_script" in args for args in rendering_invoker.calls_for("ffmpeg"))
