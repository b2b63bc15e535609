from __future__ import annotations

import csv
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from clip_pipeline.models import BatchResult, ClipWindow


def export_windows(windows: list[ClipWindow], output_path: str | Path) -> Path:
    """Export clip windows to JSON (default) or CSV, based on file extension."""

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() == ".csv":
        _write_csv(windows, path)
    else:
        rows = [{**asdict(window), "confidence": _confidence_label(window.virality_score)} for window in windows]
        path.write_text(json.dumps(rows, indent=2), encoding="utf-8")

    return path


def load_clip_windows(path: str | Path) -> list[ClipWindow]:
    """Load windows written by export_windows so a run can be re-cut later."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("Clip window file must be a JSON array.")

    windows: list[ClipWindow] = []
    for idx, row in enumerate(payload, start=1):
        if not isinstance(row, dict):
            raise ValueError(f"Clip window row {idx} must be an object.")
        windows.append(
            ClipWindow(
                clip_id=str(row.get("clip_id") or f"clip_{idx}"),
                start_time=float(row["start_time"]),
                end_time=float(row["end_time"]),
                virality_score=float(row.get("virality_score", 0.0)),
                reason=str(row.get("reason", "")),
                center_timestamp=float(row["center_timestamp"]) if row.get("center_timestamp") is not None else None,
                description=str(row.get("description", "")),
            )
        )
    return windows


def batch_summary(result: BatchResult) -> dict[str, Any]:
    return {
        "processed": result.processed,
        "errors": result.errors,
        "clips": [asdict(outcome) for outcome in result.outcomes],
    }


def export_batch_result(result: BatchResult, output_path: str | Path) -> Path:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(batch_summary(result), indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def _write_csv(windows: list[ClipWindow], path: Path) -> None:
    fields = [
        "clip_id",
        "start_time",
        "end_time",
        "duration",
        "virality_score",
        "confidence",
        "reason",
        "description",
    ]

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields)
        writer.writeheader()
        for window in windows:
            writer.writerow(
                {
                    "clip_id": window.clip_id,
                    "start_time": f"{window.start_time:.3f}",
                    "end_time": f"{window.end_time:.3f}",
                    "duration": f"{window.duration:.3f}",
                    "virality_score": f"{window.virality_score:.2f}",
                    "confidence": _confidence_label(window.virality_score),
                    "reason": window.reason,
                    "description": window.description,
                }
            )


def _confidence_label(score: float) -> str:
    if score >= 80:
        return "high"
    if score >= 60:
        return "medium"
    return "low"
