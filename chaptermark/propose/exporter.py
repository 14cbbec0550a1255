from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

from chaptermark.models import Chapter, SceneCandidate
from chaptermark.selection.targeting import ZERO_CHAPTER_SECONDS

DESCRIPTION_HEADER = "Chapters:"
INTRODUCTION_TITLE = "Introduction"


def to_chapters(candidates: list[SceneCandidate]) -> list[Chapter]:
    """Project detected candidates onto numbered chapters; scores are dropped."""

    return [
        Chapter(index=idx, timestamp=round(candidate.timestamp, 3), title=f"Chapter {idx}")
        for idx, candidate in enumerate(candidates, start=1)
    ]


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``M:SS`` or ``H:MM:SS``."""

    total_seconds = max(int(seconds), 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_description(chapters: list[Chapter]) -> str:
    """Render chapters as a video-description block that always starts at 0:00.

    A chapter inside the first second already renders as ``0:00``, so no
    introduction line is added for it.
    """

    if not chapters:
        return ""

    lines = [DESCRIPTION_HEADER]
    if not any(chapter.timestamp < ZERO_CHAPTER_SECONDS for chapter in chapters):
        lines.append(f"0:00 {INTRODUCTION_TITLE}")
    lines.extend(f"{format_timestamp(chapter.timestamp)} {chapter.title}" for chapter in chapters)
    return "\n".join(lines) + "\n"


def export_chapters(chapters: list[Chapter], output_path: str | Path) -> Path:
    """Export chapters to JSON (default) or CSV, based on file extension."""

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() == ".csv":
        _write_csv(chapters, path)
    else:
        _write_json(chapters, path)

    return path


def export_final_outputs(
    chapters: list[Chapter],
    output_dir: str | Path,
    *,
    basename: str = "chapters",
) -> dict[str, Path]:
    """Write JSON, CSV and description-text outputs for one run."""

    resolved_output_dir = Path(output_dir)
    resolved_output_dir.mkdir(parents=True, exist_ok=True)

    json_path = resolved_output_dir / f"{basename}.json"
    csv_path = resolved_output_dir / f"{basename}.csv"
    description_path = resolved_output_dir / f"{basename}_description.txt"

    export_chapters(chapters, json_path)
    export_chapters(chapters, csv_path)
    description_path.write_text(format_description(chapters), encoding="utf-8")

    return {
        "json": json_path,
        "csv": csv_path,
        "description": description_path,
    }


def _write_json(chapters: list[Chapter], path: Path) -> None:
    payload: list[dict[str, Any]] = [{"timestamp": chapter.timestamp, "title": chapter.title} for chapter in chapters]
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def _write_csv(chapters: list[Chapter], path: Path) -> None:
    fields = ["index", "timestamp", "timecode", "title"]

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields)
        writer.writeheader()
        for chapter in chapters:
            writer.writerow(
                {
                    "index": chapter.index,
                    "timestamp": f"{chapter.timestamp:.3f}",
                    "timecode": format_timestamp(chapter.timestamp),
                    "title": chapter.title,
                }
            )
