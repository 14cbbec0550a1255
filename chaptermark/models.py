from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

CandidateOrigin = Literal["visual", "silence", "speech", "fallback"]


@dataclass(frozen=True, slots=True)
class SceneCandidate:
    """A proposed chapter boundary with the confidence of the signal that produced it."""

    timestamp: float
    score: float
    origin: CandidateOrigin


@dataclass(slots=True)
class Chapter:
    """Export-side chapter row; the score is dropped and a title is synthesized."""

    index: int
    timestamp: float
    title: str


@dataclass(slots=True)
class ChapterRun:
    """Result of one detection run plus per-stage counts for reporting."""

    video_path: str
    duration_seconds: float
    chapters: list[SceneCandidate]
    stage_counts: dict[str, int] = field(default_factory=dict)
    used_fallback: bool = False
    fallback_reason: str | None = None
