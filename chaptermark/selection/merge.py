from __future__ import annotations

import math

from chaptermark.models import SceneCandidate


def merge_candidates(
    visual: list[SceneCandidate],
    audio: list[SceneCandidate],
    min_gap: float,
) -> list[SceneCandidate]:
    """Merge visual and audio candidates into one timeline with at least ``min_gap`` spacing.

    When two candidates collide, the later one replaces the previously accepted
    one only if its score is strictly higher. Identical timestamps always
    collide, even with a zero gap. The spacing rule applies to the visual
    list on its own when there are no audio candidates.
    """

    timeline = sorted([*visual, *audio], key=lambda candidate: candidate.timestamp)
    merged: list[SceneCandidate] = []
    last_timestamp = -math.inf

    for candidate in timeline:
        gap = candidate.timestamp - last_timestamp
        if gap >= min_gap and gap > 0:
            merged.append(candidate)
            last_timestamp = candidate.timestamp
        elif merged and candidate.score > merged[-1].score:
            merged[-1] = candidate
            last_timestamp = candidate.timestamp

    return merged
