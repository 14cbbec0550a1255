from __future__ import annotations

import logging

from chaptermark.models import SceneCandidate

logger = logging.getLogger(__name__)

ZERO_CHAPTER_SECONDS = 1.0
OVERSUPPLY_FACTOR = 2


def ideal_chapter_count(duration: float) -> int:
    """Duration-appropriate chapter count: 3 / 5 / 8, then 10 plus one per half hour."""

    if duration < 300:
        return 3
    if duration < 900:
        return 5
    if duration < 1800:
        return 8
    return 10 + int(duration // 1800)


def filter_min_duration(candidates: list[SceneCandidate], min_duration: float) -> list[SceneCandidate]:
    return [candidate for candidate in candidates if candidate.timestamp >= min_duration]


def refine_candidates(
    candidates: list[SceneCandidate],
    duration: float,
    min_duration: float,
) -> list[SceneCandidate]:
    """Drop early candidates, then thin the list when it is more than twice the ideal count."""

    filtered = filter_min_duration(candidates, min_duration)
    ideal = ideal_chapter_count(duration)
    if len(filtered) > ideal * OVERSUPPLY_FACTOR:
        logger.info("Selecting %d representatives from %d candidates", ideal, len(filtered))
        return select_representative(filtered, ideal, duration)
    return filtered


def select_representative(
    candidates: list[SceneCandidate],
    desired_count: int,
    duration: float,
) -> list[SceneCandidate]:
    """Pick at most one candidate per equal-width segment of the timeline.

    A leading candidate inside the first second is kept as the zero-chapter and
    takes one slot. Within a segment the winner maximizes
    ``score * (1 - distance_from_midpoint / segment_width / 2)``; empty segments
    contribute nothing, so the result can be shorter than ``desired_count``.
    """

    if len(candidates) <= desired_count:
        return candidates

    remaining = list(candidates)
    result: list[SceneCandidate] = []
    if remaining and remaining[0].timestamp < ZERO_CHAPTER_SECONDS:
        result.append(remaining.pop(0))
        desired_count -= 1

    if desired_count <= 0 or duration <= 0:
        return result

    segment_width = duration / desired_count
    segments: list[list[SceneCandidate]] = [[] for _ in range(desired_count)]
    for candidate in remaining:
        index = min(max(int(candidate.timestamp / segment_width), 0), desired_count - 1)
        segments[index].append(candidate)

    for index, segment in enumerate(segments):
        if not segment:
            continue
        midpoint = index * segment_width + segment_width / 2
        result.append(max(segment, key=lambda candidate: _positional_score(candidate, midpoint, segment_width)))

    return sorted(result, key=lambda candidate: candidate.timestamp)


def _positional_score(candidate: SceneCandidate, midpoint: float, segment_width: float) -> float:
    normalized_distance = abs(candidate.timestamp - midpoint) / segment_width
    return candidate.score * (1 - normalized_distance / 2)
