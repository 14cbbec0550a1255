from __future__ import annotations

import numpy as np

from chaptermark.models import SceneCandidate
from chaptermark.selection.targeting import ideal_chapter_count

JITTER_FRACTION = 0.1
END_MARGIN_SECONDS = 10.0
FALLBACK_SCORE = 0.5


def generate_fallback_chapters(
    duration: float,
    rng: np.random.Generator,
    max_count: int = 0,
) -> list[SceneCandidate]:
    """Evenly spaced synthetic chapters with a small random offset on each boundary.

    Entry 0 is always exactly 0.0. Each later boundary moves by at most
    ``JITTER_FRACTION / 2`` of the spacing and stays strictly below
    ``duration - 10``; boundaries that would not be strictly increasing are
    dropped.
    """

    count = ideal_chapter_count(duration)
    if max_count > 0:
        count = min(count, max_count)

    chapters = [SceneCandidate(timestamp=0.0, score=1.0, origin="fallback")]
    if duration <= 0 or count <= 1:
        return chapters

    spacing = duration / count
    offsets = spacing * JITTER_FRACTION * (rng.random(count - 1) - 0.5)
    latest_allowed = float(np.nextafter(duration - END_MARGIN_SECONDS, 0.0))

    for index, offset in enumerate(offsets, start=1):
        boundary = index * spacing
        timestamp = boundary + float(offset)
        if timestamp <= 0:
            timestamp = boundary
        timestamp = min(timestamp, latest_allowed)
        if timestamp <= chapters[-1].timestamp:
            continue
        chapters.append(SceneCandidate(timestamp=timestamp, score=FALLBACK_SCORE, origin="fallback"))

    return chapters
