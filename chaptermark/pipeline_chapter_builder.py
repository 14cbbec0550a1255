from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import numpy as np

from chaptermark.config import DetectionConfig, FfmpegSettings
from chaptermark.errors import DetectorSoftFailure
from chaptermark.features.audio_scenes import FfmpegAudioSource
from chaptermark.features.sources import AudioSceneSource, DurationSource, VisualSceneSource
from chaptermark.features.visual_scenes import FfmpegVisualSource
from chaptermark.ingest.probe import FfprobeDurationSource, require_tools
from chaptermark.ingest.tools import FilterPassGroup
from chaptermark.models import ChapterRun, SceneCandidate
from chaptermark.selection.fallback import generate_fallback_chapters
from chaptermark.selection.merge import merge_candidates
from chaptermark.selection.targeting import ZERO_CHAPTER_SECONDS, refine_candidates, select_representative

logger = logging.getLogger(__name__)

MIN_CHAPTER_COUNT = 3
MIN_COUNT_DURATION_SECONDS = 180.0


def detect_chapters(
    video_path: str,
    config: DetectionConfig,
    *,
    ffmpeg: FfmpegSettings | None = None,
    duration_source: DurationSource | None = None,
    visual_source: VisualSceneSource | None = None,
    audio_source: AudioSceneSource | None = None,
    rng: np.random.Generator | None = None,
) -> ChapterRun:
    """Run probe, concurrent visual/audio detection and chapter selection for one video.

    Only a missing media tool or a failed duration probe abort the run; a
    failing detector contributes no candidates. If the wait for the detectors
    is interrupted, the ffmpeg passes of the default sources are killed before
    the interrupt is re-raised.
    """

    ffmpeg = ffmpeg or FfmpegSettings()
    if duration_source is None or visual_source is None or audio_source is None:
        require_tools(ffmpeg.ffmpeg_binary, ffmpeg.ffprobe_binary)

    duration_source = duration_source or FfprobeDurationSource(
        ffprobe_binary=ffmpeg.ffprobe_binary,
        timeout_seconds=ffmpeg.timeout_seconds,
    )
    passes = FilterPassGroup()
    visual_source = visual_source or FfmpegVisualSource(
        ffmpeg_binary=ffmpeg.ffmpeg_binary,
        timeout_seconds=ffmpeg.timeout_seconds,
        group=passes,
    )
    audio_source = audio_source or FfmpegAudioSource(
        ffmpeg_binary=ffmpeg.ffmpeg_binary,
        timeout_seconds=ffmpeg.timeout_seconds,
        group=passes,
    )

    logger.info(
        "Detecting chapters in %s (threshold=%.2f, min_gap=%.1f, min_duration=%.1f, max_scenes=%d)",
        video_path,
        config.threshold,
        config.min_gap,
        config.min_duration,
        config.max_scenes,
    )
    duration = duration_source.probe(video_path)

    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="chaptermark-detect")
    try:
        visual_future = pool.submit(visual_source.detect, video_path, config.threshold, duration)
        audio_future = pool.submit(audio_source.detect, video_path, duration)
        visual = _soft_result(visual_future.result, "Visual")
        audio = _soft_result(audio_future.result, "Audio")
    except BaseException:
        logger.warning("Chapter detection interrupted; stopping running ffmpeg passes")
        passes.cancel()
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    pool.shutdown()

    return build_chapter_list(
        duration=duration,
        visual=visual,
        audio=audio,
        config=config,
        rng=rng if rng is not None else np.random.default_rng(config.seed),
        video_path=video_path,
    )


def build_chapter_list(
    *,
    duration: float,
    visual: list[SceneCandidate],
    audio: list[SceneCandidate],
    config: DetectionConfig,
    rng: np.random.Generator,
    video_path: str = "",
) -> ChapterRun:
    """Turn detector output into the final chapter list.

    Stages: merge, filter/select, empty check, zero-chapter, ``max_scenes``
    ceiling, minimum-count enforcement. Deterministic for a fixed ``rng`` seed.

    Fallback chapters are evenly spaced by duration and do not apply
    ``config.min_gap``; a gap longer than the fallback spacing is not honoured
    when ``used_fallback`` is true.
    """

    merged = merge_candidates(visual, audio, config.min_gap)
    selected = refine_candidates(merged, duration, config.min_duration)
    stage_counts = {
        "visual": len(visual),
        "audio": len(audio),
        "merged": len(merged),
        "selected": len(selected),
    }

    chapters = selected
    fallback_reason: str | None = None
    if not chapters:
        logger.warning("No chapter candidates detected; using evenly spaced fallback chapters")
        chapters = generate_fallback_chapters(duration, rng, max_count=config.max_scenes)
        fallback_reason = "no_candidates"

    if chapters[0].timestamp >= ZERO_CHAPTER_SECONDS:
        chapters = [SceneCandidate(timestamp=0.0, score=1.0, origin="fallback"), *chapters]

    if config.max_scenes > 0 and len(chapters) > config.max_scenes:
        # TODO: the first selection pass and this ceiling pass share one algorithm;
        # decide whether a single pass targeting min(ideal, max_scenes) is enough.
        chapters = select_representative(chapters, config.max_scenes, duration)

    if _below_minimum(chapters, duration, config.max_scenes):
        logger.info("Only %d chapters for a %.0fs video; replacing with fallback chapters", len(chapters), duration)
        chapters = generate_fallback_chapters(duration, rng, max_count=config.max_scenes)
        fallback_reason = "below_minimum"

    stage_counts["final"] = len(chapters)
    logger.info("Detected %d chapter points", len(chapters))

    return ChapterRun(
        video_path=video_path,
        duration_seconds=duration,
        chapters=chapters,
        stage_counts=stage_counts,
        used_fallback=fallback_reason is not None,
        fallback_reason=fallback_reason,
    )


def _below_minimum(chapters: list[SceneCandidate], duration: float, max_scenes: int) -> bool:
    if duration <= MIN_COUNT_DURATION_SECONDS:
        return False
    minimum = MIN_CHAPTER_COUNT if max_scenes <= 0 else min(MIN_CHAPTER_COUNT, max_scenes)
    return len(chapters) < minimum


def _soft_result(result: Callable[[], list[SceneCandidate]], label: str) -> list[SceneCandidate]:
    try:
        return list(result())
    except DetectorSoftFailure as exc:
        logger.warning("%s detection failed; continuing without it: %s", label, exc)
        return []
