from __future__ import annotations

import logging

from chaptermark.errors import DetectorSoftFailure
from chaptermark.ingest.tools import FilterPassGroup, run_filter_pass
from chaptermark.models import SceneCandidate

logger = logging.getLogger(__name__)

END_MARGIN_SECONDS = 5.0
SPARSE_EVENT_COUNT = 5
INTERVAL_MIN_DURATION_SECONDS = 300.0
INTERVAL_SECONDS = 30
INTERVAL_MARGIN_SECONDS = 30.0
INTERVAL_SCORE = 0.5
SCENE_SCORE_KEY = "lavfi.scene_score="


class FfmpegVisualSource:
    """Scene-change candidates from ffmpeg's frame-difference ``scene`` score."""

    def __init__(
        self,
        ffmpeg_binary: str = "ffmpeg",
        timeout_seconds: float | None = None,
        group: FilterPassGroup | None = None,
    ) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout_seconds = timeout_seconds
        self.group = group

    def detect(self, video_path: str, threshold: float, duration: float) -> list[SceneCandidate]:
        try:
            scenes = self.detect_by_threshold(video_path, threshold, duration)
        except DetectorSoftFailure as exc:
            logger.warning("Threshold-based scene detection failed: %s", exc)
            scenes = []

        if len(scenes) < SPARSE_EVENT_COUNT and duration > INTERVAL_MIN_DURATION_SECONDS:
            logger.info("Only %d scene changes found; trying interval sampling", len(scenes))
            try:
                interval_scenes = self.detect_by_interval(video_path, duration)
            except DetectorSoftFailure as exc:
                logger.warning("Interval-based scene detection failed: %s", exc)
                interval_scenes = []
            if len(interval_scenes) > len(scenes):
                scenes = interval_scenes

        if scenes:
            logger.info("Visual detection found %d candidates", len(scenes))
        else:
            logger.warning("No visual scene changes detected")
        return scenes

    def detect_by_threshold(self, video_path: str, threshold: float, duration: float) -> list[SceneCandidate]:
        output = run_filter_pass(
            video_path,
            filter_flag="-vf",
            filter_graph=f"select='gt(scene,{threshold})',metadata=print:file=-",
            label="visual scene detection",
            ffmpeg_binary=self.ffmpeg_binary,
            timeout_seconds=self.timeout_seconds,
            group=self.group,
        )
        return parse_scene_events(output, duration)

    def detect_by_interval(self, video_path: str, duration: float) -> list[SceneCandidate]:
        output = run_filter_pass(
            video_path,
            filter_flag="-vf",
            filter_graph=(
                f"select='isnan(prev_selected_t)+gte(t-prev_selected_t,{INTERVAL_SECONDS})',"
                "metadata=print:file=-"
            ),
            label="interval scene sampling",
            ffmpeg_binary=self.ffmpeg_binary,
            timeout_seconds=self.timeout_seconds,
            group=self.group,
        )
        return parse_interval_events(output, duration)


def parse_scene_events(output: str, duration: float) -> list[SceneCandidate]:
    """Parse ``pts_time``/score pairs from ``metadata=print`` output.

    The score is read either from a ``score:`` field on the ``pts_time`` line
    or from the ``lavfi.scene_score=`` line ffmpeg prints right after it.
    Events at t <= 0 or within the last five seconds are dropped.
    """

    events: list[tuple[float, float]] = []
    pending_timestamp: float | None = None

    for line in output.splitlines():
        fields = _fields(line)
        if "pts_time" in fields:
            pending_timestamp = _to_float(fields["pts_time"])
            if pending_timestamp is not None and "score" in fields:
                events.append((pending_timestamp, _to_float(fields["score"]) or 0.0))
                pending_timestamp = None
            continue

        if pending_timestamp is not None and SCENE_SCORE_KEY in line:
            score = _to_float((line.split(SCENE_SCORE_KEY, 1)[1].split() or [""])[0]) or 0.0
            events.append((pending_timestamp, score))
            pending_timestamp = None

    scenes = [
        SceneCandidate(timestamp=timestamp, score=score, origin="visual")
        for timestamp, score in events
        if 0 < timestamp < duration - END_MARGIN_SECONDS
    ]
    logger.debug("Parsed %d scene events (%d kept)", len(events), len(scenes))
    return scenes


def parse_interval_events(output: str, duration: float) -> list[SceneCandidate]:
    scenes: list[SceneCandidate] = []
    for line in output.splitlines():
        timestamp = _to_float(_fields(line).get("pts_time"))
        if timestamp is None:
            continue
        if INTERVAL_MARGIN_SECONDS < timestamp < duration - INTERVAL_MARGIN_SECONDS:
            scenes.append(SceneCandidate(timestamp=timestamp, score=INTERVAL_SCORE, origin="visual"))
    return scenes


def _fields(line: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for token in line.split():
        key, sep, value = token.partition(":")
        if sep and value:
            parsed[key] = value
    return parsed


def _to_float(raw_value: str | None) -> float | None:
    if raw_value in (None, "", "N/A", "nan"):
        return None
    try:
        return float(raw_value)
    except ValueError:
        return None
