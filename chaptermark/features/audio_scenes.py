from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from chaptermark.errors import DetectorSoftFailure
from chaptermark.ingest.tools import FilterPassGroup, run_filter_pass
from chaptermark.models import SceneCandidate

logger = logging.getLogger(__name__)

_SILENCE_END_RE = re.compile(
    r"silence_end:\s*(?P<t>[-0-9.]+)(?:\s*\|\s*silence_duration:\s*(?P<d>[-0-9.]+))?"
)

MAX_SILENCE_SCORE = 0.9
SILENCE_SCORE_DIVISOR = 5.0
MIN_SILENCE_SECONDS = 0.5

SPEECH_PAUSE_INTERVAL_SECONDS = 90.0
SPEECH_PAUSE_MARGIN_SECONDS = 30.0
SPEECH_PAUSE_SCORE = 0.4


@dataclass(frozen=True, slots=True)
class SilencePass:
    noise_floor: str
    base_score: float


LENIENT_PASS = SilencePass(noise_floor="-30dB", base_score=0.5)
STRICT_PASS = SilencePass(noise_floor="-20dB", base_score=0.75)


class FfmpegAudioSource:
    """Silence- and pause-based candidates from ffmpeg audio filters.

    The lenient pass is required; when it fails the whole detector fails with
    ``DetectorSoftFailure``. The strict pass and the speech-pause estimate only
    add candidates when they succeed.
    """

    def __init__(
        self,
        ffmpeg_binary: str = "ffmpeg",
        timeout_seconds: float | None = None,
        group: FilterPassGroup | None = None,
    ) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout_seconds = timeout_seconds
        self.group = group

    def detect(self, video_path: str, duration: float) -> list[SceneCandidate]:
        candidates = self.detect_silence(video_path, LENIENT_PASS, duration)

        try:
            candidates.extend(self.detect_silence(video_path, STRICT_PASS, duration))
        except DetectorSoftFailure as exc:
            logger.warning("Strict silence pass failed; keeping lenient pass only: %s", exc)

        try:
            candidates.extend(self.detect_speech_pauses(video_path, duration))
        except DetectorSoftFailure as exc:
            logger.warning("Speech pause estimation failed: %s", exc)

        candidates.sort(key=lambda candidate: candidate.timestamp)
        logger.info("Audio detection found %d candidates", len(candidates))
        return candidates

    def detect_silence(self, video_path: str, silence_pass: SilencePass, duration: float) -> list[SceneCandidate]:
        output = run_filter_pass(
            video_path,
            filter_flag="-af",
            filter_graph=f"silencedetect=noise={silence_pass.noise_floor}:d={MIN_SILENCE_SECONDS}",
            label=f"silence detection at {silence_pass.noise_floor}",
            ffmpeg_binary=self.ffmpeg_binary,
            timeout_seconds=self.timeout_seconds,
            group=self.group,
        )
        return parse_silence_events(output, base_score=silence_pass.base_score, duration=duration)

    def detect_speech_pauses(self, video_path: str, duration: float) -> list[SceneCandidate]:
        # volumedetect reports whole-file statistics only, so its output is not used
        # for placement; the pass still has to succeed for the estimate to be emitted.
        run_filter_pass(
            video_path,
            filter_flag="-af",
            filter_graph="volumedetect",
            label="volume analysis",
            ffmpeg_binary=self.ffmpeg_binary,
            timeout_seconds=self.timeout_seconds,
            group=self.group,
        )
        return estimate_speech_pauses(duration)


def parse_silence_events(output: str, *, base_score: float, duration: float) -> list[SceneCandidate]:
    """Emit one candidate at the end of each detected silence interval.

    Longer silences score higher: ``min(0.9, base + silence_duration / 5)``
    when ffmpeg reports the duration, otherwise the pass base score.
    """

    candidates: list[SceneCandidate] = []
    for line in output.splitlines():
        match = _SILENCE_END_RE.search(line)
        if not match:
            continue

        try:
            timestamp = float(match.group("t"))
        except ValueError:
            continue

        score = base_score
        if match.group("d"):
            try:
                silence_duration = float(match.group("d"))
            except ValueError:
                silence_duration = None
            if silence_duration is not None and silence_duration >= 0:
                score = min(MAX_SILENCE_SCORE, base_score + silence_duration / SILENCE_SCORE_DIVISOR)

        if 0 <= timestamp < duration:
            candidates.append(SceneCandidate(timestamp=timestamp, score=score, origin="silence"))

    return candidates


def estimate_speech_pauses(duration: float) -> list[SceneCandidate]:
    """Fixed-interval stand-in for speech-pause analysis: one point every 90 s."""

    point_count = int(duration // SPEECH_PAUSE_INTERVAL_SECONDS)
    candidates: list[SceneCandidate] = []
    for index in range(1, point_count + 1):
        timestamp = index * SPEECH_PAUSE_INTERVAL_SECONDS
        if SPEECH_PAUSE_MARGIN_SECONDS < timestamp < duration - SPEECH_PAUSE_MARGIN_SECONDS:
            candidates.append(SceneCandidate(timestamp=timestamp, score=SPEECH_PAUSE_SCORE, origin="speech"))
    return candidates
