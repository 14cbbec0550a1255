from __future__ import annotations

import logging
import math
import shutil
import subprocess
from pathlib import Path

from chaptermark.errors import FatalPreconditionError, MediaProbeError
from chaptermark.ingest.tools import SHARED_LIBRARY_MARKER

logger = logging.getLogger(__name__)


def require_tools(*binaries: str) -> None:
    """Fail fast when any of the external media tools cannot be resolved on PATH."""

    missing = [binary for binary in binaries if shutil.which(binary) is None]
    if missing:
        raise FatalPreconditionError(
            f"Required media tool(s) not found: {', '.join(missing)}. "
            "Install FFmpeg so ffmpeg and ffprobe are available on PATH."
        )


class FfprobeDurationSource:
    """Duration source backed by ``ffprobe -show_entries format=duration``."""

    def __init__(self, ffprobe_binary: str = "ffprobe", timeout_seconds: float | None = None) -> None:
        self.ffprobe_binary = ffprobe_binary
        self.timeout_seconds = timeout_seconds

    def probe(self, video_path: str) -> float:
        return probe_duration(
            video_path,
            ffprobe_binary=self.ffprobe_binary,
            timeout_seconds=self.timeout_seconds,
        )


def probe_duration(
    video_path: str | Path,
    *,
    ffprobe_binary: str = "ffprobe",
    timeout_seconds: float | None = None,
) -> float:
    """Return the container duration in seconds; every later stage depends on it."""

    source_path = Path(video_path).expanduser().resolve()
    if not source_path.exists():
        raise MediaProbeError(f"Video file not found: {source_path}")

    raw_output = _run_ffprobe(source_path, ffprobe_binary=ffprobe_binary, timeout_seconds=timeout_seconds)
    duration = _parse_duration(raw_output)
    logger.info("Probed %s: %.2f seconds", source_path.name, duration)
    return duration


def _run_ffprobe(
    video_path: Path,
    *,
    ffprobe_binary: str = "ffprobe",
    timeout_seconds: float | None = None,
) -> str:
    command = [
        ffprobe_binary,
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(video_path),
    ]

    try:
        completed = subprocess.run(
            command,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except FileNotFoundError as exc:
        raise MediaProbeError(
            "ffprobe executable was not found. Install FFmpeg so ffprobe is available on PATH."
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise MediaProbeError(f"ffprobe timed out after {timeout_seconds}s while probing {video_path}.") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        if SHARED_LIBRARY_MARKER in stderr:
            raise MediaProbeError(
                "ffprobe is installed but failed to start because required shared libraries are missing. "
                f"ffprobe stderr: {stderr}"
            ) from exc
        details = f" ffprobe stderr: {stderr}" if stderr else ""
        raise MediaProbeError(f"ffprobe failed while probing media file: {video_path}.{details}") from exc

    return completed.stdout


def _parse_duration(raw_output: str) -> float:
    text = (raw_output or "").strip()
    try:
        duration = float(text.splitlines()[0]) if text else float("nan")
    except ValueError as exc:
        raise MediaProbeError(f"ffprobe returned an unparsable duration: {text!r}") from exc

    if not math.isfinite(duration) or duration <= 0:
        raise MediaProbeError(f"ffprobe returned an invalid duration: {text!r}")
    return duration
