from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path

from chaptermark.errors import DetectionCancelled, DetectorSoftFailure

logger = logging.getLogger(__name__)

SHARED_LIBRARY_MARKER = "error while loading shared libraries"


class FilterPassGroup:
    """Live ffmpeg children of one detection run, so an interrupted run can stop them.

    Once ``cancel`` is called, running children are killed and later passes
    raise ``DetectionCancelled`` instead of starting.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processes: set[subprocess.Popen[str]] = set()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            processes = list(self._processes)
        for process in processes:
            logger.debug("Killing ffmpeg pass pid=%s", process.pid)
            process.kill()

    def register(self, process: subprocess.Popen[str]) -> None:
        with self._lock:
            self._processes.add(process)
            cancelled = self._cancelled.is_set()
        if cancelled:
            process.kill()

    def unregister(self, process: subprocess.Popen[str]) -> None:
        with self._lock:
            self._processes.discard(process)


def run_filter_pass(
    video_path: str | Path,
    *,
    filter_flag: str,
    filter_graph: str,
    label: str,
    ffmpeg_binary: str = "ffmpeg",
    timeout_seconds: float | None = None,
    group: FilterPassGroup | None = None,
) -> str:
    """Run one ffmpeg analysis pass into the null muxer and return its combined log text.

    Filters such as ``metadata=print`` write to stdout while ``silencedetect``
    logs to stderr, so both streams are returned joined.
    """

    stream_flag = "-an" if filter_flag == "-vf" else "-vn"
    command = [
        ffmpeg_binary,
        "-hide_banner",
        "-nostats",
        "-i",
        str(video_path),
        stream_flag,
        filter_flag,
        filter_graph,
        "-f",
        "null",
        "-",
    ]
    if group is not None and group.cancelled:
        raise DetectionCancelled(f"{label} was cancelled before it started.")
    logger.debug("Running %s: %s", label, " ".join(command))

    try:
        process = subprocess.Popen(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except FileNotFoundError as exc:
        raise DetectorSoftFailure(
            f"{ffmpeg_binary} executable was not found while running {label}."
        ) from exc

    with process:
        if group is not None:
            group.register(process)
        try:
            stdout, stderr = process.communicate(timeout=timeout_seconds)
        except subprocess.TimeoutExpired as exc:
            process.kill()
            process.communicate()
            raise DetectorSoftFailure(f"{label} timed out after {timeout_seconds}s.") from exc
        except BaseException:
            process.kill()
            raise
        finally:
            if group is not None:
                group.unregister(process)

    if group is not None and group.cancelled:
        raise DetectionCancelled(f"{label} was cancelled.")
    if process.returncode != 0:
        raise DetectorSoftFailure(f"{label} failed.{_stderr_details(stderr)}")

    return "\n".join(part for part in (stdout, stderr) if part)


def _stderr_details(stderr: str | None, max_lines: int = 5) -> str:
    lines = [line for line in (stderr or "").strip().splitlines() if line.strip()]
    if not lines:
        return ""
    return " ffmpeg stderr: " + " | ".join(lines[-max_lines:])
