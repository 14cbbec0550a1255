from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from chaptermark.errors import FatalPreconditionError, MediaProbeError
from chaptermark.ingest import probe as probe_module
from chaptermark.ingest.probe import _parse_duration, _run_ffprobe, probe_duration, require_tools


def test_run_ffprobe_wraps_missing_binary_error(tmp_path: Path) -> None:
    video_path = tmp_path / "sample.mp4"
    video_path.write_bytes(b"data")

    def _raise_missing(*args: object, **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError("ffprobe")

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(subprocess, "run", _raise_missing)
        with pytest.raises(MediaProbeError, match="ffprobe executable was not found"):
            _run_ffprobe(video_path)


def test_run_ffprobe_reports_shared_library_issue(tmp_path: Path) -> None:
    video_path = tmp_path / "sample.mp4"
    video_path.write_bytes(b"data")

    command = ["ffprobe", str(video_path)]

    def _raise_process_error(*args: object, **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise subprocess.CalledProcessError(
            returncode=127,
            cmd=command,
            output="",
            stderr=(
                "ffprobe: error while loading shared libraries: "
                "libSvtAv1Enc.so.4: cannot open shared object file: No such file or directory"
            ),
        )

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(subprocess, "run", _raise_process_error)
        with pytest.raises(MediaProbeError, match="failed to start because required shared libraries are missing"):
            _run_ffprobe(video_path)


def test_run_ffprobe_wraps_other_called_process_error(tmp_path: Path) -> None:
    video_path = tmp_path / "sample.mp4"
    video_path.write_bytes(b"data")

    command = ["ffprobe", str(video_path)]

    def _raise_process_error(*args: object, **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise subprocess.CalledProcessError(
            returncode=1,
            cmd=command,
            output="",
            stderr="invalid data found when processing input",
        )

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(subprocess, "run", _raise_process_error)
        with pytest.raises(MediaProbeError, match="ffprobe failed while probing media file"):
            _run_ffprobe(video_path)


def test_run_ffprobe_wraps_timeout(tmp_path: Path) -> None:
    video_path = tmp_path / "sample.mp4"
    video_path.write_bytes(b"data")

    def _raise_timeout(*args: object, **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise subprocess.TimeoutExpired(cmd="ffprobe", timeout=2)

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(subprocess, "run", _raise_timeout)
        with pytest.raises(MediaProbeError, match="timed out"):
            _run_ffprobe(video_path, timeout_seconds=2)


def test_probe_duration_parses_single_numeric_line(tmp_path: Path, monkeypatch) -> None:
    video_path = tmp_path / "sample.mp4"
    video_path.write_bytes(b"data")
    captured: dict[str, object] = {}

    def _fake_run(command, **kwargs):
        captured["command"] = command
        captured["timeout"] = kwargs.get("timeout")
        return subprocess.CompletedProcess(command, 0, stdout="650.250000\n", stderr="")

    monkeypatch.setattr(subprocess, "run", _fake_run)

    assert probe_duration(video_path, timeout_seconds=30) == pytest.approx(650.25)
    assert "format=duration" in captured["command"]
    assert captured["timeout"] == 30


def test_probe_duration_rejects_missing_file(tmp_path: Path) -> None:
    with pytest.raises(MediaProbeError, match="Video file not found"):
        probe_duration(tmp_path / "missing.mp4")


@pytest.mark.parametrize("raw_output", ["", "N/A\n", "abc", "-3.0", "0"])
def test_parse_duration_rejects_unusable_output(raw_output: str) -> None:
    with pytest.raises(MediaProbeError):
        _parse_duration(raw_output)


def test_require_tools_reports_every_missing_binary(monkeypatch) -> None:
    monkeypatch.setattr(probe_module.shutil, "which", lambda name: None if name != "ffmpeg" else "/usr/bin/ffmpeg")

    with pytest.raises(FatalPreconditionError, match="ffprobe"):
        require_tools("ffmpeg", "ffprobe")


def test_require_tools_passes_when_all_binaries_resolve(monkeypatch) -> None:
    monkeypatch.setattr(probe_module.shutil, "which", lambda name: f"/usr/bin/{name}")

    require_tools("ffmpeg", "ffprobe")
