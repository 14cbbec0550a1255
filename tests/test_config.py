from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from chaptermark.config import DetectionConfig, load_settings


def test_load_settings_reads_yaml_sections(tmp_path: Path) -> None:
    config_path = tmp_path / "chaptermark.yaml"
    config_path.write_text(
        "detection:\n  threshold: 0.4\n  min_gap: 12\nffmpeg:\n  timeout_seconds: 90\n",
        encoding="utf-8",
    )

    settings = load_settings(config_path)

    assert settings.detection.threshold == pytest.approx(0.4)
    assert settings.detection.min_gap == pytest.approx(12.0)
    assert settings.detection.max_scenes == 0
    assert settings.ffmpeg.timeout_seconds == pytest.approx(90)


def test_load_settings_applies_environment_overrides(tmp_path: Path, monkeypatch) -> None:
    config_path = tmp_path / "chaptermark.yaml"
    config_path.write_text("detection:\n  max_scenes: 2\n", encoding="utf-8")
    monkeypatch.setenv("CHAPTERMARK_DETECTION__MAX_SCENES", "6")
    monkeypatch.setenv("CHAPTERMARK_DETECTION__SEED", "42")
    monkeypatch.setenv("CHAPTERMARK_OUTPUT__OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("CHAPTERMARK_UNKNOWN__FIELD", "ignored")

    settings = load_settings(config_path)

    assert settings.detection.max_scenes == 6
    assert settings.detection.seed == 42
    assert settings.output.output_dir == tmp_path / "out"


def test_load_settings_falls_back_to_defaults_without_file(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "missing.yaml")

    assert settings.detection == DetectionConfig()
    assert settings.ffmpeg.ffmpeg_binary == "ffmpeg"
    assert settings.logging.level == "INFO"


@pytest.mark.parametrize(
    "overrides",
    [{"threshold": 0.05}, {"threshold": 1.5}, {"min_gap": -1}, {"min_duration": -0.5}, {"max_scenes": -2}],
)
def test_detection_config_rejects_out_of_range_values(overrides: dict[str, float]) -> None:
    with pytest.raises(ValidationError):
        DetectionConfig(**overrides)


def test_detection_config_is_immutable() -> None:
    config = DetectionConfig()

    with pytest.raises(ValidationError):
        config.threshold = 0.5  # type: ignore[misc]
