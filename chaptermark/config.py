from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "CHAPTERMARK_"


class DetectionConfig(BaseModel):
    """Tunable detection parameters, fixed for the lifetime of one run."""

    model_config = ConfigDict(frozen=True)

    threshold: float = Field(default=0.3, ge=0.1, le=1.0)
    min_gap: float = Field(default=5.0, ge=0.0)
    min_duration: float = Field(default=0.0, ge=0.0)
    max_scenes: int = Field(default=0, ge=0)
    seed: int | None = None


class FfmpegSettings(BaseModel):
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    timeout_seconds: float = Field(default=3600, gt=0)


class OutputSettings(BaseModel):
    output_dir: Path = Path("data/outputs")
    basename: str = "chapters"


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    ffmpeg: FfmpegSettings = Field(default_factory=FfmpegSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides.

    A missing config file is not an error; built-in defaults apply and
    environment overrides are still honoured.
    """

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config: dict[str, Any] = {}
    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    if existing_value is None and raw_value.lower() in {"", "none", "null"}:
        return None
    return raw_value
