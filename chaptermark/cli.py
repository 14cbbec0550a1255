from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, TypeVar

import typer

from chaptermark.config import DetectionConfig, Settings, load_settings
from chaptermark.features.audio_scenes import FfmpegAudioSource
from chaptermark.features.visual_scenes import FfmpegVisualSource
from chaptermark.ingest.probe import probe_duration, require_tools
from chaptermark.logging_config import configure_logging
from chaptermark.models import SceneCandidate
from chaptermark.pipeline_chapter_builder import detect_chapters
from chaptermark.propose.exporter import export_final_outputs, to_chapters

app = typer.Typer(help="Detect chapter timestamps from visual and audio change signals.")
config_app = typer.Typer(help="Configuration commands.")
ingest_app = typer.Typer(help="Ingest commands.")
features_app = typer.Typer(help="Single-detector commands.")

app.add_typer(config_app, name="config")
app.add_typer(ingest_app, name="ingest")
app.add_typer(features_app, name="features")

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_OPTION = typer.Option(
    Path("configs/default.yaml"),
    "--config",
    "-c",
    envvar="CHAPTERMARK_CONFIG",
    help="Path to YAML configuration file.",
)


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def _fail(exc: Exception) -> typer.Exit:
    logger.error("Command failed: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=1)


def _candidates_payload(candidates: list[SceneCandidate]) -> list[dict[str, Any]]:
    return [asdict(candidate) for candidate in candidates]


@config_app.command("show")
def show_config(config_path: Path = CONFIG_OPTION) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@ingest_app.command("probe")
def probe(video_path: str, config_path: Path = CONFIG_OPTION) -> None:
    """Print the container duration reported by ffprobe."""

    settings = _bootstrap(config_path)
    try:
        require_tools(settings.ffmpeg.ffprobe_binary)
        duration = probe_duration(
            video_path,
            ffprobe_binary=settings.ffmpeg.ffprobe_binary,
            timeout_seconds=settings.ffmpeg.timeout_seconds,
        )
    except (RuntimeError, ValueError) as exc:
        raise _fail(exc) from exc

    typer.echo(json.dumps({"video_path": video_path, "duration_seconds": duration}, indent=2))


@features_app.command("visual")
def visual(
    video_path: str,
    config_path: Path = CONFIG_OPTION,
    threshold: float | None = typer.Option(None, help="Scene-change threshold (0.1 to 1.0)."),
) -> None:
    """Run only the visual scene-change detector and print its candidates."""

    settings = _bootstrap(config_path)
    try:
        config = _detection_config(settings, threshold=threshold)
        duration = _probe_for_features(settings, video_path)
        source = FfmpegVisualSource(
            ffmpeg_binary=settings.ffmpeg.ffmpeg_binary,
            timeout_seconds=settings.ffmpeg.timeout_seconds,
        )
        candidates = source.detect(video_path, config.threshold, duration)
    except (RuntimeError, ValueError) as exc:
        raise _fail(exc) from exc

    typer.echo(json.dumps({"duration_seconds": duration, "candidates": _candidates_payload(candidates)}, indent=2))


@features_app.command("audio")
def audio(video_path: str, config_path: Path = CONFIG_OPTION) -> None:
    """Run only the silence and speech-pause detectors and print their candidates."""

    settings = _bootstrap(config_path)
    try:
        duration = _probe_for_features(settings, video_path)
        source = FfmpegAudioSource(
            ffmpeg_binary=settings.ffmpeg.ffmpeg_binary,
            timeout_seconds=settings.ffmpeg.timeout_seconds,
        )
        candidates = source.detect(video_path, duration)
    except (RuntimeError, ValueError) as exc:
        raise _fail(exc) from exc

    typer.echo(json.dumps({"duration_seconds": duration, "candidates": _candidates_payload(candidates)}, indent=2))


@app.command("run")
def run_pipeline(
    video_path: str,
    config_path: Path = CONFIG_OPTION,
    threshold: float | None = typer.Option(None, "--threshold", "-t", help="Scene-change threshold (0.1 to 1.0)."),
    min_gap: float | None = typer.Option(None, "--min-gap", "-g", help="Minimum gap between chapters in seconds."),
    min_duration: float | None = typer.Option(
        None, "--min-duration", "-d", help="Ignore candidates before this many seconds."
    ),
    max_scenes: int | None = typer.Option(None, "--max-scenes", "-m", help="Maximum chapter count (0 for unlimited)."),
    seed: int | None = typer.Option(None, help="Seed for fallback chapter jitter."),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Directory for chapter outputs."),
    basename: str | None = typer.Option(None, help="Base filename for exported artifacts."),
) -> None:
    """Detect chapters for one video and export JSON, CSV and description text."""

    settings = _bootstrap(config_path)
    total_steps = 2

    try:
        config = _detection_config(
            settings,
            threshold=threshold,
            min_gap=min_gap,
            min_duration=min_duration,
            max_scenes=max_scenes,
            seed=seed,
        )
        run = _run_with_progress(
            1,
            total_steps,
            "Detect chapters",
            lambda: detect_chapters(video_path, config, ffmpeg=settings.ffmpeg),
        )
        chapters = to_chapters(run.chapters)
        exported = _run_with_progress(
            2,
            total_steps,
            "Export outputs",
            lambda: export_final_outputs(
                chapters,
                output_dir or settings.output.output_dir,
                basename=basename or settings.output.basename,
            ),
        )
    except (RuntimeError, ValueError) as exc:
        raise _fail(exc) from exc

    typer.echo(
        json.dumps(
            {
                "status": "ok",
                "video_path": video_path,
                "duration_seconds": run.duration_seconds,
                "chapter_count": len(chapters),
                "used_fallback": run.used_fallback,
                "fallback_reason": run.fallback_reason,
                "stage_counts": run.stage_counts,
                "chapters": [asdict(chapter) for chapter in chapters],
                "outputs": {key: str(path) for key, path in exported.items()},
            },
            indent=2,
        )
    )


def _detection_config(settings: Settings, **overrides: Any) -> DetectionConfig:
    values = settings.detection.model_dump(mode="python")
    values.update({key: value for key, value in overrides.items() if value is not None})
    return DetectionConfig.model_validate(values)


def _probe_for_features(settings: Settings, video_path: str) -> float:
    require_tools(settings.ffmpeg.ffmpeg_binary, settings.ffmpeg.ffprobe_binary)
    return probe_duration(
        video_path,
        ffprobe_binary=settings.ffmpeg.ffprobe_binary,
        timeout_seconds=settings.ffmpeg.timeout_seconds,
    )


if __name__ == "__main__":
    app()
