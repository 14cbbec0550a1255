from __future__ import annotations

from typing import Protocol

from chaptermark.models import SceneCandidate


class DurationSource(Protocol):
    def probe(self, video_path: str) -> float: ...


class VisualSceneSource(Protocol):
    def detect(self, video_path: str, threshold: float, duration: float) -> list[SceneCandidate]: ...


class AudioSceneSource(Protocol):
    def detect(self, video_path: str, duration: float) -> list[SceneCandidate]: ...
