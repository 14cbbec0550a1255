from __future__ import annotations

from chaptermark.errors import DetectorSoftFailure
from chaptermark.features import visual_scenes
from chaptermark.features.visual_scenes import FfmpegVisualSource, parse_interval_events, parse_scene_events

METADATA_PRINT_OUTPUT = """\
frame:0    pts:90090   pts_time:3.003
lavfi.scene_score=0.412000
frame:1    pts:540540  pts_time:18.018
lavfi.scene_score=0.731000
frame:2    pts:8918910 pts_time:297.5
lavfi.scene_score=0.950000
"""


def test_parse_scene_events_reads_score_from_following_metadata_line() -> None:
    scenes = parse_scene_events(METADATA_PRINT_OUTPUT, duration=300.0)

    # 297.5 falls inside the last five seconds and is dropped.
    assert [(scene.timestamp, scene.score) for scene in scenes] == [(3.003, 0.412), (18.018, 0.731)]
    assert {scene.origin for scene in scenes} == {"visual"}


def test_parse_scene_events_accepts_inline_score_fields() -> None:
    output = "pts_time:0 score:0.9\npts_time:12.5 score:0.33\nnoise line\npts_time:40.0 score:0.6\n"

    scenes = parse_scene_events(output, duration=100.0)

    assert [(scene.timestamp, scene.score) for scene in scenes] == [(12.5, 0.33), (40.0, 0.6)]


def test_parse_interval_events_excludes_first_and_last_thirty_seconds() -> None:
    output = "\n".join(f"frame:{i} pts:{i} pts_time:{t}" for i, t in enumerate([0.0, 30.0, 60.0, 90.0, 120.0, 150.0]))

    scenes = parse_interval_events(output, duration=160.0)

    assert [scene.timestamp for scene in scenes] == [60.0, 90.0, 120.0]
    assert all(scene.score == 0.5 for scene in scenes)


def _interval_output(duration: float) -> str:
    return "\n".join(f"frame:{i} pts:{i} pts_time:{i * 30.0}" for i in range(int(duration // 30) + 1))


def test_detect_switches_to_interval_sampling_for_sparse_long_videos(monkeypatch) -> None:
    calls: list[str] = []

    def _fake_pass(video_path, *, filter_flag, filter_graph, label, **kwargs):
        calls.append(label)
        if "gt(scene" in filter_graph:
            return "pts_time:100.0 score:0.8\n"
        return _interval_output(600.0)

    monkeypatch.setattr(visual_scenes, "run_filter_pass", _fake_pass)

    scenes = FfmpegVisualSource().detect("/tmp/video.mp4", threshold=0.3, duration=600.0)

    assert calls == ["visual scene detection", "interval scene sampling"]
    assert len(scenes) > 1
    assert all(30.0 < scene.timestamp < 570.0 for scene in scenes)


def test_detect_keeps_threshold_result_when_interval_is_not_larger(monkeypatch) -> None:
    def _fake_pass(video_path, *, filter_flag, filter_graph, label, **kwargs):
        if "gt(scene" in filter_graph:
            return "pts_time:100.0 score:0.8\npts_time:200.0 score:0.7\n"
        return "pts_time:60.0\n"

    monkeypatch.setattr(visual_scenes, "run_filter_pass", _fake_pass)

    scenes = FfmpegVisualSource().detect("/tmp/video.mp4", threshold=0.3, duration=400.0)

    assert [scene.timestamp for scene in scenes] == [100.0, 200.0]


def test_detect_skips_interval_sampling_for_short_videos(monkeypatch) -> None:
    calls: list[str] = []

    def _fake_pass(video_path, *, filter_flag, filter_graph, label, **kwargs):
        calls.append(label)
        return "pts_time:20.0 score:0.8\n"

    monkeypatch.setattr(visual_scenes, "run_filter_pass", _fake_pass)

    scenes = FfmpegVisualSource().detect("/tmp/video.mp4", threshold=0.3, duration=240.0)

    assert calls == ["visual scene detection"]
    assert len(scenes) == 1


def test_detect_returns_empty_list_when_tool_fails(monkeypatch) -> None:
    def _failing_pass(*args, **kwargs):
        raise DetectorSoftFailure("visual scene detection failed.")

    monkeypatch.setattr(visual_scenes, "run_filter_pass", _failing_pass)

    assert FfmpegVisualSource().detect("/tmp/video.mp4", threshold=0.3, duration=900.0) == []


def test_threshold_is_embedded_in_select_filter(monkeypatch) -> None:
    captured: dict[str, str] = {}

    def _fake_pass(video_path, *, filter_flag, filter_graph, label, **kwargs):
        captured["filter_graph"] = filter_graph
        return ""

    monkeypatch.setattr(visual_scenes, "run_filter_pass", _fake_pass)

    FfmpegVisualSource().detect_by_threshold("/tmp/video.mp4", threshold=0.45, duration=100.0)

    assert captured["filter_graph"].startswith("select='gt(scene,0.45)'")
    assert "metadata=print" in captured["filter_graph"]
