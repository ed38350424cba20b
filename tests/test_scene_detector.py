from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeFfmpeg
from vidsheet.features.scene_detector import SceneDetectorConfig, detect_scenes, parse_scdet_output
from vidsheet.models import VideoInfo


def _info(duration: float) -> VideoInfo:
    return VideoInfo(duration_seconds=duration, width=1920, height=1080, frame_rate=30.0)


def test_parse_scdet_output_t_format() -> None:
    output = """
[Parsed_scdet_2 @ 0x7f9b8c] t:12.345 pts_time:12.345
[Parsed_scdet_2 @ 0x7f9b8c] t:25.678 pts_time:25.678
"""
    scenes = parse_scdet_output(output, 100.0)

    assert [scene.timestamp for scene in scenes] == pytest.approx([12.345, 25.678])


def test_parse_scdet_output_scd_time_format() -> None:
    output = """
frame:123 pts:12345 pts_time:12.345
lavfi.scd.time=12.345
frame:456 pts:25678 pts_time:25.678
lavfi.scd.time=25.678
"""
    scenes = parse_scdet_output(output, 100.0)

    assert len(scenes) == 2


def test_parse_scdet_output_reads_metadata_log_line_with_score() -> None:
    output = "[Parsed_scdet_2 @ 0x55] lavfi.scd.score: 45.232, lavfi.scd.time: 8.08\n"

    scenes = parse_scdet_output(output, 100.0)

    assert len(scenes) == 1
    assert scenes[0].timestamp == pytest.approx(8.08)
    assert scenes[0].score == pytest.approx(45.232)


def test_parse_scdet_output_filters_out_of_range() -> None:
    output = """
[scdet] t:0.0 pts_time:0.0
[scdet] t:50.0 pts_time:50.0
[scdet] t:150.0 pts_time:150.0
"""
    scenes = parse_scdet_output(output, 100.0)

    assert [scene.timestamp for scene in scenes] == pytest.approx([50.0])


def test_parse_scdet_output_merges_both_formats_sorted_and_deduplicated() -> None:
    output = """
Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'clip.mp4':
  Duration: 00:01:40.00, start: 0.000000, bitrate: 1200 kb/s
[scdet] t:60.0 pts_time:60.0
lavfi.scd.time=20.0
[scdet] t:20.05 pts_time:20.05
lavfi.scd.time=40.0
[scdet] t:100.0 pts_time:100.0
"""
    scenes = parse_scdet_output(output, 100.0)

    assert [scene.timestamp for scene in scenes] == pytest.approx([20.0, 40.0, 60.0])


def test_parse_scdet_output_rejects_malformed_timestamp() -> None:
    with pytest.raises(ValueError, match="Unparsable"):
        parse_scdet_output("[scdet] t:1.2.3 pts_time:1.2\n", 100.0)


def test_config_auto_adjust_by_duration() -> None:
    assert SceneDetectorConfig.auto_adjust(_info(600.0)).analyze_fps == pytest.approx(2.0)
    assert SceneDetectorConfig.auto_adjust(_info(3600.0)).analyze_fps == pytest.approx(2.0)
    assert SceneDetectorConfig.auto_adjust(_info(5400.0)).analyze_fps == pytest.approx(1.0)
    assert SceneDetectorConfig.auto_adjust(_info(7500.0)).analyze_fps == pytest.approx(0.5)

    config = SceneDetectorConfig.auto_adjust(_info(600.0))
    assert config.threshold == pytest.approx(12.0)
    assert config.scale_width == 320


def test_detect_scenes_builds_stripped_single_thread_command(tmp_path: Path, fake_ffmpeg: FakeFfmpeg) -> None:
    fake_ffmpeg.stderr = "[scdet] t:30.0 pts_time:30.0\nlavfi.scd.time=70.0\n"
    video_path = tmp_path / "clip.mp4"

    scenes = detect_scenes(video_path, _info(100.0))

    command = fake_ffmpeg.calls[0]
    assert command[:4] == ["ffmpeg", "-hide_banner", "-i", str(video_path)]
    assert {"-an", "-sn", "-dn"} <= set(command)
    assert command[command.index("-threads") + 1] == "1"
    assert command[command.index("-vf") + 1] == "scale=320:-1,fps=2.0,scdet=s=1:t=12.0"
    assert command[-3:] == ["-f", "null", "-"]
    assert [scene.timestamp for scene in scenes] == pytest.approx([30.0, 70.0])


def test_detect_scenes_raises_on_non_zero_exit(tmp_path: Path, fake_ffmpeg: FakeFfmpeg) -> None:
    fake_ffmpeg.fail_when = lambda command: True

    with pytest.raises(RuntimeError, match="scene detection failed"):
        detect_scenes(tmp_path / "clip.mp4", _info(100.0))
