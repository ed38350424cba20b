from __future__ import annotations

from pathlib import Path

import pytest

import vidsheet.sampling.strategy as strategy
from vidsheet.models import SceneChange, VideoInfo
from vidsheet.sampling.strategy import SelectionStrategy, select_sample_timestamps

INFO = VideoInfo(duration_seconds=100.0, width=1280, height=720)


def test_uniform_strategy_never_runs_scene_detection(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        strategy,
        "detect_scenes",
        lambda *_args, **_kwargs: (_ for _ in ()).throw(AssertionError("detection should not run")),
    )

    selected = select_sample_timestamps(SelectionStrategy.UNIFORM, Path("clip.mp4"), INFO, 5)

    assert selected == pytest.approx([11.6, 30.8, 50.0, 69.2, 88.4])


def test_scene_aware_strategy_uses_detected_scenes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(strategy, "detect_scenes", lambda *_args, **_kwargs: [SceneChange(50.0)])

    selected = select_sample_timestamps(SelectionStrategy.SCENE_AWARE, Path("clip.mp4"), INFO, 2)

    assert selected == pytest.approx([17.5, 67.5])


def test_scene_aware_strategy_falls_back_to_uniform(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*_args: object, **_kwargs: object) -> list[SceneChange]:
        raise RuntimeError("ffmpeg scene detection failed: boom")

    monkeypatch.setattr(strategy, "detect_scenes", _fail)

    selected = select_sample_timestamps(SelectionStrategy.SCENE_AWARE, Path("clip.mp4"), INFO, 5)

    assert selected == pytest.approx([11.6, 30.8, 50.0, 69.2, 88.4])


def test_scene_aware_strategy_reraises_without_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*_args: object, **_kwargs: object) -> list[SceneChange]:
        raise ValueError("Unparsable scene timestamp")

    monkeypatch.setattr(strategy, "detect_scenes", _fail)

    with pytest.raises(ValueError, match="Unparsable"):
        select_sample_timestamps(
            SelectionStrategy.SCENE_AWARE,
            Path("clip.mp4"),
            INFO,
            5,
            fallback_to_uniform=False,
        )
