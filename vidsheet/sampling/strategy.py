from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from vidsheet.features.scene_detector import SceneDetectorConfig, detect_scenes
from vidsheet.models import VideoInfo
from vidsheet.sampling.timestamp_selector import select_timestamps
from vidsheet.sampling.uniform_selector import select_uniform_timestamps

logger = logging.getLogger(__name__)


class SelectionStrategy(str, Enum):
    SCENE_AWARE = "scene_aware"
    UNIFORM = "uniform"


def select_sample_timestamps(
    strategy: SelectionStrategy,
    video_path: str | Path,
    video_info: VideoInfo,
    count: int,
    *,
    scene_config: SceneDetectorConfig | None = None,
    fallback_to_uniform: bool = True,
) -> list[float]:
    """Select ``count`` sample timestamps using the requested strategy."""

    duration = video_info.duration_seconds
    if strategy is SelectionStrategy.UNIFORM:
        return select_uniform_timestamps(duration, count)

    try:
        scenes = detect_scenes(video_path, video_info, scene_config)
    except (RuntimeError, ValueError) as exc:
        if not fallback_to_uniform:
            raise
        logger.warning("Scene detection failed for %s; using uniform sampling: %s", video_path, exc)
        return select_uniform_timestamps(duration, count)

    return select_timestamps(duration, scenes, count)
