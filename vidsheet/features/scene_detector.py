from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from vidsheet.extract.ffmpeg import run_ffmpeg, stderr_summary
from vidsheet.models import SceneChange, VideoInfo

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 12.0
DEFAULT_SCALE_WIDTH = 320
DEDUP_TOLERANCE_SECONDS = 0.1

# scdet reports cuts either as "t:12.3" or as "lavfi.scd.time=12.3" depending on the output path
_TIME_TAG = re.compile(r"(?<![\w.])t:\s*([0-9.][^\s,]*)")
_SCD_TIME_TAG = re.compile(r"scd\.time[=:]\s*([0-9.][^\s,]*)")
_SCD_SCORE_TAG = re.compile(r"scd\.score[=:]\s*([0-9.]+)")


@dataclass(slots=True)
class SceneDetectorConfig:
    threshold: float = DEFAULT_THRESHOLD
    analyze_fps: float = 2.0
    scale_width: int = DEFAULT_SCALE_WIDTH

    @classmethod
    def auto_adjust(
        cls,
        video_info: VideoInfo,
        threshold: float = DEFAULT_THRESHOLD,
        scale_width: int = DEFAULT_SCALE_WIDTH,
    ) -> SceneDetectorConfig:
        """Pick a coarser analysis rate for longer videos."""

        duration = video_info.duration_seconds
        if duration > 7200.0:
            analyze_fps = 0.5
        elif duration > 3600.0:
            analyze_fps = 1.0
        else:
            analyze_fps = 2.0
        return cls(threshold=threshold, analyze_fps=analyze_fps, scale_width=scale_width)


def detect_scenes(
    video_path: str | Path,
    video_info: VideoInfo,
    config: SceneDetectorConfig | None = None,
) -> list[SceneChange]:
    """Run ffmpeg's scdet filter over a down-scaled decode and return sorted cut points."""

    config = config or SceneDetectorConfig.auto_adjust(video_info)
    logger.debug(
        "Scene detection settings: threshold=%s analyze_fps=%s scale_width=%s",
        config.threshold,
        config.analyze_fps,
        config.scale_width,
    )

    video_filter = (
        f"scale={config.scale_width}:-1,fps={config.analyze_fps},"
        f"scdet=s=1:t={config.threshold}"
    )
    completed = run_ffmpeg(
        [
            "-hide_banner",
            "-i",
            str(video_path),
            "-an",
            "-sn",
            "-dn",
            "-threads",
            "1",
            "-vf",
            video_filter,
            "-f",
            "null",
            "-",
        ]
    )
    if completed.returncode != 0:
        raise RuntimeError(
            f"ffmpeg scene detection failed for {video_path}: {stderr_summary(completed)}"
        )

    scenes = parse_scdet_output(completed.stderr or "", video_info.duration_seconds)
    logger.debug("Detected %d scene changes in %s", len(scenes), video_path)
    return scenes


def parse_scdet_output(output: str, duration: float) -> list[SceneChange]:
    """Parse scdet diagnostics into in-range, de-duplicated, ascending scene changes."""

    scenes: list[SceneChange] = []
    for line in output.splitlines():
        match = _TIME_TAG.search(line) or _SCD_TIME_TAG.search(line)
        if match is None:
            continue

        raw_value = match.group(1)
        try:
            timestamp = float(raw_value)
        except ValueError as exc:
            raise ValueError(f"Unparsable scene-change timestamp {raw_value!r} in line: {line.strip()}") from exc

        if not 0.0 < timestamp < duration:
            continue

        score_match = _SCD_SCORE_TAG.search(line)
        score = float(score_match.group(1)) if score_match else 1.0
        scenes.append(SceneChange(timestamp=timestamp, score=score))

    scenes.sort(key=lambda scene: scene.timestamp)

    deduplicated: list[SceneChange] = []
    for scene in scenes:
        if deduplicated and scene.timestamp - deduplicated[-1].timestamp < DEDUP_TOLERANCE_SECONDS:
            continue
        deduplicated.append(scene)
    return deduplicated
