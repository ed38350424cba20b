from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class VideoInfo:
    """Probe metadata required by the contact-sheet stages."""

    duration_seconds: float
    width: int
    height: int
    frame_rate: float = 30.0


@dataclass(slots=True)
class VideoFile:
    path: Path
    size_bytes: int


@dataclass(slots=True)
class SceneChange:
    """A detected cut point inside a video."""

    timestamp: float
    score: float = 1.0


@dataclass(frozen=True, slots=True)
class ThumbnailTask:
    """One frame to extract; ``index`` is the row-major grid position."""

    video_path: Path
    timestamp: float
    output_path: Path
    index: int


@dataclass(slots=True)
class ThumbnailResult:
    output_path: Path
    index: int
    success: bool
    error_message: str | None = None
    source: str | None = None


@dataclass(slots=True)
class BatchExtractionResult:
    """Per-frame results and counters for one batched extraction run."""

    results: list[ThumbnailResult] = field(default_factory=list)
    successful: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def thumbnail_paths(self) -> list[Path]:
        ordered = sorted(self.results, key=lambda result: result.index)
        return [result.output_path for result in ordered if result.success]


@dataclass(slots=True)
class GenerationResult:
    """Aggregate outcome of a directory run."""

    total_videos: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: int = 0
