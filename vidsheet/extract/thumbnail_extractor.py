from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from vidsheet.extract.ffmpeg import QUIET_ARGS, build_scale_pad_filter, run_ffmpeg, stderr_summary
from vidsheet.models import ThumbnailResult, ThumbnailTask

logger = logging.getLogger(__name__)

THUMBNAIL_WIDTH = 320
THUMBNAIL_HEIGHT = 180
SEEK_MARGIN_SECONDS = 2.0
BATCH_SIZE = 18
CANCELLED_MESSAGE = "cancelled"


@dataclass(frozen=True, slots=True)
class ExtractorConfig:
    width: int = THUMBNAIL_WIDTH
    height: int = THUMBNAIL_HEIGHT
    quality: int = 2
    seek_margin_seconds: float = SEEK_MARGIN_SECONDS
    batch_size: int = BATCH_SIZE
    placeholder_color: str = "black"


@dataclass(frozen=True, slots=True)
class ExtractionStrategy:
    """A named way of producing one frame; ``run`` raises ``RuntimeError`` on failure."""

    name: str
    run: Callable[[ThumbnailTask, ExtractorConfig], None]

    def __call__(self, task: ThumbnailTask, config: ExtractorConfig) -> None:
        self.run(task, config)


def create_thumbnail_tasks(
    video_path: str | Path,
    timestamps: Sequence[float],
    output_dir: str | Path,
) -> list[ThumbnailTask]:
    """Create one task per timestamp, numbered in grid order."""

    return [
        ThumbnailTask(
            video_path=Path(video_path),
            timestamp=timestamp,
            output_path=Path(output_dir) / thumbnail_filename(index),
            index=index,
        )
        for index, timestamp in enumerate(timestamps)
    ]


def thumbnail_filename(index: int) -> str:
    return f"thumb_{index:03d}.jpg"


def build_seek_args(timestamp: float, seek_margin: float = SEEK_MARGIN_SECONDS) -> tuple[list[str], list[str]]:
    """Split a seek into a coarse pre-input offset and a fine post-input delta."""

    coarse = max(timestamp - seek_margin, 0.0)
    fine = timestamp - coarse
    pre_input = ["-ss", f"{coarse:.3f}"] if coarse > 0 else []
    post_input = ["-ss", f"{fine:.3f}"] if fine > 0 else []
    return pre_input, post_input


def _extract_with_two_stage_seek(task: ThumbnailTask, config: ExtractorConfig) -> None:
    pre_input, post_input = build_seek_args(task.timestamp, config.seek_margin_seconds)
    logger.debug(
        "Extracting thumbnail %d at %.2fs (seek %s + %s)",
        task.index,
        task.timestamp,
        pre_input[1] if pre_input else "0",
        post_input[1] if post_input else "0",
    )

    completed = run_ffmpeg(
        [
            *QUIET_ARGS,
            *pre_input,
            "-i",
            str(task.video_path),
            *post_input,
            "-frames:v",
            "1",
            "-an",
            "-sn",
            "-dn",
            "-threads",
            "1",
            "-vf",
            build_scale_pad_filter(config.width, config.height),
            "-q:v",
            str(config.quality),
            "-y",
            str(task.output_path),
        ]
    )
    if completed.returncode != 0:
        raise RuntimeError(f"ffmpeg thumbnail extraction failed: {stderr_summary(completed)}")
    if not task.output_path.exists():
        raise RuntimeError(f"Thumbnail was not created: {task.output_path}")


def _write_placeholder_frame(task: ThumbnailTask, config: ExtractorConfig) -> None:
    completed = run_ffmpeg(
        [
            *QUIET_ARGS,
            "-f",
            "lavfi",
            "-i",
            f"color=c={config.placeholder_color}:s={config.width}x{config.height}:d=1",
            "-frames:v",
            "1",
            "-q:v",
            str(config.quality),
            "-y",
            str(task.output_path),
        ]
    )
    if completed.returncode != 0:
        raise RuntimeError(f"ffmpeg placeholder generation failed: {stderr_summary(completed)}")
    if not task.output_path.exists():
        raise RuntimeError(f"Placeholder was not created: {task.output_path}")


TWO_STAGE_SEEK = ExtractionStrategy("seek", _extract_with_two_stage_seek)
PLACEHOLDER = ExtractionStrategy("placeholder", _write_placeholder_frame)

SEEK_ONLY: tuple[ExtractionStrategy, ...] = (TWO_STAGE_SEEK,)
SEEK_THEN_PLACEHOLDER: tuple[ExtractionStrategy, ...] = (TWO_STAGE_SEEK, PLACEHOLDER)


def extract_with_fallback(
    task: ThumbnailTask,
    config: ExtractorConfig | None = None,
    chain: Sequence[ExtractionStrategy] = SEEK_ONLY,
) -> ThumbnailResult:
    """Try each strategy in order and stop at the first one that produces the frame."""

    config = config or ExtractorConfig()
    errors: list[str] = []
    for strategy in chain:
        try:
            strategy(task, config)
        except RuntimeError as exc:
            errors.append(f"{strategy.name}: {exc}")
            if len(errors) < len(chain):
                logger.warning("Thumbnail %d %s failed, trying next fallback: %s", task.index, strategy.name, exc)
            continue
        return ThumbnailResult(
            output_path=task.output_path,
            index=task.index,
            success=True,
            source=strategy.name,
        )

    return ThumbnailResult(
        output_path=task.output_path,
        index=task.index,
        success=False,
        error_message="; ".join(errors) or "no extraction strategy configured",
    )


def extract_thumbnail(task: ThumbnailTask, config: ExtractorConfig | None = None) -> ThumbnailResult:
    """Extract one frame with a two-stage seek; failures are returned, never raised."""

    return extract_with_fallback(task, config, SEEK_ONLY)


def cancelled_result(task: ThumbnailTask) -> ThumbnailResult:
    return ThumbnailResult(
        output_path=task.output_path,
        index=task.index,
        success=False,
        error_message=CANCELLED_MESSAGE,
    )


def extract_thumbnails_parallel(
    tasks: Sequence[ThumbnailTask],
    shutdown_signal: threading.Event,
    config: ExtractorConfig | None = None,
    chain: Sequence[ExtractionStrategy] = SEEK_ONLY,
    max_workers: int | None = None,
) -> list[ThumbnailResult]:
    """Extract all tasks on a thread pool; results arrive in completion order."""

    if not tasks:
        return []

    config = config or ExtractorConfig()
    workers = max_workers or os.cpu_count() or 1

    def _run(task: ThumbnailTask) -> ThumbnailResult:
        if shutdown_signal.is_set():
            return cancelled_result(task)

        result = extract_with_fallback(task, config, chain)
        if not result.success:
            logger.error("Thumbnail extraction failed [%d]: %s", task.index, result.error_message)
        return result

    results: list[ThumbnailResult] = []
    with ThreadPoolExecutor(max_workers=min(workers, len(tasks))) as executor:
        futures = [executor.submit(_run, task) for task in tasks]
        for future in as_completed(futures):
            results.append(future.result())
    return results
