from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Sequence

from vidsheet.extract.ffmpeg import QUIET_ARGS, build_scale_pad_filter, run_ffmpeg, stderr_summary
from vidsheet.extract.thumbnail_extractor import (
    SEEK_THEN_PLACEHOLDER,
    ExtractorConfig,
    cancelled_result,
    create_thumbnail_tasks,
    extract_with_fallback,
)
from vidsheet.models import BatchExtractionResult, ThumbnailResult, ThumbnailTask

logger = logging.getLogger(__name__)

SELECT_WINDOW_SECONDS = 0.05


def extract_thumbnails_batch(
    video_path: str | Path,
    timestamps: Sequence[float],
    output_dir: str | Path,
    config: ExtractorConfig | None = None,
    shutdown_signal: threading.Event | None = None,
    frame_rate: float | None = None,
) -> BatchExtractionResult:
    """Extract many thumbnails with one ffmpeg call per chunk of timestamps.

    Each chunk uses a ``select`` filter that is the OR of small time windows
    around the targets, at most one frame interval wide when ``frame_rate``
    is known. Numbered outputs map to timestamps by position, so a chunk is
    only trusted when it produced exactly one frame per timestamp. A failed
    or miscounted chunk is extracted timestamp by timestamp; a frame whose
    rename fails is retried on its own.
    """

    config = config or ExtractorConfig()
    shutdown_signal = shutdown_signal or threading.Event()
    outcome = BatchExtractionResult()
    if not timestamps:
        return outcome

    batch_size = max(config.batch_size, 1)
    window = select_window_seconds(frame_rate)
    tasks = create_thumbnail_tasks(video_path, timestamps, output_dir)
    logger.debug("Batch extracting %d thumbnails from %s", len(tasks), video_path)

    for chunk_index, chunk_start in enumerate(range(0, len(tasks), batch_size)):
        chunk = tasks[chunk_start : chunk_start + batch_size]
        if shutdown_signal.is_set():
            logger.warning("Shutdown requested; skipping remaining %d thumbnails", len(tasks) - chunk_start)
            for task in tasks[chunk_start:]:
                outcome.results.append(cancelled_result(task))
                outcome.skipped += 1
            break

        for result in _extract_chunk(chunk, chunk_index, Path(output_dir), config, window):
            outcome.results.append(result)
            if result.success:
                outcome.successful += 1
            else:
                outcome.failed += 1

    logger.info(
        "Batch extraction finished: %d succeeded, %d failed, %d skipped",
        outcome.successful,
        outcome.failed,
        outcome.skipped,
    )
    return outcome


def build_select_expression(timestamps: Sequence[float], window: float = SELECT_WINDOW_SECONDS) -> str:
    conditions = [
        f"between(t\\,{max(timestamp - window, 0.0):.3f}\\,{timestamp + window:.3f})"
        for timestamp in timestamps
    ]
    return f"select='{'+'.join(conditions)}'"


def select_window_seconds(frame_rate: float | None) -> float:
    """Half-width of a select window: half a frame interval, capped at 50ms."""

    if not frame_rate or frame_rate <= 0:
        return SELECT_WINDOW_SECONDS
    return min(SELECT_WINDOW_SECONDS, 0.5 / frame_rate)


def batch_output_path(output_dir: Path, chunk_index: int, frame_number: int) -> Path:
    return output_dir / f"thumb_{chunk_index:03d}_{frame_number:03d}.jpg"


def _extract_chunk(
    chunk: Sequence[ThumbnailTask],
    chunk_index: int,
    output_dir: Path,
    config: ExtractorConfig,
    window: float = SELECT_WINDOW_SECONDS,
) -> list[ThumbnailResult]:
    video_filter = ",".join(
        [
            build_select_expression([task.timestamp for task in chunk], window),
            build_scale_pad_filter(config.width, config.height),
        ]
    )
    completed = run_ffmpeg(
        [
            *QUIET_ARGS,
            "-i",
            str(chunk[0].video_path),
            "-vf",
            video_filter,
            "-vsync",
            "vfr",
            "-q:v",
            str(config.quality),
            "-y",
            str(output_dir / f"thumb_{chunk_index:03d}_%03d.jpg"),
        ]
    )

    if completed.returncode != 0:
        logger.warning(
            "Batch extraction of chunk %d failed, extracting individually: %s",
            chunk_index,
            stderr_summary(completed),
        )
        return [_extract_individually(task, config) for task in chunk]

    numbered_frames = sorted(output_dir.glob(f"thumb_{chunk_index:03d}_*.jpg"))
    if len(numbered_frames) != len(chunk):
        logger.warning(
            "Batch chunk %d produced %d frames for %d timestamps, extracting individually",
            chunk_index,
            len(numbered_frames),
            len(chunk),
        )
        for frame in numbered_frames:
            frame.unlink(missing_ok=True)
        return [_extract_individually(task, config) for task in chunk]

    results: list[ThumbnailResult] = []
    for offset, task in enumerate(chunk):
        numbered = batch_output_path(output_dir, chunk_index, offset + 1)
        if numbered.exists():
            try:
                numbered.replace(task.output_path)
            except OSError as exc:
                logger.warning("Unable to rename %s -> %s: %s", numbered, task.output_path, exc)

        if task.output_path.exists():
            results.append(ThumbnailResult(output_path=task.output_path, index=task.index, success=True, source="batch"))
        else:
            logger.debug("Frame %d was not renamed from batch output; extracting individually", task.index)
            results.append(_extract_individually(task, config))
    return results


def _extract_individually(task: ThumbnailTask, config: ExtractorConfig) -> ThumbnailResult:
    result = extract_with_fallback(task, config, SEEK_THEN_PLACEHOLDER)
    if not result.success:
        logger.warning("Thumbnail extraction failed [%d]: %s", task.index, result.error_message)
    return result
