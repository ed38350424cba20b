from __future__ import annotations

import logging
import shutil
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from vidsheet.compose.contact_sheet_merger import create_contact_sheet
from vidsheet.config import Settings
from vidsheet.extract.batch_extractor import extract_thumbnails_batch
from vidsheet.extract.thumbnail_extractor import (
    SEEK_ONLY,
    SEEK_THEN_PLACEHOLDER,
    ExtractorConfig,
    create_thumbnail_tasks,
    extract_thumbnails_parallel,
)
from vidsheet.features.scene_detector import SceneDetectorConfig
from vidsheet.ingest.probe import probe_video
from vidsheet.ingest.scanner import SCRATCH_DIR_PREFIX, scan_video_files
from vidsheet.models import GenerationResult, ThumbnailResult, VideoInfo
from vidsheet.sampling.strategy import SelectionStrategy, select_sample_timestamps

logger = logging.getLogger(__name__)

CONTACT_SHEET_SUFFIX = "_contact_sheet.jpg"

StageCallback = Callable[[str], None]


class GenerationCancelled(Exception):
    """Shutdown was requested before the contact sheet could be merged."""


def generate_contact_sheet(
    video_path: str | Path,
    output_path: str | Path,
    settings: Settings,
    shutdown_signal: threading.Event | None = None,
    on_stage: StageCallback | None = None,
) -> None:
    """Build one contact sheet: probe, sample, extract, then merge.

    Frames are written to a scratch directory next to ``output_path`` that is
    removed afterwards whether or not the run succeeded.
    """

    source_path = Path(video_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Video file not found: {source_path}")

    destination = Path(output_path).expanduser().resolve()
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutdown_signal = shutdown_signal or threading.Event()

    scratch_dir = make_scratch_dir(destination.parent, source_path.stem)
    try:
        _run_stages(source_path, destination, scratch_dir, settings, shutdown_signal, on_stage or _noop)
    finally:
        try:
            shutil.rmtree(scratch_dir)
        except OSError as exc:
            logger.warning("Unable to clean up scratch directory %s: %s", scratch_dir, exc)


def _run_stages(
    video_path: Path,
    output_path: Path,
    scratch_dir: Path,
    settings: Settings,
    shutdown_signal: threading.Event,
    on_stage: StageCallback,
) -> None:
    sheet = settings.contact_sheet
    count = sheet.thumbnail_count
    name = video_path.name

    on_stage("probe")
    video_info = probe_video(video_path)
    logger.debug("%s: %.1fs, %dx%d", name, video_info.duration_seconds, video_info.width, video_info.height)
    if video_info.duration_seconds < sheet.min_duration_seconds:
        raise ValueError(
            f"Video is too short for a contact sheet ({video_info.duration_seconds:.2f}s < "
            f"{sheet.min_duration_seconds:.2f}s)"
        )
    available_frames = video_info.duration_seconds * video_info.frame_rate
    if available_frames < count:
        raise ValueError(
            f"Video has about {available_frames:.0f} frames, fewer than the {count} tiles of the grid"
        )

    on_stage("sample")
    timestamps = select_sample_timestamps(
        SelectionStrategy(settings.sampling.strategy),
        video_path,
        video_info,
        count,
        scene_config=scene_config_from_settings(settings, video_info),
        fallback_to_uniform=settings.sampling.fallback_to_uniform,
    )
    logger.debug("%s: selected %d timestamps", name, len(timestamps))
    if len(timestamps) < count:
        raise ValueError(f"Unable to select enough timestamps: need {count}, got {len(timestamps)}")

    on_stage("extract")
    results = extract_frames(video_path, timestamps, scratch_dir, settings, shutdown_signal, video_info.frame_rate)
    successes = sorted((result for result in results if result.success), key=lambda result: result.index)
    logger.debug("%s: extracted %d/%d thumbnails", name, len(successes), len(results))

    if shutdown_signal.is_set():
        raise GenerationCancelled(f"{name}: cancelled before merge")
    if len(successes) < count:
        raise ValueError(f"Thumbnail extraction failed: need {count}, only {len(successes)} succeeded")

    on_stage("merge")
    create_contact_sheet(
        [result.output_path for result in successes],
        output_path,
        sheet.grid_cols,
        sheet.grid_rows,
        tile_width=sheet.tile_width,
        tile_height=sheet.tile_height,
        quality=sheet.jpeg_quality,
    )
    logger.debug("%s: contact sheet written to %s", name, output_path)


def extract_frames(
    video_path: Path,
    timestamps: list[float],
    scratch_dir: Path,
    settings: Settings,
    shutdown_signal: threading.Event,
    frame_rate: float | None = None,
) -> list[ThumbnailResult]:
    extraction = settings.extraction
    config = extractor_config_from_settings(settings)

    if extraction.mode == "batch":
        return extract_thumbnails_batch(
            video_path, timestamps, scratch_dir, config, shutdown_signal, frame_rate=frame_rate
        ).results

    tasks = create_thumbnail_tasks(video_path, timestamps, scratch_dir)
    chain = SEEK_THEN_PLACEHOLDER if extraction.placeholder_on_failure else SEEK_ONLY
    return extract_thumbnails_parallel(
        tasks,
        shutdown_signal,
        config=config,
        chain=chain,
        max_workers=extraction.max_workers,
    )


def extractor_config_from_settings(settings: Settings) -> ExtractorConfig:
    return ExtractorConfig(
        width=settings.contact_sheet.tile_width,
        height=settings.contact_sheet.tile_height,
        quality=settings.contact_sheet.jpeg_quality,
        seek_margin_seconds=settings.extraction.seek_margin_seconds,
        batch_size=settings.extraction.batch_size,
        placeholder_color=settings.extraction.placeholder_color,
    )


def scene_config_from_settings(settings: Settings, video_info: VideoInfo) -> SceneDetectorConfig:
    detection = settings.scene_detection
    config = SceneDetectorConfig.auto_adjust(
        video_info,
        threshold=detection.threshold,
        scale_width=detection.scale_width,
    )
    if detection.analyze_fps is not None:
        config.analyze_fps = detection.analyze_fps
    return config


def make_scratch_dir(parent: Path, video_stem: str) -> Path:
    """Create a per-run scratch directory that concurrent runs cannot collide on."""

    unique_id = f"{time.time_ns():x}_{threading.get_ident()}"
    scratch_dir = parent / f"{SCRATCH_DIR_PREFIX}{video_stem}_{unique_id}"
    scratch_dir.mkdir(parents=True, exist_ok=False)
    return scratch_dir


def resolve_output_dir(input_dir: Path, settings: Settings) -> Path | None:
    """Directory for the sheets, or ``None`` to write each sheet next to its video."""

    if settings.contact_sheet.output_mode == "same_directory":
        return None
    return input_dir / settings.contact_sheet.output_dir_name


def contact_sheet_output_path(video_path: Path, output_dir: Path | None) -> Path:
    target_dir = output_dir if output_dir is not None else video_path.parent
    return target_dir / f"{video_path.stem}{CONTACT_SHEET_SUFFIX}"


def generate_contact_sheets(
    input_dir: str | Path,
    settings: Settings,
    shutdown_signal: threading.Event | None = None,
    on_video_done: Callable[[Path, str], None] | None = None,
) -> GenerationResult:
    """Generate a contact sheet for every video below ``input_dir``.

    Videos whose sheet already exists are skipped; a failing video is logged
    and counted without stopping the others. Videos interrupted or not yet
    started when ``shutdown_signal`` is set count as cancelled.
    ``on_video_done`` receives the video path and one of ``"ok"``,
    ``"skipped"``, ``"cancelled"`` or ``"failed"``.
    """

    root = Path(input_dir).expanduser().resolve()
    shutdown_signal = shutdown_signal or threading.Event()
    videos = scan_video_files(
        root,
        settings.pipeline.video_extensions,
        exclude_dirs=[settings.contact_sheet.output_dir_name],
    )
    output_dir = resolve_output_dir(root, settings)
    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
    result = GenerationResult(total_videos=len(videos))
    lock = threading.Lock()

    def _record(video_path: Path, status: str) -> None:
        with lock:
            if status == "ok":
                result.successful += 1
            elif status == "skipped":
                result.skipped += 1
            elif status == "cancelled":
                result.cancelled += 1
            else:
                result.failed += 1
        if on_video_done is not None:
            on_video_done(video_path, status)

    def _process(video_path: Path) -> None:
        if shutdown_signal.is_set():
            _record(video_path, "cancelled")
            return

        output_path = contact_sheet_output_path(video_path, output_dir)
        if output_path.exists():
            logger.info("%s: contact sheet already exists, skipping", video_path.name)
            _record(video_path, "skipped")
            return

        try:
            generate_contact_sheet(video_path, output_path, settings, shutdown_signal)
        except GenerationCancelled:
            logger.info("%s: cancelled", video_path.name)
            _record(video_path, "cancelled")
            return
        except (RuntimeError, ValueError, OSError) as exc:
            logger.error("%s: contact sheet generation failed - %s", video_path.name, exc)
            _record(video_path, "failed")
            return
        except Exception:
            logger.exception("%s: unexpected error during contact sheet generation", video_path.name)
            _record(video_path, "failed")
            return

        logger.info("%s: contact sheet created", video_path.name)
        _record(video_path, "ok")

    if not videos:
        return result

    workers = settings.pipeline.max_parallel_videos or None
    with ThreadPoolExecutor(max_workers=workers) as executor:
        for future in [executor.submit(_process, video.path) for video in videos]:
            future.result()

    logger.info(
        "Contact sheet generation finished - succeeded: %d, skipped: %d, cancelled: %d, failed: %d",
        result.successful,
        result.skipped,
        result.cancelled,
        result.failed,
    )
    return result


def _noop(_stage: str) -> None:
    return None
