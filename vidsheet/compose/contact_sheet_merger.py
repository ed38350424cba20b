from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from vidsheet.extract.ffmpeg import QUIET_ARGS, run_ffmpeg, stderr_summary
from vidsheet.extract.thumbnail_extractor import THUMBNAIL_HEIGHT, THUMBNAIL_WIDTH

logger = logging.getLogger(__name__)

DEFAULT_GRID_COLS = 9
DEFAULT_GRID_ROWS = 6
DEFAULT_THUMBNAIL_COUNT = DEFAULT_GRID_COLS * DEFAULT_GRID_ROWS


def create_contact_sheet(
    thumbnails: Sequence[str | Path],
    output_path: str | Path,
    grid_cols: int = DEFAULT_GRID_COLS,
    grid_rows: int = DEFAULT_GRID_ROWS,
    tile_width: int = THUMBNAIL_WIDTH,
    tile_height: int = THUMBNAIL_HEIGHT,
    quality: int = 2,
) -> None:
    """Stack the first ``grid_cols * grid_rows`` thumbnails into one row-major grid image."""

    expected_count = grid_cols * grid_rows
    if grid_cols <= 0 or grid_rows <= 0:
        raise ValueError(f"Grid must have at least one cell, got {grid_cols}x{grid_rows}")
    if len(thumbnails) < expected_count:
        raise ValueError(
            f"Not enough thumbnails for a {grid_cols}x{grid_rows} grid: "
            f"need {expected_count}, got {len(thumbnails)}"
        )

    destination = Path(output_path)
    logger.debug("Merging %d thumbnails into %dx%d sheet %s", expected_count, grid_cols, grid_rows, destination)

    args: list[str] = [*QUIET_ARGS]
    for thumbnail in thumbnails[:expected_count]:
        args.extend(["-i", str(thumbnail)])

    if expected_count > 1:
        layout = build_xstack_layout(grid_cols, grid_rows, tile_width, tile_height)
        args.extend(["-filter_complex", f"xstack=inputs={expected_count}:layout={layout}"])

    args.extend(["-frames:v", "1", "-q:v", str(quality), "-y", str(destination)])

    completed = run_ffmpeg(args)
    if completed.returncode != 0:
        raise RuntimeError(f"ffmpeg failed to merge contact sheet: {stderr_summary(completed)}")
    if not destination.exists():
        raise RuntimeError(f"Contact sheet was not created: {destination}")

    logger.debug("Contact sheet written to %s", destination)


def build_xstack_layout(cols: int, rows: int, tile_width: int = THUMBNAIL_WIDTH, tile_height: int = THUMBNAIL_HEIGHT) -> str:
    """Return xstack positions ``x_y`` joined by ``|``, row by row."""

    return "|".join(
        f"{col * tile_width}_{row * tile_height}"
        for row in range(rows)
        for col in range(cols)
    )


def calculate_contact_sheet_size(
    grid_cols: int,
    grid_rows: int,
    tile_width: int = THUMBNAIL_WIDTH,
    tile_height: int = THUMBNAIL_HEIGHT,
) -> tuple[int, int]:
    return grid_cols * tile_width, grid_rows * tile_height
