from __future__ import annotations

from pathlib import Path
from typing import Iterable

from vidsheet.models import VideoFile

SCRATCH_DIR_PREFIX = ".tmp_"


def scan_video_files(
    directory: str | Path,
    extensions: Iterable[str],
    exclude_dirs: Iterable[str] = (),
) -> list[VideoFile]:
    """List video files below ``directory``, smallest first."""

    root = Path(directory).expanduser().resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Video directory not found: {root}")

    wanted = {_normalize_extension(ext) for ext in extensions}
    excluded = set(exclude_dirs)

    videos: list[VideoFile] = []
    for path in root.rglob("*"):
        relative_parts = path.relative_to(root).parts[:-1]
        if any(part.startswith(SCRATCH_DIR_PREFIX) or part in excluded for part in relative_parts):
            continue
        if not path.is_file() or path.suffix.lower() not in wanted:
            continue
        videos.append(VideoFile(path=path, size_bytes=path.stat().st_size))

    return sorted(videos, key=lambda video: (video.size_bytes, str(video.path)))


def _normalize_extension(extension: str) -> str:
    cleaned = extension.strip().lower()
    return cleaned if cleaned.startswith(".") else f".{cleaned}"
