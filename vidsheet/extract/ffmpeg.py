from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Sequence

logger = logging.getLogger(__name__)

FFMPEG_BINARY = "ffmpeg"
QUIET_ARGS = ("-hide_banner", "-loglevel", "error")


def run_ffmpeg(args: Sequence[str]) -> subprocess.CompletedProcess[str]:
    """Run ffmpeg with ``args`` and return the completed process without checking it."""

    command = [FFMPEG_BINARY, *args]
    logger.debug("Running %s", shlex.join(command))

    try:
        return subprocess.run(
            command,
            check=False,
            capture_output=True,
            text=True,
            errors="replace",
        )
    except FileNotFoundError as exc:
        raise RuntimeError(
            "ffmpeg executable was not found. Install FFmpeg so ffmpeg is available on PATH."
        ) from exc


def stderr_summary(completed: subprocess.CompletedProcess[str]) -> str:
    stderr = (completed.stderr or "").strip()
    return stderr or f"exit code {completed.returncode}"


def build_scale_pad_filter(width: int, height: int) -> str:
    """Scale into ``width``x``height`` keeping aspect ratio, letterboxed in black."""

    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black"
    )
