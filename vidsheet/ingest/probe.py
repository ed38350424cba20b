from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

from vidsheet.models import VideoInfo

DEFAULT_FRAME_RATE = 30.0


def probe_video(video_path: str | Path) -> VideoInfo:
    """Probe duration, dimensions and frame rate of a video via ffprobe."""

    source_path = Path(video_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Video file not found: {source_path}")

    payload = _run_ffprobe(source_path)
    return _video_info_from_payload(source_path, payload)


def _run_ffprobe(video_path: Path) -> dict[str, Any]:
    command = [
        "ffprobe",
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(video_path),
    ]

    try:
        completed = subprocess.run(
            command,
            check=True,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise RuntimeError(
            "ffprobe executable was not found. Install FFmpeg so ffprobe is available on PATH."
        ) from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        if "error while loading shared libraries" in stderr:
            raise RuntimeError(
                "ffprobe is installed but failed to start because required shared libraries are missing. "
                f"ffprobe stderr: {stderr}"
            ) from exc
        details = f" ffprobe stderr: {stderr}" if stderr else ""
        raise RuntimeError(
            f"ffprobe failed to read media file: {video_path}.{details}"
        ) from exc

    try:
        return json.loads(completed.stdout)
    except json.JSONDecodeError as exc:
        raise RuntimeError("ffprobe returned invalid JSON output.") from exc


def _video_info_from_payload(video_path: Path, payload: dict[str, Any]) -> VideoInfo:
    video_stream = next(
        (stream for stream in payload.get("streams", []) if stream.get("codec_type") == "video"),
        None,
    )
    if video_stream is None:
        raise ValueError(f"No video stream found in {video_path}")

    width = _to_int(video_stream.get("width"))
    height = _to_int(video_stream.get("height"))
    if width is None or height is None:
        raise ValueError(f"Unable to read video dimensions for {video_path}")

    format_entry = payload.get("format", {})
    try:
        duration = _to_float(format_entry.get("duration"))
        if duration is None:
            duration = _to_float(video_stream.get("duration"))
    except ValueError as exc:
        raise ValueError(f"Unable to parse video duration for {video_path}") from exc
    if duration is None:
        raise ValueError(f"Unable to read video duration for {video_path}")

    frame_rate = parse_frame_rate(video_stream.get("r_frame_rate") or "")

    return VideoInfo(
        duration_seconds=duration,
        width=width,
        height=height,
        frame_rate=frame_rate if frame_rate is not None else DEFAULT_FRAME_RATE,
    )


def parse_frame_rate(rate: str) -> float | None:
    """Parse ffprobe frame rates such as ``30000/1001`` or ``29.97``."""

    numerator, sep, denominator = rate.partition("/")
    try:
        if sep:
            den = float(denominator)
            if den <= 0:
                return None
            return float(numerator) / den
        return float(rate)
    except ValueError:
        return None


def _to_float(raw_value: Any) -> float | None:
    if raw_value in (None, "N/A", ""):
        return None
    return float(raw_value)


def _to_int(raw_value: Any) -> int | None:
    if raw_value in (None, "N/A", ""):
        return None
    return int(raw_value)
