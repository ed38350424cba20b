from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "VIDSHEET_"


class ContactSheetSettings(BaseModel):
    grid_cols: int = Field(default=9, ge=1)
    grid_rows: int = Field(default=6, ge=1)
    tile_width: int = Field(default=320, ge=16)
    tile_height: int = Field(default=180, ge=16)
    jpeg_quality: int = Field(default=2, ge=1, le=31)
    output_mode: Literal["sub_directory", "same_directory"] = "sub_directory"
    output_dir_name: str = "_contact_sheets"
    min_duration_seconds: float = 1.0

    @property
    def thumbnail_count(self) -> int:
        return self.grid_cols * self.grid_rows


class SamplingSettings(BaseModel):
    strategy: Literal["scene_aware", "uniform"] = "scene_aware"
    fallback_to_uniform: bool = True


class SceneDetectionSettings(BaseModel):
    threshold: float = 12.0
    scale_width: int = 320
    analyze_fps: float | None = None


class ExtractionSettings(BaseModel):
    mode: Literal["parallel", "batch"] = "parallel"
    batch_size: int = Field(default=18, ge=1)
    seek_margin_seconds: float = Field(default=2.0, ge=0.0)
    max_workers: int | None = None
    placeholder_on_failure: bool = True
    placeholder_color: str = "black"


class PipelineSettings(BaseModel):
    max_parallel_videos: int | None = None
    video_extensions: list[str] = Field(
        default_factory=lambda: [".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v", ".ts"]
    )


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    contact_sheet: ContactSheetSettings = Field(default_factory=ContactSheetSettings)
    sampling: SamplingSettings = Field(default_factory=SamplingSettings)
    scene_detection: SceneDetectionSettings = Field(default_factory=SceneDetectionSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides."""

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config: dict[str, Any] = {}
    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if existing_value is None:
        return None if raw_value.lower() in {"", "none", "null"} else raw_value
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    return raw_value
