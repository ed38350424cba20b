from __future__ import annotations

import json
import logging
import signal
import threading
from dataclasses import asdict
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, TypeVar

import typer

from vidsheet.config import Settings, load_settings
from vidsheet.features.scene_detector import detect_scenes
from vidsheet.ingest.probe import probe_video
from vidsheet.logging_config import configure_logging
from vidsheet.models import GenerationResult
from vidsheet.pipeline import (
    GenerationCancelled,
    contact_sheet_output_path,
    generate_contact_sheet,
    generate_contact_sheets,
    scene_config_from_settings,
)
from vidsheet.sampling.strategy import SelectionStrategy, select_sample_timestamps

app = typer.Typer(help="Scene-aware video contact sheet generator.")
config_app = typer.Typer(help="Configuration commands.")
app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)

T = TypeVar("T")

INTERRUPTED_EXIT_CODE = 130

STAGE_LABELS = {
    "probe": "Probe video",
    "sample": "Select timestamps",
    "extract": "Extract thumbnails",
    "merge": "Merge contact sheet",
}

ConfigOption = typer.Option(
    Path("configs/default.yaml"),
    "--config",
    "-c",
    envvar="VIDSHEET_CONFIG",
    help="Path to YAML configuration file.",
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _bootstrap(config_path: Path, verbose: bool = False) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging, verbose=verbose)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def install_shutdown_handler() -> threading.Event:
    """Return an event that is set on Ctrl-C so running stages stop taking new work."""

    shutdown_signal = threading.Event()

    def _handle_interrupt(signum: int, frame: Any) -> None:
        shutdown_signal.set()
        typer.echo("\nInterrupt received, finishing in-flight work...", err=True)

    signal.signal(signal.SIGINT, _handle_interrupt)
    return shutdown_signal


def _fail(exc: Exception) -> typer.Exit:
    logger.error("Command failed: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=1)


@config_app.command("show")
def show_config(config_path: Path = ConfigOption) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@app.command()
def probe(video_path: Path, config_path: Path = ConfigOption, verbose: bool = VerboseOption) -> None:
    """Probe a video and print duration, size and frame rate."""

    _bootstrap(config_path, verbose)
    try:
        info = probe_video(video_path)
    except (RuntimeError, ValueError, FileNotFoundError) as exc:
        raise _fail(exc) from exc
    typer.echo(json.dumps(asdict(info), indent=2))


@app.command()
def scenes(video_path: Path, config_path: Path = ConfigOption, verbose: bool = VerboseOption) -> None:
    """Detect scene changes and print them as JSON."""

    settings = _bootstrap(config_path, verbose)
    try:
        info = probe_video(video_path)
        changes = detect_scenes(video_path, info, scene_config_from_settings(settings, info))
    except (RuntimeError, ValueError, FileNotFoundError) as exc:
        raise _fail(exc) from exc
    typer.echo(
        json.dumps(
            {
                "video_path": str(video_path),
                "duration_seconds": info.duration_seconds,
                "scene_count": len(changes),
                "scenes": [asdict(change) for change in changes],
            },
            indent=2,
        )
    )


@app.command()
def timestamps(
    video_path: Path,
    count: int | None = typer.Option(None, help="Number of timestamps. Defaults to grid_cols * grid_rows."),
    strategy: SelectionStrategy | None = typer.Option(None, help="Sampling strategy override."),
    config_path: Path = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Print the sample timestamps a contact sheet would use."""

    settings = _bootstrap(config_path, verbose)
    resolved_strategy = strategy or SelectionStrategy(settings.sampling.strategy)
    resolved_count = count if count is not None else settings.contact_sheet.thumbnail_count
    try:
        info = probe_video(video_path)
        selected = select_sample_timestamps(
            resolved_strategy,
            video_path,
            info,
            resolved_count,
            scene_config=scene_config_from_settings(settings, info),
            fallback_to_uniform=settings.sampling.fallback_to_uniform,
        )
    except (RuntimeError, ValueError, FileNotFoundError) as exc:
        raise _fail(exc) from exc
    typer.echo(
        json.dumps(
            {
                "strategy": resolved_strategy.value,
                "count": len(selected),
                "timestamps": [round(value, 3) for value in selected],
            },
            indent=2,
        )
    )


class _StageProgress:
    """Echo ``[i/N] label...`` lines for pipeline stage callbacks."""

    def __init__(self) -> None:
        self.current: str | None = None
        self.started_at = 0.0

    def start(self, stage: str) -> None:
        self.finish()
        self.current = stage
        self.started_at = perf_counter()
        typer.echo(f"{self._prefix(stage)} {STAGE_LABELS[stage]}...", err=True)

    def finish(self, failed: bool = False) -> None:
        if self.current is None:
            return
        elapsed = perf_counter() - self.started_at
        outcome = "failed after" if failed else "done in"
        typer.echo(f"{self._prefix(self.current)} {STAGE_LABELS[self.current]} {outcome} {elapsed:.1f}s", err=True)
        self.current = None

    @staticmethod
    def _prefix(stage: str) -> str:
        return f"[{list(STAGE_LABELS).index(stage) + 1}/{len(STAGE_LABELS)}]"


@app.command()
def generate(
    video_path: Path,
    output: Path | None = typer.Option(None, "--output", "-o", help="Output image path."),
    strategy: SelectionStrategy | None = typer.Option(None, help="Sampling strategy override."),
    mode: str | None = typer.Option(None, help="Extraction mode override: parallel or batch."),
    config_path: Path = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Generate a contact sheet for a single video."""

    settings = _bootstrap(config_path, verbose)
    if strategy is not None:
        settings.sampling.strategy = strategy.value
    if mode is not None:
        if mode not in {"parallel", "batch"}:
            raise _fail(ValueError(f"Unknown extraction mode: {mode}"))
        settings.extraction.mode = mode

    resolved_output = output or contact_sheet_output_path(video_path.expanduser().resolve(), None)
    shutdown_signal = install_shutdown_handler()
    progress = _StageProgress()

    try:
        generate_contact_sheet(video_path, resolved_output, settings, shutdown_signal, on_stage=progress.start)
    except GenerationCancelled:
        progress.finish(failed=True)
        typer.echo(json.dumps({"status": "cancelled", "video_path": str(video_path)}, indent=2))
        raise typer.Exit(code=INTERRUPTED_EXIT_CODE)
    except (RuntimeError, ValueError, FileNotFoundError) as exc:
        progress.finish(failed=True)
        raise _fail(exc) from exc
    progress.finish()

    typer.echo(json.dumps({"status": "ok", "video_path": str(video_path), "output_path": str(resolved_output)}, indent=2))


@app.command("run")
def run_directory(
    input_dir: Path,
    config_path: Path = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Generate contact sheets for every video in a directory tree."""

    settings = _bootstrap(config_path, verbose)
    shutdown_signal = install_shutdown_handler()

    def _on_video_done(video_path: Path, status: str) -> None:
        typer.echo(f"[{status}] {video_path.name}", err=True)

    try:
        result = _run_with_progress(
            1,
            1,
            "Generate contact sheets",
            lambda: generate_contact_sheets(input_dir, settings, shutdown_signal, on_video_done=_on_video_done),
        )
    except (RuntimeError, ValueError, OSError) as exc:
        raise _fail(exc) from exc

    typer.echo(json.dumps({"status": _run_status(result), **asdict(result)}, indent=2))
    if result.failed:
        raise typer.Exit(code=1)


def _run_status(result: GenerationResult) -> str:
    if result.failed:
        return "partial"
    if result.cancelled:
        return "cancelled"
    return "ok"


if __name__ == "__main__":
    app()
