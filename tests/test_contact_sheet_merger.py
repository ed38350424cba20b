from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeFfmpeg
from vidsheet.compose.contact_sheet_merger import (
    build_xstack_layout,
    calculate_contact_sheet_size,
    create_contact_sheet,
)


def _thumbnails(tmp_path: Path, count: int) -> list[Path]:
    paths = [tmp_path / f"thumb_{index:03d}.jpg" for index in range(count)]
    for path in paths:
        path.write_bytes(b"jpeg")
    return paths


def test_build_xstack_layout_is_row_major() -> None:
    assert build_xstack_layout(2, 2, 320, 180) == "0_0|320_0|0_180|320_180"
    assert build_xstack_layout(3, 1, 100, 50) == "0_0|100_0|200_0"


def test_calculate_contact_sheet_size() -> None:
    assert calculate_contact_sheet_size(9, 6) == (2880, 1080)
    assert calculate_contact_sheet_size(2, 3, 100, 50) == (200, 150)


def test_create_contact_sheet_stacks_inputs_in_order(tmp_path: Path, fake_ffmpeg: FakeFfmpeg) -> None:
    thumbnails = _thumbnails(tmp_path, 5)
    output_path = tmp_path / "sheet.jpg"

    create_contact_sheet(thumbnails, output_path, grid_cols=2, grid_rows=2, quality=3)

    command = fake_ffmpeg.calls[0]
    inputs = [command[index + 1] for index, arg in enumerate(command) if arg == "-i"]
    assert inputs == [str(path) for path in thumbnails[:4]]
    assert command[command.index("-filter_complex") + 1] == "xstack=inputs=4:layout=0_0|320_0|0_180|320_180"
    assert command[command.index("-frames:v") + 1] == "1"
    assert command[command.index("-q:v") + 1] == "3"
    assert command[-2:] == ["-y", str(output_path)]
    assert output_path.exists()


def test_create_contact_sheet_single_cell_skips_xstack(tmp_path: Path, fake_ffmpeg: FakeFfmpeg) -> None:
    create_contact_sheet(_thumbnails(tmp_path, 1), tmp_path / "sheet.jpg", grid_cols=1, grid_rows=1)

    assert "-filter_complex" not in fake_ffmpeg.calls[0]


def test_create_contact_sheet_rejects_too_few_thumbnails(tmp_path: Path, fake_ffmpeg: FakeFfmpeg) -> None:
    with pytest.raises(ValueError, match="need 4, got 3"):
        create_contact_sheet(_thumbnails(tmp_path, 3), tmp_path / "sheet.jpg", grid_cols=2, grid_rows=2)

    assert fake_ffmpeg.calls == []


def test_create_contact_sheet_rejects_empty_grid(tmp_path: Path, fake_ffmpeg: FakeFfmpeg) -> None:
    with pytest.raises(ValueError, match="at least one cell"):
        create_contact_sheet(_thumbnails(tmp_path, 2), tmp_path / "sheet.jpg", grid_cols=0, grid_rows=2)

    assert fake_ffmpeg.calls == []


def test_create_contact_sheet_raises_on_ffmpeg_failure(tmp_path: Path, fake_ffmpeg: FakeFfmpeg) -> None:
    fake_ffmpeg.fail_when = lambda command: True

    with pytest.raises(RuntimeError, match="failed to merge contact sheet: simulated ffmpeg failure"):
        create_contact_sheet(_thumbnails(tmp_path, 4), tmp_path / "sheet.jpg", grid_cols=2, grid_rows=2)


def test_create_contact_sheet_raises_when_output_missing(tmp_path: Path, fake_ffmpeg: FakeFfmpeg) -> None:
    fake_ffmpeg.skip_output_when = lambda command: True

    with pytest.raises(RuntimeError, match="was not created"):
        create_contact_sheet(_thumbnails(tmp_path, 4), tmp_path / "sheet.jpg", grid_cols=2, grid_rows=2)
