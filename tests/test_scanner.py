from __future__ import annotations

from pathlib import Path

import pytest

from vidsheet.ingest.scanner import scan_video_files


def _write(path: Path, size: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    return path


def test_scan_video_files_sorts_smallest_first(tmp_path: Path) -> None:
    big = _write(tmp_path / "big.mp4", 30)
    small = _write(tmp_path / "nested" / "small.MKV", 10)
    _write(tmp_path / "notes.txt", 5)

    videos = scan_video_files(tmp_path, [".mp4", "mkv"])

    assert [video.path for video in videos] == [small.resolve(), big.resolve()]
    assert [video.size_bytes for video in videos] == [10, 30]


def test_scan_video_files_skips_scratch_and_excluded_dirs(tmp_path: Path) -> None:
    kept = _write(tmp_path / "keep.mp4", 10)
    _write(tmp_path / ".tmp_keep_abc" / "thumb.mp4", 10)
    _write(tmp_path / "_contact_sheets" / "old.mp4", 10)

    videos = scan_video_files(tmp_path, [".mp4"], exclude_dirs=["_contact_sheets"])

    assert [video.path for video in videos] == [kept.resolve()]


def test_scan_video_files_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(NotADirectoryError):
        scan_video_files(tmp_path / "missing", [".mp4"])
