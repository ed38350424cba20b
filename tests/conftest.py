from __future__ import annotations

import subprocess
import threading
from pathlib import Path
from typing import Callable

import pytest


def is_batch_call(command: list[str]) -> bool:
    return any(arg.startswith("select=") for arg in command)


def is_placeholder_call(command: list[str]) -> bool:
    return "lavfi" in command


def is_merge_call(command: list[str]) -> bool:
    return "-filter_complex" in command


def is_single_call(command: list[str]) -> bool:
    return command[0] == "ffmpeg" and not (
        is_batch_call(command) or is_placeholder_call(command) or is_merge_call(command) or command[-1] == "-"
    )


class FakeFfmpeg:
    """Stands in for ``subprocess.run`` and writes the files ffmpeg would produce."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.fail_when: Callable[[list[str]], bool] = lambda command: False
        self.skip_output_when: Callable[[list[str]], bool] = lambda command: False
        self.dropped_batch_frames: set[int] = set()
        self.frames_per_window = 1
        self.stdout = ""
        self.stderr = ""
        self._lock = threading.Lock()

    def __call__(self, command: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        command = list(command)
        with self._lock:
            self.calls.append(command)

        if self.fail_when(command):
            return subprocess.CompletedProcess(command, 1, stdout="", stderr="simulated ffmpeg failure")

        output = command[-1]
        if output != "-" and not self.skip_output_when(command):
            if "%03d" in output:
                frame_count = self.frames_per_window * sum(arg.count("between(") for arg in command)
                for frame_number in range(1, frame_count + 1):
                    if frame_number in self.dropped_batch_frames:
                        continue
                    Path(output.replace("%03d", f"{frame_number:03d}")).write_bytes(b"jpeg")
            else:
                Path(output).write_bytes(b"jpeg")

        return subprocess.CompletedProcess(command, 0, stdout=self.stdout, stderr=self.stderr)

    def calls_matching(self, predicate: Callable[[list[str]], bool]) -> list[list[str]]:
        return [command for command in self.calls if predicate(command)]


@pytest.fixture
def fake_ffmpeg(monkeypatch: pytest.MonkeyPatch) -> FakeFfmpeg:
    fake = FakeFfmpeg()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake
