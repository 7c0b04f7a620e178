from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from seekback.audio.ffprobe import FfprobeError
from seekback.storage.db import SeekbackDB
from seekback.storage.repository import Storage


class FakeProbe:
    """Duration probe answering from a filename -> seconds table."""

    def __init__(self, durations: dict[str, float] | None = None, default: float | None = None) -> None:
        self.durations = dict(durations or {})
        self.default = default
        self.calls: list[str] = []

    def probe(self, path: Path) -> timedelta:
        self.calls.append(path.name)
        seconds = self.durations.get(path.name, self.default)
        if seconds is None:
            raise FfprobeError(f"cannot probe {path.name}")
        return timedelta(seconds=int(seconds))


@pytest.fixture
def samples_dir(tmp_path: Path) -> Path:
    path = tmp_path / "samples"
    path.mkdir()
    return path


@pytest.fixture
def db(tmp_path: Path) -> SeekbackDB:
    database = SeekbackDB(tmp_path / "data" / "seekback.db")
    database.initialize()
    return database


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe(default=60)


@pytest.fixture
def storage(samples_dir: Path, db: SeekbackDB, probe: FakeProbe) -> Storage:
    return Storage(samples_dir, db, probe)
