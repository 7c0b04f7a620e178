from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from pathlib import Path

import pytest

from seekback.audio.ffprobe import FfprobeDurationProbe
from seekback.storage.db import SeekbackDB
from seekback.storage.errors import SampleNotFoundError, StorageError
from seekback.storage.models import SamplePreview, SearchOptions, parse_sample_start
from seekback.storage.repository import Storage

FIRST = "2024-05-01T10:00:00+00:00"
SECOND = "2024-05-01T10:20:00+00:00"


def write(directory: Path, name: str, content: str = "") -> None:
    (directory / name).write_text(content, encoding="utf-8")


def test_first_sync_inserts_and_probes(storage: Storage, samples_dir: Path, probe) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    write(samples_dir, f"{FIRST}.vtt", "hello world")
    write(samples_dir, f"{FIRST}.txt", "from disk")

    report = storage.sync_files()

    assert (report.total, report.inserted, report.updated, report.deleted) == (1, 1, 0, 0)
    assert report.probed == 1
    assert probe.calls == [f"{FIRST}.mp3"]
    sample = storage.sample_get(FIRST)
    assert sample.duration == timedelta(seconds=60)
    assert sample.transcript == "hello world"
    assert sample.summary == "from disk"
    assert sample.media == [f"{FIRST}.mp3"]


def test_second_sync_is_idempotent(storage: Storage, samples_dir: Path, probe) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    write(samples_dir, f"{SECOND}.aiff")
    storage.sync_files()
    probe.calls.clear()

    report = storage.sync_files()

    assert report.inserted == 0
    assert report.deleted == 0
    assert report.probed == 0
    assert report.updated == 2
    assert report.ends_set == 0
    assert probe.calls == []


def test_known_duration_is_never_reprobed(storage: Storage, samples_dir: Path, probe) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    probe.durations[f"{FIRST}.mp3"] = 90
    storage.sync_files()

    probe.durations[f"{FIRST}.mp3"] = 5
    write(samples_dir, f"{FIRST}.vtt", "new transcript")
    storage.sync_files()

    assert storage.sample_get(FIRST).duration == timedelta(seconds=90)


def test_failed_probe_is_logged_and_retried(storage: Storage, samples_dir: Path, probe, caplog) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    probe.default = None

    with caplog.at_level(logging.WARNING, logger="seekback.storage.repository"):
        report = storage.sync_files()

    assert report.inserted == 1
    assert storage.sample_get(FIRST).duration == timedelta(0)
    assert not storage.sample_get(FIRST).duration_known
    assert "get media duration" in caplog.text

    probe.default = 30
    report = storage.sync_files()

    assert report.probed == 1
    sample = storage.sample_get(FIRST)
    assert sample.duration == timedelta(seconds=30)
    assert sample.end == sample.start + timedelta(seconds=30)


def test_api_summary_survives_syncs(storage: Storage, samples_dir: Path) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    write(samples_dir, f"{FIRST}.txt", "from disk")
    storage.sync_files()

    storage.sample_summary_set(FIRST, "edited in the app")
    storage.sync_files()
    storage.sync_files()

    assert storage.sample_get(FIRST).summary == "edited in the app"


def test_transcript_follows_sidecar(storage: Storage, samples_dir: Path) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    write(samples_dir, f"{FIRST}.vtt", "first draft")
    storage.sync_files()

    path = storage.sample_transcript_set(FIRST, "second draft")
    assert path == samples_dir / f"{FIRST}.vtt"
    assert storage.sample_get(FIRST).transcript == "first draft"

    storage.sync_files()
    assert storage.sample_get(FIRST).transcript == "second draft"

    path.unlink()
    storage.sync_files()
    assert storage.sample_get(FIRST).transcript == ""


def test_vanished_samples_are_deleted(storage: Storage, samples_dir: Path) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    write(samples_dir, f"{FIRST}.vtt", "hello world")
    write(samples_dir, f"{SECOND}.mp3")
    storage.sync_files()

    for name in (f"{FIRST}.mp3", f"{FIRST}.vtt"):
        (samples_dir / name).unlink()
    report = storage.sync_files()

    assert report.deleted == 1
    assert [sample.id for sample in storage.sample_preview_list()] == [SECOND]
    assert storage.search(SearchOptions(query="hello")) == []
    assert [hit.id for hit in storage.search(SearchOptions())] == [SECOND]
    with pytest.raises(SampleNotFoundError):
        storage.sample_get(FIRST)


def test_sidecar_without_media_drops_the_row(storage: Storage, samples_dir: Path) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    write(samples_dir, f"{FIRST}.vtt", "kept on disk")
    storage.sync_files()

    (samples_dir / f"{FIRST}.mp3").unlink()
    storage.sync_files()

    assert storage.db.list_ids() == []
    assert (samples_dir / f"{FIRST}.vtt").exists()


def test_end_is_backfilled(storage: Storage, db: SeekbackDB, samples_dir: Path, probe) -> None:
    write(samples_dir, f"{FIRST}.mp3")
    start = parse_sample_start(FIRST)
    db.insert_sample(SamplePreview(id=FIRST, start=start, duration=timedelta(seconds=45)))
    assert db.get_sample(FIRST).end is None

    report = storage.sync_files()

    assert report.ends_set == 1
    assert probe.calls == []
    assert db.get_sample(FIRST).end == start + timedelta(seconds=45)


def test_unparseable_id_is_indexed_with_zero_start(storage: Storage, samples_dir: Path) -> None:
    write(samples_dir, "interview.mp3")

    storage.sync_files()

    sample = storage.sample_get("interview")
    assert sample.start.year == 1
    assert sample.end == sample.start + timedelta(seconds=60)


def test_summary_set_on_unknown_sample(storage: Storage) -> None:
    with pytest.raises(SampleNotFoundError) as excinfo:
        storage.sample_summary_set("nope", "text")
    assert excinfo.value.sample_id == "nope"


@pytest.mark.parametrize("sample_id", ["", "..", "../escape", "a/b"])
def test_transcript_set_rejects_paths(storage: Storage, sample_id: str) -> None:
    with pytest.raises(ValueError):
        storage.sample_transcript_set(sample_id, "text")


def test_sync_fails_when_directory_is_missing(tmp_path: Path, db: SeekbackDB, probe) -> None:
    storage = Storage(tmp_path / "missing", db, probe)

    with pytest.raises(FileNotFoundError):
        storage.sync_files()


def test_unstartable_ffprobe_does_not_abort_sync(samples_dir: Path, db: SeekbackDB, tmp_path: Path, caplog) -> None:
    binary = tmp_path / "ffprobe"
    binary.write_text("", encoding="utf-8")
    binary.chmod(0o644)
    storage = Storage(samples_dir, db, FfprobeDurationProbe(ffprobe_path=binary))
    write(samples_dir, f"{FIRST}.mp3")
    write(samples_dir, f"{FIRST}.vtt", "hello world")
    write(samples_dir, f"{SECOND}.mp3")

    with caplog.at_level(logging.WARNING, logger="seekback.storage.repository"):
        report = storage.sync_files()

    assert (report.inserted, report.probed) == (2, 2)
    assert "could not be started" in caplog.text
    assert [hit.id for hit in storage.search(SearchOptions(query="hello"))] == [FIRST]
    sample = storage.sample_get(FIRST)
    assert not sample.duration_known
    assert sample.end == sample.start


class SlowProbe:
    def probe(self, path: Path) -> timedelta:
        time.sleep(0.02)
        return timedelta(seconds=60)


def test_progress_is_logged(samples_dir: Path, db: SeekbackDB, caplog) -> None:
    storage = Storage(samples_dir, db, SlowProbe(), progress_interval_s=0)
    write(samples_dir, f"{FIRST}.mp3")
    write(samples_dir, f"{SECOND}.mp3")

    with caplog.at_level(logging.INFO, logger="seekback.storage.repository"):
        storage.sync_files()

    lines = [record.getMessage() for record in caplog.records if record.getMessage().startswith("syncing 1/2")]
    assert len(lines) == 1
    assert lines[0].endswith("to eta (1 inserted, 0 updated, 1 duration)")


class BlockingProbe:
    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def probe(self, path: Path) -> timedelta:
        self.entered.set()
        self.release.wait(5)
        return timedelta(seconds=60)


def test_concurrent_syncs_run_one_at_a_time(monkeypatch, samples_dir: Path, db: SeekbackDB) -> None:
    probe = BlockingProbe()
    storage = Storage(samples_dir, db, probe)
    write(samples_dir, f"{FIRST}.mp3")
    steps: list[str] = []
    scan, set_ends = storage._scan, storage._set_ends

    def recording_scan():
        steps.append("scan")
        return scan()

    def recording_set_ends():
        steps.append("ends")
        return set_ends()

    monkeypatch.setattr(storage, "_scan", recording_scan)
    monkeypatch.setattr(storage, "_set_ends", recording_set_ends)

    first = threading.Thread(target=storage.sync_files)
    second = threading.Thread(target=storage.sync_files)
    first.start()
    assert probe.entered.wait(5)
    second.start()
    time.sleep(0.1)

    assert steps == ["scan"]
    assert second.is_alive()

    probe.release.set()
    first.join(5)
    second.join(5)

    assert steps == ["scan", "ends", "scan", "ends"]
    assert storage.sample_get(FIRST).duration == timedelta(seconds=60)


def test_end_backfill_errors_are_tagged(monkeypatch, storage: Storage, samples_dir: Path) -> None:
    write(samples_dir, f"{FIRST}.mp3")

    def failing_select():
        raise StorageError("select", "database is locked")

    monkeypatch.setattr(storage.db, "samples_missing_end", failing_select)

    with pytest.raises(StorageError, match="^set ends: select: database is locked") as excinfo:
        storage.sync_files()
    assert excinfo.value.operation == "set ends"
