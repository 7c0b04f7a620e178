from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Iterable

from seekback.audio.ffprobe import DurationProbe, ProbeError
from seekback.storage.db import SeekbackDB
from seekback.storage.errors import SampleNotFoundError, StorageError
from seekback.storage.filetypes import MediaTypeRegistry, split_name
from seekback.storage.models import SampleHit, SamplePreview, SearchOptions, SyncReport, parse_sample_start

LOGGER = logging.getLogger("seekback.storage.repository")


def set_minus(a: Iterable[str], b: Iterable[str]) -> list[str]:
    """Return the distinct elements of ``a`` that are not in ``b``, sorted.

    Both inputs are sorted copies walked in step, so duplicates in either
    collapse.
    """

    left = sorted(set(a))
    right = sorted(set(b))
    result: list[str] = []
    i = j = 0
    while i < len(left) and j < len(right):
        if left[i] == right[j]:
            i += 1
            j += 1
        elif left[i] > right[j]:
            j += 1
        else:
            result.append(left[i])
            i += 1
    result.extend(left[i:])
    return result


@dataclass(slots=True)
class _SyncProgress:
    total: int
    interval_s: float
    started: float = field(default_factory=time.monotonic)
    last_log: float = 0.0

    def __post_init__(self) -> None:
        self.last_log = self.started

    def maybe_log(self, index: int, report: SyncReport) -> None:
        now = time.monotonic()
        if now - self.last_log <= self.interval_s:
            return
        per_item = (now - self.started) / (index + 1)
        remaining = per_item * self.total - (now - self.started)
        LOGGER.info(
            "syncing %d/%d ; %s to eta (%d inserted, %d updated, %d duration)",
            index,
            self.total,
            timedelta(seconds=round(max(remaining, 0.0))),
            report.inserted,
            report.updated,
            report.probed,
        )
        self.last_log = now


class Storage:
    """Keeps the samples directory and the samples table consistent.

    The directory is authoritative for which samples exist, their start time,
    media files and transcript. The database owns summaries and caches probed
    durations.
    """

    def __init__(
        self,
        samples_path: Path,
        db: SeekbackDB,
        probe: DurationProbe,
        registry: MediaTypeRegistry | None = None,
        *,
        progress_interval_s: float = 5.0,
    ) -> None:
        self.samples_path = Path(samples_path)
        self.db = db
        self.probe = probe
        self.registry = registry or MediaTypeRegistry()
        self.progress_interval_s = progress_interval_s
        self._sync_lock = threading.Lock()

    def _list_files(self) -> list[str]:
        with os.scandir(self.samples_path) as entries:
            names = [entry.name for entry in entries if not entry.is_dir()]
        return sorted(names)

    def _read_sidecar(self, name: str) -> str:
        try:
            return (self.samples_path / name).read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return ""

    def _build_preview(self, sample_id: str, media: list[str]) -> SamplePreview:
        return SamplePreview(
            id=sample_id,
            start=parse_sample_start(sample_id),
            summary=self._read_sidecar(self.registry.summary_name(sample_id)),
            transcript=self._read_sidecar(self.registry.transcript_name(sample_id)),
            media=media,
        )

    def _scan(self) -> list[SamplePreview]:
        media_by_id: dict[str, list[str]] = {}
        for name in self._list_files():
            stem, ext = split_name(name)
            if not stem or not ext or not self.registry.is_media(ext):
                continue
            media_by_id.setdefault(stem, []).append(name)
        return [self._build_preview(sample_id, media) for sample_id, media in media_by_id.items()]

    def sample_preview_list(self) -> list[SamplePreview]:
        """List samples straight from the directory, without touching the database."""

        return self._scan()

    def sample_files(self, sample_id: str) -> list[str]:
        """Every file in the directory named ``<sample_id>.<ext>``, sidecars included."""

        files: list[str] = []
        for name in self._list_files():
            stem, ext = split_name(name)
            if stem == sample_id and ext:
                files.append(name)
        return files

    def sample_get(self, sample_id: str) -> SamplePreview:
        stored = self.db.get_sample(sample_id)
        if stored is None:
            raise SampleNotFoundError(sample_id)
        stored.media = [
            name for name in self.sample_files(sample_id) if self.registry.is_media(split_name(name)[1])
        ]
        return stored

    def sample_transcript_set(self, sample_id: str, transcript: str) -> Path:
        """Write the transcript sidecar; the database follows on the next sync."""

        _check_sample_id(sample_id)
        path = self.samples_path / self.registry.transcript_name(sample_id)
        path.write_text(transcript, encoding="utf-8")
        return path

    def sample_summary_set(self, sample_id: str, summary: str) -> None:
        if not self.db.set_summary(sample_id, summary):
            raise SampleNotFoundError(sample_id)

    def search(self, options: SearchOptions) -> list[SampleHit]:
        return self.db.search(options)

    def _probe_duration(self, sample: SamplePreview) -> timedelta:
        media_path = self.samples_path / sample.media[0]
        try:
            return self.probe.probe(media_path)
        except ProbeError as exc:
            LOGGER.warning("get media duration of %s failed: %s", sample.media[0], exc)
            return timedelta(0)

    def _sync_one(self, sample: SamplePreview, report: SyncReport) -> None:
        stored = self.db.get_sample(sample.id)
        if stored is None:
            report.probed += 1
            sample.duration = self._probe_duration(sample)
            self.db.insert_sample(sample)
            report.inserted += 1
            return

        if stored.duration_known:
            sample.duration = stored.duration
        elif sample.media:
            report.probed += 1
            sample.duration = self._probe_duration(sample)
        self.db.update_from_scan(sample)
        report.updated += 1

    def _set_ends(self) -> int:
        LOGGER.info("setting end times...")
        try:
            pending = self.db.samples_missing_end()
            for sample in pending:
                self.db.set_end(sample.id, sample.start + sample.duration)
        except StorageError as exc:
            raise StorageError("set ends", exc) from exc
        LOGGER.info("set end times for %d samples.", len(pending))
        return len(pending)

    def sync_files(self) -> SyncReport:
        """Reconcile the samples table with the samples directory.

        Inserts new samples, refreshes existing ones, deletes rows whose media
        disappeared, rebuilds the full-text index and backfills end times.
        Rows already written stay written if a later step fails, so a failed
        sync is resumed by running it again. Calls are serialized.
        """

        with self._sync_lock:
            LOGGER.info("reading samples directory...")
            samples = self._scan()
            LOGGER.info("syncing %d samples...", len(samples))
            report = SyncReport(total=len(samples))
            progress = _SyncProgress(total=len(samples), interval_s=self.progress_interval_s)
            for index, sample in enumerate(samples):
                progress.maybe_log(index, report)
                self._sync_one(sample, report)

            stale = set_minus(self.db.list_ids(), (sample.id for sample in samples))
            for sample_id in stale:
                self.db.delete_sample(sample_id)
            report.deleted = len(stale)
            LOGGER.info(
                "synced %d samples, %d inserted, %d updated, %d deleted (%d new media duration).",
                report.total,
                report.inserted,
                report.updated,
                report.deleted,
                report.probed,
            )

            self.db.rebuild_fts()
            LOGGER.info("rebuilt fts index.")
            report.ends_set = self._set_ends()
            return report


def _check_sample_id(sample_id: str) -> None:
    if not sample_id or sample_id in {".", ".."}:
        raise ValueError(f"Invalid sample id: {sample_id!r}")
    if "/" in sample_id or "\\" in sample_id or os.sep in sample_id:
        raise ValueError(f"Sample id must not contain path separators: {sample_id!r}")
