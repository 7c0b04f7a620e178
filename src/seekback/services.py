from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from seekback.audio.ffprobe import DurationProbe, FfprobeDurationProbe
from seekback.config import Settings, get_settings
from seekback.storage.db import SeekbackDB
from seekback.storage.models import SampleHit, SamplePreview, SearchOptions, SyncReport
from seekback.storage.repository import Storage
from seekback.storage.watch import DirectoryWatcher


@dataclass(slots=True)
class EventsWindow:
    start: datetime
    end: datetime
    overlap: bool = False

    def options(self) -> SearchOptions:
        if self.overlap:
            return SearchOptions.overlap(self.start, self.end)
        return SearchOptions.contained(self.start, self.end)


class SeekbackService:
    """Entry point for hosts: wires settings, database, probe and repository."""

    def __init__(self, settings: Settings | None = None, probe: DurationProbe | None = None) -> None:
        self.settings = settings or get_settings()
        self.settings.ensure_dirs()
        self.db = SeekbackDB(self.settings.db_path)
        self.db.initialize()
        self.storage = Storage(
            self.settings.samples_path,
            self.db,
            probe or FfprobeDurationProbe(self.settings.ffprobe_path),
            registry=self.settings.media_registry(),
            progress_interval_s=self.settings.progress_interval_s,
        )

    @property
    def samples_path(self) -> Path:
        return self.storage.samples_path

    def sync(self) -> SyncReport:
        return self.storage.sync_files()

    def watcher(self) -> DirectoryWatcher:
        return DirectoryWatcher(
            self.storage,
            self.samples_path,
            self.settings.watch_interval_s,
        )

    def list_samples(self) -> list[SamplePreview]:
        samples = self.storage.sample_preview_list()
        samples.sort(key=lambda item: item.start, reverse=True)
        return samples

    def get_sample(self, sample_id: str) -> SamplePreview:
        return self.storage.sample_get(sample_id)

    def set_summary(self, sample_id: str, summary: str) -> None:
        self.storage.sample_summary_set(sample_id, summary)

    def set_transcript(self, sample_id: str, transcript: str) -> Path:
        return self.storage.sample_transcript_set(sample_id, transcript)

    def search(
        self,
        query: str = "",
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[SampleHit]:
        """Keyword search, optionally limited to samples overlapping ``[start, end]``.

        Keyword results keep their relevance order; otherwise newest first.
        """

        options = SearchOptions(query=query)
        if start is not None and end is not None:
            options.set_overlap(start, end)
        elif start is not None:
            options.end_after = start
        elif end is not None:
            options.start_before = end
        hits = self.storage.search(options)
        if not query:
            hits.sort(key=lambda item: item.start, reverse=True)
        return hits

    def events(self, window: EventsWindow) -> list[SampleHit]:
        hits = self.storage.search(window.options())
        hits.sort(key=lambda item: item.start, reverse=True)
        return hits

    def overlapping(self, sample: SamplePreview) -> list[SampleHit]:
        """Samples recorded at the same time as ``sample``, itself included."""

        start, end = sample.time_range()
        return self.storage.search(SearchOptions.overlap(start, end))

