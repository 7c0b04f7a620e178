from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

ID_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Start time of samples whose id is not a timestamp.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def parse_sample_start(sample_id: str) -> datetime:
    """Parse the start time encoded in a sample id, or return ``ZERO_TIME``."""

    try:
        return datetime.strptime(sample_id, ID_TIME_FORMAT)
    except ValueError:
        return ZERO_TIME


@dataclass(slots=True)
class SamplePreview:
    id: str
    start: datetime = ZERO_TIME
    duration: timedelta = timedelta(0)
    end: datetime | None = None
    summary: str = ""
    transcript: str = ""
    media: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Any, **extra: Any):
        """Build a sample from a ``samples`` table row; ``media`` stays empty."""

        end = row["end"]
        return cls(
            id=str(row["id"]),
            start=datetime.fromisoformat(row["start"]),
            duration=timedelta(seconds=int(row["duration"] or 0)),
            end=datetime.fromisoformat(end) if end is not None else None,
            summary=str(row["summary"] or ""),
            transcript=str(row["transcript"] or ""),
            **extra,
        )

    @property
    def duration_known(self) -> bool:
        return self.duration > timedelta(0)

    def time_range(self) -> tuple[datetime, datetime]:
        if self.end is not None:
            return self.start, self.end
        return self.start, self.start + self.duration


@dataclass(slots=True)
class SampleHit(SamplePreview):
    snippet: str = ""


@dataclass(slots=True)
class SearchOptions:
    """Keyword query plus optional bounds on sample start and end times."""

    query: str = ""
    start_after: datetime | None = None
    start_before: datetime | None = None
    end_after: datetime | None = None
    end_before: datetime | None = None

    def set_overlap(self, start: datetime, end: datetime) -> None:
        """Select samples whose ``[start, end]`` intersects the window."""

        self.end_after = start
        self.start_before = end

    def set_contained(self, start: datetime, end: datetime) -> None:
        """Select samples whose ``[start, end]`` lies inside the window."""

        self.start_after = start
        self.end_before = end

    @classmethod
    def overlap(cls, start: datetime, end: datetime, query: str = "") -> "SearchOptions":
        options = cls(query=query)
        options.set_overlap(start, end)
        return options

    @classmethod
    def contained(cls, start: datetime, end: datetime, query: str = "") -> "SearchOptions":
        options = cls(query=query)
        options.set_contained(start, end)
        return options


@dataclass(slots=True)
class SyncReport:
    total: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    probed: int = 0
    ends_set: int = 0
