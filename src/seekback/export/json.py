from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterable

from seekback.storage.models import SampleHit, SamplePreview


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def sample_payload(sample: SamplePreview) -> dict[str, Any]:
    start, end = sample.time_range()
    payload: dict[str, Any] = {
        "id": sample.id,
        "start": _iso(start),
        "end": _iso(end),
        "duration_seconds": int(sample.duration.total_seconds()),
        "duration_known": sample.duration_known,
        "summary": sample.summary,
        "transcript": sample.transcript,
        "media": list(sample.media),
    }
    if isinstance(sample, SampleHit):
        payload["snippet"] = sample.snippet
    return payload


def build_events_payload(samples: Iterable[SamplePreview]) -> list[dict[str, Any]]:
    """Event feed entries, newest first."""

    ordered = sorted(samples, key=lambda item: item.start, reverse=True)
    return [{"id": item.id, "summary": item.summary, **_event_times(item)} for item in ordered]


def _event_times(sample: SamplePreview) -> dict[str, str | None]:
    start, end = sample.time_range()
    return {"start": _iso(start), "end": _iso(end)}


def dumps_payload(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)
