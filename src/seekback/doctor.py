from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass

from seekback.audio.ffprobe import get_ffprobe_version, project_ffprobe_candidates, resolve_ffprobe_command
from seekback.config import Settings


@dataclass(slots=True)
class DoctorCheck:
    name: str
    status: str
    detail: str


def _check_fts5() -> DoctorCheck:
    try:
        with sqlite3.connect(":memory:") as conn:
            conn.execute("CREATE VIRTUAL TABLE probe_fts USING fts5(text)")
    except sqlite3.OperationalError as exc:
        return DoctorCheck("SQLite FTS5", "fail", f"FTS5 unavailable in this Python build: {exc}")
    return DoctorCheck("SQLite FTS5", "ok", f"SQLite {sqlite3.sqlite_version} with FTS5")


def _check_db(settings: Settings) -> DoctorCheck:
    try:
        settings.ensure_dirs()
        with sqlite3.connect(settings.db_path) as conn:
            conn.execute("SELECT 1")
        return DoctorCheck("Database", "ok", f"SQLite writable at {settings.db_path}")
    except (OSError, sqlite3.Error) as exc:  # pragma: no cover - environment dependent
        return DoctorCheck("Database", "fail", f"Cannot initialize SQLite at {settings.db_path}: {exc}")


def _check_samples_dir(settings: Settings) -> DoctorCheck:
    path = settings.samples_path
    if not path.is_dir():
        return DoctorCheck("Samples directory", "fail", f"Not a directory: {path}")
    if not os.access(path, os.R_OK | os.X_OK):
        return DoctorCheck("Samples directory", "fail", f"Not readable: {path}")
    registry = settings.media_registry()
    media_count = sum(
        1 for entry in path.iterdir() if entry.is_file() and registry.is_media(entry.suffix)
    )
    detail = f"{path} ({media_count} media files; types: {', '.join(sorted(registry.media_types))})"
    if not os.access(path, os.W_OK):
        return DoctorCheck("Samples directory", "warn", f"{detail}; read-only, transcripts cannot be written")
    return DoctorCheck("Samples directory", "ok", detail)


def _check_ffprobe(settings: Settings) -> DoctorCheck:
    if settings.ffprobe_path is not None and not settings.ffprobe_path.exists():
        return DoctorCheck(
            "ffprobe",
            "fail",
            f"Configured SEEKBACK_FFPROBE_PATH does not exist: {settings.ffprobe_path}",
        )
    version = get_ffprobe_version(settings.ffprobe_path)
    if version:
        return DoctorCheck("ffprobe", "ok", version)
    local_candidates = ", ".join(str(path) for path in project_ffprobe_candidates())
    command = resolve_ffprobe_command(settings.ffprobe_path)
    return DoctorCheck(
        "ffprobe",
        "warn",
        "ffprobe not found. "
        f"Tried command '{command}'. Durations stay unknown until it is available. "
        f"Install ffmpeg on PATH, place it in project (candidates: {local_candidates}), "
        "or set SEEKBACK_FFPROBE_PATH.",
    )


def run_doctor(settings: Settings) -> list[DoctorCheck]:
    return [
        _check_ffprobe(settings),
        _check_fts5(),
        _check_db(settings),
        _check_samples_dir(settings),
    ]
