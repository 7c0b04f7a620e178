from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path

from seekback.storage.errors import StorageError
from seekback.storage.fts import create_fts_schema, rebuild_fts, search_samples
from seekback.storage.models import SampleHit, SamplePreview, SearchOptions


class SeekbackDB:
    """SQLite store for sample metadata and its FTS5 index.

    Every call opens a short-lived connection and commits on its own, so one
    statement never spans several rows of a sync.
    """

    def __init__(self, db_path: Path, *, busy_timeout_s: float = 30.0) -> None:
        self.db_path = db_path
        self.busy_timeout_s = busy_timeout_s
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_s)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self, operation: str):
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageError(operation, exc) from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(operation, exc) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        with self._session("initialize") as conn:
            conn.execute("PRAGMA journal_mode = WAL;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS samples (
                    id TEXT PRIMARY KEY,
                    start TEXT NOT NULL,
                    duration INTEGER NOT NULL DEFAULT 0,
                    "end" TEXT,
                    summary TEXT NOT NULL DEFAULT '',
                    transcript TEXT NOT NULL DEFAULT ''
                )
                """
            )
            conn.execute('CREATE INDEX IF NOT EXISTS idx_samples_end ON samples("end")')
            try:
                create_fts_schema(conn)
            except sqlite3.OperationalError as exc:
                raise RuntimeError(
                    "SQLite FTS5 is unavailable in this Python build. "
                    "Install a Python/SQLite build with FTS5 support."
                ) from exc

    def get_sample(self, sample_id: str) -> SamplePreview | None:
        with self._session("select") as conn:
            row = conn.execute("SELECT * FROM samples WHERE id = ?", (sample_id,)).fetchone()
        if row is None:
            return None
        return SamplePreview.from_row(row)

    def list_ids(self) -> list[str]:
        with self._session("select") as conn:
            rows = conn.execute("SELECT id FROM samples").fetchall()
        return [str(row["id"]) for row in rows]

    def insert_sample(self, sample: SamplePreview) -> None:
        with self._session("insert") as conn:
            conn.execute(
                """
                INSERT INTO samples(id, start, duration, summary, transcript)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    sample.id,
                    sample.start.isoformat(),
                    _seconds(sample.duration),
                    sample.summary,
                    sample.transcript,
                ),
            )

    def update_from_scan(self, sample: SamplePreview) -> None:
        """Write the filesystem-derived fields of ``sample``; ``summary`` is left alone.

        ``end`` is cleared when start or duration change so the backfill pass
        recomputes it.
        """

        start = sample.start.isoformat()
        duration = _seconds(sample.duration)
        with self._session("update") as conn:
            conn.execute(
                """
                UPDATE samples
                SET "end" = CASE WHEN start = ? AND duration = ? THEN "end" ELSE NULL END,
                    start = ?,
                    duration = ?,
                    transcript = ?
                WHERE id = ?
                """,
                (start, duration, start, duration, sample.transcript, sample.id),
            )

    def set_summary(self, sample_id: str, summary: str) -> bool:
        with self._session("update") as conn:
            cursor = conn.execute("UPDATE samples SET summary = ? WHERE id = ?", (summary, sample_id))
            return cursor.rowcount > 0

    def delete_sample(self, sample_id: str) -> None:
        with self._session("delete") as conn:
            conn.execute("DELETE FROM samples WHERE id = ?", (sample_id,))

    def rebuild_fts(self) -> None:
        with self._session("rebuild") as conn:
            rebuild_fts(conn)

    def samples_missing_end(self) -> list[SamplePreview]:
        with self._session("select") as conn:
            rows = conn.execute('SELECT * FROM samples WHERE "end" IS NULL').fetchall()
        return [SamplePreview.from_row(row) for row in rows]

    def set_end(self, sample_id: str, end: datetime) -> None:
        with self._session("update") as conn:
            conn.execute('UPDATE samples SET "end" = ? WHERE id = ?', (end.isoformat(), sample_id))

    def search(self, options: SearchOptions) -> list[SampleHit]:
        with self._session("search") as conn:
            return search_samples(conn, options)


def _seconds(duration: timedelta) -> int:
    return int(duration.total_seconds())
