from __future__ import annotations

import sqlite3
from datetime import datetime

from seekback.storage.models import SampleHit, SearchOptions

SNIPPET_OPEN = "**"
SNIPPET_CLOSE = "**"
SNIPPET_ELLIPSIS = "…"
SNIPPET_TOKENS = 64


def create_fts_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE VIRTUAL TABLE IF NOT EXISTS samples_fts
        USING fts5(
            id UNINDEXED,
            summary,
            transcript,
            content='samples',
            content_rowid='rowid'
        )
        """
    )


def rebuild_fts(conn: sqlite3.Connection) -> None:
    conn.execute("INSERT INTO samples_fts(samples_fts) VALUES ('rebuild')")


def _epoch(value: datetime) -> int:
    return int(value.timestamp())


def build_search_query(options: SearchOptions) -> tuple[str, list[object]]:
    """Return the SQL and parameters for ``options``.

    Unset time bounds add no predicate. Rows without an end time never match an
    end bound.
    """

    params: list[object] = []
    if options.query:
        sql = f"""
            SELECT
                s.*,
                snippet(
                    samples_fts, -1, '{SNIPPET_OPEN}', '{SNIPPET_CLOSE}',
                    '{SNIPPET_ELLIPSIS}', {SNIPPET_TOKENS}
                ) AS snippet
            FROM samples_fts
            JOIN samples s ON s.rowid = samples_fts.rowid
        """
        clauses = ["samples_fts MATCH ?"]
        params.append(options.query)
    else:
        sql = """
            SELECT s.*, '' AS snippet
            FROM samples s
        """
        clauses = []

    bounds = (
        ("s.start", ">=", options.start_after),
        ("s.start", "<=", options.start_before),
        ('s."end"', ">=", options.end_after),
        ('s."end"', "<=", options.end_before),
    )
    for column, op, value in bounds:
        if value is None:
            continue
        clauses.append(f"CAST(strftime('%s', {column}) AS INTEGER) {op} ?")
        params.append(_epoch(value))

    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    if options.query:
        sql += " ORDER BY samples_fts.rank"
    return sql, params


def search_samples(conn: sqlite3.Connection, options: SearchOptions) -> list[SampleHit]:
    sql, params = build_search_query(options)
    rows = conn.execute(sql, tuple(params)).fetchall()
    return [SampleHit.from_row(row, snippet=str(row["snippet"] or "")) for row in rows]
