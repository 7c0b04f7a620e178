from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from seekback.config import get_settings
from seekback.doctor import run_doctor
from seekback.export import json as json_export
from seekback.logging_utils import configure_logging
from seekback.services import EventsWindow, SeekbackService
from seekback.storage.errors import SampleNotFoundError, StorageError
from seekback.storage.models import SamplePreview

app = typer.Typer(help="Seekback - index and search a directory of timestamped recordings")
console = Console()


def parse_time_bound(value: str | None) -> datetime | None:
    """Parse an ISO-8601 time given on the command line.

    Times without an offset are taken as local time. Empty values mean no bound.
    """

    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(
            f"Time must be ISO-8601, e.g. 2024-05-01T10:00 or 2024-05-01T10:00:00+02:00: {value!r}"
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def format_duration(sample: SamplePreview) -> str:
    if not sample.duration_known:
        return "unknown"
    return str(sample.duration)


def _time_option(value: str | None, name: str) -> datetime | None:
    try:
        return parse_time_bound(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint=name) from exc


def _service() -> SeekbackService:
    try:
        return SeekbackService()
    except (OSError, RuntimeError) as exc:
        console.print(f"[red]startup failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc


def _samples_table(title: str, samples: list[SamplePreview], *, snippets: bool = False) -> Table:
    table = Table(title=title)
    table.add_column("ID")
    table.add_column("Start")
    table.add_column("Duration")
    table.add_column("Summary")
    if snippets:
        table.add_column("Snippet")
    for sample in samples:
        row = [escape(sample.id), sample.start.isoformat(), format_duration(sample), escape(sample.summary.strip())]
        if snippets:
            row.append(escape(getattr(sample, "snippet", "")))
        table.add_row(*row)
    return table


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
) -> None:
    settings = get_settings()
    configure_logging(log_level or settings.log_level)


@app.command()
def doctor() -> None:
    """Check local runtime prerequisites."""

    settings = get_settings()
    checks = run_doctor(settings)

    table = Table(title="Seekback doctor")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Detail")

    failed = False
    for check in checks:
        status = check.status.upper()
        color = {"ok": "green", "warn": "yellow", "fail": "red"}.get(check.status, "white")
        table.add_row(check.name, f"[{color}]{status}[/{color}]", check.detail)
        if check.status == "fail":
            failed = True

    console.print(table)
    if failed:
        raise typer.Exit(code=1)


@app.command()
def sync() -> None:
    """Reconcile the database with the samples directory once."""

    service = _service()
    try:
        report = service.sync()
    except (OSError, StorageError) as exc:
        console.print(f"[red]sync failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc

    console.print(
        f"[green]Synced {report.total} samples:[/green] "
        f"{report.inserted} inserted, {report.updated} updated, {report.deleted} deleted, "
        f"{report.probed} probed, {report.ends_set} end times set"
    )


@app.command()
def watch(
    interval: float | None = typer.Option(None, "--interval", min=0.1, help="Seconds between checks"),
    initial_sync: bool = typer.Option(True, "--initial-sync/--no-initial-sync"),
) -> None:
    """Keep the database in sync until interrupted."""

    service = _service()
    if initial_sync:
        try:
            service.sync()
        except (OSError, StorageError) as exc:
            console.print(f"[red]sync failed:[/red] {exc}")
            raise typer.Exit(code=2) from exc
    watcher = service.watcher()
    if interval is not None:
        watcher.interval_s = interval
    console.print(
        f"[green]Watching[/green] {service.samples_path} every {watcher.interval_s:g}s (Ctrl+C to stop)"
    )
    try:
        watcher.run()
    except KeyboardInterrupt:
        watcher.stop()
        console.print("[yellow]Stopped.[/yellow]")


@app.command("list")
def list_cmd() -> None:
    """List samples found in the samples directory."""

    service = _service()
    try:
        samples = service.list_samples()
    except OSError as exc:
        console.print(f"[red]list failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc
    if not samples:
        console.print("[yellow]No samples found.[/yellow]")
        raise typer.Exit(code=0)
    console.print(_samples_table("Samples", samples))


@app.command()
def show(
    sample_id: str = typer.Argument(..., help="Sample ID"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
) -> None:
    """Show one sample and the samples recorded at the same time."""

    service = _service()
    try:
        sample = service.get_sample(sample_id)
        overlaps = [item for item in service.overlapping(sample) if item.id != sample.id]
    except (OSError, StorageError) as exc:
        console.print(f"[red]show failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc

    if as_json:
        payload = json_export.sample_payload(sample)
        payload["overlaps"] = [item.id for item in overlaps]
        sys.stdout.write(json_export.dumps_payload(payload) + "\n")
        return

    start, end = sample.time_range()
    console.print(f"[green]ID:[/green] {escape(sample.id)}")
    console.print(f"[green]Start:[/green] {start.isoformat()}")
    console.print(f"[green]End:[/green] {end.isoformat()}")
    console.print(f"[green]Duration:[/green] {format_duration(sample)}")
    console.print(f"[green]Media:[/green] {', '.join(sample.media) or '-'}")
    console.print(f"[green]Summary:[/green] {escape(sample.summary) or '-'}")
    console.print("")
    if sample.transcript:
        console.print(sample.transcript, markup=False)
    else:
        console.print("[yellow]No transcript.[/yellow]")
    if overlaps:
        console.print("")
        console.print(_samples_table("Overlapping samples", list(overlaps)))


@app.command()
def search(
    query: str = typer.Argument("", help="FTS query (empty lists everything)"),
    start: str | None = typer.Option(None, "--start", help="Window start (ISO-8601)"),
    end: str | None = typer.Option(None, "--end", help="Window end (ISO-8601)"),
) -> None:
    """Search transcripts and summaries using SQLite FTS5."""

    window_start = _time_option(start, "--start")
    window_end = _time_option(end, "--end")
    service = _service()
    try:
        hits = service.search(query, start=window_start, end=window_end)
    except StorageError as exc:
        console.print(f"[red]search failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc
    if not hits:
        console.print("[yellow]No matches found.[/yellow]")
        raise typer.Exit(code=0)
    console.print(_samples_table("Search results", list(hits), snippets=bool(query)))


@app.command()
def events(
    start: str = typer.Option(..., "--start", help="Window start (ISO-8601)"),
    end: str | None = typer.Option(None, "--end", help="Window end (ISO-8601, default: now)"),
    overlap: bool = typer.Option(False, "--overlap", help="Include samples that only partly fall in the window"),
) -> None:
    """Print samples in a time window as JSON, newest first."""

    window_start = _time_option(start, "--start")
    window_end = _time_option(end, "--end") or datetime.now().astimezone()
    if window_start is None:
        raise typer.BadParameter("A start time is required.", param_hint="--start")
    service = _service()
    try:
        hits = service.events(EventsWindow(start=window_start, end=window_end, overlap=overlap))
    except StorageError as exc:
        console.print(f"[red]events failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc
    sys.stdout.write(json_export.dumps_payload(json_export.build_events_payload(hits)) + "\n")


@app.command("set-summary")
def set_summary(
    sample_id: str = typer.Argument(..., help="Sample ID"),
    summary: str = typer.Argument(..., help="Summary text"),
) -> None:
    """Set the summary stored for a sample."""

    service = _service()
    try:
        service.set_summary(sample_id, summary)
    except SampleNotFoundError as exc:
        console.print(f"[red]unknown sample:[/red] {sample_id} (run `seekback sync` first?)")
        raise typer.Exit(code=2) from exc
    except StorageError as exc:
        console.print(f"[red]set-summary failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc
    console.print(f"[green]Summary set for[/green] {sample_id}")


@app.command("set-transcript")
def set_transcript(
    sample_id: str = typer.Argument(..., help="Sample ID"),
    transcript_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
) -> None:
    """Write a transcript sidecar for a sample; it is indexed on the next sync."""

    service = _service()
    try:
        path = service.set_transcript(sample_id, transcript_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        console.print(f"[red]set-transcript failed:[/red] {exc}")
        raise typer.Exit(code=2) from exc
    console.print(f"[green]Transcript written:[/green] {path}")


if __name__ == "__main__":
    app()
