from __future__ import annotations

import math
import os
import subprocess
from datetime import timedelta
from pathlib import Path
from typing import Protocol


class ProbeError(RuntimeError):
    """Raised when the duration of a media file cannot be measured."""


class FfprobeError(ProbeError):
    """Raised when ffprobe fails or prints something that is not a duration."""


class DurationProbe(Protocol):
    def probe(self, path: Path) -> timedelta:
        """Return the playback duration of ``path`` in whole seconds."""


def _ffprobe_executable_name() -> str:
    return "ffprobe.exe" if os.name == "nt" else "ffprobe"


def project_ffprobe_candidates() -> list[Path]:
    exe_name = _ffprobe_executable_name()
    cwd = Path.cwd()
    return [
        cwd / "tools" / "ffmpeg" / "bin" / exe_name,
        cwd / "ffmpeg" / "bin" / exe_name,
        cwd / "bin" / exe_name,
    ]


def resolve_ffprobe_command(ffprobe_path: Path | None = None) -> str:
    if ffprobe_path is not None:
        return str(Path(ffprobe_path).expanduser())

    for candidate in project_ffprobe_candidates():
        if candidate.exists():
            return str(candidate)

    return _ffprobe_executable_name()


def get_ffprobe_version(ffprobe_path: Path | None = None) -> str | None:
    command = resolve_ffprobe_command(ffprobe_path)
    try:
        completed = subprocess.run(
            [command, "-version"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    if completed.returncode != 0:
        return None
    first_line = completed.stdout.splitlines()[0] if completed.stdout else "ffprobe detected"
    return f"{first_line.strip()} (command: {command})"


def parse_duration_output(output: str) -> timedelta:
    """Parse ffprobe's ``format=duration`` CSV output, truncating to whole seconds."""

    text = output.strip()
    try:
        seconds = float(text)
    except ValueError as exc:
        raise FfprobeError(f"Unexpected ffprobe output: {text!r}") from exc
    if not math.isfinite(seconds) or seconds < 0:
        raise FfprobeError(f"Invalid duration reported by ffprobe: {text!r}")
    return timedelta(seconds=int(seconds))


class FfprobeDurationProbe:
    def __init__(self, ffprobe_path: Path | None = None) -> None:
        self.ffprobe_path = ffprobe_path

    def probe(self, path: Path) -> timedelta:
        command = resolve_ffprobe_command(self.ffprobe_path)
        try:
            completed = subprocess.run(
                [
                    command,
                    "-i",
                    f"file:{path}",
                    "-show_entries",
                    "format=duration",
                    "-v",
                    "quiet",
                    "-of",
                    "csv=p=0",
                ],
                check=True,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            raise FfprobeError(
                f"ffprobe not found (command: {command}). "
                "Install ffmpeg, place it under ./tools/ffmpeg/bin/, or set SEEKBACK_FFPROBE_PATH."
            ) from exc
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.strip() if exc.stderr else f"exit status {exc.returncode}"
            raise FfprobeError(stderr) from exc
        except OSError as exc:
            raise FfprobeError(f"ffprobe could not be started (command: {command}): {exc}") from exc
        return parse_duration_output(completed.stdout)
