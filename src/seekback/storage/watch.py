from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Protocol

from seekback.storage.models import SyncReport

LOGGER = logging.getLogger("seekback.storage.watch")


class Syncable(Protocol):
    def sync_files(self) -> SyncReport: ...


class DirectoryWatcher:
    """Runs ``sync_files`` whenever the samples directory has newer files.

    The loop checks every ``interval_s`` seconds and exits once ``stop()`` is
    called or the given stop event is set.
    """

    def __init__(
        self,
        storage: Syncable,
        samples_path: Path,
        interval_s: float,
        *,
        stop_event: threading.Event | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("Watch interval must be positive.")
        self.storage = storage
        self.samples_path = Path(samples_path)
        self.interval_s = interval_s
        self.stop_event = stop_event or threading.Event()
        self._clock = clock
        self.last_sync = clock()
        self._thread: threading.Thread | None = None

    def latest_modified(self) -> float | None:
        """Newest mtime in the directory, or None when it cannot be listed."""

        try:
            with os.scandir(self.samples_path) as entries:
                listed = list(entries)
        except OSError as exc:
            LOGGER.error("read samples directory: %s", exc)
            return None
        latest = 0.0
        for entry in listed:
            try:
                mtime = entry.stat().st_mtime
            except OSError as exc:
                LOGGER.warning("get file info (ignoring this file): %s", exc)
                continue
            latest = max(latest, mtime)
        return latest

    def tick(self) -> bool:
        LOGGER.debug("checking samples directory...")
        latest = self.latest_modified()
        if latest is None:
            return False
        if latest <= self.last_sync:
            LOGGER.debug("no new files.")
            return False

        LOGGER.info(
            "latest modified time (%s) is after last sync (%s), syncing files...",
            time.ctime(latest),
            time.ctime(self.last_sync),
        )
        try:
            self.storage.sync_files()
        except Exception:
            LOGGER.exception("sync files failed; retrying on next check")
            return False
        self.last_sync = self._clock()
        LOGGER.info("files synced.")
        return True

    def run(self) -> None:
        LOGGER.info("watching %s every %.1fs", self.samples_path, self.interval_s)
        while not self.stop_event.wait(self.interval_s):
            self.tick()
        LOGGER.info("stopped watching %s", self.samples_path)

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._thread = threading.Thread(target=self.run, name="seekback-watch", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
