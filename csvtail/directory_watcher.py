"""
Directory watcher: discovers rotated log files.

Startup ordering matters. The watchdog observer is installed before the
directory is listed, and every creation event buffered in the meantime
is merged into the listing, so a file created while we start up can
neither be missed nor reported twice.

Usage:
    watcher = DirectoryWatcher("/var/log/postgresql", pattern, RealFileSystem())
    backlog = watcher.start(after="postgresql-2024-01-01_000000.csv")
    while True:
        name = watcher.next_event(timeout=1.0)
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from typing import Callable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import WatchError
from .interfaces import FileSystemInterface
from .rotation import RotationPattern

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 32
_OBSERVER_JOIN_TIMEOUT = 3.0


class _CreationHandler(FileSystemEventHandler):
    """Forwards file creation events to the owning watcher."""

    def __init__(self, watcher: "DirectoryWatcher"):
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._watcher._on_created(os.fsdecode(event.src_path))


class DirectoryWatcher:
    """
    Watches one flat directory for new files matching a RotationPattern.

    ``observer_factory`` builds the watchdog observer; tests pass
    ``PollingObserver`` or a hand-driven fake.
    """

    def __init__(
        self,
        directory: str,
        pattern: RotationPattern,
        filesystem: FileSystemInterface,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        observer_factory: Callable[[], object] = Observer,
    ):
        self._directory = directory
        self._pattern = pattern
        self._fs = filesystem
        self._events: queue.Queue = queue.Queue(maxsize=queue_size)
        self._observer_factory = observer_factory
        self._observer = None
        self._handler = _CreationHandler(self)

        # Guards _seen and _overflowed against the observer thread. _seen
        # holds the startup listing and shrinks as newer files arrive.
        self._lock = threading.Lock()
        self._seen: Optional[set] = None
        self._overflowed: Optional[str] = None
        self._stopped = False

    @property
    def directory(self) -> str:
        return self._directory

    @property
    def handler(self) -> FileSystemEventHandler:
        return self._handler

    def start(self, after: str = "") -> List[str]:
        """Install the watch and return the backlog of existing files.

        The backlog is sorted, free of duplicates, and holds only names
        sorting strictly after *after* (when given).

        Raises:
            WatchError: If the watch cannot be installed or the directory
                cannot be listed.
        """
        observer = self._observer_factory()
        try:
            observer.schedule(self._handler, self._directory, recursive=False)
            observer.start()
        except OSError as e:
            raise WatchError(f"could not watch directory {self._directory}: {e}") from e
        self._observer = observer
        logger.debug("Watching %s for %s", self._directory, self._pattern.glob)

        listing_error: Optional[OSError] = None
        with self._lock:
            try:
                names = [n for n in self._fs.list_dir(self._directory) if self._pattern.matches(n)]
            except OSError as e:
                listing_error = e
                names = []

            # Merge creation events that raced with the listing
            while True:
                try:
                    names.append(self._events.get_nowait())
                except queue.Empty:
                    break
            found = set(names)
            self._seen = set(found)

        if listing_error is not None:
            self.stop()
            raise WatchError(f"could not list directory {self._directory}: {listing_error}") from listing_error

        backlog = sorted(found)
        if after:
            backlog = [n for n in backlog if n > after]
        logger.info("Found %d matching file(s) in %s, %d to follow", len(found), self._directory, len(backlog))
        return backlog

    def next_event(self, timeout: Optional[float] = None) -> Optional[str]:
        """Return the next newly created filename, or None on timeout.

        Raises:
            WatchError: If the event queue overflowed or the observer died.
        """
        self._check_health()
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            self._check_health()
            return None

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=_OBSERVER_JOIN_TIMEOUT)
        if self._observer.is_alive():
            logger.warning("Observer thread did not stop cleanly")

    def _check_health(self) -> None:
        if self._overflowed is not None:
            raise WatchError(
                f"event queue overflowed (capacity {self._events.maxsize}) at {self._overflowed!r}"
            )
        if self._observer is not None and not self._stopped and not self._observer.is_alive():
            raise WatchError(f"file system observer for {self._directory} stopped unexpectedly")

    def _on_created(self, path: str) -> None:
        """Runs on the observer thread."""
        name = os.path.basename(path)
        if not self._pattern.matches(name):
            return

        with self._lock:
            if self._seen is not None:
                if name in self._seen:
                    logger.debug("Dropping duplicate creation event for %s", name)
                    return
                self._seen.add(name)
                # Only names at or after the newest one can still be raced
                # duplicates of the startup listing
                newest = max(self._seen)
                self._seen = {n for n in self._seen if n >= newest}
            if self._overflowed is not None:
                return
            try:
                self._events.put_nowait(name)
            except queue.Full:
                self._overflowed = name
                logger.error("Event queue full, lost creation event for %s", name)
                return
        logger.info("newly created file %r matches the pattern", name)
