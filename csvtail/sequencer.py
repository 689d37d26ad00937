"""
Rotation sequencer.

Runs on its own thread between the DirectoryWatcher and the TailLoop. It
owns the ordered list of files waiting to be read and offers the head of
that list to the tail loop through a single-slot handoff queue. A file
only becomes "current" once the tail loop has room for it, so a rotation
event can never be lost or delivered twice.

Every newly discovered name must sort strictly after the current file and
after everything already pending; anything else means the log directory
is not behaving like a rotating log and is fatal.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Iterable, List, Optional

from .directory_watcher import DirectoryWatcher
from .errors import RotationOrderError

logger = logging.getLogger(__name__)

_EVENT_POLL_INTERVAL = 0.1

# Placed in the handoff slot to wake a waiting tail loop after a failure
_FAILED = object()


class RotationSequencer:
    """
    Orders rotated filenames and hands them to the tail loop one at a time.

    Usage:
        sequencer = RotationSequencer(watcher, backlog, current=position.filename)
        sequencer.start()
        next_name = sequencer.take(timeout=1.0)   # None if nothing pending
    """

    def __init__(
        self,
        watcher: DirectoryWatcher,
        initial_files: Iterable[str],
        current: str = "",
        event_poll_interval: float = _EVENT_POLL_INTERVAL,
    ):
        self._watcher = watcher
        self._current = current
        self._pending: List[str] = []
        self._event_poll_interval = event_poll_interval
        self._handoff: queue.Queue = queue.Queue(maxsize=1)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None

        for name in initial_files:
            self._enqueue(name)

    @property
    def current(self) -> str:
        """Most recent filename handed off (or the starting file)."""
        return self._current

    @property
    def pending(self) -> List[str]:
        return list(self._pending)

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="csvtail-sequencer", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def take(self, timeout: float) -> Optional[str]:
        """Wait up to *timeout* seconds for the next file to read.

        Raises:
            RotationOrderError, WatchError: Whatever stopped the sequencer
                thread, re-raised in the caller's thread.
        """
        self.raise_if_failed()
        try:
            name = self._handoff.get(timeout=timeout)
        except queue.Empty:
            self.raise_if_failed()
            return None
        if name is _FAILED:
            self.raise_if_failed()
            return None
        return name

    def raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                if self._pending and self._offer(self._pending[0]):
                    self._current = self._pending.pop(0)
                    continue
                name = self._watcher.next_event(timeout=self._event_poll_interval)
                if name is not None:
                    self._enqueue(name)
        except Exception as e:
            logger.debug("Rotation sequencer stopped: %s", e)
            self._error = e
            self._offer(_FAILED)

    def _offer(self, item) -> bool:
        try:
            self._handoff.put_nowait(item)
        except queue.Full:
            return False
        if item is not _FAILED:
            logger.debug("Offered %s to the read loop", item)
        return True

    def _enqueue(self, name: str) -> None:
        if self._current and name <= self._current:
            raise RotationOrderError(
                f"newly created file {name!r} does not sort after the current filename {self._current!r}"
            )
        for queued in self._pending:
            if name <= queued:
                raise RotationOrderError(
                    f"newly created file {name!r} does not sort after queued filename {queued!r}"
                )
        self._pending.append(name)
