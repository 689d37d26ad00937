"""
Status Manager for the tailer.

Writes stream position and counters to status.json for monitoring.
Uses atomic file writes so readers never see a partial document.
"""

from typing import Optional
from datetime import datetime
import json
import os

from .interfaces import FileSystemInterface, ClockInterface, StreamPosition, TailState


class StatusManager:
    """
    Manages status.json with tailer state.

    Provides a single JSON file that operators can read to understand:
    - Process start time and uptime
    - Current file and offset
    - Bytes read this run, checkpoint and rotation counters
    - Health indicators
    """

    def __init__(
        self,
        filesystem: FileSystemInterface,
        clock: ClockInterface,
        status_path: str,
        update_interval: float = 1.0,
    ):
        self._fs = filesystem
        self._clock = clock
        self._status_path = status_path
        self._update_interval = update_interval

        self._started: Optional[datetime] = None
        self._directory: str = ""
        self._state = TailState.STOPPED
        self._position: Optional[StreamPosition] = None
        self._bytes_read = 0
        self._records_processed = 0
        self._checkpoints_written = 0
        self._files_switched = 0
        self._pending_rotation: Optional[str] = None
        self._last_record_time: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._last_write_ts: Optional[float] = None

    @property
    def status_path(self) -> str:
        return self._status_path

    def start_session(self, directory: str, position: StreamPosition) -> None:
        """Start tracking a new run."""
        self._started = self._clock.now()
        self._directory = directory
        self._position = position.copy()
        self._state = TailState.READING
        self._bytes_read = 0
        self._records_processed = 0
        self._checkpoints_written = 0
        self._files_switched = 0
        self._pending_rotation = None
        self._last_error = None
        self._fs.ensure_dir(os.path.dirname(self._status_path) or ".")
        self.update()

    def set_state(self, state: TailState) -> None:
        if state != self._state:
            self._state = state
            if state == TailState.STOPPED:
                self.update()
            else:
                self.maybe_update()

    def record_record(self, position: StreamPosition, nbytes: int) -> None:
        """Record one processed record; writes at most once per interval."""
        self._position = position.copy()
        self._bytes_read += nbytes
        self._records_processed += 1
        self._last_record_time = self._clock.now()
        self.maybe_update()

    def record_checkpoint(self, position: StreamPosition) -> None:
        self._position = position.copy()
        self._checkpoints_written += 1
        self.maybe_update()

    def record_pending_rotation(self, filename: str) -> None:
        self._pending_rotation = filename
        self.update()

    def record_switch(self, position: StreamPosition) -> None:
        self._position = position.copy()
        self._files_switched += 1
        self._pending_rotation = None
        self.update()

    def record_error(self, message: str) -> None:
        self._last_error = message
        self.update()

    def maybe_update(self) -> None:
        now = self._clock.timestamp()
        if self._last_write_ts is None or now - self._last_write_ts >= self._update_interval:
            self.update()

    def update(self) -> None:
        """Write current status to file using atomic write."""
        now = self._clock.now()
        uptime = (now - self._started).total_seconds() if self._started else 0

        if self._last_record_time:
            idle_seconds = (now - self._last_record_time).total_seconds()
        else:
            idle_seconds = uptime

        position = self._position
        status = {
            "session": {
                "pid": os.getpid(),
                "started": self._started.isoformat() if self._started else None,
                "start_time_seconds": self._started.timestamp() if self._started else None,
                "uptime_seconds": int(uptime),
                "directory": self._directory,
            },
            "stream": {
                "state": self._state.value,
                "filename": position.filename if position else None,
                "offset": position.offset if position else None,
                "bytes_read_total": position.bytes_read_total if position else None,
                "pending_rotation": self._pending_rotation,
            },
            "counters": {
                "bytes_read": self._bytes_read,
                "records_processed": self._records_processed,
                "checkpoints_written": self._checkpoints_written,
                "files_switched": self._files_switched,
            },
            "health": {
                "last_record": self._last_record_time.isoformat() if self._last_record_time else None,
                "idle_seconds": int(idle_seconds),
                "last_error": self._last_error,
                "status": self._compute_health_status(),
            },
            "last_updated": now.isoformat(),
        }

        self._fs.replace_file(self._status_path, json.dumps(status, indent=2))
        self._last_write_ts = self._clock.timestamp()

    def _compute_health_status(self) -> str:
        if self._last_error:
            return "failed"
        if self._state == TailState.STOPPED:
            return "stopped"
        if self._state == TailState.AWAITING_ROTATION:
            return "waiting"
        return "healthy"
