"""
Tail loop: the central read/switch state machine.

The loop owns the stream position. It reads the current file from the
checkpointed offset to end of stream, hands every record to the
processor, and only moves on to the next rotated file once it has hit
end of stream *after* learning that a successor exists. Switching any
earlier could skip records the writer appended just before rotating.

States:
    READING            parsing records from the current file
    AWAITING_ROTATION  at end of stream, waiting for data or a successor
    SWITCHING          closing the exhausted file, opening the next one
    STOPPED            loop finished (graceful stop or fatal error)
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Optional

from .config import TailConfig
from .errors import ProcessorError, ShortRecordError
from .interfaces import (
    CheckpointStoreInterface,
    FileSystemInterface,
    RecordProcessor,
    StreamPosition,
    TailState,
)
from .metrics import TailMetrics
from .record_reader import RecordReader
from .sequencer import RotationSequencer
from .status_manager import StatusManager

logger = logging.getLogger(__name__)

# Longest single wait, bounds how long a stop request can go unnoticed
_WAIT_SLICE = 0.5


class TailLoop:
    """
    Reads rotating log files in order and checkpoints progress.

    Usage:
        loop = TailLoop(config, fs, store, processor, sequencer, position)
        loop.run()      # blocks until stop() or a fatal error

    ``run()`` raises on any fatal error; the checkpoint is never advanced
    past a record the processor has not accepted.
    """

    def __init__(
        self,
        config: TailConfig,
        filesystem: FileSystemInterface,
        store: CheckpointStoreInterface,
        processor: RecordProcessor,
        sequencer: RotationSequencer,
        position: StreamPosition,
        status: Optional[StatusManager] = None,
        metrics: Optional[TailMetrics] = None,
    ):
        self._config = config
        self._fs = filesystem
        self._store = store
        self._processor = processor
        self._sequencer = sequencer
        self._position = position.copy()
        self._status = status
        self._metrics = metrics

        self._state = TailState.STOPPED
        self._stop_event = threading.Event()
        self._bytes_since_persist = 0
        self._fields_per_record = config.fields_per_record
        self._delay = config.poll_interval

    @property
    def state(self) -> TailState:
        return self._state

    @property
    def position(self) -> StreamPosition:
        """Copy of the in-memory position (may be ahead of the checkpoint)."""
        return self._position.copy()

    @property
    def current_delay(self) -> float:
        """Current re-poll delay (for testing)."""
        return self._delay

    def stop(self) -> None:
        """Ask the loop to finish at the next record boundary.

        Safe to call from a signal handler or another thread.
        """
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> StreamPosition:
        """Tail until stopped. Returns the final (persisted) position."""
        logger.info(
            "starting to tail from file %r, position %d",
            self._position.filename, self._position.offset,
        )
        try:
            while not self.stopping:
                next_name = self._read_until_switch()
                if next_name is None:
                    break
                self._switch_to(next_name)
            self._persist()
            logger.info(
                "Stopped at file %r, position %d",
                self._position.filename, self._position.offset,
            )
        finally:
            self._set_state(TailState.STOPPED)
        return self._position.copy()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_until_switch(self) -> Optional[str]:
        """Read the current file until it is exhausted and has a successor.

        Returns the successor's name, or None when stopped.
        """
        path = os.path.join(self._config.directory, self._position.filename)
        next_name: Optional[str] = None

        with self._fs.open_binary(path) as fh:
            while not self.stopping:
                self._set_state(TailState.READING)
                fh.seek(self._position.offset)
                read_any = self._read_records(fh)
                if self.stopping:
                    return None
                if read_any:
                    self._delay = self._config.poll_interval

                if next_name is not None:
                    return next_name

                self._set_state(TailState.AWAITING_ROTATION)
                next_name = self._wait_for_rotation(self._delay)
                if next_name is not None:
                    logger.info("read loop: will switch over to file %s when possible", next_name)
                    if self._status:
                        self._status.record_pending_rotation(next_name)
                    # Read once more before switching; the writer may have
                    # appended to this file right before rotating.
                elif not read_any:
                    self._delay = min(
                        self._delay * self._config.backoff_factor,
                        self._config.max_poll_interval,
                    )
        return None

    def _read_records(self, fh) -> bool:
        """Process records up to end of stream. Returns True if any were read."""
        reader = RecordReader(
            fh,
            lazy_quotes=True,
            require_trailing_newline=True,
            fields_per_record=self._fields_per_record,
        )
        read_any = False
        while not self.stopping:
            record = reader.read()
            if record is None:
                break
            if self._fields_per_record == 0:
                self._fields_per_record = reader.fields_per_record

            min_fields = self._config.min_fields
            if min_fields and len(record.fields) < min_fields:
                raise ShortRecordError(
                    f"record at {self._position.filename}:{self._position.offset} has "
                    f"{len(record.fields)} fields, need at least {min_fields}"
                )

            try:
                self._processor.process(self._position.copy(), record.fields)
            except Exception as e:
                raise ProcessorError(f"the processor failed: {e}") from e

            self._position.offset += record.nbytes
            self._position.bytes_read_total += record.nbytes
            self._bytes_since_persist += record.nbytes
            read_any = True
            if self._metrics:
                self._metrics.record_bytes(record.nbytes)
            if self._status:
                self._status.record_record(self._position, record.nbytes)

            if self._bytes_since_persist >= self._config.checkpoint_interval_bytes:
                self._persist()
        return read_any

    def _wait_for_rotation(self, timeout: float) -> Optional[str]:
        remaining = timeout
        while remaining > 0 and not self.stopping:
            wait = min(remaining, _WAIT_SLICE)
            name = self._sequencer.take(timeout=wait)
            if name is not None:
                return name
            remaining -= wait
        return None

    # ------------------------------------------------------------------
    # Switching and persistence
    # ------------------------------------------------------------------

    def _switch_to(self, filename: str) -> None:
        self._set_state(TailState.SWITCHING)
        logger.info("read loop: switching over to file %s", filename)
        self._position.filename = filename
        self._position.offset = 0
        self._delay = self._config.poll_interval
        self._persist()
        if self._status:
            self._status.record_switch(self._position)

    def _persist(self) -> None:
        self._store.write(self._position)
        self._bytes_since_persist = 0
        if self._status:
            self._status.record_checkpoint(self._position)

    def _set_state(self, state: TailState) -> None:
        if state != self._state:
            logger.debug("read loop: %s -> %s", self._state.value, state.value)
            self._state = state
            if self._status:
                self._status.set_state(state)
