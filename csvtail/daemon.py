"""
Tail daemon: ties the tailer components together.

Components:
- JsonCheckpointStore: durable position, locked for the process lifetime
- DirectoryWatcher: watchdog-backed discovery of rotated files
- RotationSequencer: orders rotations, hands them to the loop one by one
- TailLoop: reads records and feeds the processor
- StatusManager: writes status.json for operators (optional)
- TailMetrics: Prometheus registry, served on /metrics when configured
"""

from __future__ import annotations

import logging
import signal
from typing import Callable, Optional

from watchdog.observers import Observer

from .checkpoint import JsonCheckpointStore
from .config import TailConfig
from .directory_watcher import DirectoryWatcher
from .errors import CsvTailError, WatchError
from .implementations import RealClock, RealFileSystem
from .interfaces import (
    CheckpointStoreInterface,
    ClockInterface,
    FileSystemInterface,
    RecordProcessor,
    StreamPosition,
)
from .metrics import TailMetrics
from .processors import load_processor
from .sequencer import RotationSequencer
from .status_manager import StatusManager
from .tail_loop import TailLoop

logger = logging.getLogger(__name__)


class TailDaemon:
    """
    Long-running tailer process.

    Usage:
        daemon = TailDaemon(config)
        daemon.install_signal_handlers()
        exit_code = daemon.run()

    Collaborators default to the real implementations; tests inject mocks.
    """

    def __init__(
        self,
        config: TailConfig,
        filesystem: Optional[FileSystemInterface] = None,
        clock: Optional[ClockInterface] = None,
        store: Optional[CheckpointStoreInterface] = None,
        processor: Optional[RecordProcessor] = None,
        observer_factory: Callable[[], object] = Observer,
        metrics: Optional[TailMetrics] = None,
    ):
        self._config = config
        self._fs = filesystem or RealFileSystem()
        self._clock = clock or RealClock()
        self._store = store or JsonCheckpointStore(config.checkpoint_path, lock_timeout=config.lock_timeout)
        self._processor = processor
        self._observer_factory = observer_factory
        self._metrics = metrics if metrics is not None else TailMetrics()

        self._watcher: Optional[DirectoryWatcher] = None
        self._sequencer: Optional[RotationSequencer] = None
        self._loop: Optional[TailLoop] = None
        self._status: Optional[StatusManager] = None
        self._position: Optional[StreamPosition] = None
        self._stop_requested = False

    @property
    def metrics(self) -> TailMetrics:
        return self._metrics

    @property
    def loop(self) -> Optional[TailLoop]:
        return self._loop

    @property
    def position(self) -> Optional[StreamPosition]:
        """Current stream position, if the daemon got far enough to know it."""
        if self._loop is not None:
            return self._loop.position
        return self._position

    def start(self) -> None:
        """Read the checkpoint, start watching and build the tail loop.

        Raises:
            CsvTailError: If any component fails to start.
        """
        config = self._config
        position = self._store.read()
        self._position = position
        self._metrics.mark_started(self._clock)

        if self._processor is None:
            self._processor = load_processor(
                config.processor, config.processor_args, registry=self._metrics.registry
            )
        if config.metrics_address:
            self._metrics.serve(config.metrics_address)

        pattern = config.pattern
        if position.filename and not pattern.matches(position.filename):
            logger.warning(
                "Checkpointed file %r does not match %s", position.filename, pattern.template
            )

        self._watcher = DirectoryWatcher(
            config.directory,
            pattern,
            self._fs,
            queue_size=config.event_queue_size,
            observer_factory=self._observer_factory,
        )
        backlog = self._watcher.start(after=position.filename)

        if not position.filename:
            if not backlog:
                raise WatchError(f"could not find any suitable log files in directory {config.directory}")
            position = StreamPosition(backlog.pop(0), 0, position.bytes_read_total)
            self._position = position
            logger.info("No file in checkpoint, starting from oldest file %s", position.filename)

        self._sequencer = RotationSequencer(self._watcher, backlog, current=position.filename)
        self._sequencer.start()

        if config.status_path:
            self._status = StatusManager(
                self._fs,
                self._clock,
                config.status_path,
                update_interval=config.status_interval,
            )
            self._status.start_session(config.directory, position)

        self._loop = TailLoop(
            config,
            self._fs,
            self._store,
            self._processor,
            self._sequencer,
            position,
            status=self._status,
            metrics=self._metrics,
        )
        if self._stop_requested:
            self._loop.stop()

    def run(self) -> int:
        """Start (if needed) and tail until stopped.

        Returns the process exit code: 0 after a graceful stop, 1 after a
        fatal error.
        """
        try:
            if self._loop is None:
                self.start()
            self._loop.run()
        except (CsvTailError, OSError) as e:
            self._report_fatal(e)
            return 1
        finally:
            self.shutdown()
        return 0

    def stop(self) -> None:
        """Request a graceful stop at the next record boundary."""
        logger.info("Stopping tailer...")
        self._stop_requested = True
        if self._loop is not None:
            self._loop.stop()

    def shutdown(self) -> None:
        """Release threads, the metrics listener, the processor and the store lock."""
        self._metrics.shutdown()
        if self._sequencer is not None:
            self._sequencer.stop()
        if self._watcher is not None:
            self._watcher.stop()
        try:
            if self._processor is not None:
                self._processor.close()
        finally:
            self._store.close()

    def install_signal_handlers(self) -> None:
        """Turn SIGINT/SIGTERM into a graceful stop."""
        def signal_handler(sig, frame):
            logger.info("Received signal %d", sig)
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _report_fatal(self, error: BaseException) -> None:
        position = self.position
        if position is not None:
            logger.error(
                "fatal: %s (file %r, offset %d)", error, position.filename, position.offset
            )
        else:
            logger.error("fatal: %s", error)
        if self._status is not None:
            try:
                self._status.record_error(str(error))
            except OSError as e:
                logger.warning("Could not update status file: %s", e)
