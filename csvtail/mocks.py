"""
Mock implementations for testing.

These classes implement the abstract interfaces with in-memory behavior
suitable for unit testing without a real log directory.
"""

from typing import Callable, Optional, List, Dict, Sequence
from datetime import datetime, timedelta
import io
import os
import threading

from .interfaces import (
    FileSystemInterface, ClockInterface, CheckpointStoreInterface,
    RecordProcessor, StreamPosition,
)
from .errors import CheckpointError, CheckpointExistsError, NotInitializedError


class _MockBinaryFile(io.RawIOBase):
    """Read handle onto a MockFileSystem entry that sees later appends."""

    def __init__(self, fs: "MockFileSystem", path: str):
        super().__init__()
        self._fs = fs
        self._path = path
        self._pos = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._fs._files.get(self._path, b"")[self._pos:self._pos + len(buffer)]
        buffer[:len(data)] = data
        self._pos += len(data)
        return len(data)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            self._pos = offset
        elif whence == io.SEEK_CUR:
            self._pos += offset
        else:
            self._pos = len(self._fs._files.get(self._path, b"")) + offset
        return self._pos

    def tell(self) -> int:
        return self._pos


class MockFileSystem(FileSystemInterface):
    """
    In-memory file system for testing.

    All file operations are performed in memory without touching disk.
    ``open_binary`` handles see data added with ``append()`` after they
    were opened, the way a reader of a growing log file does.
    """

    def __init__(self):
        self._files: Dict[str, bytes] = {}
        self._dirs: set = set()
        self._lock = threading.Lock()
        self._open_calls: List[str] = []

    def open_binary(self, path: str):
        with self._lock:
            if path not in self._files:
                raise FileNotFoundError(f"No such file: {path}")
            self._open_calls.append(path)
            return _MockBinaryFile(self, path)

    def list_dir(self, path: str) -> List[str]:
        with self._lock:
            path = path.rstrip("/") or "/"
            names = [
                os.path.basename(p) for p in self._files
                if os.path.dirname(p) == path
            ]
            if not names and path not in self._dirs:
                raise FileNotFoundError(f"No such directory: {path}")
            return names

    def read_file(self, path: str) -> str:
        with self._lock:
            if path not in self._files:
                raise FileNotFoundError(f"No such file: {path}")
            return self._files[path].decode("utf-8")

    def replace_file(self, path: str, content: str) -> None:
        with self._lock:
            self._files[path] = content.encode("utf-8")

    def ensure_dir(self, path: str) -> None:
        self._dirs.add(path.rstrip("/") or "/")

    # Test helper methods

    def add_file(self, path: str, data: bytes = b"") -> None:
        """Create (or truncate) a file with *data*."""
        with self._lock:
            self._files[path] = bytes(data)
            self._dirs.add(os.path.dirname(path))

    def append(self, path: str, data: bytes) -> None:
        """Append *data* to an existing file, as the log writer would."""
        with self._lock:
            if path not in self._files:
                raise FileNotFoundError(f"No such file: {path}")
            self._files[path] += data

    def get_bytes(self, path: str) -> bytes:
        return self._files[path]

    def get_open_calls(self) -> List[str]:
        """Paths passed to open_binary(), in call order."""
        return self._open_calls.copy()


class MockClock(ClockInterface):
    """
    Controllable clock for testing.

    Time can be advanced manually for deterministic testing of
    time-dependent behavior.
    """

    def __init__(self, start_time: Optional[datetime] = None):
        self._current_time = start_time or datetime(2025, 1, 1, 0, 0, 0)

    def now(self) -> datetime:
        return self._current_time

    def timestamp(self) -> float:
        return self._current_time.timestamp()

    # Test helper methods

    def advance(self, seconds: float) -> None:
        """Advance time by specified seconds."""
        self._current_time += timedelta(seconds=seconds)

    def set_time(self, dt: datetime) -> None:
        """Set current time to specific datetime."""
        self._current_time = dt


class RecordingProcessor(RecordProcessor):
    """
    Processor that remembers every record it was handed.

    ``fail_at`` makes the N-th call (0-based) raise; ``on_record`` is
    invoked after each successful record, which lets tests append data
    or stop the loop at a precise point.
    """

    def __init__(
        self,
        fail_at: Optional[int] = None,
        on_record: Optional[Callable[[StreamPosition, List[str]], None]] = None,
    ):
        self.records: List[List[str]] = []
        self.positions: List[StreamPosition] = []
        self.closed = False
        self._fail_at = fail_at
        self._on_record = on_record

    def process(self, position: StreamPosition, record: Sequence[str]) -> None:
        if self._fail_at is not None and len(self.records) == self._fail_at:
            raise RuntimeError(f"processor told to fail at record {self._fail_at}")
        self.records.append(list(record))
        self.positions.append(position.copy())
        if self._on_record:
            self._on_record(position, list(record))

    def close(self) -> None:
        self.closed = True


class InMemoryCheckpointStore(CheckpointStoreInterface):
    """
    Checkpoint store kept in memory.

    Every write is recorded so tests can assert on the persistence cadence.
    """

    def __init__(self, position: Optional[StreamPosition] = None):
        self._position = position.copy() if position else None
        self.writes: List[StreamPosition] = []
        self.closed = False
        self._fail_writes = False

    def initialize(self, position: StreamPosition) -> None:
        if self._position is not None:
            raise CheckpointExistsError("checkpoint store is already initialized")
        self._position = position.copy()

    def read(self) -> StreamPosition:
        if self._position is None:
            raise NotInitializedError("checkpoint store has not been initialized")
        return self._position.copy()

    def write(self, position: StreamPosition) -> None:
        if self._fail_writes:
            raise CheckpointError("simulated checkpoint write failure")
        self._position = position.copy()
        self.writes.append(position.copy())

    def close(self) -> None:
        self.closed = True

    # Test helper methods

    def set_fail_writes(self, fail: bool) -> None:
        """Make write() fail (for testing error handling)."""
        self._fail_writes = fail
