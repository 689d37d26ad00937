"""
Interfaces for the csvtail log tailer.

Abstract base classes that define contracts for all pluggable components.
This enables dependency injection and mock-based testing without touching
a real log directory.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, List, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TailState(Enum):
    """Tail loop states."""
    READING = "reading"
    AWAITING_ROTATION = "awaiting_rotation"
    SWITCHING = "switching"
    STOPPED = "stopped"


@dataclass
class StreamPosition:
    """Resumption point in the rotating log stream.

    ``offset`` counts bytes of ``filename`` fully delivered to the
    processor; it goes back to 0 exactly when ``filename`` changes.
    ``bytes_read_total`` accumulates across files and restarts.
    """
    filename: str
    offset: int = 0
    bytes_read_total: int = 0

    def copy(self) -> "StreamPosition":
        return StreamPosition(self.filename, self.offset, self.bytes_read_total)


class FileSystemInterface(ABC):
    """
    Abstract interface for file system operations.

    Implementations:
    - RealFileSystem: Actual file I/O
    - MockFileSystem: In-memory for testing
    """

    @abstractmethod
    def open_binary(self, path: str) -> BinaryIO:
        """Open a file for binary reading. Raises FileNotFoundError if missing."""
        pass

    @abstractmethod
    def list_dir(self, path: str) -> List[str]:
        """List filenames in a directory. Raises OSError on failure."""
        pass

    @abstractmethod
    def read_file(self, path: str) -> str:
        """Read entire file contents as text."""
        pass

    @abstractmethod
    def replace_file(self, path: str, content: str) -> None:
        """Atomically replace *path* with *content* (readers never see a partial file)."""
        pass

    @abstractmethod
    def ensure_dir(self, path: str) -> None:
        """Create directory and parents if they don't exist."""
        pass


class ClockInterface(ABC):
    """
    Abstract interface for time operations.

    Enables deterministic testing of time-dependent logic.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get current datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current timestamp (seconds since epoch)."""
        pass


class CheckpointStoreInterface(ABC):
    """
    Durable storage for the StreamPosition triple.

    Every write replaces filename, offset and bytes_read_total together;
    a reader never observes a mix of old and new values.

    Implementations:
    - JsonCheckpointStore: locked JSON document on disk
    - InMemoryCheckpointStore: For unit testing
    """

    @abstractmethod
    def initialize(self, position: StreamPosition) -> None:
        """Seed the store. Raises CheckpointExistsError if already initialized."""
        pass

    @abstractmethod
    def read(self) -> StreamPosition:
        """Read the stored position.

        Raises NotInitializedError or CorruptCheckpointError.
        """
        pass

    @abstractmethod
    def write(self, position: StreamPosition) -> None:
        """Persist the position atomically. Raises CheckpointError on failure."""
        pass

    def close(self) -> None:
        """Release any resources held by the store."""


class RecordProcessor(ABC):
    """
    Consumer of parsed log records.

    ``process`` is called serially, once per record, in file order. Any
    exception it raises is fatal to the tailer; the record will be
    delivered again after restart.
    """

    @abstractmethod
    def process(self, position: StreamPosition, record: Sequence[str]) -> None:
        """Handle one record. *position* points at the start of the record."""
        pass

    def close(self) -> None:
        """Flush and release resources on shutdown."""

