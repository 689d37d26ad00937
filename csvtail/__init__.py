"""
csvtail - rotating CSV log tailer

Follows a directory of timestamp-named log files (PostgreSQL csvlog),
hands every record to a pluggable processor and keeps a crash-safe
checkpoint of the read position.
"""

__version__ = "0.1.0"

from .interfaces import (
    TailState,
    StreamPosition,
    FileSystemInterface,
    ClockInterface,
    CheckpointStoreInterface,
    RecordProcessor,
)
from .errors import (
    CsvTailError,
    ConfigError,
    ParseError,
    FieldCountError,
    ShortRecordError,
    CheckpointError,
    NotInitializedError,
    CheckpointExistsError,
    CorruptCheckpointError,
    CheckpointLockedError,
    WatchError,
    RotationOrderError,
    ProcessorError,
)
from .record_reader import RecordReader, ParsedRecord
from .rotation import RotationPattern
from .config import TailConfig, load_config
from .checkpoint import JsonCheckpointStore
from .pglog import CsvLogColumn, LogEntry, PG_CSVLOG_MIN_FIELDS
from .metrics import TailMetrics
from .processors import load_processor, PrintMessageProcessor, ProcessorInitArgs

__all__ = [
    "__version__",
    "TailState",
    "StreamPosition",
    "FileSystemInterface",
    "ClockInterface",
    "CheckpointStoreInterface",
    "RecordProcessor",
    "CsvTailError",
    "ConfigError",
    "ParseError",
    "FieldCountError",
    "ShortRecordError",
    "CheckpointError",
    "NotInitializedError",
    "CheckpointExistsError",
    "CorruptCheckpointError",
    "CheckpointLockedError",
    "WatchError",
    "RotationOrderError",
    "ProcessorError",
    "RecordReader",
    "ParsedRecord",
    "RotationPattern",
    "TailConfig",
    "load_config",
    "JsonCheckpointStore",
    "CsvLogColumn",
    "LogEntry",
    "PG_CSVLOG_MIN_FIELDS",
    "load_processor",
    "PrintMessageProcessor",
    "ProcessorInitArgs",
    "TailMetrics",
]
