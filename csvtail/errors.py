"""Exception hierarchy for csvtail.

Everything below ``CsvTailError`` is fatal to the tailer: the daemon logs
the error together with the current stream position and exits, leaving
the last persisted checkpoint as the recovery point.
"""

from __future__ import annotations


class CsvTailError(Exception):
    """Base class for all csvtail errors."""


class ConfigError(CsvTailError):
    """Raised when the configuration file or options are invalid."""


# =============================================================================
# Record parsing
# =============================================================================

class ParseError(CsvTailError):
    """Malformed input at a given line/column of the record stream."""

    def __init__(self, line: int, column: int, message: str):
        super().__init__(f"line {line}, column {column}: {message}")
        self.line = line
        self.column = column
        self.message = message


class FieldCountError(ParseError):
    """A record had a different number of fields than required."""


class ShortRecordError(CsvTailError):
    """A record had fewer fields than the configured minimum."""


# =============================================================================
# Checkpoint store
# =============================================================================

class CheckpointError(CsvTailError):
    """Base class for checkpoint store failures."""


class NotInitializedError(CheckpointError):
    """The checkpoint store has never been initialized."""


class CheckpointExistsError(CheckpointError):
    """``initialize`` was called on an already initialized store."""


class CorruptCheckpointError(CheckpointError):
    """The stored checkpoint is unreadable or missing part of its triple."""


class CheckpointLockedError(CheckpointError):
    """Another process holds the checkpoint store lock."""


# =============================================================================
# Rotation
# =============================================================================

class WatchError(CsvTailError):
    """The directory watch could not be set up or stopped delivering events."""


class RotationOrderError(CsvTailError):
    """A newly discovered file does not sort after the current/pending files."""


# =============================================================================
# Processing
# =============================================================================

class ProcessorError(CsvTailError):
    """The record processor failed or could not be loaded."""
