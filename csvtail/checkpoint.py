"""
Durable checkpoint store for the log stream position.

The position lives in a small JSON document::

    {
      "logStreamPosition": {
        "bytesReadTotal": 1048576,
        "filename": "postgresql-2024-01-01_000000.csv",
        "offset": 4096
      }
    }

Writes go to a temporary file that is fsync'd and renamed over the
document, so the triple is always replaced as a whole. A sibling
``.lock`` file is held with an exclusive portalocker lock for as long as
the store is open, which keeps two tailers from sharing one checkpoint.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional

import portalocker

from .errors import (
    CheckpointError,
    CheckpointExistsError,
    CheckpointLockedError,
    CorruptCheckpointError,
    NotInitializedError,
)
from .file_utils import read_json_file, write_json_file
from .interfaces import CheckpointStoreInterface, StreamPosition

logger = logging.getLogger(__name__)

POSITION_KEY = "logStreamPosition"
_LOCK_POLL_INTERVAL = 0.05


def load_document(path: str) -> Optional[dict]:
    """Read the raw checkpoint document without taking the lock.

    Safe while a tailer is running because the document is only ever
    replaced by rename. Returns ``None`` if the store was never initialized.

    Raises:
        CorruptCheckpointError: If the document is not a JSON object.
    """
    try:
        data = read_json_file(path)
    except ValueError as e:
        raise CorruptCheckpointError(str(e)) from e
    except OSError as e:
        raise CheckpointError(f"could not read checkpoint {path}: {e}") from e
    if data is not None and not isinstance(data, dict):
        raise CorruptCheckpointError(f"{path}: expected a JSON object, got {type(data).__name__}")
    return data


def position_from_document(data: dict) -> StreamPosition:
    """Extract the position triple, validating every key."""
    entry = data.get(POSITION_KEY)
    if not isinstance(entry, dict):
        raise CorruptCheckpointError(f"checkpoint has no {POSITION_KEY!r} object")

    missing = [k for k in ("filename", "offset", "bytesReadTotal") if k not in entry]
    if missing:
        raise CorruptCheckpointError(f"checkpoint is missing {', '.join(missing)}")

    filename = entry["filename"]
    offset = entry["offset"]
    total = entry["bytesReadTotal"]
    if not isinstance(filename, str) or "/" in filename:
        raise CorruptCheckpointError(f"invalid filename in checkpoint: {filename!r}")
    for key, value in (("offset", offset), ("bytesReadTotal", total)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise CorruptCheckpointError(f"invalid {key} in checkpoint: {value!r}")
    return StreamPosition(filename=filename, offset=offset, bytes_read_total=total)


def position_to_document(position: StreamPosition) -> dict:
    return {
        POSITION_KEY: {
            "filename": position.filename,
            "offset": position.offset,
            "bytesReadTotal": position.bytes_read_total,
        }
    }


class JsonCheckpointStore(CheckpointStoreInterface):
    """
    Checkpoint store backed by a locked JSON file.

    Usage:
        with JsonCheckpointStore("/var/lib/csvtail/checkpoint.json") as store:
            position = store.read()
            ...
            store.write(position)

    The lock is taken on first use (or ``open()``) and released by
    ``close()``. Waiting for a busy lock is bounded by ``lock_timeout``.
    """

    def __init__(self, path: str, lock_timeout: float = 1.0):
        self._path = path
        self._lock_path = path + ".lock"
        self._lock_timeout = lock_timeout
        self._lock_file = None

    @property
    def path(self) -> str:
        return self._path

    def open(self) -> None:
        """Acquire the store lock.

        Raises:
            CheckpointLockedError: If another process holds the lock past
                ``lock_timeout``.
        """
        if self._lock_file is not None:
            return

        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        f = open(self._lock_path, "a")
        deadline = time.monotonic() + self._lock_timeout
        while True:
            try:
                portalocker.lock(f, portalocker.LOCK_EX | portalocker.LOCK_NB)
                break
            except portalocker.LockException:
                if time.monotonic() >= deadline:
                    f.close()
                    raise CheckpointLockedError(
                        f"checkpoint {self._path} is locked by another process"
                    ) from None
                time.sleep(_LOCK_POLL_INTERVAL)
        self._lock_file = f
        logger.debug("Locked checkpoint store %s", self._path)

    def close(self) -> None:
        if self._lock_file is None:
            return
        f, self._lock_file = self._lock_file, None
        try:
            portalocker.unlock(f)
        finally:
            f.close()
        logger.debug("Released checkpoint store %s", self._path)

    def __enter__(self) -> "JsonCheckpointStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # CheckpointStoreInterface
    # ------------------------------------------------------------------

    def initialize(self, position: StreamPosition) -> None:
        self.open()
        if os.path.exists(self._path):
            raise CheckpointExistsError(f"checkpoint {self._path} is already initialized")
        self._write_document(position_to_document(position))
        logger.info(
            "Initialized checkpoint %s at file %r, offset %d",
            self._path, position.filename, position.offset,
        )

    def read(self) -> StreamPosition:
        self.open()
        data = load_document(self._path)
        if data is None:
            raise NotInitializedError(
                f"checkpoint {self._path} has not been initialized (run 'csvtail init')"
            )
        return position_from_document(data)

    def write(self, position: StreamPosition) -> None:
        self.open()
        if not os.path.exists(self._path):
            raise NotInitializedError(f"checkpoint {self._path} has not been initialized")
        self._write_document(position_to_document(position))
        logger.debug(
            "Persisted position %r offset %d (total %d)",
            position.filename, position.offset, position.bytes_read_total,
        )

    def _write_document(self, data: dict) -> None:
        try:
            write_json_file(self._path, data, durable=True)
        except OSError as e:
            raise CheckpointError(f"could not write checkpoint {self._path}: {e}") from e
