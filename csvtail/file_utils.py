"""Shared file I/O utilities for csvtail.

Atomic replace-by-rename writes used by the checkpoint store and the
status file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


def atomic_write_text(path: Union[str, Path], content: str, *, durable: bool = False) -> None:
    """Atomically replace *path* with *content*.

    Writes to a temporary file in the same directory and renames, so
    readers never see a half-written file. With ``durable`` the data and
    the directory entry are fsync'd before returning.
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(p.parent), prefix=f".{p.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            if durable:
                f.flush()
                os.fsync(f.fileno())
        os.replace(tmp, str(p))
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
    if durable:
        _fsync_dir(p.parent)


def _fsync_dir(directory: Path) -> None:
    try:
        dir_fd = os.open(str(directory), os.O_RDONLY)
    except OSError:
        # Not supported everywhere (e.g. Windows)
        return
    try:
        os.fsync(dir_fd)
    except OSError as e:
        logger.warning("Could not fsync directory %s: %s", directory, e)
    finally:
        os.close(dir_fd)


def write_json_file(path: Union[str, Path], data: dict, *, durable: bool = False) -> None:
    """Atomically write *data* as JSON to *path*."""
    atomic_write_text(path, json.dumps(data, indent=2, sort_keys=True) + "\n", durable=durable)


def read_json_file(path: Union[str, Path]) -> Optional[Any]:
    """Read a JSON file.

    Returns ``None`` if the file does not exist.

    Raises:
        ValueError: If the file exists but is not valid JSON.
        OSError: If the file exists but cannot be read.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"{p}: invalid JSON: {e}") from e
