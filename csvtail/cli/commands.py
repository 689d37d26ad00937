"""csvtail command implementations."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from csvtail.checkpoint import JsonCheckpointStore, load_document, position_from_document
from csvtail.cli.helpers import _print
from csvtail.config import TailConfig, load_config
from csvtail.daemon import TailDaemon
from csvtail.errors import CheckpointExistsError, CsvTailError
from csvtail.implementations import RealFileSystem
from csvtail.interfaces import FileSystemInterface, StreamPosition

logger = logging.getLogger(__name__)


def _load(config_path: Optional[str], **overrides: Any) -> Optional[TailConfig]:
    try:
        return load_config(config_path, **overrides)
    except CsvTailError as e:
        logger.error("%s", e)
        return None


def cmd_run(*, config_path: Optional[str], overrides: dict[str, Any]) -> int:
    """Tail the configured directory until SIGINT/SIGTERM.

    Returns:
        Exit code: 0 after a graceful stop, 1 on a fatal error.
    """
    config = _load(config_path, **overrides)
    if config is None:
        return 1
    if not config.directory:
        logger.error("no log directory given (pass DIRECTORY or set 'directory' in the config file)")
        return 1

    daemon = TailDaemon(config)
    daemon.install_signal_handlers()
    return daemon.run()


def cmd_init(
    *,
    config_path: Optional[str],
    checkpoint_path: Optional[str],
    filename: str,
    offset: int,
    json_mode: bool,
) -> int:
    """Seed the checkpoint store with a starting file and offset.

    An empty *filename* starts from the oldest matching file.
    """
    config = _load(config_path, checkpoint_path=checkpoint_path)
    if config is None:
        return 1
    if "/" in filename:
        logger.error("--filename must be a bare file name, not a path: %r", filename)
        return 1
    if offset < 0:
        logger.error("--offset must not be negative")
        return 1
    if not filename and offset:
        logger.error("--offset requires --filename")
        return 1
    if filename and not config.pattern.matches(filename):
        logger.warning("%r does not match the filename template %s", filename, config.filename_template)

    position = StreamPosition(filename=filename, offset=offset)
    store = JsonCheckpointStore(config.checkpoint_path, lock_timeout=config.lock_timeout)
    try:
        store.initialize(position)
    except CheckpointExistsError:
        logger.error("checkpoint %s is already initialized; refusing to overwrite it", config.checkpoint_path)
        return 1
    except (CsvTailError, OSError) as e:
        logger.error("could not initialize checkpoint: %s", e)
        return 1
    finally:
        store.close()

    payload = {
        "checkpoint": config.checkpoint_path,
        "filename": filename,
        "offset": offset,
    }
    if json_mode:
        _print(payload, json_mode=True)
    else:
        start = repr(filename) if filename else "the oldest matching file"
        _print(f"Initialized {config.checkpoint_path}: start at {start}, offset {offset}", json_mode=False)
    return 0


def cmd_dump(*, config_path: Optional[str], checkpoint_path: Optional[str], json_mode: bool) -> int:
    """Print the stored checkpoint (the raw document with --json).

    Reads without taking the store lock, so it works next to a running
    tailer.
    """
    config = _load(config_path, checkpoint_path=checkpoint_path)
    if config is None:
        return 1
    try:
        data = load_document(config.checkpoint_path)
    except CsvTailError as e:
        logger.error("%s", e)
        return 1
    if data is None:
        logger.error("checkpoint %s has not been initialized", config.checkpoint_path)
        return 1
    if json_mode:
        _print(data, json_mode=True)
        return 0
    try:
        position = position_from_document(data)
    except CsvTailError as e:
        logger.error("%s", e)
        return 1
    print(f"File: {position.filename or '(oldest matching file)'}")
    print(f"Offset: {position.offset}")
    print(f"Bytes read total: {position.bytes_read_total}")
    return 0


def cmd_status(
    *,
    config_path: Optional[str],
    status_path: Optional[str],
    json_mode: bool,
    filesystem: Optional[FileSystemInterface] = None,
) -> int:
    """Show the status.json written by a running tailer.

    Returns:
        Exit code: 0 if a status file was found, 1 otherwise.
    """
    config = _load(config_path, status_path=status_path)
    if config is None:
        return 1
    if not config.status_path:
        logger.error("no status file configured (pass --status-path or set 'status_path')")
        return 1

    status: Optional[dict[str, Any]]
    try:
        status = json.loads((filesystem or RealFileSystem()).read_file(config.status_path))
    except FileNotFoundError:
        status = None
    except json.JSONDecodeError:
        status = {"error": "invalid_json", "path": config.status_path}

    if json_mode:
        _print({"path": config.status_path, "status": status}, json_mode=True)
    elif status is None:
        print(f"No status file at {config.status_path}")
    elif "error" in status:
        print(f"Status file {config.status_path} is not valid JSON")
    else:
        stream = status.get("stream", {})
        counters = status.get("counters", {})
        health = status.get("health", {})
        print(f"State: {stream.get('state')} ({health.get('status')})")
        print(f"File: {stream.get('filename')} @ {stream.get('offset')}")
        if stream.get("pending_rotation"):
            print(f"Next file: {stream['pending_rotation']}")
        print(f"Bytes read: {counters.get('bytes_read')} (total {stream.get('bytes_read_total')})")
        print(f"Records: {counters.get('records_processed')}")
        print(f"Checkpoints: {counters.get('checkpoints_written')}, switches: {counters.get('files_switched')}")
        print(f"Started: {status.get('session', {}).get('started')}")
        if health.get("last_error"):
            print(f"Last error: {health['last_error']}")
    return 0 if status is not None and "error" not in status else 1
