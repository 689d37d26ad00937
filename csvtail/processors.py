"""
Record processor loading and built-in processors.

A processor is named either by import path (``package.module:factory``)
or by a registered name. Names resolve against the built-ins first and
then against the ``csvtail.processors`` entry-point group, so other
distributions can ship processors. Either way the factory is called with
a ProcessorInitArgs (the configured argument string plus the tailer's
Prometheus registry) and must return a RecordProcessor.
"""

from __future__ import annotations

import importlib
import logging
import sys
from dataclasses import dataclass
from importlib import metadata
from typing import Callable, Dict, Optional, Sequence, TextIO

from prometheus_client import CollectorRegistry, Counter

from .errors import ProcessorError
from .interfaces import RecordProcessor, StreamPosition
from .pglog import CsvLogColumn

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "csvtail.processors"


@dataclass(frozen=True)
class ProcessorInitArgs:
    """What a processor factory is given.

    ``registry`` is the tailer's metrics registry; processors may register
    their own collectors on it.
    """
    args: str = ""
    registry: Optional[CollectorRegistry] = None


ProcessorFactory = Callable[[ProcessorInitArgs], RecordProcessor]


class PrintMessageProcessor(RecordProcessor):
    """Writes the message column of every csvlog record, one per line."""

    def __init__(self, init: Optional[ProcessorInitArgs] = None, stream: Optional[TextIO] = None):
        self._args = init.args if init is not None else ""
        self._stream = stream
        self._printed: Optional[Counter] = None
        if init is not None and init.registry is not None:
            self._printed = Counter(
                "csvtail_printed_messages",
                "Messages written by the print-message processor.",
                registry=init.registry,
            )

    def process(self, position: StreamPosition, record: Sequence[str]) -> None:
        if len(record) <= CsvLogColumn.MESSAGE:
            raise ValueError(f"record has {len(record)} fields, no message column")
        stream = self._stream or sys.stdout
        stream.write(record[CsvLogColumn.MESSAGE] + "\n")
        if self._printed is not None:
            self._printed.inc()

    def close(self) -> None:
        stream = self._stream or sys.stdout
        stream.flush()


BUILTIN_PROCESSORS: Dict[str, ProcessorFactory] = {
    "print-message": PrintMessageProcessor,
}


def _import_factory(path: str) -> ProcessorFactory:
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ProcessorError(f"invalid processor path {path!r}, expected 'package.module:factory'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ProcessorError(f"could not import processor module {module_name!r}: {e}") from e
    target = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ProcessorError(f"module {module_name!r} has no attribute {attr!r}") from None
    return target


def _entry_point_factory(name: str) -> Optional[ProcessorFactory]:
    for entry in metadata.entry_points().select(group=ENTRY_POINT_GROUP, name=name):
        try:
            return entry.load()
        except Exception as e:
            raise ProcessorError(f"processor plugin {name!r} failed to load: {e}") from e
    return None


def available_processors() -> list[str]:
    """Names usable without an import path."""
    names = set(BUILTIN_PROCESSORS)
    names.update(ep.name for ep in metadata.entry_points().select(group=ENTRY_POINT_GROUP))
    return sorted(names)


def load_processor(
    name: str,
    args: str = "",
    registry: Optional[CollectorRegistry] = None,
) -> RecordProcessor:
    """Resolve *name* and build the processor with *args* and *registry*.

    Raises:
        ProcessorError: If the processor cannot be found or its factory fails.
    """
    if ":" in name:
        factory = _import_factory(name)
    else:
        factory = BUILTIN_PROCESSORS.get(name) or _entry_point_factory(name)
        if factory is None:
            raise ProcessorError(
                f"unknown processor {name!r} (available: {', '.join(available_processors())})"
            )

    try:
        processor = factory(ProcessorInitArgs(args=args, registry=registry))
    except Exception as e:
        raise ProcessorError(f"could not initialize processor {name}: {e}") from e
    if not callable(getattr(processor, "process", None)):
        raise ProcessorError(f"processor {name} does not implement process()")
    logger.info("Loaded processor %s", name)
    return processor
