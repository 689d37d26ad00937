"""
csvtail: command-line interface for the rotating log tailer.

Main commands:
- run: Tail a log directory, feeding records to a processor
- init: Seed the checkpoint with a starting file/offset
- dump: Print the stored checkpoint
- status: Show status.json of a running tailer

Entry points:
- csvtail: Main CLI entry point (installed via pip)
- Can also be imported and called programmatically via main(argv)
"""

from __future__ import annotations

from csvtail.cli.helpers import _print
from csvtail.cli.commands import cmd_run, cmd_init, cmd_dump, cmd_status
from csvtail.cli.dispatch import main

__all__ = [
    "main",
    "cmd_run",
    "cmd_init",
    "cmd_dump",
    "cmd_status",
    "_print",
]
