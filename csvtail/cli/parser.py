"""Argument parser for the csvtail CLI."""

from __future__ import annotations

import argparse

from csvtail import __version__

_GLOBAL_FLAGS = {"--json", "-v", "--verbose"}
_GLOBAL_OPTIONS = {"-c", "--config", "--checkpoint"}


def _preprocess_argv(argv: list[str]) -> list[str]:
    """Move global flags in front of the subcommand.

    argparse only accepts top-level options before the subcommand; this
    lets ``csvtail dump --json`` work as well as ``csvtail --json dump``.

    Args:
        argv: Raw argument list (without ``sys.argv[0]``).

    Returns:
        Reordered argument list with global flags moved to the front.
    """
    global_args: list[str] = []
    rest: list[str] = []
    i = 0
    while i < len(argv):
        token = argv[i]
        if token in _GLOBAL_FLAGS:
            global_args.append(token)
            i += 1
            continue
        if any(token.startswith(opt + "=") for opt in _GLOBAL_OPTIONS if opt.startswith("--")):
            global_args.append(token)
            i += 1
            continue
        if token in _GLOBAL_OPTIONS and i + 1 < len(argv):
            global_args.extend([token, argv[i + 1]])
            i += 2
            continue
        rest.append(token)
        i += 1
    return global_args + rest


def _build_parser() -> argparse.ArgumentParser:
    """Build the full argparse parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="csvtail",
        description="Tail rotating CSV log files with a crash-safe checkpoint",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--json", action="store_true", help="Output machine-parseable JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-c", "--config", default=None, help="YAML configuration file")
    parser.add_argument(
        "--checkpoint",
        default=None,
        dest="checkpoint_path",
        help="Checkpoint file (default: csvtail-checkpoint.json)",
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Tail the log directory")
    p_run.add_argument("directory", nargs="?", default=None, help="Log directory to tail")
    p_run.add_argument("--template", dest="filename_template", default=None,
                       help="strftime-style log filename template (default: postgresql-%%Y-%%m-%%d_%%H%%M%%S.csv)")
    p_run.add_argument("--processor", default=None,
                       help="Processor name or 'package.module:factory' (default: print-message)")
    p_run.add_argument("--processor-args", default=None, help="Argument string passed to the processor factory")
    p_run.add_argument("--status-path", default=None, help="Write status.json here")
    p_run.add_argument("--metrics-address", default=None,
                       help="Serve Prometheus metrics on host:port (e.g. :9187)")
    p_run.add_argument("--min-fields", type=int, default=None, help="Reject records with fewer fields (default: 23, 0 disables)")
    p_run.add_argument("--fields-per-record", type=int, default=None,
                       help="Require exactly N fields (0 = same as the first record)")
    p_run.add_argument("--checkpoint-interval", type=int, default=None, dest="checkpoint_interval_bytes",
                       help="Persist the position after this many bytes (default: 32 MiB)")
    p_run.add_argument("--poll-interval", type=float, default=None, help="Initial re-poll delay at end of file")
    p_run.add_argument("--max-poll-interval", type=float, default=None, help="Re-poll delay cap")

    p_init = sub.add_parser("init", help="Initialize the checkpoint")
    p_init.add_argument("--filename", default="",
                        help="File to start from (default: oldest matching file)")
    p_init.add_argument("--offset", type=int, default=0, help="Byte offset within --filename")

    sub.add_parser("dump", help="Print the stored checkpoint")

    p_status = sub.add_parser("status", help="Show status.json of a running tailer")
    p_status.add_argument("--status-path", default=None, help="status.json location")

    return parser
