"""Command dispatch for the csvtail CLI."""

from __future__ import annotations

import sys
from typing import Optional

from csvtail.cli.helpers import _setup_logging
from csvtail.cli.parser import _build_parser, _preprocess_argv


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the ``csvtail`` CLI.

    Args:
        argv: Argument list to parse.  Defaults to ``sys.argv[1:]``.

    Returns:
        Exit code: 0 on success, non-zero on error.
    """
    if argv is None:
        argv = sys.argv[1:]

    argv = _preprocess_argv(argv)

    # Late import to allow tests to monkeypatch csvtail.cli.cmd_xxx
    import csvtail.cli as cli

    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.cmd == "run":
        return cli.cmd_run(
            config_path=args.config,
            overrides={
                "directory": args.directory,
                "checkpoint_path": args.checkpoint_path,
                "filename_template": args.filename_template,
                "processor": args.processor,
                "processor_args": args.processor_args,
                "status_path": args.status_path,
                "metrics_address": args.metrics_address,
                "min_fields": args.min_fields,
                "fields_per_record": args.fields_per_record,
                "checkpoint_interval_bytes": args.checkpoint_interval_bytes,
                "poll_interval": args.poll_interval,
                "max_poll_interval": args.max_poll_interval,
            },
        )
    if args.cmd == "init":
        return cli.cmd_init(
            config_path=args.config,
            checkpoint_path=args.checkpoint_path,
            filename=args.filename,
            offset=args.offset,
            json_mode=args.json,
        )
    if args.cmd == "dump":
        return cli.cmd_dump(
            config_path=args.config,
            checkpoint_path=args.checkpoint_path,
            json_mode=args.json,
        )
    if args.cmd == "status":
        return cli.cmd_status(
            config_path=args.config,
            status_path=args.status_path,
            json_mode=args.json,
        )

    parser.error(f"unknown command {args.cmd}")
    return 2
