"""Shared utilities for csvtail CLI commands."""

from __future__ import annotations

import json
import logging
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _print(obj: Any, *, json_mode: bool) -> None:
    if json_mode:
        print(json.dumps(obj, indent=2, sort_keys=True))
    else:
        if isinstance(obj, str):
            print(obj)
        else:
            print(json.dumps(obj, indent=2, sort_keys=True))


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )
