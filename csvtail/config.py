"""Tailer configuration: an immutable TailConfig, optionally loaded from YAML."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Optional

import yaml

from .errors import ConfigError
from .metrics import parse_listen_address
from .pglog import PG_CSVLOG_MIN_FIELDS
from .rotation import RotationPattern

DEFAULT_TEMPLATE = "postgresql-%Y-%m-%d_%H%M%S.csv"
DEFAULT_CHECKPOINT_INTERVAL = 32 * 1024 * 1024


@dataclass(frozen=True)
class TailConfig:
    """Settings shared by every tailer component.

    ``directory`` is the log directory; ``checkpoint_path`` the JSON
    checkpoint document. ``min_fields`` rejects short records and defaults
    to the csvlog column count; 0 or None turns the check off.
    ``fields_per_record`` enforces an exact count (0 = lock to the first
    record). ``status_path`` enables status.json when set;
    ``metrics_address`` (``host:port``) serves Prometheus metrics.
    """
    directory: str = ""
    checkpoint_path: str = "csvtail-checkpoint.json"
    filename_template: str = DEFAULT_TEMPLATE
    checkpoint_interval_bytes: int = DEFAULT_CHECKPOINT_INTERVAL
    poll_interval: float = 1.0
    max_poll_interval: float = 30.0
    backoff_factor: float = 2.0
    event_queue_size: int = 32
    min_fields: Optional[int] = PG_CSVLOG_MIN_FIELDS
    fields_per_record: Optional[int] = None
    processor: str = "print-message"
    processor_args: str = ""
    status_path: Optional[str] = None
    metrics_address: Optional[str] = None
    status_interval: float = 1.0
    lock_timeout: float = 1.0

    def __post_init__(self) -> None:
        try:
            RotationPattern.from_template(self.filename_template)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        if self.checkpoint_interval_bytes <= 0:
            raise ConfigError("checkpoint_interval_bytes must be positive")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")
        if self.max_poll_interval < self.poll_interval:
            raise ConfigError("max_poll_interval must be >= poll_interval")
        if self.backoff_factor < 1.0:
            raise ConfigError("backoff_factor must be >= 1.0")
        if self.event_queue_size <= 0:
            raise ConfigError("event_queue_size must be positive")
        if self.min_fields is not None and self.min_fields < 0:
            raise ConfigError("min_fields must not be negative")
        if self.fields_per_record is not None and self.fields_per_record < 0:
            raise ConfigError("fields_per_record must not be negative")
        if self.lock_timeout < 0:
            raise ConfigError("lock_timeout must not be negative")
        if self.metrics_address:
            try:
                parse_listen_address(self.metrics_address)
            except ValueError as e:
                raise ConfigError(str(e)) from e

    @property
    def pattern(self) -> RotationPattern:
        return RotationPattern.from_template(self.filename_template)


def _field_names() -> set[str]:
    return {f.name for f in dataclasses.fields(TailConfig)}


def config_from_dict(data: dict[str, Any], **overrides: Any) -> TailConfig:
    """Build a TailConfig from a mapping plus keyword overrides.

    Overrides whose value is ``None`` are ignored so unset CLI flags do not
    clobber file settings.
    """
    known = _field_names()
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown configuration key(s): {', '.join(unknown)}")
    merged = dict(data)
    for key, value in overrides.items():
        if key not in known:
            raise ConfigError(f"unknown configuration key: {key}")
        if value is not None:
            merged[key] = value
    try:
        return TailConfig(**merged)
    except TypeError as e:
        raise ConfigError(str(e)) from e


def load_config(path: Optional[str] = None, **overrides: Any) -> TailConfig:
    """Load a YAML config file (if given) and apply overrides.

    Raises:
        ConfigError: If the file cannot be read, is not a mapping, or has
            unknown keys or invalid values.
    """
    data: dict[str, Any] = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"could not read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid YAML in {path}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Invalid config file (expected mapping): {path}")
        data = loaded
    return config_from_dict(data, **overrides)
