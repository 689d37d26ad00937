"""
PostgreSQL csvlog record helpers.

Column positions of the ``log_destination = 'csvlog'`` format and a thin
wrapper giving typed access to one parsed record. Newer server versions
append columns (backend_type, leader_pid, query_id); every supported
version writes at least up to application_name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Optional, Sequence


# =============================================================================
# Column layout
# =============================================================================

class CsvLogColumn(IntEnum):
    """Zero-based column positions in a csvlog record."""
    LOG_TIME = 0
    USER_NAME = 1
    DATABASE_NAME = 2
    PROCESS_ID = 3
    CONNECTION_FROM = 4
    SESSION_ID = 5
    SESSION_LINE_NUM = 6
    COMMAND_TAG = 7
    SESSION_START_TIME = 8
    VIRTUAL_TRANSACTION_ID = 9
    TRANSACTION_ID = 10
    ERROR_SEVERITY = 11
    SQL_STATE = 12
    MESSAGE = 13
    DETAIL = 14
    HINT = 15
    INTERNAL_QUERY = 16
    INTERNAL_QUERY_POS = 17
    CONTEXT = 18
    QUERY = 19
    QUERY_POS = 20
    LOCATION = 21
    APPLICATION_NAME = 22
    BACKEND_TYPE = 23      # PostgreSQL 13+
    LEADER_PID = 24        # PostgreSQL 14+
    QUERY_ID = 25          # PostgreSQL 14+


PG_CSVLOG_MIN_FIELDS = CsvLogColumn.APPLICATION_NAME + 1

# "2024-01-01 12:00:00.123 UTC", "2024-01-01 12:00:00 +02"
_TIMESTAMP_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})(\.\d+)?(?: (\S+))?$"
)
_OFFSET_RE = re.compile(r"^([+-])(\d{2})(?::?(\d{2}))?$")


def parse_pg_timestamp(value: str) -> datetime:
    """Parse a csvlog timestamp.

    UTC/GMT and numeric offsets produce an aware datetime; any other zone
    abbreviation is ambiguous, so the result is naive local time.

    Raises:
        ValueError: If *value* is not a csvlog timestamp.
    """
    m = _TIMESTAMP_RE.match(value)
    if not m:
        raise ValueError(f"invalid csvlog timestamp: {value!r}")
    base, fraction, zone = m.groups()
    dt = datetime.strptime(base, "%Y-%m-%d %H:%M:%S")
    if fraction:
        dt = dt.replace(microsecond=int(fraction[1:7].ljust(6, "0")))
    if zone in ("UTC", "GMT"):
        return dt.replace(tzinfo=timezone.utc)
    if zone:
        off = _OFFSET_RE.match(zone)
        if off:
            sign = -1 if off.group(1) == "-" else 1
            delta = timedelta(hours=int(off.group(2)), minutes=int(off.group(3) or 0))
            return dt.replace(tzinfo=timezone(sign * delta))
    return dt


def _optional_int(value: str, what: str) -> Optional[int]:
    if value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"invalid {what} {value!r}") from None


# =============================================================================
# LogEntry
# =============================================================================

@dataclass(frozen=True)
class LogEntry:
    """Typed view of one csvlog record.

    Usage:
        entry = LogEntry.from_record(record)
        entry.error_severity, entry.message, entry.process_id
    """
    record: Sequence[str]

    @classmethod
    def from_record(cls, record: Sequence[str]) -> "LogEntry":
        """Wrap *record*, which must have at least PG_CSVLOG_MIN_FIELDS columns."""
        if len(record) < PG_CSVLOG_MIN_FIELDS:
            raise ValueError(
                f"unexpected record length of {len(record)}; expected at least {PG_CSVLOG_MIN_FIELDS}"
            )
        return cls(record)

    def column(self, col: CsvLogColumn) -> Optional[str]:
        """Raw column value, or None if this server version does not write it."""
        if col < len(self.record):
            return self.record[col]
        return None

    # Text columns

    @property
    def log_time_string(self) -> str:
        return self.record[CsvLogColumn.LOG_TIME]

    @property
    def user_name(self) -> str:
        return self.record[CsvLogColumn.USER_NAME]

    @property
    def database_name(self) -> str:
        return self.record[CsvLogColumn.DATABASE_NAME]

    @property
    def connection_from(self) -> str:
        return self.record[CsvLogColumn.CONNECTION_FROM]

    @property
    def session_id(self) -> str:
        return self.record[CsvLogColumn.SESSION_ID]

    @property
    def command_tag(self) -> str:
        return self.record[CsvLogColumn.COMMAND_TAG]

    @property
    def session_start_time_string(self) -> str:
        return self.record[CsvLogColumn.SESSION_START_TIME]

    @property
    def virtual_transaction_id(self) -> str:
        return self.record[CsvLogColumn.VIRTUAL_TRANSACTION_ID]

    @property
    def error_severity(self) -> str:
        return self.record[CsvLogColumn.ERROR_SEVERITY]

    @property
    def sql_state(self) -> str:
        return self.record[CsvLogColumn.SQL_STATE]

    @property
    def message(self) -> str:
        return self.record[CsvLogColumn.MESSAGE]

    @property
    def detail(self) -> str:
        return self.record[CsvLogColumn.DETAIL]

    @property
    def hint(self) -> str:
        return self.record[CsvLogColumn.HINT]

    @property
    def internal_query(self) -> str:
        return self.record[CsvLogColumn.INTERNAL_QUERY]

    @property
    def context(self) -> str:
        return self.record[CsvLogColumn.CONTEXT]

    @property
    def query(self) -> str:
        return self.record[CsvLogColumn.QUERY]

    @property
    def location(self) -> str:
        return self.record[CsvLogColumn.LOCATION]

    @property
    def application_name(self) -> str:
        return self.record[CsvLogColumn.APPLICATION_NAME]

    @property
    def backend_type(self) -> Optional[str]:
        return self.column(CsvLogColumn.BACKEND_TYPE)

    # Typed columns

    @property
    def log_time(self) -> datetime:
        return parse_pg_timestamp(self.log_time_string)

    @property
    def session_start_time(self) -> Optional[datetime]:
        value = self.session_start_time_string
        return parse_pg_timestamp(value) if value else None

    @property
    def process_id(self) -> Optional[int]:
        return _optional_int(self.record[CsvLogColumn.PROCESS_ID], "process id")

    @property
    def session_line_num(self) -> Optional[int]:
        return _optional_int(self.record[CsvLogColumn.SESSION_LINE_NUM], "session line num")

    @property
    def transaction_id(self) -> Optional[int]:
        return _optional_int(self.record[CsvLogColumn.TRANSACTION_ID], "transaction id")

    @property
    def internal_query_pos(self) -> Optional[int]:
        return _optional_int(self.record[CsvLogColumn.INTERNAL_QUERY_POS], "internal query pos")

    @property
    def query_pos(self) -> Optional[int]:
        return _optional_int(self.record[CsvLogColumn.QUERY_POS], "query pos")

    @property
    def leader_pid(self) -> Optional[int]:
        value = self.column(CsvLogColumn.LEADER_PID)
        return _optional_int(value, "leader pid") if value is not None else None

    @property
    def query_id(self) -> Optional[int]:
        value = self.column(CsvLogColumn.QUERY_ID)
        return _optional_int(value, "query id") if value is not None else None
