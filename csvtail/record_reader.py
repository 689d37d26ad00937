"""
Byte-accounting CSV record reader.

Parses a binary stream into comma-separated records while tracking exactly
how many input bytes each record spans, so that ``offset += nbytes`` always
lands on a record boundary and can be resumed with a plain ``seek()``.

Quoting follows RFC 4180 with a few deliberate choices:

- ``\\r\\n`` folds to one terminator, a bare ``\\r`` stays in the field
- blank lines and comment lines are skipped, their bytes are charged to
  the next returned record
- ``lazy_quotes`` keeps stray quotes literally instead of failing
- ``require_trailing_newline`` withholds a record whose terminating
  newline has not been written yet (the tail of a growing file)

All structural characters are ASCII, so the parser works on raw bytes and
only decodes finished fields (UTF-8, invalid sequences replaced).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional

from .errors import FieldCountError, ParseError

ERR_BARE_QUOTE = 'bare " in non-quoted-field'
ERR_QUOTE = 'extraneous " in field'
ERR_FIELD_COUNT = "wrong number of fields in line"

_BUFFER_SIZE = 64 * 1024

_EOF = -1
_LF = 0x0A
_CR = 0x0D
_QUOTE = 0x22
# unicode.IsSpace restricted to single-byte characters
_SPACES = frozenset(b" \t\v\f\r")


def _single_byte(value: str, name: str) -> int:
    encoded = value.encode("utf-8")
    if len(encoded) != 1 or encoded[0] in (_LF, _CR, _QUOTE):
        raise ValueError(f"{name} must be a single ASCII character other than quote/CR/LF, got {value!r}")
    return encoded[0]


@dataclass
class ParsedRecord:
    """One record and the number of input bytes it consumed."""
    fields: list[str]
    nbytes: int


class RecordReader:
    """
    Reads delimited records from a binary stream.

    Usage:
        with open(path, "rb") as fh:
            fh.seek(offset)
            reader = RecordReader(fh, require_trailing_newline=True)
            for record in reader:
                offset += record.nbytes

    ``read()`` returns ``None`` at end of stream. With
    ``require_trailing_newline`` an unterminated final record is also
    reported as end of stream and its bytes are not counted.

    ``fields_per_record``: ``None`` disables the check, ``0`` locks the
    count to the first record, a positive value requires that exact count.
    """

    def __init__(
        self,
        stream: BinaryIO,
        *,
        comma: str = ",",
        comment: Optional[str] = None,
        lazy_quotes: bool = False,
        trim_leading_space: bool = False,
        fields_per_record: Optional[int] = None,
        require_trailing_newline: bool = False,
        buffer_size: int = _BUFFER_SIZE,
    ):
        self._stream = stream
        self._comma = _single_byte(comma, "comma")
        self._comment = _single_byte(comment, "comment") if comment else None
        if self._comment is not None and self._comment == self._comma:
            raise ValueError("comment and comma must differ")
        self._lazy_quotes = lazy_quotes
        self._trim_leading_space = trim_leading_space
        self._fields_per_record = fields_per_record
        self._require_trailing_newline = require_trailing_newline
        self._buffer_size = buffer_size

        self._buf = b""
        self._pos = 0
        self._eof = False
        self._field = bytearray()
        self._record_bytes = 0

        self.line = 0
        self._column = -1
        self.byte_offset = 0

    @property
    def fields_per_record(self) -> Optional[int]:
        """Current field count requirement (set after the first record when locked)."""
        return self._fields_per_record

    def __iter__(self) -> Iterator[ParsedRecord]:
        while True:
            record = self.read()
            if record is None:
                return
            yield record

    def read(self) -> Optional[ParsedRecord]:
        """Return the next record, or ``None`` at end of stream.

        Raises:
            ParseError: On malformed quoting.
            FieldCountError: When ``fields_per_record`` is violated.
        """
        self._record_bytes = 0
        while True:
            fields, at_eof = self._parse_record()
            if fields is not None:
                break
            if at_eof:
                return None

        if self._fields_per_record is not None:
            if self._fields_per_record == 0:
                self._fields_per_record = len(fields)
            elif len(fields) != self._fields_per_record:
                raise FieldCountError(self.line, 0, ERR_FIELD_COUNT)

        nbytes = self._record_bytes
        self.byte_offset += nbytes
        return ParsedRecord(fields=fields, nbytes=nbytes)

    # ------------------------------------------------------------------
    # Byte level input
    # ------------------------------------------------------------------

    def _fill(self) -> bool:
        if self._eof:
            return False
        chunk = self._stream.read(self._buffer_size)
        if not chunk:
            self._eof = True
            return False
        self._buf = chunk
        self._pos = 0
        return True

    def _read_raw(self) -> int:
        if self._pos >= len(self._buf) and not self._fill():
            return _EOF
        b = self._buf[self._pos]
        self._pos += 1
        self._record_bytes += 1
        return b

    def _unread(self) -> None:
        # Only ever undoes the byte just returned by _read_raw.
        self._pos -= 1
        self._record_bytes -= 1

    def _read_char(self) -> int:
        """Read one byte, folding CRLF into LF and advancing the column."""
        b = self._read_raw()
        if b == _CR:
            nxt = self._read_raw()
            if nxt == _LF:
                b = _LF
            elif nxt == _EOF:
                b = _EOF
            else:
                self._unread()
        # Columns count characters: skip UTF-8 continuation bytes.
        if b == _EOF or (b & 0xC0) != 0x80:
            self._column += 1
        return b

    def _skip_line(self) -> bool:
        """Consume through the next newline. Returns False on end of input."""
        while True:
            b = self._read_char()
            if b == _EOF:
                return False
            if b == _LF:
                return True

    # ------------------------------------------------------------------
    # Record / field parsing
    # ------------------------------------------------------------------

    def _parse_record(self) -> tuple[Optional[list[str]], bool]:
        """Parse one line. Returns (fields or None for a skipped line, at_eof)."""
        self.line += 1
        self._column = -1

        first = self._read_raw()
        if first == _EOF:
            return None, True
        if self._comment is not None and first == self._comment:
            return None, not self._skip_line()
        self._unread()

        fields: list[str] = []
        while True:
            have_field, delim, at_eof = self._parse_field()
            if have_field:
                fields.append(self._field.decode("utf-8", errors="replace"))
            if delim == _LF or at_eof:
                if at_eof and self._require_trailing_newline:
                    return None, True
                return (fields or None), at_eof

    def _parse_field(self) -> tuple[bool, int, bool]:
        """Parse one field into ``self._field``.

        Returns (have_field, delimiter, at_eof).
        """
        field = self._field
        field.clear()

        c = self._read_char()
        while self._trim_leading_space and c != _EOF and c != _LF and c in _SPACES:
            c = self._read_char()

        if c == _EOF:
            return self._column != 0, _EOF, True

        if c == self._comma:
            return True, c, False

        if c == _LF:
            # A trailing empty field, or a blank line
            return self._column != 0, _LF, False

        if c == _QUOTE:
            while True:
                c = self._read_char()
                if c == _EOF:
                    if self._lazy_quotes or self._require_trailing_newline:
                        return True, _EOF, True
                    raise ParseError(self.line, self._column, ERR_QUOTE)
                if c == _QUOTE:
                    c = self._read_char()
                    if c == _EOF or c == self._comma:
                        break
                    if c == _LF:
                        return True, _LF, False
                    if c != _QUOTE:
                        if not self._lazy_quotes:
                            self._column -= 1
                            raise ParseError(self.line, self._column, ERR_QUOTE)
                        field.append(_QUOTE)
                elif c == _LF:
                    self.line += 1
                    self._column = -1
                field.append(c)
        else:
            while True:
                field.append(c)
                c = self._read_char()
                if c == _EOF or c == self._comma:
                    break
                if c == _LF:
                    return True, _LF, False
                if c == _QUOTE and not self._lazy_quotes:
                    raise ParseError(self.line, self._column, ERR_BARE_QUOTE)

        if c == _EOF:
            return True, _EOF, True
        return True, c, False
