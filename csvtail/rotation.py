"""Filename matching for timestamp-named, rotating log files.

The log writer names each file by running the current time through a
strftime-style template (PostgreSQL's ``log_filename``). Every supported
placeholder is fixed-width, so the generated names sort lexicographically
in chronological order and all rotation decisions can use plain string
comparison.
"""

from __future__ import annotations

import fnmatch
import glob
import re
from datetime import datetime
from typing import Iterable

# placeholder -> number of digits it expands to
_DIGIT_PLACEHOLDERS = {
    "Y": 4,
    "y": 2,
    "m": 2,
    "d": 2,
    "H": 2,
    "M": 2,
    "S": 2,
    "j": 3,
}

_PLACEHOLDER_RE = re.compile(r"%(.)", re.DOTALL)


class RotationPattern:
    """Glob derived from a filename template, plus name helpers.

    Usage:
        pattern = RotationPattern.from_template("postgresql-%Y-%m-%d.csv")
        pattern.glob                     # 'postgresql-[0-9][0-9][0-9][0-9]-...'
        pattern.matches("postgresql-2024-01-01.csv")  # True
    """

    def __init__(self, template: str, glob_pattern: str):
        self._template = template
        self._glob = glob_pattern

    @classmethod
    def from_template(cls, template: str) -> "RotationPattern":
        """Build the pattern.

        Raises:
            ValueError: If the template is empty, has no time placeholder,
                or uses a placeholder that is not fixed-width.
        """
        if not template:
            raise ValueError("filename template must not be empty")
        if "/" in template:
            raise ValueError(f"filename template must be a bare filename: {template!r}")

        parts: list[str] = []
        last = 0
        seen_placeholder = False
        for m in _PLACEHOLDER_RE.finditer(template):
            parts.append(glob.escape(template[last:m.start()]))
            code = m.group(1)
            if code == "%":
                parts.append("%")
            elif code in _DIGIT_PLACEHOLDERS:
                parts.append("[0-9]" * _DIGIT_PLACEHOLDERS[code])
                seen_placeholder = True
            else:
                raise ValueError(
                    f"unsupported placeholder %{code} in {template!r}; "
                    f"only fixed-width numeric fields sort chronologically"
                )
            last = m.end()
        tail = template[last:]
        if "%" in tail:
            raise ValueError(f"dangling % at end of {template!r}")
        parts.append(glob.escape(tail))

        if not seen_placeholder:
            raise ValueError(f"filename template {template!r} has no time placeholder")
        return cls(template, "".join(parts))

    @property
    def template(self) -> str:
        return self._template

    @property
    def glob(self) -> str:
        """The glob used to match and enumerate files."""
        return self._glob

    def matches(self, filename: str) -> bool:
        """True if *filename* (a bare name, not a path) fits the template."""
        return fnmatch.fnmatchcase(filename, self._glob)

    def filter(self, filenames: Iterable[str]) -> list[str]:
        """Return the matching names in rotation (lexicographic) order."""
        return sorted(name for name in filenames if self.matches(name))

    def format(self, when: datetime) -> str:
        """Name the writer would give a file created at *when*."""
        return when.strftime(self._template)

    def __repr__(self) -> str:
        return f"RotationPattern({self._template!r})"
