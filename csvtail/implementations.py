"""
Real implementations of interfaces for production use.

These classes wrap actual system resources (files, the clock)
and implement the abstract interfaces.
"""

from typing import BinaryIO, List
from datetime import datetime
import os
import time

from .interfaces import FileSystemInterface, ClockInterface
from .file_utils import atomic_write_text


class RealFileSystem(FileSystemInterface):
    """
    Real file system implementation.
    """

    def open_binary(self, path: str) -> BinaryIO:
        return open(path, "rb")

    def list_dir(self, path: str) -> List[str]:
        return os.listdir(path)

    def read_file(self, path: str) -> str:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def replace_file(self, path: str, content: str) -> None:
        atomic_write_text(path, content)

    def ensure_dir(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)


class RealClock(ClockInterface):
    """
    Real clock implementation using system time.
    """

    def now(self) -> datetime:
        return datetime.now()

    def timestamp(self) -> float:
        return time.time()
