"""Shared pytest configuration for csvtail tests."""

from __future__ import annotations

import os
import time

import pytest
from watchdog.events import FileCreatedEvent

from csvtail.config import TailConfig
from csvtail.mocks import MockFileSystem, MockClock

LOG_DIR = "/var/log/postgresql"
TEMPLATE = "log-%Y-%m-%d.csv"


class FakeObserver:
    """Hand-driven stand-in for a watchdog observer."""

    def __init__(self, on_start=None, fail_schedule=False):
        self.handler = None
        self.path = None
        self.started = False
        self.stopped = False
        self.alive = False
        self._on_start = on_start
        self._fail_schedule = fail_schedule

    def schedule(self, handler, path, recursive=False):
        if self._fail_schedule:
            raise OSError("inotify watch limit reached")
        self.handler = handler
        self.path = path

    def start(self):
        self.started = True
        self.alive = True
        if self._on_start:
            self._on_start(self)

    def stop(self):
        self.stopped = True
        self.alive = False

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return self.alive

    # Test helper methods

    def create(self, name, directory=LOG_DIR):
        """Deliver a creation event for *name*, as the observer thread would."""
        self.handler.dispatch(FileCreatedEvent(os.path.join(directory, name)))


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll *predicate* until it is true or *timeout* expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fs():
    fs = MockFileSystem()
    fs.ensure_dir(LOG_DIR)
    return fs


@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def config():
    return TailConfig(
        directory=LOG_DIR,
        filename_template=TEMPLATE,
        poll_interval=0.01,
        max_poll_interval=0.04,
        min_fields=0,
    )
