"""Tests for csvtail/sequencer.py: ordered rotation handoff."""

from __future__ import annotations

import queue

import pytest

from csvtail.errors import RotationOrderError, WatchError
from csvtail.sequencer import RotationSequencer

from conftest import wait_for


class FakeWatcher:
    """Feeds pre-scripted creation events to the sequencer thread."""

    def __init__(self):
        self._events = queue.Queue()

    def emit(self, item):
        """Queue a filename, or an exception to raise from next_event()."""
        self._events.put(item)

    def next_event(self, timeout=None):
        try:
            item = self._events.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def watcher():
    return FakeWatcher()


@pytest.fixture
def make_sequencer(watcher):
    sequencers = []

    def factory(initial=(), current=""):
        seq = RotationSequencer(watcher, initial, current=current, event_poll_interval=0.01)
        sequencers.append(seq)
        return seq

    yield factory
    for seq in sequencers:
        seq.stop()


class TestInitialFiles:
    def test_backlog_handed_off_in_order(self, make_sequencer):
        seq = make_sequencer(["log-2.csv", "log-3.csv"], current="log-1.csv")
        seq.start()

        assert seq.take(timeout=1.0) == "log-2.csv"
        assert seq.take(timeout=1.0) == "log-3.csv"
        assert seq.take(timeout=0.05) is None

    def test_unsorted_backlog_rejected(self, make_sequencer):
        with pytest.raises(RotationOrderError):
            make_sequencer(["log-3.csv", "log-2.csv"], current="log-1.csv")

    def test_backlog_not_after_current_rejected(self, make_sequencer):
        with pytest.raises(RotationOrderError, match="current filename"):
            make_sequencer(["log-1.csv"], current="log-1.csv")


class TestHandoff:
    def test_only_one_file_is_offered_at_a_time(self, make_sequencer):
        seq = make_sequencer(["log-2.csv", "log-3.csv"], current="log-1.csv")
        seq.start()

        assert wait_for(lambda: seq.current == "log-2.csv")
        # The slot is full until the read loop takes log-2
        assert seq.pending == ["log-3.csv"]

        assert seq.take(timeout=1.0) == "log-2.csv"
        assert wait_for(lambda: seq.current == "log-3.csv")
        assert seq.pending == []

    def test_new_events_follow_backlog(self, make_sequencer, watcher):
        seq = make_sequencer(["log-2.csv"], current="log-1.csv")
        watcher.emit("log-3.csv")
        watcher.emit("log-4.csv")
        seq.start()

        assert [seq.take(timeout=1.0) for _ in range(3)] == ["log-2.csv", "log-3.csv", "log-4.csv"]

    def test_take_times_out_when_idle(self, make_sequencer):
        seq = make_sequencer(current="log-1.csv")
        seq.start()
        assert seq.take(timeout=0.05) is None

    def test_empty_current_accepts_anything(self, make_sequencer, watcher):
        seq = make_sequencer()
        watcher.emit("log-1.csv")
        seq.start()
        assert seq.take(timeout=1.0) == "log-1.csv"


class TestFailures:
    def test_out_of_order_event_reraised_in_take(self, make_sequencer, watcher):
        seq = make_sequencer(current="log-5.csv")
        watcher.emit("log-4.csv")
        seq.start()

        with pytest.raises(RotationOrderError, match="does not sort after"):
            seq.take(timeout=1.0)

    def test_event_before_queued_name_rejected(self, make_sequencer, watcher):
        seq = make_sequencer(["log-3.csv", "log-5.csv"], current="log-1.csv")
        watcher.emit("log-4.csv")
        seq.start()
        seq._thread.join(timeout=1.0)

        with pytest.raises(RotationOrderError, match="queued filename"):
            seq.take(timeout=0.01)

    def test_watcher_error_is_propagated(self, make_sequencer, watcher):
        seq = make_sequencer(current="log-1.csv")
        watcher.emit(WatchError("event queue overflowed"))
        seq.start()

        with pytest.raises(WatchError, match="overflowed"):
            seq.take(timeout=1.0)

    def test_error_is_sticky(self, make_sequencer, watcher):
        seq = make_sequencer(current="log-1.csv")
        watcher.emit(WatchError("observer died"))
        seq.start()

        with pytest.raises(WatchError):
            seq.take(timeout=1.0)
        with pytest.raises(WatchError):
            seq.take(timeout=0.01)

    def test_stop_is_prompt(self, make_sequencer):
        seq = make_sequencer(current="log-1.csv")
        seq.start()
        seq.stop(timeout=1.0)
        assert not seq._thread.is_alive()
