"""Tests for csvtail/directory_watcher.py."""

from __future__ import annotations

import pytest
from watchdog.events import DirCreatedEvent

from csvtail.directory_watcher import DirectoryWatcher
from csvtail.errors import WatchError
from csvtail.rotation import RotationPattern

from conftest import LOG_DIR, TEMPLATE, FakeObserver


@pytest.fixture
def pattern():
    return RotationPattern.from_template(TEMPLATE)


def _make(fs, pattern, observer, queue_size=32):
    return DirectoryWatcher(LOG_DIR, pattern, fs, queue_size=queue_size, observer_factory=lambda: observer)


class TestStart:
    def test_backlog_is_sorted_and_filtered(self, fs, pattern):
        for name in ["log-2024-01-03.csv", "log-2024-01-01.csv", "notes.txt", "log-2024-01-02.csv"]:
            fs.add_file(f"{LOG_DIR}/{name}")
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)

        assert watcher.start() == ["log-2024-01-01.csv", "log-2024-01-02.csv", "log-2024-01-03.csv"]
        assert observer.started
        assert observer.path == LOG_DIR

    def test_backlog_only_after_current_file(self, fs, pattern):
        for name in ["log-2024-01-01.csv", "log-2024-01-02.csv", "log-2024-01-03.csv"]:
            fs.add_file(f"{LOG_DIR}/{name}")
        watcher = _make(fs, pattern, FakeObserver())

        assert watcher.start(after="log-2024-01-02.csv") == ["log-2024-01-03.csv"]

    def test_event_during_startup_is_merged_once(self, fs, pattern):
        fs.add_file(f"{LOG_DIR}/log-2024-01-01.csv")

        def racing_writer(observer):
            # Created after the watch was installed, before the listing
            fs.add_file(f"{LOG_DIR}/log-2024-01-02.csv")
            observer.create("log-2024-01-02.csv")

        watcher = _make(fs, pattern, FakeObserver(on_start=racing_writer))

        assert watcher.start() == ["log-2024-01-01.csv", "log-2024-01-02.csv"]
        assert watcher.next_event(timeout=0.01) is None

    def test_late_duplicate_event_is_dropped(self, fs, pattern):
        fs.add_file(f"{LOG_DIR}/log-2024-01-01.csv")
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        observer.create("log-2024-01-01.csv")
        assert watcher.next_event(timeout=0.01) is None

    def test_seen_names_are_pruned_as_newer_files_arrive(self, fs, pattern):
        for day in (1, 2, 3):
            fs.add_file(f"{LOG_DIR}/log-2024-01-0{day}.csv")
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        for day in range(4, 32):
            observer.create(f"log-2024-01-{day:02d}.csv")
            assert watcher.next_event(timeout=0.01) == f"log-2024-01-{day:02d}.csv"

        assert watcher._seen == {"log-2024-01-31.csv"}

        # The newest name is still deduplicated
        observer.create("log-2024-01-31.csv")
        assert watcher.next_event(timeout=0.01) is None

    def test_startup_names_deduplicated_until_newer_file(self, fs, pattern):
        fs.add_file(f"{LOG_DIR}/log-2024-01-01.csv")
        fs.add_file(f"{LOG_DIR}/log-2024-01-02.csv")
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        observer.create("log-2024-01-01.csv")
        observer.create("log-2024-01-02.csv")
        assert watcher.next_event(timeout=0.01) is None
        assert watcher._seen == {"log-2024-01-01.csv", "log-2024-01-02.csv"}

    def test_schedule_failure(self, fs, pattern):
        watcher = _make(fs, pattern, FakeObserver(fail_schedule=True))
        with pytest.raises(WatchError, match="could not watch"):
            watcher.start()

    def test_listing_failure_stops_observer(self, pattern):
        from csvtail.mocks import MockFileSystem

        observer = FakeObserver()
        watcher = _make(MockFileSystem(), pattern, observer)
        with pytest.raises(WatchError, match="could not list"):
            watcher.start()
        assert observer.stopped


class TestEvents:
    def test_new_matching_file_is_reported(self, fs, pattern):
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        observer.create("log-2024-01-05.csv")
        assert watcher.next_event(timeout=0.1) == "log-2024-01-05.csv"

    def test_non_matching_file_is_ignored(self, fs, pattern):
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        observer.create("log-2024-01-05.csv.gz")
        observer.create("pg_stat_tmp")
        assert watcher.next_event(timeout=0.01) is None

    def test_directory_creation_is_ignored(self, fs, pattern):
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        observer.handler.dispatch(DirCreatedEvent(f"{LOG_DIR}/log-2024-01-05.csv"))
        assert watcher.next_event(timeout=0.01) is None

    def test_events_delivered_in_arrival_order(self, fs, pattern):
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        observer.create("log-2024-01-05.csv")
        observer.create("log-2024-01-06.csv")
        assert watcher.next_event(timeout=0.1) == "log-2024-01-05.csv"
        assert watcher.next_event(timeout=0.1) == "log-2024-01-06.csv"

    def test_overflow_is_fatal(self, fs, pattern):
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer, queue_size=2)
        watcher.start()

        for day in range(1, 4):
            observer.create(f"log-2024-02-0{day}.csv")

        with pytest.raises(WatchError, match="overflowed"):
            watcher.next_event(timeout=0.01)

    def test_dead_observer_is_fatal(self, fs, pattern):
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        observer.alive = False
        with pytest.raises(WatchError, match="stopped unexpectedly"):
            watcher.next_event(timeout=0.01)


class TestStop:
    def test_stop_is_idempotent(self, fs, pattern):
        observer = FakeObserver()
        watcher = _make(fs, pattern, observer)
        watcher.start()

        watcher.stop()
        watcher.stop()
        assert observer.stopped

    def test_stopped_watcher_does_not_report_dead_observer(self, fs, pattern):
        watcher = _make(fs, pattern, FakeObserver())
        watcher.start()
        watcher.stop()
        assert watcher.next_event(timeout=0.01) is None

    def test_stop_before_start(self, fs, pattern):
        watcher = _make(fs, pattern, FakeObserver())
        watcher.stop()
