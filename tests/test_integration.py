"""End-to-end test on a real directory with watchdog's polling observer."""

from __future__ import annotations

import threading

import pytest
from watchdog.observers.polling import PollingObserver

from csvtail.checkpoint import JsonCheckpointStore, POSITION_KEY, load_document
from csvtail.config import TailConfig
from csvtail.daemon import TailDaemon
from csvtail.interfaces import StreamPosition
from csvtail.mocks import RecordingProcessor

from conftest import wait_for

DAY1 = "postgresql-2024-01-01_000000.csv"
DAY2 = "postgresql-2024-01-02_000000.csv"


@pytest.fixture
def log_dir(tmp_path):
    path = tmp_path / "pg_log"
    path.mkdir()
    return path


def test_tails_across_rotation_and_resumes(tmp_path, log_dir):
    checkpoint = str(tmp_path / "checkpoint.json")
    with JsonCheckpointStore(checkpoint) as store:
        store.initialize(StreamPosition(DAY1))

    config = TailConfig(
        directory=str(log_dir),
        checkpoint_path=checkpoint,
        poll_interval=0.02,
        max_poll_interval=0.1,
        min_fields=0,
        status_path=str(tmp_path / "status.json"),
    )
    (log_dir / DAY1).write_bytes(b'1,"first"\n2,"multi\nline"\n')

    processor = RecordingProcessor()
    daemon = TailDaemon(
        config,
        processor=processor,
        observer_factory=lambda: PollingObserver(timeout=0.05),
    )
    result = {}
    thread = threading.Thread(target=lambda: result.setdefault("code", daemon.run()))
    thread.start()
    try:
        assert wait_for(lambda: len(processor.records) == 2)

        # Partial record stays invisible until its newline lands
        with open(log_dir / DAY1, "ab") as f:
            f.write(b'3,"par')
            f.flush()
            assert not wait_for(lambda: len(processor.records) > 2, timeout=0.3)
            f.write(b'tial"\n')

        assert wait_for(lambda: len(processor.records) == 3)

        (log_dir / DAY2).write_bytes(b'4,"rotated"\n')
        assert wait_for(lambda: len(processor.records) == 4)
    finally:
        daemon.stop()
        thread.join(timeout=10)

    assert not thread.is_alive()
    assert result["code"] == 0
    assert processor.records == [["1", "first"], ["2", "multi\nline"], ["3", "partial"], ["4", "rotated"]]

    saved = load_document(checkpoint)[POSITION_KEY]
    assert saved == {"filename": DAY2, "offset": 12, "bytesReadTotal": 49}
    assert (tmp_path / "status.json").exists()

    # A second run picks up exactly where the first one stopped
    with open(log_dir / DAY2, "ab") as f:
        f.write(b'5,"after restart"\n')
    processor2 = RecordingProcessor(on_record=lambda position, record: daemon2.stop())
    daemon2 = TailDaemon(
        config,
        processor=processor2,
        observer_factory=lambda: PollingObserver(timeout=0.05),
    )
    assert daemon2.run() == 0
    assert processor2.records == [["5", "after restart"]]
