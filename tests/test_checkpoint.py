"""Tests for csvtail/checkpoint.py: locked JSON checkpoint store."""

from __future__ import annotations

import json
import os

import pytest

from csvtail.checkpoint import (
    JsonCheckpointStore,
    POSITION_KEY,
    load_document,
    position_from_document,
)
from csvtail.errors import (
    CheckpointError,
    CheckpointExistsError,
    CheckpointLockedError,
    CorruptCheckpointError,
    NotInitializedError,
)
from csvtail.interfaces import StreamPosition


@pytest.fixture
def path(tmp_path):
    return str(tmp_path / "state" / "checkpoint.json")


class TestInitialize:
    def test_initialize_then_read(self, path):
        with JsonCheckpointStore(path) as store:
            store.initialize(StreamPosition("log-2024-01-01.csv", 42))
            assert store.read() == StreamPosition("log-2024-01-01.csv", 42, 0)

    def test_document_layout(self, path):
        with JsonCheckpointStore(path) as store:
            store.initialize(StreamPosition("log-2024-01-01.csv", 7, 99))
        with open(path) as f:
            data = json.load(f)
        assert data == {
            POSITION_KEY: {"filename": "log-2024-01-01.csv", "offset": 7, "bytesReadTotal": 99}
        }

    def test_reinitialize_rejected(self, path):
        with JsonCheckpointStore(path) as store:
            store.initialize(StreamPosition("a.csv", 0))
            with pytest.raises(CheckpointExistsError):
                store.initialize(StreamPosition("b.csv", 0))
            assert store.read().filename == "a.csv"

    def test_empty_filename_allowed(self, path):
        with JsonCheckpointStore(path) as store:
            store.initialize(StreamPosition("", 0))
            assert store.read().filename == ""


class TestReadWrite:
    def test_read_uninitialized(self, path):
        with JsonCheckpointStore(path) as store:
            with pytest.raises(NotInitializedError):
                store.read()

    def test_write_uninitialized(self, path):
        with JsonCheckpointStore(path) as store:
            with pytest.raises(NotInitializedError):
                store.write(StreamPosition("a.csv", 1))

    def test_write_replaces_whole_triple(self, path):
        with JsonCheckpointStore(path) as store:
            store.initialize(StreamPosition("a.csv", 0))
            store.write(StreamPosition("b.csv", 10, 500))
        with JsonCheckpointStore(path) as store:
            assert store.read() == StreamPosition("b.csv", 10, 500)

    def test_no_temp_files_left_behind(self, path):
        with JsonCheckpointStore(path) as store:
            store.initialize(StreamPosition("a.csv", 0))
            for i in range(5):
                store.write(StreamPosition("a.csv", i))
        leftovers = [n for n in os.listdir(os.path.dirname(path)) if n.endswith(".tmp")]
        assert leftovers == []

    def test_write_failure_is_checkpoint_error(self, path, monkeypatch):
        import csvtail.checkpoint as checkpoint_mod

        def boom(*args, **kwargs):
            raise OSError("disk full")

        with JsonCheckpointStore(path) as store:
            store.initialize(StreamPosition("a.csv", 0))
            monkeypatch.setattr(checkpoint_mod, "write_json_file", boom)
            with pytest.raises(CheckpointError, match="disk full"):
                store.write(StreamPosition("a.csv", 5))


class TestCorruption:
    def _write_raw(self, path, text):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            f.write(text)

    def test_invalid_json(self, path):
        self._write_raw(path, "{not json")
        with JsonCheckpointStore(path) as store:
            with pytest.raises(CorruptCheckpointError):
                store.read()

    def test_not_an_object(self, path):
        self._write_raw(path, "[1, 2]")
        with JsonCheckpointStore(path) as store:
            with pytest.raises(CorruptCheckpointError):
                store.read()

    @pytest.mark.parametrize("missing", ["filename", "offset", "bytesReadTotal"])
    def test_missing_key(self, path, missing):
        entry = {"filename": "a.csv", "offset": 1, "bytesReadTotal": 2}
        del entry[missing]
        self._write_raw(path, json.dumps({POSITION_KEY: entry}))
        with JsonCheckpointStore(path) as store:
            with pytest.raises(CorruptCheckpointError, match=missing):
                store.read()

    @pytest.mark.parametrize(
        "entry",
        [
            {"filename": 3, "offset": 0, "bytesReadTotal": 0},
            {"filename": "dir/a.csv", "offset": 0, "bytesReadTotal": 0},
            {"filename": "a.csv", "offset": -1, "bytesReadTotal": 0},
            {"filename": "a.csv", "offset": "10", "bytesReadTotal": 0},
            {"filename": "a.csv", "offset": True, "bytesReadTotal": 0},
            {"filename": "a.csv", "offset": 0, "bytesReadTotal": 1.5},
        ],
    )
    def test_bad_values(self, entry):
        with pytest.raises(CorruptCheckpointError):
            position_from_document({POSITION_KEY: entry})

    def test_missing_position_object(self):
        with pytest.raises(CorruptCheckpointError):
            position_from_document({"other": {}})


class TestLocking:
    def test_second_store_times_out(self, path):
        with JsonCheckpointStore(path) as first:
            first.initialize(StreamPosition("a.csv", 0))
            second = JsonCheckpointStore(path, lock_timeout=0.1)
            with pytest.raises(CheckpointLockedError):
                second.read()

    def test_lock_released_on_close(self, path):
        first = JsonCheckpointStore(path)
        first.initialize(StreamPosition("a.csv", 0))
        first.close()
        with JsonCheckpointStore(path, lock_timeout=0.1) as second:
            assert second.read().filename == "a.csv"

    def test_close_is_idempotent(self, path):
        store = JsonCheckpointStore(path)
        store.open()
        store.close()
        store.close()

    def test_load_document_does_not_need_lock(self, path):
        with JsonCheckpointStore(path) as store:
            store.initialize(StreamPosition("a.csv", 3))
            data = load_document(path)
        assert data[POSITION_KEY]["offset"] == 3

    def test_load_document_missing(self, path):
        assert load_document(path) is None
