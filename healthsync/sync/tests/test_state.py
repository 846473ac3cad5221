"""Tests for the sync state stores."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from healthsync.sync.base import StatePersistenceError
from healthsync.sync.state import InMemorySyncStateStore, JsonFileSyncStateStore, SyncState
from healthsync.sync.tests.conftest import T0, minutes


class TestInMemoryStore:
    def test_empty_by_default(self) -> None:
        state = InMemorySyncStateStore().get()
        assert state.last_sync is None
        assert state.project_id is None

    def test_set_then_get(self) -> None:
        store = InMemorySyncStateStore()
        store.set(T0, 7)
        assert store.get() == SyncState(last_sync=T0, project_id=7)
        assert store.writes == 1


class TestJsonFileStore:
    def test_missing_file_reads_as_empty(self, tmp_path: Path) -> None:
        store = JsonFileSyncStateStore(tmp_path / "state.json")
        assert store.get() == SyncState()

    def test_survives_restart(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        JsonFileSyncStateStore(path).set(T0 + minutes(5), 42)

        reopened = JsonFileSyncStateStore(path)
        state = reopened.get()
        assert state.last_sync == T0 + minutes(5)
        assert state.project_id == 42

    def test_values_pass_through_unchanged(self, tmp_path: Path) -> None:
        """The store never clamps; an earlier watermark is written as given."""
        store = JsonFileSyncStateStore(tmp_path / "state.json")
        store.set(T0 + minutes(5), 42)
        store.set(T0, 43)
        assert store.get() == SyncState(last_sync=T0, project_id=43)

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "dir" / "state.json"
        JsonFileSyncStateStore(path).set(T0, 1)
        assert path.exists()

    def test_leaves_no_temp_files(self, tmp_path: Path) -> None:
        store = JsonFileSyncStateStore(tmp_path / "state.json")
        store.set(T0, 1)
        store.set(T0 + minutes(1), 1)
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StatePersistenceError):
            JsonFileSyncStateStore(path).get()

    def test_non_object_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(StatePersistenceError, match="not an object"):
            JsonFileSyncStateStore(path).get()

    def test_unwritable_location_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = JsonFileSyncStateStore(blocker / "state.json")
        with pytest.raises(StatePersistenceError, match="Could not write"):
            store.set(T0, 1)

    def test_naive_watermark_is_read_as_local_time(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(
            json.dumps({"last_sync": "2024-01-15T10:00:00", "project_id": 3}),
            encoding="utf-8",
        )
        state = JsonFileSyncStateStore(path).get()
        assert state.last_sync is not None
        assert state.last_sync.tzinfo is not None
        assert state.project_id == 3

    def test_unparseable_watermark_is_dropped(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(
            json.dumps({"last_sync": "yesterday", "project_id": 3}), encoding="utf-8"
        )
        assert JsonFileSyncStateStore(path).get() == SyncState(project_id=3)

    def test_non_integer_project_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(
            json.dumps({"last_sync": "2024-01-15T10:00:00+00:00", "project_id": "abc"}),
            encoding="utf-8",
        )
        with pytest.raises(StatePersistenceError, match="malformed"):
            JsonFileSyncStateStore(path).get()

    def test_non_string_watermark_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"last_sync": 12345, "project_id": 3}), encoding="utf-8")
        with pytest.raises(StatePersistenceError, match="malformed"):
            JsonFileSyncStateStore(path).get()
