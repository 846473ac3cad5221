"""Durable sync state: the watermark and the last-used project.

The store is deliberately dumb.  It passes values through unchanged and
leaves consistency (monotonic watermark, matching project) to the scheduler.
``JsonFileSyncStateStore`` is the production implementation and survives
process restarts; ``InMemorySyncStateStore`` is for tests and dry runs.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from healthsync.sync.base import StatePersistenceError

logger = logging.getLogger("healthsync.sync.state")


@dataclass(frozen=True)
class SyncState:
    """Persisted sync state.

    Attributes:
        last_sync:  Instant up to which data has been durably delivered.
        project_id: Project the last successful batch belonged to.
    """

    last_sync: datetime | None = None
    project_id: int | None = None

    def to_json(self) -> dict:
        return {
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "project_id": self.project_id,
        }

    @classmethod
    def from_json(cls, data: dict) -> "SyncState":
        """Decode a stored document.

        An unparseable watermark string is dropped.  Values of the wrong type
        raise ``TypeError`` or ``ValueError``.
        """
        last_sync = None
        if raw := data.get("last_sync"):
            try:
                last_sync = datetime.fromisoformat(raw)
                if last_sync.tzinfo is None:
                    # Written without an offset: treat as local time
                    last_sync = last_sync.astimezone()
            except ValueError:
                logger.warning("Ignoring unparseable stored watermark: %r", raw)
        project_id = data.get("project_id")
        return cls(
            last_sync=last_sync,
            project_id=int(project_id) if project_id is not None else None,
        )


class SyncStateStore(ABC):
    """Key-value persistence of ``{last_sync, project_id}``."""

    @abstractmethod
    def get(self) -> SyncState:
        """Return the stored state (fields are None when never set).

        Raises:
            StatePersistenceError: If the backing store cannot be read.
        """

    @abstractmethod
    def set(self, last_sync: datetime, project_id: int) -> None:
        """Persist both values.

        Raises:
            StatePersistenceError: If the write did not complete.
        """


class InMemorySyncStateStore(SyncStateStore):
    """Process-local store.  Loses state on restart."""

    def __init__(self, initial: SyncState | None = None) -> None:
        self._state = initial or SyncState()
        self.writes = 0

    def get(self) -> SyncState:
        return self._state

    def set(self, last_sync: datetime, project_id: int) -> None:
        self._state = SyncState(last_sync=last_sync, project_id=project_id)
        self.writes += 1


class JsonFileSyncStateStore(SyncStateStore):
    """Store the state as a small JSON document on disk.

    Writes go to a temporary file in the same directory followed by an
    atomic rename, so a crash mid-write leaves the previous state intact.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> SyncState:
        if not self._path.exists():
            return SyncState()
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise StatePersistenceError(
                f"Could not read sync state from {self._path}: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise StatePersistenceError(f"Sync state in {self._path} is not an object")
        try:
            return SyncState.from_json(data)
        except (ValueError, TypeError) as exc:
            raise StatePersistenceError(
                f"Sync state in {self._path} is malformed: {exc}"
            ) from exc

    def set(self, last_sync: datetime, project_id: int) -> None:
        payload = SyncState(last_sync=last_sync, project_id=project_id).to_json()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=".sync_state.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StatePersistenceError(
                f"Could not write sync state to {self._path}: {exc}"
            ) from exc
        logger.debug("Persisted watermark %s for project %s", last_sync, project_id)
