"""Canonical data models and collaborator interfaces for the HealthSync engine.

The scheduler only ever talks to the abstract collaborators defined here
(MeasurementSource, UploadClient, ProjectContextSource, LocationSource).
Concrete adapters live in ``healthsync.sources`` and ``healthsync.services``,
and tests substitute fakes.
"""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime


# Snapshot fields in wire order.  Latitude/longitude come from the location
# source, everything else from the measurement source.
MEASUREMENT_FIELDS: tuple[str, ...] = (
    "step_count",
    "heart_rate",
    "blood_pressure_systolic",
    "blood_pressure_diastolic",
    "oxygen_saturation",
    "body_temperature",
    "respiratory_rate",
    "height",
    "weight",
    "running_speed",
    "active_energy",
    "basal_energy",
)
LOCATION_FIELDS: tuple[str, ...] = ("latitude", "longitude")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SyncError(Exception):
    """Base class for errors raised inside a sync cycle."""


class SourceError(SyncError):
    """A measurement source could not produce a snapshot."""


class UploadError(SyncError):
    """The backend rejected a batch or could not be reached."""


class StatePersistenceError(SyncError):
    """The sync state store could not be read or written."""


class MissingProjectError(SyncError):
    """No project identifier is available for the cycle."""


class SchedulerStateError(SyncError):
    """A command is not valid in the scheduler's current state."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MeasurementSnapshot:
    """Measurement values available at one instant.

    Every field is independently optional: a source may have data for some
    kinds and not others at a given minute.  Instances are immutable so a
    snapshot placed in a SyncBatch never changes afterwards.
    """

    timestamp: datetime
    step_count: float | None = None
    heart_rate: float | None = None
    blood_pressure_systolic: float | None = None
    blood_pressure_diastolic: float | None = None
    oxygen_saturation: float | None = None
    body_temperature: float | None = None
    respiratory_rate: float | None = None
    height: float | None = None
    weight: float | None = None
    running_speed: float | None = None
    active_energy: float | None = None
    basal_energy: float | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def is_empty(self) -> bool:
        return all(
            getattr(self, name) is None for name in MEASUREMENT_FIELDS + LOCATION_FIELDS
        )

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def with_location(self, latitude: float, longitude: float) -> "MeasurementSnapshot":
        return dataclasses.replace(self, latitude=latitude, longitude=longitude)

    def values(self) -> dict[str, float | None]:
        """Return all measurement and location fields keyed by field name."""
        return {
            name: getattr(self, name) for name in MEASUREMENT_FIELDS + LOCATION_FIELDS
        }


@dataclass(frozen=True)
class UserProfile:
    """Stable identity/demographic fields sent once per batch.

    Attributes:
        user_id:    Identifier issued by the social-identity provider.
        provider:   Provider slug ('apple', 'samsung', 'google').
        gender:     Self-reported gender, if shared.
        birth_date: Date of birth, if shared.
    """

    user_id: str
    provider: str = "apple"
    gender: str | None = None
    birth_date: date | None = None


@dataclass(frozen=True)
class ProjectContext:
    """Project identifier plus the user profile attached to every batch."""

    project_id: int
    profile: UserProfile


@dataclass(frozen=True)
class SyncBatch:
    """One atomic upload unit.

    Raises:
        ValueError: If ``snapshots`` is empty or not in timestamp order.
    """

    context: ProjectContext
    snapshots: tuple[MeasurementSnapshot, ...]

    def __post_init__(self) -> None:
        if not self.snapshots:
            raise ValueError("SyncBatch requires at least one snapshot")
        stamps = [s.timestamp for s in self.snapshots]
        if any(later < earlier for earlier, later in zip(stamps, stamps[1:])):
            raise ValueError("SyncBatch snapshots must be in non-decreasing timestamp order")

    @property
    def project_id(self) -> int:
        return self.context.project_id

    @property
    def first_timestamp(self) -> datetime:
        return self.snapshots[0].timestamp

    @property
    def last_timestamp(self) -> datetime:
        return self.snapshots[-1].timestamp

    def __len__(self) -> int:
        return len(self.snapshots)


@dataclass(frozen=True)
class LocationFix:
    """A geolocation reading with the instant it was taken."""

    latitude: float
    longitude: float
    timestamp: datetime
    accuracy_m: float | None = None


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class MeasurementSource(ABC):
    """Produces measurement snapshots for a point in time.

    Implementations must never return values recorded after ``at``.
    """

    SOURCE_ID: str = ""

    @abstractmethod
    async def snapshot(self, at: datetime) -> MeasurementSnapshot:
        """Return the measurements available at or before ``at``.

        Args:
            at: Instant to sample.

        Returns:
            MeasurementSnapshot keyed by ``at``; fields the source has no
            data for are None.

        Raises:
            SourceError: If the underlying store could not be queried.
        """


class UploadClient(ABC):
    """Delivers a SyncBatch to the remote backend, atomically."""

    @abstractmethod
    async def send(self, batch: SyncBatch) -> None:
        """Upload the whole batch.

        Raises:
            UploadError: On any transport error or non-2xx response.
        """


class ProjectContextSource(ABC):
    """Resolves the ProjectContext for a project, once per cycle."""

    @abstractmethod
    async def fetch(self, project_id: int) -> ProjectContext:
        """Return the project context for ``project_id``."""


class LocationSource(ABC):
    """Host-provided geolocation."""

    @abstractmethod
    def request_update(self) -> None:
        """Ask the host for a fresh fix.  Must not block."""

    @abstractmethod
    def last_fix(self) -> LocationFix | None:
        """Return the most recent fix, or None if none has arrived."""


class StaticContextSource(ProjectContextSource):
    """Context source backed by a fixed user profile.

    The profile is established at registration time and does not change
    between cycles; only the project identifier varies.
    """

    def __init__(self, profile: UserProfile) -> None:
        self._profile = profile

    async def fetch(self, project_id: int) -> ProjectContext:
        return ProjectContext(project_id=project_id, profile=self._profile)
