"""Shared fixtures for the HTTP client and host bridge tests."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from healthsync.config import Settings
from healthsync.sync.base import MeasurementSnapshot, ProjectContext, SyncBatch, UserProfile

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
TEST_PROJECT_ID = 42


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        user_id="apple-user-001",
        provider="apple",
        gender="female",
        birth_date=date(1990, 5, 17),
    )


@pytest.fixture
def batch(profile: UserProfile) -> SyncBatch:
    return SyncBatch(
        context=ProjectContext(project_id=TEST_PROJECT_ID, profile=profile),
        snapshots=(
            MeasurementSnapshot(timestamp=T0, step_count=12.0, heart_rate=61.0),
            MeasurementSnapshot(
                timestamp=T0.replace(minute=1), heart_rate=63.0, latitude=52.52, longitude=13.4
            ),
        ),
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and the working directory."""
    return Settings(
        _env_file=None,
        api_base_url="http://backend.test",
        state_file=str(tmp_path / "state.json"),
        measurement_source="samples",
        user_id="apple-user-001",
    )
