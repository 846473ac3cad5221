"""Process-wide sync runtime.

Wires the scheduler and its collaborators from Settings once at app
startup.  Route handlers reach the pieces through ``get_scheduler()``,
``get_api_client()`` and ``get_location_source()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from healthsync.config import Settings, get_settings
from healthsync.services.api import HealthDataApiClient
from healthsync.sources import AppleHealthExportSource, get_source
from healthsync.sync.base import MeasurementSource, StaticContextSource, UserProfile
from healthsync.sync.grant import ExecutionGrant, TimedExecutionGrant, UnlimitedExecutionGrant
from healthsync.sync.location import PushedLocationSource
from healthsync.sync.scheduler import SyncScheduler
from healthsync.sync.state import JsonFileSyncStateStore

logger = logging.getLogger("healthsync.runtime")


@dataclass
class SyncRuntime:
    scheduler: SyncScheduler
    api_client: HealthDataApiClient
    location_source: PushedLocationSource


# Module-level runtime, initialized once at app startup
_runtime: SyncRuntime | None = None


def build_source(settings: Settings) -> MeasurementSource:
    """Instantiate the configured measurement source.

    Raises:
        KeyError: If ``measurement_source`` is not a registered source.
    """
    source_cls = get_source(settings.measurement_source)
    export_path = Path(settings.health_export_path) if settings.health_export_path else None

    if issubclass(source_cls, AppleHealthExportSource) and export_path is not None:
        if export_path.exists():
            source = source_cls.from_file(export_path)
            logger.info(
                "Loaded %d sample(s) from %s", source.sample_count, export_path
            )
            return source
        logger.warning("Health export %s not found; starting with no samples", export_path)
    return source_cls()


def build_grant(settings: Settings) -> ExecutionGrant:
    if settings.background_grant_seconds > 0:
        return TimedExecutionGrant(settings.background_grant_seconds)
    return UnlimitedExecutionGrant()


def build_runtime(settings: Settings) -> SyncRuntime:
    api_client = HealthDataApiClient(
        settings.api_base_url,
        timeout_seconds=settings.request_timeout_seconds,
        auth_token=settings.api_token or None,
    )
    profile = UserProfile(
        user_id=settings.user_id,
        provider=settings.auth_provider,
        gender=settings.user_gender,
        birth_date=settings.user_birth_date,
    )
    location_source = PushedLocationSource()
    scheduler = SyncScheduler(
        source=build_source(settings),
        uploader=api_client,
        store=JsonFileSyncStateStore(settings.state_file),
        context_source=StaticContextSource(profile),
        location_source=location_source,
        grant=build_grant(settings),
        interval_seconds=settings.sync_interval_seconds,
        snapshot_timeout_seconds=settings.snapshot_timeout_seconds,
        location_poll_attempts=settings.location_poll_attempts,
        location_poll_interval_seconds=settings.location_poll_interval_seconds,
        location_max_age_seconds=settings.location_max_age_seconds,
        max_batch_snapshots=settings.max_batch_snapshots,
    )
    return SyncRuntime(
        scheduler=scheduler, api_client=api_client, location_source=location_source
    )


async def init_runtime(settings: Settings | None = None) -> SyncRuntime:
    """Build the scheduler and its collaborators. Call once at app startup."""
    global _runtime
    s = settings or get_settings()
    _runtime = build_runtime(s)
    logger.info(
        "Sync runtime initialized (source=%s, backend=%s, state=%s)",
        s.measurement_source, s.api_base_url, s.state_file,
    )
    return _runtime


async def close_runtime() -> None:
    """Stop the scheduler and close the HTTP client. Call at app shutdown."""
    global _runtime
    if _runtime:
        await _runtime.scheduler.stop()
        await _runtime.api_client.aclose()
        _runtime = None
        logger.info("Sync runtime closed")


def get_runtime() -> SyncRuntime:
    if _runtime is None:
        raise RuntimeError("Sync runtime not initialized; call init_runtime() first")
    return _runtime


def get_scheduler() -> SyncScheduler:
    return get_runtime().scheduler


def get_api_client() -> HealthDataApiClient:
    return get_runtime().api_client


def get_location_source() -> PushedLocationSource:
    return get_runtime().location_source
