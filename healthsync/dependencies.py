"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from healthsync.services.api import HealthDataApiClient
from healthsync.services.runtime import get_api_client, get_location_source, get_scheduler
from healthsync.sync.location import PushedLocationSource
from healthsync.sync.scheduler import SyncScheduler

# Annotated shortcuts for route signatures
Scheduler = Annotated[SyncScheduler, Depends(get_scheduler)]
ApiClient = Annotated[HealthDataApiClient, Depends(get_api_client)]
LocationInbox = Annotated[PushedLocationSource, Depends(get_location_source)]
