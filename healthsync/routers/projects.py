"""Project catalogue, proxied from the backend."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from healthsync.dependencies import ApiClient
from healthsync.models.base import ErrorDetail
from healthsync.models.sync import ProjectRead
from healthsync.services.api import ApiError

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=list[ProjectRead], responses={502: {"model": ErrorDetail}})
async def list_projects(client: ApiClient) -> Any:
    try:
        projects = await client.fetch_projects()
    except ApiError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return [ProjectRead.model_validate(p) for p in projects]
