"""Health check endpoint with mapping store connectivity verification."""

from typing import Annotated

from fastapi import APIRouter, Depends

from deployhook.dependencies import get_mapping_store
from deployhook.schemas.health import HealthResponse
from deployhook.services.mapping_store import MappingStore

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse)
async def healthz(
    store: Annotated[MappingStore, Depends(get_mapping_store)],
) -> HealthResponse:
    """Check application health and mapping store connectivity.

    Returns 200 with status info on success; lets exceptions propagate as 500.
    """
    await store.ping()
    return HealthResponse(status="ok", mapping_store="connected")
