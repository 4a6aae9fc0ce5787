"""Admin router for managing repository mappings.

Mappings are created here and only read by the webhook receiver.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from deployhook.config import settings
from deployhook.dependencies import get_controller_client, get_mapping_store
from deployhook.schemas.deploy import App
from deployhook.schemas.repos import CreateRepoRequest, RepoMappingResponse
from deployhook.services.controller_client import ControllerClient, ControllerError
from deployhook.services.mapping_store import DuplicateMappingError, MappingStore

logger = structlog.get_logger()

router = APIRouter(tags=["repos"])


@router.get("/repos.json")
async def list_repos(
    store: Annotated[MappingStore, Depends(get_mapping_store)],
) -> list[RepoMappingResponse]:
    """List every repository mapping."""
    mappings = await store.list_all()
    return [RepoMappingResponse.model_validate(m) for m in mappings]


@router.post("/repos", status_code=status.HTTP_201_CREATED)
async def create_repo(
    request: CreateRepoRequest,
    store: Annotated[MappingStore, Depends(get_mapping_store)],
) -> RepoMappingResponse:
    """Map a repository branch to an app. The branch defaults to ``DEFAULT_BRANCH``."""
    name = request.name.strip()
    app = request.app.strip()
    if not name or not app:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="both name and app are required",
        )
    branch = (request.branch or "").strip() or settings.default_branch

    try:
        mapping = await store.create(name, branch, app)
    except DuplicateMappingError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from None

    logger.info("repo_mapping_created", repo=name, branch=branch, app=app)
    return RepoMappingResponse.model_validate(mapping)


@router.get("/apps.json")
async def list_apps(
    controller: Annotated[ControllerClient, Depends(get_controller_client)],
) -> list[App]:
    """List the apps known to the controller, for choosing a mapping target."""
    try:
        return await controller.list_apps()
    except ControllerError as exc:
        logger.error("list_apps_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="error getting apps",
        ) from None
