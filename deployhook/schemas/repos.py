"""Pydantic models for the repository mapping admin endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CreateRepoRequest(BaseModel):
    """Request body for POST /repos."""

    name: str = Field(..., description="Repository full name, e.g. owner/name")
    app: str
    branch: str | None = None


class RepoMappingResponse(BaseModel):
    """A stored repository mapping."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    name: str
    branch: str
    app: str
    created_at: datetime | None = None
