"""Pydantic models for deploy requests and the controller API."""

from pydantic import BaseModel, ConfigDict, Field


class DeployRequest(BaseModel):
    """One accepted push, resolved to the app it deploys."""

    application_id: str
    source_url: str
    branch: str
    commit_id: str

    def args(self) -> list[str]:
        """Arguments passed to the deploy command, in command-line order."""
        return [self.application_id, self.source_url, self.branch, self.commit_id]


class Release(BaseModel):
    """A controller release (only the fields used here)."""

    id: str


class App(BaseModel):
    """A controller application."""

    id: str
    name: str


class NewJob(BaseModel):
    """Body of a controller job creation request."""

    release_id: str = Field(alias="release")
    release_env: bool = False
    args: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)
