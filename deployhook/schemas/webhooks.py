"""Pydantic models for GitHub push webhook payloads."""

from pydantic import BaseModel, field_validator


class Commit(BaseModel):
    """The head commit of a push."""

    id: str


class Repository(BaseModel):
    """Repository metadata from the webhook payload."""

    full_name: str
    clone_url: str


class PushEvent(BaseModel):
    """GitHub push webhook event payload.

    Only the fields needed to resolve and deploy a push are modelled; the
    rest of the payload is ignored.

    Reference: https://docs.github.com/en/webhooks/webhook-events-and-payloads#push
    """

    ref: str
    deleted: bool = False
    head_commit: Commit | None = None
    repository: Repository

    @field_validator("deleted", mode="before")
    @classmethod
    def _null_is_not_deleted(cls, value: object) -> object:
        return False if value is None else value

    @property
    def head_commit_id(self) -> str:
        """ID of the head commit, or an empty string when the push has none."""
        return self.head_commit.id if self.head_commit is not None else ""
