"""Webhook event classification.

Decides, from the event type header and the verified raw body, whether a
delivery is rejected, acknowledged without further work, or dispatched for
deployment.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from deployhook.schemas.webhooks import PushEvent

BRANCH_REF_PREFIX = "refs/heads/"
PING_REPLY = "pong"


class Verdict(str, Enum):
    """Outcome of classifying a webhook delivery."""

    REJECTED = "rejected"
    ACKNOWLEDGED = "acknowledged"
    DISPATCH = "dispatch"


@dataclass(frozen=True)
class Classification:
    """Result of :func:`classify`.

    ``reason`` is the client-facing message for rejections and the reply
    body for ping acknowledgements. ``repository``, ``branch`` and ``event``
    are only set for ``DISPATCH``.
    """

    verdict: Verdict
    reason: str = ""
    repository: str = ""
    branch: str = ""
    event: PushEvent | None = None


def branch_from_ref(ref: str) -> str:
    """Strip the ``refs/heads/`` prefix from a git ref.

    Refs outside ``refs/heads/`` (tags, notes) are returned unchanged.
    """
    return ref.removeprefix(BRANCH_REF_PREFIX)


def classify(event_type: str | None, body: bytes) -> Classification:
    """Classify a delivery whose signature has already been verified."""
    if not event_type:
        return Classification(Verdict.REJECTED, "missing X-GitHub-Event header")

    if event_type == "ping":
        return Classification(Verdict.ACKNOWLEDGED, PING_REPLY)

    if event_type != "push":
        return Classification(Verdict.REJECTED, f"unknown X-GitHub-Event: {event_type}")

    try:
        event = PushEvent.model_validate_json(body)
    except ValidationError:
        return Classification(Verdict.REJECTED, "invalid JSON payload")

    if event.deleted:
        return Classification(Verdict.ACKNOWLEDGED, f"skipping deleted branch: {event.ref}")

    return Classification(
        Verdict.DISPATCH,
        repository=event.repository.full_name,
        branch=branch_from_ref(event.ref),
        event=event,
    )
