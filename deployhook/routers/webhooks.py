"""GitHub webhook receiver with HMAC-SHA1 signature verification."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import PlainTextResponse, Response

from deployhook.dependencies import get_dispatcher, get_mapping_store, get_webhook_secret
from deployhook.schemas.deploy import DeployRequest
from deployhook.services.dispatcher import Dispatcher
from deployhook.services.events import Verdict, classify
from deployhook.services.mapping_store import MappingStore
from deployhook.services.signature import SignatureError, verify_signature

logger = structlog.get_logger()

router = APIRouter(tags=["webhooks"])


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.post("/", response_class=Response)
async def github_webhook(
    request: Request,
    secret: Annotated[bytes, Depends(get_webhook_secret)],
    store: Annotated[MappingStore, Depends(get_mapping_store)],
    dispatcher: Annotated[Dispatcher, Depends(get_dispatcher)],
    x_github_event: Annotated[str | None, Header()] = None,
    x_hub_signature: Annotated[str | None, Header()] = None,
) -> Response:
    """Receive a GitHub webhook delivery and launch a deploy for mapped pushes.

    Responds as soon as the deploy has been launched. Pushes for branches
    with no mapping get a 200 so GitHub does not retry or disable the hook.
    """
    logger.debug("webhook_received", event=x_github_event)

    if not x_github_event:
        logger.warning("webhook_rejected", reason="missing X-GitHub-Event header")
        raise _bad_request("missing X-GitHub-Event header")

    if not x_hub_signature:
        logger.warning("webhook_rejected", reason="missing X-Hub-Signature header")
        raise _bad_request("missing X-Hub-Signature header")

    # The MAC must cover the exact bytes received, so read them once and
    # decode the same buffer.
    body = await request.body()
    try:
        verify_signature(secret, body, x_hub_signature)
    except SignatureError as exc:
        logger.warning("webhook_rejected", reason=str(exc))
        raise _bad_request(str(exc)) from None

    result = classify(x_github_event, body)

    if result.verdict is Verdict.REJECTED:
        logger.warning("webhook_rejected", reason=result.reason, event=x_github_event)
        raise _bad_request(result.reason)

    if result.verdict is Verdict.ACKNOWLEDGED:
        if x_github_event == "ping":
            logger.info("ping_received")
            return PlainTextResponse(result.reason)
        logger.info("push_ignored", reason=result.reason)
        return Response(status_code=status.HTTP_200_OK)

    event = result.event
    log = logger.bind(repo=result.repository, branch=result.branch)
    log.info("push_received", commit=event.head_commit_id)

    try:
        mapping = await store.get(result.repository, result.branch)
    except Exception:
        log.exception("mapping_lookup_failed")
        return Response(status_code=status.HTTP_200_OK)

    if mapping is None:
        log.info("mapping_not_found")
        return Response(status_code=status.HTTP_200_OK)

    dispatcher.launch(
        DeployRequest(
            application_id=mapping.app,
            source_url=event.repository.clone_url,
            branch=result.branch,
            commit_id=event.head_commit_id,
        )
    )
    log.info("deploy_launched", app=mapping.app)
    return Response(status_code=status.HTTP_200_OK)
