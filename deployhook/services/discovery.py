"""Service discovery lookup used at startup to locate the controller."""

from __future__ import annotations

import asyncio

import httpx
import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from deployhook.config import Settings
from deployhook.services.controller_client import HTTPControllerClient

logger = structlog.get_logger()


class DiscoveryError(RuntimeError):
    """Raised when a service has no registered instances within the timeout."""


class Instance(BaseModel):
    """A registered service instance."""

    id: str = ""
    addr: str
    proto: str = ""
    meta: dict[str, str] = Field(default_factory=dict)


_instances_adapter = TypeAdapter(list[Instance])


async def get_instances(
    client: httpx.AsyncClient,
    discoverd_url: str,
    service: str,
    timeout: float,
    poll_interval: float = 0.5,
) -> list[Instance]:
    """Poll the discovery API until *service* has at least one instance.

    Transient request failures are retried until *timeout* seconds have
    elapsed.

    Raises:
        DiscoveryError: If no instances are found in time.
    """
    url = f"{discoverd_url.rstrip('/')}/services/{service}/instances"
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    last_error = "no instances registered"

    while True:
        try:
            resp = await client.get(url)
            resp.raise_for_status()
            instances = _instances_adapter.validate_json(resp.content)
        except (httpx.HTTPError, ValidationError) as exc:
            last_error = str(exc)
            logger.debug("discovery_lookup_retry", service=service, error=last_error)
        else:
            if instances:
                return instances

        if loop.time() + poll_interval > deadline:
            msg = f"timed out waiting for {service} instances: {last_error}"
            raise DiscoveryError(msg)
        await asyncio.sleep(poll_interval)


async def connect_controller(settings: Settings, client: httpx.AsyncClient) -> HTTPControllerClient:
    """Build the controller client from explicit settings or service discovery.

    ``CONTROLLER_URL`` and ``CONTROLLER_AUTH_KEY`` take precedence. Otherwise
    the first instance of ``CONTROLLER_SERVICE`` is used with the auth key
    from its ``AUTH_KEY`` metadata.
    """
    if settings.controller_url:
        return HTTPControllerClient(client, settings.controller_url, settings.controller_auth_key)

    try:
        instances = await get_instances(
            client,
            settings.discoverd_url,
            settings.controller_service,
            settings.discovery_timeout,
        )
    except DiscoveryError:
        logger.error("controller_lookup_failed", service=settings.controller_service)
        raise

    instance = instances[0]
    logger.info("controller_discovered", addr=instance.addr, instances=len(instances))
    return HTTPControllerClient(client, f"http://{instance.addr}", instance.meta.get("AUTH_KEY", ""))
