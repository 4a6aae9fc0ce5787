"""Shared test fixtures: in-memory collaborators and a FastAPI test client."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from deployhook.db.models import RepoMapping
from deployhook.dependencies import (
    get_controller_client,
    get_dispatcher,
    get_mapping_store,
    get_webhook_secret,
)
from deployhook.main import app
from deployhook.schemas.deploy import App
from deployhook.services.controller_client import InMemoryControllerClient
from deployhook.services.dispatcher import InMemoryDispatcher
from deployhook.services.mapping_store import InMemoryMappingStore

WEBHOOK_SECRET = "topsecret"


@pytest.fixture
def mapping_store() -> InMemoryMappingStore:
    """A store holding a single mapping: acme/widget@main -> app-42."""
    return InMemoryMappingStore(
        [RepoMapping(id=1, name="acme/widget", branch="main", app="app-42")],
        record_lookups=True,
    )


@pytest.fixture
def dispatcher() -> InMemoryDispatcher:
    """Create a fresh in-memory dispatcher for inspecting launched deploys."""
    return InMemoryDispatcher()


@pytest.fixture
def controller() -> InMemoryControllerClient:
    """Create an in-memory controller knowing the taffy release and two apps."""
    return InMemoryControllerClient(
        releases={"taffy": "release-1"},
        apps=[App(id="a1", name="widget"), App(id="a2", name="gadget")],
    )


@pytest.fixture
async def client(
    mapping_store: InMemoryMappingStore,
    dispatcher: InMemoryDispatcher,
    controller: InMemoryControllerClient,
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with dependencies overridden.

    The webhook secret is fixed to ``topsecret`` and every collaborator is
    an in-memory double, so no database or controller is needed.
    """
    app.dependency_overrides[get_webhook_secret] = lambda: WEBHOOK_SECRET.encode()
    app.dependency_overrides[get_mapping_store] = lambda: mapping_store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_controller_client] = lambda: controller
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
