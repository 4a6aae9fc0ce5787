"""Centralized FastAPI dependencies for use with Depends()."""

from deployhook.config import settings
from deployhook.services.controller_client import ControllerClient, InMemoryControllerClient
from deployhook.services.dispatcher import Dispatcher, InMemoryDispatcher
from deployhook.services.mapping_store import InMemoryMappingStore, MappingStore

_mapping_store: MappingStore = InMemoryMappingStore()
_controller: ControllerClient = InMemoryControllerClient()
_dispatcher: Dispatcher = InMemoryDispatcher()


def init_production_deps(
    mapping_store: MappingStore,
    controller: ControllerClient,
    dispatcher: Dispatcher,
) -> None:
    """Swap the in-memory defaults for the handles built at startup."""
    global _mapping_store, _controller, _dispatcher  # noqa: PLW0603

    _mapping_store = mapping_store
    _controller = controller
    _dispatcher = dispatcher


def get_mapping_store() -> MappingStore:
    """Return the shared mapping store.

    Defaults to an empty InMemoryMappingStore until ``init_production_deps()``
    runs.
    """
    return _mapping_store


def get_controller_client() -> ControllerClient:
    """Return the shared controller client."""
    return _controller


def get_dispatcher() -> Dispatcher:
    """Return the shared deploy dispatcher."""
    return _dispatcher


def get_webhook_secret() -> bytes:
    """Return the webhook signing secret.

    Raises:
        ConfigurationError: If ``SECRET_TOKEN`` is not configured.
    """
    return settings.require_secret()


__all__ = [
    "get_controller_client",
    "get_dispatcher",
    "get_mapping_store",
    "get_webhook_secret",
    "init_production_deps",
]
