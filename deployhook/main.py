"""FastAPI application factory with lifespan context manager."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deployhook.config import settings
from deployhook.db.engine import dispose_engine, init_engine
from deployhook.dependencies import init_production_deps
from deployhook.logging_config import configure_logging
from deployhook.middleware.api_key import ApiKeyMiddleware
from deployhook.routers import health, repos, webhooks
from deployhook.services.discovery import connect_controller
from deployhook.services.dispatcher import BackgroundDispatcher, Deployer
from deployhook.services.mapping_store import (
    InMemoryMappingStore,
    MappingStore,
    SqlMappingStore,
)

logger = structlog.get_logger()


async def _open_mapping_store() -> MappingStore:
    if settings.static_repo_map:
        logger.info("using_static_repo_map", entries=len(settings.static_repo_map))
        return InMemoryMappingStore.from_config(settings.static_repo_map, settings.default_branch)
    session_factory = await init_engine(settings.database_url)
    return SqlMappingStore(session_factory)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared handles at startup; any failure here aborts the process.

    Startup order: logging, webhook secret, mapping store, controller client,
    dispatcher. In-flight deploys are cancelled at shutdown.
    """
    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)
    settings.require_secret()

    try:
        store = await _open_mapping_store()
        async with httpx.AsyncClient(timeout=30.0) as http_client:
            controller = await connect_controller(settings, http_client)
            deployer = Deployer(
                controller,
                deploy_app=settings.deploy_app,
                deploy_command=settings.deploy_command,
                attach_timeout=settings.attach_timeout,
            )
            dispatcher = BackgroundDispatcher(
                deployer,
                max_concurrent=settings.max_concurrent_deploys,
                serialize_per_app=settings.serialize_app_deploys,
            )
            init_production_deps(store, controller, dispatcher)

            logger.info("listening_for_webhooks", port=settings.port)
            try:
                yield
            finally:
                await dispatcher.aclose()
    finally:
        await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(ApiKeyMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for any unhandled exception."""
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(health.router)
app.include_router(webhooks.router)
app.include_router(repos.router)
