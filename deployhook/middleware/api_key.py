"""API key middleware for protecting the mapping admin routes."""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from deployhook.config import settings

# The webhook receiver authenticates with its own signature.
_EXEMPT_PATHS = frozenset({"/", "/healthz"})


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Require a valid X-API-Key header on admin routes.

    Behaviour:
    - When ``settings.api_key`` is empty the middleware is a no-op (local dev).
    - ``/`` and ``/healthz`` are always exempt.
    - All other routes must include a matching ``X-API-Key`` header.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not settings.api_key or request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        provided = request.headers.get("X-API-Key")
        if not provided or provided != settings.api_key:
            return JSONResponse(
                status_code=401, content={"detail": "Invalid or missing API key"}
            )

        return await call_next(request)
