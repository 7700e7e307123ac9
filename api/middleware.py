"""Request-scoped middleware for API requests."""

from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.store_context import set_current_store_id, clear_current_store_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request, honouring an incoming X-Request-ID."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class StoreContextMiddleware(BaseHTTPMiddleware):
    """
    Sets the store context from the X-Store-ID header.

    Every billing route talks to store-scoped backend endpoints, so requests
    without a store are rejected before reaching a route. Public paths
    bypass the check.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def _is_public_path(self, path: str) -> bool:
        return any(path == p or path.startswith(p) for p in self.PUBLIC_PATHS)

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        store_id = request.headers.get("X-Store-ID", "").strip()
        if not store_id:
            return JSONResponse(
                status_code=400,
                content=error_response(
                    ErrorCodes.STORE_REQUIRED,
                    "X-Store-ID header is required",
                ).model_dump(mode="json"),
            )

        set_current_store_id(store_id)
        request.state.store_id = store_id
        try:
            return await call_next(request)
        finally:
            clear_current_store_id()
