"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from clients.backend_client import TransportError
from core.exceptions import BillValidationError, InvalidTransitionError, ResolutionError

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _json(request: Request, status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            code, message, details=details, request_id=_request_id(request)
        ).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(ResolutionError)
    async def resolution_error_handler(request: Request, exc: ResolutionError):
        return _json(
            request, 422, ErrorCodes.UNRESOLVED_ITEMS, str(exc),
            details={"unresolved": exc.unresolved},
        )

    @app.exception_handler(BillValidationError)
    async def bill_validation_error_handler(request: Request, exc: BillValidationError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc))

    @app.exception_handler(InvalidTransitionError)
    async def transition_error_handler(request: Request, exc: InvalidTransitionError):
        return _json(request, 409, ErrorCodes.INVALID_STATUS_TRANSITION, str(exc))

    @app.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError):
        if exc.status == 0:
            return _json(request, 503, ErrorCodes.SERVICE_UNAVAILABLE, exc.user_message)
        return _json(
            request, 502, ErrorCodes.BACKEND_ERROR, exc.user_message,
            details={"status": exc.status, "field_errors": exc.field_errors},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return _json(request, 404, ErrorCodes.NOT_FOUND, message)
        return _json(request, 400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
