"""Map Storefront error kinds to HTTP responses.

Protean's own handlers cover the base exception classes. The handlers added
here are looked up first for the storefront subclasses, since Starlette
resolves a handler by walking the exception's MRO.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from storefront.errors import (
    ConsistencyError,
    EmptyCartError,
    ForbiddenError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_CODES = {
    NotFoundError: 404,
    ObjectNotFoundError: 404,
    EmptyCartError: 400,
    ValidationError: 400,
    InsufficientStockError: 409,
    ForbiddenError: 403,
    InvalidTransitionError: 409,
    ConsistencyError: 500,
}


def _body(exc) -> dict:
    return {"error": getattr(exc, "messages", None) or str(exc)}


def _handler(status_code):
    async def handle(request: Request, exc: Exception) -> JSONResponse:
        log = logger.error if status_code >= 500 else logger.info
        log(
            "request_failed",
            path=request.url.path,
            status_code=status_code,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(status_code=status_code, content=_body(exc))

    return handle


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    for exc_class, status_code in STATUS_CODES.items():
        app.add_exception_handler(exc_class, _handler(status_code))
