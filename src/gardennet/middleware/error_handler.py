"""Global error handlers: consistent JSON error responses.

Network domain errors carry a machine-readable `code` so the web app can show
a specific message ("A connection request already exists with this
classroom") instead of a generic failure banner.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gardennet.errors import NetworkError, ValidationError

logger = structlog.get_logger()


def network_error_body(exc: NetworkError) -> dict[str, str]:
    """JSON body for a domain error."""
    body = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError):
        body["field"] = exc.field
    return body


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(NetworkError)
    async def network_error_handler(request: Request, exc: NetworkError) -> JSONResponse:
        """Map domain errors to their status codes."""
        logger.info(
            "network_error",
            path=request.url.path,
            method=request.method,
            code=exc.code,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=network_error_body(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "code": "validation_error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Request validation errors without non-serializable context values."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
