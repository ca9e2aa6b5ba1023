"""Global error handlers: every failure renders as {"detail", "error"} JSON."""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gamelink.errors import GameLinkError, InvariantViolation, TransientStorageError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(GameLinkError)
    async def domain_exception_handler(request: Request, exc: GameLinkError) -> JSONResponse:
        """Render a domain error with the status code its class declares."""
        if isinstance(exc, InvariantViolation):
            logger.error("invariant_violation", path=request.url.path, error=exc.message, **exc.context)
        elif isinstance(exc, TransientStorageError):
            logger.warning("storage_unavailable", path=request.url.path, error=exc.message)
        headers = {"Retry-After": "1"} if isinstance(exc, TransientStorageError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": exc.code},
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error": "http_error"},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "error": "request_validation", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, always JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error": "internal"},
        )
