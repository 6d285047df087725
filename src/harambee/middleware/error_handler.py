"""Global error handlers.

Every failure leaves the API as ``{"error": <message>, "code": <stable code>}``.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from harambee.errors import HarambeeError

logger = structlog.get_logger()

_STATUS_CODES = {
    400: "bad_request",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limited",
}


def error_body(message: str, code: str, **extra: object) -> dict[str, object]:
    return {"error": message, "code": code, **extra}


def setup_error_handlers(app: FastAPI, debug: bool = False) -> None:
    """Register global exception handlers."""

    @app.exception_handler(HarambeeError)
    async def domain_error_handler(request: Request, exc: HarambeeError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("domain_error", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.code))

    @app.exception_handler(StaleDataError)
    async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
        logger.warning("concurrent_modification", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=409,
            content=error_body("Resource was modified concurrently, retry the request", "concurrent_modification"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail), _STATUS_CODES.get(exc.status_code, "http_error")),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else "Validation error"
        return JSONResponse(
            status_code=400,
            content=error_body(
                message,
                "validation_error",
                details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors],
            ),
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
        message = str(exc) if debug else "Internal server error"
        return JSONResponse(status_code=500, content=error_body(message, "internal_error"))
