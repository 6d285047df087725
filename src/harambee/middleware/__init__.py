"""Middleware registration."""

from fastapi import FastAPI

from harambee.config import Settings
from harambee.middleware.cors import setup_cors
from harambee.middleware.error_handler import setup_error_handlers
from harambee.middleware.logging import setup_logging
from harambee.middleware.rate_limit import RateLimitMiddleware
from harambee.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost).
    Request id wraps rate limiting so 429 responses still carry X-Request-Id;
    CORS is outermost so browsers can read every error response.
    """
    setup_logging(settings)
    setup_error_handlers(app, debug=settings.debug)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
