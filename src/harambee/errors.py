"""Domain error taxonomy.

Services raise these; the global handlers in ``harambee.middleware.error_handler``
render them as ``{"error": message, "code": code}`` with the class's HTTP status.
"""

from __future__ import annotations


class HarambeeError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_code: str = "internal_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(HarambeeError):
    """Missing or malformed input, or a request that breaks a state rule."""

    status_code = 400
    default_code = "validation_error"


class AuthenticationError(HarambeeError):
    status_code = 401
    default_code = "unauthenticated"


class AuthorizationError(HarambeeError):
    status_code = 403
    default_code = "forbidden"


class NotFoundError(HarambeeError):
    status_code = 404
    default_code = "not_found"


class ConflictError(HarambeeError):
    """Duplicate unique value or a lost optimistic-concurrency race."""

    status_code = 409
    default_code = "conflict"


class RateLimitedError(HarambeeError):
    status_code = 429
    default_code = "rate_limited"
