# =============================================================================
# Service Errors — Domain Exceptions
# =============================================================================
#
# Services raise these instead of HTTPException so they stay usable from
# the Celery worker and from tests. The API layer maps them to HTTP status
# codes in one place (bondquest.api.deps.http_error).
# =============================================================================

from __future__ import annotations


class ServiceError(Exception):
    """Base class for business-rule failures."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Request is well-formed but breaks a business rule."""

    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """The resource is in a state that does not allow the operation."""

    status_code = 409


class AIUnavailableError(ServiceError):
    """No LLM provider is configured for the requested feature."""

    status_code = 503


class AIGenerationError(ServiceError):
    """Every configured provider failed or returned unusable output."""

    status_code = 502


class RateLimitedError(ServiceError):
    """The caller spent its AI request budget for the current window."""

    status_code = 429

    def __init__(self, limit: int, retry_after: int) -> None:
        super().__init__(f"Too many AI requests. Limit: {limit} requests/minute.")
        self.limit = limit
        self.retry_after = retry_after
