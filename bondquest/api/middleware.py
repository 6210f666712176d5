# =============================================================================
# Request Logging Middleware
# =============================================================================
#
# Logs one line per API request: method, path, status, latency and the
# authenticated user (if any).
#
# DESIGN DECISION: Starlette middleware (not a FastAPI dependency) because
# it wraps the entire request lifecycle, so it sees the final status code
# and the full latency without every endpoint opting in.
#
# The user id comes from request.state.user, which get_current_user sets.
# =============================================================================

from __future__ import annotations

import logging
import time

from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("bondquest.requests")

# Endpoints to skip (health check, docs)
_SKIP_PATHS = {"/api/health", "/docs", "/redoc", "/openapi.json"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start_time = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        user = getattr(request.state, "user", None)
        logger.info(
            "%s %s → %d (%dms, user=%s)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            user.id if user is not None else "-",
        )
        return response
