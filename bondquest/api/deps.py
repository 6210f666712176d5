# =============================================================================
# API Dependencies — Storage, Authentication & Access Checks
# =============================================================================
#
# FastAPI dependencies shared by every router:
#
# 1. get_storage()          — request-scoped DatabaseStorage
# 2. get_current_user()     — resolve the Bearer token to a User
# 3. require_admin()        — get_current_user + admin check
# 4. ai_rate_limited_user() — get_current_user + per-user AI throttle
#
# Plus plain helpers the routes call directly:
#   load_couple_for_user() — 404 unknown couple, 403 not a member
#   http_error()           — map a ServiceError onto an HTTPException
#
# DESIGN DECISION: FastAPI dependency (not middleware) for auth. Each
# endpoint opts in via Depends(get_current_user), the resolved User is
# available to the handler, and tests can swap it with
# app.dependency_overrides.
#
# DESIGN DECISION: HTTPBearer(auto_error=False) so a missing header
# produces our own 401 message instead of Starlette's 403.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from bondquest.config import settings
from bondquest.db.engine import get_async_session
from bondquest.db.models import Couple, User
from bondquest.db.storage import DatabaseStorage
from bondquest.services.auth import hash_token
from bondquest.services.errors import RateLimitedError, ServiceError
from bondquest.services.rate_limiter import check_ai_rate_limit

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs (shows "Authorize" button in Swagger UI)
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_storage(
    session: AsyncSession = Depends(get_async_session),
) -> DatabaseStorage:
    return DatabaseStorage(session)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    storage: DatabaseStorage = Depends(get_storage),
) -> User:
    """
    Resolve the Bearer token to its user.

    - SHA-256 hashes the token and looks it up in auth_tokens
    - Rejects expired tokens
    - Updates last_used_at
    - Stores the User on request.state for the request logging middleware

    Raises:
        HTTPException 401: missing, unknown or expired token.
    """
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Provide 'Authorization: Bearer <token>' header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = await storage.get_auth_token_by_hash(hash_token(credentials.credentials))
    if token is None:
        raise HTTPException(
            status_code=401,
            detail="Invalid token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    now = datetime.now(UTC)
    if token.expires_at and token.expires_at < now:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please log in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await storage.get_user(token.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token.")

    token.last_used_at = now
    request.state.user = user
    request.state.auth_token = token
    return user


def is_admin(user: User) -> bool:
    return user.role == "admin" or user.username in settings.admin_usernames


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="Admin access required.")
    return user


async def ai_rate_limited_user(user: User = Depends(get_current_user)) -> User:
    """Current user, after counting this request against the AI rate limit."""
    try:
        await check_ai_rate_limit(user)
    except RateLimitedError as e:
        raise http_error(e) from e
    return user


def ensure_couple_member(user: User, couple: Couple) -> None:
    """
    Raises HTTPException 403 unless the user belongs to the couple.
    Admins may access any couple.
    """
    if user.id in couple.member_ids() or is_admin(user):
        return
    raise HTTPException(status_code=403, detail="You do not have access to this couple.")


async def load_couple_for_user(
    storage: DatabaseStorage,
    couple_id: int,
    user: User,
) -> Couple:
    """Fetch a couple the current user may act on (404 / 403 otherwise)."""
    couple = await storage.get_couple(couple_id)
    if couple is None:
        raise HTTPException(status_code=404, detail="Couple not found")
    ensure_couple_member(user, couple)
    return couple


async def current_couple(storage: DatabaseStorage, user: User) -> Couple:
    """The current user's couple (400 when they have not linked a partner)."""
    couple = await storage.get_couple_by_user(user.id)
    if couple is None:
        raise HTTPException(status_code=400, detail="Link with your partner first.")
    return couple


def http_error(error: ServiceError) -> HTTPException:
    """Map a service-layer error onto the matching HTTPException."""
    headers = None
    if isinstance(error, RateLimitedError):
        headers = {"Retry-After": str(error.retry_after)}
    return HTTPException(status_code=error.status_code, detail=error.message, headers=headers)
