# =============================================================================
# Auth API — Registration, Login & Logout
# =============================================================================
#
# DESIGN DECISION: The raw bearer token is only returned ONCE, in the
# register/login response. Only its SHA-256 hash is stored, so a database
# leak does not leak sessions.
#
# Login accepts either the username or the email in the `username` field.
# Both "unknown user" and "wrong password" return the same 401 so the
# endpoint cannot be used to enumerate accounts.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Request

from bondquest.api.deps import get_current_user, get_storage
from bondquest.config import settings
from bondquest.db.models import User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import LoginRequest, RegisterRequest
from bondquest.models.responses import (
    AuthResponse,
    CoupleResponse,
    MeResponse,
    MessageResponse,
    UserResponse,
)
from bondquest.services import affiliates
from bondquest.services.auth import (
    generate_auth_token,
    generate_partner_code,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

_PARTNER_CODE_ATTEMPTS = 5


async def _issue_token(storage: DatabaseStorage, user: User) -> AuthResponse:
    raw_token, token_prefix, token_hash = generate_auth_token()
    expires_at = (
        datetime.now(UTC) + timedelta(days=settings.auth_token_ttl_days)
        if settings.auth_token_ttl_days > 0
        else None
    )
    await storage.create_auth_token(
        user_id=user.id,
        token_prefix=token_prefix,
        token_hash=token_hash,
        expires_at=expires_at,
    )
    couple = await storage.get_couple_by_user(user.id)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        couple=CoupleResponse.model_validate(couple) if couple else None,
        token=raw_token,
        expires_at=expires_at,
    )


async def _unique_partner_code(storage: DatabaseStorage) -> str:
    for _ in range(_PARTNER_CODE_ATTEMPTS):
        code = generate_partner_code()
        if await storage.get_user_by_partner_code(code) is None:
            return code
    raise HTTPException(status_code=500, detail="Could not allocate a partner code")


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------


@router.post(
    "/auth/register",
    response_model=AuthResponse,
    status_code=201,
    summary="Create an account",
    description=(
        "Register a new user. The response contains a bearer token (shown "
        "only once) and the user's partner code for linking accounts."
    ),
)
async def register(
    request: RegisterRequest,
    storage: DatabaseStorage = Depends(get_storage),
) -> AuthResponse:
    if await storage.get_user_by_username(request.username) is not None:
        raise HTTPException(status_code=400, detail="Username already exists")
    if await storage.get_user_by_email(request.email) is not None:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = await storage.create_user(
        username=request.username,
        email=request.email.lower(),
        password_hash=hash_password(request.password),
        display_name=request.display_name or request.username,
        avatar=request.avatar,
        love_language=request.love_language,
        relationship_status=request.relationship_status,
        anniversary=request.anniversary,
        location=request.location,
        partner_code=await _unique_partner_code(storage),
        role="user",
    )
    logger.info("User registered: id=%d, username='%s'", user.id, user.username)
    if request.referral_code:
        await affiliates.record_referral_signup(storage, request.referral_code)

    return await _issue_token(storage, user)


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------


@router.post(
    "/auth/login",
    response_model=AuthResponse,
    summary="Log in with username (or email) and password",
)
async def login(
    request: LoginRequest,
    storage: DatabaseStorage = Depends(get_storage),
) -> AuthResponse:
    identifier = request.username.strip()
    if "@" in identifier:
        user = await storage.get_user_by_email(identifier)
    else:
        user = await storage.get_user_by_username(identifier)

    if user is None or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=401,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info("User logged in: id=%d", user.id)
    return await _issue_token(storage, user)


# ---------------------------------------------------------------------------
# POST /auth/logout
# ---------------------------------------------------------------------------


@router.post(
    "/auth/logout",
    response_model=MessageResponse,
    summary="Revoke the current bearer token",
)
async def logout(
    http_request: Request,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> MessageResponse:
    await storage.delete_auth_token(http_request.state.auth_token)
    logger.info("User logged out: id=%d", user.id)
    return MessageResponse(message="Logged out")


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------


@router.get(
    "/auth/me",
    response_model=MeResponse,
    summary="Current user and their couple",
)
async def me(
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> MeResponse:
    couple = await storage.get_couple_by_user(user.id)
    return MeResponse(
        user=UserResponse.model_validate(user),
        couple=CoupleResponse.model_validate(couple) if couple else None,
    )
