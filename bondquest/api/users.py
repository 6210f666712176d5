# =============================================================================
# Users API — Profiles, Partner Linking & Daily Check-Ins
# =============================================================================
#
# A user may read their own profile and their partner's. Check-ins are
# always written for the authenticated user; when that user is in a couple
# the check-in also credits the couple with XP and an activity entry.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from bondquest.api.deps import get_current_user, get_storage, http_error, is_admin
from bondquest.db.models import User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import DailyCheckInRequest, PartnerLinkRequest
from bondquest.models.responses import (
    CoupleResponse,
    DailyCheckInResponse,
    UserResponse,
)
from bondquest.services import couples, scoring
from bondquest.services.errors import ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])


async def _ensure_can_view_user(storage: DatabaseStorage, viewer: User, user_id: int) -> None:
    if viewer.id == user_id or is_admin(viewer):
        return
    couple = await storage.get_couple_by_user(viewer.id)
    if couple is None or user_id not in couple.member_ids():
        raise HTTPException(status_code=403, detail="You do not have access to this user.")


@router.get(
    "/users/{user_id}",
    response_model=UserResponse,
    summary="Get a user (self, partner or admin)",
)
async def get_user(
    user_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> UserResponse:
    await _ensure_can_view_user(storage, user, user_id)
    target = await storage.get_user(user_id)
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.model_validate(target)


# ---------------------------------------------------------------------------
# POST /partner/link
# ---------------------------------------------------------------------------


@router.post(
    "/partner/link",
    response_model=CoupleResponse,
    status_code=201,
    summary="Link with a partner using their partner code",
)
async def link_partner(
    request: PartnerLinkRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CoupleResponse:
    try:
        couple = await couples.link_partner(storage, user.id, request.partner_code)
    except ServiceError as e:
        raise http_error(e) from e
    return CoupleResponse.model_validate(couple)


# ---------------------------------------------------------------------------
# Daily check-ins
# ---------------------------------------------------------------------------


@router.post(
    "/daily-check-ins",
    response_model=DailyCheckInResponse,
    status_code=201,
    summary="Record today's mood",
)
async def create_daily_check_in(
    request: DailyCheckInRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> DailyCheckInResponse:
    check_in = await storage.create_daily_check_in(
        user_id=user.id, mood=request.mood, note=request.note,
    )

    couple = await storage.get_couple_by_user(user.id)
    if couple is not None:
        await couples.award_activity(
            storage,
            couple,
            activity_type="check_in",
            description=f"{user.display_name} checked in feeling {request.mood}",
            points=scoring.CHECK_IN_POINTS,
            reference_id=check_in.id,
        )

    return DailyCheckInResponse.model_validate(check_in)


@router.get(
    "/users/{user_id}/daily-check-ins",
    response_model=list[DailyCheckInResponse],
    summary="List a user's check-ins, newest first",
)
async def list_daily_check_ins(
    user_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[DailyCheckInResponse]:
    await _ensure_can_view_user(storage, user, user_id)
    check_ins = await storage.list_daily_check_ins(user_id)
    return [DailyCheckInResponse.model_validate(c) for c in check_ins]
