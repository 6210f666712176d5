# =============================================================================
# Couples API — Couple, Dashboard, Activities & Achievements
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from bondquest.api.deps import get_current_user, get_storage, load_couple_for_user
from bondquest.db.models import User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.responses import (
    AchievementResponse,
    ActivityResponse,
    CoupleResponse,
    DashboardResponse,
    QuizResponse,
    QuizSessionResponse,
    UserResponse,
)
from bondquest.services.quizzes import daily_quiz

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Couples"])

DASHBOARD_ACTIVITY_LIMIT = 5


@router.get(
    "/couples/{couple_id}",
    response_model=CoupleResponse,
    summary="Get a couple",
)
async def get_couple(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CoupleResponse:
    couple = await load_couple_for_user(storage, couple_id, user)
    return CoupleResponse.model_validate(couple)


@router.get(
    "/couples/{couple_id}/dashboard",
    response_model=DashboardResponse,
    summary="Home-screen data for a couple",
    description=(
        "Couple, both partners, the 5 most recent activities, all quiz "
        "sessions and the quiz of the day."
    ),
)
async def get_dashboard(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> DashboardResponse:
    couple = await load_couple_for_user(storage, couple_id, user)

    user1 = await storage.get_user(couple.user_id_1)
    user2 = await storage.get_user(couple.user_id_2)
    if user1 is None or user2 is None:
        logger.error("Couple %d references a missing user", couple.id)
        raise HTTPException(status_code=404, detail="Couple members not found")

    activities = await storage.list_activities(couple.id, limit=DASHBOARD_ACTIVITY_LIMIT)
    sessions = await storage.list_quiz_sessions(couple.id)
    quiz = daily_quiz(await storage.list_quizzes(), datetime.now(UTC).date())

    return DashboardResponse(
        couple=CoupleResponse.model_validate(couple),
        user1=UserResponse.model_validate(user1),
        user2=UserResponse.model_validate(user2),
        recent_activities=[ActivityResponse.model_validate(a) for a in activities],
        quiz_sessions=[QuizSessionResponse.model_validate(s) for s in sessions],
        daily_quiz=QuizResponse.model_validate(quiz) if quiz else None,
    )


@router.get(
    "/couples/{couple_id}/activities",
    response_model=list[ActivityResponse],
    summary="Activity timeline, newest first",
)
async def list_activities(
    couple_id: int,
    limit: int | None = Query(default=None, ge=1, le=200),
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[ActivityResponse]:
    await load_couple_for_user(storage, couple_id, user)
    activities = await storage.list_activities(couple_id, limit=limit)
    return [ActivityResponse.model_validate(a) for a in activities]


@router.get(
    "/couples/{couple_id}/achievements",
    response_model=list[AchievementResponse],
    summary="Unlocked achievements, newest first",
)
async def list_achievements(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AchievementResponse]:
    await load_couple_for_user(storage, couple_id, user)
    achievements = await storage.list_achievements(couple_id)
    return [AchievementResponse.model_validate(a) for a in achievements]
