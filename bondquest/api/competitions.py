# =============================================================================
# Competitions API — Browse, Enter & Leaderboard
# =============================================================================
#
# Couple-facing routes. Creating, editing and finalising competitions is
# admin-only and lives in bondquest/api/admin.py.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from bondquest.api.deps import current_couple, get_current_user, get_storage, http_error
from bondquest.db.models import CompetitionStatus, User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.responses import (
    CompetitionDetailResponse,
    CompetitionEntryResponse,
    CompetitionResponse,
    CompetitionRewardResponse,
)
from bondquest.services import competitions
from bondquest.services.errors import ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/competitions", tags=["Competitions"])


@router.get(
    "",
    response_model=list[CompetitionResponse],
    summary="List competitions, optionally by status",
)
async def list_competitions(
    status: CompetitionStatus | None = Query(default=None),
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[CompetitionResponse]:
    return [
        CompetitionResponse.model_validate(c)
        for c in await storage.list_competitions(status)
    ]


@router.get(
    "/{competition_id}",
    response_model=CompetitionDetailResponse,
    summary="Get a competition and the rewards it offers",
)
async def get_competition(
    competition_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CompetitionDetailResponse:
    competition = await storage.get_competition(competition_id)
    if competition is None:
        raise HTTPException(status_code=404, detail="Competition not found")
    links = await storage.list_competition_rewards(competition_id)
    return CompetitionDetailResponse(
        competition=CompetitionResponse.model_validate(competition),
        rewards=[CompetitionRewardResponse.model_validate(r) for r in links],
    )


@router.post(
    "/{competition_id}/entries",
    response_model=CompetitionEntryResponse,
    status_code=201,
    summary="Enter the current couple into a competition",
)
async def enter_competition(
    competition_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CompetitionEntryResponse:
    couple = await current_couple(storage, user)
    try:
        entry = await competitions.enter_competition(storage, competition_id, couple.id)
    except ServiceError as e:
        raise http_error(e) from e
    return CompetitionEntryResponse.model_validate(entry)


@router.get(
    "/{competition_id}/leaderboard",
    response_model=list[CompetitionEntryResponse],
    summary="Entries ranked by score (ties share a rank)",
)
async def get_leaderboard(
    competition_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[CompetitionEntryResponse]:
    try:
        ranked = await competitions.leaderboard(storage, competition_id)
    except ServiceError as e:
        raise http_error(e) from e
    return [
        CompetitionEntryResponse.model_validate(entry).model_copy(update={"rank": rank})
        for entry, rank in ranked
    ]
