# =============================================================================
# Rewards API — Catalogue, Won Rewards & Redemption (couple-facing)
# =============================================================================
#
# Lifecycle rules live in bondquest.services.rewards; illegal transitions
# surface here as 409. Admin fulfilment routes (award, notify, ship,
# deliver, cancel, maintenance) are in bondquest/api/admin.py.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from bondquest.api.deps import get_current_user, get_storage, http_error, load_couple_for_user
from bondquest.db.models import CoupleReward, User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import ClaimRewardRequest
from bondquest.models.responses import (
    CoupleRewardResponse,
    RedemptionCheckResponse,
    RewardResponse,
)
from bondquest.services import rewards
from bondquest.services.errors import NotFoundError, ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Rewards"])


async def _load_couple_reward(
    storage: DatabaseStorage, couple_reward_id: int, user: User,
) -> CoupleReward:
    couple_reward = await storage.get_couple_reward(couple_reward_id)
    if couple_reward is None:
        raise http_error(NotFoundError("Couple reward not found"))
    await load_couple_for_user(storage, couple_reward.couple_id, user)
    return couple_reward


@router.get(
    "/rewards",
    response_model=list[RewardResponse],
    summary="Rewards currently available to win",
    description=(
        "Active, in-stock rewards inside their availability window. "
        "Location-restricted rewards are only listed for an eligible "
        "`country` (defaults to the user's profile location)."
    ),
)
async def list_available_rewards(
    country: str | None = Query(default=None, max_length=100),
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[RewardResponse]:
    catalogue = await storage.list_rewards(active_only=True)
    eligible = rewards.eligible_rewards(catalogue, country or user.location)
    return [RewardResponse.model_validate(r) for r in eligible]


@router.get(
    "/rewards/redeem/{code}",
    response_model=RedemptionCheckResponse,
    summary="Check a redemption code",
)
async def check_redemption_code(
    code: str,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> RedemptionCheckResponse:
    couple_reward = await rewards.validate_redemption_code(storage, code)
    if couple_reward is None:
        return RedemptionCheckResponse(valid=False)

    reward = await storage.get_reward(couple_reward.reward_id)
    return RedemptionCheckResponse(
        valid=True,
        couple_reward=CoupleRewardResponse.model_validate(couple_reward),
        reward=RewardResponse.model_validate(reward) if reward else None,
    )


@router.get(
    "/couples/{couple_id}/rewards",
    response_model=list[CoupleRewardResponse],
    summary="Rewards a couple has won, newest first",
)
async def list_couple_rewards(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[CoupleRewardResponse]:
    await load_couple_for_user(storage, couple_id, user)
    rows = await storage.list_couple_rewards(couple_id=couple_id)
    return [CoupleRewardResponse.model_validate(r) for r in rows]


@router.post(
    "/couple-rewards/{couple_reward_id}/view",
    response_model=CoupleRewardResponse,
    summary="Mark a won reward as seen",
)
async def view_reward(
    couple_reward_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CoupleRewardResponse:
    await _load_couple_reward(storage, couple_reward_id, user)
    couple_reward = await rewards.mark_viewed(storage, couple_reward_id)
    return CoupleRewardResponse.model_validate(couple_reward)


@router.post(
    "/couple-rewards/{couple_reward_id}/claim",
    response_model=CoupleRewardResponse,
    summary="Claim a won reward",
    description="Rewards that ship require a `shipping_address`.",
)
async def claim_reward(
    couple_reward_id: int,
    request: ClaimRewardRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CoupleRewardResponse:
    await _load_couple_reward(storage, couple_reward_id, user)
    try:
        couple_reward = await rewards.claim_reward(
            storage,
            couple_reward_id,
            shipping_address=request.shipping_address,
            notes=request.notes,
        )
    except rewards.RewardExpiredError as e:
        await storage.commit()
        raise http_error(e) from e
    except ServiceError as e:
        raise http_error(e) from e
    logger.info("Couple reward %d claimed by user %d", couple_reward_id, user.id)
    return CoupleRewardResponse.model_validate(couple_reward)


@router.post(
    "/couple-rewards/{couple_reward_id}/redeem",
    response_model=CoupleRewardResponse,
    summary="Redeem a claimed digital or experience reward",
)
async def redeem_reward(
    couple_reward_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CoupleRewardResponse:
    await _load_couple_reward(storage, couple_reward_id, user)
    try:
        couple_reward = await rewards.redeem_reward(storage, couple_reward_id)
    except rewards.RewardExpiredError as e:
        await storage.commit()
        raise http_error(e) from e
    except ServiceError as e:
        raise http_error(e) from e
    return CoupleRewardResponse.model_validate(couple_reward)
