# =============================================================================
# Admin API — Stats, Users, Subscription Tiers, Rewards, Competitions & AI
# =============================================================================
#
# Every endpoint requires an admin (role "admin", or a username listed in
# ADMIN_USERNAMES).
#
# DESIGN DECISION: Reward emails go through Celery. The award endpoint
# commits before queueing send_reward_notification so the worker always
# finds the row it was given.
#
# DESIGN DECISION: AI-generated competitions are returned for review, not
# saved. The admin edits the draft and POSTs it to /admin/competitions.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from bondquest.api.deps import get_storage, http_error, require_admin
from bondquest.db.models import CompetitionStatus, CoupleRewardStatus, User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import (
    AwardRewardRequest,
    CancelRewardRequest,
    CompetitionCreateRequest,
    CompetitionGenerateRequest,
    CompetitionUpdateRequest,
    QuizGenerateRequest,
    RewardCreateRequest,
    RewardUpdateRequest,
    ShipRewardRequest,
    SubscriptionTierCreateRequest,
    SubscriptionTierUpdateRequest,
)
from bondquest.models.responses import (
    AdminCoupleRewardResponse,
    AdminRewardResponse,
    AdminStatsResponse,
    CompetitionDetailResponse,
    CompetitionResponse,
    CompetitionRewardResponse,
    GeneratedCompetitionResponse,
    QuizDetailResponse,
    QuizSessionResponse,
    SubscriptionTierResponse,
    TaskQueuedResponse,
    UserListResponse,
    UserResponse,
)
from bondquest.services import competitions, generation, quizzes, rewards
from bondquest.services.errors import ServiceError
from bondquest.services.llm import get_generation_provider
from bondquest.workers.tasks import run_reward_maintenance, send_reward_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# ---------------------------------------------------------------------------
# Stats & users
# ---------------------------------------------------------------------------


@router.get(
    "/stats",
    response_model=AdminStatsResponse,
    summary="Platform counts and the latest quiz sessions",
)
async def get_stats(
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AdminStatsResponse:
    recent = await storage.list_recent_quiz_sessions(limit=10)
    return AdminStatsResponse(
        total_users=await storage.count_users(),
        total_couples=await storage.count_couples(),
        total_quizzes=await storage.count_quizzes(),
        active_subscriptions=await storage.count_active_subscriptions(),
        recent_sessions=[QuizSessionResponse.model_validate(s) for s in recent],
    )


@router.get("/users", response_model=UserListResponse, summary="List users, newest first")
async def list_users(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> UserListResponse:
    users = await storage.list_users(limit=limit, offset=offset)
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=await storage.count_users(),
    )


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> UserResponse:
    user = await storage.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.model_validate(user)


# ---------------------------------------------------------------------------
# Subscription tiers
# ---------------------------------------------------------------------------


@router.get("/subscriptions", response_model=list[SubscriptionTierResponse])
async def list_subscription_tiers(
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[SubscriptionTierResponse]:
    tiers = await storage.list_subscription_tiers()
    return [SubscriptionTierResponse.model_validate(t) for t in tiers]


@router.post(
    "/subscriptions",
    response_model=SubscriptionTierResponse,
    status_code=201,
    summary="Create a subscription tier",
)
async def create_subscription_tier(
    request: SubscriptionTierCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> SubscriptionTierResponse:
    existing = await storage.list_subscription_tiers()
    if any(t.name == request.name for t in existing):
        raise HTTPException(status_code=409, detail="A tier with this name already exists")

    tier = await storage.create_subscription_tier(**request.model_dump())
    logger.info("Subscription tier created: id=%d, name='%s'", tier.id, tier.name)
    return SubscriptionTierResponse.model_validate(tier)


@router.patch("/subscriptions/{tier_id}", response_model=SubscriptionTierResponse)
async def update_subscription_tier(
    tier_id: int,
    request: SubscriptionTierUpdateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> SubscriptionTierResponse:
    tier = await storage.get_subscription_tier(tier_id)
    if tier is None:
        raise HTTPException(status_code=404, detail="Subscription tier not found")

    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(tier, field, value)
    return SubscriptionTierResponse.model_validate(await storage.save(tier))


# ---------------------------------------------------------------------------
# Reward catalogue
# ---------------------------------------------------------------------------


@router.get("/rewards", response_model=list[AdminRewardResponse])
async def list_rewards(
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AdminRewardResponse]:
    return [AdminRewardResponse.model_validate(r) for r in await storage.list_rewards()]


@router.post(
    "/rewards",
    response_model=AdminRewardResponse,
    status_code=201,
    summary="Add a reward to the catalogue",
)
async def create_reward(
    request: RewardCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AdminRewardResponse:
    if request.location_restricted and not request.eligible_locations:
        raise HTTPException(
            status_code=400,
            detail="Location-restricted rewards need at least one eligible location",
        )
    reward = await storage.create_reward(**request.model_dump())
    logger.info("Reward created: id=%d, name='%s', quantity=%d", reward.id, reward.name, reward.quantity)
    return AdminRewardResponse.model_validate(reward)


@router.patch("/rewards/{reward_id}", response_model=AdminRewardResponse)
async def update_reward(
    reward_id: int,
    request: RewardUpdateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AdminRewardResponse:
    reward = await storage.get_reward(reward_id)
    if reward is None:
        raise HTTPException(status_code=404, detail="Reward not found")

    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(reward, field, value)
    return AdminRewardResponse.model_validate(await storage.save(reward))


# ---------------------------------------------------------------------------
# Couple rewards (fulfilment)
# ---------------------------------------------------------------------------


@router.get(
    "/couple-rewards",
    response_model=list[AdminCoupleRewardResponse],
    summary="Awarded rewards, optionally by couple and status",
)
async def list_couple_rewards(
    couple_id: int | None = Query(default=None),
    status: CoupleRewardStatus | None = Query(default=None),
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AdminCoupleRewardResponse]:
    rows = await storage.list_couple_rewards(
        couple_id=couple_id,
        statuses=[status] if status is not None else None,
    )
    return [AdminCoupleRewardResponse.model_validate(r) for r in rows]


@router.post(
    "/couple-rewards",
    response_model=AdminCoupleRewardResponse,
    status_code=201,
    summary="Award a reward to a couple",
    description=(
        "Creates the award with a fresh redemption code and takes one unit "
        "of stock. With `notify` (the default) the winner email is queued."
    ),
)
async def award_reward(
    request: AwardRewardRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AdminCoupleRewardResponse:
    try:
        couple_reward = await rewards.award_reward(
            storage,
            couple_id=request.couple_id,
            reward_id=request.reward_id,
            competition_id=request.competition_id,
        )
    except ServiceError as e:
        raise http_error(e) from e

    if request.notify:
        await storage.commit()
        task = send_reward_notification.delay(couple_reward.id)
        logger.info(
            "Queued reward notification: couple_reward=%d, task_id=%s",
            couple_reward.id, task.id,
        )
    return AdminCoupleRewardResponse.model_validate(couple_reward)


@router.post(
    "/couple-rewards/{couple_reward_id}/notify",
    response_model=TaskQueuedResponse,
    status_code=202,
    summary="(Re)send the winner email",
)
async def notify_couple_reward(
    couple_reward_id: int,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> TaskQueuedResponse:
    if await storage.get_couple_reward(couple_reward_id) is None:
        raise HTTPException(status_code=404, detail="Couple reward not found")
    task = send_reward_notification.delay(couple_reward_id)
    return TaskQueuedResponse(task_id=task.id)


@router.post("/couple-rewards/{couple_reward_id}/ship", response_model=AdminCoupleRewardResponse)
async def ship_couple_reward(
    couple_reward_id: int,
    request: ShipRewardRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AdminCoupleRewardResponse:
    try:
        couple_reward = await rewards.ship_reward(
            storage,
            couple_reward_id,
            tracking_number=request.tracking_number,
            admin_notes=request.admin_notes,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return AdminCoupleRewardResponse.model_validate(couple_reward)


@router.post("/couple-rewards/{couple_reward_id}/deliver", response_model=AdminCoupleRewardResponse)
async def deliver_couple_reward(
    couple_reward_id: int,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AdminCoupleRewardResponse:
    try:
        couple_reward = await rewards.deliver_reward(storage, couple_reward_id)
    except ServiceError as e:
        raise http_error(e) from e
    return AdminCoupleRewardResponse.model_validate(couple_reward)


@router.post(
    "/couple-rewards/{couple_reward_id}/cancel",
    response_model=AdminCoupleRewardResponse,
    summary="Cancel an award and restock the reward",
)
async def cancel_couple_reward(
    couple_reward_id: int,
    request: CancelRewardRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AdminCoupleRewardResponse:
    try:
        couple_reward = await rewards.cancel_reward(
            storage, couple_reward_id, reason=request.reason,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return AdminCoupleRewardResponse.model_validate(couple_reward)


@router.post(
    "/rewards/maintenance",
    response_model=TaskQueuedResponse,
    status_code=202,
    summary="Run reward expiry and reminders now",
)
async def trigger_reward_maintenance(
    admin: User = Depends(require_admin),
) -> TaskQueuedResponse:
    task = run_reward_maintenance.delay()
    logger.info("Reward maintenance queued by admin %d: task_id=%s", admin.id, task.id)
    return TaskQueuedResponse(task_id=task.id)


# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------


async def _competition_detail(storage: DatabaseStorage, competition) -> CompetitionDetailResponse:
    links = await storage.list_competition_rewards(competition.id)
    return CompetitionDetailResponse(
        competition=CompetitionResponse.model_validate(competition),
        rewards=[CompetitionRewardResponse.model_validate(r) for r in links],
    )


@router.post(
    "/competitions",
    response_model=CompetitionDetailResponse,
    status_code=201,
    summary="Create a competition with its rank rewards",
)
async def create_competition(
    request: CompetitionCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> CompetitionDetailResponse:
    if request.end_date <= request.start_date:
        raise HTTPException(status_code=400, detail="end_date must be after start_date")
    for link in request.rewards:
        if await storage.get_reward(link.reward_id) is None:
            raise HTTPException(status_code=404, detail=f"Reward {link.reward_id} not found")

    values = request.model_dump(exclude={"rewards", "status"})
    competition = await storage.create_competition(
        status=CompetitionStatus(request.status), **values,
    )
    for link in request.rewards:
        await storage.create_competition_reward(
            competition_id=competition.id,
            reward_id=link.reward_id,
            rank_required=link.rank_required,
        )

    logger.info(
        "Competition created: id=%d, title='%s', rewards=%d",
        competition.id, competition.title, len(request.rewards),
    )
    return await _competition_detail(storage, competition)


@router.patch("/competitions/{competition_id}", response_model=CompetitionResponse)
async def update_competition(
    competition_id: int,
    request: CompetitionUpdateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> CompetitionResponse:
    competition = await storage.get_competition(competition_id)
    if competition is None:
        raise HTTPException(status_code=404, detail="Competition not found")

    updates = request.model_dump(exclude_unset=True, exclude_none=True)
    if "status" in updates:
        updates["status"] = CompetitionStatus(updates["status"])
    for field, value in updates.items():
        setattr(competition, field, value)

    if competition.end_date <= competition.start_date:
        raise HTTPException(status_code=400, detail="end_date must be after start_date")
    return CompetitionResponse.model_validate(await storage.save(competition))


@router.delete("/competitions/{competition_id}", status_code=204)
async def delete_competition(
    competition_id: int,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> None:
    competition = await storage.get_competition(competition_id)
    if competition is None:
        raise HTTPException(status_code=404, detail="Competition not found")
    await storage.delete(competition)
    logger.info("Competition %d deleted by admin %d", competition_id, admin.id)


@router.post(
    "/competitions/{competition_id}/finalize",
    response_model=list[AdminCoupleRewardResponse],
    summary="Rank entries, complete the competition and award prizes",
)
async def finalize_competition(
    competition_id: int,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AdminCoupleRewardResponse]:
    try:
        awarded = await competitions.finalize_competition(storage, competition_id)
    except ServiceError as e:
        raise http_error(e) from e

    if awarded:
        await storage.commit()
        for couple_reward in awarded:
            send_reward_notification.delay(couple_reward.id)
    return [AdminCoupleRewardResponse.model_validate(r) for r in awarded]


# ---------------------------------------------------------------------------
# AI content generation
# ---------------------------------------------------------------------------


@router.post(
    "/ai/generate-quiz",
    response_model=QuizDetailResponse,
    status_code=201,
    summary="Generate and save a catalogue quiz",
)
async def generate_quiz(
    request: QuizGenerateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> QuizDetailResponse:
    try:
        quiz = await quizzes.generate_and_save_quiz(
            storage,
            get_generation_provider(),
            topic=request.topic,
            category=request.category,
            difficulty=request.difficulty,
            question_count=request.question_count,
            dimension_id=request.dimension_id,
            additional_instructions=request.additional_instructions,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return QuizDetailResponse.model_validate(quiz)


@router.post(
    "/ai/generate-competition",
    response_model=GeneratedCompetitionResponse,
    summary="Draft competition rules and challenges with AI",
)
async def generate_competition(
    request: CompetitionGenerateRequest,
    admin: User = Depends(require_admin),
) -> GeneratedCompetitionResponse:
    if request.end_date <= request.start_date:
        raise HTTPException(status_code=400, detail="end_date must be after start_date")
    try:
        draft = await generation.generate_competition(
            get_generation_provider(),
            name=request.name,
            description=request.description,
            start_date=request.start_date.date().isoformat(),
            end_date=request.end_date.date().isoformat(),
            difficulty=request.difficulty,
            competition_type=request.type,
            additional_instructions=request.additional_instructions,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return GeneratedCompetitionResponse(**draft)
