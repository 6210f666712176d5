# =============================================================================
# Bond API — Dimensions, Questions, Assessments, Strength & Insights
# =============================================================================
#
# All routes live under /bond. Scores come from self-assessments (1-10 per
# dimension); the bond-strength endpoint reports both the weighted score
# from the latest assessments and the running score stored on the couple
# (which quiz sessions move).
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from bondquest.api.deps import (
    ai_rate_limited_user,
    get_current_user,
    get_storage,
    http_error,
    load_couple_for_user,
    require_admin,
)
from bondquest.db.models import User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import (
    BondAssessmentRequest,
    BondInsightCompletedRequest,
    BondInsightCreateRequest,
    BondInsightGenerateRequest,
    BondInsightViewedRequest,
    BondQuestionCreateRequest,
)
from bondquest.models.responses import (
    BondAssessmentResponse,
    BondDimensionResponse,
    BondInsightResponse,
    BondQuestionResponse,
    BondStrengthResponse,
    CoupleAssessmentsResponse,
)
from bondquest.services import bond, couples, insights, scoring
from bondquest.services.errors import AIUnavailableError, ServiceError
from bondquest.services.llm import get_generation_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bond", tags=["Bond Analytics"])


def _require_dimension(dimension_id: str) -> bond.BondDimension:
    dimension = bond.get_dimension(dimension_id)
    if dimension is None:
        raise HTTPException(status_code=400, detail=f"Invalid dimension ID: {dimension_id}")
    return dimension


@router.get(
    "/dimensions",
    response_model=list[BondDimensionResponse],
    summary="The nine bond dimensions and their weights",
)
async def list_dimensions() -> list[BondDimensionResponse]:
    return [BondDimensionResponse.model_validate(d) for d in bond.BOND_DIMENSIONS]


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


@router.get("/questions", response_model=list[BondQuestionResponse])
async def list_questions(
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[BondQuestionResponse]:
    return [BondQuestionResponse.model_validate(q) for q in await storage.list_bond_questions()]


@router.get("/questions/dimension/{dimension_id}", response_model=list[BondQuestionResponse])
async def list_questions_for_dimension(
    dimension_id: str,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[BondQuestionResponse]:
    _require_dimension(dimension_id)
    questions = await storage.list_bond_questions(dimension_id)
    return [BondQuestionResponse.model_validate(q) for q in questions]


@router.post(
    "/questions",
    response_model=BondQuestionResponse,
    status_code=201,
    summary="Add an assessment question (admin)",
)
async def create_question(
    request: BondQuestionCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> BondQuestionResponse:
    _require_dimension(request.dimension_id)
    question = await storage.create_bond_question(**request.model_dump())
    return BondQuestionResponse.model_validate(question)


# ---------------------------------------------------------------------------
# Assessments & strength
# ---------------------------------------------------------------------------


@router.post(
    "/assessments",
    response_model=BondAssessmentResponse,
    status_code=201,
    summary="Record a 1-10 self-assessment for one dimension",
)
async def create_assessment(
    request: BondAssessmentRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> BondAssessmentResponse:
    dimension = _require_dimension(request.dimension_id)
    couple = await load_couple_for_user(storage, request.couple_id, user)

    assessment = await storage.create_bond_assessment(
        couple_id=couple.id,
        user_id=user.id,
        dimension_id=request.dimension_id,
        score=request.score,
        answers=request.answers,
    )
    await couples.award_activity(
        storage,
        couple,
        activity_type="bond_assessment",
        description=f"Completed {dimension.name} assessment",
        points=scoring.BOND_ASSESSMENT_POINTS,
        reference_id=assessment.id,
    )
    return BondAssessmentResponse.model_validate(assessment)


@router.get(
    "/assessments/couple/{couple_id}",
    response_model=CoupleAssessmentsResponse,
    summary="A couple's assessments with per-dimension stats",
)
async def list_assessments(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CoupleAssessmentsResponse:
    await load_couple_for_user(storage, couple_id, user)
    assessments = await storage.list_bond_assessments(couple_id)
    return CoupleAssessmentsResponse(
        assessments=[BondAssessmentResponse.model_validate(a) for a in assessments],
        dimension_stats=bond.dimension_stats(assessments),
    )


@router.get(
    "/strength/couple/{couple_id}",
    response_model=BondStrengthResponse,
    summary="Weighted bond strength with strongest and weakest dimensions",
)
async def get_bond_strength(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> BondStrengthResponse:
    couple = await load_couple_for_user(storage, couple_id, user)
    assessments = await storage.list_bond_assessments(couple_id)
    scores = bond.latest_scores(assessments)
    strength = bond.calculate_bond_strength(scores)

    return BondStrengthResponse(
        couple_id=couple.id,
        bond_strength=strength,
        interpretation=bond.bond_strength_interpretation(strength),
        weakest_dimensions=bond.weakest_dimensions(scores),
        strongest_dimensions=bond.strongest_dimensions(scores),
        dimension_stats=bond.dimension_stats(assessments),
        couple_bond_strength=couple.bond_strength,
    )


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------


@router.get("/insights/couple/{couple_id}", response_model=list[BondInsightResponse])
async def list_insights(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[BondInsightResponse]:
    await load_couple_for_user(storage, couple_id, user)
    return [BondInsightResponse.model_validate(i) for i in await storage.list_bond_insights(couple_id)]


@router.post(
    "/insights",
    response_model=BondInsightResponse,
    status_code=201,
    summary="Create an insight by hand (expires in 30 days)",
)
async def create_insight(
    request: BondInsightCreateRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> BondInsightResponse:
    await load_couple_for_user(storage, request.couple_id, user)
    try:
        values = insights.manual_insight_values(request.model_dump())
    except ServiceError as e:
        raise http_error(e) from e
    insight = await storage.create_bond_insight(**values)
    return BondInsightResponse.model_validate(insight)


@router.post(
    "/insights/generate",
    response_model=list[BondInsightResponse],
    status_code=201,
    summary="Generate insights for the couple's weakest dimensions",
    description=(
        "Builds coaching insights for the lowest-scoring dimensions. When an "
        "LLM is configured the persona personalises the guidance; otherwise "
        "template guidance is used."
    ),
)
async def generate_insights(
    request: BondInsightGenerateRequest,
    user: User = Depends(ai_rate_limited_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[BondInsightResponse]:
    await load_couple_for_user(storage, request.couple_id, user)

    try:
        llm = get_generation_provider()
    except AIUnavailableError:
        llm = None

    try:
        created = await insights.generate_bond_insights(
            storage, request.couple_id, llm=llm, limit=request.limit,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return [BondInsightResponse.model_validate(i) for i in created]


async def _load_insight(storage: DatabaseStorage, insight_id: int, user: User):
    insight = await storage.get_bond_insight(insight_id)
    if insight is None:
        raise HTTPException(status_code=404, detail="Bond insight not found")
    await load_couple_for_user(storage, insight.couple_id, user)
    return insight


@router.patch("/insights/{insight_id}/viewed", response_model=BondInsightResponse)
async def mark_insight_viewed(
    insight_id: int,
    request: BondInsightViewedRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> BondInsightResponse:
    insight = await _load_insight(storage, insight_id, user)
    insight.viewed = request.viewed
    return BondInsightResponse.model_validate(await storage.save(insight))


@router.patch(
    "/insights/{insight_id}/completed",
    response_model=BondInsightResponse,
    summary="Mark an insight completed (+15 XP the first time)",
)
async def mark_insight_completed(
    insight_id: int,
    request: BondInsightCompletedRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> BondInsightResponse:
    insight = await _load_insight(storage, insight_id, user)
    insight = await insights.set_insight_completed(storage, insight, request.completed)
    return BondInsightResponse.model_validate(insight)
