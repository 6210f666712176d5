# =============================================================================
# Quizzes API — Catalogue, Generation & Quiz Sessions
# =============================================================================
#
# Catalogue reads are open to any signed-in user; creating quizzes and
# questions by hand is admin-only. AI generation is available to couples
# (tailored to both partners' profiles) and is rate limited per user.
#
# Session scoring lives in bondquest.services.quizzes; these handlers only
# check access and map errors.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from bondquest.api.deps import (
    ai_rate_limited_user,
    current_couple,
    get_current_user,
    get_storage,
    http_error,
    load_couple_for_user,
    require_admin,
)
from bondquest.db.models import User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import (
    QuestionCreateRequest,
    QuizCreateRequest,
    QuizGenerateRequest,
    QuizSessionCreateRequest,
    QuizSessionUpdateRequest,
)
from bondquest.models.responses import (
    QuestionResponse,
    QuizDetailResponse,
    QuizResponse,
    QuizSessionResponse,
)
from bondquest.services import quizzes
from bondquest.services.errors import ServiceError
from bondquest.services.llm import get_generation_provider

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Quizzes"])


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


@router.get(
    "/quizzes",
    response_model=list[QuizResponse],
    summary="List quizzes, optionally by category",
)
async def list_quizzes(
    category: str | None = Query(default=None),
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[QuizResponse]:
    return [QuizResponse.model_validate(q) for q in await storage.list_quizzes(category)]


@router.get(
    "/quizzes/category/{category}",
    response_model=list[QuizResponse],
    summary="List quizzes in a category",
)
async def list_quizzes_by_category(
    category: str,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[QuizResponse]:
    return [QuizResponse.model_validate(q) for q in await storage.list_quizzes(category)]


@router.get(
    "/quizzes/{quiz_id}",
    response_model=QuizDetailResponse,
    summary="Get a quiz with its questions",
)
async def get_quiz(
    quiz_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> QuizDetailResponse:
    quiz = await storage.get_quiz(quiz_id)
    if quiz is None:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return QuizDetailResponse.model_validate(quiz)


@router.post(
    "/quizzes",
    response_model=QuizDetailResponse,
    status_code=201,
    summary="Create a quiz (admin)",
)
async def create_quiz(
    request: QuizCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> QuizDetailResponse:
    values = request.model_dump(exclude={"questions"})
    quiz = await storage.create_quiz(
        questions=[q.model_dump() for q in request.questions], **values,
    )
    logger.info("Quiz created: id=%d, title='%s' by admin %d", quiz.id, quiz.title, admin.id)
    return QuizDetailResponse.model_validate(quiz)


@router.post(
    "/questions",
    response_model=QuestionResponse,
    status_code=201,
    summary="Add a question to a quiz (admin)",
)
async def create_question(
    request: QuestionCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> QuestionResponse:
    if await storage.get_quiz(request.quiz_id) is None:
        raise HTTPException(status_code=404, detail="Quiz not found")
    question = await storage.create_question(**request.model_dump())
    return QuestionResponse.model_validate(question)


@router.post(
    "/quizzes/generate",
    response_model=QuizDetailResponse,
    status_code=201,
    summary="Generate a quiz tailored to the current couple",
    description=(
        "Uses the configured LLM chain (Anthropic, then OpenAI) to write a "
        "quiz. Pass `dimension_id` to focus on one bond dimension."
    ),
)
async def generate_quiz(
    request: QuizGenerateRequest,
    user: User = Depends(ai_rate_limited_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> QuizDetailResponse:
    couple = await current_couple(storage, user)
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
            couple=couple,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return QuizDetailResponse.model_validate(quiz)


# ---------------------------------------------------------------------------
# Quiz sessions
# ---------------------------------------------------------------------------


@router.post(
    "/quiz-sessions",
    response_model=QuizSessionResponse,
    status_code=201,
    summary="Start a quiz session for a couple",
)
async def create_quiz_session(
    request: QuizSessionCreateRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> QuizSessionResponse:
    await load_couple_for_user(storage, request.couple_id, user)
    if await storage.get_quiz(request.quiz_id) is None:
        raise HTTPException(status_code=404, detail="Quiz not found")

    session = await storage.create_quiz_session(
        couple_id=request.couple_id,
        quiz_id=request.quiz_id,
        user1_answers={},
        user2_answers={},
        completed=False,
    )
    return QuizSessionResponse.model_validate(session)


@router.patch(
    "/quiz-sessions/{session_id}",
    response_model=QuizSessionResponse,
    summary="Record answers and/or complete a quiz session",
    description=(
        "Completing a session scores it once: match percentage, points, "
        "XP, bond strength and competition points. Later updates to a "
        "completed session are ignored."
    ),
)
async def update_quiz_session(
    session_id: int,
    request: QuizSessionUpdateRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> QuizSessionResponse:
    session = await storage.get_quiz_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Quiz session not found")
    await load_couple_for_user(storage, session.couple_id, user)

    try:
        session = await quizzes.update_quiz_session(
            storage,
            session,
            user1_answers=request.user1_answers,
            user2_answers=request.user2_answers,
            completed=request.completed,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return QuizSessionResponse.model_validate(session)


@router.get(
    "/couples/{couple_id}/quiz-sessions",
    response_model=list[QuizSessionResponse],
    summary="List a couple's quiz sessions, newest first",
)
async def list_quiz_sessions(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[QuizSessionResponse]:
    await load_couple_for_user(storage, couple_id, user)
    sessions = await storage.list_quiz_sessions(couple_id)
    return [QuizSessionResponse.model_validate(s) for s in sessions]
