# =============================================================================
# Quiz Sessions Service — Answer Updates, Completion & Daily Quiz
# =============================================================================
#
# COMPLETION runs exactly once, on the `completed: false → true` edge:
#   1. match % from both partners' answers (scoring.calculate_match_percentage)
#   2. points = quiz.points * match // 100
#   3. couple XP (+ level-up achievements) and a "quiz" activity whose
#      description is Aurora's short read of the answers
#   4. bond strength blended 70/30 with the match
#   5. points added to the couple's running competition entries
#
# A session that is already completed ignores further answer updates and
# completion requests, so retries from the client cannot double-award.
#
# GENERATION: `generate_and_save_quiz` runs the generation provider chain
# (optionally steered by a bond dimension and the couple's profiles) and
# stores the quiz with its questions in one flush.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from bondquest.services import bond, competitions, couples, scoring
from bondquest.services.errors import NotFoundError, ValidationError
from bondquest.services.generation import generate_quiz, generate_relationship_insights

if TYPE_CHECKING:
    from bondquest.db.models import Couple, Quiz, QuizSession
    from bondquest.db.storage import DatabaseStorage
    from bondquest.services.llm import LLMProvider

logger = logging.getLogger(__name__)


def daily_quiz(quizzes: Sequence[Quiz], today: date) -> Quiz | None:
    """Deterministic quiz of the day: same date, same quiz, for every couple."""
    if not quizzes:
        return None
    ordered = sorted(quizzes, key=lambda q: q.id)
    return ordered[today.toordinal() % len(ordered)]


async def update_quiz_session(
    storage: DatabaseStorage,
    session: QuizSession,
    user1_answers: Mapping[str, Any] | None = None,
    user2_answers: Mapping[str, Any] | None = None,
    completed: bool | None = None,
    llm: LLMProvider | None = None,
    now: datetime | None = None,
) -> QuizSession:
    """Apply answer updates and, on first completion, score the session."""
    if session.completed:
        logger.debug("Quiz session %d already completed; update ignored", session.id)
        return session

    if user1_answers is not None:
        session.user1_answers = dict(user1_answers)
    if user2_answers is not None:
        session.user2_answers = dict(user2_answers)

    if completed:
        await _complete_session(storage, session, llm, now or datetime.now(UTC))

    return await storage.save(session)


async def _complete_session(
    storage: DatabaseStorage,
    session: QuizSession,
    llm: LLMProvider | None,
    now: datetime,
) -> None:
    quiz = await storage.get_quiz(session.quiz_id)
    if quiz is None:
        raise NotFoundError("Quiz not found")

    match = scoring.calculate_match_percentage(session.user1_answers, session.user2_answers)
    points = scoring.points_for_session(quiz.points, match)

    session.match_percentage = match
    session.points_earned = points
    session.completed = True
    session.completed_at = now

    couple = await storage.get_couple(session.couple_id)
    if couple is None:
        raise NotFoundError("Couple not found")

    if session.user1_answers:
        description = await generate_relationship_insights(
            session.user1_answers, quiz.category, llm=llm,
        )
    else:
        description = f"Completed \"{quiz.title}\" with a {match}% match"

    couple.bond_strength = scoring.blend_bond_strength(couple.bond_strength, match)
    await couples.award_activity(
        storage,
        couple,
        activity_type="quiz",
        description=description,
        points=points,
        reference_id=session.id,
    )
    await competitions.add_session_points(storage, couple.id, points, now=now)

    logger.info(
        "Quiz session %d completed: couple=%d match=%d%% points=%d bond=%d",
        session.id, couple.id, match, points, couple.bond_strength,
    )


async def generate_and_save_quiz(
    storage: DatabaseStorage,
    llm: LLMProvider,
    topic: str | None,
    category: str,
    difficulty: str = "medium",
    question_count: int = 5,
    dimension_id: str | None = None,
    additional_instructions: str = "",
    couple: Couple | None = None,
) -> Quiz:
    """
    Generate a quiz with the LLM chain and persist it with its questions.

    Raises:
        ValidationError: neither a topic nor a valid dimension was given.
        AIUnavailableError / AIGenerationError: from the provider chain.
    """
    dimension = bond.get_dimension(dimension_id) if dimension_id else None
    if dimension_id and dimension is None:
        raise ValidationError(f"Invalid dimension: {dimension_id}")

    instructions = additional_instructions
    if dimension is not None:
        instructions = (
            f"This quiz focuses on the \"{dimension.name}\" dimension of "
            f"relationships: {dimension.description} Create questions that "
            f"specifically explore this aspect of relationships. {instructions}"
        ).strip()

    topic = topic or (dimension.name if dimension else None)
    if not topic:
        raise ValidationError("A topic or dimension is required")

    profiles = None
    if couple is not None:
        profiles = []
        for user_id in couple.member_ids():
            user = await storage.get_user(user_id)
            if user is not None:
                profiles.append({
                    "love_language": user.love_language,
                    "relationship_status": user.relationship_status,
                })

    values = await generate_quiz(
        llm,
        topic=topic,
        category=category,
        difficulty=difficulty,
        question_count=question_count,
        additional_instructions=instructions,
        profiles=profiles,
    )
    quiz = await storage.create_quiz(**values)
    logger.info("Saved generated quiz %d ('%s')", quiz.id, quiz.title)
    return quiz
