# =============================================================================
# AI Content Generation — Persona Replies, Quiz Insights, Quizzes, Competitions
# =============================================================================
#
# Two families of calls with different failure contracts:
#
# 1. CONVERSATIONAL (generate_ai_response, generate_relationship_insights)
#    Never raise. A missing key, network error or empty completion returns
#    friendly canned text so chat and quiz completion always succeed.
#
# 2. STRUCTURED (generate_quiz, generate_competition)
#    Return validated dicts or raise:
#      AIUnavailableError → 503 (no provider configured)
#      AIGenerationError  → 502 (all providers failed or output unusable)
#    The provider chain (Anthropic → OpenAI) is handled by FallbackProvider.
#
# JSON PARSING: models often wrap JSON in ```json fences or add a sentence
# before it. `parse_json_payload` strips fences and, failing a direct
# parse, extracts the outermost {...} or [...] block.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from bondquest.services.companions import chat_system_prompt
from bondquest.services.errors import AIGenerationError, AIUnavailableError
from bondquest.services.llm import LLMProvider, get_chat_provider

logger = logging.getLogger(__name__)

CHAT_TROUBLE_MESSAGE = "I'm having trouble connecting right now. Please try again later."
CHAT_EMPTY_MESSAGE = (
    "I'm not sure how to respond to that. Could you try asking in a different way?"
)
INSIGHTS_FAILURE_MESSAGE = (
    "We couldn't analyze your results at this moment. Please try again later."
)
INSIGHTS_EMPTY_MESSAGE = "Unable to generate insights at this time."

VALID_DIFFICULTIES = ("easy", "medium", "hard")
MAX_QUESTION_COUNT = 20

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text.strip()).strip()


def parse_json_payload(text: str) -> Any:
    """
    Parse JSON from an LLM completion.

    Raises:
        ValueError: no JSON object or array could be recovered.
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = cleaned.find(opener)
        end = cleaned.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start:end + 1])
            except json.JSONDecodeError:
                continue

    raise ValueError("Response did not contain valid JSON")


# ---------------------------------------------------------------------------
# Conversational calls (never raise)
# ---------------------------------------------------------------------------


async def generate_ai_response(
    user_message: str,
    assistant_type: str = "casanova",
    llm: LLMProvider | None = None,
) -> str:
    """Short persona reply to a chat message; canned text on any failure."""
    try:
        provider = llm or get_chat_provider()
        response = await provider.complete(
            messages=[{"role": "user", "content": user_message}],
            system=chat_system_prompt(assistant_type),
            temperature=0.7,
            max_tokens=150,
        )
    except Exception as e:
        logger.warning("AI chat response failed (%s): %s", assistant_type, e)
        return CHAT_TROUBLE_MESSAGE

    return response.content.strip() or CHAT_EMPTY_MESSAGE


async def generate_relationship_insights(
    quiz_responses: Mapping[str, Any],
    category: str,
    llm: LLMProvider | None = None,
) -> str:
    """Aurora's short read of a completed quiz; canned text on any failure."""
    system = f"""You are Aurora, a data-driven relationship scientist who provides insights based on quiz results.

You are analyzing results from a "{category}" quiz. Based on the responses, provide:
1. A brief, positive summary of what the responses indicate about the relationship (1-2 sentences)
2. One specific strength revealed by these answers (1 sentence)
3. One opportunity for growth (1 sentence)
4. A single, specific action the couple can take this week (1 sentence)

Keep your entire response under 100 words. Be encouraging but honest."""

    formatted = "\n".join(
        f"Question {key}: {value}" for key, value in quiz_responses.items()
    )

    try:
        provider = llm or get_chat_provider()
        response = await provider.complete(
            messages=[
                {"role": "user", "content": f"Here are the quiz responses:\n{formatted}"},
            ],
            system=system,
            temperature=0.6,
            max_tokens=200,
        )
    except Exception as e:
        logger.warning("Relationship insight generation failed: %s", e)
        return INSIGHTS_FAILURE_MESSAGE

    return response.content.strip() or INSIGHTS_EMPTY_MESSAGE


# ---------------------------------------------------------------------------
# Structured generation (raises)
# ---------------------------------------------------------------------------


async def _complete_json(
    llm: LLMProvider,
    system: str,
    prompt: str,
    max_tokens: int,
) -> Any:
    try:
        response = await llm.complete(
            messages=[{"role": "user", "content": prompt}],
            system=system,
            temperature=0.7,
            max_tokens=max_tokens,
        )
    except (AIGenerationError, AIUnavailableError):
        raise
    except Exception as e:
        logger.exception("AI generation call failed")
        raise AIGenerationError(f"AI generation failed: {e}") from e

    try:
        return parse_json_payload(response.content)
    except ValueError as e:
        logger.warning("AI returned unparseable JSON (model=%s)", response.model)
        raise AIGenerationError("AI returned an invalid response") from e


def _profiles_summary(profiles: list[Mapping[str, Any]] | None) -> str:
    if not profiles:
        return ""
    lines = []
    for i, profile in enumerate(profiles, start=1):
        details = ", ".join(
            f"{key.replace('_', ' ')}: {value}"
            for key, value in profile.items()
            if value
        )
        if details:
            lines.append(f"Partner {i}: {details}")
    if not lines:
        return ""
    return "\n\nTailor the questions to this couple:\n" + "\n".join(lines)


def normalise_quiz(
    payload: Any,
    category: str,
    difficulty: str,
    question_count: int,
) -> dict[str, Any]:
    """
    Coerce a generated quiz into Quiz/Question column values.

    Raises:
        AIGenerationError: missing title or no usable questions.
    """
    if not isinstance(payload, dict):
        raise AIGenerationError("AI returned an invalid quiz")

    questions = []
    for raw in payload.get("questions") or []:
        if not isinstance(raw, dict):
            continue
        text = str(raw.get("text") or "").strip()
        options = [str(o).strip() for o in (raw.get("options") or []) if str(o).strip()]
        if text and len(options) >= 2:
            questions.append({"text": text, "options": options})

    title = str(payload.get("title") or "").strip()
    if not title or not questions:
        raise AIGenerationError("AI returned an incomplete quiz")

    return {
        "title": title,
        "description": str(payload.get("description") or "").strip(),
        "type": str(payload.get("type") or "multiplayer"),
        "category": str(payload.get("category") or category),
        "difficulty": difficulty,
        "duration": _positive_int(payload.get("duration"), 10),
        "points": _positive_int(payload.get("points"), 100),
        "questions": questions[:question_count],
    }


async def generate_quiz(
    llm: LLMProvider,
    topic: str,
    category: str,
    difficulty: str = "medium",
    question_count: int = 5,
    additional_instructions: str = "",
    profiles: list[Mapping[str, Any]] | None = None,
) -> dict[str, Any]:
    """Generate a couples quiz and return normalised Quiz column values."""
    question_count = min(max(question_count, 1), MAX_QUESTION_COUNT)
    if difficulty not in VALID_DIFFICULTIES:
        difficulty = "medium"

    system = (
        "You design fun, insightful quizzes for couples in the BondQuest app. "
        "Both partners answer the same questions separately; matching answers "
        "show how well they know each other. Respond with JSON only."
    )
    prompt = f"""Create a {difficulty} quiz about "{topic}" in the "{category}" category with exactly {question_count} questions.

Each question must have 3-4 short answer options.
{additional_instructions}{_profiles_summary(profiles)}

Return a JSON object with this shape:
{{
  "title": "string",
  "description": "string",
  "type": "multiplayer",
  "category": "{category}",
  "duration": 10,
  "points": 100,
  "questions": [{{"text": "string", "options": ["string", "string", "string"]}}]
}}"""

    payload = await _complete_json(llm, system, prompt, max_tokens=2048)
    quiz = normalise_quiz(payload, category, difficulty, question_count)
    logger.info(
        "Generated quiz '%s' (%d questions, topic=%s)",
        quiz["title"], len(quiz["questions"]), topic,
    )
    return quiz


def normalise_competition(payload: Any) -> dict[str, Any]:
    """
    Coerce generated competition details.

    Raises:
        AIGenerationError: payload is not an object or lacks rules.
    """
    if not isinstance(payload, dict) or not payload.get("rules"):
        raise AIGenerationError("AI returned an incomplete competition")

    challenges = []
    for raw in payload.get("challenges") or []:
        if isinstance(raw, dict) and raw.get("title"):
            challenges.append({
                "title": str(raw["title"]),
                "description": str(raw.get("description") or ""),
                "points": _positive_int(raw.get("points"), 10),
            })
        elif isinstance(raw, str) and raw.strip():
            challenges.append({"title": raw.strip(), "description": "", "points": 10})

    max_participants = payload.get("maxParticipants", payload.get("max_participants"))
    return {
        "rules": _as_text(payload.get("rules")),
        "scoring_methods": _as_text(
            payload.get("scoringMethods", payload.get("scoring_methods")) or ""
        ),
        "challenges": challenges,
        "rewards_description": _as_text(
            payload.get("rewardsDescription", payload.get("rewards_description")) or ""
        ),
        "max_participants": _positive_int(max_participants, 0) or None,
    }


async def generate_competition(
    llm: LLMProvider,
    name: str,
    description: str,
    start_date: str,
    end_date: str,
    difficulty: str = "medium",
    competition_type: str = "quiz",
    additional_instructions: str = "",
) -> dict[str, Any]:
    """Generate rules, scoring, challenges and reward copy for a competition."""
    system = (
        "You design friendly competitions between couples for the BondQuest "
        "relationship app. Keep challenges inclusive, positive and achievable. "
        "Respond with JSON only."
    )
    prompt = f"""Design a {difficulty} "{competition_type}" competition.

Name: {name}
Description: {description}
Runs from {start_date} to {end_date}.
{additional_instructions}

Return a JSON object with this shape:
{{
  "rules": "string",
  "scoringMethods": "string",
  "challenges": [{{"title": "string", "description": "string", "points": 10}}],
  "rewardsDescription": "string",
  "maxParticipants": 100
}}"""

    payload = await _complete_json(llm, system, prompt, max_tokens=2048)
    competition = normalise_competition(payload)
    logger.info(
        "Generated competition details for '%s' (%d challenges)",
        name, len(competition["challenges"]),
    )
    return competition


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _as_text(value: Any) -> str:
    if isinstance(value, list):
        return "\n".join(f"- {item}" for item in value)
    return str(value)
