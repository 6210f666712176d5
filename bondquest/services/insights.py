# =============================================================================
# Bond Insights — Coaching Plans from Dimension Scores
# =============================================================================
#
# Turns a couple's per-dimension scores into coaching insights: a title,
# a paragraph of guidance, three action items, a difficulty and a target
# score range. The pipeline:
#
#   latest scores ──▶ weakest N dimensions
#        │
#        ▼
#   build_bond_insight()        — deterministic template (always succeeds)
#        │
#        ▼
#   persona LLM (optional)      — replaces the template paragraph with
#                                 personalised guidance; any failure keeps
#                                 the template text
#        │
#        ▼
#   storage.create_bond_insight()
#
# PERSONA ROUTING:
#   communication, trust, emotional_intimacy, conflict_resolution → Venus
#   physical_intimacy, fun_playfulness                            → Casanova
#   everything else                                               → Aurora
#   Any dimension scoring 7+ gets Aurora's maintenance scenario.
# =============================================================================

from __future__ import annotations

import logging
import random
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from bondquest.services import bond, couples, scoring
from bondquest.services.companions import (
    build_companion_system_prompt,
    render_scenario_prompt,
)
from bondquest.services.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from bondquest.db.storage import DatabaseStorage
    from bondquest.services.llm import LLMProvider

logger = logging.getLogger(__name__)

GENERATED_INSIGHT_TTL = timedelta(days=14)
MANUAL_INSIGHT_TTL = timedelta(days=30)
MAINTENANCE_THRESHOLD = 7

_DIMENSION_COMPANION = {
    "communication": "venus",
    "emotional_intimacy": "venus",
    "conflict_resolution": "venus",
    "trust": "venus",
    "physical_intimacy": "casanova",
    "fun_playfulness": "casanova",
}

# Scenario templates per dimension; each belongs to the dimension's persona.
_DIMENSION_SCENARIO = {
    "communication": "activeListening",
    "emotional_intimacy": "emotionalIntimacy",
    "trust": "difficultConversations",
    "conflict_resolution": "conflictResolution",
    "physical_intimacy": "intimacyBuilding",
    "fun_playfulness": "surpriseIdeas",
    "shared_values": "goalSetting",
    "mutual_support": "habitBuilding",
    "independence_balance": "goalSetting",
}

_INTEREST_PAIRS = (
    "travel and outdoor activities",
    "movies and board games",
    "cooking and trying new restaurants",
    "fitness and wellness",
    "reading and intellectual discussions",
    "music and arts",
)

_ACTION_ITEMS: dict[str, dict[str, list[str]]] = {
    "low": {
        "communication": [
            "Schedule a weekly 'communication check-in' for 15 minutes",
            "Practice active listening by repeating back what your partner says",
            "Write down one thing you appreciate about your partner daily",
        ],
        "trust": [
            "Share one small vulnerability with your partner this week",
            "Follow through on a small promise to build reliability",
            "Practice transparent communication about your schedule",
        ],
        "emotional_intimacy": [
            "Share one meaningful feeling each day with your partner",
            "Create a 'connection ritual' before bed (like sharing highlights)",
            "Ask deeper questions beyond daily logistics",
        ],
        "physical_intimacy": [
            "Establish a daily 6-second kiss ritual",
            "Practice non-sexual touch daily (hand holding, hugs, shoulder rubs)",
            "Create a 'touch menu' of physical connections you both enjoy",
        ],
        "default": [
            "Set aside 10 minutes daily to focus on this dimension",
            "Identify one small step to improve in this area",
            "Discuss your expectations for this dimension with your partner",
        ],
    },
    "medium": {
        "communication": [
            "Try the 'speaker-listener' technique for difficult conversations",
            "Create code words for when you need space or support",
            "Schedule a monthly deeper conversation about relationship growth",
        ],
        "trust": [
            "Share a deeper fear or insecurity with your partner",
            "Discuss a past trust breach and what you learned from it",
            "Identify one way you could be more reliable to each other",
        ],
        "emotional_intimacy": [
            "Share your personal goals and ask for your partner's support",
            "Create an 'emotional weather report' ritual to check in regularly",
            "Discuss what makes you feel truly seen and understood",
        ],
        "physical_intimacy": [
            "Try the 'sensate focus' exercise to deepen physical connection",
            "Create a relaxing bedtime ritual together",
            "Share three things that help you feel more connected physically",
        ],
        "default": [
            "Identify patterns that strengthen and weaken this dimension",
            "Schedule a dedicated time weekly to focus on this area",
            "Read a book or article together about this dimension",
        ],
    },
    "high": {
        "communication": [
            "Learn a new communication skill together (like non-violent communication)",
            "Practice communicating effectively during stress or conflict",
            "Create a 'state of the relationship' monthly discussion",
        ],
        "trust": [
            "Share dreams and vulnerabilities you haven't yet expressed",
            "Create a ritual to acknowledge and appreciate trustworthy actions",
            "Discuss how you might support each other through a major life change",
        ],
        "emotional_intimacy": [
            "Create a deeper intimacy practice like meditation together",
            "Write a letter to your partner about your hopes for your future",
            "Discuss how your emotional needs have evolved over time",
        ],
        "physical_intimacy": [
            "Create a 'desire map' to understand patterns in your connection",
            "Try a new physical practice together (dance, yoga, massage)",
            "Plan a sensual experience focusing entirely on each other",
        ],
        "default": [
            "Mentor another couple in strengthening this dimension",
            "Create a vision for how this dimension might evolve over years",
            "Challenge yourselves to take this dimension to a new level",
        ],
    },
}


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def best_companion_for_dimension(dimension_id: str) -> str:
    return _DIMENSION_COMPANION.get(dimension_id, "aurora")


def score_level(score: int) -> str:
    """Prompt wording tier: high (7+), medium (4-6), low (≤3)."""
    if score >= MAINTENANCE_THRESHOLD:
        return "high"
    if score >= 4:
        return "medium"
    return "low"


def scenario_for_dimension(dimension_id: str, score: int) -> tuple[str, str]:
    """(companion id, scenario key) used to prompt for this dimension."""
    if score >= MAINTENANCE_THRESHOLD:
        return "aurora", "relationshipMaintenance"
    scenario = _DIMENSION_SCENARIO.get(dimension_id)
    if scenario is None:
        return "aurora", "relationshipAssessment"
    return best_companion_for_dimension(dimension_id), scenario


def action_items_for_dimension(dimension_id: str, score: int) -> list[str]:
    """Three action items; tiers split at ≤3, ≤6 and above."""
    if score <= 3:
        tier = _ACTION_ITEMS["low"]
    elif score <= 6:
        tier = _ACTION_ITEMS["medium"]
    else:
        tier = _ACTION_ITEMS["high"]
    return list(tier.get(dimension_id, tier["default"]))


def insight_difficulty(score: int) -> str:
    if score <= 3:
        return "easy"
    if score >= MAINTENANCE_THRESHOLD:
        return "challenging"
    return "medium"


def insight_title(dimension_name: str, score: int) -> str:
    if score <= 3:
        return f"Building a Foundation of {dimension_name}"
    if score >= MAINTENANCE_THRESHOLD:
        return f"Maintaining Excellence in {dimension_name}"
    return f"Strengthening {dimension_name} in Your Relationship"


def target_score_range(score: int) -> tuple[int, int]:
    if score <= 3:
        return (0, 3)
    if score <= 6:
        return (4, 6)
    return (7, 10)


def prompt_variables(
    dimension_id: str,
    score: int,
    relationship_length: str = "1-3 years",
    interests: str | None = None,
) -> dict[str, str]:
    """
    Values for every placeholder a scenario template may use.

    `interests` defaults to a random pair so repeated insights do not all
    read the same.
    """
    dimension = bond.get_dimension(dimension_id)
    name = bond.dimension_name(dimension_id)
    level = score_level(score)

    if level == "low":
        challenges = (
            "establishing consistent patterns, core trust issues, or fundamental "
            f"misalignment in {name} expectations"
        )
    elif level == "medium":
        challenges = (
            "inconsistent application, competing priorities, or unaddressed minor "
            f"issues in {name}"
        )
    else:
        challenges = (
            "maintaining consistency during stress, avoiding complacency, or "
            "continuing to evolve as your relationship changes"
        )

    topic = name.lower()
    return {
        "dimension": name,
        "description": dimension.description if dimension else "",
        "scoreLevel": level,
        "challenges": challenges,
        "challenge": challenges,
        "relationshipLength": relationship_length,
        "interests": interests or random.choice(_INTEREST_PAIRS),
        "issue": topic,
        "topics": topic,
        "sensitiveIssue": topic,
        "area": topic,
        "aspects": topic,
        "habit": f"nurturing {topic}",
        "potentialIssue": f"complacency around {topic}",
        "timeframe": relationship_length,
        "circumstances": challenges,
        "occasion": "your next date night",
        "loveLanguage": "quality time",
    }


def build_bond_insight(
    couple_id: int,
    dimension_id: str,
    score: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Template insight for one dimension, as BondInsight column values.

    Raises:
        ValidationError: unknown dimension id.
    """
    dimension = bond.get_dimension(dimension_id)
    if dimension is None:
        raise ValidationError(f"Invalid dimension: {dimension_id}")

    now = now or datetime.now(UTC)
    low, high = target_score_range(score)
    companion_id, _ = scenario_for_dimension(dimension_id, score)

    content = (
        f"This insight focuses on {dimension.name} in your relationship, which "
        f"currently scores {score}/10.\n\n"
        f"{dimension.description}\n\n"
        "Based on your score, we recommend focusing on strengthening this area "
        "through consistent small actions. The action items below are designed "
        "to help you make meaningful progress."
    )

    return {
        "couple_id": couple_id,
        "dimension_id": dimension_id,
        "title": insight_title(dimension.name, score),
        "content": content,
        "action_items": action_items_for_dimension(dimension_id, score),
        "target_score_min": low,
        "target_score_max": high,
        "difficulty": insight_difficulty(score),
        "companion_id": companion_id,
        "completed": False,
        "viewed": False,
        "expires_at": now + GENERATED_INSIGHT_TTL,
    }


# ---------------------------------------------------------------------------
# LLM personalisation
# ---------------------------------------------------------------------------


async def personalise_insight_content(
    llm: LLMProvider,
    dimension_id: str,
    score: int,
    relationship_length: str = "1-3 years",
) -> str:
    """Ask the dimension's persona for guidance. Errors propagate to the caller."""
    companion_id, scenario = scenario_for_dimension(dimension_id, score)
    variables = prompt_variables(dimension_id, score, relationship_length)

    system = build_companion_system_prompt(
        companion_id,
        {
            "relationship_length": relationship_length,
            "challenges": [variables["challenges"]],
        },
    )
    prompt = (
        f"{render_scenario_prompt(companion_id, scenario, variables)}\n\n"
        f"The couple rated {variables['dimension']} at {score}/10 "
        f"({variables['scoreLevel']}). Respond in under 150 words, addressed "
        "to the couple, without headings."
    )

    response = await llm.complete(
        messages=[{"role": "user", "content": prompt}],
        system=system,
        temperature=0.7,
        max_tokens=400,
    )
    return response.content.strip()


async def generate_bond_insights(
    storage: DatabaseStorage,
    couple_id: int,
    llm: LLMProvider | None = None,
    limit: int = 3,
    now: datetime | None = None,
) -> list[Any]:
    """
    Create insights for the couple's weakest assessed dimensions.

    Raises:
        NotFoundError: couple does not exist.
        ValidationError: the couple has no assessments yet.
    """
    couple = await storage.get_couple(couple_id)
    if couple is None:
        raise NotFoundError("Couple not found")

    assessments = await storage.list_bond_assessments(couple_id)
    scores = bond.latest_scores(assessments)
    if not scores:
        raise ValidationError("Complete a bond assessment before generating insights")

    created = []
    for dimension_id in bond.weakest_dimensions(scores, limit=limit):
        score = scores[dimension_id]
        values = build_bond_insight(couple_id, dimension_id, score, now=now)

        if llm is not None:
            try:
                content = await personalise_insight_content(llm, dimension_id, score)
                if content:
                    values["content"] = content
            except Exception as e:
                logger.warning(
                    "Insight personalisation failed for couple %d (%s): %s",
                    couple_id, dimension_id, e,
                )

        created.append(await storage.create_bond_insight(**values))

    logger.info("Generated %d bond insights for couple %d", len(created), couple_id)
    return created


# ---------------------------------------------------------------------------
# Insight lifecycle
# ---------------------------------------------------------------------------


def manual_insight_values(values: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
    """
    Column values for a hand-written insight.

    Raises:
        ValidationError: unknown dimension id or inverted target range.
    """
    if not bond.is_valid_dimension(values.get("dimension_id", "")):
        raise ValidationError(f"Invalid dimension: {values.get('dimension_id')}")
    if values.get("target_score_min", 0) > values.get("target_score_max", 10):
        raise ValidationError("target_score_min cannot exceed target_score_max")

    return {
        **values,
        "completed": False,
        "viewed": False,
        "expires_at": (now or datetime.now(UTC)) + MANUAL_INSIGHT_TTL,
    }


async def set_insight_completed(
    storage: DatabaseStorage,
    insight: Any,
    completed: bool,
    now: datetime | None = None,
) -> Any:
    """
    Update the completed flag. The first completion awards XP and logs a
    `bond_insight` activity; re-completing or un-completing awards nothing.

    `completed_at` survives un-completing, so toggling the flag back on
    never awards a second time.
    """
    first_completion = completed and insight.completed_at is None
    insight.completed = completed

    if first_completion:
        insight.completed_at = now or datetime.now(UTC)
        couple = await storage.get_couple(insight.couple_id)
        if couple is not None:
            await couples.award_activity(
                storage,
                couple,
                activity_type="bond_insight",
                description=f"Completed a relationship insight: {insight.title}",
                points=scoring.BOND_INSIGHT_COMPLETED_POINTS,
                reference_id=insight.id,
            )

    return await storage.save(insight)
