# =============================================================================
# Bond Dimensions — Relationship Health Scoring
# =============================================================================
#
# Nine weighted dimensions describe a relationship. Partners self-assess
# each dimension on a 1-10 scale; the most recent score per dimension feeds
# a weighted bond-strength score on 0-100.
#
# WEIGHTS (higher = more influence on the overall score):
#   trust 10 · communication 9 · mutual_support 9 · emotional_intimacy 8
#   conflict_resolution 8 · shared_values 8 · physical_intimacy 7
#   independence_balance 7 · fun_playfulness 6
#
# DESIGN DECISION: Weighted average over the dimensions that HAVE a score.
# A couple that has assessed only two dimensions gets a score from those
# two, not a score dragged down by seven implicit zeros. Clamping inputs to
# the 0-10 range keeps the result within 0-100 and keeps it monotone in
# every dimension.
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class BondDimension:
    id: str
    name: str
    description: str
    icon: str
    color: str
    weight: int


BOND_DIMENSIONS: tuple[BondDimension, ...] = (
    BondDimension(
        id="communication",
        name="Communication",
        description=(
            "The degree of openness, clarity, and effectiveness in how you "
            "share thoughts, feelings, and information."
        ),
        icon="MessageSquare",
        color="#4F46E5",
        weight=9,
    ),
    BondDimension(
        id="trust",
        name="Trust",
        description=(
            "The level of confidence each partner has in the other's honesty, "
            "reliability, and loyalty."
        ),
        icon="Shield",
        color="#0EA5E9",
        weight=10,
    ),
    BondDimension(
        id="emotional_intimacy",
        name="Emotional Intimacy",
        description=(
            "The closeness and warmth in sharing emotions, vulnerabilities, "
            "and supportive behaviors."
        ),
        icon="Heart",
        color="#EC4899",
        weight=8,
    ),
    BondDimension(
        id="conflict_resolution",
        name="Conflict Resolution",
        description=(
            "The effectiveness with which you address disagreements and "
            "resolve conflicts respectfully."
        ),
        icon="Handshake",
        color="#F97316",
        weight=8,
    ),
    BondDimension(
        id="physical_intimacy",
        name="Physical Intimacy",
        description=(
            "Satisfaction with physical affection, closeness, and sexual connection."
        ),
        icon="Sparkles",
        color="#D946EF",
        weight=7,
    ),
    BondDimension(
        id="shared_values",
        name="Shared Values & Goals",
        description=(
            "How aligned you are in core life values, goals, and future plans."
        ),
        icon="Target",
        color="#10B981",
        weight=8,
    ),
    BondDimension(
        id="fun_playfulness",
        name="Fun & Playfulness",
        description=(
            "The ability to enjoy light-hearted moments, shared humor, and "
            "playfulness together."
        ),
        icon="Laugh",
        color="#FBBF24",
        weight=6,
    ),
    BondDimension(
        id="mutual_support",
        name="Mutual Support & Respect",
        description=(
            "The extent to which you provide support, affirmation, and respect "
            "for each other's individuality and efforts."
        ),
        icon="Hands",
        color="#6366F1",
        weight=9,
    ),
    BondDimension(
        id="independence_balance",
        name="Independence & Togetherness",
        description=(
            "The balance between healthy individual autonomy and shared couple "
            "time, ensuring personal growth alongside relationship nurturing."
        ),
        icon="Unlink",
        color="#8B5CF6",
        weight=7,
    ),
)

DIMENSIONS_BY_ID: dict[str, BondDimension] = {d.id: d for d in BOND_DIMENSIONS}

MIN_SCORE = 1
MAX_SCORE = 10

# (threshold, label), checked top-down
_INTERPRETATION_BANDS: tuple[tuple[int, str], ...] = (
    (90, "Exceptional"),
    (80, "Very Strong"),
    (70, "Strong"),
    (60, "Healthy"),
    (50, "Developing"),
    (40, "Needs Attention"),
    (30, "Needs Significant Work"),
)


def is_valid_dimension(dimension_id: str) -> bool:
    return dimension_id in DIMENSIONS_BY_ID


def get_dimension(dimension_id: str) -> BondDimension | None:
    return DIMENSIONS_BY_ID.get(dimension_id)


def dimension_name(dimension_id: str) -> str:
    """Display name for a dimension id; unknown ids are humanised."""
    dimension = DIMENSIONS_BY_ID.get(dimension_id)
    if dimension is not None:
        return dimension.name
    return dimension_id.replace("_", " ").title()


def calculate_bond_strength(scores: Mapping[str, float]) -> int:
    """
    Weighted bond strength on 0-100 from per-dimension 1-10 scores.

    Args:
        scores: dimension id → score. Unknown ids are ignored; values are
            clamped to 0..10 before weighting.

    Returns:
        Rounded weighted average × 10, clamped to 0..100. Zero when no
        known dimension has a score.
    """
    total_weight = 0
    weighted_sum = 0.0

    for dimension_id, raw_score in scores.items():
        dimension = DIMENSIONS_BY_ID.get(dimension_id)
        if dimension is None or raw_score is None:
            continue
        score = min(max(float(raw_score), 0.0), float(MAX_SCORE))
        weighted_sum += score * dimension.weight
        total_weight += dimension.weight

    if total_weight == 0:
        return 0

    strength = round((weighted_sum / total_weight) * 10)
    return min(max(strength, 0), 100)


def bond_strength_interpretation(score: int) -> str:
    """Human-readable band for a 0-100 bond-strength score."""
    for threshold, label in _INTERPRETATION_BANDS:
        if score >= threshold:
            return label
    return "Critical Attention Required"


def latest_scores(assessments: Iterable[Any]) -> dict[str, int]:
    """
    Most recent score per dimension.

    Accepts any objects with `dimension_id`, `score` and `created_at`.
    Ties on created_at keep the later item in iteration order.
    """
    latest: dict[str, Any] = {}
    for assessment in assessments:
        current = latest.get(assessment.dimension_id)
        if current is None or _timestamp(assessment) >= _timestamp(current):
            latest[assessment.dimension_id] = assessment
    return {dim: a.score for dim, a in latest.items()}


def dimension_stats(assessments: Iterable[Any]) -> dict[str, dict[str, Any]]:
    """Per-dimension summary: assessed flag, latest score, last assessed time."""
    items = list(assessments)
    stats: dict[str, dict[str, Any]] = {
        d.id: {"assessed": False, "score": None, "last_assessed": None}
        for d in BOND_DIMENSIONS
    }
    for assessment in items:
        entry = stats.get(assessment.dimension_id)
        if entry is None:
            continue
        if entry["last_assessed"] is None or _timestamp(assessment) >= entry["last_assessed"]:
            entry["assessed"] = True
            entry["score"] = assessment.score
            entry["last_assessed"] = _timestamp(assessment)
    return stats


def weakest_dimensions(scores: Mapping[str, int], limit: int = 3) -> list[str]:
    """Lowest-scoring dimension ids, ties broken by dimension order."""
    return _ranked(scores, reverse=False)[:limit]


def strongest_dimensions(scores: Mapping[str, int], limit: int = 3) -> list[str]:
    """Highest-scoring dimension ids, ties broken by dimension order."""
    return _ranked(scores, reverse=True)[:limit]


def _ranked(scores: Mapping[str, int], reverse: bool) -> list[str]:
    order = {d.id: i for i, d in enumerate(BOND_DIMENSIONS)}
    known = [dim for dim in scores if dim in order]
    sign = -1 if reverse else 1
    return sorted(known, key=lambda dim: (sign * scores[dim], order[dim]))


def _timestamp(item: Any) -> datetime:
    value = getattr(item, "created_at", None)
    return value if value is not None else datetime.min
