# =============================================================================
# Scoring — Quiz Match, XP, Levels, Bond-Strength Blending
# =============================================================================
#
# Pure functions with no I/O. Every number a couple sees on the dashboard
# (match %, points, XP, level, bond strength) is produced here.
#
# MATCH PERCENTAGE:
#   Only questions BOTH partners answered count. Agreement on those maps
#   linearly onto 50..100, so a quiz never scores below 50%:
#       match = round(50 + 50 * agreed / shared)
#   No overlap at all scores a neutral 75.
#
# BOND STRENGTH after a quiz:
#   new = round(0.7 * current + 0.3 * match), clamped to 0..100
#
# LEVEL:
#   level = xp // 1000 + 1
# =============================================================================

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

DEFAULT_BOND_STRENGTH = 50
NO_OVERLAP_MATCH = 75
XP_PER_LEVEL = 1000

# XP awarded for engagement outside quizzes
CHECK_IN_POINTS = 5
BOND_ASSESSMENT_POINTS = 10
BOND_INSIGHT_COMPLETED_POINTS = 15

# Weight of the existing bond strength when blending in a quiz result
BOND_HISTORY_WEIGHT = 0.7


def calculate_match_percentage(
    answers1: Mapping[str, Any] | None,
    answers2: Mapping[str, Any] | None,
) -> int:
    """
    Compatibility between two partners' answers, on 50..100.

    Keys are question ids (compared as strings so JSON round-trips do not
    break matching). Returns NO_OVERLAP_MATCH when no question was answered
    by both partners.
    """
    first = {str(k): v for k, v in (answers1 or {}).items()}
    second = {str(k): v for k, v in (answers2 or {}).items()}

    shared = first.keys() & second.keys()
    if not shared:
        return NO_OVERLAP_MATCH

    agreed = sum(1 for question_id in shared if first[question_id] == second[question_id])
    return round(50 + 50 * agreed / len(shared))


def points_for_session(quiz_points: int, match_percentage: int) -> int:
    """Points earned for a completed quiz, scaled by how well partners matched."""
    return max(quiz_points, 0) * match_percentage // 100


def blend_bond_strength(current: int | None, match_percentage: int) -> int:
    """Fold a quiz match into the running bond strength (0..100)."""
    base = DEFAULT_BOND_STRENGTH if current is None else current
    blended = round(
        base * BOND_HISTORY_WEIGHT + match_percentage * (1 - BOND_HISTORY_WEIGHT)
    )
    return clamp_bond_strength(blended)


def clamp_bond_strength(value: int) -> int:
    return min(max(int(value), 0), 100)


def level_for_xp(xp: int) -> int:
    return max(xp, 0) // XP_PER_LEVEL + 1


def level_up_achievements(old_level: int, new_level: int) -> list[dict[str, str]]:
    """One achievement payload for each level crossed (empty when none)."""
    return [
        {
            "title": f"Level {level} Reached",
            "description": f"You and your partner reached level {level} together!",
            "icon": "trophy",
        }
        for level in range(old_level + 1, new_level + 1)
    ]
