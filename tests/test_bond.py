# =============================================================================
# Unit Tests — Bond Dimensions & Bond Strength
# =============================================================================
#
# Test groups:
#   1. Dimension table
#   2. Weighted bond strength (range, monotonicity, weighting)
#   3. Interpretation bands
#   4. Latest scores, per-dimension stats, weakest/strongest
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from bondquest.services import bond


@dataclass
class FakeAssessment:
    """Lightweight stand-in for the BondAssessment ORM model."""

    dimension_id: str
    score: int
    created_at: datetime


_T0 = datetime(2025, 1, 1, tzinfo=UTC)


# ---------------------------------------------------------------------------
# 1. Dimension table
# ---------------------------------------------------------------------------


class TestDimensions:
    def test_nine_dimensions(self):
        assert len(bond.BOND_DIMENSIONS) == 9

    def test_weights(self):
        weights = {d.id: d.weight for d in bond.BOND_DIMENSIONS}
        assert weights == {
            "communication": 9,
            "trust": 10,
            "emotional_intimacy": 8,
            "conflict_resolution": 8,
            "physical_intimacy": 7,
            "shared_values": 8,
            "fun_playfulness": 6,
            "mutual_support": 9,
            "independence_balance": 7,
        }

    def test_lookup(self):
        assert bond.is_valid_dimension("trust")
        assert not bond.is_valid_dimension("astrology")
        assert bond.get_dimension("trust").name == "Trust"
        assert bond.get_dimension("astrology") is None

    def test_dimension_name_humanises_unknown_ids(self):
        assert bond.dimension_name("shared_values") == "Shared Values & Goals"
        assert bond.dimension_name("money_talks") == "Money Talks"


# ---------------------------------------------------------------------------
# 2. Bond strength
# ---------------------------------------------------------------------------


class TestCalculateBondStrength:
    def test_empty_is_zero(self):
        assert bond.calculate_bond_strength({}) == 0

    def test_all_tens_is_100(self):
        scores = {d.id: 10 for d in bond.BOND_DIMENSIONS}
        assert bond.calculate_bond_strength(scores) == 100

    def test_uniform_score(self):
        scores = {d.id: 7 for d in bond.BOND_DIMENSIONS}
        assert bond.calculate_bond_strength(scores) == 70

    def test_weighting(self):
        """trust (10) at 10 and fun (6) at 0 → 100 × 10/16 = 62.5 → 62."""
        assert bond.calculate_bond_strength({"trust": 10, "fun_playfulness": 0}) == 62

    def test_unknown_dimensions_ignored(self):
        assert bond.calculate_bond_strength({"trust": 8, "astrology": 1}) == 80

    def test_out_of_range_scores_are_clamped(self):
        assert bond.calculate_bond_strength({"trust": 50}) == 100
        assert bond.calculate_bond_strength({"trust": -5}) == 0

    @pytest.mark.parametrize("dimension", [d.id for d in bond.BOND_DIMENSIONS])
    def test_monotone_in_each_dimension(self, dimension):
        base = {d.id: 5 for d in bond.BOND_DIMENSIONS}
        before = bond.calculate_bond_strength(base)
        after = bond.calculate_bond_strength({**base, dimension: 9})
        assert after >= before


# ---------------------------------------------------------------------------
# 3. Interpretation
# ---------------------------------------------------------------------------


class TestInterpretation:
    @pytest.mark.parametrize(
        ("score", "label"),
        [
            (95, "Exceptional"),
            (90, "Exceptional"),
            (85, "Very Strong"),
            (70, "Strong"),
            (65, "Healthy"),
            (50, "Developing"),
            (45, "Needs Attention"),
            (30, "Needs Significant Work"),
            (10, "Critical Attention Required"),
        ],
    )
    def test_bands(self, score, label):
        assert bond.bond_strength_interpretation(score) == label


# ---------------------------------------------------------------------------
# 4. Assessment summaries
# ---------------------------------------------------------------------------


class TestAssessmentSummaries:
    def test_latest_scores_keeps_newest(self):
        assessments = [
            FakeAssessment("trust", 4, _T0),
            FakeAssessment("trust", 8, _T0 + timedelta(days=1)),
            FakeAssessment("communication", 6, _T0),
        ]
        assert bond.latest_scores(assessments) == {"trust": 8, "communication": 6}

    def test_latest_scores_ignores_order(self):
        assessments = [
            FakeAssessment("trust", 8, _T0 + timedelta(days=1)),
            FakeAssessment("trust", 4, _T0),
        ]
        assert bond.latest_scores(assessments) == {"trust": 8}

    def test_dimension_stats_covers_every_dimension(self):
        stats = bond.dimension_stats([FakeAssessment("trust", 7, _T0)])
        assert set(stats) == {d.id for d in bond.BOND_DIMENSIONS}
        assert stats["trust"] == {"assessed": True, "score": 7, "last_assessed": _T0}
        assert stats["communication"]["assessed"] is False
        assert stats["communication"]["score"] is None

    def test_weakest_and_strongest(self):
        scores = {"trust": 9, "communication": 3, "fun_playfulness": 5, "mutual_support": 3}
        assert bond.weakest_dimensions(scores, limit=2) == ["communication", "mutual_support"]
        assert bond.strongest_dimensions(scores, limit=1) == ["trust"]

    def test_weakest_ignores_unknown_ids(self):
        assert bond.weakest_dimensions({"astrology": 1, "trust": 5}) == ["trust"]
