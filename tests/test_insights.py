# =============================================================================
# Unit Tests — Bond Insights
# =============================================================================
#
# Test groups:
#   1. Template helpers (persona routing, tiers, titles, ranges)
#   2. build_bond_insight
#   3. generate_bond_insights with and without an LLM
#   4. Manual insights and completion XP
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from bondquest.services import insights
from bondquest.services.companions import render_scenario_prompt
from bondquest.services.errors import NotFoundError, ValidationError
from bondquest.services.llm import LLMResponse


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


_NOW = datetime(2025, 6, 1, tzinfo=UTC)


@dataclass
class FakeAssessment:
    dimension_id: str
    score: int
    created_at: datetime = _NOW


@dataclass
class FakeCouple:
    id: int = 1
    xp: int = 0
    level: int = 1


@dataclass
class FakeInsight:
    id: int = 5
    couple_id: int = 1
    title: str = "Strengthening Trust"
    completed: bool = False
    completed_at: datetime | None = None


class FakeLLM:
    """Records prompts and returns a canned reply (or raises)."""

    def __init__(self, reply: str = "Personal guidance.", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    async def complete(self, messages, system=None, temperature=None, max_tokens=None):
        self.calls.append({"messages": messages, "system": system})
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply, model="fake", input_tokens=1, output_tokens=1)


def _storage() -> AsyncMock:
    storage = AsyncMock()
    storage.save.side_effect = lambda obj: obj
    storage.create_bond_insight.side_effect = lambda **values: values
    return storage


# ---------------------------------------------------------------------------
# 1. Template helpers
# ---------------------------------------------------------------------------


class TestTemplateHelpers:
    @pytest.mark.parametrize(
        ("dimension", "companion"),
        [
            ("communication", "venus"),
            ("trust", "venus"),
            ("emotional_intimacy", "venus"),
            ("conflict_resolution", "venus"),
            ("physical_intimacy", "casanova"),
            ("fun_playfulness", "casanova"),
            ("shared_values", "aurora"),
            ("mutual_support", "aurora"),
        ],
    )
    def test_persona_routing(self, dimension, companion):
        assert insights.best_companion_for_dimension(dimension) == companion

    def test_high_scores_use_maintenance_scenario(self):
        assert insights.scenario_for_dimension("communication", 8) == (
            "aurora", "relationshipMaintenance",
        )

    def test_low_scores_use_dimension_scenario(self):
        assert insights.scenario_for_dimension("communication", 3) == (
            "venus", "activeListening",
        )

    def test_action_item_tiers(self):
        low = insights.action_items_for_dimension("communication", 2)
        medium = insights.action_items_for_dimension("communication", 5)
        high = insights.action_items_for_dimension("communication", 9)
        assert len(low) == len(medium) == len(high) == 3
        assert low != medium != high

    def test_unknown_dimension_gets_default_items(self):
        items = insights.action_items_for_dimension("shared_values", 2)
        assert items[0].startswith("Set aside 10 minutes")

    @pytest.mark.parametrize(
        ("score", "difficulty", "target"),
        [(2, "easy", (0, 3)), (5, "medium", (4, 6)), (8, "challenging", (7, 10))],
    )
    def test_difficulty_and_target_range(self, score, difficulty, target):
        assert insights.insight_difficulty(score) == difficulty
        assert insights.target_score_range(score) == target

    def test_titles(self):
        assert insights.insight_title("Trust", 2) == "Building a Foundation of Trust"
        assert insights.insight_title("Trust", 5) == "Strengthening Trust in Your Relationship"
        assert insights.insight_title("Trust", 9) == "Maintaining Excellence in Trust"

    def test_prompt_variables_fill_every_template(self):
        for dimension in ("communication", "trust", "shared_values", "fun_playfulness"):
            for score in (2, 5, 8):
                companion_id, scenario = insights.scenario_for_dimension(dimension, score)
                prompt = render_scenario_prompt(
                    companion_id, scenario, insights.prompt_variables(dimension, score),
                )
                assert "{{" not in prompt


# ---------------------------------------------------------------------------
# 2. build_bond_insight
# ---------------------------------------------------------------------------


class TestBuildBondInsight:
    def test_values(self):
        values = insights.build_bond_insight(1, "trust", 3, now=_NOW)
        assert values["couple_id"] == 1
        assert values["title"] == "Building a Foundation of Trust"
        assert "3/10" in values["content"]
        assert values["difficulty"] == "easy"
        assert (values["target_score_min"], values["target_score_max"]) == (0, 3)
        assert values["companion_id"] == "venus"
        assert values["completed"] is False and values["viewed"] is False
        assert values["expires_at"] == _NOW + timedelta(days=14)

    def test_invalid_dimension(self):
        with pytest.raises(ValidationError):
            insights.build_bond_insight(1, "astrology", 3)


# ---------------------------------------------------------------------------
# 3. generate_bond_insights
# ---------------------------------------------------------------------------


class TestGenerateBondInsights:
    def _storage_with_scores(self) -> AsyncMock:
        storage = _storage()
        storage.get_couple.return_value = FakeCouple()
        storage.list_bond_assessments.return_value = [
            FakeAssessment("trust", 2),
            FakeAssessment("communication", 5),
            FakeAssessment("fun_playfulness", 9),
        ]
        return storage

    def test_missing_couple(self):
        storage = _storage()
        storage.get_couple.return_value = None
        with pytest.raises(NotFoundError):
            _run(insights.generate_bond_insights(storage, 1))

    def test_no_assessments(self):
        storage = _storage()
        storage.get_couple.return_value = FakeCouple()
        storage.list_bond_assessments.return_value = []
        with pytest.raises(ValidationError):
            _run(insights.generate_bond_insights(storage, 1))

    def test_weakest_dimensions_without_llm(self):
        storage = self._storage_with_scores()
        created = _run(insights.generate_bond_insights(storage, 1, limit=2, now=_NOW))
        assert [c["dimension_id"] for c in created] == ["trust", "communication"]
        assert created[0]["content"].startswith("This insight focuses on Trust")

    def test_llm_content_replaces_template(self):
        storage = self._storage_with_scores()
        llm = FakeLLM(reply="  Try a weekly trust walk.  ")
        created = _run(insights.generate_bond_insights(storage, 1, llm=llm, limit=1))
        assert created[0]["content"] == "Try a weekly trust walk."
        assert "Venus" in llm.calls[0]["system"]

    def test_llm_failure_keeps_template(self):
        storage = self._storage_with_scores()
        llm = FakeLLM(error=RuntimeError("boom"))
        created = _run(insights.generate_bond_insights(storage, 1, llm=llm, limit=1))
        assert created[0]["content"].startswith("This insight focuses on Trust")


# ---------------------------------------------------------------------------
# 4. Manual insights & completion
# ---------------------------------------------------------------------------


class TestInsightLifecycle:
    def test_manual_values(self):
        values = insights.manual_insight_values(
            {"couple_id": 1, "dimension_id": "trust", "target_score_min": 4, "target_score_max": 6},
            now=_NOW,
        )
        assert values["completed"] is False
        assert values["expires_at"] == _NOW + timedelta(days=30)

    def test_manual_invalid_dimension(self):
        with pytest.raises(ValidationError):
            insights.manual_insight_values({"dimension_id": "astrology"})

    def test_manual_inverted_range(self):
        with pytest.raises(ValidationError):
            insights.manual_insight_values(
                {"dimension_id": "trust", "target_score_min": 8, "target_score_max": 2},
            )

    def test_first_completion_awards_xp(self):
        storage = _storage()
        couple = FakeCouple()
        storage.get_couple.return_value = couple
        insight = FakeInsight()

        with patch(
            "bondquest.services.insights.couples.award_activity", new_callable=AsyncMock,
        ) as award:
            result = _run(insights.set_insight_completed(storage, insight, True, now=_NOW))

        assert result.completed is True
        assert result.completed_at == _NOW
        award.assert_awaited_once()
        assert award.await_args.kwargs["points"] == 15
        assert award.await_args.kwargs["activity_type"] == "bond_insight"

    def test_recompletion_awards_nothing(self):
        storage = _storage()
        insight = FakeInsight(completed=True, completed_at=_NOW)
        with patch(
            "bondquest.services.insights.couples.award_activity", new_callable=AsyncMock,
        ) as award:
            _run(insights.set_insight_completed(storage, insight, True))
        award.assert_not_awaited()

    def test_toggling_back_on_awards_once(self):
        storage = _storage()
        storage.get_couple.return_value = FakeCouple()
        insight = FakeInsight()

        with patch(
            "bondquest.services.insights.couples.award_activity", new_callable=AsyncMock,
        ) as award:
            _run(insights.set_insight_completed(storage, insight, True, now=_NOW))
            _run(insights.set_insight_completed(storage, insight, False))
            _run(insights.set_insight_completed(
                storage, insight, True, now=_NOW + timedelta(days=1),
            ))

        assert award.await_count == 1
        assert insight.completed is True
        assert insight.completed_at == _NOW
