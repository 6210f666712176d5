# =============================================================================
# Unit Tests — Competitions
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from bondquest.db.models import CompetitionStatus
from bondquest.services import competitions
from bondquest.services.errors import ConflictError, NotFoundError, ValidationError


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


_NOW = datetime(2025, 6, 15, tzinfo=UTC)


@dataclass
class FakeCompetition:
    id: int = 1
    status: CompetitionStatus = CompetitionStatus.ACTIVE
    start_date: datetime = _NOW - timedelta(days=5)
    end_date: datetime = _NOW + timedelta(days=5)
    max_participants: int | None = None
    participant_count: int = 0


@dataclass
class FakeEntry:
    couple_id: int
    score: int
    rank: int | None = None


@dataclass
class FakeLink:
    reward_id: int
    rank_required: int


def _storage(competition=None) -> AsyncMock:
    storage = AsyncMock()
    storage.save.side_effect = lambda obj: obj
    storage.get_competition.return_value = competition
    storage.create_competition_entry.side_effect = lambda **values: FakeEntry(
        couple_id=values["couple_id"], score=values["score"],
    )
    return storage


class TestRankEntries:
    def test_ties_share_rank_and_next_rank_skips(self):
        ranked = competitions.rank_entries([
            FakeEntry(3, 70), FakeEntry(1, 90), FakeEntry(2, 90), FakeEntry(4, 10),
        ])
        assert [e.score for e in ranked] == [90, 90, 70, 10]
        assert [e.rank for e in ranked] == [1, 1, 3, 4]

    def test_empty(self):
        assert competitions.rank_entries([]) == []

    def test_competition_ranks_leaves_entries_untouched(self):
        entries = [FakeEntry(1, 40, rank=9), FakeEntry(2, 80, rank=9)]
        pairs = competitions.competition_ranks(entries)
        assert [(e.couple_id, rank) for e, rank in pairs] == [(2, 1), (1, 2)]
        assert [e.rank for e in entries] == [9, 9]


class TestLeaderboard:
    def test_ranks_without_writing_rows(self):
        storage = _storage(FakeCompetition())
        entries = [FakeEntry(1, 30), FakeEntry(2, 60), FakeEntry(3, 60)]
        storage.list_competition_entries.return_value = entries

        pairs = _run(competitions.leaderboard(storage, 1))

        assert [(e.couple_id, rank) for e, rank in pairs] == [(2, 1), (3, 1), (1, 3)]
        assert all(e.rank is None for e in entries)
        storage.save.assert_not_awaited()

    def test_unknown_competition(self):
        with pytest.raises(NotFoundError):
            _run(competitions.leaderboard(_storage(None), 1))


class TestIsRunning:
    def test_active_inside_window(self):
        assert competitions.is_running(FakeCompetition(), _NOW)

    def test_draft_is_not_running(self):
        assert not competitions.is_running(FakeCompetition(status=CompetitionStatus.DRAFT), _NOW)

    def test_outside_window(self):
        assert not competitions.is_running(FakeCompetition(), _NOW + timedelta(days=30))


class TestEnterCompetition:
    def test_enters_and_counts_participant(self):
        competition = FakeCompetition()
        storage = _storage(competition)
        storage.get_competition_entry.return_value = None

        entry = _run(competitions.enter_competition(storage, 1, couple_id=9, now=_NOW))

        assert entry.couple_id == 9 and entry.score == 0
        assert competition.participant_count == 1

    def test_unknown_competition(self):
        with pytest.raises(NotFoundError):
            _run(competitions.enter_competition(_storage(None), 1, 9, _NOW))

    def test_inactive_competition(self):
        storage = _storage(FakeCompetition(status=CompetitionStatus.COMPLETED))
        with pytest.raises(ValidationError):
            _run(competitions.enter_competition(storage, 1, 9, _NOW))

    def test_full_competition(self):
        storage = _storage(FakeCompetition(max_participants=2, participant_count=2))
        with pytest.raises(ValidationError) as exc_info:
            _run(competitions.enter_competition(storage, 1, 9, _NOW))
        assert "full" in exc_info.value.message

    def test_duplicate_entry(self):
        storage = _storage(FakeCompetition())
        storage.get_competition_entry.return_value = FakeEntry(9, 0)
        with pytest.raises(ConflictError):
            _run(competitions.enter_competition(storage, 1, 9, _NOW))


class TestAddSessionPoints:
    def test_credits_every_running_entry(self):
        storage = _storage()
        entries = [FakeEntry(1, 10), FakeEntry(1, 0)]
        storage.list_active_entries_for_couple.return_value = entries

        _run(competitions.add_session_points(storage, 1, 25, _NOW))

        assert [e.score for e in entries] == [35, 25]
        storage.list_active_entries_for_couple.assert_awaited_once_with(1, _NOW)

    def test_zero_points_skips_lookup(self):
        storage = _storage()
        assert _run(competitions.add_session_points(storage, 1, 0)) == []
        storage.list_active_entries_for_couple.assert_not_awaited()


class TestFinalizeCompetition:
    def test_awards_rank_rewards(self):
        competition = FakeCompetition()
        storage = _storage(competition)
        storage.list_competition_entries.return_value = [
            FakeEntry(1, 90), FakeEntry(2, 90), FakeEntry(3, 50),
        ]
        storage.list_competition_rewards.return_value = [
            FakeLink(reward_id=100, rank_required=1),
            FakeLink(reward_id=200, rank_required=3),
            FakeLink(reward_id=300, rank_required=2),
        ]
        award = AsyncMock(side_effect=lambda storage, **kw: kw)

        with patch("bondquest.services.competitions.rewards.award_reward", award):
            awarded = _run(competitions.finalize_competition(storage, 1, _NOW))

        assert competition.status == CompetitionStatus.COMPLETED
        assert [(a["couple_id"], a["reward_id"]) for a in awarded] == [
            (1, 100), (2, 100), (3, 200),
        ]
        assert all(a["competition_id"] == 1 for a in awarded)

    def test_out_of_stock_winner_is_skipped(self):
        storage = _storage(FakeCompetition())
        storage.list_competition_entries.return_value = [FakeEntry(1, 90), FakeEntry(2, 90)]
        storage.list_competition_rewards.return_value = [FakeLink(reward_id=100, rank_required=1)]
        award = AsyncMock(side_effect=[ValidationError("Reward is out of stock"), {"couple_id": 2}])

        with patch("bondquest.services.competitions.rewards.award_reward", award):
            awarded = _run(competitions.finalize_competition(storage, 1, _NOW))

        assert awarded == [{"couple_id": 2}]

    def test_already_completed(self):
        storage = _storage(FakeCompetition(status=CompetitionStatus.COMPLETED))
        with pytest.raises(ConflictError):
            _run(competitions.finalize_competition(storage, 1))

    def test_unknown_competition(self):
        with pytest.raises(NotFoundError):
            _run(competitions.finalize_competition(_storage(None), 1))
