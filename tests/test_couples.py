# =============================================================================
# Unit Tests — Partner Linking, XP & Activities
# =============================================================================
#
# Storage is an AsyncMock; users and couples are dataclass stand-ins.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest

from bondquest.services import couples
from bondquest.services.errors import NotFoundError, ValidationError


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@dataclass
class FakeUser:
    id: int
    partner_code: str = "CODE"


@dataclass
class FakeCouple:
    id: int = 1
    user_id_1: int = 1
    user_id_2: int = 2
    bond_strength: int = 50
    level: int = 1
    xp: int = 0


def _storage() -> AsyncMock:
    storage = AsyncMock()
    storage.save.side_effect = lambda obj: obj
    storage.create_couple.side_effect = lambda **values: FakeCouple(id=10, **values)
    return storage


# ---------------------------------------------------------------------------
# Partner linking
# ---------------------------------------------------------------------------


class TestLinkPartner:
    def test_links_two_free_users(self):
        storage = _storage()
        storage.get_user.return_value = FakeUser(id=1)
        storage.get_user_by_partner_code.return_value = FakeUser(id=2)
        storage.get_couple_by_user.return_value = None

        couple = _run(couples.link_partner(storage, 1, " ABC123 "))

        assert (couple.user_id_1, couple.user_id_2) == (1, 2)
        assert couple.bond_strength == 50
        assert couple.level == 1
        assert couple.xp == 0
        storage.get_user_by_partner_code.assert_awaited_once_with("ABC123")

    def test_unknown_user_raises_404(self):
        storage = _storage()
        storage.get_user.return_value = None
        with pytest.raises(NotFoundError):
            _run(couples.link_partner(storage, 1, "ABC"))

    def test_already_coupled_user_rejected(self):
        storage = _storage()
        storage.get_user.return_value = FakeUser(id=1)
        storage.get_couple_by_user.return_value = FakeCouple()
        with pytest.raises(ValidationError) as exc_info:
            _run(couples.link_partner(storage, 1, "ABC"))
        assert exc_info.value.status_code == 400

    def test_invalid_code_raises_404(self):
        storage = _storage()
        storage.get_user.return_value = FakeUser(id=1)
        storage.get_couple_by_user.return_value = None
        storage.get_user_by_partner_code.return_value = None
        with pytest.raises(NotFoundError) as exc_info:
            _run(couples.link_partner(storage, 1, "NOPE"))
        assert exc_info.value.status_code == 404

    def test_self_link_rejected(self):
        storage = _storage()
        me = FakeUser(id=1)
        storage.get_user.return_value = me
        storage.get_couple_by_user.return_value = None
        storage.get_user_by_partner_code.return_value = me
        with pytest.raises(ValidationError) as exc_info:
            _run(couples.link_partner(storage, 1, me.partner_code))
        assert "yourself" in exc_info.value.message

    def test_partner_already_coupled_rejected(self):
        storage = _storage()
        storage.get_user.return_value = FakeUser(id=1)
        storage.get_user_by_partner_code.return_value = FakeUser(id=2)
        storage.get_couple_by_user.side_effect = [None, FakeCouple(user_id_1=2, user_id_2=3)]
        with pytest.raises(ValidationError) as exc_info:
            _run(couples.link_partner(storage, 1, "ABC"))
        assert "already linked" in exc_info.value.message
        storage.create_couple.assert_not_awaited()


# ---------------------------------------------------------------------------
# XP & activities
# ---------------------------------------------------------------------------


class TestAwardXp:
    def test_adds_xp_without_level_up(self):
        storage = _storage()
        couple = _run(couples.award_xp(storage, FakeCouple(xp=100), 50))
        assert couple.xp == 150
        assert couple.level == 1
        storage.create_achievement.assert_not_awaited()

    def test_level_up_creates_achievement(self):
        storage = _storage()
        couple = _run(couples.award_xp(storage, FakeCouple(xp=990), 15))
        assert couple.level == 2
        storage.create_achievement.assert_awaited_once()
        assert storage.create_achievement.await_args.kwargs["title"] == "Level 2 Reached"

    def test_multi_level_jump_creates_one_achievement_per_level(self):
        storage = _storage()
        couple = _run(couples.award_xp(storage, FakeCouple(xp=0), 2500))
        assert couple.level == 3
        assert storage.create_achievement.await_count == 2

    def test_non_positive_points_are_ignored(self):
        storage = _storage()
        couple = FakeCouple(xp=10)
        assert _run(couples.award_xp(storage, couple, 0)) is couple
        assert couple.xp == 10
        storage.save.assert_not_awaited()


class TestAwardActivity:
    def test_logs_activity_and_credits_points(self):
        storage = _storage()
        couple = FakeCouple(xp=0)

        _run(couples.award_activity(
            storage, couple, "check_in", "Daily check-in", points=5, reference_id=7,
        ))

        storage.create_activity.assert_awaited_once_with(
            couple_id=1,
            type="check_in",
            description="Daily check-in",
            points=5,
            reference_id=7,
        )
        assert couple.xp == 5
