# =============================================================================
# Unit Tests — Reward Lifecycle & Maintenance
# =============================================================================
#
# Test groups:
#   1. transition() against the full status table
#   2. Catalogue eligibility
#   3. Expiry and reminder selection
#   4. Storage-backed award / claim / cancel / redemption codes
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from bondquest.db.models import CoupleRewardStatus as S
from bondquest.services import rewards
from bondquest.services.errors import NotFoundError, ValidationError
from bondquest.services.rewards import RewardTransitionError


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@dataclass
class FakeReward:
    id: int = 1
    active: bool = True
    quantity: int = 5
    requires_shipping: bool = False
    redemption_period_days: int | None = 30
    available_from: datetime | None = None
    available_to: datetime | None = None
    location_restricted: bool = False
    eligible_locations: list = field(default_factory=list)


@dataclass
class FakeCoupleReward:
    id: int = 10
    couple_id: int = 1
    reward_id: int = 1
    status: S = S.AWARDED
    expires_at: datetime | None = None
    reminders_sent_count: int = 0
    claimed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    redeemed_at: datetime | None = None
    canceled_at: datetime | None = None
    viewed_at: datetime | None = None
    shipping_address: dict | None = None
    winner_notes: str | None = None
    tracking_number: str | None = None
    admin_notes: str | None = None


def _storage() -> AsyncMock:
    storage = AsyncMock()
    storage.save.side_effect = lambda obj: obj
    storage.create_couple_reward.side_effect = lambda **values: FakeCoupleReward(
        id=42, couple_id=values["couple_id"], reward_id=values["reward_id"],
        status=values["status"], expires_at=values["expires_at"],
    )
    return storage


# ---------------------------------------------------------------------------
# 1. transition()
# ---------------------------------------------------------------------------


class TestTransition:
    @pytest.mark.parametrize(
        ("action", "start", "end", "stamp"),
        [
            ("claim", S.AWARDED, S.CLAIMED, "claimed_at"),
            ("ship", S.CLAIMED, S.SHIPPED, "shipped_at"),
            ("deliver", S.SHIPPED, S.DELIVERED, "delivered_at"),
            ("redeem", S.CLAIMED, S.REDEEMED, "redeemed_at"),
            ("cancel", S.AWARDED, S.CANCELED, "canceled_at"),
            ("cancel", S.CLAIMED, S.CANCELED, "canceled_at"),
        ],
    )
    def test_allowed_moves(self, action, start, end, stamp):
        row = FakeCoupleReward(status=start)
        rewards.transition(row, action, _NOW)
        assert row.status == end
        assert getattr(row, stamp) == _NOW

    def test_expire_from_claimed(self):
        row = FakeCoupleReward(status=S.CLAIMED)
        rewards.transition(row, "expire", _NOW)
        assert row.status == S.EXPIRED

    @pytest.mark.parametrize(
        ("action", "start"),
        [
            ("claim", S.CLAIMED),
            ("ship", S.AWARDED),
            ("deliver", S.CLAIMED),
            ("redeem", S.AWARDED),
            ("cancel", S.DELIVERED),
            ("expire", S.REDEEMED),
        ],
    )
    def test_illegal_moves_raise_409(self, action, start):
        row = FakeCoupleReward(status=start)
        with pytest.raises(RewardTransitionError) as exc_info:
            rewards.transition(row, action, _NOW)
        assert exc_info.value.status_code == 409
        assert row.status == start

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            rewards.transition(FakeCoupleReward(), "teleport")


# ---------------------------------------------------------------------------
# 2. Eligibility
# ---------------------------------------------------------------------------


class TestEligibleRewards:
    def test_filters_catalogue(self):
        ok = FakeReward(id=1)
        inactive = FakeReward(id=2, active=False)
        empty = FakeReward(id=3, quantity=0)
        future = FakeReward(id=4, available_from=_NOW + timedelta(days=1))
        past = FakeReward(id=5, available_to=_NOW - timedelta(days=1))
        result = rewards.eligible_rewards([ok, inactive, empty, future, past], now=_NOW)
        assert [r.id for r in result] == [1]

    def test_location_restriction(self):
        restricted = FakeReward(id=7, location_restricted=True, eligible_locations=["US", " ca "])
        assert rewards.eligible_rewards([restricted], "ca", _NOW) == [restricted]
        assert rewards.eligible_rewards([restricted], "UK", _NOW) == []
        assert rewards.eligible_rewards([restricted], None, _NOW) == []


# ---------------------------------------------------------------------------
# 3. Maintenance helpers
# ---------------------------------------------------------------------------


class TestMaintenance:
    def test_expire_due(self):
        overdue = FakeCoupleReward(id=1, status=S.AWARDED, expires_at=_NOW - timedelta(hours=1))
        overdue_claimed = FakeCoupleReward(id=2, status=S.CLAIMED, expires_at=_NOW - timedelta(days=2))
        shipped = FakeCoupleReward(id=3, status=S.SHIPPED, expires_at=_NOW - timedelta(days=2))
        fresh = FakeCoupleReward(id=4, status=S.AWARDED, expires_at=_NOW + timedelta(days=2))
        no_expiry = FakeCoupleReward(id=5, status=S.AWARDED)

        expired = rewards.expire_due([overdue, overdue_claimed, shipped, fresh, no_expiry], _NOW)

        assert [r.id for r in expired] == [1, 2]
        assert shipped.status == S.SHIPPED
        assert fresh.status == S.AWARDED

    def test_reminder_candidates(self):
        soon = FakeCoupleReward(id=1, expires_at=_NOW + timedelta(days=3))
        capped = FakeCoupleReward(id=2, expires_at=_NOW + timedelta(days=3), reminders_sent_count=3)
        far = FakeCoupleReward(id=3, expires_at=_NOW + timedelta(days=30))
        claimed = FakeCoupleReward(id=4, status=S.CLAIMED, expires_at=_NOW + timedelta(days=1))
        gone = FakeCoupleReward(id=5, expires_at=_NOW - timedelta(days=1))

        result = rewards.reminder_candidates(
            [soon, capped, far, claimed, gone], _NOW, window_days=7, max_reminders=3,
        )
        assert [r.id for r in result] == [1]


# ---------------------------------------------------------------------------
# 4. Storage-backed operations
# ---------------------------------------------------------------------------


class TestAwardReward:
    def test_award_takes_stock_and_sets_expiry(self):
        storage = _storage()
        reward = FakeReward(quantity=2, redemption_period_days=10)
        storage.get_reward.return_value = reward
        storage.get_couple.return_value = object()

        row = _run(rewards.award_reward(storage, couple_id=1, reward_id=1, now=_NOW))

        assert reward.quantity == 1
        assert row.status == S.AWARDED
        assert row.expires_at == _NOW + timedelta(days=10)
        values = storage.create_couple_reward.await_args.kwargs
        assert len(values["redemption_code"]) == rewards.REDEMPTION_CODE_LENGTH
        assert values["redemption_url"].endswith(f"/rewards/redeem/{values['redemption_code']}")

    def test_out_of_stock(self):
        storage = _storage()
        storage.get_reward.return_value = FakeReward(quantity=0)
        storage.get_couple.return_value = object()
        with pytest.raises(ValidationError):
            _run(rewards.award_reward(storage, 1, 1))
        storage.create_couple_reward.assert_not_awaited()

    def test_unknown_couple(self):
        storage = _storage()
        storage.get_reward.return_value = FakeReward()
        storage.get_couple.return_value = None
        with pytest.raises(NotFoundError):
            _run(rewards.award_reward(storage, 1, 1))


class TestClaimAndFulfil:
    def test_shipping_reward_requires_address(self):
        storage = _storage()
        storage.get_couple_reward.return_value = FakeCoupleReward()
        storage.get_reward.return_value = FakeReward(requires_shipping=True)
        with pytest.raises(ValidationError):
            _run(rewards.claim_reward(storage, 10))

    def test_claim_with_address(self):
        storage = _storage()
        storage.get_couple_reward.return_value = FakeCoupleReward()
        storage.get_reward.return_value = FakeReward(requires_shipping=True)
        row = _run(rewards.claim_reward(
            storage, 10, {"line1": "1 Main St"}, notes="Leave at door", now=_NOW,
        ))
        assert row.status == S.CLAIMED
        assert row.shipping_address == {"line1": "1 Main St"}
        assert row.winner_notes == "Leave at door"

    def test_shipping_reward_cannot_be_redeemed(self):
        storage = _storage()
        storage.get_couple_reward.return_value = FakeCoupleReward(status=S.CLAIMED)
        storage.get_reward.return_value = FakeReward(requires_shipping=True)
        with pytest.raises(ValidationError):
            _run(rewards.redeem_reward(storage, 10))

    def test_ship_records_tracking(self):
        storage = _storage()
        storage.get_couple_reward.return_value = FakeCoupleReward(status=S.CLAIMED)
        row = _run(rewards.ship_reward(storage, 10, tracking_number="1Z999", now=_NOW))
        assert row.status == S.SHIPPED
        assert row.tracking_number == "1Z999"

    def test_cancel_restocks_and_notes_reason(self):
        storage = _storage()
        storage.get_couple_reward.return_value = FakeCoupleReward(admin_notes="VIP")
        reward = FakeReward(quantity=0)
        storage.get_reward.return_value = reward

        row = _run(rewards.cancel_reward(storage, 10, reason="duplicate", now=_NOW))

        assert row.status == S.CANCELED
        assert row.admin_notes == "VIP\nCanceled: duplicate"
        assert reward.quantity == 1

    def test_missing_couple_reward(self):
        storage = _storage()
        storage.get_couple_reward.return_value = None
        with pytest.raises(NotFoundError):
            _run(rewards.deliver_reward(storage, 10))

    def test_mark_viewed_only_once(self):
        storage = _storage()
        first_view = _NOW - timedelta(days=1)
        storage.get_couple_reward.return_value = FakeCoupleReward(viewed_at=first_view)
        row = _run(rewards.mark_viewed(storage, 10, now=_NOW))
        assert row.viewed_at == first_view
        storage.save.assert_not_awaited()

    def test_claim_after_expiry_is_refused(self):
        storage = _storage()
        row = FakeCoupleReward(expires_at=_NOW - timedelta(days=2))
        storage.get_couple_reward.return_value = row
        storage.get_reward.return_value = FakeReward()

        with pytest.raises(rewards.RewardExpiredError) as exc_info:
            _run(rewards.claim_reward(storage, 10, now=_NOW))

        assert exc_info.value.status_code == 400
        assert row.status == S.EXPIRED
        assert row.claimed_at is None
        storage.save.assert_awaited_once_with(row)

    def test_redeem_after_expiry_is_refused(self):
        storage = _storage()
        row = FakeCoupleReward(status=S.CLAIMED, expires_at=_NOW - timedelta(hours=1))
        storage.get_couple_reward.return_value = row
        storage.get_reward.return_value = FakeReward()

        with pytest.raises(rewards.RewardExpiredError):
            _run(rewards.redeem_reward(storage, 10, now=_NOW))

        assert row.status == S.EXPIRED
        assert row.redeemed_at is None

    def test_redeem_before_expiry(self):
        storage = _storage()
        row = FakeCoupleReward(status=S.CLAIMED, expires_at=_NOW + timedelta(days=1))
        storage.get_couple_reward.return_value = row
        storage.get_reward.return_value = FakeReward()

        assert _run(rewards.redeem_reward(storage, 10, now=_NOW)).status == S.REDEEMED


class TestValidateRedemptionCode:
    def test_valid_code(self):
        storage = _storage()
        row = FakeCoupleReward(expires_at=_NOW + timedelta(days=1))
        storage.get_couple_reward_by_code.return_value = row
        assert _run(rewards.validate_redemption_code(storage, " ABCD1234 ", _NOW)) is row
        storage.get_couple_reward_by_code.assert_awaited_once_with("ABCD1234")

    def test_unknown_code(self):
        storage = _storage()
        storage.get_couple_reward_by_code.return_value = None
        assert _run(rewards.validate_redemption_code(storage, "NOPE", _NOW)) is None

    def test_expired_code_is_marked_expired(self):
        storage = _storage()
        row = FakeCoupleReward(expires_at=_NOW - timedelta(minutes=1))
        storage.get_couple_reward_by_code.return_value = row
        assert _run(rewards.validate_redemption_code(storage, "CODE", _NOW)) is None
        assert row.status == S.EXPIRED
        storage.save.assert_awaited_once_with(row)

    def test_finished_reward_is_invalid(self):
        storage = _storage()
        storage.get_couple_reward_by_code.return_value = FakeCoupleReward(status=S.REDEEMED)
        assert _run(rewards.validate_redemption_code(storage, "CODE", _NOW)) is None
