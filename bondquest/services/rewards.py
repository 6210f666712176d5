# =============================================================================
# Rewards Service — Awarding, Fulfilment Lifecycle & Maintenance
# =============================================================================
#
# STATE MACHINE (CoupleRewardStatus):
#
#   action    allowed from          → to
#   -------   -------------------   ---------
#   claim     awarded               → claimed
#   ship      claimed               → shipped
#   deliver   shipped               → delivered
#   redeem    claimed               → redeemed   (non-shipping rewards only)
#   expire    awarded | claimed     → expired
#   cancel    awarded | claimed     → canceled   (restocks the reward)
#
# Anything else raises RewardTransitionError (409). Notification and viewing
# are tracked with flags and timestamps and never change the status.
#
# DESIGN DECISION: `transition()` is the only place that writes `status`.
# Every route and the Celery worker go through it, so the table above is
# the complete list of legal moves.
#
# Claiming or redeeming an overdue row expires it and raises
# RewardExpiredError (400); the couple routes commit the expiry before
# responding.
#
# The maintenance helpers (`expire_due`, `reminder_candidates`) take plain
# row lists and a clock. The worker feeds them from a sync session, the
# tests feed them hand-built objects.
# =============================================================================

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from bondquest.config import settings
from bondquest.db.models import CoupleRewardStatus
from bondquest.services.errors import ConflictError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from bondquest.db.models import CoupleReward, Reward
    from bondquest.db.storage import DatabaseStorage

logger = logging.getLogger(__name__)

REDEMPTION_CODE_LENGTH = 8
_CODE_ALPHABET = string.ascii_uppercase + string.digits

S = CoupleRewardStatus

_TRANSITIONS: dict[str, tuple[frozenset[CoupleRewardStatus], CoupleRewardStatus]] = {
    "claim": (frozenset({S.AWARDED}), S.CLAIMED),
    "ship": (frozenset({S.CLAIMED}), S.SHIPPED),
    "deliver": (frozenset({S.SHIPPED}), S.DELIVERED),
    "redeem": (frozenset({S.CLAIMED}), S.REDEEMED),
    "expire": (frozenset({S.AWARDED, S.CLAIMED}), S.EXPIRED),
    "cancel": (frozenset({S.AWARDED, S.CLAIMED}), S.CANCELED),
}

_TIMESTAMP_FIELDS = {
    "claim": "claimed_at",
    "ship": "shipped_at",
    "deliver": "delivered_at",
    "redeem": "redeemed_at",
    "cancel": "canceled_at",
}

# Statuses a redemption code can no longer be used from.
FINISHED_STATUSES = frozenset({
    S.SHIPPED, S.DELIVERED, S.REDEEMED, S.EXPIRED, S.CANCELED,
})


class RewardTransitionError(ConflictError):
    """Raised when an action is not allowed from the reward's current status."""

    def __init__(self, action: str, current: CoupleRewardStatus) -> None:
        super().__init__(
            f"Cannot {action} a reward that is {CoupleRewardStatus(current).value}"
        )
        self.action = action
        self.current = current


class RewardExpiredError(ValidationError):
    """Raised when a claim or redemption arrives after `expires_at`."""

    def __init__(self) -> None:
        super().__init__("This reward has expired")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(UTC)


def generate_redemption_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(REDEMPTION_CODE_LENGTH))


def redemption_url(code: str) -> str:
    return f"{settings.app_url.rstrip('/')}/rewards/redeem/{code}"


def transition(
    couple_reward: CoupleReward,
    action: str,
    now: datetime | None = None,
) -> CoupleReward:
    """
    Apply a lifecycle action in place.

    Raises:
        RewardTransitionError: `action` is not allowed from the current status.
        ValueError: unknown action name.
    """
    if action not in _TRANSITIONS:
        raise ValueError(f"Unknown reward action: {action}")

    allowed, target = _TRANSITIONS[action]
    if couple_reward.status not in allowed:
        raise RewardTransitionError(action, couple_reward.status)

    couple_reward.status = target
    field = _TIMESTAMP_FIELDS.get(action)
    if field:
        setattr(couple_reward, field, now or _utcnow())
    return couple_reward


def is_expired(couple_reward: CoupleReward, now: datetime) -> bool:
    return couple_reward.expires_at is not None and now > couple_reward.expires_at


def eligible_rewards(
    rewards: Iterable[Reward],
    country: str | None = None,
    now: datetime | None = None,
) -> list[Reward]:
    """
    Catalogue entries a couple can currently win.

    A reward is eligible when it is active, in stock, inside its
    availability window and, if location-restricted, lists `country`.
    """
    now = now or _utcnow()
    wanted = country.strip().lower() if country else None

    eligible = []
    for reward in rewards:
        if not reward.active or reward.quantity <= 0:
            continue
        if reward.available_from and now < reward.available_from:
            continue
        if reward.available_to and now > reward.available_to:
            continue
        if reward.location_restricted:
            locations = {str(loc).strip().lower() for loc in reward.eligible_locations or []}
            if wanted is None or wanted not in locations:
                continue
        eligible.append(reward)
    return eligible


def expire_due(rows: Iterable[CoupleReward], now: datetime) -> list[CoupleReward]:
    """Expire every awarded/claimed row whose expiry has passed."""
    expired = []
    allowed, _ = _TRANSITIONS["expire"]
    for row in rows:
        if row.status in allowed and is_expired(row, now):
            transition(row, "expire", now)
            expired.append(row)
    return expired


def reminder_candidates(
    rows: Iterable[CoupleReward],
    now: datetime,
    window_days: int | None = None,
    max_reminders: int | None = None,
) -> list[CoupleReward]:
    """Unclaimed rows expiring within the window that are under the reminder cap."""
    window = timedelta(
        days=settings.reward_reminder_window_days if window_days is None else window_days
    )
    cap = settings.reward_max_reminders if max_reminders is None else max_reminders

    return [
        row
        for row in rows
        if row.status == S.AWARDED
        and row.expires_at is not None
        and now < row.expires_at < now + window
        and (row.reminders_sent_count or 0) < cap
    ]


# ---------------------------------------------------------------------------
# Storage-backed operations
# ---------------------------------------------------------------------------


async def _get_couple_reward(storage: DatabaseStorage, couple_reward_id: int) -> CoupleReward:
    couple_reward = await storage.get_couple_reward(couple_reward_id)
    if couple_reward is None:
        raise NotFoundError("Couple reward not found")
    return couple_reward


async def _reject_if_expired(
    storage: DatabaseStorage,
    couple_reward: CoupleReward,
    now: datetime,
) -> None:
    """Mark an overdue row expired ahead of the maintenance task, then refuse."""
    if not is_expired(couple_reward, now):
        return
    if couple_reward.status in _TRANSITIONS["expire"][0]:
        transition(couple_reward, "expire", now)
        await storage.save(couple_reward)
    raise RewardExpiredError()


async def award_reward(
    storage: DatabaseStorage,
    couple_id: int,
    reward_id: int,
    competition_id: int | None = None,
    now: datetime | None = None,
) -> CoupleReward:
    """
    Award a catalogue reward to a couple and take one unit of stock.

    Raises:
        NotFoundError: reward or couple does not exist.
        ValidationError: reward inactive or out of stock.
    """
    now = now or _utcnow()

    reward = await storage.get_reward(reward_id)
    if reward is None:
        raise NotFoundError("Reward not found")
    if await storage.get_couple(couple_id) is None:
        raise NotFoundError("Couple not found")
    if not reward.active:
        raise ValidationError("Reward is not active")
    if reward.quantity <= 0:
        raise ValidationError("Reward is out of stock")

    days = reward.redemption_period_days or settings.reward_default_redemption_days
    code = generate_redemption_code()

    couple_reward = await storage.create_couple_reward(
        couple_id=couple_id,
        reward_id=reward.id,
        competition_id=competition_id,
        status=S.AWARDED,
        redemption_code=code,
        redemption_url=redemption_url(code),
        notification_sent=False,
        expires_at=now + timedelta(days=days),
    )
    reward.quantity -= 1
    await storage.save(reward)

    logger.info(
        "Reward %d awarded to couple %d (couple_reward=%d, competition=%s)",
        reward.id, couple_id, couple_reward.id, competition_id,
    )
    return couple_reward


async def claim_reward(
    storage: DatabaseStorage,
    couple_reward_id: int,
    shipping_address: Mapping[str, Any] | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> CoupleReward:
    """
    Claim an awarded reward. Shipping rewards require an address.

    Raises:
        RewardExpiredError: the reward is past `expires_at`; the row is
            left marked expired in the session.
    """
    now = now or _utcnow()
    couple_reward = await _get_couple_reward(storage, couple_reward_id)
    await _reject_if_expired(storage, couple_reward, now)
    reward = await storage.get_reward(couple_reward.reward_id)
    if reward is None:
        raise NotFoundError("Reward not found")

    if reward.requires_shipping and not shipping_address:
        raise ValidationError("A shipping address is required for this reward")

    transition(couple_reward, "claim", now)
    if reward.requires_shipping:
        couple_reward.shipping_address = dict(shipping_address)
    if notes:
        couple_reward.winner_notes = notes
    return await storage.save(couple_reward)


async def ship_reward(
    storage: DatabaseStorage,
    couple_reward_id: int,
    tracking_number: str | None = None,
    admin_notes: str | None = None,
    now: datetime | None = None,
) -> CoupleReward:
    couple_reward = await _get_couple_reward(storage, couple_reward_id)
    transition(couple_reward, "ship", now)
    if tracking_number:
        couple_reward.tracking_number = tracking_number
    if admin_notes:
        couple_reward.admin_notes = admin_notes
    return await storage.save(couple_reward)


async def deliver_reward(
    storage: DatabaseStorage,
    couple_reward_id: int,
    now: datetime | None = None,
) -> CoupleReward:
    couple_reward = await _get_couple_reward(storage, couple_reward_id)
    transition(couple_reward, "deliver", now)
    return await storage.save(couple_reward)


async def redeem_reward(
    storage: DatabaseStorage,
    couple_reward_id: int,
    now: datetime | None = None,
) -> CoupleReward:
    """Redeem a claimed digital/experience reward."""
    now = now or _utcnow()
    couple_reward = await _get_couple_reward(storage, couple_reward_id)
    await _reject_if_expired(storage, couple_reward, now)
    reward = await storage.get_reward(couple_reward.reward_id)
    if reward is not None and reward.requires_shipping:
        raise ValidationError("Rewards that require shipping are delivered, not redeemed")

    transition(couple_reward, "redeem", now)
    return await storage.save(couple_reward)


async def cancel_reward(
    storage: DatabaseStorage,
    couple_reward_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> CoupleReward:
    """Cancel an award and put the unit back in stock."""
    couple_reward = await _get_couple_reward(storage, couple_reward_id)
    transition(couple_reward, "cancel", now)

    if reason:
        note = f"Canceled: {reason}"
        couple_reward.admin_notes = (
            f"{couple_reward.admin_notes}\n{note}" if couple_reward.admin_notes else note
        )

    reward = await storage.get_reward(couple_reward.reward_id)
    if reward is not None:
        reward.quantity += 1
        await storage.save(reward)

    logger.info("Couple reward %d canceled (%s)", couple_reward.id, reason or "no reason")
    return await storage.save(couple_reward)


async def mark_viewed(
    storage: DatabaseStorage,
    couple_reward_id: int,
    now: datetime | None = None,
) -> CoupleReward:
    """Set `viewed_at` the first time the couple opens the reward."""
    couple_reward = await _get_couple_reward(storage, couple_reward_id)
    if couple_reward.viewed_at is None:
        couple_reward.viewed_at = now or _utcnow()
        couple_reward = await storage.save(couple_reward)
    return couple_reward


async def validate_redemption_code(
    storage: DatabaseStorage,
    code: str,
    now: datetime | None = None,
) -> CoupleReward | None:
    """
    Look up a redemption code.

    Returns the couple reward when the code is usable, otherwise None.
    A code found past its expiry is marked expired on the way out.
    """
    now = now or _utcnow()
    couple_reward = await storage.get_couple_reward_by_code(code.strip())
    if couple_reward is None:
        return None

    if is_expired(couple_reward, now):
        if couple_reward.status in _TRANSITIONS["expire"][0]:
            transition(couple_reward, "expire", now)
            await storage.save(couple_reward)
        return None

    if couple_reward.status in FINISHED_STATUSES:
        return None
    return couple_reward
