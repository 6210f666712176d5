# =============================================================================
# Affiliates Service — Partners, Coupons, Referrals & Commission Payouts
# =============================================================================
#
# PARTNERS start `pending`; an admin approval makes them `active`. Only
# active partners can have coupons applied or referral links created.
#
# COUPONS: a coupon is usable while it is active, under `max_uses` and
# before `ends_at`. Applying one takes a use and, for a signed-in user,
# records an unpaid commission transaction for the partner:
#
#   percentage  discount = price * value / 100
#   fixed       discount = min(value, price)          (cents)
#   free_trial  discount = 0                          (trial handled at billing)
#   commission  = round(discount * partner.commission_rate / 100)
#
# PAYOUTS: a payment settles a set of the partner's unpaid transactions,
# which are marked `paid` and linked to it. Cancelling the payment puts
# them back to `unpaid`.
#
# REFERRALS: `/register?ref=CODE` links. Clicks and signups are counted on
# the referral row.
# =============================================================================

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from bondquest.config import settings
from bondquest.services.auth import hash_password
from bondquest.services.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from bondquest.db.models import (
        AffiliateCoupon,
        AffiliatePartner,
        AffiliatePayment,
        AffiliateReferral,
        AffiliateTransaction,
    )
    from bondquest.db.storage import DatabaseStorage

logger = logging.getLogger(__name__)

PARTNER_STATUSES = ("pending", "active", "suspended")
COUPON_TYPES = ("percentage", "fixed", "free_trial")
PAYMENT_STATUSES = ("processing", "completed", "cancelled")

DEFAULT_CURRENCY = "USD"

_REFERRAL_ALPHABET = string.ascii_uppercase + string.digits


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def coupon_rejection(coupon: AffiliateCoupon | None, now: datetime) -> str | None:
    """Why the coupon cannot be used right now, or None when it can."""
    if coupon is None:
        return "Invalid coupon code"
    if not coupon.is_active:
        return "This coupon is no longer active"
    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        return "This coupon has reached its usage limit"
    if coupon.ends_at is not None and now > coupon.ends_at:
        return "This coupon has expired"
    return None


def discount_amount(coupon: AffiliateCoupon, price: int) -> int:
    """Discount in cents for a price in cents."""
    if coupon.type == "percentage":
        return price * coupon.value // 100
    if coupon.type == "fixed":
        return min(coupon.value, price)
    return 0


def commission_amount(amount: int, commission_rate: float) -> int:
    return round(amount * commission_rate / 100)


def generate_referral_code(partner_name: str) -> str:
    """Three letters from the partner name plus six random characters."""
    prefix = "".join(c for c in partner_name.upper() if c.isalnum())[:3] or "REF"
    suffix = "".join(secrets.choice(_REFERRAL_ALPHABET) for _ in range(6))
    return f"{prefix}-{suffix}"


def referral_url(code: str) -> str:
    return f"{settings.app_url.rstrip('/')}/register?ref={code}"


def payment_reference(now: datetime) -> str:
    return f"PAY-{int(now.timestamp() * 1000)}"


# ---------------------------------------------------------------------------
# Partners
# ---------------------------------------------------------------------------


async def _get_partner(storage: DatabaseStorage, partner_id: int) -> AffiliatePartner:
    partner = await storage.get_affiliate_partner(partner_id)
    if partner is None:
        raise NotFoundError("Partner not found")
    return partner


async def create_partner(
    storage: DatabaseStorage,
    name: str,
    email: str,
    password: str,
    commission_rate: float,
    website: str | None = None,
    description: str | None = None,
    notes: str | None = None,
) -> AffiliatePartner:
    """
    Register a partner in `pending` status.

    Raises:
        ValidationError: a partner with this email already exists.
    """
    email = email.lower()
    if await storage.get_affiliate_partner_by_email(email) is not None:
        raise ValidationError("Partner with this email already exists")

    partner = await storage.create_affiliate_partner(
        name=name,
        email=email,
        password_hash=hash_password(password),
        status="pending",
        commission_rate=commission_rate,
        website=website,
        description=description,
        notes=notes,
    )
    logger.info("Affiliate partner created: id=%d, email=%s", partner.id, email)
    return partner


async def approve_partner(
    storage: DatabaseStorage,
    partner_id: int,
    now: datetime | None = None,
) -> AffiliatePartner:
    partner = await _get_partner(storage, partner_id)
    partner.status = "active"
    if partner.approved_at is None:
        partner.approved_at = now or datetime.now(UTC)
    logger.info("Affiliate partner %d approved", partner_id)
    return await storage.save(partner)


async def update_partner(
    storage: DatabaseStorage,
    partner_id: int,
    values: dict[str, Any],
) -> AffiliatePartner:
    """Apply non-null fields. Raises ValidationError for an unknown status."""
    partner = await _get_partner(storage, partner_id)
    status = values.get("status")
    if status is not None and status not in PARTNER_STATUSES:
        raise ValidationError(f"Unknown partner status: {status}")
    for field, value in values.items():
        if value is not None:
            setattr(partner, field, value)
    return await storage.save(partner)


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------


async def create_coupon(
    storage: DatabaseStorage,
    partner_id: int,
    code: str,
    type: str,
    value: int,
    description: str | None = None,
    is_active: bool = True,
    max_uses: int | None = None,
    ends_at: datetime | None = None,
) -> AffiliateCoupon:
    """
    Raises:
        NotFoundError: partner does not exist.
        ValidationError: unknown type, bad percentage or duplicate code.
    """
    await _get_partner(storage, partner_id)
    if type not in COUPON_TYPES:
        raise ValidationError(f"Unknown coupon type: {type}")
    if type == "percentage" and value > 100:
        raise ValidationError("A percentage coupon cannot exceed 100")

    code = code.strip().upper()
    if await storage.get_affiliate_coupon_by_code(code) is not None:
        raise ValidationError("Coupon code already exists")

    return await storage.create_affiliate_coupon(
        partner_id=partner_id,
        code=code,
        type=type,
        value=value,
        description=description,
        is_active=is_active,
        max_uses=max_uses,
        current_uses=0,
        ends_at=ends_at,
    )


async def set_coupon_active(
    storage: DatabaseStorage, coupon_id: int, is_active: bool,
) -> AffiliateCoupon:
    coupon = await storage.get_affiliate_coupon(coupon_id)
    if coupon is None:
        raise NotFoundError("Coupon not found")
    coupon.is_active = is_active
    return await storage.save(coupon)


async def validate_coupon(
    storage: DatabaseStorage,
    code: str,
    now: datetime | None = None,
) -> tuple[AffiliateCoupon | None, str | None]:
    """Look up a code. Returns (coupon, None) when usable, else (None, reason)."""
    coupon = await storage.get_affiliate_coupon_by_code(code.strip())
    reason = coupon_rejection(coupon, now or datetime.now(UTC))
    if reason is not None:
        return None, reason
    return coupon, None


async def apply_coupon(
    storage: DatabaseStorage,
    code: str,
    user_id: int | None = None,
    tier_id: int | None = None,
    now: datetime | None = None,
) -> tuple[AffiliateCoupon, int]:
    """
    Take one use of a coupon and return it with the discount in cents.

    The discount is worked out against the subscription tier's price when
    `tier_id` is given. A commission transaction is recorded for the
    partner when a user is known.

    Raises:
        NotFoundError: unknown code.
        ValidationError: coupon inactive, used up, expired, or its partner
            is not active.
    """
    now = now or datetime.now(UTC)
    coupon = await storage.get_affiliate_coupon_by_code(code.strip())
    if coupon is None:
        raise NotFoundError("Invalid coupon code")
    reason = coupon_rejection(coupon, now)
    if reason is not None:
        raise ValidationError(reason)

    partner = await _get_partner(storage, coupon.partner_id)
    if partner.status != "active":
        raise ValidationError("This coupon is no longer active")

    discount = 0
    if tier_id is not None:
        tier = await storage.get_subscription_tier(tier_id)
        if tier is not None:
            discount = discount_amount(coupon, tier.price)

    coupon.current_uses += 1
    await storage.save(coupon)

    if user_id is not None:
        await storage.create_affiliate_transaction(
            partner_id=partner.id,
            user_id=user_id,
            coupon_id=coupon.id,
            transaction_type="coupon_redemption",
            amount=discount,
            commission_amount=commission_amount(discount, partner.commission_rate),
            currency=DEFAULT_CURRENCY,
            status="unpaid",
        )

    logger.info(
        "Coupon %s applied (partner=%d, user=%s, discount=%d)",
        coupon.code, partner.id, user_id, discount,
    )
    return coupon, discount


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


async def create_referral(
    storage: DatabaseStorage,
    partner_id: int,
    name: str,
    referral_code: str | None = None,
) -> AffiliateReferral:
    partner = await _get_partner(storage, partner_id)
    if partner.status != "active":
        raise ValidationError("Partner account is not active")

    code = (referral_code or generate_referral_code(partner.name)).strip().upper()
    if await storage.get_affiliate_referral_by_code(code) is not None:
        raise ValidationError("Referral code already exists")

    return await storage.create_affiliate_referral(
        partner_id=partner_id,
        name=name,
        referral_code=code,
        referral_url=referral_url(code),
        click_count=0,
        conversion_count=0,
        status="active",
    )


async def record_referral_click(storage: DatabaseStorage, code: str) -> AffiliateReferral:
    referral = await storage.get_affiliate_referral_by_code(code.strip())
    if referral is None:
        raise NotFoundError("Referral not found")
    referral.click_count += 1
    return await storage.save(referral)


async def record_referral_signup(
    storage: DatabaseStorage, code: str,
) -> AffiliateReferral | None:
    """Count a registration that came through a referral link.

    Unknown or paused codes are ignored so they never block a signup.
    """
    referral = await storage.get_affiliate_referral_by_code(code.strip())
    if referral is None or referral.status != "active":
        logger.info("Ignoring referral code %r on signup", code)
        return None
    referral.conversion_count += 1
    return await storage.save(referral)


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


async def create_payment(
    storage: DatabaseStorage,
    partner_id: int,
    amount: int,
    currency: str = DEFAULT_CURRENCY,
    status: str = "processing",
    notes: str | None = None,
    transaction_ids: Sequence[int] = (),
    now: datetime | None = None,
) -> AffiliatePayment:
    """
    Record a payout and mark the listed transactions paid.

    Raises:
        NotFoundError: partner does not exist.
        ValidationError: unknown status, or a listed transaction is missing,
            belongs to another partner or is already paid.
    """
    now = now or datetime.now(UTC)
    await _get_partner(storage, partner_id)
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Unknown payment status: {status}")

    transactions = await storage.get_affiliate_transactions(transaction_ids)
    found = {t.id for t in transactions}
    missing = [i for i in transaction_ids if i not in found]
    if missing:
        raise ValidationError(f"Unknown transactions: {missing}")
    for transaction in transactions:
        if transaction.partner_id != partner_id or transaction.status != "unpaid":
            raise ValidationError(f"Transaction {transaction.id} cannot be paid by this payment")

    payment = await storage.create_affiliate_payment(
        partner_id=partner_id,
        amount=amount,
        currency=currency.upper(),
        status=status,
        reference=payment_reference(now),
        notes=notes,
        payment_date=now if status == "completed" else None,
    )
    for transaction in transactions:
        _mark_paid(transaction, payment.id, now)
        await storage.save(transaction)

    logger.info(
        "Affiliate payment %s: partner=%d, amount=%d %s, transactions=%d",
        payment.reference, partner_id, amount, payment.currency, len(transactions),
    )
    return payment


def _mark_paid(transaction: AffiliateTransaction, payment_id: int, now: datetime) -> None:
    transaction.status = "paid"
    transaction.payment_id = payment_id
    transaction.paid_at = now


async def update_payment_status(
    storage: DatabaseStorage,
    payment_id: int,
    status: str,
    now: datetime | None = None,
) -> AffiliatePayment:
    """Set a payout status. Cancelling releases its transactions back to unpaid."""
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Unknown payment status: {status}")
    payment = await storage.get_affiliate_payment(payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    payment.status = status
    if status == "completed" and payment.payment_date is None:
        payment.payment_date = now or datetime.now(UTC)
    if status == "cancelled":
        for transaction in await storage.list_payment_transactions(payment_id):
            transaction.status = "unpaid"
            transaction.payment_id = None
            transaction.paid_at = None
            await storage.save(transaction)
    return await storage.save(payment)
