# =============================================================================
# Affiliate API — Partners, Coupons, Referrals, Commission & Payouts
# =============================================================================
#
# Partner, coupon, referral, transaction and payment management is
# admin-only. Three routes face end users:
#
#   POST /affiliate/validate-coupon          any signed-in user, read-only
#   POST /affiliate/apply-coupon             signed-in user, takes a use and
#                                            records the partner's commission
#   POST /affiliate/referrals/{code}/click   public, counts a link click
#
# Signups through a referral link are counted by POST /auth/register when
# the body carries `referral_code`.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from bondquest.api.deps import get_current_user, get_storage, http_error, require_admin
from bondquest.db.models import User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import (
    AffiliateCouponCreateRequest,
    AffiliateCouponStatusRequest,
    AffiliatePartnerCreateRequest,
    AffiliatePartnerUpdateRequest,
    AffiliatePaymentCreateRequest,
    AffiliatePaymentStatusRequest,
    AffiliateReferralCreateRequest,
    ApplyCouponRequest,
    CouponCodeRequest,
)
from bondquest.models.responses import (
    AffiliateCouponResponse,
    AffiliatePartnerResponse,
    AffiliatePaymentResponse,
    AffiliateReferralResponse,
    AffiliateTransactionResponse,
    CouponApplyResponse,
    CouponDiscount,
    CouponValidationResponse,
    MessageResponse,
)
from bondquest.services import affiliates
from bondquest.services.errors import ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/affiliate", tags=["Affiliates"])


async def _require_partner(storage: DatabaseStorage, partner_id: int) -> None:
    if await storage.get_affiliate_partner(partner_id) is None:
        raise HTTPException(status_code=404, detail="Partner not found")


# ---------------------------------------------------------------------------
# Partners (admin)
# ---------------------------------------------------------------------------


@router.get("/partners", response_model=list[AffiliatePartnerResponse])
async def list_partners(
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AffiliatePartnerResponse]:
    partners = await storage.list_affiliate_partners()
    return [AffiliatePartnerResponse.model_validate(p) for p in partners]


@router.post(
    "/partners",
    response_model=AffiliatePartnerResponse,
    status_code=201,
    summary="Create a partner (starts pending)",
)
async def create_partner(
    request: AffiliatePartnerCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliatePartnerResponse:
    try:
        partner = await affiliates.create_partner(storage, **request.model_dump())
    except ServiceError as e:
        raise http_error(e) from e
    return AffiliatePartnerResponse.model_validate(partner)


@router.get("/partners/{partner_id}", response_model=AffiliatePartnerResponse)
async def get_partner(
    partner_id: int,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliatePartnerResponse:
    partner = await storage.get_affiliate_partner(partner_id)
    if partner is None:
        raise HTTPException(status_code=404, detail="Partner not found")
    return AffiliatePartnerResponse.model_validate(partner)


@router.patch("/partners/{partner_id}", response_model=AffiliatePartnerResponse)
async def update_partner(
    partner_id: int,
    request: AffiliatePartnerUpdateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliatePartnerResponse:
    try:
        partner = await affiliates.update_partner(
            storage, partner_id, request.model_dump(exclude_unset=True),
        )
    except ServiceError as e:
        raise http_error(e) from e
    return AffiliatePartnerResponse.model_validate(partner)


@router.post("/partners/{partner_id}/approve", response_model=AffiliatePartnerResponse)
async def approve_partner(
    partner_id: int,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliatePartnerResponse:
    try:
        partner = await affiliates.approve_partner(storage, partner_id)
    except ServiceError as e:
        raise http_error(e) from e
    logger.info("Partner %d approved by admin %d", partner_id, admin.id)
    return AffiliatePartnerResponse.model_validate(partner)


@router.get(
    "/partners/{partner_id}/referrals",
    response_model=list[AffiliateReferralResponse],
)
async def list_referrals(
    partner_id: int,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AffiliateReferralResponse]:
    await _require_partner(storage, partner_id)
    referrals = await storage.list_affiliate_referrals(partner_id)
    return [AffiliateReferralResponse.model_validate(r) for r in referrals]


@router.post(
    "/partners/{partner_id}/referrals",
    response_model=AffiliateReferralResponse,
    status_code=201,
    summary="Create a referral link for an active partner",
    description="A code is generated from the partner's name when none is given.",
)
async def create_referral(
    partner_id: int,
    request: AffiliateReferralCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliateReferralResponse:
    try:
        referral = await affiliates.create_referral(
            storage, partner_id, request.name, request.referral_code,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return AffiliateReferralResponse.model_validate(referral)


# ---------------------------------------------------------------------------
# Coupons (admin)
# ---------------------------------------------------------------------------


@router.get("/coupons", response_model=list[AffiliateCouponResponse])
async def list_coupons(
    partner_id: int | None = Query(default=None),
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AffiliateCouponResponse]:
    coupons = await storage.list_affiliate_coupons(partner_id)
    return [AffiliateCouponResponse.model_validate(c) for c in coupons]


@router.post("/coupons", response_model=AffiliateCouponResponse, status_code=201)
async def create_coupon(
    request: AffiliateCouponCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliateCouponResponse:
    try:
        coupon = await affiliates.create_coupon(storage, **request.model_dump())
    except ServiceError as e:
        raise http_error(e) from e
    logger.info("Coupon %s created for partner %d", coupon.code, coupon.partner_id)
    return AffiliateCouponResponse.model_validate(coupon)


@router.patch("/coupons/{coupon_id}", response_model=AffiliateCouponResponse)
async def set_coupon_status(
    coupon_id: int,
    request: AffiliateCouponStatusRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliateCouponResponse:
    try:
        coupon = await affiliates.set_coupon_active(storage, coupon_id, request.is_active)
    except ServiceError as e:
        raise http_error(e) from e
    return AffiliateCouponResponse.model_validate(coupon)


# ---------------------------------------------------------------------------
# Commission & payouts (admin)
# ---------------------------------------------------------------------------


@router.get(
    "/transactions",
    response_model=list[AffiliateTransactionResponse],
    summary="A partner's commission transactions, optionally by status",
)
async def list_transactions(
    partner_id: int = Query(...),
    status: str | None = Query(default=None, pattern="^(unpaid|paid)$"),
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AffiliateTransactionResponse]:
    await _require_partner(storage, partner_id)
    rows = await storage.list_affiliate_transactions(partner_id, status=status)
    return [AffiliateTransactionResponse.model_validate(t) for t in rows]


@router.get("/payments", response_model=list[AffiliatePaymentResponse])
async def list_payments(
    partner_id: int = Query(...),
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[AffiliatePaymentResponse]:
    await _require_partner(storage, partner_id)
    payments = await storage.list_affiliate_payments(partner_id)
    return [AffiliatePaymentResponse.model_validate(p) for p in payments]


@router.post(
    "/payments",
    response_model=AffiliatePaymentResponse,
    status_code=201,
    summary="Record a payout and settle the listed transactions",
)
async def create_payment(
    request: AffiliatePaymentCreateRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliatePaymentResponse:
    try:
        payment = await affiliates.create_payment(
            storage,
            partner_id=request.partner_id,
            amount=request.amount,
            currency=request.currency,
            status=request.status,
            notes=request.notes,
            transaction_ids=request.transactions,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return AffiliatePaymentResponse.model_validate(payment)


@router.patch("/payments/{payment_id}/status", response_model=AffiliatePaymentResponse)
async def update_payment_status(
    payment_id: int,
    request: AffiliatePaymentStatusRequest,
    admin: User = Depends(require_admin),
    storage: DatabaseStorage = Depends(get_storage),
) -> AffiliatePaymentResponse:
    try:
        payment = await affiliates.update_payment_status(storage, payment_id, request.status)
    except ServiceError as e:
        raise http_error(e) from e
    return AffiliatePaymentResponse.model_validate(payment)


# ---------------------------------------------------------------------------
# User-facing
# ---------------------------------------------------------------------------


@router.post(
    "/validate-coupon",
    response_model=CouponValidationResponse,
    summary="Check a coupon code without using it",
)
async def validate_coupon(
    request: CouponCodeRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CouponValidationResponse:
    coupon, reason = await affiliates.validate_coupon(storage, request.code)
    if coupon is None:
        return CouponValidationResponse(valid=False, message=reason)
    return CouponValidationResponse(
        valid=True,
        discount=CouponDiscount(type=coupon.type, value=coupon.value),
    )


@router.post(
    "/apply-coupon",
    response_model=CouponApplyResponse,
    summary="Use a coupon and credit its partner",
)
async def apply_coupon(
    request: ApplyCouponRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> CouponApplyResponse:
    try:
        coupon, discount = await affiliates.apply_coupon(
            storage, request.code, user_id=user.id, tier_id=request.tier_id,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return CouponApplyResponse(
        discount=CouponDiscount(type=coupon.type, value=coupon.value, discount_amount=discount),
    )


@router.post(
    "/referrals/{code}/click",
    response_model=MessageResponse,
    summary="Count a click on a referral link",
)
async def record_click(
    code: str,
    storage: DatabaseStorage = Depends(get_storage),
) -> MessageResponse:
    try:
        await affiliates.record_referral_click(storage, code)
    except ServiceError as e:
        raise http_error(e) from e
    return MessageResponse(message="Click recorded")
