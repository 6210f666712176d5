# =============================================================================
# Subscriptions API — Tiers & the Current User's Subscription
# =============================================================================
#
# Subscriptions are records only: payment processing is handled outside
# this service. Admin tier management lives in bondquest/api/admin.py.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException

from bondquest.api.deps import get_current_user, get_storage
from bondquest.db.models import User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.responses import (
    MySubscriptionResponse,
    SubscriptionTierResponse,
    UserSubscriptionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.get(
    "/tiers",
    response_model=list[SubscriptionTierResponse],
    summary="Active subscription tiers, cheapest first",
)
async def list_tiers(
    storage: DatabaseStorage = Depends(get_storage),
) -> list[SubscriptionTierResponse]:
    tiers = await storage.list_subscription_tiers(active_only=True)
    return [SubscriptionTierResponse.model_validate(t) for t in tiers]


@router.get(
    "/me",
    response_model=MySubscriptionResponse,
    summary="The current user's active subscription, if any",
)
async def get_my_subscription(
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> MySubscriptionResponse:
    subscription = await storage.get_active_subscription(user.id)
    if subscription is None:
        return MySubscriptionResponse()

    tier = await storage.get_subscription_tier(subscription.tier_id)
    return MySubscriptionResponse(
        subscription=UserSubscriptionResponse.model_validate(subscription),
        tier=SubscriptionTierResponse.model_validate(tier) if tier else None,
    )


@router.post(
    "/me/cancel",
    response_model=UserSubscriptionResponse,
    summary="Cancel the current user's subscription",
)
async def cancel_my_subscription(
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> UserSubscriptionResponse:
    subscription = await storage.get_active_subscription(user.id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="No active subscription")

    subscription.status = "canceled"
    subscription.end_date = datetime.now(UTC)
    subscription = await storage.save(subscription)
    logger.info("Subscription %d canceled by user %d", subscription.id, user.id)
    return UserSubscriptionResponse.model_validate(subscription)
