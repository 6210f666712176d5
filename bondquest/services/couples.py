# =============================================================================
# Couples Service — Partner Linking, XP & Activity Timeline
# =============================================================================
#
# PARTNER LINKING RULES:
#   1. The requesting user must exist                      → 404
#   2. The requesting user must not already be in a couple → 400
#   3. The partner code must belong to a user              → 404
#   4. The partner must not already be in a couple         → 400
#   5. A user cannot link with themselves                  → 400
#
# A new couple starts at bond strength 50, level 1, 0 XP.
#
# XP: every award recomputes the level (xp // 1000 + 1) and unlocks one
# achievement per level crossed.
# =============================================================================

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bondquest.services import scoring
from bondquest.services.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from bondquest.db.models import Activity, Couple
    from bondquest.db.storage import DatabaseStorage

logger = logging.getLogger(__name__)


async def link_partner(
    storage: DatabaseStorage,
    user_id: int,
    partner_code: str,
) -> Couple:
    """Create a couple from a user and the owner of `partner_code`."""
    user = await storage.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")

    if await storage.get_couple_by_user(user.id) is not None:
        raise ValidationError("You are already linked with a partner")

    partner = await storage.get_user_by_partner_code(partner_code.strip())
    if partner is None:
        raise NotFoundError("Invalid partner code")

    if partner.id == user.id:
        raise ValidationError("You cannot link with yourself")

    if await storage.get_couple_by_user(partner.id) is not None:
        raise ValidationError("This partner is already linked with someone else")

    couple = await storage.create_couple(
        user_id_1=user.id,
        user_id_2=partner.id,
        bond_strength=scoring.DEFAULT_BOND_STRENGTH,
        level=1,
        xp=0,
    )
    logger.info(
        "Couple %d linked: users %d and %d", couple.id, user.id, partner.id,
    )
    return couple


async def award_xp(storage: DatabaseStorage, couple: Couple, points: int) -> Couple:
    """Add XP, recompute level and unlock level-up achievements."""
    if points <= 0:
        return couple

    old_level = couple.level
    couple.xp = couple.xp + points
    couple.level = scoring.level_for_xp(couple.xp)

    for payload in scoring.level_up_achievements(old_level, couple.level):
        await storage.create_achievement(couple_id=couple.id, **payload)

    if couple.level > old_level:
        logger.info(
            "Couple %d levelled up: %d → %d (xp=%d)",
            couple.id, old_level, couple.level, couple.xp,
        )
    return await storage.save(couple)


async def record_activity(
    storage: DatabaseStorage,
    couple_id: int,
    activity_type: str,
    description: str,
    points: int = 0,
    reference_id: int | None = None,
) -> Activity:
    return await storage.create_activity(
        couple_id=couple_id,
        type=activity_type,
        description=description,
        points=points,
        reference_id=reference_id,
    )


async def award_activity(
    storage: DatabaseStorage,
    couple: Couple,
    activity_type: str,
    description: str,
    points: int,
    reference_id: int | None = None,
) -> Activity:
    """Log an activity and credit its points to the couple."""
    activity = await record_activity(
        storage, couple.id, activity_type, description, points, reference_id,
    )
    await award_xp(storage, couple, points)
    return activity
