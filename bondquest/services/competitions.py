# =============================================================================
# Competitions Service — Entries, Leaderboards & Finalisation
# =============================================================================
#
# RANKING: standard competition ranking. Entries are ordered by score
# descending; equal scores share a rank and the next rank skips
# (scores 90, 90, 70 → ranks 1, 1, 3). The leaderboard ranks on read; only
# finalisation writes `rank` to the entry rows.
#
# SCORING: quiz-session points are added to every entry the couple holds in
# a competition that is active and running at completion time.
#
# FINALISATION: ranks all entries, marks the competition completed and
# awards each linked CompetitionReward to every couple holding its
# `rank_required`. A reward that runs out of stock mid-finalisation is
# logged and skipped so the remaining winners still get theirs.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from bondquest.db.models import CompetitionStatus
from bondquest.services import rewards
from bondquest.services.errors import ConflictError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from bondquest.db.models import Competition, CompetitionEntry, CoupleReward
    from bondquest.db.storage import DatabaseStorage

logger = logging.getLogger(__name__)


def competition_ranks(
    entries: Sequence[CompetitionEntry],
) -> list[tuple[CompetitionEntry, int]]:
    """
    Pair each entry with its rank, best score first. Ties share a rank and
    the next rank skips (1, 1, 3). The entries are not modified.
    """
    ordered = sorted(entries, key=lambda e: e.score, reverse=True)
    ranked = []
    previous_score = None
    rank = 0
    for position, entry in enumerate(ordered, start=1):
        if entry.score != previous_score:
            rank = position
            previous_score = entry.score
        ranked.append((entry, rank))
    return ranked


def rank_entries(entries: Sequence[CompetitionEntry]) -> list[CompetitionEntry]:
    """Sort by score descending and write `rank` onto each entry."""
    ordered = []
    for entry, rank in competition_ranks(entries):
        entry.rank = rank
        ordered.append(entry)
    return ordered


def is_running(competition: Competition, now: datetime) -> bool:
    return (
        competition.status == CompetitionStatus.ACTIVE
        and competition.start_date <= now <= competition.end_date
    )


async def enter_competition(
    storage: DatabaseStorage,
    competition_id: int,
    couple_id: int,
    now: datetime | None = None,
) -> CompetitionEntry:
    """
    Register a couple for a competition.

    Raises:
        NotFoundError: competition does not exist.
        ValidationError: competition not active or already full.
        ConflictError: the couple is already entered.
    """
    now = now or datetime.now(UTC)

    competition = await storage.get_competition(competition_id)
    if competition is None:
        raise NotFoundError("Competition not found")
    if not is_running(competition, now):
        raise ValidationError("Competition is not active")
    if (
        competition.max_participants
        and competition.participant_count >= competition.max_participants
    ):
        raise ValidationError("Competition is full")
    if await storage.get_competition_entry(competition_id, couple_id) is not None:
        raise ConflictError("Couple has already entered this competition")

    entry = await storage.create_competition_entry(
        competition_id=competition_id, couple_id=couple_id, score=0,
    )
    competition.participant_count += 1
    await storage.save(competition)

    logger.info("Couple %d entered competition %d", couple_id, competition_id)
    return entry


async def add_session_points(
    storage: DatabaseStorage,
    couple_id: int,
    points: int,
    now: datetime | None = None,
) -> list[CompetitionEntry]:
    """Credit quiz points to the couple's entries in running competitions."""
    if points <= 0:
        return []

    entries = await storage.list_active_entries_for_couple(
        couple_id, now or datetime.now(UTC),
    )
    for entry in entries:
        entry.score += points
        await storage.save(entry)
    if entries:
        logger.debug(
            "Added %d points to %d competition entries for couple %d",
            points, len(entries), couple_id,
        )
    return entries


async def leaderboard(
    storage: DatabaseStorage, competition_id: int,
) -> list[tuple[CompetitionEntry, int]]:
    """Live standings as (entry, rank) pairs; stored ranks are left alone."""
    if await storage.get_competition(competition_id) is None:
        raise NotFoundError("Competition not found")
    entries = await storage.list_competition_entries(competition_id)
    return competition_ranks(entries)


async def finalize_competition(
    storage: DatabaseStorage,
    competition_id: int,
    now: datetime | None = None,
) -> list[CoupleReward]:
    """
    Rank entries, complete the competition and award rank-based rewards.

    Returns the couple rewards created.

    Raises:
        NotFoundError: competition does not exist.
        ConflictError: competition already completed.
    """
    competition = await storage.get_competition(competition_id)
    if competition is None:
        raise NotFoundError("Competition not found")
    if competition.status == CompetitionStatus.COMPLETED:
        raise ConflictError("Competition is already completed")

    ranked = rank_entries(await storage.list_competition_entries(competition_id))
    for entry in ranked:
        await storage.save(entry)

    competition.status = CompetitionStatus.COMPLETED
    await storage.save(competition)

    awarded: list[CoupleReward] = []
    for link in await storage.list_competition_rewards(competition_id):
        winners = [e for e in ranked if e.rank == link.rank_required]
        for entry in winners:
            try:
                couple_reward = await rewards.award_reward(
                    storage,
                    couple_id=entry.couple_id,
                    reward_id=link.reward_id,
                    competition_id=competition_id,
                    now=now,
                )
            except (NotFoundError, ValidationError) as e:
                logger.warning(
                    "Could not award reward %d to couple %d for competition %d: %s",
                    link.reward_id, entry.couple_id, competition_id, e.message,
                )
                continue
            awarded.append(couple_reward)

    logger.info(
        "Competition %d finalized: %d entries, %d rewards awarded",
        competition_id, len(ranked), len(awarded),
    )
    return awarded
