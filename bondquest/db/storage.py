# =============================================================================
# Storage Repository — The Only Door to the Database
# =============================================================================
#
# DatabaseStorage wraps one AsyncSession and exposes every read and write
# the API and services need. Route handlers never build queries; they call
# storage methods, which keeps SQL in one module and lets tests swap the
# whole persistence layer for an AsyncMock.
#
# DESIGN DECISION: flush, never commit. The request-scoped session commits
# once when the handler returns (see db/engine.py). Flushing after each
# insert gives us primary keys immediately while keeping multi-step
# operations (award XP + log activity + unlock achievement) atomic.
#
# DESIGN DECISION: refresh after flush. Columns with server defaults
# (created_at, updated_at) are expired by the flush; refreshing loads them
# eagerly so response models can read them without lazy I/O, which async
# sessions forbid.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bondquest.db.models import (
    Achievement,
    Activity,
    AffiliateCoupon,
    AffiliatePartner,
    AffiliatePayment,
    AffiliateReferral,
    AffiliateTransaction,
    AuthToken,
    BondAssessment,
    BondInsight,
    BondQuestion,
    Chat,
    Competition,
    CompetitionEntry,
    CompetitionReward,
    CompetitionStatus,
    ConversationMessage,
    ConversationSession,
    Couple,
    CoupleReward,
    CoupleRewardStatus,
    DailyCheckIn,
    ProfileInsight,
    Question,
    Quiz,
    QuizSession,
    Reward,
    SubscriptionTier,
    User,
    UserSubscription,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseStorage:
    """Async repository over a single request-scoped session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # -----------------------------------------------------------------------
    # Generic helpers
    # -----------------------------------------------------------------------

    async def _add(self, obj: T) -> T:
        self._session.add(obj)
        await self._session.flush()
        await self._session.refresh(obj)
        return obj

    async def _all(self, stmt) -> list[Any]:
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def _one_or_none(self, stmt) -> Any | None:
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def _count(self, stmt) -> int:
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def save(self, obj: T) -> T:
        """Flush pending changes on an already-tracked object and reload it."""
        await self._session.flush()
        await self._session.refresh(obj)
        return obj

    async def delete(self, obj: Any) -> None:
        await self._session.delete(obj)
        await self._session.flush()

    async def commit(self) -> None:
        """Commit early, before handing row ids to a Celery task."""
        await self._session.commit()

    # -----------------------------------------------------------------------
    # Users & auth tokens
    # -----------------------------------------------------------------------

    async def get_user(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id)

    async def get_user_by_username(self, username: str) -> User | None:
        return await self._one_or_none(select(User).where(User.username == username))

    async def get_user_by_email(self, email: str) -> User | None:
        return await self._one_or_none(
            select(User).where(func.lower(User.email) == email.lower())
        )

    async def get_user_by_partner_code(self, partner_code: str) -> User | None:
        return await self._one_or_none(
            select(User).where(User.partner_code == partner_code.upper())
        )

    async def create_user(self, **values: Any) -> User:
        return await self._add(User(**values))

    async def list_users(self, limit: int = 50, offset: int = 0) -> list[User]:
        stmt = select(User).order_by(User.created_at.desc()).limit(limit).offset(offset)
        return await self._all(stmt)

    async def count_users(self) -> int:
        return await self._count(select(func.count(User.id)))

    async def create_auth_token(self, **values: Any) -> AuthToken:
        return await self._add(AuthToken(**values))

    async def get_auth_token_by_hash(self, token_hash: str) -> AuthToken | None:
        return await self._one_or_none(
            select(AuthToken).where(AuthToken.token_hash == token_hash)
        )

    async def delete_auth_token(self, token: AuthToken) -> None:
        await self.delete(token)

    # -----------------------------------------------------------------------
    # Couples
    # -----------------------------------------------------------------------

    async def get_couple(self, couple_id: int) -> Couple | None:
        return await self._session.get(Couple, couple_id)

    async def get_couple_by_user(self, user_id: int) -> Couple | None:
        stmt = select(Couple).where(
            or_(Couple.user_id_1 == user_id, Couple.user_id_2 == user_id)
        )
        return await self._one_or_none(stmt)

    async def create_couple(self, **values: Any) -> Couple:
        return await self._add(Couple(**values))

    async def count_couples(self) -> int:
        return await self._count(select(func.count(Couple.id)))

    # -----------------------------------------------------------------------
    # Quizzes & sessions
    # -----------------------------------------------------------------------

    async def list_quizzes(self, category: str | None = None) -> list[Quiz]:
        stmt = select(Quiz).order_by(Quiz.id)
        if category:
            stmt = stmt.where(Quiz.category == category)
        return await self._all(stmt)

    async def get_quiz(self, quiz_id: int) -> Quiz | None:
        return await self._session.get(Quiz, quiz_id)

    async def create_quiz(
        self,
        questions: Sequence[dict[str, Any]] = (),
        **values: Any,
    ) -> Quiz:
        quiz = Quiz(**values)
        quiz.questions = [Question(**q) for q in questions]
        return await self._add(quiz)

    async def create_question(self, **values: Any) -> Question:
        return await self._add(Question(**values))

    async def count_quizzes(self) -> int:
        return await self._count(select(func.count(Quiz.id)))

    async def create_quiz_session(self, **values: Any) -> QuizSession:
        return await self._add(QuizSession(**values))

    async def get_quiz_session(self, session_id: int) -> QuizSession | None:
        return await self._session.get(QuizSession, session_id)

    async def list_quiz_sessions(self, couple_id: int) -> list[QuizSession]:
        stmt = (
            select(QuizSession)
            .where(QuizSession.couple_id == couple_id)
            .order_by(QuizSession.created_at.desc())
        )
        return await self._all(stmt)

    async def list_recent_quiz_sessions(self, limit: int = 10) -> list[QuizSession]:
        stmt = select(QuizSession).order_by(QuizSession.created_at.desc()).limit(limit)
        return await self._all(stmt)

    # -----------------------------------------------------------------------
    # Check-ins, achievements, activities, chats
    # -----------------------------------------------------------------------

    async def create_daily_check_in(self, **values: Any) -> DailyCheckIn:
        return await self._add(DailyCheckIn(**values))

    async def list_daily_check_ins(self, user_id: int) -> list[DailyCheckIn]:
        stmt = (
            select(DailyCheckIn)
            .where(DailyCheckIn.user_id == user_id)
            .order_by(DailyCheckIn.date.desc())
        )
        return await self._all(stmt)

    async def create_achievement(self, **values: Any) -> Achievement:
        return await self._add(Achievement(**values))

    async def list_achievements(self, couple_id: int) -> list[Achievement]:
        stmt = (
            select(Achievement)
            .where(Achievement.couple_id == couple_id)
            .order_by(Achievement.unlocked_at.desc())
        )
        return await self._all(stmt)

    async def create_activity(self, **values: Any) -> Activity:
        return await self._add(Activity(**values))

    async def list_activities(self, couple_id: int, limit: int | None = None) -> list[Activity]:
        stmt = (
            select(Activity)
            .where(Activity.couple_id == couple_id)
            .order_by(Activity.created_at.desc(), Activity.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._all(stmt)

    async def create_chat(self, **values: Any) -> Chat:
        return await self._add(Chat(**values))

    async def list_chats(self, couple_id: int) -> list[Chat]:
        stmt = (
            select(Chat)
            .where(Chat.couple_id == couple_id)
            .order_by(Chat.created_at, Chat.id)
        )
        return await self._all(stmt)

    # -----------------------------------------------------------------------
    # Subscriptions
    # -----------------------------------------------------------------------

    async def list_subscription_tiers(self, active_only: bool = False) -> list[SubscriptionTier]:
        stmt = select(SubscriptionTier).order_by(SubscriptionTier.price)
        if active_only:
            stmt = stmt.where(SubscriptionTier.is_active.is_(True))
        return await self._all(stmt)

    async def get_subscription_tier(self, tier_id: int) -> SubscriptionTier | None:
        return await self._session.get(SubscriptionTier, tier_id)

    async def create_subscription_tier(self, **values: Any) -> SubscriptionTier:
        return await self._add(SubscriptionTier(**values))

    async def get_active_subscription(self, user_id: int) -> UserSubscription | None:
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.status == "active",
            )
            .order_by(UserSubscription.start_date.desc())
            .limit(1)
        )
        return await self._one_or_none(stmt)

    async def count_active_subscriptions(self) -> int:
        stmt = select(func.count(UserSubscription.id)).where(
            UserSubscription.status == "active"
        )
        return await self._count(stmt)

    # -----------------------------------------------------------------------
    # Rewards
    # -----------------------------------------------------------------------

    async def list_rewards(self, active_only: bool = False) -> list[Reward]:
        stmt = select(Reward).order_by(Reward.created_at.desc())
        if active_only:
            stmt = stmt.where(Reward.active.is_(True))
        return await self._all(stmt)

    async def get_reward(self, reward_id: int) -> Reward | None:
        return await self._session.get(Reward, reward_id)

    async def create_reward(self, **values: Any) -> Reward:
        return await self._add(Reward(**values))

    async def create_couple_reward(self, **values: Any) -> CoupleReward:
        return await self._add(CoupleReward(**values))

    async def get_couple_reward(self, couple_reward_id: int) -> CoupleReward | None:
        return await self._session.get(CoupleReward, couple_reward_id)

    async def get_couple_reward_by_code(self, code: str) -> CoupleReward | None:
        return await self._one_or_none(
            select(CoupleReward).where(CoupleReward.redemption_code == code.upper())
        )

    async def list_couple_rewards(
        self,
        couple_id: int | None = None,
        statuses: Iterable[CoupleRewardStatus] | None = None,
    ) -> list[CoupleReward]:
        stmt = select(CoupleReward).order_by(CoupleReward.awarded_at.desc())
        if couple_id is not None:
            stmt = stmt.where(CoupleReward.couple_id == couple_id)
        if statuses is not None:
            stmt = stmt.where(CoupleReward.status.in_(list(statuses)))
        return await self._all(stmt)

    # -----------------------------------------------------------------------
    # Competitions
    # -----------------------------------------------------------------------

    async def list_competitions(
        self, status: CompetitionStatus | None = None,
    ) -> list[Competition]:
        stmt = select(Competition).order_by(Competition.start_date.desc())
        if status is not None:
            stmt = stmt.where(Competition.status == status)
        return await self._all(stmt)

    async def get_competition(self, competition_id: int) -> Competition | None:
        return await self._session.get(Competition, competition_id)

    async def create_competition(self, **values: Any) -> Competition:
        return await self._add(Competition(**values))

    async def list_competition_rewards(self, competition_id: int) -> list[CompetitionReward]:
        stmt = (
            select(CompetitionReward)
            .where(CompetitionReward.competition_id == competition_id)
            .order_by(CompetitionReward.rank_required)
        )
        return await self._all(stmt)

    async def create_competition_reward(self, **values: Any) -> CompetitionReward:
        return await self._add(CompetitionReward(**values))

    async def get_competition_entry(
        self, competition_id: int, couple_id: int,
    ) -> CompetitionEntry | None:
        stmt = select(CompetitionEntry).where(
            CompetitionEntry.competition_id == competition_id,
            CompetitionEntry.couple_id == couple_id,
        )
        return await self._one_or_none(stmt)

    async def create_competition_entry(self, **values: Any) -> CompetitionEntry:
        return await self._add(CompetitionEntry(**values))

    async def list_competition_entries(self, competition_id: int) -> list[CompetitionEntry]:
        stmt = (
            select(CompetitionEntry)
            .where(CompetitionEntry.competition_id == competition_id)
            .order_by(CompetitionEntry.score.desc(), CompetitionEntry.created_at)
        )
        return await self._all(stmt)

    async def list_active_entries_for_couple(
        self, couple_id: int, now: datetime,
    ) -> list[CompetitionEntry]:
        """Entries in competitions that are active and running at `now`."""
        stmt = (
            select(CompetitionEntry)
            .join(Competition, Competition.id == CompetitionEntry.competition_id)
            .where(
                CompetitionEntry.couple_id == couple_id,
                Competition.status == CompetitionStatus.ACTIVE,
                Competition.start_date <= now,
                Competition.end_date >= now,
            )
        )
        return await self._all(stmt)

    # -----------------------------------------------------------------------
    # Bond analytics
    # -----------------------------------------------------------------------

    async def list_bond_questions(self, dimension_id: str | None = None) -> list[BondQuestion]:
        stmt = select(BondQuestion).order_by(BondQuestion.id)
        if dimension_id:
            stmt = stmt.where(BondQuestion.dimension_id == dimension_id)
        return await self._all(stmt)

    async def create_bond_question(self, **values: Any) -> BondQuestion:
        return await self._add(BondQuestion(**values))

    async def create_bond_assessment(self, **values: Any) -> BondAssessment:
        return await self._add(BondAssessment(**values))

    async def list_bond_assessments(self, couple_id: int) -> list[BondAssessment]:
        stmt = (
            select(BondAssessment)
            .where(BondAssessment.couple_id == couple_id)
            .order_by(BondAssessment.created_at, BondAssessment.id)
        )
        return await self._all(stmt)

    async def create_bond_insight(self, **values: Any) -> BondInsight:
        return await self._add(BondInsight(**values))

    async def get_bond_insight(self, insight_id: int) -> BondInsight | None:
        return await self._session.get(BondInsight, insight_id)

    async def list_bond_insights(self, couple_id: int) -> list[BondInsight]:
        stmt = (
            select(BondInsight)
            .where(BondInsight.couple_id == couple_id)
            .order_by(BondInsight.created_at.desc())
        )
        return await self._all(stmt)

    # -----------------------------------------------------------------------
    # Onboarding conversations
    # -----------------------------------------------------------------------

    async def create_conversation_session(self, **values: Any) -> ConversationSession:
        return await self._add(ConversationSession(**values))

    async def get_conversation_session(self, session_id: int) -> ConversationSession | None:
        return await self._session.get(ConversationSession, session_id)

    async def list_conversation_sessions(self, user_id: int) -> list[ConversationSession]:
        stmt = (
            select(ConversationSession)
            .where(ConversationSession.user_id == user_id)
            .order_by(ConversationSession.started_at.desc())
        )
        return await self._all(stmt)

    async def create_conversation_message(self, **values: Any) -> ConversationMessage:
        return await self._add(ConversationMessage(**values))

    async def list_conversation_messages(self, session_id: int) -> list[ConversationMessage]:
        stmt = (
            select(ConversationMessage)
            .where(ConversationMessage.session_id == session_id)
            .order_by(ConversationMessage.created_at, ConversationMessage.id)
        )
        return await self._all(stmt)

    async def create_profile_insight(self, **values: Any) -> ProfileInsight:
        return await self._add(ProfileInsight(**values))

    async def list_profile_insights(self, user_id: int) -> list[ProfileInsight]:
        stmt = (
            select(ProfileInsight)
            .where(ProfileInsight.user_id == user_id)
            .order_by(ProfileInsight.created_at.desc())
        )
        return await self._all(stmt)

    # -----------------------------------------------------------------------
    # Affiliates
    # -----------------------------------------------------------------------

    async def list_affiliate_partners(self) -> list[AffiliatePartner]:
        stmt = select(AffiliatePartner).order_by(AffiliatePartner.created_at.desc())
        return await self._all(stmt)

    async def get_affiliate_partner(self, partner_id: int) -> AffiliatePartner | None:
        return await self._session.get(AffiliatePartner, partner_id)

    async def get_affiliate_partner_by_email(self, email: str) -> AffiliatePartner | None:
        return await self._one_or_none(
            select(AffiliatePartner).where(func.lower(AffiliatePartner.email) == email.lower())
        )

    async def create_affiliate_partner(self, **values: Any) -> AffiliatePartner:
        return await self._add(AffiliatePartner(**values))

    async def list_affiliate_coupons(self, partner_id: int | None = None) -> list[AffiliateCoupon]:
        stmt = select(AffiliateCoupon).order_by(AffiliateCoupon.created_at.desc())
        if partner_id is not None:
            stmt = stmt.where(AffiliateCoupon.partner_id == partner_id)
        return await self._all(stmt)

    async def get_affiliate_coupon(self, coupon_id: int) -> AffiliateCoupon | None:
        return await self._session.get(AffiliateCoupon, coupon_id)

    async def get_affiliate_coupon_by_code(self, code: str) -> AffiliateCoupon | None:
        return await self._one_or_none(
            select(AffiliateCoupon).where(AffiliateCoupon.code == code.upper())
        )

    async def create_affiliate_coupon(self, **values: Any) -> AffiliateCoupon:
        return await self._add(AffiliateCoupon(**values))

    async def list_affiliate_referrals(self, partner_id: int) -> list[AffiliateReferral]:
        stmt = (
            select(AffiliateReferral)
            .where(AffiliateReferral.partner_id == partner_id)
            .order_by(AffiliateReferral.created_at.desc())
        )
        return await self._all(stmt)

    async def get_affiliate_referral_by_code(self, code: str) -> AffiliateReferral | None:
        return await self._one_or_none(
            select(AffiliateReferral).where(AffiliateReferral.referral_code == code.upper())
        )

    async def create_affiliate_referral(self, **values: Any) -> AffiliateReferral:
        return await self._add(AffiliateReferral(**values))

    async def list_affiliate_transactions(
        self, partner_id: int, status: str | None = None,
    ) -> list[AffiliateTransaction]:
        stmt = (
            select(AffiliateTransaction)
            .where(AffiliateTransaction.partner_id == partner_id)
            .order_by(AffiliateTransaction.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(AffiliateTransaction.status == status)
        return await self._all(stmt)

    async def get_affiliate_transactions(
        self, transaction_ids: Sequence[int],
    ) -> list[AffiliateTransaction]:
        if not transaction_ids:
            return []
        stmt = select(AffiliateTransaction).where(
            AffiliateTransaction.id.in_(list(transaction_ids))
        )
        return await self._all(stmt)

    async def list_payment_transactions(self, payment_id: int) -> list[AffiliateTransaction]:
        stmt = select(AffiliateTransaction).where(AffiliateTransaction.payment_id == payment_id)
        return await self._all(stmt)

    async def create_affiliate_transaction(self, **values: Any) -> AffiliateTransaction:
        return await self._add(AffiliateTransaction(**values))

    async def list_affiliate_payments(self, partner_id: int) -> list[AffiliatePayment]:
        stmt = (
            select(AffiliatePayment)
            .where(AffiliatePayment.partner_id == partner_id)
            .order_by(AffiliatePayment.created_at.desc())
        )
        return await self._all(stmt)

    async def get_affiliate_payment(self, payment_id: int) -> AffiliatePayment | None:
        return await self._session.get(AffiliatePayment, payment_id)

    async def create_affiliate_payment(self, **values: Any) -> AffiliatePayment:
        return await self._add(AffiliatePayment(**values))
