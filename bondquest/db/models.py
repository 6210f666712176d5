# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW (core tables):
#
# ┌──────────────┐      ┌────────────────────┐      ┌──────────────────┐
# │  users       │      │  couples           │      │  quiz_sessions   │
# ├──────────────┤      ├────────────────────┤      ├──────────────────┤
# │ id (PK)      │◀─────│ user_id_1 (FK)     │      │ couple_id (FK)   │
# │ username     │◀─────│ user_id_2 (FK)     │─1:N─▶│ quiz_id (FK)     │
# │ email        │      │ bond_strength 0-100│      │ user1_answers    │
# │ password_hash│      │ level, xp          │      │ user2_answers    │
# │ partner_code │      └────────────────────┘      │ match_percentage │
# └──────────────┘               │                  └──────────────────┘
#                                ├──1:N──▶ activities, achievements, chats
#                                ├──1:N──▶ bond_assessments, bond_insights
#                                ├──1:N──▶ competition_entries
#                                └──1:N──▶ couple_rewards ──N:1──▶ rewards
#
# affiliate_partners ──1:N──▶ affiliate_coupons, affiliate_referrals,
#                            affiliate_transactions, affiliate_payments
#
# DESIGN DECISIONS:
#
# 1. A user belongs to at most one couple. The constraint is enforced in
#    the partner-linking service (both members are checked before insert).
#
# 2. JSONB for free-form payloads (quiz answers, question options,
#    shipping addresses, AI-generated competition challenges). These are
#    read and written whole, never queried by key.
#
# 3. String enums for lifecycles (`CoupleRewardStatus`,
#    `CompetitionStatus`) so rows stay human-readable in psql.
#
# 4. `metadata_` attribute names avoid SQLAlchemy's reserved `.metadata`.
# =============================================================================

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for every BondQuest table."""

    pass


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


# ---------------------------------------------------------------------------
# Users & Auth
# ---------------------------------------------------------------------------


class User(Base):
    """
    A BondQuest account.

    `partner_code` is the short code a user shares with their partner to
    link accounts. It is generated at registration and never changes.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    love_language: Mapped[str | None] = mapped_column(String(100), nullable=True)
    relationship_status: Mapped[str | None] = mapped_column(String(100), nullable=True)
    anniversary: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    partner_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    # "user" or "admin"
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")

    created_at: Mapped[datetime] = _created_at()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


class AuthToken(Base):
    """
    Bearer token issued at login.

    Only the SHA-256 hash is stored; the raw token is returned once.
    """

    __tablename__ = "auth_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    token_prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = _created_at()

    def __repr__(self) -> str:
        return f"<AuthToken(id={self.id}, user_id={self.user_id}, prefix='{self.token_prefix}')>"


# ---------------------------------------------------------------------------
# Couples & Progress
# ---------------------------------------------------------------------------


class Couple(Base):
    """
    Two linked users sharing XP, level and a bond-strength score.

    bond_strength is kept within 0..100 by every code path that writes it.
    level is always derived from xp (`xp // 1000 + 1`).
    """

    __tablename__ = "couples"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id_1: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False,
    )
    user_id_2: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False,
    )
    bond_strength: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = _created_at()

    def member_ids(self) -> tuple[int, int]:
        return (self.user_id_1, self.user_id_2)

    def __repr__(self) -> str:
        return (
            f"<Couple(id={self.id}, users=({self.user_id_1}, {self.user_id_2}), "
            f"level={self.level})>"
        )


class DailyCheckIn(Base):
    __tablename__ = "daily_check_ins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    mood: Mapped[str] = mapped_column(String(50), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[datetime] = _created_at()


class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    couple_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("couples.id", ondelete="CASCADE"), nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    unlocked_at: Mapped[datetime] = _created_at()


class Activity(Base):
    """
    Timeline entry for a couple (quiz, check_in, bond_assessment, ...).

    `reference_id` points at the row that produced the activity; its table
    depends on `type`.
    """

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    couple_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("couples.id", ondelete="CASCADE"), nullable=False,
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = _created_at()


Index("ix_activities_couple_created", Activity.couple_id, Activity.created_at)


# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------


class Quiz(Base):
    __tablename__ = "quizzes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = _created_at()

    questions: Mapped[list["Question"]] = relationship(
        back_populates="quiz",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Question.id",
    )

    def __repr__(self) -> str:
        return f"<Quiz(id={self.id}, title='{self.title}', category='{self.category}')>"


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quiz_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False,
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    quiz: Mapped["Quiz"] = relationship(back_populates="questions")


class QuizSession(Base):
    """
    Both partners' answers to one quiz.

    Answers are JSON maps keyed by question id (as strings). The match
    percentage and points are computed once, when the session completes.
    """

    __tablename__ = "quiz_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    couple_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("couples.id", ondelete="CASCADE"), nullable=False,
    )
    quiz_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False,
    )
    user1_answers: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    user2_answers: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    match_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )


class Chat(Base):
    __tablename__ = "chats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    couple_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("couples.id", ondelete="CASCADE"), nullable=False,
    )
    # casanova | venus | aurora
    assistant_type: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # "user" or "assistant"
    sender: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = _created_at()


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class SubscriptionTier(Base):
    __tablename__ = "subscription_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # cents
    billing_period: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    features: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = _created_at()


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    tier_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscription_tiers.id"), nullable=False,
    )
    # active | canceled
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    start_date: Mapped[datetime] = _created_at()
    end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


class CoupleRewardStatus(str, enum.Enum):
    """
    Lifecycle of a reward awarded to a couple.

    State machine:
        AWARDED → CLAIMED → SHIPPED → DELIVERED
                          → REDEEMED            (no shipping required)
        AWARDED | CLAIMED → EXPIRED             (past expires_at)
        AWARDED | CLAIMED → CANCELED            (admin, restocks quantity)
    """

    AWARDED = "awarded"
    CLAIMED = "claimed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    CANCELED = "canceled"


class Reward(Base):
    """
    Catalogue item that can be awarded to couples.

    `quantity` is the remaining stock; awarding decrements it and canceling
    an award puts it back.
    """

    __tablename__ = "rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # digital | physical | experience
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # cents
    code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    available_from: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    available_to: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    required_tier: Mapped[str | None] = mapped_column(String(100), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    location_restricted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    eligible_locations: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    redemption_period_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requires_shipping: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Reward(id={self.id}, name='{self.name}', quantity={self.quantity})>"


class CoupleReward(Base):
    """A reward awarded to a couple, with its fulfilment history."""

    __tablename__ = "couple_rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    couple_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("couples.id", ondelete="CASCADE"), nullable=False,
    )
    reward_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rewards.id"), nullable=False,
    )
    competition_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("competitions.id"), nullable=True,
    )
    status: Mapped[CoupleRewardStatus] = mapped_column(
        Enum(CoupleRewardStatus),
        nullable=False,
        default=CoupleRewardStatus.AWARDED,
    )
    redemption_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    redemption_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    shipping_address: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    winner_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    reminders_sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reminder_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    awarded_at: Mapped[datetime] = _created_at()

    def __repr__(self) -> str:
        return (
            f"<CoupleReward(id={self.id}, couple_id={self.couple_id}, "
            f"reward_id={self.reward_id}, status={self.status})>"
        )


Index("ix_couple_rewards_status_expires", CoupleReward.status, CoupleReward.expires_at)


# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------


class CompetitionStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"


class Competition(Base):
    __tablename__ = "competitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[CompetitionStatus] = mapped_column(
        Enum(CompetitionStatus),
        nullable=False,
        default=CompetitionStatus.DRAFT,
    )
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="quiz")
    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rules: Mapped[str | None] = mapped_column(Text, nullable=True)
    scoring_methods: Mapped[str | None] = mapped_column(Text, nullable=True)
    challenges: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    rewards_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Competition(id={self.id}, title='{self.title}', status={self.status})>"


class CompetitionReward(Base):
    """Links a catalogue reward to the rank that wins it in a competition."""

    __tablename__ = "competition_rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False,
    )
    reward_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rewards.id", ondelete="CASCADE"), nullable=False,
    )
    rank_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class CompetitionEntry(Base):
    __tablename__ = "competition_entries"
    __table_args__ = (
        UniqueConstraint("competition_id", "couple_id", name="uq_competition_entry"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False,
    )
    couple_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("couples.id", ondelete="CASCADE"), nullable=False,
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ---------------------------------------------------------------------------
# Bond Analytics
# ---------------------------------------------------------------------------


class BondQuestion(Base):
    __tablename__ = "bond_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dimension_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    # "scale" | "multiple_choice"
    type: Mapped[str] = mapped_column(String(30), nullable=False, default="scale")
    options: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = _created_at()


class BondAssessment(Base):
    """One partner's self-reported 1-10 score for one bond dimension."""

    __tablename__ = "bond_assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    couple_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("couples.id", ondelete="CASCADE"), nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    dimension_id: Mapped[str] = mapped_column(String(50), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    answers: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = _created_at()


Index(
    "ix_bond_assessments_couple_created",
    BondAssessment.couple_id,
    BondAssessment.created_at,
)


class BondInsight(Base):
    """Coaching insight for one dimension, with action items and an expiry."""

    __tablename__ = "bond_insights"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    couple_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("couples.id", ondelete="CASCADE"), nullable=False,
    )
    dimension_id: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    action_items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    target_score_min: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_score_max: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    # easy | medium | challenging
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    companion_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set on the first completion only; XP is awarded once per insight
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    viewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = _created_at()


# ---------------------------------------------------------------------------
# Onboarding Conversations
# ---------------------------------------------------------------------------


class ConversationSession(Base):
    __tablename__ = "conversation_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    session_type: Mapped[str] = mapped_column(String(50), nullable=False, default="onboarding")
    title: Mapped[str | None] = mapped_column(String(300), nullable=True)
    # active | completed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONB, nullable=True, default=dict,
    )
    started_at: Mapped[datetime] = _created_at()


class ConversationMessage(Base):
    __tablename__ = "conversation_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("conversation_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    # "user" | "ai" | "system"
    sender: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(30), nullable=False, default="text")
    created_at: Mapped[datetime] = _created_at()


Index(
    "ix_conversation_messages_session_created",
    ConversationMessage.session_id,
    ConversationMessage.created_at,
)


class ProfileInsight(Base):
    """A fact about a user distilled from an onboarding conversation."""

    __tablename__ = "profile_insights"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    insight_type: Mapped[str] = mapped_column(String(50), nullable=False)
    insight: Mapped[str] = mapped_column(Text, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="conversation")
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONB, nullable=True, default=dict,
    )
    created_at: Mapped[datetime] = _created_at()


# ---------------------------------------------------------------------------
# Affiliates
# ---------------------------------------------------------------------------
#
# Money columns are integer cents, like SubscriptionTier.price. A coupon's
# `value` is a percentage for "percentage" coupons and cents for "fixed".


class AffiliatePartner(Base):
    """
    A marketing partner that earns commission on coupon use.

    Partners are created `pending` and only earn once an admin approves
    them (`active`). `suspended` stops new referrals and coupon use.
    """

    __tablename__ = "affiliate_partners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    # pending | active | suspended
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    commission_rate: Mapped[float] = mapped_column(Float, nullable=False, default=10.0)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = _created_at()

    def __repr__(self) -> str:
        return f"<AffiliatePartner(id={self.id}, name='{self.name}', status={self.status})>"


class AffiliateCoupon(Base):
    __tablename__ = "affiliate_coupons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliate_partners.id", ondelete="CASCADE"), nullable=False,
    )
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    # percentage | fixed | free_trial
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()


class AffiliateReferral(Base):
    """A tracked signup link (`/register?ref=CODE`) owned by a partner."""

    __tablename__ = "affiliate_referrals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliate_partners.id", ondelete="CASCADE"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    referral_code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    referral_url: Mapped[str] = mapped_column(String(500), nullable=False)
    click_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conversion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # active | paused
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = _created_at()


class AffiliatePayment(Base):
    """A payout to a partner, settling one or more unpaid transactions."""

    __tablename__ = "affiliate_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliate_partners.id", ondelete="CASCADE"), nullable=False,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # cents
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    # processing | completed | cancelled
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")
    reference: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = _created_at()


class AffiliateTransaction(Base):
    """Commission earned by a partner, e.g. when a user applies their coupon."""

    __tablename__ = "affiliate_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliate_partners.id", ondelete="CASCADE"), nullable=False,
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    coupon_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("affiliate_coupons.id", ondelete="SET NULL"), nullable=True,
    )
    payment_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("affiliate_payments.id", ondelete="SET NULL"), nullable=True,
    )
    # coupon_redemption
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # cents
    commission_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    # unpaid | paid
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="unpaid")
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()
