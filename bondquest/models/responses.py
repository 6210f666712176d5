# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of the data going OUT of the API. Most mirror an ORM row and are
# built with `Model.model_validate(row)` (from_attributes=True).
#
# DESIGN DECISION: UserResponse is the only way a user leaves the server.
# It has no password_hash field, so no route can leak one by accident.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bondquest.db.models import CompetitionStatus, CoupleRewardStatus


class HealthResponse(BaseModel):
    """Response for GET /health. Confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class MessageResponse(BaseModel):
    message: str


class TaskQueuedResponse(BaseModel):
    task_id: str
    status: str = "queued"


# ---------------------------------------------------------------------------
# Users, auth & couples
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    display_name: str
    avatar: str | None = None
    love_language: str | None = None
    relationship_status: str | None = None
    anniversary: datetime | None = None
    location: str | None = None
    partner_code: str
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CoupleResponse(BaseModel):
    id: int
    user_id_1: int
    user_id_2: int
    bond_strength: int
    level: int
    xp: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    """
    Response for register/login.

    `token` is the raw bearer token; it is only ever returned here.
    """

    user: UserResponse
    couple: CoupleResponse | None = None
    token: str
    expires_at: datetime | None = None


class MeResponse(BaseModel):
    user: UserResponse
    couple: CoupleResponse | None = None


class DailyCheckInResponse(BaseModel):
    id: int
    user_id: int
    mood: str
    note: str | None = None
    date: datetime

    model_config = ConfigDict(from_attributes=True)


class AchievementResponse(BaseModel):
    id: int
    couple_id: int
    title: str
    description: str
    icon: str | None = None
    unlocked_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityResponse(BaseModel):
    id: int
    couple_id: int
    type: str
    reference_id: int | None = None
    points: int
    description: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------


class QuestionResponse(BaseModel):
    id: int
    quiz_id: int
    text: str
    options: list[Any]

    model_config = ConfigDict(from_attributes=True)


class QuizResponse(BaseModel):
    id: int
    title: str
    description: str
    type: str
    category: str
    difficulty: str
    duration: int
    points: int
    image: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuizDetailResponse(QuizResponse):
    """A quiz with its questions, in creation order."""

    questions: list[QuestionResponse] = Field(default_factory=list)


class QuizSessionResponse(BaseModel):
    id: int
    couple_id: int
    quiz_id: int
    user1_answers: dict[str, Any] | None = None
    user2_answers: dict[str, Any] | None = None
    match_percentage: int | None = None
    points_earned: int
    completed: bool
    created_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class DashboardResponse(BaseModel):
    """Everything the home screen needs in one request."""

    couple: CoupleResponse
    user1: UserResponse
    user2: UserResponse
    recent_activities: list[ActivityResponse]
    quiz_sessions: list[QuizSessionResponse]
    daily_quiz: QuizResponse | None = None


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatResponse(BaseModel):
    id: int
    couple_id: int
    assistant_type: str
    message: str
    sender: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatExchangeResponse(BaseModel):
    """The stored message plus the persona's reply (None for assistant messages)."""

    message: ChatResponse
    reply: ChatResponse | None = None


# ---------------------------------------------------------------------------
# Bond analytics
# ---------------------------------------------------------------------------


class BondDimensionResponse(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    color: str
    weight: int

    model_config = ConfigDict(from_attributes=True)


class BondQuestionResponse(BaseModel):
    id: int
    dimension_id: str
    text: str
    type: str
    options: list[Any] | None = None
    weight: int

    model_config = ConfigDict(from_attributes=True)


class BondAssessmentResponse(BaseModel):
    id: int
    couple_id: int
    user_id: int
    dimension_id: str
    score: int
    answers: dict[str, Any] | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DimensionStat(BaseModel):
    assessed: bool
    score: int | None = None
    last_assessed: datetime | None = None


class CoupleAssessmentsResponse(BaseModel):
    assessments: list[BondAssessmentResponse]
    dimension_stats: dict[str, DimensionStat]


class BondStrengthResponse(BaseModel):
    couple_id: int
    bond_strength: int = Field(description="Weighted score from the latest assessments, 0-100")
    interpretation: str
    weakest_dimensions: list[str]
    strongest_dimensions: list[str]
    dimension_stats: dict[str, DimensionStat]
    couple_bond_strength: int = Field(description="Running score stored on the couple")


class BondInsightResponse(BaseModel):
    id: int
    couple_id: int
    dimension_id: str
    title: str
    content: str
    action_items: list[str]
    target_score_min: int
    target_score_max: int
    difficulty: str
    companion_id: str | None = None
    completed: bool
    completed_at: datetime | None = None
    viewed: bool
    expires_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class ConversationSessionResponse(BaseModel):
    id: int
    user_id: int
    session_type: str
    title: str | None = None
    status: str
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_")
    started_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationMessageResponse(BaseModel):
    id: int
    session_id: int
    sender: str
    message: str
    message_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationExchangeResponse(BaseModel):
    user_message: ConversationMessageResponse
    ai_message: ConversationMessageResponse


class ProfileInsightResponse(BaseModel):
    id: int
    user_id: int
    insight_type: str
    insight: str
    confidence_score: float
    source: str
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------


class CompetitionResponse(BaseModel):
    id: int
    title: str
    description: str
    start_date: datetime
    end_date: datetime
    status: CompetitionStatus
    difficulty: str
    type: str
    max_participants: int | None = None
    participant_count: int
    rules: str | None = None
    scoring_methods: str | None = None
    challenges: list[Any] | None = None
    rewards_description: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompetitionRewardResponse(BaseModel):
    id: int
    competition_id: int
    reward_id: int
    rank_required: int

    model_config = ConfigDict(from_attributes=True)


class CompetitionDetailResponse(BaseModel):
    competition: CompetitionResponse
    rewards: list[CompetitionRewardResponse]


class CompetitionEntryResponse(BaseModel):
    id: int
    competition_id: int
    couple_id: int
    score: int
    rank: int | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GeneratedCompetitionResponse(BaseModel):
    """AI-drafted competition details, for the admin to review before saving."""

    rules: str
    scoring_methods: str
    challenges: list[dict[str, Any]]
    rewards_description: str
    max_participants: int | None = None


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


class RewardResponse(BaseModel):
    id: int
    name: str
    description: str
    type: str
    value: int
    image_url: str | None = None
    available_from: datetime | None = None
    available_to: datetime | None = None
    quantity: int
    required_tier: str | None = None
    active: bool
    location_restricted: bool
    eligible_locations: list[str] | None = None
    redemption_period_days: int | None = None
    requires_shipping: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminRewardResponse(RewardResponse):
    """Admin view; includes the partner-supplied `code`."""

    code: str | None = None


class CoupleRewardResponse(BaseModel):
    id: int
    couple_id: int
    reward_id: int
    competition_id: int | None = None
    status: CoupleRewardStatus
    redemption_code: str
    redemption_url: str | None = None
    notification_sent: bool
    notified_at: datetime | None = None
    viewed_at: datetime | None = None
    claimed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    redeemed_at: datetime | None = None
    canceled_at: datetime | None = None
    expires_at: datetime | None = None
    tracking_number: str | None = None
    shipping_address: dict[str, Any] | None = None
    winner_notes: str | None = None
    reminders_sent_count: int
    awarded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminCoupleRewardResponse(CoupleRewardResponse):
    admin_notes: str | None = None
    last_reminder_at: datetime | None = None


class RedemptionCheckResponse(BaseModel):
    valid: bool
    couple_reward: CoupleRewardResponse | None = None
    reward: RewardResponse | None = None


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class SubscriptionTierResponse(BaseModel):
    id: int
    name: str
    description: str
    price: int
    billing_period: str
    features: list[str]
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserSubscriptionResponse(BaseModel):
    id: int
    user_id: int
    tier_id: int
    status: str
    start_date: datetime
    end_date: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class MySubscriptionResponse(BaseModel):
    subscription: UserSubscriptionResponse | None = None
    tier: SubscriptionTierResponse | None = None


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class AdminStatsResponse(BaseModel):
    total_users: int
    total_couples: int
    total_quizzes: int
    active_subscriptions: int
    recent_sessions: list[QuizSessionResponse]


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int


# ---------------------------------------------------------------------------
# Affiliates
# ---------------------------------------------------------------------------


class AffiliatePartnerResponse(BaseModel):
    """A partner as admins see it. The password hash is never included."""

    id: int
    name: str
    email: str
    status: str
    commission_rate: float
    website: str | None = None
    description: str | None = None
    notes: str | None = None
    approved_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AffiliateCouponResponse(BaseModel):
    id: int
    partner_id: int
    code: str
    type: str
    value: int
    description: str | None = None
    is_active: bool
    max_uses: int | None = None
    current_uses: int
    ends_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AffiliateReferralResponse(BaseModel):
    id: int
    partner_id: int
    name: str
    referral_code: str
    referral_url: str
    click_count: int
    conversion_count: int
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AffiliateTransactionResponse(BaseModel):
    id: int
    partner_id: int
    user_id: int | None = None
    coupon_id: int | None = None
    payment_id: int | None = None
    transaction_type: str
    amount: int
    commission_amount: int
    currency: str
    status: str
    paid_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AffiliatePaymentResponse(BaseModel):
    id: int
    partner_id: int
    amount: int
    currency: str
    status: str
    reference: str
    notes: str | None = None
    payment_date: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CouponDiscount(BaseModel):
    type: str
    value: int
    discount_amount: int | None = Field(default=None, description="Cents, when priced")


class CouponValidationResponse(BaseModel):
    valid: bool
    message: str | None = None
    discount: CouponDiscount | None = None


class CouponApplyResponse(BaseModel):
    success: bool = True
    discount: CouponDiscount
