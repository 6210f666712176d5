# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of the data coming INTO the API. FastAPI uses them for body
# validation (failures are returned as 400 by the handler in main.py) and
# for the OpenAPI docs at /docs.
#
# DESIGN DECISION: couple- and user-scoped requests carry their ids in the
# body, as the mobile client sends them. Membership is checked against the
# bearer token in the route, never trusted from the body alone.
# =============================================================================

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

AssistantType = Literal["casanova", "venus", "aurora"]
Difficulty = Literal["easy", "medium", "hard"]


# ---------------------------------------------------------------------------
# Auth & users
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """
    Request body for POST /auth/register.

    Example:
        {
            "username": "alex",
            "email": "alex@example.com",
            "password": "correct horse battery",
            "display_name": "Alex"
        }
    """

    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str | None = Field(default=None, max_length=200)
    avatar: str | None = None
    love_language: str | None = None
    relationship_status: str | None = None
    anniversary: datetime | None = None
    location: str | None = Field(
        default=None,
        max_length=100,
        description="Country, used to filter location-restricted rewards",
    )
    referral_code: str | None = Field(
        default=None, max_length=30, description="Affiliate `ref` code from the signup link",
    )


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255, description="Username or email")
    password: str = Field(..., min_length=1, max_length=128)


class PartnerLinkRequest(BaseModel):
    partner_code: str = Field(..., min_length=4, max_length=20)


class DailyCheckInRequest(BaseModel):
    mood: str = Field(..., min_length=1, max_length=50, examples=["happy"])
    note: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------


class QuestionPayload(BaseModel):
    text: str = Field(..., min_length=1, max_length=1000)
    options: list[str] = Field(..., min_length=2, max_length=10)


class QuestionCreateRequest(QuestionPayload):
    quiz_id: int


class QuizCreateRequest(BaseModel):
    """Request body for POST /quizzes (admin). Questions are optional."""

    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(default="", max_length=5000)
    type: str = Field(default="multiplayer", max_length=50)
    category: str = Field(..., min_length=1, max_length=100)
    difficulty: Difficulty = "medium"
    duration: int = Field(default=5, ge=1, le=120, description="Minutes")
    points: int = Field(default=100, ge=0, le=10000)
    image: str | None = None
    questions: list[QuestionPayload] = Field(default_factory=list)


class QuizGenerateRequest(BaseModel):
    """
    Request body for AI quiz generation.

    `dimension_id` focuses the quiz on one bond dimension; the dimension's
    name becomes the topic when no topic is given.
    """

    topic: str | None = Field(default=None, max_length=300)
    category: str = Field(default="relationship", max_length=100)
    difficulty: Difficulty = "medium"
    question_count: int = Field(default=5, ge=1, le=20)
    dimension_id: str | None = None
    additional_instructions: str = Field(default="", max_length=2000)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"topic": "Love languages", "category": "communication", "question_count": 5},
                {"dimension_id": "trust", "difficulty": "easy"},
            ]
        }
    )


class QuizSessionCreateRequest(BaseModel):
    couple_id: int
    quiz_id: int


class QuizSessionUpdateRequest(BaseModel):
    """
    Partial update of a quiz session.

    Answers are maps of question id → chosen option. Setting
    `completed=true` the first time scores the session.
    """

    user1_answers: dict[str, Any] | None = None
    user2_answers: dict[str, Any] | None = None
    completed: bool | None = None


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatCreateRequest(BaseModel):
    couple_id: int
    assistant_type: AssistantType = "casanova"
    message: str = Field(..., min_length=1, max_length=4000)
    sender: Literal["user", "assistant"] = "user"


# ---------------------------------------------------------------------------
# Bond analytics
# ---------------------------------------------------------------------------


class BondQuestionCreateRequest(BaseModel):
    dimension_id: str
    text: str = Field(..., min_length=1, max_length=1000)
    type: Literal["scale", "multiple_choice"] = "scale"
    options: list[str] | None = None
    weight: int = Field(default=1, ge=1, le=10)


class BondAssessmentRequest(BaseModel):
    couple_id: int
    dimension_id: str
    score: int = Field(..., ge=1, le=10)
    answers: dict[str, Any] | None = None


class BondInsightCreateRequest(BaseModel):
    couple_id: int
    dimension_id: str
    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    action_items: list[str] = Field(default_factory=list)
    target_score_min: int = Field(default=0, ge=0, le=10)
    target_score_max: int = Field(default=10, ge=0, le=10)
    difficulty: Literal["easy", "medium", "challenging"] = "medium"
    companion_id: AssistantType | None = None


class BondInsightGenerateRequest(BaseModel):
    couple_id: int
    limit: int = Field(default=3, ge=1, le=9)


class BondInsightViewedRequest(BaseModel):
    viewed: bool = True


class BondInsightCompletedRequest(BaseModel):
    completed: bool = True


# ---------------------------------------------------------------------------
# Onboarding conversations
# ---------------------------------------------------------------------------


class ConversationSessionCreateRequest(BaseModel):
    session_type: str = Field(default="onboarding", max_length=50)
    title: str | None = Field(default=None, max_length=300)
    metadata: dict[str, Any] | None = None


class ConversationMessageRequest(BaseModel):
    """
    Request body for POST /conversations/messages.

    `system_context` is either free text or `onboarding_<stage>`
    (welcome, relationship_basics, communication_style, ...).
    """

    session_id: int
    message: str = Field(..., min_length=1, max_length=4000)
    system_context: str | None = Field(default=None, max_length=8000)


# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------


class CompetitionRewardLink(BaseModel):
    reward_id: int
    rank_required: int = Field(default=1, ge=1)


class CompetitionCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    status: Literal["draft", "active", "completed"] = "draft"
    difficulty: Difficulty = "medium"
    type: str = Field(default="quiz", max_length=50)
    max_participants: int | None = Field(default=None, ge=1)
    rules: str | None = None
    scoring_methods: str | None = None
    challenges: list[dict[str, Any]] | None = None
    rewards_description: str | None = None
    rewards: list[CompetitionRewardLink] = Field(default_factory=list)


class CompetitionUpdateRequest(BaseModel):
    """All fields optional; only provided fields are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: Literal["draft", "active", "completed"] | None = None
    difficulty: Difficulty | None = None
    type: str | None = Field(default=None, max_length=50)
    max_participants: int | None = Field(default=None, ge=1)
    rules: str | None = None
    scoring_methods: str | None = None
    challenges: list[dict[str, Any]] | None = None
    rewards_description: str | None = None


class CompetitionGenerateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1, max_length=5000)
    start_date: datetime
    end_date: datetime
    difficulty: Difficulty = "medium"
    type: str = Field(default="quiz", max_length=50)
    additional_instructions: str = Field(default="", max_length=2000)


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


class RewardCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    type: Literal["digital", "physical", "experience"]
    value: int = Field(default=0, ge=0, description="Value in cents")
    code: str | None = None
    image_url: str | None = None
    available_from: datetime | None = None
    available_to: datetime | None = None
    quantity: int = Field(default=1, ge=0)
    required_tier: str | None = None
    active: bool = True
    location_restricted: bool = False
    eligible_locations: list[str] | None = None
    redemption_period_days: int | None = Field(default=None, ge=1, le=365)
    requires_shipping: bool = False


class RewardUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    type: Literal["digital", "physical", "experience"] | None = None
    value: int | None = Field(default=None, ge=0)
    code: str | None = None
    image_url: str | None = None
    available_from: datetime | None = None
    available_to: datetime | None = None
    quantity: int | None = Field(default=None, ge=0)
    required_tier: str | None = None
    active: bool | None = None
    location_restricted: bool | None = None
    eligible_locations: list[str] | None = None
    redemption_period_days: int | None = Field(default=None, ge=1, le=365)
    requires_shipping: bool | None = None


class AwardRewardRequest(BaseModel):
    couple_id: int
    reward_id: int
    competition_id: int | None = None
    notify: bool = Field(default=True, description="Queue the winner email")


class ClaimRewardRequest(BaseModel):
    shipping_address: dict[str, Any] | None = None
    notes: str | None = Field(default=None, max_length=2000)


class ShipRewardRequest(BaseModel):
    tracking_number: str | None = Field(default=None, max_length=100)
    admin_notes: str | None = Field(default=None, max_length=2000)


class CancelRewardRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class SubscriptionTierCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    price: int = Field(default=0, ge=0, description="Price in cents")
    billing_period: Literal["monthly", "yearly"] = "monthly"
    features: list[str] = Field(default_factory=list)
    is_active: bool = True


class SubscriptionTierUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    price: int | None = Field(default=None, ge=0)
    billing_period: Literal["monthly", "yearly"] | None = None
    features: list[str] | None = None
    is_active: bool | None = None


# ---------------------------------------------------------------------------
# Affiliates
# ---------------------------------------------------------------------------


class AffiliatePartnerCreateRequest(BaseModel):
    """
    Request body for POST /affiliate/partners (admin).

    Example:
        {
            "name": "Date Night Co",
            "email": "hello@datenight.example",
            "password": "partner-secret",
            "commission_rate": 15
        }
    """

    name: str = Field(..., min_length=2, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    commission_rate: float = Field(..., ge=0, le=100, description="Percent of each discount")
    website: str | None = Field(default=None, max_length=500)
    description: str | None = None
    notes: str | None = None


class AffiliatePartnerUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=200)
    commission_rate: float | None = Field(default=None, ge=0, le=100)
    status: Literal["pending", "active", "suspended"] | None = None
    website: str | None = Field(default=None, max_length=500)
    description: str | None = None
    notes: str | None = None


class AffiliateCouponCreateRequest(BaseModel):
    """`value` is a percentage for percentage coupons and cents for fixed ones."""

    partner_id: int = Field(..., gt=0)
    code: str = Field(..., min_length=3, max_length=20, pattern=r"^[A-Za-z0-9_-]+$")
    type: Literal["percentage", "fixed", "free_trial"]
    value: int = Field(..., gt=0)
    description: str | None = None
    is_active: bool = True
    max_uses: int | None = Field(default=None, gt=0)
    ends_at: datetime | None = None


class AffiliateCouponStatusRequest(BaseModel):
    is_active: bool


class AffiliateReferralCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    referral_code: str | None = Field(
        default=None, min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_-]+$",
    )


class AffiliatePaymentCreateRequest(BaseModel):
    partner_id: int = Field(..., gt=0)
    amount: int = Field(..., gt=0, description="Cents")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    status: Literal["processing", "completed", "cancelled"] = "processing"
    notes: str | None = None
    transactions: list[int] = Field(
        default_factory=list, description="Unpaid transaction ids this payment settles",
    )


class AffiliatePaymentStatusRequest(BaseModel):
    status: Literal["processing", "completed", "cancelled"]


class CouponCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)


class ApplyCouponRequest(CouponCodeRequest):
    tier_id: int | None = Field(
        default=None, description="Subscription tier the discount is priced against",
    )
