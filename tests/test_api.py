# =============================================================================
# API Tests — Routing, Error Bodies & Auth Flow
# =============================================================================
#
# Runs the real FastAPI app through TestClient with storage and the
# current user replaced via app.dependency_overrides. No database, Redis
# or LLM is touched. The client is used without a `with` block so the
# lifespan (engine disposal) never runs.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from bondquest.api.deps import get_current_user, get_storage
from bondquest.db.models import CoupleRewardStatus
from bondquest.main import app
from bondquest.services.auth import hash_password

_NOW = datetime(2025, 6, 1, tzinfo=UTC)


@dataclass
class FakeUser:
    id: int = 1
    username: str = "alex"
    email: str = "alex@example.com"
    display_name: str = "Alex"
    password_hash: str = ""
    avatar: str | None = None
    love_language: str | None = None
    relationship_status: str | None = None
    anniversary: datetime | None = None
    location: str | None = None
    partner_code: str = "ABCD2345"
    role: str = "user"
    created_at: datetime = _NOW


@dataclass
class FakeReward:
    id: int
    name: str = "Spa Day"
    description: str = "A relaxing day for two"
    type: str = "experience"
    value: int = 200
    image_url: str | None = None
    available_from: datetime | None = None
    available_to: datetime | None = None
    quantity: int = 3
    required_tier: str | None = None
    active: bool = True
    location_restricted: bool = False
    eligible_locations: list = field(default_factory=list)
    redemption_period_days: int | None = 30
    requires_shipping: bool = False
    created_at: datetime = _NOW
    updated_at: datetime = _NOW


@dataclass
class FakeCouple:
    id: int = 1
    user_id_1: int = 1
    user_id_2: int = 2

    def member_ids(self):
        return (self.user_id_1, self.user_id_2)


@dataclass
class FakeCoupleReward:
    id: int = 10
    couple_id: int = 1
    reward_id: int = 1
    status: CoupleRewardStatus = CoupleRewardStatus.AWARDED
    expires_at: datetime | None = None
    claimed_at: datetime | None = None
    redeemed_at: datetime | None = None


@dataclass
class FakeReferral:
    id: int = 3
    referral_code: str = "DAT-ABC123"
    conversion_count: int = 0
    status: str = "active"


@pytest.fixture
def storage():
    storage = AsyncMock()
    app.dependency_overrides[get_storage] = lambda: storage
    yield storage
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestErrorBodies:
    def test_validation_errors_are_400(self, client, storage):
        response = client.post("/api/auth/login", json={})
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Invalid request"
        assert body["errors"]

    def test_missing_token_is_401(self, client, storage):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"


class TestAuthFlow:
    def test_register_returns_token(self, client, storage):
        storage.get_user_by_username.return_value = None
        storage.get_user_by_email.return_value = None
        storage.get_user_by_partner_code.return_value = None
        storage.get_couple_by_user.return_value = None
        storage.create_user.side_effect = lambda **values: FakeUser(
            id=7,
            **{k: v for k, v in values.items() if k in FakeUser.__dataclass_fields__},
        )

        response = client.post("/api/auth/register", json={
            "username": "alex",
            "email": "Alex@Example.com",
            "password": "correct horse battery",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["token"].startswith("bq-")
        assert body["user"]["email"] == "alex@example.com"
        assert body["user"]["display_name"] == "alex"
        assert "password_hash" not in body["user"]
        storage.create_auth_token.assert_awaited_once()

    def test_duplicate_username(self, client, storage):
        storage.get_user_by_username.return_value = FakeUser()
        response = client.post("/api/auth/register", json={
            "username": "alex",
            "email": "alex@example.com",
            "password": "correct horse battery",
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Username already exists"

    def test_login_wrong_password(self, client, storage):
        storage.get_user_by_username.return_value = FakeUser(password_hash=hash_password("right-password"))
        response = client.post("/api/auth/login", json={"username": "alex", "password": "wrong-password"})
        assert response.status_code == 401

    def test_login_by_email(self, client, storage):
        storage.get_user_by_email.return_value = FakeUser(password_hash=hash_password("right-password"))
        storage.get_couple_by_user.return_value = None
        response = client.post(
            "/api/auth/login", json={"username": "alex@example.com", "password": "right-password"},
        )
        assert response.status_code == 200
        storage.get_user_by_username.assert_not_awaited()


class TestRewardsCatalogue:
    def test_location_filter_uses_profile(self, client, storage):
        app.dependency_overrides[get_current_user] = lambda: FakeUser(location="CA")
        storage.list_rewards.return_value = [
            FakeReward(id=1),
            FakeReward(id=2, location_restricted=True, eligible_locations=["US"]),
            FakeReward(id=3, location_restricted=True, eligible_locations=["CA"]),
            FakeReward(id=4, quantity=0),
        ]

        response = client.get("/api/rewards")

        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == [1, 3]

    def test_unknown_redemption_code(self, client, storage):
        app.dependency_overrides[get_current_user] = lambda: FakeUser()
        storage.get_couple_reward_by_code.return_value = None
        response = client.get("/api/rewards/redeem/NOPE")
        assert response.status_code == 200
        assert response.json()["valid"] is False

    def test_admin_routes_require_admin(self, client, storage):
        app.dependency_overrides[get_current_user] = lambda: FakeUser()
        response = client.get("/api/admin/stats")
        assert response.status_code == 403


class TestCoupleRewards:
    def test_claim_after_expiry_commits_the_expiry(self, client, storage):
        app.dependency_overrides[get_current_user] = lambda: FakeUser()
        row = FakeCoupleReward(expires_at=_NOW - timedelta(days=2))
        storage.get_couple_reward.return_value = row
        storage.get_couple.return_value = FakeCouple()
        storage.get_reward.return_value = FakeReward(id=1)
        storage.save.side_effect = lambda obj: obj

        response = client.post("/api/couple-rewards/10/claim", json={})

        assert response.status_code == 400
        assert response.json()["detail"] == "This reward has expired"
        assert row.status == CoupleRewardStatus.EXPIRED
        storage.commit.assert_awaited_once()


class TestAffiliates:
    def test_validate_unknown_coupon(self, client, storage):
        app.dependency_overrides[get_current_user] = lambda: FakeUser()
        storage.get_affiliate_coupon_by_code.return_value = None

        response = client.post("/api/affiliate/validate-coupon", json={"code": "NOPE"})

        assert response.status_code == 200
        assert response.json() == {"valid": False, "message": "Invalid coupon code", "discount": None}

    def test_partner_management_requires_admin(self, client, storage):
        app.dependency_overrides[get_current_user] = lambda: FakeUser()
        response = client.get("/api/affiliate/partners")
        assert response.status_code == 403

    def test_unknown_referral_click_is_404(self, client, storage):
        storage.get_affiliate_referral_by_code.return_value = None
        response = client.post("/api/affiliate/referrals/NOPE/click")
        assert response.status_code == 404

    def test_register_counts_referral_signup(self, client, storage):
        storage.get_user_by_username.return_value = None
        storage.get_user_by_email.return_value = None
        storage.get_user_by_partner_code.return_value = None
        storage.get_couple_by_user.return_value = None
        storage.create_user.side_effect = lambda **values: FakeUser(
            id=8,
            **{k: v for k, v in values.items() if k in FakeUser.__dataclass_fields__},
        )
        referral = FakeReferral()
        storage.get_affiliate_referral_by_code.return_value = referral
        storage.save.side_effect = lambda obj: obj

        response = client.post("/api/auth/register", json={
            "username": "sam",
            "email": "sam@example.com",
            "password": "correct horse battery",
            "referral_code": "DAT-ABC123",
        })

        assert response.status_code == 201
        assert referral.conversion_count == 1
