# =============================================================================
# Unit Tests — Authentication, Access Checks & AI Rate Limiting
# =============================================================================
#
# Tests auth components without requiring Redis, a running API or a
# database. Storage is an AsyncMock; users and tokens are dataclass fakes.
#
# Test groups:
#   1. Passwords, bearer tokens & partner codes (pure functions)
#   2. Auth dependency (get_current_user)
#   3. Admin & couple membership checks
#   4. AI rate limiter (check_ai_rate_limit)
#   5. Request/response model validation
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from bondquest.api import deps
from bondquest.services import rate_limiter
from bondquest.services.auth import (
    PARTNER_CODE_LENGTH,
    generate_auth_token,
    generate_partner_code,
    hash_password,
    hash_token,
    verify_password,
)
from bondquest.services.errors import ConflictError, NotFoundError, RateLimitedError


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# 1. Secrets
# ---------------------------------------------------------------------------


class TestPasswords:
    def test_hash_round_trip(self):
        hashed = hash_password("correct horse battery")
        assert hashed != "correct horse battery"
        assert verify_password("correct horse battery", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_hashes_are_salted(self):
        assert hash_password("same-password") != hash_password("same-password")

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestTokens:
    def test_token_format(self):
        raw, prefix, token_hash = generate_auth_token()
        assert raw.startswith("bq-")
        assert len(raw) == 3 + 64
        assert prefix == raw[:8]
        assert token_hash == hash_token(raw)
        int(token_hash, 16)

    def test_tokens_are_unique(self):
        assert generate_auth_token()[0] != generate_auth_token()[0]

    def test_partner_code_alphabet(self):
        code = generate_partner_code()
        assert len(code) == PARTNER_CODE_LENGTH
        assert code == code.upper()
        assert not set(code) & set("01OI")


# ---------------------------------------------------------------------------
# Helpers — lightweight fakes for dependency tests
# ---------------------------------------------------------------------------


@dataclass
class FakeUser:
    id: int = 1
    username: str = "alex"
    role: str = "user"


@dataclass
class FakeToken:
    user_id: int = 1
    expires_at: datetime | None = None
    last_used_at: datetime | None = None


@dataclass
class FakeCouple:
    id: int = 1
    user_id_1: int = 1
    user_id_2: int = 2

    def member_ids(self):
        return (self.user_id_1, self.user_id_2)


@dataclass
class FakeCredentials:
    credentials: str = "bq-testtoken"


class FakeRequestState:
    pass


class FakeRequest:
    def __init__(self):
        self.state = FakeRequestState()


# ---------------------------------------------------------------------------
# 2. get_current_user
# ---------------------------------------------------------------------------


class TestGetCurrentUser:
    def test_missing_credentials_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            _run(deps.get_current_user(FakeRequest(), None, AsyncMock()))
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    def test_unknown_token_raises_401(self):
        storage = AsyncMock()
        storage.get_auth_token_by_hash.return_value = None
        with pytest.raises(HTTPException) as exc_info:
            _run(deps.get_current_user(FakeRequest(), FakeCredentials(), storage))
        assert exc_info.value.status_code == 401
        storage.get_auth_token_by_hash.assert_awaited_once_with(hash_token("bq-testtoken"))

    def test_expired_token_raises_401(self):
        storage = AsyncMock()
        storage.get_auth_token_by_hash.return_value = FakeToken(
            expires_at=datetime.now(UTC) - timedelta(hours=1),
        )
        with pytest.raises(HTTPException) as exc_info:
            _run(deps.get_current_user(FakeRequest(), FakeCredentials(), storage))
        assert "expired" in exc_info.value.detail

    def test_deleted_user_raises_401(self):
        storage = AsyncMock()
        storage.get_auth_token_by_hash.return_value = FakeToken()
        storage.get_user.return_value = None
        with pytest.raises(HTTPException) as exc_info:
            _run(deps.get_current_user(FakeRequest(), FakeCredentials(), storage))
        assert exc_info.value.status_code == 401

    def test_valid_token_returns_user(self):
        storage = AsyncMock()
        token = FakeToken(expires_at=datetime.now(UTC) + timedelta(days=1))
        user = FakeUser()
        storage.get_auth_token_by_hash.return_value = token
        storage.get_user.return_value = user
        request = FakeRequest()

        result = _run(deps.get_current_user(request, FakeCredentials(), storage))

        assert result is user
        assert token.last_used_at is not None
        assert request.state.user is user
        assert request.state.auth_token is token


# ---------------------------------------------------------------------------
# 3. Access checks
# ---------------------------------------------------------------------------


class TestAccessChecks:
    def test_admin_by_role(self):
        assert deps.is_admin(FakeUser(role="admin"))

    def test_admin_by_configured_username(self):
        with patch.object(deps.settings, "admin_usernames", ["root"]):
            assert deps.is_admin(FakeUser(username="root"))
            assert not deps.is_admin(FakeUser(username="alex"))

    def test_require_admin_rejects_regular_user(self):
        with pytest.raises(HTTPException) as exc_info:
            _run(deps.require_admin(FakeUser()))
        assert exc_info.value.status_code == 403

    def test_member_passes(self):
        deps.ensure_couple_member(FakeUser(id=2), FakeCouple())

    def test_outsider_gets_403(self):
        with pytest.raises(HTTPException) as exc_info:
            deps.ensure_couple_member(FakeUser(id=3), FakeCouple())
        assert exc_info.value.status_code == 403

    def test_admin_may_access_any_couple(self):
        deps.ensure_couple_member(FakeUser(id=3, role="admin"), FakeCouple())

    def test_load_couple_unknown_is_404(self):
        storage = AsyncMock()
        storage.get_couple.return_value = None
        with pytest.raises(HTTPException) as exc_info:
            _run(deps.load_couple_for_user(storage, 1, FakeUser()))
        assert exc_info.value.status_code == 404

    def test_current_couple_requires_link(self):
        storage = AsyncMock()
        storage.get_couple_by_user.return_value = None
        with pytest.raises(HTTPException) as exc_info:
            _run(deps.current_couple(storage, FakeUser()))
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize(
        ("error", "status"),
        [(NotFoundError("Quiz not found"), 404), (ConflictError("Already entered"), 409)],
    )
    def test_http_error_maps_status(self, error, status):
        exc = deps.http_error(error)
        assert exc.status_code == status
        assert exc.detail == error.message


# ---------------------------------------------------------------------------
# 4. AI rate limiter
# ---------------------------------------------------------------------------


def _redis_with_count(count: int) -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[None, count, None, None])
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    return redis


class TestAIRateLimiter:
    def test_no_user_skips(self):
        _run(rate_limiter.check_ai_rate_limit(None))

    def test_disabled_limit_skips_redis(self):
        with (
            patch.object(rate_limiter.settings, "ai_rate_limit_rpm", 0),
            patch("bondquest.services.rate_limiter._get_rate_limit_redis") as get_redis,
        ):
            _run(rate_limiter.check_ai_rate_limit(FakeUser()))
        get_redis.assert_not_called()

    def test_under_limit_passes(self):
        with (
            patch.object(rate_limiter.settings, "ai_rate_limit_rpm", 20),
            patch(
                "bondquest.services.rate_limiter._get_rate_limit_redis",
                return_value=_redis_with_count(5),
            ),
        ):
            _run(rate_limiter.check_ai_rate_limit(FakeUser()))

    def test_over_limit_raises_429(self):
        with (
            patch.object(rate_limiter.settings, "ai_rate_limit_rpm", 10),
            patch(
                "bondquest.services.rate_limiter._get_rate_limit_redis",
                return_value=_redis_with_count(10),
            ),
        ):
            with pytest.raises(RateLimitedError) as exc_info:
                _run(rate_limiter.check_ai_rate_limit(FakeUser()))
        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 60

    def test_dependency_maps_to_429_with_retry_after(self):
        with (
            patch.object(rate_limiter.settings, "ai_rate_limit_rpm", 1),
            patch(
                "bondquest.services.rate_limiter._get_rate_limit_redis",
                return_value=_redis_with_count(3),
            ),
        ):
            with pytest.raises(HTTPException) as exc_info:
                _run(deps.ai_rate_limited_user(FakeUser()))
        assert exc_info.value.status_code == 429
        assert exc_info.value.headers == {"Retry-After": "60"}

    def test_key_is_per_user(self):
        redis = _redis_with_count(0)
        with (
            patch.object(rate_limiter.settings, "ai_rate_limit_rpm", 5),
            patch("bondquest.services.rate_limiter._get_rate_limit_redis", return_value=redis),
        ):
            _run(rate_limiter.check_ai_rate_limit(FakeUser(id=7)))
        assert redis.pipeline.return_value.zcard.call_args.args == ("ratelimit:ai:user:7",)

    def test_redis_unavailable_allows_through(self):
        with (
            patch.object(rate_limiter.settings, "ai_rate_limit_rpm", 10),
            patch(
                "bondquest.services.rate_limiter._get_rate_limit_redis",
                side_effect=ConnectionError("Redis down"),
            ),
        ):
            _run(rate_limiter.check_ai_rate_limit(FakeUser()))


# ---------------------------------------------------------------------------
# 5. Request/Response Model Validation
# ---------------------------------------------------------------------------


class TestModels:
    def test_register_requires_valid_email(self):
        from pydantic import ValidationError

        from bondquest.models.requests import RegisterRequest

        with pytest.raises(ValidationError):
            RegisterRequest(username="alex", email="not-an-email", password="longenough")

    def test_register_rejects_short_password(self):
        from pydantic import ValidationError

        from bondquest.models.requests import RegisterRequest

        with pytest.raises(ValidationError):
            RegisterRequest(username="alex", email="alex@example.com", password="short")

    def test_user_response_excludes_password_hash(self):
        from bondquest.models.responses import UserResponse

        schema = UserResponse.model_json_schema()
        assert "password_hash" not in schema.get("properties", {})

    def test_auth_response_includes_token(self):
        from bondquest.models.responses import AuthResponse

        schema = AuthResponse.model_json_schema()
        assert "token" in schema.get("properties", {})
