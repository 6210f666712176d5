# =============================================================================
# Auth Service — Passwords, Bearer Tokens & Partner Codes
# =============================================================================
#
# Pure functions, no FastAPI dependency. Used by the auth routes, the
# `get_current_user` dependency and tests.
#
# DESIGN DECISION: Two different hashes for two different secrets.
# - Passwords are low-entropy and human-chosen → bcrypt (slow, salted).
# - Bearer tokens are 32 random bytes → SHA-256 (fast, deterministic, so
#   the hash can be used as a lookup key).
#
# Partner codes are short, upper-case and avoid look-alike characters
# (0/O, 1/I) because users read them aloud to each other.
# =============================================================================

from __future__ import annotations

import hashlib
import secrets

import bcrypt

TOKEN_PREFIX = "bq-"
PARTNER_CODE_LENGTH = 8
_PARTNER_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt check. Malformed hashes count as a mismatch."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_auth_token() -> tuple[str, str, str]:
    """
    Generate a new bearer token.

    Returns:
        (raw_token, token_prefix, token_hash):
        - raw_token: returned to the client once, at login
        - token_prefix: first 8 chars, for identification in logs
        - token_hash: SHA-256 hex digest stored in the database
    """
    raw_token = f"{TOKEN_PREFIX}{secrets.token_hex(32)}"
    return raw_token, raw_token[:8], hash_token(raw_token)


def hash_token(raw_token: str) -> str:
    """Hash a bearer token using SHA-256. Returns 64-char hex digest."""
    return hashlib.sha256(raw_token.encode()).hexdigest()


def generate_partner_code() -> str:
    return "".join(
        secrets.choice(_PARTNER_CODE_ALPHABET) for _ in range(PARTNER_CODE_LENGTH)
    )
