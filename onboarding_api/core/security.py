"""Security utilities for HR session tokens, invite tokens and OTP codes."""

import hmac
import secrets
from datetime import datetime, timedelta, timezone

import jwt

from onboarding_api.core.config import settings
from onboarding_api.core.encryption import hash_token


# =============================================================================
# HR Session Token (JWT in cookie)
# =============================================================================

def create_session_token(email: str, name: str | None = None) -> str:
    """
    Create signed HR session JWT.

    Always signs with current secret (JWT_SECRET).
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email.strip().lower(),
        "name": name or "",
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify HR session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


# =============================================================================
# Invite Tokens
# =============================================================================

def generate_invite_token() -> str:
    """Generate cryptographically random invite token (32 bytes, URL-safe base64)."""
    return secrets.token_urlsafe(32)


def hash_invite_token(raw_token: str) -> str:
    """Hash an invite token; only the hash is persisted."""
    return hash_token(raw_token, purpose="invite")


# =============================================================================
# One-Time Passcodes
# =============================================================================

def generate_otp(length: int = 6) -> str:
    """Generate a numeric one-time passcode."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_otp(code: str) -> str:
    return hash_token(code, purpose="otp")


def verify_otp(code: str, otp_hash: str) -> bool:
    """Constant-time comparison of a submitted code against the stored hash."""
    if not code or not otp_hash:
        return False
    return hmac.compare_digest(hash_otp(code), otp_hash)
