"""Invite token exchange and email OTP verification.

Flow: the invite link carries a raw token. POST /onboarding/invite/verify
emails a 6-digit code (throttled to one per OTP_RESEND_INTERVAL_SECONDS).
POST /onboarding/otp/verify checks the code; OTP_MAX_ATTEMPTS wrong codes
lock the record for OTP_LOCK_MINUTES. A correct code yields the session
cookie (the raw invite token).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from onboarding_api.core.config import settings
from onboarding_api.core.errors import BadRequestError, RateLimitedError, UnauthorizedError
from onboarding_api.core.security import generate_otp, hash_otp, verify_otp
from onboarding_api.core.structured_logging import log_context
from onboarding_api.db.enums import CLOSED_STATUSES
from onboarding_api.db.models import Onboarding
from onboarding_api.services import email_service, onboarding_service
from onboarding_api.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class InviteVerification:
    onboarding_id: str
    subsidiary: str
    email: str


def _load_invited_onboarding(db: Session, raw_token: str | None) -> Onboarding:
    """
    Raises:
        BadRequestError: Token missing
        UnauthorizedError: Unknown/expired invite, or onboarding closed
    """
    if not raw_token or not raw_token.strip():
        raise BadRequestError("Invite token is required", code="TOKEN_REQUIRED")

    onboarding = onboarding_service.find_digital_onboarding_by_token(db, raw_token.strip())
    if not onboarding:
        raise UnauthorizedError("Invite link is invalid", code="INVITE_NOT_FOUND")
    if not onboarding.invite_is_active():
        raise UnauthorizedError("Invite link has expired", code="INVITE_EXPIRED")
    if onboarding.status_enum in CLOSED_STATUSES:
        raise UnauthorizedError(
            "This onboarding is closed", code=onboarding.status_enum.value.upper()
        )
    return onboarding


def _lock_remaining_seconds(onboarding: Onboarding, now: datetime) -> int:
    """Seconds left on an OTP lock; an elapsed lock is cleared in place."""
    locked_at = ensure_utc(onboarding.otp_locked_at)
    if locked_at is None:
        return 0
    unlock_at = locked_at + timedelta(minutes=settings.OTP_LOCK_MINUTES)
    if unlock_at <= now:
        onboarding.otp_locked_at = None
        onboarding.otp_attempts = 0
        return 0
    return int((unlock_at - now).total_seconds()) + 1


def _raise_locked(retry_after: int) -> None:
    raise RateLimitedError(
        "Too many incorrect codes. Please try again later.",
        code="OTP_LOCKED",
        meta={"retryAfterSeconds": retry_after},
    )


async def start_invite_verification(db: Session, raw_token: str | None) -> InviteVerification:
    """
    Email a fresh OTP for the invite.

    Raises:
        RateLimitedError: Locked, or a code was sent too recently
        EmailDeliveryError: Provider failure (nothing is persisted)
    """
    onboarding = _load_invited_onboarding(db, raw_token)
    now = utcnow()

    retry_after = _lock_remaining_seconds(onboarding, now)
    if retry_after:
        _raise_locked(retry_after)

    last_sent = ensure_utc(onboarding.otp_last_sent_at)
    if last_sent is not None:
        next_allowed = last_sent + timedelta(seconds=settings.OTP_RESEND_INTERVAL_SECONDS)
        if next_allowed > now:
            raise RateLimitedError(
                "Please wait before requesting another code",
                code="OTP_THROTTLED",
                meta={"retryAfterSeconds": int((next_allowed - now).total_seconds()) + 1},
            )

    code = generate_otp()
    onboarding.otp_hash = hash_otp(code)
    onboarding.otp_expires_at = now + timedelta(minutes=settings.OTP_EXPIRES_MINUTES)
    onboarding.otp_attempts = 0
    onboarding.otp_last_sent_at = now

    try:
        await email_service.send_otp_email(onboarding.email, onboarding.first_name, code)
    except Exception:
        db.rollback()
        raise
    db.commit()

    logger.info(
        "OTP issued",
        extra=log_context(onboarding.id, route="invite_verify"),
    )
    return InviteVerification(
        onboarding_id=str(onboarding.id),
        subsidiary=onboarding.subsidiary,
        email=onboarding.email,
    )


def verify_invite_otp(db: Session, raw_token: str | None, code: str | None) -> Onboarding:
    """
    Check a submitted OTP; on success the caller sets the session cookie.

    Raises:
        BadRequestError: Code missing or never issued
        UnauthorizedError: Expired or wrong code (meta.remainingAttempts)
        RateLimitedError: Locked (now or by this attempt)
    """
    onboarding = _load_invited_onboarding(db, raw_token)
    now = utcnow()

    if not code or not code.strip():
        raise BadRequestError("Verification code is required", code="OTP_REQUIRED")

    retry_after = _lock_remaining_seconds(onboarding, now)
    if retry_after:
        _raise_locked(retry_after)

    if not onboarding.otp_hash or onboarding.otp_expires_at is None:
        raise BadRequestError("No verification code has been issued", code="OTP_NOT_ISSUED")
    if ensure_utc(onboarding.otp_expires_at) <= now:
        raise UnauthorizedError("Verification code has expired", code="OTP_EXPIRED")

    if not verify_otp(code.strip(), onboarding.otp_hash):
        onboarding.otp_attempts = (onboarding.otp_attempts or 0) + 1
        if onboarding.otp_attempts >= settings.OTP_MAX_ATTEMPTS:
            onboarding.otp_locked_at = now
            db.commit()
            logger.warning(
                "OTP locked after %d attempts",
                onboarding.otp_attempts,
                extra=log_context(onboarding.id),
            )
            _raise_locked(settings.OTP_LOCK_MINUTES * 60)
        db.commit()
        raise UnauthorizedError(
            "Incorrect verification code",
            code="OTP_INVALID",
            meta={"remainingAttempts": settings.OTP_MAX_ATTEMPTS - onboarding.otp_attempts},
        )

    onboarding.clear_otp()
    db.commit()
    return onboarding
