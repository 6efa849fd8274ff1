"""Employee session guard.

The employee session cookie carries the raw invite token. A request is
authorized for an onboarding only when the hash of that token matches the
record's current invite and the invite has not expired. Any mismatch is a
401 and the cookie is cleared.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import Response
from sqlalchemy.orm import Session

from onboarding_api.core.config import settings
from onboarding_api.core.errors import NotEditableError, UnauthorizedError
from onboarding_api.core.security import hash_invite_token
from onboarding_api.db.enums import (
    CLOSED_STATUSES,
    EDITABLE_STATUSES,
    READ_ONLY_STATUSES,
    OnboardingMethod,
)
from onboarding_api.db.models import Onboarding
from onboarding_api.services import onboarding_service
from onboarding_api.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def _unauthorized(reason: str, message: str = "Session required") -> UnauthorizedError:
    return UnauthorizedError(message, meta={"reason": reason}, clear_session=True)


def require_onboarding_session(
    db: Session,
    raw_token: str | None,
    onboarding_id: str | UUID,
    *,
    allow_read_only: bool = False,
    allow_closed: bool = False,
) -> Onboarding:
    """
    Resolve the session to this exact onboarding.

    Args:
        raw_token: Cookie value (raw invite token)
        allow_read_only: Accept submitted records awaiting HR (view only)
        allow_closed: Accept Approved/Terminated records; the caller gates on status

    Raises:
        UnauthorizedError: Missing/mismatched/expired session, or record closed
        NotEditableError: Record is read-only and allow_read_only is False
    """
    if not raw_token or not isinstance(raw_token, str):
        raise _unauthorized("MISSING_OR_INVALID_COOKIE")

    parsed_id = onboarding_service.parse_onboarding_id(onboarding_id)
    if parsed_id is None:
        raise _unauthorized("INVALID_ONBOARDING_ID")

    onboarding = (
        db.query(Onboarding)
        .filter(
            Onboarding.id == parsed_id,
            Onboarding.method == OnboardingMethod.DIGITAL.value,
            Onboarding.invite_token_hash == hash_invite_token(raw_token),
        )
        .first()
    )
    if not onboarding:
        raise _unauthorized("SESSION_NOT_FOUND_OR_MISMATCH")

    if onboarding.invite_expires_at is None:
        raise _unauthorized("INVITE_MISSING")
    if ensure_utc(onboarding.invite_expires_at) <= utcnow():
        raise _unauthorized("INVITE_EXPIRED", "Invite has expired")

    status = onboarding.status_enum
    if status in CLOSED_STATUSES and not allow_closed:
        raise _unauthorized(status.value.upper(), "This onboarding is closed")

    if not allow_read_only and status in READ_ONLY_STATUSES:
        raise NotEditableError(
            "Onboarding has already been submitted", code="READ_ONLY_STATE"
        )

    return onboarding


def resolve_session_onboarding_id(db: Session, raw_token: str | None) -> UUID | None:
    """
    Map a cookie to an onboarding id for edge routing.

    Only sessions that can still submit resolve; everything else is None.
    """
    if not raw_token:
        return None
    onboarding = onboarding_service.find_digital_onboarding_by_token(db, raw_token)
    if not onboarding or not onboarding.invite_is_active():
        return None
    if onboarding.status_enum not in EDITABLE_STATUSES:
        return None
    return onboarding.id


def revoke_session(onboarding: Onboarding) -> None:
    """One-time session: the invite cannot be reused after submission."""
    onboarding.clear_invite()
    onboarding.clear_otp()


# =============================================================================
# Cookie helpers
# =============================================================================

def set_session_cookie(response: Response, raw_token: str, expires_at: datetime) -> None:
    """Set the HttpOnly session cookie for the remaining invite lifetime."""
    remaining = int((ensure_utc(expires_at) - utcnow()).total_seconds())
    response.set_cookie(
        key=settings.ONBOARDING_SESSION_COOKIE_NAME,
        value=raw_token,
        max_age=max(remaining, 0),
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.ONBOARDING_SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
