"""Request dependencies: DB session, HR cookie auth, CSRF check, employee cookie."""

from dataclasses import dataclass
from typing import Generator

import jwt
from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from onboarding_api.core.config import settings
from onboarding_api.core.security import decode_session_token
from onboarding_api.db.session import SessionLocal
from onboarding_api.services.audit_service import AuditActor, hr_actor


CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


@dataclass
class HRSession:
    email: str
    name: str

    @property
    def actor(self) -> AuditActor:
        return hr_actor(self.email, self.name)


def get_db() -> Generator[Session, None, None]:
    """One session per request, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_hr_session(request: Request) -> HRSession:
    """
    HR user from the signed session cookie.

    401 when the cookie is missing or the JWT does not verify, 403 when the
    email is not on ADMIN_EMAILS.
    """
    token = request.cookies.get(settings.HR_SESSION_COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_session_token(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid session")

    email = str(payload.get("sub") or "").strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail="Invalid session")
    if email not in settings.admin_emails_list:
        raise HTTPException(status_code=403, detail="HR access required")

    return HRSession(email=email, name=payload.get("name") or email)


def require_csrf_header(request: Request) -> None:
    """HR mutations must carry the X-Requested-With header (403 otherwise)."""
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def get_onboarding_session_token(request: Request) -> str | None:
    """Raw employee session cookie, if any."""
    return request.cookies.get(settings.ONBOARDING_SESSION_COOKIE_NAME)


def get_client_ip(request: Request) -> str | None:
    """Client address, honouring X-Forwarded-For only behind a trusted proxy."""
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
