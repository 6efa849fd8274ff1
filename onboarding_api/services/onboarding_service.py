"""Onboarding record helpers: lookup, creation, invites and sanitized views."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session

from onboarding_api.core.config import settings
from onboarding_api.core.errors import BadRequestError, NotFoundError
from onboarding_api.core.security import generate_invite_token, hash_invite_token
from onboarding_api.db.enums import OnboardingMethod, OnboardingStatus, Subsidiary
from onboarding_api.db.models import FORM_DATA_KEYS, Onboarding
from onboarding_api.utils.dates import end_of_day, isoformat_or_none, start_of_day, utcnow
from onboarding_api.utils.normalization import normalize_email, normalize_name
from onboarding_api.utils.pagination import PaginationParams

logger = logging.getLogger(__name__)


def parse_onboarding_id(value: str | UUID) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def get_onboarding(db: Session, onboarding_id: UUID) -> Onboarding | None:
    return db.query(Onboarding).filter(Onboarding.id == onboarding_id).first()


def get_onboarding_or_404(db: Session, onboarding_id: str | UUID) -> Onboarding:
    parsed = parse_onboarding_id(onboarding_id)
    onboarding = get_onboarding(db, parsed) if parsed else None
    if not onboarding:
        raise NotFoundError("Onboarding not found")
    return onboarding


def find_digital_onboarding_by_token(db: Session, raw_token: str) -> Onboarding | None:
    """Look up a digital onboarding by the hash of its raw invite token."""
    return (
        db.query(Onboarding)
        .filter(
            Onboarding.invite_token_hash == hash_invite_token(raw_token),
            Onboarding.method == OnboardingMethod.DIGITAL.value,
        )
        .first()
    )


# =============================================================================
# Invites
# =============================================================================

def issue_invite(onboarding: Onboarding, now: datetime | None = None) -> str:
    """
    Attach a fresh invite to the record (in memory) and return the raw token.

    The raw token is only ever emailed; the record keeps its hash.
    """
    now = now or utcnow()
    raw_token = generate_invite_token()
    onboarding.invite_token_hash = hash_invite_token(raw_token)
    onboarding.invite_expires_at = now + timedelta(hours=settings.INVITE_EXPIRES_HOURS)
    onboarding.invite_last_sent_at = now
    onboarding.clear_otp()
    return raw_token


def create_onboarding(
    db: Session,
    *,
    subsidiary: Subsidiary,
    method: OnboardingMethod,
    first_name: str,
    last_name: str,
    email: str,
) -> tuple[Onboarding, str | None]:
    """
    Create an onboarding record.

    Digital onboardings start in InviteGenerated with a fresh invite;
    manual ones start in ManualPDFSent.

    Returns:
        (onboarding, raw_invite_token or None)
    """
    onboarding = Onboarding(
        subsidiary=subsidiary.value,
        method=method.value,
        first_name=normalize_name(first_name) or "",
        last_name=normalize_name(last_name) or "",
        email=normalize_email(email) or "",
        status=(
            OnboardingStatus.INVITE_GENERATED.value
            if method == OnboardingMethod.DIGITAL
            else OnboardingStatus.MANUAL_PDF_SENT.value
        ),
    )
    raw_token = issue_invite(onboarding) if method == OnboardingMethod.DIGITAL else None
    db.add(onboarding)
    db.flush()
    return onboarding, raw_token


# =============================================================================
# Views
# =============================================================================

def create_onboarding_context(onboarding: Onboarding) -> dict[str, Any]:
    """
    Employee-safe view of a record.

    Omits invite/OTP state, submit location and HR-only timestamps.
    """
    context: dict[str, Any] = {
        "id": str(onboarding.id),
        "subsidiary": onboarding.subsidiary,
        "method": onboarding.method,
        "firstName": onboarding.first_name,
        "lastName": onboarding.last_name,
        "email": onboarding.email,
        "status": onboarding.status,
        "modificationRequestMessage": onboarding.modification_request_message,
        "modificationRequestedAt": isoformat_or_none(onboarding.modification_requested_at),
        "employeeNumber": onboarding.employee_number,
        "isFormComplete": onboarding.is_form_complete,
        "isCompleted": onboarding.is_completed,
        "createdAt": isoformat_or_none(onboarding.created_at),
        "updatedAt": isoformat_or_none(onboarding.updated_at),
        "submittedAt": isoformat_or_none(onboarding.submitted_at),
        "completedAt": isoformat_or_none(onboarding.completed_at),
    }
    form_data = onboarding.form_data
    if form_data is not None:
        context[FORM_DATA_KEYS[onboarding.subsidiary_enum]] = form_data
    return context


def create_admin_view(onboarding: Onboarding) -> dict[str, Any]:
    """HR view: everything except token and OTP hashes."""
    view = create_onboarding_context(onboarding)
    view.update(
        {
            "approvedAt": isoformat_or_none(onboarding.approved_at),
            "terminatedAt": isoformat_or_none(onboarding.terminated_at),
            "terminationType": onboarding.termination_type,
            "terminationReason": onboarding.termination_reason,
            "locationAtSubmit": onboarding.location_at_submit,
            "invite": (
                {
                    "expiresAt": isoformat_or_none(onboarding.invite_expires_at),
                    "lastSentAt": isoformat_or_none(onboarding.invite_last_sent_at),
                }
                if onboarding.invite_token_hash
                else None
            ),
        }
    )
    return view


# =============================================================================
# HR list
# =============================================================================

# Dashboard chips; an explicit status list takes precedence
STATUS_GROUPS: dict[str, tuple[OnboardingStatus, ...]] = {
    "pending": (OnboardingStatus.INVITE_GENERATED,),
    "modificationRequested": (OnboardingStatus.MODIFICATION_REQUESTED,),
    "pendingReview": (OnboardingStatus.SUBMITTED, OnboardingStatus.RESUBMITTED),
    "detailsConfirmed": (OnboardingStatus.DETAILS_CONFIRMED,),
    "approved": (OnboardingStatus.APPROVED,),
    "manual": (OnboardingStatus.MANUAL_PDF_SENT,),
    "terminated": (OnboardingStatus.TERMINATED,),
}

SORTABLE_COLUMNS = {
    "createdAt": Onboarding.created_at,
    "updatedAt": Onboarding.updated_at,
    "submittedAt": Onboarding.submitted_at,
    "approvedAt": Onboarding.approved_at,
    "terminatedAt": Onboarding.terminated_at,
    "firstName": Onboarding.first_name,
    "lastName": Onboarding.last_name,
    "email": Onboarding.email,
    "status": Onboarding.status,
    "employeeNumber": Onboarding.employee_number,
}

DATE_FIELDS = {
    "created": Onboarding.created_at,
    "submitted": Onboarding.submitted_at,
    "approved": Onboarding.approved_at,
    "terminated": Onboarding.terminated_at,
    "updated": Onboarding.updated_at,
}


def parse_status_list(raw: str | None) -> list[OnboardingStatus] | None:
    """
    Parse a comma-separated status filter.

    Raises:
        BadRequestError: If any entry is not a known status
    """
    if not raw:
        return None
    statuses = []
    for part in (p.strip() for p in raw.split(",")):
        if not part:
            continue
        try:
            statuses.append(OnboardingStatus(part))
        except ValueError:
            raise BadRequestError(f"Invalid status: {part}")
    return statuses or None


def list_onboardings(
    db: Session,
    subsidiary: Subsidiary,
    pagination: PaginationParams,
    *,
    q: str | None = None,
    method: OnboardingMethod | None = None,
    statuses: list[OnboardingStatus] | None = None,
    status_group: str | None = None,
    has_employee_number: bool | None = None,
    is_completed: bool | None = None,
    date_field: str = "created",
    date_from: date | None = None,
    date_to: date | None = None,
    sort_by: str = "createdAt",
    sort_dir: str = "desc",
) -> tuple[list[Onboarding], int]:
    """
    List one subsidiary's onboardings.

    Terminated records are left out unless the status filter or group asks
    for them. date_to is inclusive (through the end of that day, UTC).

    Returns:
        (onboardings, total_count)
    """
    query = db.query(Onboarding).filter(Onboarding.subsidiary == subsidiary.value)

    if statuses is None and status_group:
        statuses = list(STATUS_GROUPS[status_group])
    if statuses:
        query = query.filter(Onboarding.status.in_([s.value for s in statuses]))
    else:
        query = query.filter(Onboarding.status != OnboardingStatus.TERMINATED.value)

    if method:
        query = query.filter(Onboarding.method == method.value)

    if has_employee_number is True:
        query = query.filter(Onboarding.employee_number.is_not(None), Onboarding.employee_number != "")
    elif has_employee_number is False:
        query = query.filter(or_(Onboarding.employee_number.is_(None), Onboarding.employee_number == ""))

    if is_completed is not None:
        query = query.filter(Onboarding.is_completed.is_(is_completed))

    column = DATE_FIELDS[date_field]
    if date_from:
        query = query.filter(column >= start_of_day(date_from))
    if date_to:
        query = query.filter(column <= end_of_day(date_to))

    if q and q.strip():
        search = f"%{q.strip()}%"
        query = query.filter(
            or_(
                Onboarding.first_name.ilike(search),
                Onboarding.last_name.ilike(search),
                Onboarding.email.ilike(search),
                Onboarding.employee_number.ilike(search),
            )
        )

    total = query.count()
    order_func = asc if sort_dir == "asc" else desc
    items = (
        query.order_by(order_func(SORTABLE_COLUMNS[sort_by]), Onboarding.id)
        .offset(pagination.offset)
        .limit(pagination.per_page)
        .all()
    )
    return items, total


def create_list_item(onboarding: Onboarding) -> dict[str, Any]:
    """Row for the HR dashboard grid; no form data."""
    return {
        "id": str(onboarding.id),
        "subsidiary": onboarding.subsidiary,
        "method": onboarding.method,
        "firstName": onboarding.first_name,
        "lastName": onboarding.last_name,
        "email": onboarding.email,
        "status": onboarding.status,
        "employeeNumber": onboarding.employee_number,
        "isFormComplete": onboarding.is_form_complete,
        "isCompleted": onboarding.is_completed,
        "inviteExpiresAt": isoformat_or_none(onboarding.invite_expires_at),
        "modificationRequestedAt": isoformat_or_none(onboarding.modification_requested_at),
        "terminationType": onboarding.termination_type,
        "createdAt": isoformat_or_none(onboarding.created_at),
        "updatedAt": isoformat_or_none(onboarding.updated_at),
        "submittedAt": isoformat_or_none(onboarding.submitted_at),
        "approvedAt": isoformat_or_none(onboarding.approved_at),
        "terminatedAt": isoformat_or_none(onboarding.terminated_at),
    }
