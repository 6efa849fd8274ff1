"""Onboarding audit trail.

Entries are written after the transition they describe has committed, in a
transaction of their own. A failed write is logged and dropped; it never
fails the request that triggered it.

Security guidelines:
- NEVER put tokens, OTPs or form payload values in metadata
- Use IDs and status names instead of raw data where possible
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from onboarding_api.core.structured_logging import log_context
from onboarding_api.db.enums import AuditAction, AuditActorType
from onboarding_api.db.models import Onboarding, OnboardingAuditLog
from onboarding_api.db.session import SessionLocal
from onboarding_api.utils.dates import end_of_day, start_of_day
from onboarding_api.utils.pagination import PaginationParams

logger = logging.getLogger(__name__)


@dataclass
class AuditActor:
    type: AuditActorType
    name: str
    email: str | None = None
    id: str | None = None


SYSTEM_ACTOR = AuditActor(type=AuditActorType.SYSTEM, name="System")


def employee_actor(onboarding: Onboarding) -> AuditActor:
    return AuditActor(
        type=AuditActorType.EMPLOYEE,
        id=str(onboarding.id),
        name=f"{onboarding.first_name} {onboarding.last_name}".strip(),
        email=onboarding.email,
    )


def hr_actor(email: str, name: str | None = None) -> AuditActor:
    return AuditActor(type=AuditActorType.HR, id=email, name=name or email, email=email)


def log_onboarding_event(
    db: Session,
    onboarding_id: UUID,
    action: AuditAction,
    actor: AuditActor,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> OnboardingAuditLog:
    """Append an audit entry and commit it."""
    entry = OnboardingAuditLog(
        onboarding_id=onboarding_id,
        action=action.value,
        actor_type=actor.type.value,
        actor_id=actor.id,
        actor_name=actor.name,
        actor_email=actor.email,
        message=message,
        meta=metadata or None,
    )
    db.add(entry)
    db.commit()
    return entry


def log_onboarding_event_safe(
    db: Session,
    onboarding_id: UUID,
    action: AuditAction,
    actor: AuditActor,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> OnboardingAuditLog | None:
    """Best-effort variant: failures are logged and swallowed."""
    try:
        return log_onboarding_event(db, onboarding_id, action, actor, message, metadata)
    except Exception:
        db.rollback()
        logger.warning(
            "Audit log write failed action=%s",
            action.value,
            exc_info=True,
            extra=log_context(onboarding_id, actor=actor.type.value),
        )
        return None


def list_audit_logs(
    db: Session,
    onboarding_id: UUID,
    pagination: PaginationParams,
    date_from: date | None = None,
    date_to: date | None = None,
    newest_first: bool = True,
) -> tuple[list[OnboardingAuditLog], int]:
    """
    List audit entries for one onboarding.

    date_to is inclusive (through the end of that day, UTC).
    """
    query = db.query(OnboardingAuditLog).filter(OnboardingAuditLog.onboarding_id == onboarding_id)
    if date_from:
        query = query.filter(OnboardingAuditLog.created_at >= start_of_day(date_from))
    if date_to:
        query = query.filter(OnboardingAuditLog.created_at <= end_of_day(date_to))

    total = query.count()
    order = (
        OnboardingAuditLog.created_at.desc() if newest_first else OnboardingAuditLog.created_at.asc()
    )
    items = query.order_by(order).offset(pagination.offset).limit(pagination.per_page).all()
    return items, total


def _write_event_in_own_session(
    onboarding_id: UUID,
    action: AuditAction,
    actor: AuditActor,
    message: str,
    metadata: dict[str, Any] | None,
) -> None:
    with SessionLocal() as db:
        log_onboarding_event_safe(db, onboarding_id, action, actor, message, metadata)


def log_onboarding_event_after_response(
    background_tasks: BackgroundTasks,
    onboarding_id: UUID,
    action: AuditAction,
    actor: AuditActor,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> None:
    """
    Queue the entry to be written once the response is sent.

    The write uses its own session, so neither its latency nor its errors
    reach the request that triggered it.
    """
    background_tasks.add_task(
        _write_event_in_own_session, onboarding_id, action, actor, message, metadata
    )
