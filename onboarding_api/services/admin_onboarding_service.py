"""HR actions on onboarding records.

Each action validates the current state, commits the transition, then
notifies the employee and appends an audit entry. Audit writes are best
effort. Email failures are fatal only where the email carries something the
employee needs (invite links). Approval, confirmation and termination
notices are logged on failure instead.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from onboarding_api.core.errors import BadRequestError, ConflictError, PersistFailureError
from onboarding_api.core.structured_logging import log_context
from onboarding_api.db.enums import (
    AuditAction,
    OnboardingMethod,
    OnboardingStatus,
    StorageNamespace,
    Subsidiary,
    TerminationType,
)
from onboarding_api.db.models import Onboarding
from onboarding_api.services import (
    audit_service,
    email_service,
    onboarding_service,
    onboarding_submission_service,
    storage_service,
)
from onboarding_api.services.asset_finalizer import AssetCache, AssetScope
from onboarding_api.services.audit_service import AuditActor
from onboarding_api.utils.dates import utcnow

logger = logging.getLogger(__name__)


def _log(onboarding: Onboarding, message: str, *args: Any) -> None:
    logger.info(message, *args, extra=log_context(onboarding.id, actor="HR"))


def infer_restore_status(onboarding: Onboarding) -> OnboardingStatus:
    """Status a terminated record returns to, based on how far it had progressed."""
    if onboarding.approved_at:
        return OnboardingStatus.APPROVED
    if onboarding.submitted_at:
        return OnboardingStatus.SUBMITTED
    if onboarding.is_digital:
        return OnboardingStatus.INVITE_GENERATED
    return OnboardingStatus.MANUAL_PDF_SENT


# =============================================================================
# Create
# =============================================================================

async def create_onboarding(
    db: Session,
    actor: AuditActor,
    *,
    subsidiary: Subsidiary,
    method: OnboardingMethod,
    first_name: str,
    last_name: str,
    email: str,
) -> Onboarding:
    """Create a record; digital onboardings get an emailed invite."""
    onboarding, raw_token = onboarding_service.create_onboarding(
        db,
        subsidiary=subsidiary,
        method=method,
        first_name=first_name,
        last_name=last_name,
        email=email,
    )
    if raw_token:
        try:
            await email_service.send_invite_email(onboarding.email, onboarding.first_name, raw_token)
        except Exception:
            db.rollback()
            raise
    db.commit()
    _log(onboarding, "Onboarding created (method=%s)", onboarding.method)

    audit_service.log_onboarding_event_safe(
        db,
        onboarding.id,
        AuditAction.INVITE_GENERATED if raw_token else AuditAction.STATUS_CHANGED,
        actor,
        "Invite generated" if raw_token else "Manual onboarding created",
        metadata={"toStatus": onboarding.status, "method": onboarding.method},
    )
    return onboarding


# =============================================================================
# Approve
# =============================================================================

async def approve_onboarding(
    db: Session,
    onboarding_id: str | UUID,
    actor: AuditActor,
    employee_number: str | None = None,
) -> Onboarding:
    """
    Approve a completed onboarding.

    Raises:
        NotFoundError, BadRequestError, ConflictError (employee number taken)
    """
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    status = onboarding.status_enum
    if status == OnboardingStatus.TERMINATED:
        raise BadRequestError("Terminated onboardings cannot be approved")
    if status == OnboardingStatus.APPROVED:
        raise BadRequestError("Onboarding is already approved")
    if not onboarding.is_form_complete:
        raise BadRequestError("Onboarding form is not complete")

    number = (employee_number or "").strip() or None
    if number:
        taken = (
            db.query(Onboarding.id)
            .filter(
                Onboarding.subsidiary == onboarding.subsidiary,
                Onboarding.employee_number == number,
                Onboarding.id != onboarding.id,
            )
            .first()
        )
        if taken:
            raise ConflictError(f"Employee number {number} is already in use")
        onboarding.employee_number = number

    now = utcnow()
    onboarding.status = OnboardingStatus.APPROVED.value
    onboarding.approved_at = now
    onboarding.completed_at = now
    onboarding.is_completed = True
    if onboarding.is_digital:
        onboarding.clear_invite()
        onboarding.clear_otp()

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f"Employee number {number} is already in use") from exc
    _log(onboarding, "Onboarding approved")

    try:
        await email_service.send_approval_email(onboarding.email, onboarding.first_name)
    except email_service.EmailDeliveryError:
        logger.warning("Approval email failed", exc_info=True)

    audit_service.log_onboarding_event_safe(
        db,
        onboarding.id,
        AuditAction.APPROVED,
        actor,
        "Onboarding approved",
        metadata={"fromStatus": status.value, "employeeNumber": onboarding.employee_number},
    )
    return onboarding


# =============================================================================
# Request modification
# =============================================================================

async def request_modification(
    db: Session,
    onboarding_id: str | UUID,
    actor: AuditActor,
    message: str,
) -> Onboarding:
    """
    Send a submitted form back to the employee with a fresh invite.

    If the email cannot be sent the record is put back as it was.
    """
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    status = onboarding.status_enum
    if not onboarding.is_digital:
        raise BadRequestError("Modification requests are only available for digital onboardings")
    if status in (OnboardingStatus.APPROVED, OnboardingStatus.TERMINATED):
        raise BadRequestError(f"Cannot request modification while {status.value}")
    if not onboarding.is_form_complete:
        raise BadRequestError("Onboarding form is not complete")
    if status not in (
        OnboardingStatus.SUBMITTED,
        OnboardingStatus.RESUBMITTED,
        OnboardingStatus.DETAILS_CONFIRMED,
    ):
        raise BadRequestError("Only submitted onboardings can be sent back for modification")
    message = (message or "").strip()
    if not message:
        raise BadRequestError("A message for the employee is required")

    snapshot = {
        "status": onboarding.status,
        "modification_request_message": onboarding.modification_request_message,
        "modification_requested_at": onboarding.modification_requested_at,
        "invite_token_hash": onboarding.invite_token_hash,
        "invite_expires_at": onboarding.invite_expires_at,
        "invite_last_sent_at": onboarding.invite_last_sent_at,
    }

    now = utcnow()
    raw_token = onboarding_service.issue_invite(onboarding, now)
    onboarding.status = OnboardingStatus.MODIFICATION_REQUESTED.value
    onboarding.modification_request_message = message
    onboarding.modification_requested_at = now
    db.commit()

    try:
        await email_service.send_modification_request_email(
            onboarding.email, onboarding.first_name, raw_token, message
        )
    except Exception:
        for attr, value in snapshot.items():
            setattr(onboarding, attr, value)
        try:
            db.commit()
        except Exception:
            db.rollback()
            logger.error(
                "Failed to restore onboarding after email failure",
                exc_info=True,
                extra=log_context(onboarding.id),
            )
        raise

    _log(onboarding, "Modification requested")
    audit_service.log_onboarding_event_safe(
        db,
        onboarding.id,
        AuditAction.MODIFICATION_REQUESTED,
        actor,
        "Modification requested",
        metadata={"fromStatus": status.value, "message": message},
    )
    return onboarding


# =============================================================================
# Edit form
# =============================================================================

def _delete_replaced_assets(onboarding: Onboarding, replaced: set[str]) -> None:
    """Best-effort removal of final files the new form no longer references."""
    scope = AssetScope.for_record(StorageNamespace.ONBOARDINGS, onboarding.id)
    keys = sorted(k for k in replaced if scope.owns_final(k))
    if not keys:
        return
    failed = storage_service.delete_objects(keys)
    if failed:
        logger.warning(
            "Cleanup left %d of %d replaced assets",
            len(failed),
            len(keys),
            extra=log_context(onboarding.id),
        )


def get_editable_onboarding(db: Session, onboarding_id: str | UUID) -> Onboarding:
    """HR may change the form of any onboarding except a terminated one."""
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    if onboarding.status_enum == OnboardingStatus.TERMINATED:
        raise BadRequestError("Cannot edit a terminated onboarding")
    return onboarding


def update_onboarding_form(
    db: Session,
    onboarding_id: str | UUID,
    actor: AuditActor,
    body: dict[str, Any],
) -> Onboarding:
    """
    Save HR edits to the form in any status but Terminated.

    The first save of an incomplete form marks it Submitted; later saves
    leave status and submittedAt alone. Files the edit replaced are deleted
    after the commit.

    Raises:
        NotFoundError, BadRequestError, UnsupportedSubsidiaryError,
        FormValidationError, StorageFailureError, PersistFailureError
    """
    onboarding = get_editable_onboarding(db, onboarding_id)
    status = onboarding.status_enum

    subsidiary = onboarding.subsidiary_enum
    onboarding_submission_service.reject_foreign_form_keys(subsidiary, body)
    payload = onboarding_submission_service.prepare_form_payload(onboarding, body)

    previous = onboarding.form_data
    previous_keys = set(
        onboarding_submission_service.collect_asset_keys(subsidiary, previous) if previous else []
    )
    first_submit = not onboarding.is_form_complete

    moved_final_keys: list[str] = []
    cache: AssetCache = {}
    saved = False
    now = utcnow()

    try:
        onboarding_submission_service.finalize_payload_assets(
            subsidiary, payload, onboarding.id, cache, moved_final_keys.append
        )
        onboarding.form_data = payload
        if first_submit:
            onboarding.is_form_complete = True
            onboarding.status = OnboardingStatus.SUBMITTED.value
            onboarding.submitted_at = now

        try:
            onboarding.validate_record()
        except ValueError as exc:
            raise PersistFailureError(str(exc)) from exc
        try:
            db.commit()
        except SQLAlchemyError as exc:
            raise PersistFailureError("Failed to save onboarding") from exc
        saved = True
    except Exception:
        if not saved:
            db.rollback()
            onboarding_submission_service.rollback_finalized_assets(onboarding.id, moved_final_keys)
        raise

    current_keys = set(onboarding_submission_service.collect_asset_keys(subsidiary, payload))
    _delete_replaced_assets(onboarding, previous_keys - current_keys)
    _log(onboarding, "Form updated by HR (%d assets finalized)", len(moved_final_keys))

    action = AuditAction.SUBMITTED if first_submit else AuditAction.DATA_UPDATED
    audit_service.log_onboarding_event_safe(
        db,
        onboarding.id,
        action,
        actor,
        "Onboarding form submitted by HR" if first_submit else "Onboarding form details updated by HR",
        metadata={"fromStatus": status.value, "toStatus": onboarding.status},
    )
    return onboarding


# =============================================================================
# Confirm details
# =============================================================================

async def confirm_details(db: Session, onboarding_id: str | UUID, actor: AuditActor) -> Onboarding:
    """
    Mark a completed form as checked by HR and tell the employee.

    Invite and OTP state are left untouched.
    """
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    status = onboarding.status_enum
    if status == OnboardingStatus.TERMINATED:
        raise BadRequestError("Cannot confirm details for a terminated onboarding")
    if status == OnboardingStatus.APPROVED:
        raise BadRequestError("Onboarding is already approved")
    if not onboarding.is_form_complete:
        raise BadRequestError("Cannot confirm details until the onboarding form is fully completed")
    if status == OnboardingStatus.DETAILS_CONFIRMED:
        raise BadRequestError("Details are already confirmed")

    onboarding.status = OnboardingStatus.DETAILS_CONFIRMED.value
    db.commit()
    _log(onboarding, "Details confirmed")

    try:
        await email_service.send_details_confirmed_email(onboarding.email, onboarding.first_name)
    except email_service.EmailDeliveryError:
        logger.warning("Details confirmed email failed", exc_info=True)

    audit_service.log_onboarding_event_safe(
        db,
        onboarding.id,
        AuditAction.DETAILS_CONFIRMED,
        actor,
        "Details confirmed; employee notified",
        metadata={"fromStatus": status.value, "toStatus": OnboardingStatus.DETAILS_CONFIRMED.value},
    )
    return onboarding


# =============================================================================
# Terminate / restore
# =============================================================================

async def terminate_onboarding(
    db: Session,
    onboarding_id: str | UUID,
    actor: AuditActor,
    termination_type: TerminationType,
    reason: str | None = None,
) -> Onboarding:
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    status = onboarding.status_enum
    if status == OnboardingStatus.TERMINATED:
        raise BadRequestError("Onboarding is already terminated")

    onboarding.status = OnboardingStatus.TERMINATED.value
    onboarding.terminated_at = utcnow()
    onboarding.termination_type = termination_type.value
    onboarding.termination_reason = (reason or "").strip() or None
    onboarding.clear_invite()
    onboarding.clear_otp()
    db.commit()
    _log(onboarding, "Onboarding terminated (%s)", termination_type.value)

    try:
        await email_service.send_termination_email(onboarding.email, onboarding.first_name)
    except email_service.EmailDeliveryError:
        logger.warning("Termination email failed", exc_info=True)

    audit_service.log_onboarding_event_safe(
        db,
        onboarding.id,
        AuditAction.TERMINATED,
        actor,
        "Onboarding terminated",
        metadata={"fromStatus": status.value, "terminationType": termination_type.value},
    )
    return onboarding


def restore_onboarding(db: Session, onboarding_id: str | UUID, actor: AuditActor) -> Onboarding:
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    if onboarding.status_enum != OnboardingStatus.TERMINATED:
        raise BadRequestError("Only terminated onboardings can be restored")

    restored = infer_restore_status(onboarding)
    onboarding.status = restored.value
    onboarding.terminated_at = None
    onboarding.termination_type = None
    onboarding.termination_reason = None
    db.commit()
    _log(onboarding, "Onboarding restored to %s", restored.value)

    audit_service.log_onboarding_event_safe(
        db,
        onboarding.id,
        AuditAction.STATUS_CHANGED,
        actor,
        f"Onboarding restored to {restored.value}",
        metadata={"fromStatus": OnboardingStatus.TERMINATED.value, "toStatus": restored.value},
    )
    return onboarding


# =============================================================================
# Resend invite
# =============================================================================

async def resend_invite(db: Session, onboarding_id: str | UUID, actor: AuditActor) -> Onboarding:
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    if not onboarding.is_digital:
        raise BadRequestError("Invites are only available for digital onboardings")
    if onboarding.status_enum != OnboardingStatus.INVITE_GENERATED:
        raise BadRequestError("Invite can only be resent before the form is submitted")

    raw_token = onboarding_service.issue_invite(onboarding)
    try:
        await email_service.send_invite_email(onboarding.email, onboarding.first_name, raw_token)
    except Exception:
        db.rollback()
        raise
    db.commit()
    _log(onboarding, "Invite resent")

    audit_service.log_onboarding_event_safe(
        db,
        onboarding.id,
        AuditAction.INVITE_RESENT,
        actor,
        "Invite resent",
    )
    return onboarding
