"""Employee form submission: validate, finalize uploads, transition, persist.

Order of operations for POST /onboarding/{id}:

1. Session guard (401)
2. Subsidiary check (400)
3. Status gate: InviteGenerated | ModificationRequested (403)
4. Identity canonicalization, form validation and file ownership
   (400 with field errors)
5. Bot verification (400, 500 when misconfigured)
6. Location: client lat/lng reverse-geocoded server-side (400 / 502)
7. Asset finalization, collecting every newly created key
8. Status transition + record validation + conditional write on prior status
9. After the response: audit entry (background task, best effort)

Any failure before the commit deletes the keys collected in step 7 and
re-raises the original error. Nothing is rolled back after the commit.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from onboarding_api.core.errors import (
    BotCheckFailedError,
    FormValidationError,
    LocationRequiredError,
    NotEditableError,
    PersistFailureError,
    UnsupportedSubsidiaryError,
)
from onboarding_api.core.structured_logging import log_context
from onboarding_api.db.enums import (
    AuditAction,
    OnboardingStatus,
    StorageFolder,
    StorageNamespace,
    Subsidiary,
)
from onboarding_api.db.models import FORM_DATA_KEYS, Onboarding
from onboarding_api.services import (
    audit_service,
    bot_verification_service,
    form_validation,
    geocoding_service,
    onboarding_service,
    onboarding_session_service,
    storage_service,
)
from onboarding_api.services.asset_finalizer import (
    AssetCache,
    AssetScope,
    finalize_asset,
    key_error,
)
from onboarding_api.utils.dates import utcnow

logger = logging.getLogger(__name__)


# Path segments to each file-bearing field; "*" iterates a list
AssetPath = tuple[str, ...]

_COMMON_ASSET_FIELDS: list[tuple[AssetPath, StorageFolder]] = [
    (("governmentIds", "passport", "frontFile"), StorageFolder.GOV_PASSPORT),
    (("governmentIds", "passport", "backFile"), StorageFolder.GOV_PASSPORT),
    (("governmentIds", "driversLicense", "frontFile"), StorageFolder.GOV_DRIVERS_LICENSE),
    (("governmentIds", "driversLicense", "backFile"), StorageFolder.GOV_DRIVERS_LICENSE),
    (("employmentHistory", "*", "experienceCertificateFile"), StorageFolder.EMPLOYMENT_CERTIFICATES),
    (("declaration", "signature", "file"), StorageFolder.DECLARATION_SIGNATURE),
]

ASSET_FIELDS: dict[Subsidiary, list[tuple[AssetPath, StorageFolder]]] = {
    Subsidiary.INDIA: [
        (("governmentIds", "aadhaar", "file"), StorageFolder.GOV_AADHAAR),
        (("governmentIds", "panCard", "file"), StorageFolder.GOV_PAN),
        *_COMMON_ASSET_FIELDS,
        (("bankDetails", "voidCheque", "file"), StorageFolder.BANK_VOID_CHEQUE),
    ],
    Subsidiary.CANADA: [
        (("governmentIds", "sin", "file"), StorageFolder.GOV_SIN),
        (("governmentIds", "prCard", "frontFile"), StorageFolder.GOV_PR_CARD),
        (("governmentIds", "prCard", "backFile"), StorageFolder.GOV_PR_CARD),
        (("governmentIds", "workPermit", "file"), StorageFolder.GOV_WORK_PERMIT),
        *_COMMON_ASSET_FIELDS,
        (("bankDetails", "directDepositDoc", "file"), StorageFolder.BANK_DIRECT_DEPOSIT),
    ],
    Subsidiary.USA: [
        (("governmentIds", "ssn", "file"), StorageFolder.GOV_SSN),
        (("governmentIds", "greenCard", "frontFile"), StorageFolder.GOV_GREEN_CARD),
        (("governmentIds", "greenCard", "backFile"), StorageFolder.GOV_GREEN_CARD),
        (("governmentIds", "workPermit", "file"), StorageFolder.GOV_WORK_PERMIT),
        *_COMMON_ASSET_FIELDS,
        (("bankDetails", "voidChequeOrDepositSlip", "file"), StorageFolder.BANK_VOID_CHEQUE),
    ],
}

_STATUS_TRANSITIONS: dict[OnboardingStatus, tuple[OnboardingStatus, AuditAction]] = {
    OnboardingStatus.INVITE_GENERATED: (OnboardingStatus.SUBMITTED, AuditAction.SUBMITTED),
    OnboardingStatus.MODIFICATION_REQUESTED: (OnboardingStatus.RESUBMITTED, AuditAction.RESUBMITTED),
}


@dataclass
class SubmitCoordinates:
    latitude: float
    longitude: float
    accuracy_meters: float | None = None


def next_submission_status(current: OnboardingStatus) -> tuple[OnboardingStatus, AuditAction]:
    """
    The employee-path state machine.

    Raises:
        NotEditableError: For any status other than InviteGenerated / ModificationRequested
    """
    try:
        return _STATUS_TRANSITIONS[current]
    except KeyError:
        raise NotEditableError(f"Onboarding cannot be submitted while {current.value}")


# =============================================================================
# Payload helpers
# =============================================================================

def _walk_assets(node: Any, path: AssetPath, label: str) -> Iterator[tuple[dict, str, str]]:
    """Yield (parent, key, field label) for every asset found at path."""
    if not path or node is None:
        return
    head, rest = path[0], path[1:]
    if head == "*":
        if isinstance(node, list):
            for i, item in enumerate(node):
                yield from _walk_assets(item, rest, f"{label}[{i}]")
        return
    if not isinstance(node, dict):
        return
    field = f"{label}.{head}" if label else head
    if not rest:
        asset = node.get(head)
        if isinstance(asset, dict) and asset:
            yield node, head, field
        return
    yield from _walk_assets(node.get(head), rest, field)


def iter_payload_assets(
    subsidiary: Subsidiary, payload: dict[str, Any]
) -> Iterator[tuple[dict, str, str, StorageFolder]]:
    """(parent, key, field label, folder) for every file-bearing field present."""
    for path, folder in ASSET_FIELDS[subsidiary]:
        for parent, key, field in _walk_assets(payload, path, ""):
            yield parent, key, field, folder


def collect_asset_keys(subsidiary: Subsidiary, payload: dict[str, Any]) -> list[str]:
    """Every s3Key referenced by a file-bearing field, in walk order."""
    keys: list[str] = []
    for parent, key, _field, _folder in iter_payload_assets(subsidiary, payload):
        s3_key = parent[key].get("s3Key")
        if isinstance(s3_key, str) and s3_key:
            keys.append(s3_key)
    return keys


def assert_assets_in_scope(
    subsidiary: Subsidiary, payload: dict[str, Any], scope: AssetScope
) -> None:
    """
    Raises:
        FormValidationError: Listing every field whose key the record may not use
    """
    errors = []
    for parent, key, field, _folder in iter_payload_assets(subsidiary, payload):
        error = key_error(parent[key], scope, field)
        if error:
            errors.append(error)
    if errors:
        raise FormValidationError(
            errors[0]["message"] if len(errors) == 1 else "Please correct the highlighted fields",
            errors=errors,
        )


def finalize_payload_assets(
    subsidiary: Subsidiary,
    payload: dict[str, Any],
    onboarding_id: UUID,
    cache: AssetCache,
    on_moved: Callable[[str], None],
) -> dict[str, Any]:
    """Finalize every temporary asset in payload (mutated in place) and return it."""
    scope = AssetScope.for_record(StorageNamespace.ONBOARDINGS, onboarding_id)
    for parent, key, field, folder in list(iter_payload_assets(subsidiary, payload)):
        destination = storage_service.make_final_prefix(
            StorageNamespace.ONBOARDINGS, onboarding_id, folder
        )
        parent[key] = finalize_asset(parent[key], destination, cache, on_moved, scope, field)
    return payload


def canonicalize_identity(onboarding: Onboarding, payload: dict[str, Any]) -> dict[str, Any]:
    """Identity always comes from the record, never from the client."""
    personal_info = payload.get("personalInfo")
    if not isinstance(personal_info, dict):
        personal_info = {}
    payload["personalInfo"] = {
        **personal_info,
        "firstName": onboarding.first_name,
        "lastName": onboarding.last_name,
        "email": onboarding.email,
    }
    return payload


def reject_foreign_form_keys(subsidiary: Subsidiary, body: dict[str, Any]) -> None:
    """
    Raises:
        UnsupportedSubsidiaryError: If the body carries another subsidiary's form
    """
    foreign_keys = [k for s, k in FORM_DATA_KEYS.items() if s != subsidiary and body.get(k) is not None]
    if foreign_keys:
        raise UnsupportedSubsidiaryError(
            f"{foreign_keys[0]} is not supported for {subsidiary.value} onboardings"
        )


def prepare_form_payload(onboarding: Onboarding, body: dict[str, Any]) -> dict[str, Any]:
    """
    Decode the record's form from a request body, ready for finalization.

    Identity is taken from the record and every file must belong to it.

    Raises:
        FormValidationError: Missing payload, invalid fields or foreign file keys
    """
    subsidiary = onboarding.subsidiary_enum
    form_key = FORM_DATA_KEYS[subsidiary]
    raw_payload = body.get(form_key)
    if not isinstance(raw_payload, dict):
        raise FormValidationError(
            f"{form_key} is required",
            errors=[{"field": form_key, "message": f"{form_key} is required"}],
        )

    payload = canonicalize_identity(onboarding, copy.deepcopy(raw_payload))
    payload = form_validation.parse_onboarding_form(subsidiary, payload).to_payload()
    assert_assets_in_scope(
        subsidiary, payload, AssetScope.for_record(StorageNamespace.ONBOARDINGS, onboarding.id)
    )
    return payload


def parse_coordinates(raw: Any) -> SubmitCoordinates | None:
    if not isinstance(raw, dict):
        return None
    lat, lng = raw.get("latitude"), raw.get("longitude")
    if isinstance(lat, bool) or isinstance(lng, bool):
        return None
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    accuracy = raw.get("accuracyMeters")
    if isinstance(accuracy, bool) or not isinstance(accuracy, (int, float)):
        accuracy = None
    return SubmitCoordinates(latitude=float(lat), longitude=float(lng), accuracy_meters=accuracy)


def rollback_finalized_assets(onboarding_id: UUID, moved_final_keys: list[str]) -> None:
    if not moved_final_keys:
        return
    failed = storage_service.delete_objects(moved_final_keys)
    if failed:
        logger.warning(
            "Rollback left %d of %d finalized assets",
            len(failed),
            len(moved_final_keys),
            extra=log_context(onboarding_id),
        )


# =============================================================================
# Orchestrator
# =============================================================================

async def submit_onboarding(
    db: Session,
    *,
    onboarding_id: str | UUID,
    raw_token: str | None,
    body: dict[str, Any],
    background_tasks: BackgroundTasks,
    remote_ip: str | None = None,
) -> dict[str, Any]:
    """
    Submit or resubmit the employee's form.

    Returns:
        Sanitized onboarding context after the commit

    Raises:
        OnboardingError subclasses, one per failed precondition
    """
    onboarding = onboarding_session_service.require_onboarding_session(
        db, raw_token, onboarding_id, allow_read_only=True, allow_closed=True
    )
    record_id = onboarding.id
    subsidiary = onboarding.subsidiary_enum
    reject_foreign_form_keys(subsidiary, body)

    prev_status = onboarding.status_enum
    next_status, audit_action = next_submission_status(prev_status)

    payload = prepare_form_payload(onboarding, body)

    verification = await bot_verification_service.verify_token(body.get("turnstileToken"), remote_ip)
    if not verification.ok:
        raise BotCheckFailedError(
            "Bot verification failed. Please try again.", meta={"reason": verification.error}
        )

    coordinates = parse_coordinates(body.get("location"))
    if coordinates is None:
        raise LocationRequiredError("Location is required to submit this form")
    try:
        place = await geocoding_service.reverse_geocode(coordinates.latitude, coordinates.longitude)
    except geocoding_service.GeocodingError as exc:
        logger.warning(
            "Reverse geocoding failed: %s",
            exc,
            extra=log_context(onboarding.id),
        )
        raise LocationRequiredError(
            "Could not verify your location. Please try again.",
            status_code=502,
            code="LOCATION_UNRESOLVED",
        ) from exc

    moved_final_keys: list[str] = []
    cache: AssetCache = {}
    saved = False
    now = utcnow()

    try:
        finalized = finalize_payload_assets(
            subsidiary, payload, onboarding.id, cache, moved_final_keys.append
        )

        onboarding.form_data = finalized
        onboarding.status = next_status.value
        onboarding.submitted_at = now
        onboarding.is_form_complete = True
        onboarding.location_at_submit = {
            "latitude": coordinates.latitude,
            "longitude": coordinates.longitude,
            "accuracyMeters": coordinates.accuracy_meters,
            "country": place.country,
            "region": place.region,
            "city": place.city,
            "capturedAt": now.isoformat(),
        }
        onboarding_session_service.revoke_session(onboarding)

        try:
            onboarding.validate_record()
        except ValueError as exc:
            raise PersistFailureError(str(exc)) from exc

        try:
            # Conditional write: only one request may move the record off prev_status.
            # Pending attribute changes are flushed by the commit, after the claim.
            with db.no_autoflush:
                claimed = db.execute(
                    update(Onboarding)
                    .where(Onboarding.id == record_id, Onboarding.status == prev_status.value)
                    .values(status=next_status.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
            if claimed.rowcount != 1:
                raise NotEditableError("Onboarding was modified by another request")
            db.commit()
        except SQLAlchemyError as exc:
            raise PersistFailureError("Failed to save onboarding") from exc
        saved = True
    except Exception:
        if not saved:
            db.rollback()
            rollback_finalized_assets(record_id, moved_final_keys)
        raise

    logger.info(
        "Onboarding %s -> %s (%d assets finalized)",
        prev_status.value,
        next_status.value,
        len(moved_final_keys),
        extra=log_context(onboarding.id, actor="EMPLOYEE"),
    )

    audit_service.log_onboarding_event_after_response(
        background_tasks,
        onboarding.id,
        audit_action,
        audit_service.employee_actor(onboarding),
        f"Employee {'resubmitted' if audit_action == AuditAction.RESUBMITTED else 'submitted'} onboarding form",
        metadata={"fromStatus": prev_status.value, "toStatus": next_status.value},
    )

    db.refresh(onboarding)
    return onboarding_service.create_onboarding_context(onboarding)
