"""Employee form submission: POST /onboarding/{id}."""

import os

import pytest
from sqlalchemy import update

from onboarding_api.core.config import settings
from onboarding_api.core.errors import StorageFailureError
from onboarding_api.db.enums import AuditAction, OnboardingStatus, Subsidiary
from onboarding_api.db.models import Onboarding, OnboardingAuditLog
from onboarding_api.services import storage_service


def _final_files(storage_root: str) -> list[str]:
    root = os.path.join(storage_root, "submissions")
    found = []
    for dirpath, _dirnames, filenames in os.walk(root):
        found.extend(os.path.join(dirpath, name) for name in filenames)
    return found


def _forbid_storage(monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise AssertionError("storage must not be touched")

    monkeypatch.setattr(storage_service, "copy_object", fail)


async def _submit(client, onboarding, token, body):
    client.cookies.set(settings.ONBOARDING_SESSION_COOKIE_NAME, token)
    return await client.post(f"/onboarding/{onboarding.id}", json=body)


# =============================================================================
# Success paths
# =============================================================================

@pytest.mark.asyncio
async def test_submit_finalizes_assets_and_transitions(
    client, make_onboarding, submit_body, db, fake_geocoder
):
    onboarding, token = make_onboarding()
    body = submit_body(onboarding)
    temp_keys = [
        body["indiaFormData"]["governmentIds"]["aadhaar"]["file"]["s3Key"],
        body["indiaFormData"]["governmentIds"]["panCard"]["file"]["s3Key"],
        body["indiaFormData"]["declaration"]["signature"]["file"]["s3Key"],
    ]

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["status"] == "Submitted"
    assert "Max-Age=0" in response.headers["set-cookie"]

    db.refresh(onboarding)
    assert onboarding.status == OnboardingStatus.SUBMITTED.value
    assert onboarding.submitted_at is not None
    assert onboarding.is_form_complete is True

    form = onboarding.form_data
    aadhaar = form["governmentIds"]["aadhaar"]["file"]
    pan = form["governmentIds"]["panCard"]["file"]
    signature = form["declaration"]["signature"]["file"]
    assert aadhaar["s3Key"].startswith(f"submissions/onboardings/{onboarding.id}/gov-aadhaar/")
    assert pan["s3Key"].startswith(f"submissions/onboardings/{onboarding.id}/gov-pan/")
    assert signature["s3Key"].startswith(
        f"submissions/onboardings/{onboarding.id}/declaration-signature/"
    )
    assert aadhaar["url"] == f"/files/{aadhaar['s3Key']}"
    assert aadhaar["originalName"] == "aadhaar.pdf"
    assert not any(
        key in {aadhaar["s3Key"], pan["s3Key"], signature["s3Key"]} for key in temp_keys
    )

    assert onboarding.location_at_submit["city"] == "Bengaluru"
    assert "timezone" not in onboarding.location_at_submit
    assert onboarding.location_at_submit["latitude"] == pytest.approx(12.9716)
    assert fake_geocoder == [(12.9716, 77.5946)]

    # One-time session
    assert onboarding.invite_token_hash is None
    assert onboarding.invite_expires_at is None

    entries = db.query(OnboardingAuditLog).filter_by(onboarding_id=onboarding.id).all()
    assert [e.action for e in entries] == [AuditAction.SUBMITTED.value]
    assert entries[0].actor_type == "EMPLOYEE"
    assert entries[0].meta == {"fromStatus": "InviteGenerated", "toStatus": "Submitted"}


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_submission(client, make_onboarding, submit_body, db, monkeypatch):
    from onboarding_api.services import audit_service

    def broken_write(*args, **kwargs):
        raise RuntimeError("audit sink down")

    monkeypatch.setattr(audit_service, "log_onboarding_event", broken_write)
    onboarding, token = make_onboarding()

    response = await _submit(client, onboarding, token, submit_body(onboarding))

    assert response.status_code == 200
    db.refresh(onboarding)
    assert onboarding.status == OnboardingStatus.SUBMITTED.value
    assert db.query(OnboardingAuditLog).count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("subsidiary", [Subsidiary.CANADA, Subsidiary.USA])
async def test_submit_other_subsidiaries(client, make_onboarding, submit_body, db, subsidiary):
    onboarding, token = make_onboarding(subsidiary=subsidiary)

    response = await _submit(client, onboarding, token, submit_body(onboarding))

    assert response.status_code == 200
    db.refresh(onboarding)
    assert onboarding.status == "Submitted"
    assert onboarding.india_form_data is None
    folder = "gov-sin" if subsidiary == Subsidiary.CANADA else "gov-ssn"
    key_field = "sin" if subsidiary == Subsidiary.CANADA else "ssn"
    assert onboarding.form_data["governmentIds"][key_field]["file"]["s3Key"].startswith(
        f"submissions/onboardings/{onboarding.id}/{folder}/"
    )


@pytest.mark.asyncio
async def test_identity_comes_from_record(client, make_onboarding, submit_body, db):
    onboarding, token = make_onboarding()
    body = submit_body(onboarding)
    body["indiaFormData"]["personalInfo"]["firstName"] = "Mallory"
    body["indiaFormData"]["personalInfo"]["email"] = "mallory@example.com"

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 200
    db.refresh(onboarding)
    info = onboarding.form_data["personalInfo"]
    assert info["firstName"] == onboarding.first_name == "Asha"
    assert info["email"] == onboarding.email


@pytest.mark.asyncio
async def test_resubmit_after_modification_request(
    client, make_onboarding, submit_body, db, monkeypatch, upload_temp_file
):
    onboarding, token = make_onboarding(status=OnboardingStatus.MODIFICATION_REQUESTED)
    body = submit_body(onboarding)
    # Aadhaar was finalized on the first submission; PAN is re-uploaded
    final_key = f"submissions/onboardings/{onboarding.id}/gov-aadhaar/prev-aadhaar.pdf"
    body["indiaFormData"]["governmentIds"]["aadhaar"]["file"] = {
        "s3Key": final_key,
        "url": f"/files/{final_key}",
        "mimeType": "application/pdf",
        "sizeBytes": 10,
        "originalName": "aadhaar.pdf",
    }

    copied: list[str] = []
    real_copy = storage_service.copy_object

    def tracking_copy(src_key, dest_prefix, filename=None):
        copied.append(src_key)
        return real_copy(src_key, dest_prefix, filename)

    monkeypatch.setattr(storage_service, "copy_object", tracking_copy)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "Resubmitted"
    assert "Max-Age=0" in response.headers["set-cookie"]
    assert final_key not in copied
    assert len(copied) == 2

    db.refresh(onboarding)
    assert onboarding.status == OnboardingStatus.RESUBMITTED.value
    assert onboarding.form_data["governmentIds"]["aadhaar"]["file"]["s3Key"] == final_key

    actions = [e.action for e in db.query(OnboardingAuditLog).filter_by(onboarding_id=onboarding.id)]
    assert actions == [AuditAction.RESUBMITTED.value]


@pytest.mark.asyncio
async def test_shared_upload_is_copied_once(client, make_onboarding, submit_body, monkeypatch, db):
    onboarding, token = make_onboarding()
    body = submit_body(onboarding)
    gov = body["indiaFormData"]["governmentIds"]
    gov["panCard"]["file"] = dict(gov["aadhaar"]["file"])

    copied: list[str] = []
    real_copy = storage_service.copy_object

    def tracking_copy(src_key, dest_prefix, filename=None):
        copied.append(src_key)
        return real_copy(src_key, dest_prefix, filename)

    monkeypatch.setattr(storage_service, "copy_object", tracking_copy)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 200
    assert copied.count(gov["aadhaar"]["file"]["s3Key"]) == 1
    db.refresh(onboarding)
    form_gov = onboarding.form_data["governmentIds"]
    assert form_gov["panCard"]["file"]["s3Key"] == form_gov["aadhaar"]["file"]["s3Key"]


@pytest.mark.asyncio
async def test_session_cannot_be_reused(client, make_onboarding, submit_body):
    onboarding, token = make_onboarding()
    first = await _submit(client, onboarding, token, submit_body(onboarding))
    assert first.status_code == 200

    second = await _submit(client, onboarding, token, submit_body(onboarding))

    assert second.status_code == 401
    assert second.json()["code"] == "SESSION_REQUIRED"


# =============================================================================
# Preconditions
# =============================================================================

@pytest.mark.asyncio
async def test_missing_session(client, make_onboarding, submit_body):
    onboarding, _ = make_onboarding()

    response = await client.post(f"/onboarding/{onboarding.id}", json=submit_body(onboarding))

    assert response.status_code == 401
    assert response.json()["meta"]["reason"] == "MISSING_OR_INVALID_COOKIE"
    assert "Max-Age=0" in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_session_for_other_onboarding(client, make_onboarding, submit_body):
    first, token = make_onboarding()
    other, _ = make_onboarding()

    response = await _submit(client, other, token, submit_body(other))

    assert response.status_code == 401
    assert response.json()["meta"]["reason"] == "SESSION_NOT_FOUND_OR_MISMATCH"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [
        OnboardingStatus.SUBMITTED,
        OnboardingStatus.RESUBMITTED,
        OnboardingStatus.APPROVED,
        OnboardingStatus.TERMINATED,
    ],
)
async def test_not_editable_statuses(client, make_onboarding, submit_body, monkeypatch, status, db):
    onboarding, token = make_onboarding(status=status)
    body = submit_body(onboarding)
    _forbid_storage(monkeypatch)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 403
    assert response.json()["code"] == "NOT_EDITABLE"
    db.refresh(onboarding)
    assert onboarding.status == status.value
    assert db.query(OnboardingAuditLog).count() == 0


@pytest.mark.asyncio
async def test_unsupported_subsidiary_key(client, make_onboarding, submit_body, monkeypatch):
    onboarding, token = make_onboarding(subsidiary=Subsidiary.INDIA)
    body = submit_body(onboarding, subsidiary=Subsidiary.CANADA)
    _forbid_storage(monkeypatch)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 400
    assert response.json()["code"] == "UNSUPPORTED_SUBSIDIARY"


@pytest.mark.asyncio
async def test_foreign_form_key_rejected_alongside_own(client, make_onboarding, submit_body, monkeypatch, db):
    onboarding, token = make_onboarding(subsidiary=Subsidiary.INDIA)
    body = submit_body(onboarding)
    body["canadaFormData"] = {"personalInfo": {}}
    _forbid_storage(monkeypatch)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 400
    assert response.json()["code"] == "UNSUPPORTED_SUBSIDIARY"
    db.refresh(onboarding)
    assert onboarding.status == "InviteGenerated"


# =============================================================================
# File ownership
# =============================================================================

def _asset(key: str) -> dict:
    return {
        "s3Key": key,
        "url": f"/files/{key}",
        "mimeType": "application/pdf",
        "sizeBytes": 10,
        "originalName": "doc.pdf",
    }


@pytest.mark.asyncio
async def test_non_temp_key_is_rejected(client, make_onboarding, submit_body, monkeypatch, storage_root, db):
    onboarding, token = make_onboarding()
    storage_service.put_object("private/hr/payroll.pdf", b"%PDF payroll", "application/pdf")
    body = submit_body(onboarding)
    body["indiaFormData"]["governmentIds"]["aadhaar"]["file"] = _asset("private/hr/payroll.pdf")
    _forbid_storage(monkeypatch)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "VALIDATION_FAILED"
    assert [e["field"] for e in payload["errors"]] == ["governmentIds.aadhaar.file.s3Key"]
    assert _final_files(storage_root) == []
    db.refresh(onboarding)
    assert onboarding.status == "InviteGenerated"
    assert onboarding.form_data is None


@pytest.mark.asyncio
async def test_other_records_final_key_is_rejected(client, make_onboarding, submit_body, monkeypatch):
    onboarding, token = make_onboarding()
    other, _ = make_onboarding()
    body = submit_body(onboarding)
    foreign = f"submissions/onboardings/{other.id}/gov-pan/pan.pdf"
    body["indiaFormData"]["governmentIds"]["panCard"]["file"] = _asset(foreign)
    _forbid_storage(monkeypatch)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 400
    assert [e["field"] for e in response.json()["errors"]] == ["governmentIds.panCard.file.s3Key"]


@pytest.mark.asyncio
async def test_other_records_temp_upload_is_rejected(
    client, make_onboarding, submit_body, upload_temp_file, monkeypatch
):
    onboarding, token = make_onboarding()
    other, _ = make_onboarding()
    body = submit_body(onboarding, with_employment=True)
    body["indiaFormData"]["employmentHistory"][0]["experienceCertificateFile"] = upload_temp_file(
        "experience.pdf", owner=other.id
    )
    _forbid_storage(monkeypatch)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 400
    assert [e["field"] for e in response.json()["errors"]] == [
        "employmentHistory[0].experienceCertificateFile.s3Key"
    ]


@pytest.mark.asyncio
async def test_traversal_key_is_rejected(client, make_onboarding, submit_body, monkeypatch):
    onboarding, token = make_onboarding()
    body = submit_body(onboarding)
    sneaky = f"temp/onboardings/{onboarding.id}/uploads/../../../private/hr/payroll.pdf"
    body["indiaFormData"]["governmentIds"]["aadhaar"]["file"] = _asset(sneaky)
    _forbid_storage(monkeypatch)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_FAILED"


@pytest.mark.asyncio
async def test_validation_failure_finalizes_nothing(
    client, make_onboarding, submit_body, monkeypatch, db
):
    onboarding, token = make_onboarding()
    body = submit_body(onboarding)
    body["indiaFormData"]["education"] = [{"highestLevel": "PrimarySchool"}]
    _forbid_storage(monkeypatch)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "VALIDATION_FAILED"
    assert {e["field"] for e in payload["errors"]} == {
        "education[0].schoolName",
        "education[0].primaryYearCompleted",
    }
    db.refresh(onboarding)
    assert onboarding.status == "InviteGenerated"


@pytest.mark.asyncio
async def test_missing_form_payload(client, make_onboarding):
    onboarding, token = make_onboarding()

    response = await _submit(client, onboarding, token, {"turnstileToken": "x"})

    assert response.status_code == 400
    assert response.json()["errors"] == [
        {"field": "indiaFormData", "message": "indiaFormData is required"}
    ]


@pytest.mark.asyncio
async def test_bot_check_failure(client, make_onboarding, submit_body, monkeypatch, storage_root):
    from onboarding_api.services import bot_verification_service

    async def reject(token, remote_ip=None):
        return bot_verification_service.BotVerificationResult(ok=False, error="invalid-input-response")

    monkeypatch.setattr(bot_verification_service, "verify_token", reject)
    onboarding, token = make_onboarding()

    response = await _submit(client, onboarding, token, submit_body(onboarding))

    assert response.status_code == 400
    assert response.json()["code"] == "BOT_CHECK_FAILED"
    assert response.json()["meta"] == {"reason": "invalid-input-response"}
    assert _final_files(storage_root) == []


@pytest.mark.asyncio
async def test_bot_check_misconfigured(client, make_onboarding, submit_body, monkeypatch):
    monkeypatch.setattr(settings, "TURNSTILE_ENABLED", True)
    monkeypatch.setattr(settings, "TURNSTILE_SECRET_KEY", "")
    onboarding, token = make_onboarding()

    response = await _submit(client, onboarding, token, submit_body(onboarding))

    assert response.status_code == 500
    assert response.json()["code"] == "BOT_CHECK_MISCONFIGURED"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "location",
    [None, {"latitude": 12.9}, {"latitude": "12.9", "longitude": "77.5"}, {"latitude": 95, "longitude": 10}],
)
async def test_location_required(client, make_onboarding, submit_body, location, fake_geocoder):
    onboarding, token = make_onboarding()
    body = submit_body(onboarding)
    body["location"] = location

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 400
    assert response.json()["code"] == "LOCATION_REQUIRED"
    assert fake_geocoder == []


@pytest.mark.asyncio
async def test_geocoder_failure(client, make_onboarding, submit_body, monkeypatch, storage_root, db):
    from onboarding_api.services import geocoding_service

    async def unavailable(latitude, longitude):
        raise geocoding_service.GeocodingError("Geocoder returned 503")

    monkeypatch.setattr(geocoding_service, "reverse_geocode", unavailable)
    onboarding, token = make_onboarding()

    response = await _submit(client, onboarding, token, submit_body(onboarding))

    assert response.status_code == 502
    assert response.json()["code"] == "LOCATION_UNRESOLVED"
    assert _final_files(storage_root) == []
    db.refresh(onboarding)
    assert onboarding.status == "InviteGenerated"
    assert onboarding.invite_token_hash is not None


# =============================================================================
# Failure rollback
# =============================================================================

@pytest.mark.asyncio
async def test_copy_failure_removes_finalized_files(
    client, make_onboarding, submit_body, monkeypatch, storage_root, db
):
    onboarding, token = make_onboarding()
    body = submit_body(onboarding, with_employment=True)

    real_copy = storage_service.copy_object
    calls: list[str] = []

    def flaky_copy(src_key, dest_prefix, filename=None):
        calls.append(src_key)
        if len(calls) == 4:
            raise StorageFailureError(f"Failed to copy object {src_key}")
        return real_copy(src_key, dest_prefix, filename)

    deleted: list[list[str]] = []
    real_delete = storage_service.delete_objects

    def tracking_delete(keys):
        deleted.append(list(keys))
        return real_delete(keys)

    monkeypatch.setattr(storage_service, "copy_object", flaky_copy)
    monkeypatch.setattr(storage_service, "delete_objects", tracking_delete)

    response = await _submit(client, onboarding, token, body)

    assert response.status_code == 500
    assert response.json()["code"] == "STORAGE_FAILURE"
    assert len(calls) == 4
    assert len(deleted) == 1 and len(deleted[0]) == 3
    assert all(key.startswith(f"submissions/onboardings/{onboarding.id}/") for key in deleted[0])
    assert _final_files(storage_root) == []

    db.refresh(onboarding)
    assert onboarding.status == "InviteGenerated"
    assert onboarding.form_data is None
    assert db.query(OnboardingAuditLog).count() == 0


@pytest.mark.asyncio
async def test_persist_failure_leaves_record_unchanged(
    client, make_onboarding, submit_body, monkeypatch, storage_root, db
):
    from sqlalchemy.exc import OperationalError

    onboarding, token = make_onboarding()

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", failing_commit)

    response = await _submit(client, onboarding, token, submit_body(onboarding))

    assert response.status_code == 500
    assert response.json()["code"] == "PERSIST_FAILURE"
    assert _final_files(storage_root) == []

    db.refresh(onboarding)
    assert onboarding.status == "InviteGenerated"
    assert onboarding.submitted_at is None
    assert onboarding.invite_token_hash is not None


@pytest.mark.asyncio
async def test_concurrent_transition_loses_claim(
    client, make_onboarding, submit_body, monkeypatch, storage_root, db
):
    from onboarding_api.services import onboarding_session_service

    onboarding, token = make_onboarding()
    real_require = onboarding_session_service.require_onboarding_session

    def require_then_race(db_, raw_token, onboarding_id, **kwargs):
        record = real_require(db_, raw_token, onboarding_id, **kwargs)
        # Another request moves the row on after this one has loaded it
        db_.execute(
            update(Onboarding)
            .where(Onboarding.id == record.id)
            .values(status=OnboardingStatus.MODIFICATION_REQUESTED.value)
            .execution_options(synchronize_session=False)
        )
        return record

    monkeypatch.setattr(onboarding_session_service, "require_onboarding_session", require_then_race)

    response = await _submit(client, onboarding, token, submit_body(onboarding))

    assert response.status_code == 403
    assert response.json()["code"] == "NOT_EDITABLE"
    assert _final_files(storage_root) == []
    assert db.query(OnboardingAuditLog).count() == 0
