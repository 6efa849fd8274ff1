"""Employee temp uploads: POST/DELETE /onboarding/{id}/files."""

import pytest

from onboarding_api.core.config import settings
from onboarding_api.db.enums import OnboardingStatus
from onboarding_api.services import storage_service

PDF = ("aadhaar.pdf", b"%PDF-1.4 aadhaar", "application/pdf")


async def _upload(client, onboarding, token, file=PDF):
    if token:
        client.cookies.set(settings.ONBOARDING_SESSION_COOKIE_NAME, token)
    return await client.post(f"/onboarding/{onboarding.id}/files", files={"file": file})


@pytest.mark.asyncio
async def test_upload_pdf(client, make_onboarding):
    onboarding, token = make_onboarding()

    response = await _upload(client, onboarding, token)

    assert response.status_code == 201
    asset = response.json()["data"]
    assert asset["s3Key"].startswith(f"temp/onboardings/{onboarding.id}/uploads/")
    assert asset["s3Key"].endswith("aadhaar.pdf")
    assert asset["mimeType"] == "application/pdf"
    assert asset["sizeBytes"] == len(PDF[1])
    assert asset["originalName"] == "aadhaar.pdf"
    assert storage_service.get_object_bytes(asset["s3Key"]) == PDF[1]


@pytest.mark.asyncio
async def test_upload_image_during_modification(client, make_onboarding):
    onboarding, token = make_onboarding(status=OnboardingStatus.MODIFICATION_REQUESTED)

    response = await _upload(client, onboarding, token, ("sign.png", b"\x89PNG data", "image/png"))

    assert response.status_code == 201
    assert response.json()["data"]["mimeType"] == "image/png"


@pytest.mark.asyncio
async def test_upload_rejects_unsupported_type(client, make_onboarding):
    onboarding, token = make_onboarding()

    response = await _upload(client, onboarding, token, ("notes.txt", b"hello", "text/plain"))

    assert response.status_code == 400
    assert response.json()["code"] == "UNSUPPORTED_FILE_TYPE"


@pytest.mark.asyncio
async def test_upload_rejects_empty_file(client, make_onboarding):
    onboarding, token = make_onboarding()

    response = await _upload(client, onboarding, token, ("empty.pdf", b"", "application/pdf"))

    assert response.status_code == 400
    assert response.json()["code"] == "EMPTY_FILE"


@pytest.mark.asyncio
async def test_upload_rejects_oversized_file(client, make_onboarding, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 8)
    onboarding, token = make_onboarding()

    response = await _upload(client, onboarding, token)

    assert response.status_code == 413
    assert response.json()["code"] == "FILE_TOO_LARGE"


@pytest.mark.asyncio
async def test_upload_requires_session(client, make_onboarding):
    onboarding, _ = make_onboarding()

    response = await _upload(client, onboarding, None)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_upload_refused_after_submission(client, make_onboarding):
    onboarding, token = make_onboarding(status=OnboardingStatus.SUBMITTED)

    response = await _upload(client, onboarding, token)

    assert response.status_code == 403
    assert response.json()["code"] == "READ_ONLY_STATE"


@pytest.mark.asyncio
async def test_upload_with_other_records_session(client, make_onboarding):
    onboarding, _ = make_onboarding()
    _, other_token = make_onboarding()

    response = await _upload(client, onboarding, other_token)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_delete_own_upload(client, make_onboarding):
    onboarding, token = make_onboarding()
    key = (await _upload(client, onboarding, token)).json()["data"]["s3Key"]

    response = await client.delete(f"/onboarding/{onboarding.id}/files/{key}")

    assert response.status_code == 200
    assert storage_service.get_local_file_path(key) is None


@pytest.mark.asyncio
async def test_delete_rejects_other_records_upload(client, make_onboarding, upload_temp_file):
    onboarding, token = make_onboarding()
    other, _ = make_onboarding()
    foreign = upload_temp_file(owner=other.id)
    client.cookies.set(settings.ONBOARDING_SESSION_COOKIE_NAME, token)

    response = await client.delete(f"/onboarding/{onboarding.id}/files/{foreign['s3Key']}")

    assert response.status_code == 400
    assert response.json()["code"] == "FILE_NOT_OWNED"
    assert storage_service.get_local_file_path(foreign["s3Key"]) is not None
