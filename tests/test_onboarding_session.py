"""Employee session cookie: resolve, read-only view and rejection reasons."""

from datetime import timedelta

import pytest

from onboarding_api.core.config import settings
from onboarding_api.db.enums import OnboardingMethod, OnboardingStatus
from onboarding_api.utils.dates import utcnow


def _with_session(client, token: str):
    client.cookies.set(settings.ONBOARDING_SESSION_COOKIE_NAME, token)
    return client


@pytest.mark.asyncio
async def test_resolve_without_cookie(client):
    response = await client.get("/onboarding/session/resolve")

    assert response.status_code == 200
    assert response.json()["data"] == {"onboardingId": None}
    assert "set-cookie" not in response.headers


@pytest.mark.asyncio
async def test_resolve_editable_session(client, make_onboarding):
    onboarding, token = make_onboarding()

    response = await _with_session(client, token).get("/onboarding/session/resolve")

    assert response.json()["data"] == {"onboardingId": str(onboarding.id)}


@pytest.mark.asyncio
async def test_resolve_submitted_session_clears_cookie(client, make_onboarding):
    _, token = make_onboarding(status=OnboardingStatus.SUBMITTED)

    response = await _with_session(client, token).get("/onboarding/session/resolve")

    assert response.json()["data"] == {"onboardingId": None}
    assert "Max-Age=0" in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_resolve_expired_invite(client, make_onboarding, db):
    onboarding, token = make_onboarding()
    onboarding.invite_expires_at = utcnow() - timedelta(seconds=5)
    db.commit()

    response = await _with_session(client, token).get("/onboarding/session/resolve")

    assert response.json()["data"] == {"onboardingId": None}


@pytest.mark.asyncio
async def test_get_editable_onboarding(client, make_onboarding):
    onboarding, token = make_onboarding()

    response = await _with_session(client, token).get(f"/onboarding/{onboarding.id}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == str(onboarding.id)
    assert data["status"] == "InviteGenerated"
    assert "indiaFormData" not in data
    for hidden in ("inviteTokenHash", "otpHash", "locationAtSubmit", "invite"):
        assert hidden not in data


@pytest.mark.asyncio
async def test_get_submitted_onboarding_read_only(client, make_onboarding):
    onboarding, token = make_onboarding(status=OnboardingStatus.SUBMITTED)

    response = await _with_session(client, token).get(f"/onboarding/{onboarding.id}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "Submitted"
    assert data["indiaFormData"]["personalInfo"]["firstName"] == "Asha"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [OnboardingStatus.APPROVED, OnboardingStatus.TERMINATED])
async def test_get_closed_onboarding(client, make_onboarding, status):
    onboarding, token = make_onboarding(status=status)

    response = await _with_session(client, token).get(f"/onboarding/{onboarding.id}")

    assert response.status_code == 401
    assert response.json()["meta"]["reason"] == status.value.upper()
    assert "Max-Age=0" in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_get_with_expired_invite(client, make_onboarding, db):
    onboarding, token = make_onboarding()
    onboarding.invite_expires_at = utcnow() - timedelta(seconds=5)
    db.commit()

    response = await _with_session(client, token).get(f"/onboarding/{onboarding.id}")

    assert response.status_code == 401
    assert response.json()["meta"]["reason"] == "INVITE_EXPIRED"


@pytest.mark.asyncio
async def test_get_with_invalid_id(client, make_onboarding):
    _, token = make_onboarding()

    response = await _with_session(client, token).get("/onboarding/not-a-uuid")

    assert response.status_code == 401
    assert response.json()["meta"]["reason"] == "INVALID_ONBOARDING_ID"


@pytest.mark.asyncio
async def test_manual_onboarding_has_no_session(client, make_onboarding, db):
    onboarding, token = make_onboarding(
        method=OnboardingMethod.MANUAL, status=OnboardingStatus.MANUAL_PDF_SENT
    )
    assert token is None

    response = await _with_session(client, "anything").get(f"/onboarding/{onboarding.id}")

    assert response.status_code == 401
    assert response.json()["meta"]["reason"] == "SESSION_NOT_FOUND_OR_MISMATCH"
