"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, rebuilt for every test
- Local storage backend rooted at tmp_path
- Factories for onboarding records, uploaded temp files and valid form payloads
- HTTPX AsyncClients (employee session / HR session with CSRF header)
"""
import os
import tempfile
import uuid
from typing import AsyncGenerator, Callable, Generator

from cryptography.fernet import Fernet

# Settings are read at import time; configure before importing the app.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["DATA_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["TOKEN_HASH_KEY"] = "test-token-hash-key"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["JWT_SECRET_PREVIOUS"] = ""
os.environ["ADMIN_EMAILS"] = "hr@example.com"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_PATH"] = tempfile.mkdtemp(prefix="onboarding-tests-")
os.environ["TURNSTILE_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["SENTRY_DSN"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from onboarding_api.core.config import settings
from onboarding_api.core.deps import CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from onboarding_api.core.security import create_session_token
from onboarding_api.db.base import Base
from onboarding_api.db.enums import (
    FORM_REQUIRED_STATUSES,
    OnboardingMethod,
    OnboardingStatus,
    Subsidiary,
)
from onboarding_api.db.models import FORM_DATA_KEYS, Onboarding
from onboarding_api.db.session import SessionLocal, engine
from onboarding_api.main import app
from onboarding_api.services import (
    geocoding_service,
    onboarding_service,
    onboarding_upload_service,
    storage_service,
)
from onboarding_api.utils.dates import utcnow

HR_EMAIL = "hr@example.com"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    App code commits freely; dropping the tables afterwards isolates tests.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# =============================================================================
# Integration stubs
# =============================================================================

@pytest.fixture(autouse=True)
def storage_root(tmp_path, monkeypatch) -> str:
    """Point the local storage backend at a per-test directory."""
    root = tmp_path / "storage"
    root.mkdir()
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "local")
    monkeypatch.setattr(settings, "LOCAL_STORAGE_PATH", str(root))
    return str(root)


@pytest.fixture(autouse=True)
def fake_geocoder(monkeypatch) -> list[tuple[float, float]]:
    """Resolve every coordinate to Bengaluru; returns the list of lookups made."""
    calls: list[tuple[float, float]] = []

    async def resolve(latitude: float, longitude: float) -> geocoding_service.ResolvedPlace:
        calls.append((latitude, longitude))
        return geocoding_service.ResolvedPlace(
            country="India", region="Karnataka", city="Bengaluru"
        )

    monkeypatch.setattr(geocoding_service, "reverse_geocode", resolve)
    return calls


# =============================================================================
# Payload factories
# =============================================================================

@pytest.fixture
def upload_temp_file() -> Callable[..., dict]:
    """
    Store a file under temp/ and return its FileAsset.

    With an owner the file is staged against that onboarding, as the
    upload endpoint does.
    """

    def _upload(
        name: str = "document.pdf",
        mime_type: str = "application/pdf",
        content: bytes = b"%PDF-1.4 test document",
        *,
        owner: object = None,
    ) -> dict:
        if owner is not None:
            prefix = onboarding_upload_service.temp_upload_prefix(owner)
        else:
            prefix = storage_service.make_temp_prefix("uploads", uuid.uuid4().hex[:8])
        key = storage_service.build_object_key(prefix, name)
        url = storage_service.put_object(key, content, mime_type)
        return {
            "s3Key": key,
            "url": url,
            "mimeType": mime_type,
            "sizeBytes": len(content),
            "originalName": name,
        }

    return _upload


def _personal_info() -> dict:
    return {
        "firstName": "Asha",
        "lastName": "Rao",
        "email": "asha.rao@example.com",
        "gender": "Female",
        "dateOfBirth": "1994-03-12",
        "canProvideProofOfAge": True,
        "residentialAddress": {
            "addressLine1": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "postalCode": "560001",
            "fromDate": "2019-01-01",
            "toDate": "2024-01-01",
        },
        "phoneMobile": "+91 98765 43210",
        "emergencyContactName": "Ravi Rao",
        "emergencyContactNumber": "+91 91234 56789",
        "reference1Name": "Meera Iyer",
        "reference1PhoneNumber": "+91 99887 76655",
        "reference2Name": "John Mathew",
        "reference2PhoneNumber": "+91 90000 11111",
        "hasConsentToContactReferencesOrEmergencyContact": True,
    }


@pytest.fixture
def form_payload(upload_temp_file) -> Callable[..., dict]:
    """
    Build a valid form payload for a subsidiary.

    Every file field gets a freshly uploaded temp asset.
    """

    def _build(
        subsidiary: Subsidiary = Subsidiary.INDIA,
        *,
        with_employment: bool = False,
        owner: object = None,
    ) -> dict:
        def upload(name: str, *args) -> dict:
            return upload_temp_file(name, *args, owner=owner)

        if subsidiary == Subsidiary.INDIA:
            government_ids = {
                "aadhaar": {"aadhaarNumber": "123412341234", "file": upload("aadhaar.pdf")},
                "panCard": {"panNumber": "ABCDE1234F", "file": upload("pan.pdf")},
            }
            bank = {
                "bankName": "State Bank",
                "branchName": "MG Road",
                "accountHolderName": "Asha Rao",
                "accountNumber": "000111222333",
                "ifscCode": "SBIN0000001",
            }
        elif subsidiary == Subsidiary.CANADA:
            government_ids = {
                "sin": {"sinNumber": "046454286", "file": upload("sin.pdf")},
            }
            bank = {
                "bankName": "RBC",
                "institutionNumber": "003",
                "transitNumber": "12345",
                "accountNumber": "1234567",
                "accountHolderName": "Asha Rao",
            }
        else:
            government_ids = {
                "ssn": {"ssnNumber": "123-45-6789", "file": upload("ssn.pdf")},
            }
            bank = {
                "bankName": "Chase",
                "routingNumber": "021000021",
                "accountNumber": "9876543210",
                "accountHolderName": "Asha Rao",
                "accountType": "Checking",
            }

        employment = []
        if with_employment:
            employment = [
                {
                    "organizationName": "Acme Corp",
                    "designation": "Analyst",
                    "startDate": "2018-06-01",
                    "endDate": "2022-12-31",
                    "reasonForLeaving": "Relocation",
                    "experienceCertificateFile": upload("experience.pdf"),
                }
            ]

        return {
            "personalInfo": _personal_info(),
            "governmentIds": government_ids,
            "education": [
                {
                    "highestLevel": "Bachelors",
                    "institutionName": "Bangalore University",
                    "fieldOfStudy": "Commerce",
                    "startYear": 2012,
                    "endYear": 2015,
                }
            ],
            "hasPreviousEmployment": with_employment,
            "employmentHistory": employment,
            "bankDetails": bank,
            "declaration": {
                "hasAcceptedDeclaration": True,
                "signature": {
                    "file": upload("signature.png", "image/png", b"\x89PNG fake"),
                    "signedAt": "2024-05-01T10:00:00Z",
                },
                "declarationDate": "2024-05-01",
            },
        }

    return _build


@pytest.fixture
def make_onboarding(db: Session, form_payload) -> Callable[..., tuple[Onboarding, str | None]]:
    """
    Create an onboarding in any status.

    Returns (onboarding, raw_invite_token); the invite stays active for
    digital records regardless of status.
    """

    def _make(
        subsidiary: Subsidiary = Subsidiary.INDIA,
        status: OnboardingStatus = OnboardingStatus.INVITE_GENERATED,
        method: OnboardingMethod = OnboardingMethod.DIGITAL,
        form_data: dict | None = None,
    ) -> tuple[Onboarding, str | None]:
        onboarding, raw_token = onboarding_service.create_onboarding(
            db,
            subsidiary=subsidiary,
            method=method,
            first_name="Asha",
            last_name="Rao",
            email=f"asha-{uuid.uuid4().hex[:8]}@example.com",
        )
        if status in FORM_REQUIRED_STATUSES or form_data is not None:
            onboarding.form_data = form_data or form_payload(subsidiary, owner=onboarding.id)
            onboarding.is_form_complete = True
            onboarding.submitted_at = utcnow()
        if status == OnboardingStatus.MODIFICATION_REQUESTED:
            onboarding.form_data = onboarding.form_data or form_payload(subsidiary, owner=onboarding.id)
            onboarding.is_form_complete = True
            onboarding.submitted_at = utcnow()
            onboarding.modification_request_message = "Please re-upload your PAN card"
            onboarding.modification_requested_at = utcnow()
        if status == OnboardingStatus.APPROVED:
            onboarding.approved_at = utcnow()
            onboarding.completed_at = utcnow()
            onboarding.is_completed = True
        if status == OnboardingStatus.TERMINATED:
            onboarding.terminated_at = utcnow()
            onboarding.termination_type = "Resigned"
        onboarding.status = status.value
        db.commit()
        db.refresh(onboarding)
        return onboarding, raw_token

    return _make


@pytest.fixture
def submit_body(form_payload) -> Callable[..., dict]:
    """
    Full POST /onboarding/{id} body: form payload, bot token and coordinates.

    Files are staged against the given onboarding; subsidiary overrides the
    form key and shape (defaults to the record's own).
    """

    def _build(
        onboarding: Onboarding, *, subsidiary: Subsidiary | None = None, **kwargs
    ) -> dict:
        subsidiary = subsidiary or onboarding.subsidiary_enum
        return {
            FORM_DATA_KEYS[subsidiary]: form_payload(subsidiary, owner=onboarding.id, **kwargs),
            "turnstileToken": "test-turnstile-token",
            "location": {"latitude": 12.9716, "longitude": 77.5946, "accuracyMeters": 25},
        }

    return _build


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def hr_token() -> str:
    return create_session_token(HR_EMAIL, "HR Admin")


@pytest.fixture(scope="function")
async def admin_client(db: Session, hr_token: str) -> AsyncGenerator[AsyncClient, None]:
    """
    Create HR-authenticated AsyncClient with JWT cookie and CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={settings.HR_SESSION_COOKIE_NAME: hr_token},
        headers={CSRF_HEADER: CSRF_HEADER_VALUE},
    ) as c:
        yield c

    app.dependency_overrides.clear()


def session_cookies(raw_token: str) -> dict[str, str]:
    return {settings.ONBOARDING_SESSION_COOKIE_NAME: raw_token}
