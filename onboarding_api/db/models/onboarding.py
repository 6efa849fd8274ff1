"""Onboarding aggregate root."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
    false,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from onboarding_api.db.base import Base
from onboarding_api.db.enums import (
    CLOSED_STATUSES,
    EDITABLE_STATUSES,
    FORM_REQUIRED_STATUSES,
    OnboardingMethod,
    OnboardingStatus,
    Subsidiary,
)
from onboarding_api.db.types import EncryptedJSON
from onboarding_api.utils.dates import ensure_utc, utcnow


# Column attribute holding each subsidiary's form payload
FORM_DATA_ATTRS: dict[Subsidiary, str] = {
    Subsidiary.INDIA: "india_form_data",
    Subsidiary.CANADA: "canada_form_data",
    Subsidiary.USA: "us_form_data",
}

# JSON key used for each subsidiary's payload on the wire
FORM_DATA_KEYS: dict[Subsidiary, str] = {
    Subsidiary.INDIA: "indiaFormData",
    Subsidiary.CANADA: "canadaFormData",
    Subsidiary.USA: "usFormData",
}

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Onboarding(Base):
    """
    An employee onboarding record.

    Holds identity, lifecycle status, invite/OTP session state and exactly
    one subsidiary-specific form payload (encrypted at rest).
    """

    __tablename__ = "onboardings"
    __table_args__ = (
        UniqueConstraint("subsidiary", "employee_number", name="uq_onboarding_employee_number"),
        Index("idx_onboardings_status", "status"),
        Index("idx_onboardings_email", "email"),
        Index("idx_onboardings_invite_token_hash", "invite_token_hash"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subsidiary: Mapped[str] = mapped_column(String(10), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)

    # Identity (never overridden by the form payload)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(String(30), nullable=False)
    is_form_complete: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    is_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )

    # Invite (digital onboarding session); only the hash is stored
    invite_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invite_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    invite_last_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Email OTP
    otp_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    otp_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    otp_attempts: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    otp_locked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    otp_last_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Per-subsidiary form payloads (exactly one applies)
    india_form_data: Mapped[dict | None] = mapped_column(EncryptedJSON, nullable=True)
    canada_form_data: Mapped[dict | None] = mapped_column(EncryptedJSON, nullable=True)
    us_form_data: Mapped[dict | None] = mapped_column(EncryptedJSON, nullable=True)

    # {latitude, longitude, accuracyMeters, country, region, city, capturedAt}
    location_at_submit: Mapped[dict | None] = mapped_column(JsonType, nullable=True)

    modification_request_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    modification_requested_at: Mapped[datetime | None] = mapped_column(nullable=True)

    employee_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    termination_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    termination_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    terminated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    # -------------------------------------------------------------------------
    # Convenience accessors
    # -------------------------------------------------------------------------

    @property
    def subsidiary_enum(self) -> Subsidiary:
        return Subsidiary(self.subsidiary)

    @property
    def status_enum(self) -> OnboardingStatus:
        return OnboardingStatus(self.status)

    @property
    def is_digital(self) -> bool:
        return self.method == OnboardingMethod.DIGITAL.value

    @property
    def form_data(self) -> dict[str, Any] | None:
        """The payload for this record's subsidiary."""
        return getattr(self, FORM_DATA_ATTRS[self.subsidiary_enum])

    @form_data.setter
    def form_data(self, value: dict[str, Any] | None) -> None:
        setattr(self, FORM_DATA_ATTRS[self.subsidiary_enum], value)

    def can_employee_access(self) -> bool:
        return self.status_enum not in CLOSED_STATUSES

    def can_employee_edit(self) -> bool:
        return self.status_enum in EDITABLE_STATUSES

    def invite_is_active(self, now: datetime | None = None) -> bool:
        expires_at = ensure_utc(self.invite_expires_at)
        if not self.invite_token_hash or expires_at is None:
            return False
        return expires_at > (now or utcnow())

    def clear_invite(self) -> None:
        self.invite_token_hash = None
        self.invite_expires_at = None

    def clear_otp(self) -> None:
        self.otp_hash = None
        self.otp_expires_at = None
        self.otp_attempts = 0
        self.otp_locked_at = None

    def validate_record(self) -> None:
        """
        Record-level invariants checked before every save.

        Raises:
            ValueError: If the record is inconsistent
        """
        try:
            subsidiary = Subsidiary(self.subsidiary)
        except ValueError:
            raise ValueError(f"Unknown subsidiary: {self.subsidiary}")
        try:
            status = OnboardingStatus(self.status)
        except ValueError:
            raise ValueError(f"Unknown status: {self.status}")
        if self.method not in {m.value for m in OnboardingMethod}:
            raise ValueError(f"Unknown method: {self.method}")

        for other, attr in FORM_DATA_ATTRS.items():
            if other != subsidiary and getattr(self, attr) is not None:
                raise ValueError(f"{FORM_DATA_KEYS[other]} is not allowed for {subsidiary.value}")

        if status in FORM_REQUIRED_STATUSES:
            payload = self.form_data
            if not isinstance(payload, dict) or not payload:
                raise ValueError(
                    f"{FORM_DATA_KEYS[subsidiary]} is required when status is {status.value}"
                )
            for section in ("personalInfo", "governmentIds", "education", "bankDetails", "declaration"):
                if section not in payload:
                    raise ValueError(f"{FORM_DATA_KEYS[subsidiary]}.{section} is required")
            if status != OnboardingStatus.APPROVED and not self.submitted_at:
                raise ValueError("submitted_at is required once submitted")


@event.listens_for(Onboarding, "before_insert")
@event.listens_for(Onboarding, "before_update")
def _validate_before_save(mapper, connection, target: Onboarding) -> None:
    target.validate_record()
