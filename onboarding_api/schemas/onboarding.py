"""Pydantic schemas for onboarding endpoints.

Request bodies use camelCase on the wire. The employee submission body is
decoded by the per-subsidiary form models in onboarding_forms.py.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from onboarding_api.db.enums import OnboardingMethod, Subsidiary, TerminationType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Employee
# ============================================================================


class InviteVerifyRequest(CamelModel):
    """Exchange an invite token for an emailed OTP."""

    token: str = Field(..., min_length=1, max_length=256)


class InviteVerifyResponse(CamelModel):
    onboarding_id: str
    subsidiary: Subsidiary
    email: str


class OtpVerifyRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=256)
    otp: str = Field(..., min_length=1, max_length=12)


class SessionResolveResponse(CamelModel):
    onboarding_id: str | None = None


# ============================================================================
# HR
# ============================================================================


class OnboardingCreate(CamelModel):
    """HR creates an onboarding."""

    subsidiary: Subsidiary
    method: OnboardingMethod = OnboardingMethod.DIGITAL
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr

    @field_validator("first_name", "last_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class ApproveRequest(CamelModel):
    employee_number: str | None = Field(None, max_length=50)


class ModificationRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=2000)


class TerminateRequest(CamelModel):
    termination_type: TerminationType
    termination_reason: str | None = Field(None, max_length=2000)


class ApplicationPdfJobCreated(CamelModel):
    job_id: str


class AuditLogRead(CamelModel):
    """Audit entry as returned to HR."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    onboarding_id: UUID
    action: str
    actor_type: str
    actor_id: str | None = None
    actor_name: str | None = None
    actor_email: str | None = None
    message: str
    metadata: dict[str, Any] | None = Field(None, validation_alias="meta")
    created_at: datetime


class AuditLogListResponse(CamelModel):
    items: list[AuditLogRead]
    total: int
    page: int
    per_page: int
    pages: int


class OnboardingListResponse(CamelModel):
    """Paginated onboarding rows; items are already shaped by create_list_item."""

    items: list[dict[str, Any]]
    total: int
    page: int
    per_page: int
    pages: int
