"""Pydantic schemas for API request/response models."""

from typing import Any

from onboarding_api.schemas.onboarding import (
    ApplicationPdfJobCreated,
    ApproveRequest,
    AuditLogListResponse,
    AuditLogRead,
    InviteVerifyRequest,
    InviteVerifyResponse,
    ModificationRequest,
    OnboardingCreate,
    OnboardingListResponse,
    OtpVerifyRequest,
    SessionResolveResponse,
    TerminateRequest,
)


def envelope(data: Any = None, message: str = "OK") -> dict[str, Any]:
    """Standard success envelope: {success, message, data}."""
    return {"success": True, "message": message, "data": data}


__all__ = [
    "envelope",
    # Employee
    "InviteVerifyRequest",
    "InviteVerifyResponse",
    "OtpVerifyRequest",
    "SessionResolveResponse",
    # HR
    "OnboardingCreate",
    "OnboardingListResponse",
    "ApproveRequest",
    "ModificationRequest",
    "TerminateRequest",
    "ApplicationPdfJobCreated",
    "AuditLogRead",
    "AuditLogListResponse",
]
