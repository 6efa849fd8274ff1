"""Error taxonomy for onboarding operations.

Every error carries an HTTP status and a stable machine-readable code. The
exception handlers in main.py render them into the response envelope:

    {"success": false, "message": ..., "code": ..., "errors": [...]}
"""

from __future__ import annotations

from typing import Any


class OnboardingError(Exception):
    """Base exception for onboarding service errors."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        errors: list[dict[str, str]] | None = None,
        meta: dict[str, Any] | None = None,
        clear_session: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors
        self.meta = meta or {}
        self.clear_session = clear_session


class UnauthorizedError(OnboardingError):
    """Session missing, expired, or bound to a different onboarding."""

    status_code = 401
    code = "SESSION_REQUIRED"


class UnsupportedSubsidiaryError(OnboardingError):
    """Feature not available for the record's subsidiary."""

    status_code = 400
    code = "UNSUPPORTED_SUBSIDIARY"


class NotEditableError(OnboardingError):
    """Status precondition failed; retry only after an HR-side change."""

    status_code = 403
    code = "NOT_EDITABLE"


class FormValidationError(OnboardingError):
    """Payload failed structural rules; carries field-level errors."""

    status_code = 400
    code = "VALIDATION_FAILED"


class BotCheckFailedError(OnboardingError):
    """Bot-verification token missing or rejected (500 on server misconfiguration)."""

    status_code = 400
    code = "BOT_CHECK_FAILED"


class LocationRequiredError(OnboardingError):
    """Coordinates missing (400) or reverse geocoding failed (502)."""

    status_code = 400
    code = "LOCATION_REQUIRED"


class StorageFailureError(OnboardingError):
    """Object storage copy/delete failed."""

    status_code = 500
    code = "STORAGE_FAILURE"


class PersistFailureError(OnboardingError):
    """Record validation or save failed."""

    status_code = 500
    code = "PERSIST_FAILURE"


class NotFoundError(OnboardingError):
    """Onboarding or job not found."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(OnboardingError):
    """Unique constraint would be violated (e.g. employee number)."""

    status_code = 409
    code = "CONFLICT"


class BadRequestError(OnboardingError):
    """Request is well-formed but not allowed in the current state."""

    status_code = 400
    code = "BAD_REQUEST"


class RateLimitedError(OnboardingError):
    """Throttled or locked; meta may carry retryAfterSeconds."""

    status_code = 429
    code = "RATE_LIMITED"
