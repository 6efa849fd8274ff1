"""PII-safe helpers for log messages and `extra` context."""

import hashlib
from typing import Any
from uuid import UUID


def mask_email(email: str | None) -> str:
    """Keep the first character and the domain; a short digest tells addresses apart."""
    if not email:
        return ""
    local, _, domain = email.strip().lower().partition("@")
    digest = hashlib.sha256(email.strip().lower().encode()).hexdigest()[:8]
    return f"{local[:1]}***@{domain or '?'}#{digest}"


def log_context(onboarding_id: UUID | str | None = None, **fields: Any) -> dict[str, Any]:
    """`extra=` dict for onboarding log lines; None values are dropped."""
    context = {key: value for key, value in fields.items() if value is not None}
    if onboarding_id is not None:
        context["onboarding_id"] = str(onboarding_id)
    return context
