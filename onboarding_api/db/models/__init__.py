"""SQLAlchemy ORM models."""

from onboarding_api.db.models.audit import OnboardingAuditLog
from onboarding_api.db.models.jobs import Job
from onboarding_api.db.models.onboarding import FORM_DATA_ATTRS, FORM_DATA_KEYS, Onboarding

__all__ = [
    "FORM_DATA_ATTRS",
    "FORM_DATA_KEYS",
    "Job",
    "Onboarding",
    "OnboardingAuditLog",
]
