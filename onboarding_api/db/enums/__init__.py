"""Enum definitions for application constants."""

from onboarding_api.db.enums.audit import AuditAction, AuditActorType
from onboarding_api.db.enums.jobs import JobStatus, JobType
from onboarding_api.db.enums.onboarding import (
    CLOSED_STATUSES,
    EDITABLE_STATUSES,
    FORM_REQUIRED_STATUSES,
    READ_ONLY_STATUSES,
    AccountType,
    EducationLevel,
    Gender,
    OnboardingMethod,
    OnboardingStatus,
    Subsidiary,
    TerminationType,
)
from onboarding_api.db.enums.storage import StorageFolder, StorageNamespace

DEFAULT_JOB_STATUS: JobStatus = JobStatus.PENDING

__all__ = [
    "AccountType",
    "AuditAction",
    "AuditActorType",
    "CLOSED_STATUSES",
    "DEFAULT_JOB_STATUS",
    "EDITABLE_STATUSES",
    "EducationLevel",
    "FORM_REQUIRED_STATUSES",
    "Gender",
    "JobStatus",
    "JobType",
    "OnboardingMethod",
    "OnboardingStatus",
    "READ_ONLY_STATUSES",
    "StorageFolder",
    "StorageNamespace",
    "Subsidiary",
    "TerminationType",
]
