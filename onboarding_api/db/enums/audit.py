"""Audit log enums."""

from enum import Enum


class AuditAction(str, Enum):
    """Transitions recorded in the onboarding audit trail."""

    STATUS_CHANGED = "STATUS_CHANGED"
    INVITE_GENERATED = "INVITE_GENERATED"
    INVITE_RESENT = "INVITE_RESENT"
    MODIFICATION_REQUESTED = "MODIFICATION_REQUESTED"
    SUBMITTED = "SUBMITTED"
    RESUBMITTED = "RESUBMITTED"
    DATA_UPDATED = "DATA_UPDATED"
    DETAILS_CONFIRMED = "DETAILS_CONFIRMED"
    APPROVED = "APPROVED"
    TERMINATED = "TERMINATED"
    DELETED = "DELETED"


class AuditActorType(str, Enum):
    """Who performed an audited action."""

    HR = "HR"
    EMPLOYEE = "EMPLOYEE"
    SYSTEM = "SYSTEM"
