"""Onboarding-related enums."""

from enum import Enum


class Subsidiary(str, Enum):
    """Jurisdiction-specific onboarding flows."""

    INDIA = "INDIA"
    CANADA = "CANADA"
    USA = "USA"


class OnboardingMethod(str, Enum):
    """How the employee completes the onboarding."""

    DIGITAL = "digital"  # Employee fills the form online via invite link
    MANUAL = "manual"  # HR sends a PDF and keys in the result


class OnboardingStatus(str, Enum):
    """
    Lifecycle of an onboarding record.

    Employee path: InviteGenerated -> Submitted,
    ModificationRequested -> Resubmitted. Everything else is an HR action,
    including DetailsConfirmed (HR has checked the submitted details).
    """

    INVITE_GENERATED = "InviteGenerated"
    MANUAL_PDF_SENT = "ManualPDFSent"
    MODIFICATION_REQUESTED = "ModificationRequested"
    SUBMITTED = "Submitted"
    RESUBMITTED = "Resubmitted"
    DETAILS_CONFIRMED = "DetailsConfirmed"
    APPROVED = "Approved"
    TERMINATED = "Terminated"


# Statuses in which the employee may submit the form
EDITABLE_STATUSES = frozenset(
    {OnboardingStatus.INVITE_GENERATED, OnboardingStatus.MODIFICATION_REQUESTED}
)

# Statuses in which the employee may still view (read-only) their submission
READ_ONLY_STATUSES = frozenset(
    {OnboardingStatus.SUBMITTED, OnboardingStatus.RESUBMITTED, OnboardingStatus.DETAILS_CONFIRMED}
)

# Statuses that end employee access for good
CLOSED_STATUSES = frozenset({OnboardingStatus.APPROVED, OnboardingStatus.TERMINATED})

# Statuses that require a complete form payload
FORM_REQUIRED_STATUSES = frozenset(
    {
        OnboardingStatus.SUBMITTED,
        OnboardingStatus.RESUBMITTED,
        OnboardingStatus.DETAILS_CONFIRMED,
        OnboardingStatus.APPROVED,
    }
)


class TerminationType(str, Enum):
    RESIGNED = "Resigned"
    TERMINATED = "Terminated"
    NO_SHOW = "NoShow"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class EducationLevel(str, Enum):
    """Highest education level; selects which education fields apply."""

    PRIMARY_SCHOOL = "PrimarySchool"
    HIGH_SCHOOL = "HighSchoolSecondary"
    DIPLOMA = "Diploma"
    BACHELORS = "Bachelors"
    MASTERS = "Masters"
    DOCTORATE = "Doctorate"
    OTHER = "Other"


class AccountType(str, Enum):
    CHECKING = "Checking"
    SAVINGS = "Savings"
