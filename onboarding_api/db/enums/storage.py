"""Object storage key namespaces and folders."""

from enum import Enum


class StorageNamespace(str, Enum):
    """Top-level owner namespace under submissions/."""

    ONBOARDINGS = "onboardings"


class StorageFolder(str, Enum):
    """Logical folder for finalized onboarding documents."""

    GOV_AADHAAR = "gov-aadhaar"
    GOV_PAN = "gov-pan"
    GOV_SIN = "gov-sin"
    GOV_SSN = "gov-ssn"
    GOV_PASSPORT = "gov-passport"
    GOV_DRIVERS_LICENSE = "gov-drivers-license"
    GOV_PR_CARD = "gov-pr-card"
    GOV_GREEN_CARD = "gov-green-card"
    GOV_WORK_PERMIT = "gov-work-permit"
    BANK_VOID_CHEQUE = "bank-void-cheque"
    BANK_DIRECT_DEPOSIT = "bank-direct-deposit"
    EMPLOYMENT_CERTIFICATES = "employment-certificates"
    DECLARATION_SIGNATURE = "declaration-signature"
    APPLICATION_FORM_PDF = "application-form-pdf"
