"""Pydantic models for the per-subsidiary onboarding form payloads.

Payloads are camelCase JSON. Each subsidiary has one top-level model; the
education entry is a union tagged by highestLevel whose variants forbid the
other levels' fields. Cross-field rules live in model validators and raise
PydanticCustomError so form_validation can turn them into field errors:

    "form_rule"   message is shown as-is
    "field_rule"  message is appended to the field path

Both carry an optional "field" in ctx naming the sub-field the rule is about.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AfterValidator,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from onboarding_api.db.enums import AccountType, Gender
from onboarding_api.schemas.onboarding import CamelModel
from onboarding_api.utils.dates import parse_date_value
from onboarding_api.utils.normalization import phone_compare_key

PDF_MIME_TYPE = "application/pdf"
MAX_EDUCATION_ENTRIES = 1
MAX_EMPLOYMENT_ENTRIES = 3


def rule_error(message: str, field: str | None = None) -> PydanticCustomError:
    return PydanticCustomError("form_rule", message, {"field": field} if field else None)


def field_error(message: str, field: str | None = None) -> PydanticCustomError:
    return PydanticCustomError("field_rule", message, {"field": field} if field else None)


def _has_any_value(value: Any) -> bool:
    if isinstance(value, dict):
        return any(_has_any_value(v) for v in value.values())
    if isinstance(value, list):
        return any(_has_any_value(v) for v in value)
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _empty_group_to_none(value: Any) -> Any:
    if isinstance(value, dict) and not _has_any_value(value):
        return None
    return value


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


def _valid_date(value: str) -> str:
    if parse_date_value(value) is None:
        raise field_error("must be a valid date")
    return value


def _ordered(start: str | None, end: str | None) -> bool:
    if start is None or end is None:
        return True
    return parse_date_value(end) >= parse_date_value(start)


RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[RequiredText | None, BeforeValidator(_blank_to_none)]
FormDate = Annotated[RequiredText, AfterValidator(_valid_date)]


# ============================================================================
# File assets
# ============================================================================


class FileAsset(CamelModel):
    """Reference to an uploaded object."""

    url: RequiredText
    s3_key: RequiredText
    mime_type: RequiredText
    size_bytes: int | None = Field(None, ge=0)
    original_name: OptionalText = None


class PdfFile(FileAsset):
    @model_validator(mode="after")
    def _is_pdf(self):
        if self.mime_type.lower() != PDF_MIME_TYPE:
            raise field_error("must be a PDF")
        return self


class ImageFile(FileAsset):
    @model_validator(mode="after")
    def _is_image(self):
        if not self.mime_type.lower().startswith("image/"):
            raise field_error("must be an image")
        return self


OptionalPdf = Annotated[PdfFile | None, BeforeValidator(_empty_group_to_none)]


# ============================================================================
# Personal info
# ============================================================================


class ResidentialAddress(CamelModel):
    address_line1: RequiredText
    city: OptionalText = None
    state: OptionalText = None
    postal_code: OptionalText = None
    from_date: FormDate
    to_date: FormDate

    @model_validator(mode="after")
    def _dates_in_order(self):
        if not _ordered(self.from_date, self.to_date):
            raise field_error("must be on or after fromDate", field="toDate")
        return self


class PersonalInfo(CamelModel):
    first_name: RequiredText
    last_name: RequiredText
    email: RequiredText
    gender: Gender
    date_of_birth: FormDate
    can_provide_proof_of_age: bool
    residential_address: ResidentialAddress
    phone_home: OptionalText = None
    phone_mobile: RequiredText
    emergency_contact_name: RequiredText
    emergency_contact_number: RequiredText
    reference1_name: RequiredText
    reference1_phone_number: RequiredText
    reference2_name: RequiredText
    reference2_phone_number: RequiredText
    has_consent_to_contact_references_or_emergency_contact: bool

    @field_validator("has_consent_to_contact_references_or_emergency_contact")
    @classmethod
    def _consent_given(cls, value: bool) -> bool:
        if value is not True:
            raise rule_error(
                "You must confirm you have permission for us to contact your references "
                "and/or emergency contact"
            )
        return value

    @model_validator(mode="after")
    def _emergency_contact_differs(self):
        mobile = phone_compare_key(self.phone_mobile)
        emergency = phone_compare_key(self.emergency_contact_number)
        if mobile and emergency and mobile == emergency:
            raise rule_error(
                "Emergency contact number must be different from your mobile number",
                field="emergencyContactNumber",
            )
        return self


# ============================================================================
# Education
# ============================================================================


class _EducationEntry(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        if isinstance(values, dict):
            return {k: v for k, v in values.items() if v is not None}
        return values


class PrimarySchoolEducation(_EducationEntry):
    highest_level: Literal["PrimarySchool"]
    school_name: RequiredText
    school_location: OptionalText = None
    primary_year_completed: int


class HighSchoolEducation(_EducationEntry):
    highest_level: Literal["HighSchoolSecondary"]
    high_school_institution_name: RequiredText
    high_school_board: OptionalText = None
    high_school_stream: OptionalText = None
    high_school_year_completed: int
    high_school_grade_or_percentage: OptionalText = None


class HigherEducation(_EducationEntry):
    highest_level: Literal["Diploma", "Bachelors", "Masters", "Doctorate", "Other"]
    institution_name: RequiredText
    university_or_board: OptionalText = None
    field_of_study: RequiredText
    start_year: int | None = None
    end_year: int
    grade_or_cgpa: OptionalText = None

    @model_validator(mode="after")
    def _years_in_order(self):
        if self.start_year is not None and self.end_year < self.start_year:
            raise field_error("must be on or after startYear", field="endYear")
        return self


EducationEntry = Annotated[
    Union[PrimarySchoolEducation, HighSchoolEducation, HigherEducation],
    Field(discriminator="highest_level"),
]


# ============================================================================
# Employment
# ============================================================================


class EmploymentEntry(CamelModel):
    organization_name: RequiredText
    designation: RequiredText
    start_date: FormDate
    end_date: FormDate
    reason_for_leaving: RequiredText
    experience_certificate_file: OptionalPdf = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        if not _ordered(self.start_date, self.end_date):
            raise field_error("must be on or after startDate", field="endDate")
        return self


EmploymentHistory = Annotated[list[EmploymentEntry], BeforeValidator(_none_to_list)]


# ============================================================================
# Government IDs
# ============================================================================


class _DatedTwoSidedDocument(CamelModel):
    """Passport / driver's license: all fields once any is filled in."""

    issue_date: FormDate
    expiry_date: FormDate
    front_file: PdfFile
    back_file: PdfFile

    @model_validator(mode="after")
    def _dates_in_order(self):
        if not _ordered(self.issue_date, self.expiry_date):
            raise field_error("must be on or after issueDate", field="expiryDate")
        return self


class Passport(_DatedTwoSidedDocument):
    passport_number: RequiredText


class DriversLicense(_DatedTwoSidedDocument):
    license_number: RequiredText


class TwoSidedCard(CamelModel):
    front_file: OptionalPdf = None
    back_file: OptionalPdf = None


class SingleFileDocument(CamelModel):
    file: PdfFile


class AadhaarCard(CamelModel):
    aadhaar_number: RequiredText
    file: PdfFile


class PanCard(CamelModel):
    pan_number: RequiredText
    file: PdfFile


class SinCard(CamelModel):
    sin_number: RequiredText
    file: PdfFile


class SsnCard(CamelModel):
    ssn_number: RequiredText
    file: PdfFile


OptionalPassport = Annotated[Passport | None, BeforeValidator(_empty_group_to_none)]
OptionalDriversLicense = Annotated[DriversLicense | None, BeforeValidator(_empty_group_to_none)]
OptionalCard = Annotated[TwoSidedCard | None, BeforeValidator(_empty_group_to_none)]
OptionalDocument = Annotated[SingleFileDocument | None, BeforeValidator(_empty_group_to_none)]


class _CommonGovernmentIds(CamelModel):
    passport: OptionalPassport = None
    drivers_license: OptionalDriversLicense = None


class IndiaGovernmentIds(_CommonGovernmentIds):
    aadhaar: AadhaarCard
    pan_card: PanCard


class CanadaGovernmentIds(_CommonGovernmentIds):
    sin: SinCard
    pr_card: OptionalCard = None
    work_permit: OptionalDocument = None


class UsGovernmentIds(_CommonGovernmentIds):
    ssn: SsnCard
    green_card: OptionalCard = None
    work_permit: OptionalDocument = None


# ============================================================================
# Bank details
# ============================================================================


class IndiaBankDetails(CamelModel):
    bank_name: RequiredText
    branch_name: RequiredText
    account_holder_name: RequiredText
    account_number: RequiredText
    ifsc_code: RequiredText
    upi_id: OptionalText = None
    void_cheque: OptionalDocument = None


class CanadaBankDetails(CamelModel):
    bank_name: RequiredText
    institution_number: RequiredText
    transit_number: RequiredText
    account_number: RequiredText
    account_holder_name: RequiredText
    direct_deposit_doc: OptionalDocument = None


class UsBankDetails(CamelModel):
    bank_name: RequiredText
    routing_number: RequiredText
    account_number: RequiredText
    account_holder_name: RequiredText
    account_type: AccountType
    void_cheque_or_deposit_slip: OptionalDocument = None


# ============================================================================
# Declaration
# ============================================================================


class Signature(CamelModel):
    file: ImageFile
    signed_at: FormDate


class Declaration(CamelModel):
    has_accepted_declaration: bool
    signature: Signature
    declaration_date: FormDate

    @field_validator("has_accepted_declaration")
    @classmethod
    def _accepted(cls, value: bool) -> bool:
        if value is not True:
            raise rule_error("You must accept the declaration before submitting")
        return value


# ============================================================================
# Forms
# ============================================================================


class OnboardingForm(CamelModel):
    """Sections shared by every subsidiary."""

    personal_info: PersonalInfo
    education: list[EducationEntry]
    has_previous_employment: bool
    employment_history: EmploymentHistory = Field(default_factory=list)
    declaration: Declaration

    @field_validator("education", mode="before")
    @classmethod
    def _education_count(cls, value: Any) -> Any:
        if isinstance(value, list):
            if not value:
                raise rule_error("At least one education entry is required")
            if len(value) > MAX_EDUCATION_ENTRIES:
                raise rule_error(
                    f"You can only enter up to {MAX_EDUCATION_ENTRIES} education entry"
                )
        return value

    @model_validator(mode="after")
    def _employment_matches_flag(self):
        history = self.employment_history
        if self.has_previous_employment:
            if not history:
                raise rule_error(
                    "At least one employment history entry is required", field="employmentHistory"
                )
            if len(history) > MAX_EMPLOYMENT_ENTRIES:
                raise rule_error(
                    f"You can only enter up to {MAX_EMPLOYMENT_ENTRIES} employment history entries",
                    field="employmentHistory",
                )
        elif history:
            raise rule_error(
                "employmentHistory must be empty when hasPreviousEmployment is false",
                field="employmentHistory",
            )
        return self

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready camelCase payload as stored on the record."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class IndiaOnboardingForm(OnboardingForm):
    government_ids: IndiaGovernmentIds
    bank_details: IndiaBankDetails


class CanadaOnboardingForm(OnboardingForm):
    government_ids: CanadaGovernmentIds
    bank_details: CanadaBankDetails


class UsOnboardingForm(OnboardingForm):
    government_ids: UsGovernmentIds
    bank_details: UsBankDetails
