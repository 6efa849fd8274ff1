"""Validation of per-subsidiary onboarding form payloads.

Payloads are decoded once into the models in schemas/onboarding_forms.py.
Pydantic errors are flattened into the {field, message} list the API
returns, first message per field:

    errors = validate_onboarding_form(Subsidiary.INDIA, payload)
    # [{"field": "personalInfo.gender", "message": "personalInfo.gender must be one of: Male, Female"}]

parse_onboarding_form() raises FormValidationError carrying the same list;
the submission flow stores the parsed form's to_payload() output.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from onboarding_api.core.errors import FormValidationError
from onboarding_api.db.enums import EducationLevel, Subsidiary
from onboarding_api.schemas.onboarding_forms import (
    CanadaOnboardingForm,
    IndiaOnboardingForm,
    OnboardingForm,
    UsOnboardingForm,
)

FORM_MODELS: dict[Subsidiary, type[OnboardingForm]] = {
    Subsidiary.INDIA: IndiaOnboardingForm,
    Subsidiary.CANADA: CanadaOnboardingForm,
    Subsidiary.USA: UsOnboardingForm,
}

_EDUCATION_LEVELS = [level.value for level in EducationLevel]

_SUFFIXES = {
    "missing": "is required",
    "string_too_short": "is required",
    "model_type": "is required",
    "model_attributes_type": "is required",
    "dict_type": "is required",
    "string_type": "must be text",
    "bool_type": "must be true or false",
    "bool_parsing": "must be true or false",
    "int_type": "must be a number",
    "int_parsing": "must be a number",
    "int_from_float": "must be a whole number",
    "greater_than_equal": "must not be negative",
    "list_type": "must be an array",
}


def _field_path(loc: tuple[Any, ...]) -> tuple[str, str | None]:
    """Dotted path for an error location, plus the education tag it passed through."""
    parts: list[str] = []
    level = None
    for i, part in enumerate(loc):
        if isinstance(part, int):
            if parts:
                parts[-1] = f"{parts[-1]}[{part}]"
            else:
                parts.append(f"[{part}]")
        elif (
            i >= 2
            and loc[i - 2] == "education"
            and isinstance(loc[i - 1], int)
            and part in _EDUCATION_LEVELS
        ):
            level = part
        else:
            parts.append(str(part))
    return ".".join(parts), level


def _options(expected: str) -> str:
    # pydantic renders choices as "'A', 'B' or 'C'"
    return expected.replace("'", "").replace(" or ", ", ")


def _to_field_error(error: dict[str, Any]) -> dict[str, str]:
    loc = error["loc"]
    ctx = error.get("ctx") or {}
    if ctx.get("field"):
        loc = (*loc, ctx["field"])
    field, level = _field_path(loc)
    kind = error["type"]

    if kind == "form_rule":
        return {"field": field, "message": error["msg"]}
    if kind == "field_rule":
        return {"field": field, "message": f"{field} {error['msg']}"}
    if kind in ("union_tag_invalid", "union_tag_not_found"):
        field = f"{field}.highestLevel"
        return {"field": field, "message": f"{field} must be one of: {', '.join(_EDUCATION_LEVELS)}"}
    if kind in ("enum", "literal_error"):
        return {"field": field, "message": f"{field} must be one of: {_options(ctx.get('expected', ''))}"}
    if kind == "extra_forbidden":
        parent = field.rsplit(".", 1)[0]
        if level:
            return {
                "field": field,
                "message": f"{field} is not allowed when {parent}.highestLevel is {level}",
            }
        return {"field": field, "message": f"{field} is not allowed"}
    suffix = _SUFFIXES.get(kind, "is invalid")
    return {"field": field, "message": f"{field} {suffix}"}


def errors_from_validation(exc: ValidationError) -> list[dict[str, str]]:
    """Flatten a ValidationError into {field, message} dicts."""
    errors: list[dict[str, str]] = []
    seen: set[str] = set()
    for error in exc.errors():
        item = _to_field_error(error)
        if item["field"] in seen:
            continue
        seen.add(item["field"])
        errors.append(item)
    return errors


def _raise_for(errors: list[dict[str, str]]) -> None:
    raise FormValidationError(
        errors[0]["message"] if len(errors) == 1 else "Please correct the highlighted fields",
        errors=errors,
    )


def parse_onboarding_form(subsidiary: Subsidiary, data: Any) -> OnboardingForm:
    """
    Decode a subsidiary form payload.

    Raises:
        FormValidationError: With every field error when the payload is invalid
    """
    if not isinstance(data, dict):
        _raise_for([{"field": "formData", "message": "Form data is required"}])
    try:
        return FORM_MODELS[subsidiary].model_validate(data)
    except ValidationError as e:
        _raise_for(errors_from_validation(e))


def validate_onboarding_form(subsidiary: Subsidiary, data: Any) -> list[dict[str, str]]:
    """
    Validate a subsidiary form payload.

    Returns:
        List of {"field", "message"} dicts; empty when valid
    """
    try:
        parse_onboarding_form(subsidiary, data)
    except FormValidationError as e:
        return e.errors
    return []


def assert_valid_onboarding_form(subsidiary: Subsidiary, data: Any) -> None:
    parse_onboarding_form(subsidiary, data)
