"""Utility modules."""

from onboarding_api.utils.normalization import (
    normalize_email,
    normalize_name,
    phone_compare_key,
    safe_filename,
)
from onboarding_api.utils.pagination import PaginationParams, get_pagination

__all__ = [
    "normalize_email",
    "normalize_name",
    "phone_compare_key",
    "safe_filename",
    "PaginationParams",
    "get_pagination",
]
