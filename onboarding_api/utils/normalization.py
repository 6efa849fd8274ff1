"""Cleanup of identity fields and user-supplied filenames."""

import re
import unicodedata
from typing import Optional


_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_FILENAME_LENGTH = 120


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Trimmed, lower-cased email; None when blank."""
    cleaned = (email or "").strip().lower()
    return cleaned or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """Collapse runs of whitespace in a person's name; None when blank."""
    cleaned = " ".join((name or "").split())
    return cleaned or None


def phone_compare_key(phone: object) -> str:
    """
    Reduce a phone number to digits for equality checks.

    Only the last 10 digits are kept so "+91 98765 43210" and
    "9876543210" compare equal.
    """
    digits = re.sub(r"\D", "", str(phone or ""))
    if len(digits) > 10:
        return digits[-10:]
    return digits


def _strip_accents(value: str) -> str:
    """Remove diacritics so filenames stay ASCII."""
    return "".join(
        ch for ch in unicodedata.normalize("NFKD", value) if not unicodedata.combining(ch)
    )


def safe_filename(name: Optional[str], default: str = "file") -> str:
    """
    Turn a user-supplied filename into a storage-safe key segment.

    Keeps the extension, replaces anything outside [A-Za-z0-9._-] with "-".
    """
    if not name:
        return default
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", _strip_accents(base)).strip("-.")
    if not cleaned:
        return default
    if len(cleaned) > _MAX_FILENAME_LENGTH:
        stem, dot, ext = cleaned.rpartition(".")
        if dot and len(ext) <= 10:
            cleaned = f"{stem[: _MAX_FILENAME_LENGTH - len(ext) - 1]}.{ext}"
        else:
            cleaned = cleaned[:_MAX_FILENAME_LENGTH]
    return cleaned
