"""
Encryption of onboarding form payloads and hashing of invite/OTP secrets.

Form payloads (IDs, bank details, addresses) are stored as a single Fernet
token per record. DATA_ENCRYPTION_KEY_PREVIOUS keeps older rows readable
while keys are rotated; new writes always use the current key.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from onboarding_api.core.config import settings

PAYLOAD_PREFIX = "enc:v1:"

_fernet: MultiFernet | None = None
_fernet_keys: tuple[str, ...] = ()


def _payload_fernet() -> MultiFernet:
    global _fernet, _fernet_keys
    keys = tuple(k for k in (settings.DATA_ENCRYPTION_KEY, settings.DATA_ENCRYPTION_KEY_PREVIOUS) if k)
    if not settings.DATA_ENCRYPTION_KEY:
        raise RuntimeError("DATA_ENCRYPTION_KEY not configured (Fernet.generate_key())")
    if _fernet is None or keys != _fernet_keys:
        _fernet = MultiFernet([Fernet(k.encode()) for k in keys])
        _fernet_keys = keys
    return _fernet


def seal_payload(payload: dict[str, Any]) -> str:
    """Serialize a form payload and encrypt it with the current key."""
    document = json.dumps(payload, separators=(",", ":"), default=str)
    return PAYLOAD_PREFIX + _payload_fernet().encrypt(document.encode()).decode()


def open_payload(sealed: str) -> dict[str, Any]:
    """Decrypt a sealed payload written with the current or previous key."""
    if not sealed.startswith(PAYLOAD_PREFIX):
        raise ValueError("Form payload is not sealed")
    try:
        document = _payload_fernet().decrypt(sealed[len(PAYLOAD_PREFIX) :].encode())
    except InvalidToken as exc:
        raise ValueError("Form payload could not be decrypted") from exc
    return json.loads(document)


def hash_token(value: str, purpose: str = "invite") -> str:
    """
    Keyed digest of an invite token or OTP.

    The purpose is part of the message so an OTP digest never equals an
    invite digest for the same value.
    """
    if not settings.TOKEN_HASH_KEY:
        raise RuntimeError("TOKEN_HASH_KEY not configured")
    message = f"{purpose}:{value}".encode()
    return hmac.new(settings.TOKEN_HASH_KEY.encode(), message, hashlib.sha256).hexdigest()
