"""Bot verification via Cloudflare Turnstile."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from onboarding_api.core.config import settings
from onboarding_api.core.errors import BotCheckFailedError
from onboarding_api.services.http_service import QUICK_RETRY, send_with_retries

logger = logging.getLogger(__name__)

TURNSTILE_TIMEOUT_SECONDS = 10.0


@dataclass
class BotVerificationResult:
    ok: bool
    error: str | None = None


async def verify_token(token: str | None, remote_ip: str | None = None) -> BotVerificationResult:
    """
    Verify a Turnstile token with Cloudflare.

    Raises:
        BotCheckFailedError: 500 when the server secret is not configured
    """
    if not settings.TURNSTILE_ENABLED:
        return BotVerificationResult(ok=True)
    if not settings.TURNSTILE_SECRET_KEY:
        logger.error("TURNSTILE_SECRET_KEY not configured")
        raise BotCheckFailedError(
            "Bot verification is not configured", status_code=500, code="BOT_CHECK_MISCONFIGURED"
        )
    if not token:
        return BotVerificationResult(ok=False, error="missing-input-response")

    form = {"secret": settings.TURNSTILE_SECRET_KEY, "response": token}
    if remote_ip:
        form["remoteip"] = remote_ip

    try:
        async with httpx.AsyncClient(timeout=TURNSTILE_TIMEOUT_SECONDS) as client:
            response = await send_with_retries(
                client, "POST", settings.TURNSTILE_VERIFY_URL, policy=QUICK_RETRY, data=form
            )
    except httpx.HTTPError:
        logger.warning("Turnstile verification request failed", exc_info=True)
        return BotVerificationResult(ok=False, error="verification-unavailable")

    if response.status_code != 200:
        return BotVerificationResult(ok=False, error=f"http-{response.status_code}")
    try:
        data = response.json()
    except ValueError:
        return BotVerificationResult(ok=False, error="invalid-response")

    if data.get("success") is True:
        return BotVerificationResult(ok=True)
    codes = data.get("error-codes") or []
    return BotVerificationResult(ok=False, error=",".join(codes) or "verification-failed")
