"""Transactional email for the onboarding flow.

Sends through the Resend API. Without RESEND_API_KEY the message is logged
and treated as sent (dev/test).
"""

from __future__ import annotations

import html
import logging

import httpx

from onboarding_api.core.config import settings
from onboarding_api.core.errors import OnboardingError
from onboarding_api.core.structured_logging import mask_email
from onboarding_api.services.http_service import RetryPolicy, send_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_RETRY = RetryPolicy(attempts=3, base_delay=0.5, max_delay=4.0)
RESEND_TIMEOUT_SECONDS = 20.0


class EmailDeliveryError(OnboardingError):
    """Email provider rejected the message or was unreachable."""

    status_code = 502
    code = "EMAIL_DELIVERY_FAILED"


async def send_email(to: str, subject: str, html_body: str) -> str | None:
    """
    Send a single email.

    Returns:
        Provider message id (None in dry-run mode)

    Raises:
        EmailDeliveryError: On transport failure or non-2xx response
    """
    if not settings.RESEND_API_KEY:
        logger.info("[DRY RUN] Email send skipped to=%s subject=%s", mask_email(to), subject)
        return None

    payload = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": html_body,
    }
    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY}",
        "Content-Type": "application/json",
    }

    try:
        async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:
            response = await send_with_retries(
                client, "POST", RESEND_SEND_URL, policy=RESEND_RETRY, headers=headers, json=payload
            )
    except httpx.HTTPError as exc:
        logger.warning("Resend connection error to=%s", mask_email(to), exc_info=True)
        raise EmailDeliveryError("Failed to send email") from exc

    if not 200 <= response.status_code < 300:
        logger.warning("Resend API error %s to=%s", response.status_code, mask_email(to))
        raise EmailDeliveryError(f"Email provider returned {response.status_code}")

    message_id = None
    try:
        message_id = response.json().get("id")
    except ValueError:
        pass
    logger.info("Email sent to=%s message_id=%s", mask_email(to), message_id)
    return message_id


# =============================================================================
# Templates
# =============================================================================

def _wrap(greeting_name: str, paragraphs: list[str]) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return f"<p>Hi {html.escape(greeting_name)},</p>{body}<p>Thanks,<br>HR Team</p>"


def _invite_link(raw_token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/onboarding?token={raw_token}"


async def send_otp_email(to: str, first_name: str, code: str) -> str | None:
    minutes = settings.OTP_EXPIRES_MINUTES
    return await send_email(
        to,
        "Your onboarding verification code",
        _wrap(
            first_name,
            [
                f"Your verification code is <strong>{html.escape(code)}</strong>.",
                f"It expires in {minutes} minutes. If you did not request it, ignore this email.",
            ],
        ),
    )


async def send_invite_email(to: str, first_name: str, raw_token: str) -> str | None:
    link = html.escape(_invite_link(raw_token))
    return await send_email(
        to,
        "Complete your onboarding",
        _wrap(
            first_name,
            [
                "You have been invited to complete your employee onboarding form.",
                f'<a href="{link}">Start onboarding</a>',
                f"This link expires in {settings.INVITE_EXPIRES_HOURS} hours.",
            ],
        ),
    )


async def send_modification_request_email(
    to: str, first_name: str, raw_token: str, message: str
) -> str | None:
    link = html.escape(_invite_link(raw_token))
    return await send_email(
        to,
        "Changes requested on your onboarding form",
        _wrap(
            first_name,
            [
                "HR has reviewed your onboarding form and requested the following changes:",
                f"<em>{html.escape(message)}</em>",
                f'<a href="{link}">Update your form</a>',
            ],
        ),
    )


async def send_approval_email(to: str, first_name: str) -> str | None:
    return await send_email(
        to,
        "Your onboarding has been approved",
        _wrap(first_name, ["Your onboarding form has been approved. Welcome aboard!"]),
    )


async def send_details_confirmed_email(to: str, first_name: str) -> str | None:
    return await send_email(
        to,
        "Your onboarding details have been confirmed",
        _wrap(
            first_name,
            ["HR has reviewed and confirmed your onboarding details. We will be in touch about next steps."],
        ),
    )


async def send_termination_email(to: str, first_name: str) -> str | None:
    return await send_email(
        to,
        "Your onboarding has been closed",
        _wrap(first_name, ["Your onboarding has been closed. Please contact HR with any questions."]),
    )
