"""Employee onboarding endpoints (invite links, OTP session, form submission)."""

from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, File, Request, Response, UploadFile
from sqlalchemy.orm import Session

from onboarding_api.core.config import settings
from onboarding_api.core.deps import get_client_ip, get_db, get_onboarding_session_token
from onboarding_api.core.rate_limit import limiter
from onboarding_api.schemas import (
    InviteVerifyRequest,
    InviteVerifyResponse,
    OtpVerifyRequest,
    SessionResolveResponse,
    envelope,
)
from onboarding_api.services import (
    onboarding_invite_service,
    onboarding_service,
    onboarding_session_service,
    onboarding_submission_service,
    onboarding_upload_service,
)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


# Declared before /{onboarding_id} so "session" is not parsed as an id.
@router.get("/session/resolve")
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def resolve_session(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    token: str | None = Depends(get_onboarding_session_token),
):
    """Map the session cookie to an editable onboarding id, or null."""
    onboarding_id = onboarding_session_service.resolve_session_onboarding_id(db, token)
    if onboarding_id is None and token:
        onboarding_session_service.clear_session_cookie(response)
    data = SessionResolveResponse(onboarding_id=str(onboarding_id) if onboarding_id else None)
    return envelope(data.model_dump(by_alias=True))


@router.post("/invite/verify")
@limiter.limit(f"{settings.RATE_LIMIT_INVITE_VERIFY}/minute")
async def verify_invite(
    request: Request,
    payload: InviteVerifyRequest,
    db: Session = Depends(get_db),
):
    """Check an invite token and email a one-time code."""
    result = await onboarding_invite_service.start_invite_verification(db, payload.token)
    data = InviteVerifyResponse(
        onboarding_id=result.onboarding_id,
        subsidiary=result.subsidiary,
        email=result.email,
    )
    return envelope(data.model_dump(by_alias=True, mode="json"), "Verification code sent")


@router.post("/otp/verify")
@limiter.limit(f"{settings.RATE_LIMIT_INVITE_VERIFY}/minute")
def verify_otp(
    request: Request,
    response: Response,
    payload: OtpVerifyRequest,
    db: Session = Depends(get_db),
):
    """Check the emailed code and open the employee session."""
    onboarding = onboarding_invite_service.verify_invite_otp(db, payload.token, payload.otp)
    onboarding_session_service.set_session_cookie(
        response, payload.token.strip(), onboarding.invite_expires_at
    )
    return envelope(onboarding_service.create_onboarding_context(onboarding), "Verified")


@router.get("/{onboarding_id}")
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def get_onboarding(
    request: Request,
    onboarding_id: str,
    db: Session = Depends(get_db),
    token: str | None = Depends(get_onboarding_session_token),
):
    """Employee view of their onboarding (read-only once submitted)."""
    onboarding = onboarding_session_service.require_onboarding_session(
        db, token, onboarding_id, allow_read_only=True
    )
    return envelope(onboarding_service.create_onboarding_context(onboarding))


@router.post("/{onboarding_id}")
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_SUBMIT}/minute")
async def submit_onboarding(
    request: Request,
    response: Response,
    onboarding_id: str,
    background_tasks: BackgroundTasks,
    body: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    token: str | None = Depends(get_onboarding_session_token),
):
    """Submit or resubmit the form; the session ends on success."""
    context = await onboarding_submission_service.submit_onboarding(
        db,
        onboarding_id=onboarding_id,
        raw_token=token,
        body=body,
        background_tasks=background_tasks,
        remote_ip=get_client_ip(request),
    )
    onboarding_session_service.clear_session_cookie(response)
    return envelope(context, "Onboarding submitted")


@router.post("/{onboarding_id}/files", status_code=201)
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_SUBMIT}/minute")
async def upload_file(
    request: Request,
    onboarding_id: str,
    file: Annotated[UploadFile, File()],
    db: Session = Depends(get_db),
    token: str | None = Depends(get_onboarding_session_token),
):
    """Stage a PDF or image for the form; returns the FileAsset to reference."""
    onboarding = onboarding_session_service.require_onboarding_session(db, token, onboarding_id)
    content = await file.read()
    asset = onboarding_upload_service.store_temp_upload(
        onboarding.id, file.filename, file.content_type, content
    )
    return envelope(asset, "File uploaded")


@router.delete("/{onboarding_id}/files/{s3_key:path}")
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_SUBMIT}/minute")
def delete_file(
    request: Request,
    onboarding_id: str,
    s3_key: str,
    db: Session = Depends(get_db),
    token: str | None = Depends(get_onboarding_session_token),
):
    """Discard a staged upload that is no longer referenced by the form."""
    onboarding = onboarding_session_service.require_onboarding_session(db, token, onboarding_id)
    onboarding_upload_service.delete_temp_upload(onboarding.id, s3_key)
    return envelope(None, "File deleted")
