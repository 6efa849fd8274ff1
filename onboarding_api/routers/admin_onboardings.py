"""HR onboarding management endpoints."""

from datetime import date
from typing import Annotated, Any, Iterable

from fastapi import APIRouter, Body, Depends, File, Query, Request, UploadFile
from sqlalchemy.orm import Session

from onboarding_api.core.deps import HRSession, get_db, get_hr_session, require_csrf_header
from onboarding_api.core.rate_limit import limiter
from onboarding_api.db.enums import OnboardingMethod, Subsidiary
from onboarding_api.schemas import (
    ApplicationPdfJobCreated,
    ApproveRequest,
    AuditLogListResponse,
    AuditLogRead,
    ModificationRequest,
    OnboardingCreate,
    OnboardingListResponse,
    TerminateRequest,
    envelope,
)
from onboarding_api.services import (
    admin_onboarding_service,
    application_pdf_service,
    audit_service,
    onboarding_service,
    onboarding_upload_service,
)
from onboarding_api.utils.pagination import PaginationParams, get_pagination

router = APIRouter(prefix="/admin/onboardings", tags=["admin-onboardings"])


def _one_of(choices: Iterable[str]) -> str:
    return f"^({'|'.join(choices)})$"


@router.post("", dependencies=[Depends(require_csrf_header)], status_code=201)
async def create_onboarding(
    payload: OnboardingCreate,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    onboarding = await admin_onboarding_service.create_onboarding(
        db,
        session.actor,
        subsidiary=payload.subsidiary,
        method=payload.method,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
    )
    return envelope(onboarding_service.create_admin_view(onboarding), "Onboarding created")


@router.get("")
def list_onboardings(
    subsidiary: Subsidiary = Query(...),
    q: str | None = Query(None, max_length=100),
    method: OnboardingMethod | None = Query(None),
    status: str | None = Query(None, description="Comma-separated statuses"),
    status_group: str | None = Query(None, alias="statusGroup", pattern=_one_of(onboarding_service.STATUS_GROUPS)),
    has_employee_number: bool | None = Query(None, alias="hasEmployeeNumber"),
    is_completed: bool | None = Query(None, alias="isCompleted"),
    date_field: str = Query("created", alias="dateField", pattern=_one_of(onboarding_service.DATE_FIELDS)),
    date_from: date | None = Query(None, alias="from"),
    date_to: date | None = Query(None, alias="to"),
    sort_by: str = Query("createdAt", alias="sortBy", pattern=_one_of(onboarding_service.SORTABLE_COLUMNS)),
    sort_dir: str = Query("desc", alias="sortDir", pattern="^(asc|desc)$"),
    pagination: PaginationParams = Depends(get_pagination),
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    """One subsidiary's onboardings; Terminated only when asked for."""
    items, total = onboarding_service.list_onboardings(
        db,
        subsidiary,
        pagination,
        q=q,
        method=method,
        statuses=onboarding_service.parse_status_list(status),
        status_group=status_group,
        has_employee_number=has_employee_number,
        is_completed=is_completed,
        date_field=date_field,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    data = OnboardingListResponse(
        items=[onboarding_service.create_list_item(item) for item in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.page_count(total),
    )
    return envelope(data.model_dump(by_alias=True))


# Declared before /{onboarding_id} routes.
@router.get("/application-pdf/status")
def get_application_pdf_status(
    job_id: str | None = Query(None, alias="jobId"),
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    """Poll target for PDF jobs."""
    return envelope(application_pdf_service.get_application_pdf_status(db, job_id))


@router.get("/{onboarding_id}")
def get_onboarding(
    onboarding_id: str,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    return envelope(onboarding_service.create_admin_view(onboarding))


@router.put("/{onboarding_id}", dependencies=[Depends(require_csrf_header)])
def update_onboarding(
    onboarding_id: str,
    body: dict[str, Any] = Body(...),
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    """HR edit of the form; the first save of a manual record submits it."""
    onboarding = admin_onboarding_service.update_onboarding_form(
        db, onboarding_id, session.actor, body
    )
    return envelope(onboarding_service.create_admin_view(onboarding), "Onboarding updated")


@router.post("/{onboarding_id}/confirm-details", dependencies=[Depends(require_csrf_header)])
async def confirm_details(
    onboarding_id: str,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    onboarding = await admin_onboarding_service.confirm_details(db, onboarding_id, session.actor)
    return envelope(onboarding_service.create_admin_view(onboarding), "Details confirmed")


@router.post(
    "/{onboarding_id}/files",
    dependencies=[Depends(require_csrf_header)],
    status_code=201,
)
async def upload_file(
    onboarding_id: str,
    file: Annotated[UploadFile, File()],
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    """Stage a file for an HR edit of the form."""
    onboarding = admin_onboarding_service.get_editable_onboarding(db, onboarding_id)
    content = await file.read()
    asset = onboarding_upload_service.store_temp_upload(
        onboarding.id, file.filename, file.content_type, content
    )
    return envelope(asset, "File uploaded")


@router.post("/{onboarding_id}/approve", dependencies=[Depends(require_csrf_header)])
async def approve_onboarding(
    onboarding_id: str,
    payload: ApproveRequest | None = None,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    onboarding = await admin_onboarding_service.approve_onboarding(
        db,
        onboarding_id,
        session.actor,
        employee_number=payload.employee_number if payload else None,
    )
    return envelope(onboarding_service.create_admin_view(onboarding), "Onboarding approved")


@router.post("/{onboarding_id}/request-modification", dependencies=[Depends(require_csrf_header)])
async def request_modification(
    onboarding_id: str,
    payload: ModificationRequest,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    onboarding = await admin_onboarding_service.request_modification(
        db, onboarding_id, session.actor, payload.message
    )
    return envelope(onboarding_service.create_admin_view(onboarding), "Modification requested")


@router.post("/{onboarding_id}/terminate", dependencies=[Depends(require_csrf_header)])
async def terminate_onboarding(
    onboarding_id: str,
    payload: TerminateRequest,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    onboarding = await admin_onboarding_service.terminate_onboarding(
        db,
        onboarding_id,
        session.actor,
        payload.termination_type,
        payload.termination_reason,
    )
    return envelope(onboarding_service.create_admin_view(onboarding), "Onboarding terminated")


@router.post("/{onboarding_id}/restore", dependencies=[Depends(require_csrf_header)])
def restore_onboarding(
    onboarding_id: str,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    onboarding = admin_onboarding_service.restore_onboarding(db, onboarding_id, session.actor)
    return envelope(onboarding_service.create_admin_view(onboarding), "Onboarding restored")


@router.post("/{onboarding_id}/resend-invite", dependencies=[Depends(require_csrf_header)])
@limiter.limit("10/minute")
async def resend_invite(
    request: Request,
    onboarding_id: str,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    onboarding = await admin_onboarding_service.resend_invite(db, onboarding_id, session.actor)
    return envelope(onboarding_service.create_admin_view(onboarding), "Invite resent")


@router.get("/{onboarding_id}/audit-logs")
def list_audit_logs(
    onboarding_id: str,
    date_from: date | None = Query(None, alias="from"),
    date_to: date | None = Query(None, alias="to"),
    pagination: PaginationParams = Depends(get_pagination),
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    """Audit trail for one onboarding, newest first."""
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    items, total = audit_service.list_audit_logs(
        db, onboarding.id, pagination, date_from=date_from, date_to=date_to
    )
    data = AuditLogListResponse(
        items=[AuditLogRead.model_validate(item) for item in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.page_count(total),
    )
    return envelope(data.model_dump(by_alias=True, mode="json"))


@router.post("/{onboarding_id}/application-pdf", dependencies=[Depends(require_csrf_header)], status_code=202)
@limiter.limit("5/minute")
def start_application_pdf(
    request: Request,
    onboarding_id: str,
    session: HRSession = Depends(get_hr_session),
    db: Session = Depends(get_db),
):
    job = application_pdf_service.enqueue_application_pdf(db, onboarding_id)
    data = ApplicationPdfJobCreated(job_id=str(job.id))
    return envelope(data.model_dump(by_alias=True), "PDF generation queued")
