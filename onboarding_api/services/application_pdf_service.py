"""Application-form PDF jobs: enqueue, render, and report status to pollers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from onboarding_api.core.errors import BadRequestError, NotFoundError
from onboarding_api.db.enums import JobStatus, JobType, StorageFolder, StorageNamespace
from onboarding_api.db.models import Job, Onboarding
from onboarding_api.services import job_service, onboarding_service, pdf_service, storage_service

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class PdfJobState(str, Enum):
    """Poller-facing job state."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"


_STATE_BY_JOB_STATUS = {
    JobStatus.PENDING.value: PdfJobState.PENDING,
    JobStatus.RUNNING.value: PdfJobState.RUNNING,
    JobStatus.COMPLETED.value: PdfJobState.DONE,
    JobStatus.FAILED.value: PdfJobState.ERROR,
}


def pdf_filename(onboarding: Onboarding) -> str:
    return f"application-form-{onboarding.last_name}-{onboarding.first_name}.pdf"


def enqueue_application_pdf(db: Session, onboarding_id: str | UUID) -> Job:
    """
    Queue PDF generation for an onboarding with a completed form.

    Raises:
        NotFoundError: Unknown onboarding
        BadRequestError: Form not complete
    """
    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)
    if not onboarding.is_form_complete or not onboarding.form_data:
        raise BadRequestError("Onboarding form is not complete")

    job = job_service.schedule_job(
        db,
        JobType.APPLICATION_PDF,
        {"onboarding_id": str(onboarding.id)},
    )
    logger.info("Application PDF job %s queued for onboarding %s", job.id, onboarding.id)
    return job


def get_application_pdf_status(db: Session, job_id: str | UUID | None) -> dict[str, Any]:
    """
    Status payload for pollers: {state, progressPercent, downloadUrl, errorMessage}.

    Raises:
        BadRequestError: Missing or malformed job id
        NotFoundError: Unknown job
    """
    parsed = onboarding_service.parse_onboarding_id(job_id) if job_id else None
    if parsed is None:
        raise BadRequestError("A valid jobId is required")

    job = job_service.get_job(db, parsed, JobType.APPLICATION_PDF)
    if not job:
        raise NotFoundError("Job not found")

    state = _STATE_BY_JOB_STATUS.get(job.status, PdfJobState.ERROR)
    download_url = None
    if state == PdfJobState.DONE:
        result = job.result or {}
        key = result.get("storage_key")
        if key:
            download_url = storage_service.generate_signed_url(key, result.get("filename")) or None

    return {
        "jobId": str(job.id),
        "state": state.value,
        "progressPercent": job.progress_percent,
        "downloadUrl": download_url,
        "errorMessage": job.last_error if state == PdfJobState.ERROR else None,
    }


def render_and_store(db: Session, job: Job) -> dict[str, str]:
    """
    Render the PDF for the job's onboarding and store it under the temp area.

    Returns:
        Result payload recorded on the job
    """
    onboarding_id = (job.payload or {}).get("onboarding_id")
    if not onboarding_id:
        raise ValueError("Missing onboarding_id in job payload")

    onboarding = onboarding_service.get_onboarding_or_404(db, onboarding_id)

    def report(percent: int) -> None:
        job_service.update_job_progress(db, job, percent)

    pdf_bytes = pdf_service.generate_application_form_pdf(onboarding, on_progress=report)

    filename = pdf_filename(onboarding)
    prefix = storage_service.make_temp_prefix(
        StorageNamespace.ONBOARDINGS.value, StorageFolder.APPLICATION_FORM_PDF.value
    )
    key = storage_service.build_object_key(prefix, filename)
    storage_service.put_object(key, pdf_bytes, PDF_CONTENT_TYPE)
    report(95)

    return {"storage_key": key, "filename": filename}
