"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from onboarding_api.db.enums import JobType
from onboarding_api.jobs.handlers import application_pdf

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.APPLICATION_PDF.value: application_pdf.process_application_pdf,
}


def get_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if handler is None:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
