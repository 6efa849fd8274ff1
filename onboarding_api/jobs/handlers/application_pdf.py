"""Application-form PDF job handler."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


async def process_application_pdf(db, job) -> None:
    """Render the onboarding's application form and record where it was stored."""
    from onboarding_api.services import application_pdf_service

    result = application_pdf_service.render_and_store(db, job)
    job.result = result
    db.commit()
    logger.info("Application PDF stored for job %s", job.id)
