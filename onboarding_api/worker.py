"""
Background worker for processing scheduled jobs.

Usage:
    python -m onboarding_api.worker

The worker polls the jobs table and runs the registered handler for each
pending job. Run it as a separate process next to the API.
"""

import asyncio
import logging

from onboarding_api.core.config import settings
from onboarding_api.core.structured_logging import log_context
from onboarding_api.db.session import SessionLocal
from onboarding_api.jobs.registry import get_job_handler
from onboarding_api.services import job_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = settings.WORKER_POLL_INTERVAL
BATCH_SIZE = settings.WORKER_BATCH_SIZE


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info("Processing job %s (type=%s, attempt=%s)", job.id, job.job_type, job.attempts)
    handler = get_job_handler(job.job_type)
    await handler(db, job)


async def run_pending_jobs(db, limit: int = BATCH_SIZE) -> int:
    """Run one batch of due jobs; returns how many this worker claimed."""
    claimed = 0
    for job in job_service.due_jobs(db, limit=limit):
        if not job_service.claim_job(db, job):
            continue
        claimed += 1
        try:
            await process_job(db, job)
        except Exception as e:
            db.rollback()
            job_service.fail_job(db, job, str(e) or type(e).__name__)
            logger.error("Job %s failed (attempt %s/%s): %s", job.id, job.attempts, job.max_attempts, type(e).__name__)
        else:
            job_service.complete_job(db, job)
            logger.info("Job %s completed", job.id)
    return claimed


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)", POLL_INTERVAL_SECONDS, BATCH_SIZE
    )

    while True:
        with SessionLocal() as db:
            try:
                await run_pending_jobs(db)
            except Exception:
                logger.exception("Error in worker loop")

        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=log_context(component="worker"),
        )
        raise


if __name__ == "__main__":
    main()
