"""Job queue backed by the jobs table: scheduling, claiming and outcomes."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from onboarding_api.db.enums import JobStatus, JobType
from onboarding_api.db.models import Job
from onboarding_api.utils.dates import utcnow


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    max_attempts: int = 3,
) -> Job:
    """Queue a job; without run_at it is due on the worker's next poll."""
    job = Job(
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or utcnow(),
        status=JobStatus.PENDING.value,
        max_attempts=max_attempts,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def due_jobs(db: Session, limit: int = 10) -> list[Job]:
    return (
        db.query(Job)
        .filter(Job.status == JobStatus.PENDING.value, Job.run_at <= utcnow())
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def get_job(db: Session, job_id: UUID, job_type: JobType | None = None) -> Job | None:
    query = db.query(Job).filter(Job.id == job_id)
    if job_type:
        query = query.filter(Job.job_type == job_type.value)
    return query.first()


def claim_job(db: Session, job: Job) -> bool:
    """
    Move a pending job to running and count the attempt.

    The UPDATE only matches while the row is still pending, so when two
    workers pick up the same job exactly one of them gets True.
    """
    result = db.execute(
        update(Job)
        .where(Job.id == job.id, Job.status == JobStatus.PENDING.value)
        .values(status=JobStatus.RUNNING.value, attempts=Job.attempts + 1, progress_percent=0)
    )
    db.commit()
    db.refresh(job)
    return result.rowcount == 1


def update_job_progress(db: Session, job: Job, percent: int) -> None:
    job.progress_percent = max(0, min(100, int(percent)))
    db.commit()


def complete_job(db: Session, job: Job) -> None:
    job.status = JobStatus.COMPLETED.value
    job.progress_percent = 100
    job.completed_at = utcnow()
    job.last_error = None
    db.commit()


def fail_job(db: Session, job: Job, error: str) -> None:
    """Record the error; the job goes back to pending until its attempts are used up."""
    job.last_error = error
    exhausted = job.attempts >= job.max_attempts
    job.status = JobStatus.FAILED.value if exhausted else JobStatus.PENDING.value
    if exhausted:
        job.completed_at = utcnow()
    db.commit()
