"""
job_queue_service.py — Database-backed background job queue

Jobs live in job_queue and move pending -> processing -> completed, or
through retrying back to processing until max_attempts, then failed.

Business Rules:
- Due jobs are taken by priority (urgent, high, medium, low), then age
- A failed attempt is rescheduled 1s / 5s / 15s later; the last delay is
  reused beyond the third attempt
- Only failed jobs can be retried by hand; a retry resets attempts
- Cleanup removes completed/failed jobs finished before the cutoff
- Every execution is written to integration_logs as "job:<job_type>"

Called by: services/maintenance_service.py, services/monitoring_service.py,
           routers/monitoring.py
Depends on: models (Job), services/monitoring_service.py
"""

import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from loguru import logger
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import Job

JOB_PRIORITIES = ("urgent", "high", "medium", "low")
JOB_STATUSES = ("pending", "processing", "completed", "failed", "retrying")
RETRY_DELAYS_SECONDS = (1, 5, 15)
MAX_ATTEMPTS = 3
BATCH_SIZE = 10

JobHandler = Callable[[dict[str, Any]], bool]


def add_job(
    db: Session,
    job_type: str,
    payload: dict[str, Any],
    priority: str = "medium",
    scheduled_at=None,
) -> str:
    if priority not in JOB_PRIORITIES:
        raise ValueError(f"Invalid job priority: {priority}")
    job = Job(
        job_type=job_type,
        payload=payload,
        priority=priority,
        status="pending",
        attempts=0,
        max_attempts=MAX_ATTEMPTS,
        scheduled_at=scheduled_at or utcnow(),
    )
    db.add(job)
    db.commit()
    logger.info("Job queued: {} ({}) - {}", job_type, priority, job.id)
    return job.id


def get_failed_jobs(db: Session, limit: int = 100) -> list[Job]:
    try:
        return (
            db.query(Job)
            .filter(Job.status == "failed")
            .order_by(Job.updated_at.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error getting failed jobs: {}", e)
        return []


def retry_job(db: Session, job_id: str) -> bool:
    """Reset a failed job to pending. False if missing or not failed."""
    job = db.get(Job, job_id)
    if job is None or job.status != "failed":
        logger.warning("Job {} not found or not in failed status", job_id)
        return False
    job.status = "pending"
    job.attempts = 0
    job.error_message = None
    job.scheduled_at = utcnow()
    db.commit()
    logger.info("Job {} has been reset for retry", job_id)
    return True


def cleanup_old_jobs(db: Session, older_than_days: int = 30) -> int:
    cutoff = utcnow() - timedelta(days=older_than_days)
    try:
        deleted = (
            db.query(Job)
            .filter(Job.status.in_(("completed", "failed")), Job.completed_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error cleaning up old jobs: {}", e)
        return 0
    logger.info("Cleaned up {} old jobs (older than {} days)", deleted, older_than_days)
    return deleted


def get_job_stats(db: Session, hours_back: int = 24) -> dict[str, Any]:
    """Status, type and priority counts for jobs created in the window."""
    stats: dict[str, Any] = {"total": 0, **{s: 0 for s in JOB_STATUSES}, "by_type": {}, "by_priority": {}}
    since = utcnow() - timedelta(hours=hours_back)
    try:
        for status, n in (
            db.query(Job.status, func.count(Job.id))
            .filter(Job.created_at >= since)
            .group_by(Job.status)
            .all()
        ):
            stats["total"] += n
            if status in JOB_STATUSES:
                stats[status] = n
        stats["by_type"] = dict(
            db.query(Job.job_type, func.count(Job.id))
            .filter(Job.created_at >= since)
            .group_by(Job.job_type)
            .all()
        )
        stats["by_priority"] = dict(
            db.query(Job.priority, func.count(Job.id))
            .filter(Job.created_at >= since)
            .group_by(Job.priority)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error getting job stats: {}", e)
        return {"total": 0, **{s: 0 for s in JOB_STATUSES}, "by_type": {}, "by_priority": {}}
    return stats


# ── Processing ────────────────────────────────────────────────────────


def process_jobs(db: Session, handlers: dict[str, JobHandler], batch_size: int = BATCH_SIZE) -> int:
    """Run due pending/retrying jobs once. Returns the number processed."""
    priority_order = case(
        {p: i for i, p in enumerate(JOB_PRIORITIES)}, value=Job.priority, else_=len(JOB_PRIORITIES)
    )
    jobs = (
        db.query(Job)
        .filter(
            Job.status.in_(("pending", "retrying")),
            (Job.scheduled_at.is_(None)) | (Job.scheduled_at <= utcnow()),
        )
        .order_by(priority_order, Job.created_at.asc())
        .limit(batch_size)
        .all()
    )
    if jobs:
        logger.info("Processing {} jobs from queue", len(jobs))
    for job in jobs:
        _process_job(db, job, handlers)
    return len(jobs)


def _process_job(db: Session, job: Job, handlers: dict[str, JobHandler]) -> None:
    from .monitoring_service import log_integration_event

    started = time.perf_counter()
    job.status = "processing"
    job.started_at = utcnow()
    db.commit()

    handler = handlers.get(job.job_type)
    error = None
    try:
        if handler is None:
            error = f"Unknown job type: {job.job_type}"
        elif not handler(dict(job.payload or {})):
            error = "Job processing returned false"
    except Exception as e:
        db.rollback()
        logger.exception("Error processing job {} ({})", job.id, job.job_type)
        error = str(e)

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    if error is None:
        job.status = "completed"
        job.completed_at = utcnow()
        job.error_message = None
        db.commit()
        logger.info("Job completed: {} - {} ({}ms)", job.job_type, job.id, elapsed_ms)
    else:
        _handle_failure(db, job, error)

    log_integration_event(
        db,
        f"job:{job.job_type}",
        "success" if error is None else "failure",
        {"request": {"job_id": job.id, "attempt": job.attempts}},
        store_id=str((job.payload or {}).get("store_id") or "system"),
        execution_time_ms=elapsed_ms,
        error_message=error,
    )


def _handle_failure(db: Session, job: Job, error: str) -> None:
    job.attempts = (job.attempts or 0) + 1
    job.error_message = error
    if job.attempts >= job.max_attempts:
        job.status = "failed"
        job.completed_at = utcnow()
        db.commit()
        logger.error("Job failed permanently: {} - {} ({} attempts)", job.job_type, job.id, job.attempts)
        return

    delay = RETRY_DELAYS_SECONDS[min(job.attempts, len(RETRY_DELAYS_SECONDS)) - 1]
    job.status = "retrying"
    job.scheduled_at = utcnow() + timedelta(seconds=delay)
    db.commit()
    logger.warning(
        "Job scheduled for retry: {} - {} (attempt {}/{}) in {}s",
        job.job_type,
        job.id,
        job.attempts,
        job.max_attempts,
        delay,
    )
