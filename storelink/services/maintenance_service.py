"""
maintenance_service.py — Manual monitoring actions

Backs POST /api/admin/integrations/monitoring/actions.

Called by: routers/monitoring.py
Depends on: services/monitoring_service.py, services/job_queue_service.py
"""

from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from ..config import settings
from . import job_queue_service
from .monitoring_service import get_integration_health, get_integration_metrics, log_integration_event


def trigger_health_check(
    db: Session, integration_type: str | None = None, store_id: str | None = None
) -> dict[str, Any]:
    """Evaluate health now and record the check as a log event."""
    integration_type = integration_type or settings.default_integration_type
    health = get_integration_health(db, integration_type, store_id)
    metrics = get_integration_metrics(db, integration_type, 1, store_id)

    log_integration_event(
        db,
        "health_check",
        "success",
        {
            "request": {"action": "manual_health_check"},
            "response": {
                "health_status": health.status,
                "operations_last_hour": metrics.total_operations,
            },
        },
        store_id=store_id or "system",
        integration_type=integration_type,
    )
    logger.info("Health check for {} ({}): {}", integration_type, store_id or "all stores", health.status)
    return {
        "health_status": health.status,
        "issues_found": len(health.issues),
        "recommendations": len(health.recommendations),
        "operations_last_hour": metrics.total_operations,
    }


def retry_failed_jobs(
    db: Session, job_ids: list[str] | None = None, retry_all: bool = False
) -> int:
    if retry_all:
        job_ids = [job.id for job in job_queue_service.get_failed_jobs(db, 100)]
    retried = sum(1 for job_id in job_ids or [] if job_queue_service.retry_job(db, job_id))
    logger.info("{} jobs have been queued for retry", retried)
    return retried


def cleanup_old_jobs(db: Session, older_than_days: int = 30) -> int:
    return job_queue_service.cleanup_old_jobs(db, older_than_days)
