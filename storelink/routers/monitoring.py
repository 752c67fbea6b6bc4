"""
Integration Monitoring API — metrics, health, alerts, trends and actions

Every GET wraps its payload as {"success": true, "data": ..., "metadata": ...}.
The store filter comes from the store_id query param; omitting it
aggregates across all stores.

Called by: main.py
Depends on: services/monitoring_service.py, services/alert_service.py,
            services/job_queue_service.py, services/maintenance_service.py
"""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db, utcnow
from ..schemas.monitoring import AlertOut, MonitoringAction
from ..services import maintenance_service
from ..services.alert_service import get_recent_alerts
from ..services.job_queue_service import get_failed_jobs, get_job_stats
from ..services.monitoring_service import (
    export_integration_logs,
    get_integration_health,
    get_integration_metrics,
    get_overall_status,
    get_performance_trends,
)

router = APIRouter(prefix="/api/admin/integrations/monitoring", tags=["monitoring"])


def _envelope(data, **metadata) -> dict:
    metadata["generated_at"] = utcnow().isoformat()
    return {"success": True, "data": data, "metadata": metadata}


def _integration(integration: str | None) -> str:
    return integration or settings.default_integration_type


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Read endpoints ────────────────────────────────────────────────────


@router.get("/metrics")
def api_metrics(
    integration: str | None = Query(None),
    hours: int = Query(24, ge=1, le=24 * 90),
    store_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    integration = _integration(integration)
    metrics = get_integration_metrics(db, integration, hours, store_id)
    return _envelope(
        metrics.model_dump(mode="json"),
        integration_type=integration,
        time_range_hours=hours,
        store_id=store_id,
    )


@router.get("/health")
def api_health(
    integration: str | None = Query(None),
    store_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    integration = _integration(integration)
    health = get_integration_health(db, integration, store_id)
    return _envelope(health.model_dump(mode="json"), integration_type=integration, store_id=store_id)


@router.get("/alerts")
def api_alerts(
    store_id: str | None = Query(None),
    hours: int = Query(24, ge=1, le=24 * 90),
    level: str | None = Query(None, pattern="^(info|warning|critical)$"),
    db: Session = Depends(get_db),
):
    alerts = [
        AlertOut(
            id=a.id,
            store_id=a.store_id,
            integration_type=a.integration_type,
            operation=a.operation,
            level=a.level,
            type=a.type,
            message=a.message,
            metadata=a.alert_metadata or {},
            created_at=a.created_at,
        ).model_dump(mode="json")
        for a in get_recent_alerts(db, store_id, hours, level)
    ]
    return _envelope(alerts, store_id=store_id, time_range_hours=hours, alert_count=len(alerts))


@router.get("/trends")
def api_trends(
    integration: str | None = Query(None),
    days: int = Query(7, ge=1, le=365),
    store_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    integration = _integration(integration)
    report = get_performance_trends(db, integration, days, store_id)
    return _envelope(
        report.model_dump(mode="json"),
        integration_type=integration,
        time_range_days=days,
        store_id=store_id,
    )


@router.get("/status")
def api_status(
    integration: str | None = Query(None),
    store_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    integration = _integration(integration)
    return _envelope(
        get_overall_status(db, integration, store_id), integration_type=integration, store_id=store_id
    )


@router.get("/job-stats")
def api_job_stats(hours: int = Query(24, ge=1, le=24 * 90), db: Session = Depends(get_db)):
    failed = [
        {
            "id": j.id,
            "job_type": j.job_type,
            "priority": j.priority,
            "attempts": j.attempts,
            "error_message": j.error_message,
            "updated_at": j.updated_at.isoformat() if j.updated_at else None,
        }
        for j in get_failed_jobs(db, 20)
    ]
    return _envelope(
        {"statistics": get_job_stats(db, hours), "recent_failed_jobs": failed},
        time_range_hours=hours,
    )


@router.get("/export")
def api_export(
    store_id: str = Query(...),
    integration: str | None = Query(None),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    db: Session = Depends(get_db),
):
    integration = _integration(integration)
    end = _aware(end) or utcnow()
    start = _aware(start) or end - timedelta(days=7)
    if start > end:
        raise HTTPException(400, "start must be before end")
    rows = [
        {
            "id": r.id,
            "operation": r.operation,
            "status": r.status,
            "request_data": r.request_data,
            "response_data": r.response_data,
            "execution_time_ms": r.execution_time_ms,
            "error_message": r.error_message,
            "created_at": r.created_at.isoformat(),
        }
        for r in export_integration_logs(db, store_id, integration, start, end)
    ]
    return _envelope(
        rows,
        store_id=store_id,
        integration_type=integration,
        start=start.isoformat(),
        end=end.isoformat(),
        row_count=len(rows),
    )


# ── Actions ───────────────────────────────────────────────────────────


@router.post("/actions")
def api_action(body: MonitoringAction, db: Session = Depends(get_db)):
    if body.action == "trigger-health-check":
        data = maintenance_service.trigger_health_check(db, body.integration_type, body.store_id)
        return {"success": True, "data": data, "message": "Health check completed"}

    if body.action == "retry-failed-jobs":
        retried = maintenance_service.retry_failed_jobs(db, body.job_ids, body.retry_all)
        return {
            "success": True,
            "data": {"retried_count": retried},
            "message": f"{retried} jobs have been queued for retry",
        }

    deleted = maintenance_service.cleanup_old_jobs(db, body.older_than_days)
    return {
        "success": True,
        "data": {"deleted_count": deleted},
        "message": f"Cleaned up {deleted} old jobs",
    }
