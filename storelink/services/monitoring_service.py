"""
monitoring_service.py — Integration event log, metrics, health and trends

Write side: log_integration_event() appends one immutable IntegrationLog row
per operation outcome and, for failures, runs the alert engine inline.

Read side: rolling-window metrics, health classification, daily trends and
log export, all computed from integration_logs on demand.

Business Rules:
- Log rows are never updated or deleted here
- success_rate / error_rate are 0 (never NaN) when the window is empty
- Read paths degrade to empty snapshots on database errors
- Health looks at the last 24h; "recent activity" means the last 6h

Called by: services/reconciler.py, services/sync_service.py,
           services/job_queue_service.py, services/maintenance_service.py,
           routers/monitoring.py
Depends on: models, services/alert_service.py, services/health.py,
            services/trends.py
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..database import utcnow
from ..models import IntegrationLog
from ..schemas.monitoring import (
    DailyStat,
    HealthMetrics,
    HealthStatus,
    HourlyBucket,
    MetricsSnapshot,
    RecentError,
    TrendReport,
)
from .alert_service import check_alert_conditions
from .health import classify_health
from .trends import calculate_trends

LOG_STATUSES = ("success", "failure", "warning")
HOURLY_BUCKETS = 24
RECENT_ERROR_LIMIT = 10


# ── Event Logger ──────────────────────────────────────────────────────


def log_integration_event(
    db: Session,
    operation: str,
    status: str,
    data: dict[str, Any] | None = None,
    store_id: str = "system",
    integration_type: str | None = None,
    execution_time_ms: int | None = None,
    error_message: str | None = None,
) -> str:
    """Append one integration log row and return its id.

    data may carry "request", "response", "metrics" and "context" dicts;
    metrics and context are stored alongside the response.
    """
    if status not in LOG_STATUSES:
        raise ValueError(f"Invalid log status: {status}")
    integration_type = integration_type or settings.default_integration_type
    data = data or {}

    response_data = dict(data.get("response") or {})
    for extra in ("metrics", "context"):
        if data.get(extra):
            response_data[extra] = data[extra]

    entry = IntegrationLog(
        store_id=store_id,
        integration_type=integration_type,
        operation=operation,
        status=status,
        request_data=dict(data.get("request") or {}),
        response_data=response_data,
        execution_time_ms=int(execution_time_ms) if execution_time_ms is not None else None,
        error_message=error_message,
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error logging integration event {} ({})", operation, status)
        raise

    if status == "failure":
        check_alert_conditions(db, store_id, integration_type, operation)

    return entry.id


# ── Metrics Aggregator ────────────────────────────────────────────────


def _window_query(db: Session, columns, integration_type: str, since: datetime, store_id: str | None):
    q = db.query(*columns).filter(
        IntegrationLog.integration_type == integration_type,
        IntegrationLog.created_at >= since,
    )
    if store_id:
        q = q.filter(IntegrationLog.store_id == store_id)
    return q


def get_integration_metrics(
    db: Session, integration_type: str, hours_back: int = 24, store_id: str | None = None
) -> MetricsSnapshot:
    """Rolling-window statistics over integration_logs."""
    since = utcnow() - timedelta(hours=hours_back)
    try:
        row = _window_query(
            db,
            (
                func.count(IntegrationLog.id).label("total"),
                func.sum(case((IntegrationLog.status == "success", 1), else_=0)).label("success"),
                func.sum(case((IntegrationLog.status == "failure", 1), else_=0)).label("failure"),
                func.sum(case((IntegrationLog.status == "warning", 1), else_=0)).label("warning"),
                func.avg(IntegrationLog.execution_time_ms).label("avg_ms"),
                func.max(IntegrationLog.execution_time_ms).label("max_ms"),
                func.min(IntegrationLog.execution_time_ms).label("min_ms"),
            ),
            integration_type,
            since,
            store_id,
        ).one()

        total = int(row.total or 0)
        successful = int(row.success or 0)
        failed = int(row.failure or 0)

        by_type = dict(
            _window_query(
                db,
                (IntegrationLog.operation, func.count(IntegrationLog.id)),
                integration_type,
                since,
                store_id,
            )
            .group_by(IntegrationLog.operation)
            .all()
        )

        # Hour truncation happens in Python so the query stays dialect-neutral
        hourly: dict[datetime, HourlyBucket] = {}
        for created_at, status in _window_query(
            db, (IntegrationLog.created_at, IntegrationLog.status), integration_type, since, store_id
        ).all():
            hour = created_at.replace(minute=0, second=0, microsecond=0)
            bucket = hourly.setdefault(hour, HourlyBucket(hour=hour.isoformat()))
            bucket.total += 1
            if status in LOG_STATUSES:
                setattr(bucket, status, getattr(bucket, status) + 1)
        operations_by_hour = [hourly[h] for h in sorted(hourly, reverse=True)[:HOURLY_BUCKETS]]

        errors = (
            _window_query(db, (IntegrationLog,), integration_type, since, store_id)
            .filter(IntegrationLog.status == "failure")
            .order_by(IntegrationLog.created_at.desc())
            .limit(RECENT_ERROR_LIMIT)
            .all()
        )
        recent_errors = [
            RecentError(
                id=e.id,
                operation=e.operation,
                error_message=e.error_message,
                created_at=e.created_at,
                execution_time_ms=e.execution_time_ms,
            )
            for e in errors
        ]
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error getting integration metrics for {}: {}", integration_type, e)
        return MetricsSnapshot()

    return MetricsSnapshot(
        total_operations=total,
        successful_operations=successful,
        failed_operations=failed,
        warning_operations=int(row.warning or 0),
        success_rate=successful / total if total > 0 else 0.0,
        error_rate=failed / total if total > 0 else 0.0,
        avg_execution_time=float(row.avg_ms or 0),
        max_execution_time=int(row.max_ms or 0),
        min_execution_time=int(row.min_ms or 0),
        operations_by_type={op: int(n) for op, n in by_type.items()},
        operations_by_hour=operations_by_hour,
        recent_errors=recent_errors,
    )


# ── Health ────────────────────────────────────────────────────────────


def has_recent_activity(
    db: Session, integration_type: str, store_id: str | None = None, hours: int | None = None
) -> bool:
    since = utcnow() - timedelta(hours=hours or settings.health_inactivity_hours)
    last = _window_query(
        db, (func.max(IntegrationLog.created_at),), integration_type, since, store_id
    ).scalar()
    return last is not None


def get_integration_health(
    db: Session, integration_type: str, store_id: str | None = None
) -> HealthStatus:
    """Classify the last 24h of activity as healthy / warning / critical."""
    metrics = get_integration_metrics(db, integration_type, 24, store_id)
    try:
        active = has_recent_activity(db, integration_type, store_id)

        q = db.query(
            func.max(case((IntegrationLog.status == "success", IntegrationLog.created_at))),
            func.max(case((IntegrationLog.status == "failure", IntegrationLog.created_at))),
        ).filter(IntegrationLog.integration_type == integration_type)
        if store_id:
            q = q.filter(IntegrationLog.store_id == store_id)
        last_success, last_failure = q.one()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error getting integration health for {}: {}", integration_type, e)
        return HealthStatus(
            status="critical",
            issues=["Unable to retrieve health status"],
            metrics=HealthMetrics(error_rate_24h=1.0),
            recommendations=["Check database connectivity and service health"],
        )

    status, issues, recommendations = classify_health(metrics, active)
    return HealthStatus(
        status=status,
        issues=issues,
        recommendations=recommendations,
        metrics=HealthMetrics(
            success_rate_24h=metrics.success_rate,
            error_rate_24h=metrics.error_rate,
            avg_response_time_24h=metrics.avg_execution_time,
            failed_jobs_24h=metrics.failed_operations,
            last_successful_operation=_as_datetime(last_success),
            last_failed_operation=_as_datetime(last_failure),
        ),
    )


def _as_datetime(value) -> datetime | None:
    """MAX(CASE …) loses the column type on some dialects; coerce back."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


# ── Trends ────────────────────────────────────────────────────────────


def get_performance_trends(
    db: Session, integration_type: str, days_back: int = 7, store_id: str | None = None
) -> TrendReport:
    """Daily aggregates over the window plus regression-slope trends."""
    since = utcnow() - timedelta(days=days_back)
    try:
        rows = _window_query(
            db,
            (IntegrationLog.created_at, IntegrationLog.status, IntegrationLog.execution_time_ms),
            integration_type,
            since,
            store_id,
        ).all()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error getting performance trends for {}: {}", integration_type, e)
        return TrendReport()

    days: dict[str, dict] = defaultdict(lambda: {"total": 0, "success": 0, "failure": 0, "times": []})
    for created_at, status, elapsed in rows:
        day = days[created_at.date().isoformat()]
        day["total"] += 1
        if status == "success":
            day["success"] += 1
        elif status == "failure":
            day["failure"] += 1
        if elapsed is not None:
            day["times"].append(elapsed)

    daily_stats = [
        DailyStat(
            date=date,
            total_operations=d["total"],
            success_rate=d["success"] / d["total"] if d["total"] else 0.0,
            avg_execution_time=sum(d["times"]) / len(d["times"]) if d["times"] else 0.0,
            error_count=d["failure"],
        )
        for date, d in sorted(days.items())
    ]
    return TrendReport(daily_stats=daily_stats, trends=calculate_trends(daily_stats))


# ── Overall status & export ───────────────────────────────────────────


def get_overall_status(
    db: Session, integration_type: str, store_id: str | None = None
) -> dict[str, Any]:
    """Roll health, 24h metrics and job-queue counts into one status."""
    from .job_queue_service import get_job_stats

    metrics = get_integration_metrics(db, integration_type, 24, store_id)
    health = get_integration_health(db, integration_type, store_id)
    jobs = get_job_stats(db, 24)

    if health.status == "healthy" and metrics.error_rate < 0.05:
        overall = "healthy"
    elif health.status == "critical" or metrics.error_rate > settings.health_critical_error_rate:
        overall = "critical"
    else:
        overall = "warning"

    return {
        "overall_status": overall,
        "integration_health": health.model_dump(mode="json"),
        "metrics_24h": {
            "total_operations": metrics.total_operations,
            "success_rate": metrics.success_rate,
            "error_rate": metrics.error_rate,
            "avg_execution_time": metrics.avg_execution_time,
        },
        "job_queue": {
            "pending": jobs["pending"],
            "processing": jobs["processing"],
            "failed": jobs["failed"],
            "completed_24h": jobs["completed"],
        },
    }


def export_integration_logs(
    db: Session, store_id: str, integration_type: str, start: datetime, end: datetime
) -> list[IntegrationLog]:
    return (
        db.query(IntegrationLog)
        .filter(
            IntegrationLog.store_id == store_id,
            IntegrationLog.integration_type == integration_type,
            IntegrationLog.created_at >= start,
            IntegrationLog.created_at <= end,
        )
        .order_by(IntegrationLog.created_at.desc())
        .all()
    )
