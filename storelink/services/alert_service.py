"""
alert_service.py — Threshold and consecutive-failure alerting

Invoked synchronously by monitoring_service.log_integration_event on every
failure row. Two independent checks run per call:

- high_error_rate (warning): failure share over the trailing window for the
  store + integration exceeds the threshold with a minimum sample size.
- consecutive_failures (critical): newest rows for the exact operation form
  an unbroken failure run up to the first success.

Business Rules:
- Alerts are append-only and never deduplicated; each qualifying failure
  writes new rows
- warning-status rows neither extend nor break a failure run
- Database errors here are logged and swallowed so the failure row that
  triggered the check is never lost; anything else propagates

Called by: services/monitoring_service.py
Depends on: models (IntegrationLog, IntegrationAlert), config.py
"""

from datetime import timedelta
from typing import Any

from loguru import logger
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..database import utcnow
from ..models import IntegrationAlert, IntegrationLog

CONSECUTIVE_LOOKBACK_ROWS = 10
ALERT_LEVELS = ("info", "warning", "critical")


def check_alert_conditions(
    db: Session, store_id: str, integration_type: str, operation: str
) -> list[IntegrationAlert]:
    """Evaluate both alert rules and persist any that fire."""
    with logger.contextualize(store_id=store_id, integration_type=integration_type):
        return _check_alert_conditions(db, store_id, integration_type, operation)


def _check_alert_conditions(
    db: Session, store_id: str, integration_type: str, operation: str
) -> list[IntegrationAlert]:
    fired: list[IntegrationAlert] = []
    try:
        window_start = utcnow() - timedelta(minutes=settings.alert_window_minutes)

        total, failures = (
            db.query(
                func.count(IntegrationLog.id),
                func.coalesce(
                    func.sum(case((IntegrationLog.status == "failure", 1), else_=0)), 0
                ),
            )
            .filter(
                IntegrationLog.store_id == store_id,
                IntegrationLog.integration_type == integration_type,
                IntegrationLog.created_at >= window_start,
            )
            .one()
        )
        total = int(total or 0)
        failures = int(failures or 0)
        error_rate = failures / total if total > 0 else 0.0

        if (
            error_rate > settings.alert_error_rate_threshold
            and total >= settings.alert_min_sample_size
        ):
            fired.append(
                trigger_alert(
                    db,
                    level="warning",
                    alert_type="high_error_rate",
                    store_id=store_id,
                    integration_type=integration_type,
                    operation=operation,
                    message=(
                        f"High error rate detected: {error_rate * 100:.1f}% "
                        f"({failures}/{total}) in the last hour"
                    ),
                    metadata={
                        "error_rate": error_rate,
                        "total_operations": total,
                        "failed_operations": failures,
                        "time_window": "1 hour",
                    },
                )
            )

        run = count_consecutive_failures(db, store_id, integration_type, operation, window_start)
        if run >= settings.alert_consecutive_failures:
            fired.append(
                trigger_alert(
                    db,
                    level="critical",
                    alert_type="consecutive_failures",
                    store_id=store_id,
                    integration_type=integration_type,
                    operation=operation,
                    message=f"{run} consecutive failures detected for {operation}",
                    metadata={"consecutive_failures": run, "operation": operation},
                )
            )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error checking alert conditions for {}/{}: {}", store_id, integration_type, e)
    return [a for a in fired if a is not None]


def count_consecutive_failures(
    db: Session, store_id: str, integration_type: str, operation: str, since=None
) -> int:
    """Length of the failure run at the head of the newest rows for one operation."""
    q = db.query(IntegrationLog.status).filter(
        IntegrationLog.store_id == store_id,
        IntegrationLog.integration_type == integration_type,
        IntegrationLog.operation == operation,
    )
    if since is not None:
        q = q.filter(IntegrationLog.created_at >= since)
    statuses = [
        row.status
        for row in q.order_by(IntegrationLog.created_at.desc())
        .limit(CONSECUTIVE_LOOKBACK_ROWS)
        .all()
    ]

    run = 0
    for status in statuses:
        if status == "success":
            break
        if status == "failure":
            run += 1
    return run


def trigger_alert(
    db: Session,
    *,
    level: str,
    alert_type: str,
    store_id: str,
    integration_type: str,
    operation: str,
    message: str,
    metadata: dict[str, Any],
) -> IntegrationAlert | None:
    """Persist one alert row and echo it to the application log."""
    if level not in ALERT_LEVELS:
        raise ValueError(f"Invalid alert level: {level}")

    log_fn = logger.error if level == "critical" else logger.warning
    log_fn("ALERT [{}]: {} {}", level.upper(), message, metadata)

    alert = IntegrationAlert(
        store_id=store_id,
        integration_type=integration_type,
        operation=operation,
        level=level,
        type=alert_type,
        message=message,
        alert_metadata=metadata,
    )
    try:
        db.add(alert)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error persisting {} alert for store {}", alert_type, store_id)
        return None
    return alert


def get_recent_alerts(
    db: Session,
    store_id: str | None = None,
    hours_back: int = 24,
    level: str | None = None,
    limit: int = 100,
) -> list[IntegrationAlert]:
    """Newest alerts in the window, optionally filtered by store and level."""
    cutoff = utcnow() - timedelta(hours=hours_back)
    q = db.query(IntegrationAlert).filter(IntegrationAlert.created_at >= cutoff)
    if store_id:
        q = q.filter(IntegrationAlert.store_id == store_id)
    if level:
        q = q.filter(IntegrationAlert.level == level)
    try:
        return q.order_by(IntegrationAlert.created_at.desc()).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error("Error getting recent alerts: {}", e)
        return []
