"""
background_sync_service.py — Scheduled full sync across every active store

Runs the reconciliation stages for each store with an active ShipStation
integration and records one sync_logs row per run.

Business Rules:
- Active store = active integration of the default type with a stored key
- Stores are synced one after another; stages keep the fixed order
- A store whose credential cannot be resolved yields a single failed
  "store_sync" entry; the remaining stores still run
- Every run is persisted, including runs that found no active store
- Writing the sync log never fails the run
- A run counts as successful when none of its operations failed

Called by: routers/sync.py (background and status endpoints)
Depends on: services/sync_service.py, connectors/shipstation.py,
            models (SyncRun, StoreIntegration)
"""

import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from loguru import logger
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.shipstation import ShipStationClient
from ..database import utcnow
from ..errors import ConfigurationError
from ..models import StoreIntegration, SyncRun
from .sync_service import STAGE_ORDER, get_integration_credential, run_stage

ClientFactory = Callable[[str], ShipStationClient]


def get_active_stores(db: Session, integration_type: str | None = None) -> list[str]:
    integration_type = integration_type or settings.default_integration_type
    rows = (
        db.query(StoreIntegration.store_id)
        .filter(
            StoreIntegration.integration_type == integration_type,
            StoreIntegration.is_active.is_(True),
            StoreIntegration.api_key_encrypted.isnot(None),
            StoreIntegration.api_key_encrypted != "",
        )
        .distinct()
        .order_by(StoreIntegration.store_id)
        .all()
    )
    return [r.store_id for r in rows]


def sync_store(
    db: Session, store_id: str, client_factory: ClientFactory | None = None
) -> list[dict[str, Any]]:
    """Run every stage for one store. One result entry per stage."""
    client_factory = client_factory or ShipStationClient
    try:
        api_key = get_integration_credential(db, store_id)
    except ConfigurationError as e:
        logger.warning("Skipping store {}: {}", store_id, e)
        return [_entry("store_sync", store_id, error=str(e))]

    results = []
    with client_factory(api_key) as client:
        for entity_type in STAGE_ORDER:
            started = time.perf_counter()
            stage = run_stage(db, entity_type, client, store_id)
            results.append(
                _entry(
                    entity_type,
                    store_id,
                    duration_ms=int((time.perf_counter() - started) * 1000),
                    records_processed=stage.total_count,
                    error=stage.stage_error,
                )
            )
    return results


def run_full_sync(db: Session, client_factory: ClientFactory | None = None) -> dict[str, Any]:
    """Sync every active store and persist the run summary."""
    started_at = utcnow()
    started = time.perf_counter()
    stores = get_active_stores(db)
    logger.info("Background sync started: {} active store(s)", len(stores))

    results: list[dict[str, Any]] = []
    for store_id in stores:
        results.extend(sync_store(db, store_id, client_factory))

    failed = sum(1 for r in results if not r["success"])
    summary = {
        "started_at": started_at.isoformat(),
        "total_operations": len(results),
        "successful_operations": len(results) - failed,
        "failed_operations": failed,
        "total_duration_ms": int((time.perf_counter() - started) * 1000),
        "results": results,
    }
    log_sync_results(db, summary, started_at)
    logger.info(
        "Background sync finished: {}/{} operations succeeded in {}ms",
        summary["successful_operations"],
        summary["total_operations"],
        summary["total_duration_ms"],
    )
    return summary


def log_sync_results(db: Session, summary: dict[str, Any], started_at=None) -> SyncRun | None:
    run = SyncRun(
        started_at=started_at or utcnow(),
        total_operations=summary["total_operations"],
        successful_operations=summary["successful_operations"],
        failed_operations=summary["failed_operations"],
        total_duration_ms=summary["total_duration_ms"],
        results=summary["results"],
    )
    try:
        db.add(run)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write sync log")
        return None
    return run


# ── History & status ──────────────────────────────────────────────────


def get_sync_history(db: Session, limit: int = 50) -> list[SyncRun]:
    return db.query(SyncRun).order_by(SyncRun.started_at.desc()).limit(limit).all()


def get_sync_statistics(db: Session, days: int | None = None) -> dict[str, Any]:
    """Aggregate runs started in the last `days` days."""
    since = utcnow() - timedelta(days=days or settings.sync_stats_days)
    row = (
        db.query(
            func.count(SyncRun.id),
            func.coalesce(func.sum(case((SyncRun.failed_operations == 0, 1), else_=0)), 0),
            func.avg(SyncRun.total_duration_ms),
            func.coalesce(func.sum(SyncRun.total_operations), 0),
            func.coalesce(func.sum(SyncRun.successful_operations), 0),
            func.coalesce(func.sum(SyncRun.failed_operations), 0),
        )
        .filter(SyncRun.started_at >= since)
        .one()
    )
    total, ok, avg_ms, ops, ok_ops, failed_ops = row
    latest = get_sync_history(db, 1)
    last = latest[0].started_at if latest and latest[0].started_at >= since else None
    total, ok, ops = int(total or 0), int(ok or 0), int(ops or 0)
    return {
        "total_syncs": total,
        "successful_syncs": ok,
        "success_rate": round(ok / total, 3) if total else 0.0,
        "avg_duration_ms": round(float(avg_ms or 0), 1),
        "last_sync": last.isoformat() if last else None,
        "total_operations": ops,
        "total_successful_operations": int(ok_ops or 0),
        "total_failed_operations": int(failed_ops or 0),
        "operation_success_rate": round(int(ok_ops or 0) / ops, 3) if ops else 0.0,
    }


def get_recent_errors(db: Session, limit: int = 5) -> list[dict[str, Any]]:
    runs = (
        db.query(SyncRun)
        .filter(SyncRun.failed_operations > 0)
        .order_by(SyncRun.started_at.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "started_at": run.started_at.isoformat(),
            "failed_operations": [r for r in (run.results or []) if not r.get("success")],
        }
        for run in runs
    ]


def get_sync_status(db: Session) -> dict[str, Any]:
    history = get_sync_history(db, 10)
    stats = get_sync_statistics(db)
    stores = get_active_stores(db)
    last_ok = next((run for run in history if run.successful_operations > 0), None)
    return {
        "last_sync": sync_run_to_dict(history[0]) if history else None,
        "recent_syncs": [sync_run_to_dict(run) for run in history],
        "statistics": stats,
        "active_integrations": len(stores),
        "active_stores": stores,
        "recent_errors": get_recent_errors(db),
        "system_status": {
            "healthy": stats["success_rate"] >= settings.sync_healthy_success_rate,
            "last_successful_sync": last_ok.started_at.isoformat() if last_ok else None,
            "average_duration_ms": stats["avg_duration_ms"],
        },
    }


def sync_run_to_dict(run: SyncRun) -> dict[str, Any]:
    return {
        "id": run.id,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "total_operations": run.total_operations,
        "successful_operations": run.successful_operations,
        "failed_operations": run.failed_operations,
        "total_duration_ms": run.total_duration_ms,
        "results": run.results or [],
    }


def _entry(
    operation: str,
    store_id: str,
    duration_ms: int = 0,
    records_processed: int = 0,
    error: str | None = None,
) -> dict[str, Any]:
    return {
        "operation": operation,
        "store_id": store_id,
        "success": error is None,
        "duration_ms": duration_ms,
        "records_processed": records_processed,
        "error": error,
    }
