"""Sync API — Manually pull provider data into the store's catalog.

A missing or unusable credential raises ConfigurationError, which main.py
turns into a 400 {"success": false, "error": ...}. Failed stages do not
change the response: the counts for that stage are simply zero.

The scheduler triggers a sync of every active store through
/api/admin/sync/background; admins read run history at /api/admin/sync/status.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_store_id, require_sync_token
from ..schemas.sync import SyncResponse
from ..services import background_sync_service
from ..services.sync_service import ENTITY_TYPES, get_integration_credential, run_sync

router = APIRouter(tags=["sync"])

LABELS = {
    "all": "All data",
    "warehouses": "Warehouses",
    "inventory-warehouses": "Inventory warehouses",
    "inventory-locations": "Inventory locations",
    "products": "Products",
    "inventory": "Inventory",
}


# ── Background sync (scheduler) ───────────────────────────────────────
# Declared before /{entity_type} so "background" and "status" match first.


@router.post("/api/admin/sync/background", dependencies=[Depends(require_sync_token)])
def api_background_sync(db: Session = Depends(get_db)):
    summary = background_sync_service.run_full_sync(db)
    return {"success": True, "message": "Background sync completed", "summary": summary}


@router.get("/api/admin/sync/background", dependencies=[Depends(require_sync_token)])
def api_background_history(limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_db)):
    history = [
        background_sync_service.sync_run_to_dict(run)
        for run in background_sync_service.get_sync_history(db, limit)
    ]
    return {
        "success": True,
        "data": {
            "sync_history": history,
            "last_sync": history[0] if history else None,
            "total_syncs": len(history),
        },
    }


@router.get("/api/admin/sync/status")
def api_sync_status(
    store_id: str = Depends(require_store_id),
    db: Session = Depends(get_db),
):
    return {"success": True, "data": background_sync_service.get_sync_status(db)}


# ── Manual sync ───────────────────────────────────────────────────────


@router.post("/api/admin/sync/{entity_type}", response_model=SyncResponse)
def api_sync(
    entity_type: str,
    store_id: str = Depends(require_store_id),
    db: Session = Depends(get_db),
):
    if entity_type not in ENTITY_TYPES:
        return JSONResponse(
            {"success": False, "error": f"Unknown entity type: {entity_type}"}, status_code=400
        )
    api_key = get_integration_credential(db, store_id)

    result = run_sync(db, entity_type, api_key, store_id)
    if isinstance(result, dict):
        data = {name: r.to_dict() for name, r in result.items()}
    else:
        data = result.to_dict()
    return {
        "success": True,
        "message": f"{LABELS[entity_type]} sync completed",
        "data": data,
    }
