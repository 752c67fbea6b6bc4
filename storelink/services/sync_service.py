"""
sync_service.py — Reconciliation orchestrator for a store's provider data

Runs the entity reconcilers in a fixed order and isolates their failures
from one another.

Business Rules:
- Order: warehouses, inventory-warehouses, inventory-locations, products,
  inventory
- A stage that raises yields an empty SyncResult and a failure log row;
  later stages still run
- Nothing is rolled back across stages: committed upserts stay
- Credentials are resolved before any stage; problems raise
  ConfigurationError and no provider call is made

Called by: routers/sync.py, services/background_sync_service.py
Depends on: services/reconciler.py, services/monitoring_service.py,
            connectors/shipstation.py, models (StoreIntegration)
"""

import base64
import binascii
import time

from loguru import logger
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.shipstation import ShipStationClient
from ..errors import ConfigurationError
from ..models import StoreIntegration
from .monitoring_service import log_integration_event
from .reconciler import RECONCILERS, SyncResult

STAGE_ORDER = (
    "warehouses",
    "inventory-warehouses",
    "inventory-locations",
    "products",
    "inventory",
)
ENTITY_TYPES = STAGE_ORDER + ("all",)


# ── Credentials ───────────────────────────────────────────────────────


def get_integration_credential(
    db: Session, store_id: str, integration_type: str | None = None
) -> str:
    """Return the decoded API key for a store's active integration."""
    integration_type = integration_type or settings.default_integration_type
    integration = (
        db.query(StoreIntegration)
        .filter_by(store_id=store_id, integration_type=integration_type, is_active=True)
        .first()
    )
    if integration is None:
        raise ConfigurationError(f"{integration_type} integration not configured")
    if not integration.api_key_encrypted:
        raise ConfigurationError(f"{integration_type} API key not configured")
    try:
        api_key = base64.b64decode(integration.api_key_encrypted, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigurationError(f"{integration_type} API key could not be decoded") from e
    if not api_key.strip():
        raise ConfigurationError(f"{integration_type} API key not configured")
    return api_key.strip()


# ── Stages ────────────────────────────────────────────────────────────


def run_stage(
    db: Session, entity_type: str, client: ShipStationClient, store_id: str
) -> SyncResult:
    """Run one reconciler; any exception becomes an empty result.

    Log records emitted inside the stage carry store_id, integration_type
    and entity_type as loguru extras.
    """
    reconciler_cls = RECONCILERS[entity_type]
    started = time.perf_counter()
    with logger.contextualize(
        store_id=store_id,
        integration_type=settings.default_integration_type,
        entity_type=entity_type,
    ):
        try:
            return reconciler_cls(db, client, store_id).run()
        except Exception as e:
            db.rollback()
            logger.error("{} sync failed for store {}: {}", entity_type, store_id, e)
            log_integration_event(
                db,
                reconciler_cls.operation,
                "failure",
                {"request": {"entity_type": entity_type}},
                store_id=store_id,
                execution_time_ms=int((time.perf_counter() - started) * 1000),
                error_message=str(e),
            )
            return SyncResult(stage_error=str(e))


def run_all(
    db: Session, api_key: str, store_id: str, client: ShipStationClient | None = None
) -> dict[str, SyncResult]:
    """Run every stage in order and return results keyed for the API."""
    own_client = client is None
    client = client or ShipStationClient(api_key)
    try:
        stages = {name: run_stage(db, name, client, store_id) for name in STAGE_ORDER}
    finally:
        if own_client:
            client.close()

    results = {
        "products": stages["products"],
        "inventory": stages["inventory"],
        "warehouses": stages["warehouses"],
        "locations": stages["inventory-warehouses"].merge(stages["inventory-locations"]),
    }
    logger.info(
        "Full sync for store {} done: {}",
        store_id,
        {k: v.to_dict() for k, v in results.items()},
    )
    return results


def run_sync(
    db: Session,
    entity_type: str,
    api_key: str,
    store_id: str,
    client: ShipStationClient | None = None,
) -> SyncResult | dict[str, SyncResult]:
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity type: {entity_type}")
    if entity_type == "all":
        return run_all(db, api_key, store_id, client)

    own_client = client is None
    client = client or ShipStationClient(api_key)
    try:
        return run_stage(db, entity_type, client, store_id)
    finally:
        if own_client:
            client.close()
