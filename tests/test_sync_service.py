"""
test_sync_service.py — Tests for services/sync_service.py

Stage ordering and isolation, result keys, and credential resolution.

Called by: pytest
Depends on: storelink/services/sync_service.py, conftest.FakeShipStation
"""

import base64

import pytest
from loguru import logger

from storelink.errors import ConfigurationError
from storelink.models import IntegrationLog, Product, StoreIntegration, Warehouse
from storelink.services.reconciler import SyncResult
from storelink.services.sync_service import (
    get_integration_credential,
    run_all,
    run_stage,
    run_sync,
)

STORE_ID = "store-1"


def _seed_listings(fake):
    fake.listings["warehouses"] = [{"warehouse_id": "se-1", "name": "Main"}]
    fake.listings["inventory_warehouses"] = [
        {"inventory_warehouse_id": "iw-1", "name": "Main"},
        {"inventory_warehouse_id": "iw-2", "name": "Overflow"},
    ]
    fake.listings["inventory_locations"] = [
        {"inventory_location_id": "il-1", "inventory_warehouse_id": "iw-1", "name": "A1"},
    ]
    fake.listings["products"] = [{"product_id": "p1", "sku": "A", "name": "Alpha"}]
    fake.listings["inventory"] = [{"sku": "A", "inventory_warehouse_id": "iw-1", "available": 4}]


# ── Orchestrator ──────────────────────────────────────────────────────


def test_run_all_result_keys_and_counts(db_session, fake_shipstation, ss_client):
    _seed_listings(fake_shipstation)
    results = run_all(db_session, "test-key", STORE_ID, client=ss_client)

    assert set(results) == {"products", "inventory", "warehouses", "locations"}
    assert results["warehouses"].added_count == 1
    assert results["locations"].to_dict() == {"totalCount": 3, "addedCount": 3, "updatedCount": 0}
    assert results["products"].added_count == 1
    assert results["inventory"].added_count == 1
    assert db_session.query(Product).one().stock_quantity == 4


def test_stages_run_in_fixed_order(db_session, fake_shipstation, ss_client):
    run_all(db_session, "test-key", STORE_ID, client=ss_client)
    first_seen = []
    for resource, _ in fake_shipstation.calls:
        if resource not in first_seen:
            first_seen.append(resource)
    # products fetches its inventory listing before the product pages
    assert first_seen == [
        "warehouses",
        "inventory_warehouses",
        "inventory_locations",
        "inventory",
        "products",
    ]


def test_failed_stage_is_isolated(db_session, fake_shipstation, ss_client):
    _seed_listings(fake_shipstation)
    fake_shipstation.failing.add("warehouses")

    results = run_all(db_session, "test-key", STORE_ID, client=ss_client)

    assert results["warehouses"].to_dict() == {"totalCount": 0, "addedCount": 0, "updatedCount": 0}
    assert results["products"].added_count == 1
    assert results["inventory"].added_count == 1
    assert db_session.query(Warehouse).count() == 0

    failure = db_session.query(IntegrationLog).filter_by(status="failure").one()
    assert failure.operation == "warehouse_sync"
    assert "500" in failure.error_message


def test_run_stage_returns_empty_result_on_error(db_session, fake_shipstation, ss_client):
    fake_shipstation.failing.add("inventory_locations")
    result = run_stage(db_session, "inventory-locations", ss_client, STORE_ID)
    assert isinstance(result, SyncResult)
    assert result.total_count == 0


def test_run_sync_single_stage(db_session, fake_shipstation, ss_client):
    _seed_listings(fake_shipstation)
    result = run_sync(db_session, "warehouses", "test-key", STORE_ID, client=ss_client)
    assert isinstance(result, SyncResult)
    assert result.added_count == 1
    assert {r for r, _ in fake_shipstation.calls} == {"warehouses"}


def test_run_sync_all_returns_dict(db_session, fake_shipstation, ss_client):
    results = run_sync(db_session, "all", "test-key", STORE_ID, client=ss_client)
    assert set(results) == {"products", "inventory", "warehouses", "locations"}


def test_run_sync_unknown_entity_type(db_session, fake_shipstation, ss_client):
    with pytest.raises(ValueError):
        run_sync(db_session, "orders", "test-key", STORE_ID, client=ss_client)
    assert fake_shipstation.calls == []


# ── Credentials ───────────────────────────────────────────────────────


def test_credential_decoded(db_session, store_integration):
    assert get_integration_credential(db_session, STORE_ID) == "test-key"


def test_credential_missing_integration(db_session):
    with pytest.raises(ConfigurationError, match="not configured"):
        get_integration_credential(db_session, STORE_ID)


def test_credential_inactive_integration(db_session, store_integration):
    store_integration.is_active = False
    db_session.commit()
    with pytest.raises(ConfigurationError):
        get_integration_credential(db_session, STORE_ID)


def test_credential_empty_key(db_session):
    db_session.add(StoreIntegration(store_id=STORE_ID, integration_type="shipstation", api_key_encrypted=""))
    db_session.commit()
    with pytest.raises(ConfigurationError, match="API key not configured"):
        get_integration_credential(db_session, STORE_ID)


def test_credential_undecodable(db_session):
    db_session.add(
        StoreIntegration(store_id=STORE_ID, integration_type="shipstation", api_key_encrypted="not base64!")
    )
    db_session.commit()
    with pytest.raises(ConfigurationError, match="could not be decoded"):
        get_integration_credential(db_session, STORE_ID)


def test_credential_whitespace_key(db_session):
    db_session.add(
        StoreIntegration(
            store_id=STORE_ID,
            integration_type="shipstation",
            api_key_encrypted=base64.b64encode(b"   ").decode(),
        )
    )
    db_session.commit()
    with pytest.raises(ConfigurationError):
        get_integration_credential(db_session, STORE_ID)


def test_stage_logs_carry_store_context(db_session, fake_shipstation, ss_client):
    fake_shipstation.listings["warehouses"] = [{"warehouse_id": "se-1", "name": "Main"}]
    records = []
    sink_id = logger.add(lambda m: records.append(m.record), format="{message}")
    try:
        run_stage(db_session, "warehouses", ss_client, STORE_ID)
    finally:
        logger.remove(sink_id)

    stage_records = [r for r in records if r["message"].startswith("Syncing warehouses")]
    assert stage_records
    extra = stage_records[0]["extra"]
    assert extra["store_id"] == STORE_ID
    assert extra["integration_type"] == "shipstation"
    assert extra["entity_type"] == "warehouses"


def test_failed_stage_result_carries_error(db_session, fake_shipstation, ss_client):
    fake_shipstation.failing.add("warehouses")
    result = run_stage(db_session, "warehouses", ss_client, STORE_ID)
    assert result.stage_error is not None
    assert "500" in result.stage_error
