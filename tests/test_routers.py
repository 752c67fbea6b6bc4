"""
test_routers.py — Tests for the sync and monitoring API endpoints.

Called by: pytest
Depends on: storelink/routers/sync.py, storelink/routers/monitoring.py,
            conftest.py
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from storelink.config import settings
from storelink.database import utcnow
from storelink.models import IntegrationAlert, IntegrationLog, Job, SyncRun, Warehouse

STORE_ID = "store-1"
HEADERS = {"X-Store-Id": STORE_ID}


@pytest.fixture()
def patched_provider(fake_shipstation):
    with patch(
        "storelink.services.sync_service.ShipStationClient",
        side_effect=lambda api_key: fake_shipstation.client(api_key),
    ):
        yield fake_shipstation


# ── Sync endpoints ──────────────────────────────────────────────────


class TestSyncEndpoint:
    def test_sync_warehouses(self, client, store_integration, patched_provider, db_session):
        patched_provider.listings["warehouses"] = [{"warehouse_id": "se-1", "name": "Main"}]
        resp = client.post("/api/admin/sync/warehouses", headers=HEADERS)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Warehouses sync completed"
        assert body["data"] == {"totalCount": 1, "addedCount": 1, "updatedCount": 0}
        assert db_session.query(Warehouse).count() == 1

    def test_sync_all(self, client, store_integration, patched_provider):
        resp = client.post("/api/admin/sync/all", headers=HEADERS)
        assert resp.status_code == 200
        assert set(resp.json()["data"]) == {"products", "inventory", "warehouses", "locations"}

    def test_failed_stage_still_reports_success(self, client, store_integration, patched_provider):
        patched_provider.failing.add("products")
        resp = client.post("/api/admin/sync/products", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["data"]["totalCount"] == 0

    def test_missing_integration_is_400(self, client, patched_provider):
        resp = client.post("/api/admin/sync/products", headers=HEADERS)
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "shipstation integration not configured"}
        assert patched_provider.calls == []

    def test_unknown_entity_type_is_400(self, client, store_integration):
        resp = client.post("/api/admin/sync/orders", headers=HEADERS)
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_missing_store_header_is_401(self, client):
        resp = client.post("/api/admin/sync/products")
        assert resp.status_code == 401


class TestBackgroundSync:
    @pytest.fixture()
    def token(self):
        with patch.object(settings, "sync_auth_token", "sched-token"):
            yield {"Authorization": "Bearer sched-token"}

    @pytest.fixture()
    def patched_background(self, fake_shipstation):
        with patch(
            "storelink.services.background_sync_service.ShipStationClient",
            side_effect=lambda api_key: fake_shipstation.client(api_key),
        ):
            yield fake_shipstation

    def test_background_sync_runs_all_stores(
        self, client, token, store_integration, patched_background, db_session
    ):
        patched_background.listings["warehouses"] = [{"warehouse_id": "se-1", "name": "Main"}]
        resp = client.post("/api/admin/sync/background", headers=token)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["summary"]["failed_operations"] == 0
        assert body["summary"]["total_operations"] == 5
        assert db_session.query(Warehouse).count() == 1
        assert db_session.query(SyncRun).count() == 1

    def test_background_sync_requires_token(self, client, token, patched_background):
        resp = client.post(
            "/api/admin/sync/background", headers={"Authorization": "Bearer wrong"}
        )
        assert resp.status_code == 401
        assert patched_background.calls == []

    def test_background_sync_rejected_without_configured_token(self, client):
        resp = client.post("/api/admin/sync/background", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401

    def test_background_history(self, client, token, db_session):
        db_session.add(SyncRun(total_operations=5, successful_operations=5))
        db_session.commit()
        resp = client.get("/api/admin/sync/background", headers=token)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["total_syncs"] == 1
        assert data["last_sync"]["successful_operations"] == 5

    def test_sync_status(self, client, store_integration, db_session):
        db_session.add(SyncRun(total_operations=5, successful_operations=5))
        db_session.commit()
        resp = client.get("/api/admin/sync/status", headers=HEADERS)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["active_integrations"] == 1
        assert data["statistics"]["total_syncs"] == 1
        assert data["system_status"]["healthy"] is True

    def test_sync_status_requires_store(self, client):
        assert client.get("/api/admin/sync/status").status_code == 401


# ── Monitoring endpoints ────────────────────────────────────────────


def _seed_logs(db, successes=8, failures=2):
    for status, n in (("success", successes), ("failure", failures)):
        for _ in range(n):
            db.add(
                IntegrationLog(
                    store_id=STORE_ID,
                    integration_type="shipstation",
                    operation="product_sync",
                    status=status,
                    execution_time_ms=50,
                )
            )
    db.commit()


class TestMonitoringReads:
    def test_metrics(self, client, db_session):
        _seed_logs(db_session)
        resp = client.get(f"/api/admin/integrations/monitoring/metrics?store_id={STORE_ID}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["total_operations"] == 10
        assert body["data"]["error_rate"] == pytest.approx(0.2)
        assert body["metadata"]["integration_type"] == "shipstation"
        assert body["metadata"]["time_range_hours"] == 24

    def test_metrics_empty(self, client):
        resp = client.get("/api/admin/integrations/monitoring/metrics")
        assert resp.json()["data"]["success_rate"] == 0

    def test_health(self, client, db_session):
        _seed_logs(db_session, successes=7, failures=3)
        resp = client.get("/api/admin/integrations/monitoring/health")
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "critical"

    def test_alerts(self, client, db_session):
        db_session.add(
            IntegrationAlert(
                store_id=STORE_ID,
                integration_type="shipstation",
                operation="product_sync",
                level="critical",
                type="consecutive_failures",
                message="5 consecutive failures detected for product_sync",
                alert_metadata={"consecutive_failures": 5},
            )
        )
        db_session.commit()
        resp = client.get("/api/admin/integrations/monitoring/alerts?level=critical")
        body = resp.json()
        assert body["metadata"]["alert_count"] == 1
        assert body["data"][0]["metadata"] == {"consecutive_failures": 5}

    def test_alerts_bad_level(self, client):
        resp = client.get("/api/admin/integrations/monitoring/alerts?level=fatal")
        assert resp.status_code == 422

    def test_trends(self, client, db_session):
        _seed_logs(db_session)
        resp = client.get("/api/admin/integrations/monitoring/trends?days=3")
        body = resp.json()
        assert len(body["data"]["daily_stats"]) == 1
        assert body["data"]["trends"]["success_rate_trend"] == "stable"
        assert body["metadata"]["time_range_days"] == 3

    def test_status(self, client, db_session):
        _seed_logs(db_session, successes=20, failures=0)
        resp = client.get("/api/admin/integrations/monitoring/status")
        assert resp.json()["data"]["overall_status"] == "healthy"

    def test_job_stats(self, client, db_session):
        db_session.add(Job(job_type="inventory_update", payload={}, status="failed", attempts=3))
        db_session.commit()
        body = client.get("/api/admin/integrations/monitoring/job-stats").json()
        assert body["data"]["statistics"]["failed"] == 1
        assert body["data"]["recent_failed_jobs"][0]["job_type"] == "inventory_update"

    def test_export(self, client, db_session):
        _seed_logs(db_session, successes=2, failures=1)
        start = (utcnow() - timedelta(hours=1)).isoformat()
        resp = client.get(
            "/api/admin/integrations/monitoring/export",
            params={"store_id": STORE_ID, "start": start},
        )
        body = resp.json()
        assert body["metadata"]["row_count"] == 3
        assert {r["status"] for r in body["data"]} == {"success", "failure"}

    def test_export_requires_store(self, client):
        assert client.get("/api/admin/integrations/monitoring/export").status_code == 422


class TestMonitoringActions:
    URL = "/api/admin/integrations/monitoring/actions"

    def test_trigger_health_check(self, client, db_session):
        resp = client.post(self.URL, json={"action": "trigger-health-check", "store_id": STORE_ID})
        assert resp.status_code == 200
        assert resp.json()["message"] == "Health check completed"
        assert db_session.query(IntegrationLog).filter_by(operation="health_check").count() == 1

    def test_retry_failed_jobs(self, client, db_session):
        job = Job(job_type="inventory_update", payload={}, status="failed", attempts=3)
        db_session.add(job)
        db_session.commit()
        resp = client.post(self.URL, json={"action": "retry-failed-jobs", "retry_all": True})
        assert resp.json()["data"] == {"retried_count": 1}

    def test_cleanup_old_jobs(self, client, db_session):
        db_session.add(
            Job(job_type="x", payload={}, status="completed", completed_at=utcnow() - timedelta(days=60))
        )
        db_session.commit()
        resp = client.post(self.URL, json={"action": "cleanup-old-jobs"})
        assert resp.json()["data"] == {"deleted_count": 1}

    def test_unknown_action_is_422(self, client):
        assert client.post(self.URL, json={"action": "reboot"}).status_code == 422
