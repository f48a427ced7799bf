"""Integration tests for the HTTP API."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from pdv_sentinel.domains.audit.models import AuditReport, DetectionStatistics, SyncStatistics
from pdv_sentinel.domains.audit.recorder import get_audit_recorder
from pdv_sentinel.domains.detection.orchestrator import DetectionOrchestrator, get_orchestrator
from pdv_sentinel.domains.sync.job import SyncJob, get_sync_job
from pdv_sentinel.main import app
from pdv_sentinel.shared.exceptions import UnsupportedDatabaseError
from tests.fakes import (
    T0,
    FakeStore,
    make_cancellation,
    make_connector,
    make_operator,
    make_rows,
    make_sale,
)

pytestmark = pytest.mark.integration

CONNECTOR = {
    "type": "postgresql",
    "name": "loja-centro",
    "host": "erp.local",
    "port": 5432,
    "database": "erp",
    "username": "reader",
}


@pytest.fixture
def store() -> FakeStore:
    store = FakeStore()
    store.operators = [make_operator()]
    store.sales = [make_sale("S-1", sold_at=T0)]
    store.cancellations = [make_cancellation("C-1", "S-1", T0 + timedelta(minutes=2))]
    return store


@pytest.fixture
def orchestrator(store) -> DetectionOrchestrator:
    return DetectionOrchestrator(store)


@pytest.fixture
def job(store) -> SyncJob:
    return SyncJob(store, connector_factory=lambda c: make_connector(make_rows(3), config=c))


@pytest.fixture
def recorder() -> AsyncMock:
    recorder = AsyncMock()
    recorder.recent_syncs.return_value = []
    recorder.recent_detections.return_value = []
    recorder.sync_statistics.return_value = SyncStatistics(days_back=30, total_syncs=4)
    recorder.detection_statistics.return_value = DetectionStatistics(days_back=30)
    return recorder


@pytest_asyncio.fixture
async def client(orchestrator, job, recorder):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_sync_job] = lambda: job
    app.dependency_overrides[get_audit_recorder] = lambda: recorder
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health_endpoint(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "uptime_seconds" in data

    @pytest.mark.asyncio
    async def test_ready_degraded_without_database(self, client, monkeypatch):
        import pdv_sentinel.db.database as database

        monkeypatch.setattr(database, "check_db", AsyncMock(return_value=False))
        response = await client.get("/ready")
        assert response.status_code == 503
        assert response.json() == {"status": "degraded", "database": False}

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestDetectionEndpoints:
    @pytest.mark.asyncio
    async def test_run(self, client, orchestrator):
        response = await client.post(
            "/api/v1/detection/run", json={"date_from": "2026-01-01T00:00:00Z"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "SUCCESS"
        assert data["alerts_generated"] == 1
        assert data["summary"]["ghost_cancellations"] == 1
        assert orchestrator.last_run.is_manual is True
        assert orchestrator.last_run.triggered_by == "api"

    @pytest.mark.asyncio
    async def test_run_without_body(self, client):
        response = await client.post("/api/v1/detection/run")
        assert response.status_code == 200
        assert response.json()["alerts_generated"] == 0

    @pytest.mark.asyncio
    async def test_run_rejects_window_out_of_range(self, client):
        response = await client.post("/api/v1/detection/run", json={"days_back": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_run_conflict(self, client, orchestrator):
        with orchestrator._guard.claim():
            response = await client.post(
                "/api/v1/detection/run", headers={"X-Request-ID": "req-409"}
            )
        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "conflict"
        assert data["request_id"] == "req-409"

    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/api/v1/detection/status")
        data = response.json()
        assert data["running"] is False
        assert data["last_run"] is None
        assert len(data["modules"]) == 5

    @pytest.mark.asyncio
    async def test_last_run(self, client):
        response = await client.get("/api/v1/detection/last-run")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

        await client.post("/api/v1/detection/run", json={"days_back": 1})
        response = await client.get("/api/v1/detection/last-run")
        assert response.status_code == 200
        assert response.json()["detection_id"].startswith("DET-")

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self):
        broken = MagicMock()
        broken.run = AsyncMock(side_effect=RuntimeError("boom"))
        app.dependency_overrides[get_orchestrator] = lambda: broken
        try:
            transport = ASGITransport(app=app, raise_app_exceptions=False)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.post("/api/v1/detection/run")
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 500
        assert response.json()["error"] == "internal_server_error"


class TestSyncEndpoints:
    @pytest.mark.asyncio
    async def test_run(self, client, job):
        response = await client.post(
            "/api/v1/sync/run", json={"connectors": [CONNECTOR], "full_sync": True}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["records_inserted"] == 3
        assert data["results"][0]["source"] == "loja-centro"
        assert data["results"][0]["status"] == "SUCCESS"
        assert job.sync_count == 1

    @pytest.mark.asyncio
    async def test_run_without_connectors(self, client, monkeypatch):
        from pdv_sentinel.config import settings

        monkeypatch.setattr(settings, "erp_config_path", None)
        response = await client.post("/api/v1/sync/run", json={})
        assert response.status_code == 400
        assert "ERP_CONFIG_PATH" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_run_invalid_connector(self, client):
        response = await client.post(
            "/api/v1/sync/run", json={"connectors": [{**CONNECTOR, "port": 0}]}
        )
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid connector configuration")

    @pytest.mark.asyncio
    async def test_run_unsupported_database(self, client, job):
        def missing_driver(config):
            raise UnsupportedDatabaseError("Driver 'aiomysql' for mysql is not installed")

        job._connector_factory = missing_driver
        response = await client.post(
            "/api/v1/sync/run", json={"connectors": [{**CONNECTOR, "type": "mysql"}]}
        )
        assert response.status_code == 400
        assert "not installed" in response.json()["message"]
        assert job.sync_count == 0

    @pytest.mark.asyncio
    async def test_run_conflict(self, client, job):
        with job._guard.claim():
            response = await client.post("/api/v1/sync/run", json={"connectors": [CONNECTOR]})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_test_connection(self, client):
        response = await client.post("/api/v1/sync/test-connection", json=CONNECTOR)
        assert response.status_code == 200
        assert response.json() == {"source": "loja-centro", "connected": True}

    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/api/v1/sync/status")
        assert response.json() == {"running": False, "sync_count": 0, "last_run": None}

    @pytest.mark.asyncio
    async def test_databases(self, client):
        response = await client.get("/api/v1/sync/databases")
        databases = {d["type"]: d for d in response.json()["databases"]}
        assert set(databases) == {"mysql", "postgresql", "oracle", "sqlserver"}
        assert databases["oracle"]["driver"] == "oracledb"


class TestAuditEndpoints:
    @pytest.mark.asyncio
    async def test_statistics(self, client, recorder):
        response = await client.get("/api/v1/audit/statistics", params={"days_back": 7})
        assert response.status_code == 200
        assert response.json()["sync"]["total_syncs"] == 4
        recorder.sync_statistics.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_recent(self, client, recorder):
        assert (await client.get("/api/v1/audit/syncs")).json() == {"syncs": []}
        assert (await client.get("/api/v1/audit/detections")).json() == {"detections": []}
        recorder.recent_syncs.assert_awaited_once_with(10)

    @pytest.mark.asyncio
    async def test_report(self, client, recorder):
        start, end = datetime(2026, 1, 1, tzinfo=UTC), datetime(2026, 2, 1, tzinfo=UTC)
        recorder.export_report.return_value = AuditReport(start=start, end=end)
        response = await client.get(
            "/api/v1/audit/report",
            params={"start": start.isoformat(), "end": end.isoformat()},
        )
        assert response.status_code == 200
        assert response.json()["syncs"] == []

    @pytest.mark.asyncio
    async def test_report_rejects_inverted_range(self, client):
        response = await client.get(
            "/api/v1/audit/report",
            params={"start": "2026-02-01T00:00:00Z", "end": "2026-01-01T00:00:00Z"},
        )
        assert response.status_code == 400
