"""
Unit Tests - API Routes
"""
import asyncio
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from src.config import IngestionSettings
from src.database.connection import get_db_dependency
from src.database.models import RunStatus
from src.ingestion.csv_loader import CsvLoader
from src.ingestion.job_queue import IngestFileJob, JobQueue
from src.ingestion.scheduler import IngestionScheduler
from src.main import app
from src.serving.api.routes.refresh import job_queue_dependency, record_store_dependency


@pytest.fixture
def job_queue() -> JobQueue:
    return JobQueue()


@pytest.fixture
async def client(session_factory, job_queue, store):
    async def _db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db_dependency] = _db
    app.dependency_overrides[job_queue_dependency] = lambda: job_queue
    app.dependency_overrides[record_store_dependency] = lambda: store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()


class TestRefreshRoutes:
    """Tests for /api/v1/refresh"""

    async def test_trigger_queues_job(self, client, job_queue):
        response = await client.post("/api/v1/refresh/trigger", json={"file_path": "data/sales.csv"})

        assert response.status_code == 202
        body = response.json()
        assert body["message"] == "Refresh queued"
        assert body["file"] == "data/sales.csv"
        assert body["job_id"]

        queued = await job_queue.dequeue()
        assert queued.job == IngestFileJob("data/sales.csv")
        assert queued.job_id == body["job_id"]

    async def test_trigger_accepts_camel_case(self, client, job_queue):
        response = await client.post("/api/v1/refresh/trigger", json={"filePath": "in.csv"})

        assert response.status_code == 202
        assert len(job_queue) == 1

    @pytest.mark.parametrize("body", [{}, {"file_path": ""}, {"file_path": "   "}])
    async def test_trigger_requires_path(self, client, job_queue, body):
        response = await client.post("/api/v1/refresh/trigger", json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == "file_path is required."
        assert len(job_queue) == 0

    async def test_trigger_and_wait(self, client, job_queue, store, write_csv, sample_rows):
        loader = CsvLoader(store, IngestionSettings(batch_size=4))
        scheduler = IngestionScheduler(job_queue, loader, IngestionSettings())
        await scheduler.start()
        try:
            response = await client.post(
                "/api/v1/refresh/trigger",
                params={"wait": "true"},
                json={"file_path": str(write_csv(sample_rows))},
            )
        finally:
            await scheduler.stop()

        assert response.status_code == 202
        result = response.json()["result"]
        assert result["success"] is True
        assert result["orders_inserted"] == 3
        assert result["items_inserted"] == 4

    async def test_service_down_returns_503(self):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
            response = await http.post("/api/v1/refresh/trigger", json={"file_path": "x.csv"})

        assert response.status_code == 503

    async def test_list_runs(self, client, store):
        now = datetime.now(timezone.utc)
        for i in range(3):
            await store.insert_run_log(now, RunStatus.SUCCESS, f"run {i}")

        response = await client.get("/api/v1/refresh/runs", params={"limit": 2})

        assert response.status_code == 200
        runs = response.json()
        assert [r["message"] for r in runs] == ["run 2", "run 1"]
        assert runs[0]["status"] == "Success"

    async def test_get_run(self, client, store):
        run_log_id = await store.insert_run_log(datetime.now(timezone.utc), RunStatus.FAILED, "boom")

        response = await client.get(f"/api/v1/refresh/runs/{run_log_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == run_log_id
        assert body["status"] == "Failed"
        assert body["message"] == "boom"

    async def test_get_missing_run(self, client):
        response = await client.get("/api/v1/refresh/runs/999")

        assert response.status_code == 404
        assert response.json()["detail"] == "Run 999 not found."

    async def test_wait_returns_503_when_job_is_cancelled(self, client, job_queue):
        request = asyncio.create_task(
            client.post(
                "/api/v1/refresh/trigger",
                params={"wait": "true"},
                json={"file_path": "data/sales.csv"},
            )
        )
        for _ in range(100):
            if len(job_queue):
                break
            await asyncio.sleep(0.01)

        assert job_queue.cancel_pending() == 1
        response = await asyncio.wait_for(request, timeout=5)

        assert response.status_code == 503
        assert response.json()["detail"] == "Ingestion service stopped before the load finished."


class TestRevenueRoutes:
    """Tests for /api/v1/revenue without Redis"""

    async def test_total(self, client, loader, write_csv, sample_rows):
        await loader.load_file(write_csv(sample_rows))

        response = await client.get(
            "/api/v1/revenue/total",
            params={"start_date": "2025-01-01", "end_date": "2025-12-31"},
        )

        assert response.status_code == 200
        body = response.json()
        # 2*9.99*0.9 + 20 + 3*9.99 + 45.50*0.8 = 17.982 + 20 + 29.97 + 36.40
        assert float(body["item_revenue"]) == pytest.approx(104.35, abs=0.01)
        assert float(body["shipping"]) == pytest.approx(12.50)

    async def test_total_rejects_inverted_range(self, client):
        response = await client.get(
            "/api/v1/revenue/total",
            params={"start_date": "2025-02-01", "end_date": "2025-01-01"},
        )

        assert response.status_code == 400

    async def test_by_category(self, client, loader, write_csv, sample_rows):
        await loader.load_file(write_csv(sample_rows))

        response = await client.get("/api/v1/revenue/by-category")

        assert response.status_code == 200
        assert {row["category"] for row in response.json()} == {"Tools", "Home"}


class TestHealthRoutes:
    """Tests for health endpoints"""

    async def test_liveness(self, client):
        response = await client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}
        assert "X-Request-ID" in response.headers

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/api/v1/health/live", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"

    async def test_health_degraded_without_redis(self, client, monkeypatch):
        async def healthy():
            return {"status": "healthy", "latency_ms": 0.1}

        monkeypatch.setattr("src.serving.api.routes.health.check_database_health", healthy)

        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["checks"]["redis"]["status"] == "unhealthy"
        assert body["checks"]["ingestion"]["status"] == "stopped"

    async def test_not_ready_when_database_down(self, client, monkeypatch):
        async def unhealthy():
            return {"status": "unhealthy", "error": "connection refused"}

        monkeypatch.setattr("src.serving.api.routes.health.check_database_health", unhealthy)

        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "database_unavailable"
