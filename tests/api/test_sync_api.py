"""
Tests for the sync trigger endpoints.
"""

import pytest
from datetime import date, datetime
from unittest.mock import AsyncMock, Mock, patch
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api_integracao.api.v1 import sync
from api_integracao.core.database import get_db
from api_integracao.models import EntityType
from api_integracao.services.sync.result import SyncResult


def make_result(entity_type="all", success=True, errors=None):
    return SyncResult(
        entity_type=entity_type,
        success=success,
        total_processed=5,
        inserted=2,
        updated=1,
        deleted=1,
        errors=list(errors or []),
        started_at=datetime(2024, 3, 1, 10, 0, 0),
        finished_at=datetime(2024, 3, 1, 10, 0, 30),
    )


@pytest.fixture
def orchestrator():
    """Mock orchestrator."""
    orchestrator = Mock()
    orchestrator.sync_all = AsyncMock(return_value=make_result())
    orchestrator.sync_entity = AsyncMock(return_value=make_result("course"))
    orchestrator.sync_by_date_range = AsyncMock(return_value=make_result("class"))
    orchestrator.sync_recent_classes = AsyncMock(return_value=make_result("class"))
    return orchestrator


@pytest.fixture
def app(orchestrator):
    """App with the sync router and a mock orchestrator."""
    app = FastAPI()
    app.include_router(sync.router, prefix="/api/v1/sync")
    app.state.sync_orchestrator = orchestrator

    async def fake_db():
        yield None

    app.dependency_overrides[get_db] = fake_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestSyncEndpoints:
    """Test manual trigger endpoints."""

    def test_sync_all_returns_result_verbatim(self, client, orchestrator):
        """Counts, errors and timing are reported as is."""
        orchestrator.sync_all.return_value = make_result(success=False, errors=["class x: course missing"])

        response = client.post("/api/v1/sync/all")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["total_processed"] == 5
        assert (data["inserted"], data["updated"], data["deleted"]) == (2, 1, 1)
        assert data["errors"] == ["class x: course missing"]
        assert data["duration_seconds"] == 30.0

    def test_sync_entity(self, client, orchestrator):
        """Entity path parameter is passed as an EntityType."""
        response = client.post("/api/v1/sync/course")

        assert response.status_code == 200
        orchestrator.sync_entity.assert_awaited_once_with(EntityType.COURSE)

    def test_sync_unknown_entity(self, client, orchestrator):
        """Unknown entity types are rejected."""
        response = client.post("/api/v1/sync/teacher")

        assert response.status_code == 422
        orchestrator.sync_entity.assert_not_awaited()

    def test_sync_by_date_range(self, client, orchestrator):
        """Date bounds are parsed and forwarded."""
        response = client.post(
            "/api/v1/sync/class/date-range",
            json={"date_from": "2024-01-01", "date_to": "2024-01-31"}
        )

        assert response.status_code == 200
        orchestrator.sync_by_date_range.assert_awaited_once_with(
            EntityType.CLASS, date(2024, 1, 1), date(2024, 1, 31)
        )

    def test_sync_by_date_range_inverted(self, client, orchestrator):
        """An inverted range is a validation error."""
        response = client.post(
            "/api/v1/sync/class/date-range",
            json={"date_from": "2024-02-01", "date_to": "2024-01-01"}
        )

        assert response.status_code == 422
        orchestrator.sync_by_date_range.assert_not_awaited()

    def test_sync_recent_classes(self, client, orchestrator):
        """Recent classes default to a thirty-day window."""
        response = client.post("/api/v1/sync/class/recent")

        assert response.status_code == 200
        orchestrator.sync_recent_classes.assert_awaited_once_with(30)

    def test_sync_recent_classes_invalid_days(self, client, orchestrator):
        """Non-positive windows are rejected."""
        response = client.post("/api/v1/sync/class/recent?days=0")

        assert response.status_code == 400
        orchestrator.sync_recent_classes.assert_not_awaited()

    def test_status(self, client):
        """Freshness map is returned per entity type."""
        freshness = {
            "course": datetime(2024, 3, 1, 10, 0, 30),
            "class": None,
            "student": None,
            "enrollment": None,
        }
        with patch.object(sync, "latest_successful_syncs", AsyncMock(return_value=freshness)):
            response = client.get("/api/v1/sync/status")

        assert response.status_code == 200
        data = response.json()["last_successful_sync"]
        assert data["course"] == "2024-03-01T10:00:30"
        assert data["class"] is None

    def test_orchestrator_not_initialized(self, app, client):
        """Triggers fail cleanly before startup finishes."""
        del app.state.sync_orchestrator

        response = client.post("/api/v1/sync/all")

        assert response.status_code == 503
