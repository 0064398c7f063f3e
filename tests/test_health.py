"""Tests for GET /api/health and the health snapshot."""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from core.config import RetryPolicy
from core.lifecycle import ConnectionState, LifecycleManager
from health import service
from main import create_app


def test_health_without_db_config(settings) -> None:
    """Missing config: still 200, database disconnected, hasDbConfig false."""
    app = create_app(manager=LifecycleManager(None), settings=settings)
    with TestClient(app) as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "disconnected"
    assert "databaseError" not in data
    assert data["environment"] == {"appEnv": "test", "port": 8080, "hasDbConfig": False}
    assert data["uptime"] >= 0
    assert "T" in data["timestamp"]


def test_health_connected(manager, pool_factory, settings) -> None:
    app = create_app(manager=manager, settings=settings)
    with TestClient(app) as client:
        assert client.portal.call(manager.connect) is True
        response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert data["environment"]["hasDbConfig"] is True
    # connect probe + health probe
    assert pool_factory.pools[0].probes == 2


def test_health_probe_failure_reports_error_with_200(manager, pool_factory, settings) -> None:
    app = create_app(manager=manager, settings=settings)
    with TestClient(app) as client:
        client.portal.call(manager.connect)
        pool_factory.pools[0].probe_error = ConnectionResetError("server closed the connection unexpectedly")
        response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"] == "error"
    assert data["databaseError"] == "server closed the connection unexpectedly"


def test_health_after_connect_gave_up(db_config, pool_factory, settings) -> None:
    pool_factory.failures = 100
    mgr = LifecycleManager(db_config, retry=RetryPolicy(max_attempts=2, delay_s=0), pool_factory=pool_factory)
    app = create_app(manager=mgr, settings=settings)
    with TestClient(app) as client:
        assert client.portal.call(mgr.connect) is False
        response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"] == "disconnected"
    assert data["databaseError"] == "boom"


def test_health_never_returns_non_200(settings) -> None:
    app = create_app(manager=LifecycleManager(None), settings=settings)
    with patch("health.service.health_snapshot", new=AsyncMock(side_effect=RuntimeError("kaput"))):
        with TestClient(app) as client:
            response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["error"] == "kaput"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_snapshot_reports_connecting(manager, pool_factory, settings) -> None:
    pool_factory.gate = asyncio.Event()
    manager.request_connect()
    for _ in range(20):
        await asyncio.sleep(0)
    assert manager.state is ConnectionState.CONNECTING

    snapshot = await service.health_snapshot(manager, started_at=time.monotonic() - 5, settings=settings)

    assert snapshot.database == "connecting"
    assert snapshot.status == "degraded"
    assert snapshot.uptime >= 5
    payload = snapshot.to_payload()
    assert payload["environment"]["hasDbConfig"] is True

    await manager.shutdown()
