"""
Health endpoint tests
"""

import pytest


@pytest.mark.asyncio
async def test_liveness(client):
    response = await client.get("/api/v1/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


@pytest.mark.asyncio
async def test_readiness_reports_database_and_guard(client, guard):
    guard.try_acquire_lock("TX1")

    response = await client.get("/api/v1/health/ready")

    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["database"] is True
    assert data["checks"]["redis"] is True
    assert data["checks"]["notification_guard"]["held_locks"] == 1


@pytest.mark.asyncio
async def test_request_id_header(client):
    response = await client.get("/api/v1/health/live")
    assert response.headers["X-Request-ID"]
