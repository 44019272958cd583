"""
Health check endpoint tests.
"""

import pytest


@pytest.mark.asyncio
async def test_health_check(client):
    """Health endpoint should return status ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_check(client):
    """Ready endpoint should report cache stats."""
    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["cache"]["user_cache_size"] == 0


@pytest.mark.asyncio
async def test_api_root(client):
    """API v1 root should return version and endpoint list."""
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()
    assert data["api"] == "v1"
    assert "/orgs/{orgId}/authorize" in data["endpoints"]


@pytest.mark.asyncio
async def test_ready_check_database_down(client, monkeypatch):
    """Ready endpoint should return 503 when the mirror does not answer."""

    async def unreachable(session):
        return False

    monkeypatch.setattr("app.main.ping", unreachable)
    response = await client.get("/ready")
    assert response.status_code == 503
    assert response.json() == {"status": "unavailable"}
