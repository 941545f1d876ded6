import pytest


@pytest.mark.asyncio
async def test_healthz(async_client):
    response = await async_client.get("/healthz")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True


@pytest.mark.asyncio
async def test_api_health(async_client, monkeypatch, live_sandbox):
    monkeypatch.setattr("app.api.health.is_connected", lambda: True)
    response = await async_client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["liveSandboxes"] == 1


@pytest.mark.asyncio
async def test_api_health_degraded_without_database(async_client, monkeypatch):
    monkeypatch.setattr("app.api.health.is_connected", lambda: False)
    response = await async_client.get("/api/health")
    assert response.json()["status"] == "degraded"
