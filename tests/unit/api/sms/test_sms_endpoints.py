import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_root(async_client: AsyncClient):
    response = await async_client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_health_before_start(async_client: AsyncClient):
    response = await async_client.get("/api/v1/sms/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "stopped"
    assert body["default_provider"] == "SIMULATION"
    assert body["providers"]["SIMULATION"]["enabled"] is True
    assert body["rate_limits"]["per_minute"] == 10


@pytest.mark.asyncio
async def test_statistics_after_send(async_client: AsyncClient, sms_service):
    await sms_service.send_raw("0712345678", "Bonjour")

    response = await async_client.get("/api/v1/sms/statistics")
    assert response.status_code == 200
    body = response.json()
    assert body["total_sent"] == 1
    assert body["total_succeeded"] == 1
    assert body["success_rate"] == 100.0
    assert body["by_type"]["GENERAL"]["sent"] == 1
    assert body["cache"]["rate_limit_keys"] == 1


@pytest.mark.asyncio
async def test_statistics_echoes_period(async_client: AsyncClient):
    params = {"start": "2024-01-01T00:00:00Z", "end": "2024-01-31T00:00:00Z"}
    response = await async_client.get("/api/v1/sms/statistics", params=params)
    assert response.status_code == 200
    assert response.json()["period"]["start"].startswith("2024-01-01")


@pytest.mark.asyncio
async def test_statistics_rejects_inverted_period(async_client: AsyncClient):
    params = {"start": "2024-02-01T00:00:00Z", "end": "2024-01-01T00:00:00Z"}
    response = await async_client.get("/api/v1/sms/statistics", params=params)
    assert response.status_code == 422
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_delivery_status_from_simulation(async_client: AsyncClient):
    response = await async_client.get("/api/v1/sms/status/SIMULATION/SIM_abc")
    assert response.status_code == 200
    assert response.json()["status"] == "DELIVERED"


@pytest.mark.asyncio
async def test_delivery_status_unknown_provider(async_client: AsyncClient):
    response = await async_client.get("/api/v1/sms/status/CARRIER_PIGEON/abc")
    assert response.status_code == 200
    assert response.json()["status"] == "UNKNOWN"


@pytest.mark.asyncio
async def test_prune_cache(async_client: AsyncClient, recorded_events):
    response = await async_client.post("/api/v1/sms/cache/prune")
    assert response.status_code == 200
    assert response.json() == {"removed": 0, "remaining_size": 0}
    assert recorded_events[-1][0] == "cache.cleaned"


@pytest.mark.asyncio
async def test_service_unavailable_without_service():
    from httpx import ASGITransport
    from smsgateway.main import app

    app.state.sms_service = None
    async with AsyncClient(base_url="http://testserver", transport=ASGITransport(app=app)) as client:
        response = await client.get("/api/v1/sms/health")
    assert response.status_code == 503
    assert response.json()["code"] == "SMS_ERROR"
