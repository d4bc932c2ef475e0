import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "ok"
    assert payload["environment"] == "test"
    assert payload["gateway"] == {"mode": "test", "keys_configured": True}


@pytest.mark.asyncio
async def test_health_db(client: AsyncClient):
    resp = await client.get("/health/db")

    assert resp.status_code == 200, resp.text
    assert resp.json()["db"]["reachable"] is True


@pytest.mark.asyncio
async def test_metrics_exposes_payment_counters(client: AsyncClient):
    resp = await client.get("/metrics")

    assert resp.status_code == 200
    assert "crowdfund_http_requests_total" in resp.text


@pytest.mark.asyncio
async def test_response_carries_request_id(client: AsyncClient):
    resp = await client.get("/health", headers={"X-Request-ID": "delivery-42"})

    assert resp.headers["X-Request-ID"] == "delivery-42"
