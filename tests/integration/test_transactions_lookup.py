import pytest
from httpx import AsyncClient

from tests.factories import charge_body, seed_payment_session, seed_project


@pytest.mark.asyncio
async def test_lookup_returns_stored_transaction(client: AsyncClient, db_session):
    project = await seed_project(db_session)
    ps = await seed_payment_session(db_session, project)
    resp = await client.post(
        "/api/v1/payments/notify/stripe",
        content=charge_body(charge_id=ps.unique_key, payment_session_id=ps.id, paid=False),
    )
    assert resp.status_code == 200

    resp = await client.get(f"/api/v1/payments/transactions/{ps.unique_key}")

    assert resp.status_code == 200, resp.text
    payload = resp.json()
    assert payload["txn_id"] == ps.unique_key
    assert payload["txn_status"] == "pending"
    assert payload["service_provider"] == "Stripe"
    assert payload["txn_currency"] == "USD"


@pytest.mark.asyncio
async def test_lookup_unknown_transaction_is_404(client: AsyncClient, db_session):
    resp = await client.get("/api/v1/payments/transactions/ch_nope")

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "E001"


@pytest.mark.asyncio
async def test_lookup_invalid_id_is_400(client: AsyncClient, db_session):
    resp = await client.get("/api/v1/payments/transactions/bad%20id")

    assert resp.status_code == 400
