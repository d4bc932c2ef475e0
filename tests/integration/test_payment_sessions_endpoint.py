import pytest
from httpx import AsyncClient

from tests.factories import seed_project, seed_reward

SESSIONS_URL = "/api/v1/payments/sessions"


@pytest.mark.asyncio
async def test_open_session_returns_token(client: AsyncClient, db_session):
    project = await seed_project(db_session)
    reward = await seed_reward(db_session, project)

    resp = await client.post(
        SESSIONS_URL, json={"user_id": 7, "project_id": project.id, "reward_id": reward.id}
    )

    assert resp.status_code == 201, resp.text
    payload = resp.json()
    assert payload["project_id"] == project.id
    assert payload["reward_id"] == reward.id
    assert payload["unique_key"] is None
    assert payload["closed_at"] is None
    assert len(payload["session_id"]) == 32


@pytest.mark.asyncio
async def test_reopening_archives_previous_session(client: AsyncClient, db_session):
    project = await seed_project(db_session)

    first = await client.post(SESSIONS_URL, json={"user_id": 7, "project_id": project.id})
    second = await client.post(SESSIONS_URL, json={"user_id": 7, "project_id": project.id})

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["session_id"] != second.json()["session_id"]


@pytest.mark.asyncio
async def test_anonymous_session_has_no_reward(client: AsyncClient, db_session):
    project = await seed_project(db_session)
    reward = await seed_reward(db_session, project)

    resp = await client.post(
        SESSIONS_URL,
        json={"user_id": 7, "project_id": project.id, "reward_id": reward.id, "anonymous": True},
    )

    assert resp.status_code == 201
    assert resp.json()["reward_id"] is None


@pytest.mark.asyncio
async def test_open_session_unknown_project_is_404(client: AsyncClient, db_session):
    resp = await client.post(SESSIONS_URL, json={"user_id": 7, "project_id": 31337})

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "E001"
