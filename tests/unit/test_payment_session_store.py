import pytest
from sqlalchemy import select

from app.core.payments.sessions import PaymentSessionStore
from app.db.models.payment_session import PaymentSession
from app.utils.exceptions import ConflictException, InvalidInputException, NotFoundException
from tests.factories import BACKER_ID, seed_project, seed_reward


@pytest.mark.asyncio
async def test_open_session_creates_active_session_with_token(db_session):
    project = await seed_project(db_session)
    reward = await seed_reward(db_session, project)

    ps = await PaymentSessionStore(db_session).open_session(
        user_id=BACKER_ID, project_id=project.id, reward_id=reward.id
    )

    assert ps.id is not None
    assert len(ps.session_id) == 32
    assert ps.reward_id == reward.id
    assert ps.closed_at is None
    assert ps.unique_key is None
    assert not ps.is_bound


@pytest.mark.asyncio
async def test_open_session_archives_previous_attempt(db_session):
    project = await seed_project(db_session)
    store = PaymentSessionStore(db_session)

    first = await store.open_session(user_id=BACKER_ID, project_id=project.id)
    second = await store.open_session(user_id=BACKER_ID, project_id=project.id)

    rows = (
        await db_session.execute(
            select(PaymentSession)
            .where(PaymentSession.user_id == BACKER_ID)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    active = [r for r in rows if r.closed_at is None]

    assert len(rows) == 2
    assert [r.id for r in active] == [second.id]
    assert first.session_id != second.session_id


@pytest.mark.asyncio
async def test_anonymous_session_drops_reward(db_session):
    project = await seed_project(db_session)
    reward = await seed_reward(db_session, project)

    ps = await PaymentSessionStore(db_session).open_session(
        user_id=BACKER_ID, project_id=project.id, reward_id=reward.id, anonymous=True
    )

    assert ps.anonymous is True
    assert ps.reward_id is None


@pytest.mark.asyncio
async def test_open_session_unknown_project(db_session):
    with pytest.raises(NotFoundException):
        await PaymentSessionStore(db_session).open_session(user_id=BACKER_ID, project_id=4242)


@pytest.mark.asyncio
async def test_open_session_reward_of_other_project(db_session):
    project = await seed_project(db_session)
    other = await seed_project(db_session, slug="other")
    reward = await seed_reward(db_session, other)

    with pytest.raises(InvalidInputException):
        await PaymentSessionStore(db_session).open_session(
            user_id=BACKER_ID, project_id=project.id, reward_id=reward.id
        )


@pytest.mark.asyncio
async def test_bind_charge_is_write_once(db_session):
    project = await seed_project(db_session)
    store = PaymentSessionStore(db_session)
    ps = await store.open_session(user_id=BACKER_ID, project_id=project.id)

    token = ps.session_id

    await store.bind_charge(ps, unique_key="ch_bind_1", gateway="Stripe")
    assert ps.unique_key == "ch_bind_1"
    assert ps.is_bound

    with pytest.raises(ConflictException):
        await store.bind_charge(ps, unique_key="ch_bind_2", gateway="Stripe")

    fresh = await store.get_by_token(token)
    await db_session.refresh(fresh)
    assert fresh.unique_key == "ch_bind_1"


@pytest.mark.asyncio
async def test_close_archives_but_keeps_session_resolvable(db_session):
    project = await seed_project(db_session)
    store = PaymentSessionStore(db_session)
    ps = await store.open_session(user_id=BACKER_ID, project_id=project.id)

    await store.close(ps)
    closed_at = ps.closed_at
    assert closed_at is not None

    await store.close(ps)
    assert ps.closed_at == closed_at

    assert (await store.get_by_id(ps.id)).id == ps.id
