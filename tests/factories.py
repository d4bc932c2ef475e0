"""Seed helpers shared by unit and integration tests."""
import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from app.core.payments.status import TransactionStatus
from app.db.models.payment_session import PaymentSession
from app.db.models.project import Project
from app.db.models.reward import Reward
from app.schemas.notification import TransactionCandidate

OWNER_ID = 500
BACKER_ID = 7


async def seed_project(
    session,
    *,
    user_id: int = OWNER_ID,
    title: str = "Solar Kiln",
    slug: str = "solar-kiln",
    catslug: str | None = "energy",
    state: str = "published",
    approved: bool = True,
    funded: Decimal = Decimal("0"),
) -> Project:
    project = Project(
        user_id=user_id,
        title=title,
        slug=slug,
        catslug=catslug,
        goal=Decimal("10000"),
        funded=funded,
        state=state,
        approved=approved,
    )
    session.add(project)
    await session.commit()
    await session.refresh(project)
    return project


async def seed_reward(
    session,
    project: Project,
    *,
    title: str = "Thank-you mug",
    quantity: int | None = None,
    distributed: int = 0,
    published: bool = True,
) -> Reward:
    reward = Reward(
        project_id=project.id,
        title=title,
        amount=Decimal("25.00"),
        quantity=quantity,
        distributed=distributed,
        published=published,
    )
    session.add(reward)
    await session.commit()
    await session.refresh(reward)
    return reward


async def seed_payment_session(
    session,
    project: Project,
    *,
    user_id: int = BACKER_ID,
    reward: Reward | None = None,
    anonymous: bool = False,
    unique_key: str | None = "auto",
    gateway: str | None = "Stripe",
) -> PaymentSession:
    """A session already bound to a charge, as the checkout leaves it."""
    if unique_key == "auto":
        unique_key = "ch_" + uuid.uuid4().hex[:20]
    payment_session = PaymentSession(
        session_id=uuid.uuid4().hex,
        user_id=user_id,
        project_id=project.id,
        reward_id=reward.id if reward is not None else None,
        anonymous=anonymous,
        unique_key=unique_key,
        gateway=gateway,
    )
    session.add(payment_session)
    await session.commit()
    await session.refresh(payment_session)
    return payment_session


def charge_event(
    *,
    charge_id: str,
    payment_session_id: int | str | None,
    amount: Any = 12345,
    paid: Any = True,
    created: int = 1700000000,
    **extra: Any,
) -> dict[str, Any]:
    metadata = {} if payment_session_id is None else {"payment_session_id": str(payment_session_id)}
    event = {
        "id": "evt_" + uuid.uuid4().hex[:16],
        "object": "event",
        "type": "charge.succeeded" if paid is True else "charge.pending",
        "created": created,
        "livemode": False,
        "pending_webhooks": 1,
        "request": "req_" + uuid.uuid4().hex[:12],
        "data": {
            "object": {
                "id": charge_id,
                "object": "charge",
                "created": created,
                "paid": paid,
                "amount": amount,
                "currency": "usd",
                "captured": paid is True,
                "balance_transaction": "txn_" + uuid.uuid4().hex[:12],
                "failure_message": None,
                "failure_code": None,
                "metadata": metadata,
            }
        },
    }
    event.update(extra)
    return event


def charge_body(**kwargs: Any) -> bytes:
    return json.dumps(charge_event(**kwargs)).encode("utf-8")


def make_candidate(
    project: Project,
    *,
    txn_id: str = "ch_candidate",
    status: TransactionStatus = TransactionStatus.COMPLETED,
    amount: Decimal = Decimal("123.45"),
    reward: Reward | None = None,
    investor_id: int = BACKER_ID,
) -> TransactionCandidate:
    return TransactionCandidate(
        investor_id=investor_id,
        project_id=project.id,
        reward_id=reward.id if reward is not None else None,
        receiver_id=project.user_id,
        txn_id=txn_id,
        txn_amount=amount,
        txn_currency="USD",
        txn_status=status,
        txn_date=datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc),
        service_provider="Stripe",
        service_alias="stripe",
        extra_data={"id": "evt_test"},
    )
