from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.payment_session import PaymentSession
from app.db.models.project import Project
from app.db.models.reward import Reward
from app.utils.exceptions import ConflictException, InvalidInputException, NotFoundException

logger = logging.getLogger(__name__)


def new_session_token() -> str:
    return secrets.token_hex(16)


class PaymentSessionStore:
    """Durable pledge-attempt records correlating users with gateway charges."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, payment_session_id: int) -> PaymentSession | None:
        return await self.session.get(PaymentSession, payment_session_id)

    async def get_by_token(self, session_token: str) -> PaymentSession | None:
        return (
            await self.session.execute(
                select(PaymentSession).where(PaymentSession.session_id == session_token)
            )
        ).scalar_one_or_none()

    async def open_session(
        self,
        *,
        user_id: int,
        project_id: int,
        reward_id: int | None = None,
        anonymous: bool = False,
    ) -> PaymentSession:
        """Start a pledge attempt.

        Any earlier active session of the same (user, project) is archived first,
        so there is exactly one active session per pledge attempt. Anonymous
        pledges never carry a reward.
        """
        project = await self.session.get(Project, project_id)
        if project is None:
            raise NotFoundException(f"Project {project_id} not found")

        reward_id = reward_id or None
        if anonymous:
            reward_id = None
        if reward_id is not None:
            reward = await self.session.get(Reward, reward_id)
            if reward is None or reward.project_id != project_id:
                raise InvalidInputException("Reward does not belong to the project")

        await self.session.execute(
            update(PaymentSession)
            .where(
                PaymentSession.user_id == user_id,
                PaymentSession.project_id == project_id,
                PaymentSession.closed_at.is_(None),
            )
            .values(closed_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )

        payment_session = PaymentSession(
            session_id=new_session_token(),
            user_id=user_id,
            project_id=project_id,
            reward_id=reward_id,
            anonymous=anonymous,
        )
        self.session.add(payment_session)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ConflictException("A payment session for this pledge is already being opened")
        await self.session.refresh(payment_session)

        logger.info(
            "event=payment_session.opened id=%s user_id=%s project_id=%s reward_id=%s",
            payment_session.id,
            user_id,
            project_id,
            reward_id,
        )
        return payment_session

    async def bind_charge(self, payment_session: PaymentSession, *, unique_key: str, gateway: str) -> None:
        """Record the gateway charge id on the session. Written once; never overwritten."""
        payment_session_id = payment_session.id
        try:
            result = await self.session.execute(
                update(PaymentSession)
                .where(
                    PaymentSession.id == payment_session_id,
                    PaymentSession.unique_key.is_(None),
                )
                .values(unique_key=unique_key, gateway=gateway)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            await self.session.rollback()
            raise ConflictException(
                "Charge is already bound to another payment session",
                details={"payment_session_id": payment_session_id, "unique_key": unique_key},
            )
        if result.rowcount != 1:
            await self.session.rollback()
            raise ConflictException(
                "Payment session is already bound to a charge",
                details={"payment_session_id": payment_session_id},
            )
        await self.session.commit()
        await self.session.refresh(payment_session)

    async def close(self, payment_session: PaymentSession) -> None:
        """Archive the session once its transaction reached a terminal status.

        Closed sessions stay resolvable by id so redelivered notifications are
        still recognized as duplicates.
        """
        # The instance may have been expired by a rollback in the same unit of work.
        await self.session.refresh(payment_session)
        if payment_session.closed_at is not None:
            return
        await self.session.execute(
            update(PaymentSession)
            .where(PaymentSession.id == payment_session.id, PaymentSession.closed_at.is_(None))
            .values(closed_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        await self.session.refresh(payment_session)
