from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import GatewayKeys
from app.core.payments.reconciler import ReconcileOutcome, TransactionReconciler
from app.core.payments.sessions import PaymentSessionStore
from app.core.payments.validator import NotificationValidator
from app.schemas.notification import (
    NotificationResult,
    PaymentSessionRead,
    ProjectRead,
    RewardRead,
    TransactionRead,
)
from app.utils.event_bus import PAYMENT_COMPLETED, event_bus
from app.utils.exceptions import InvalidInputException, PersistenceException
from app.utils.metrics import NOTIFY_EVENTS_TOTAL

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        currency_code: str,
        api_keys: GatewayKeys | None = None,
        validator: NotificationValidator | None = None,
        reconciler: TransactionReconciler | None = None,
    ):
        self.session = session
        self.currency_code = currency_code
        self.validator = validator or NotificationValidator(session, api_keys=api_keys)
        self.reconciler = reconciler or TransactionReconciler(session)
        self.sessions = PaymentSessionStore(session)

    async def process(self, raw_body: bytes | str) -> NotificationResult:
        """Handle one gateway notification end to end.

        Raises InvalidInputException for bodies that can never be processed and
        PersistenceException when storage failed (the gateway should redeliver).
        Every other outcome is reported in the result.
        """
        try:
            return await self._process(raw_body)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            NOTIFY_EVENTS_TOTAL.labels(event="notify", result="persistence_error").inc()
            logger.error("event=notify.persistence_error error_type=%s error=%s", type(exc).__name__, str(exc))
            raise PersistenceException("Failed to process notification") from exc

    async def _process(self, raw_body: bytes | str) -> NotificationResult:
        alias = self.validator.service_alias
        NOTIFY_EVENTS_TOTAL.labels(event="notify", result="start").inc()

        envelope = self.validator.parse(raw_body)
        charge = envelope.charge
        if charge is None:
            NOTIFY_EVENTS_TOTAL.labels(event="notify", result="ignored").inc()
            logger.info("event=notify.ignored event_id=%s type=%s", envelope.id, envelope.type)
            return NotificationResult(outcome="ignored", payment_service=alias)

        payment_session_id = charge.payment_session_id
        if payment_session_id is None:
            NOTIFY_EVENTS_TOTAL.labels(event="notify", result="bad_request").inc()
            raise InvalidInputException(
                "Notification is missing the payment session reference",
                details={"charge_id": charge.id},
            )

        payment_session = await self.sessions.get_by_id(payment_session_id)
        if payment_session is None:
            NOTIFY_EVENTS_TOTAL.labels(event="notify", result="bad_request").inc()
            raise InvalidInputException(
                "Unknown payment session",
                details={"payment_session_id": payment_session_id},
            )

        candidate = await self.validator.validate(envelope, self.currency_code, payment_session)
        if candidate is None:
            return NotificationResult(
                outcome="rejected",
                payment_service=alias,
                payment_session=PaymentSessionRead.model_validate(payment_session),
            )

        result = await self.reconciler.reconcile(candidate)

        if result.outcome is ReconcileOutcome.DUPLICATE:
            # Heals a session left open when an earlier delivery failed after its commit.
            await self.sessions.close(payment_session)
            NOTIFY_EVENTS_TOTAL.labels(event="notify", result="duplicate").inc()
            return NotificationResult(outcome="duplicate", payment_service=alias)
        if result.outcome is ReconcileOutcome.REJECTED:
            NOTIFY_EVENTS_TOTAL.labels(event="notify", result="rejected").inc()
            return NotificationResult(
                outcome="rejected",
                payment_service=alias,
                warnings=["transition_not_allowed"],
            )
        if result.outcome is ReconcileOutcome.RECORDED:
            NOTIFY_EVENTS_TOTAL.labels(event="notify", result="recorded").inc()
            return NotificationResult(outcome="recorded", payment_service=alias)

        await self.sessions.close(payment_session)

        txn = result.transaction
        warnings: list[str] = []
        if result.reward_released:
            warnings.append("reward_unavailable")

        event_bus.publish(
            event=PAYMENT_COMPLETED,
            payload={
                "txn_id": txn.txn_id,
                "project_id": txn.project_id,
                "investor_id": txn.investor_id,
                "reward_id": txn.reward_id,
                "amount": str(txn.txn_amount),
                "currency": txn.txn_currency,
            },
        )
        NOTIFY_EVENTS_TOTAL.labels(event="notify", result="completed").inc()

        return NotificationResult(
            outcome="completed",
            payment_service=alias,
            transaction=TransactionRead.model_validate(txn),
            project=ProjectRead.model_validate(result.project) if result.project is not None else None,
            reward=RewardRead.model_validate(result.reward) if result.reward is not None else None,
            payment_session=PaymentSessionRead.model_validate(payment_session),
            warnings=warnings,
        )
