from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import GatewayKeys
from app.core.payments.gateway import STRIPE_GATEWAY_NAME, STRIPE_SERVICE_ALIAS
from app.core.payments.status import status_from_paid_flag
from app.db.models.payment_session import PaymentSession
from app.db.models.project import Project
from app.db.models.reward import Reward
from app.schemas.notification import ChargeObject, TransactionCandidate, WebhookEnvelope
from app.utils.exceptions import InvalidInputException, ReferentialInvalidException
from app.utils.metrics import NOTIFY_EVENTS_TOTAL
from app.utils.validation import from_minor_units, normalize_txn_id, validate_currency_code

logger = logging.getLogger(__name__)


class NotificationValidator:
    """Turns a gateway webhook into a verified TransactionCandidate.

    Every rejection is logged and reported as None: a notification that can
    never become valid must not make the gateway retry it.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        api_keys: GatewayKeys | None = None,
        gateway_name: str = STRIPE_GATEWAY_NAME,
        service_alias: str = STRIPE_SERVICE_ALIAS,
    ):
        self.session = session
        # Only the mode is consulted; notifications are not signed.
        self.api_keys = api_keys
        self.gateway_name = gateway_name
        self.service_alias = service_alias

    def parse(self, raw_body: bytes | str) -> WebhookEnvelope:
        """Decode the request body. Malformed JSON is an InvalidInputException."""
        try:
            payload = json.loads(raw_body)
        except (TypeError, ValueError, UnicodeDecodeError):
            raise InvalidInputException("Malformed notification body")

        if not isinstance(payload, dict):
            raise InvalidInputException("Notification body must be a JSON object")

        try:
            envelope = WebhookEnvelope.from_payload(payload)
        except ValidationError as exc:
            raise InvalidInputException(
                "Notification body has invalid field types",
                details={"errors": exc.errors(include_url=False, include_input=False)},
            )

        logger.debug("event=notify.payload type=%s id=%s", envelope.type, envelope.id)
        return envelope

    def is_valid_gateway(self, gateway_name: str | None) -> bool:
        return bool(gateway_name) and gateway_name == self.gateway_name

    async def validate(
        self,
        envelope: WebhookEnvelope,
        currency_code: str,
        payment_session: PaymentSession,
    ) -> TransactionCandidate | None:
        charge = envelope.charge
        if charge is None:
            self._reject("missing_data_object", event_id=envelope.id)
            return None

        if self.api_keys is not None and envelope.livemode is not None:
            if envelope.livemode != self.api_keys.live:
                self._reject(
                    "livemode_mismatch",
                    event_id=envelope.id,
                    livemode=envelope.livemode,
                )
                return None

        # Checked before anything is persisted: the session must be bound to this gateway.
        if not payment_session.is_bound:
            self._reject("unbound_session", payment_session_id=payment_session.id)
            return None
        if not self.is_valid_gateway(payment_session.gateway):
            self._reject(
                "invalid_gateway",
                payment_session_id=payment_session.id,
                gateway=payment_session.gateway,
            )
            return None

        fields = self._candidate_fields(charge, payment_session)
        if not fields["project_id"] or not fields["txn_id"]:
            self._reject("invalid_transaction_data", **fields)
            return None

        try:
            project = await self._eligible_project(fields["project_id"])
            if fields["reward_id"]:
                await self._eligible_reward(fields["reward_id"], project_id=project.id)
        except ReferentialInvalidException as exc:
            self._reject("referential_invalid", message=repr(exc.message), **exc.details)
            return None

        candidate = TransactionCandidate(
            **fields,
            receiver_id=project.user_id,
            txn_currency=validate_currency_code(currency_code),
            extra_data=envelope.extra_data() or None,
        )
        logger.debug(
            "event=notify.valid_data txn_id=%s status=%s amount=%s",
            candidate.txn_id,
            candidate.txn_status.value,
            candidate.txn_amount,
        )
        return candidate

    def _candidate_fields(self, charge: ChargeObject, payment_session: PaymentSession) -> dict[str, Any]:
        txn_date = _timestamp_to_datetime(charge.created)

        return {
            "investor_id": payment_session.user_id,
            "project_id": payment_session.project_id,
            # Anonymous pledges never receive a reward.
            "reward_id": None if payment_session.anonymous else (payment_session.reward_id or None),
            "txn_id": normalize_txn_id(charge.id),
            "txn_amount": from_minor_units(charge.amount),
            "txn_status": status_from_paid_flag(charge.paid),
            "txn_date": txn_date,
            "service_provider": self.gateway_name,
            "service_alias": self.service_alias,
        }

    async def _eligible_project(self, project_id: int) -> Project:
        project = await self.session.get(Project, project_id)
        if project is None:
            raise ReferentialInvalidException("Project not found", details={"project_id": project_id})
        if not project.accepts_funding:
            raise ReferentialInvalidException(
                "Project is not accepting funds",
                details={"project_id": project_id, "state": project.state},
            )
        return project

    async def _eligible_reward(self, reward_id: int, *, project_id: int) -> Reward:
        reward = await self.session.get(Reward, reward_id)
        if reward is None or reward.project_id != project_id:
            raise ReferentialInvalidException("Reward not found", details={"reward_id": reward_id})
        if not reward.published:
            raise ReferentialInvalidException("Reward is not published", details={"reward_id": reward_id})
        return reward

    def _reject(self, reason: str, **fields: object) -> None:
        NOTIFY_EVENTS_TOTAL.labels(event="validate", result=reason).inc()
        extras = " ".join(f"{k}={v}" for k, v in fields.items())
        logger.warning("event=notify.rejected reason=%s %s", reason, extras)


def _timestamp_to_datetime(value: int | None) -> datetime:
    if value:
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.warning("event=notify.invalid_created created=%s", value)
    return datetime.now(timezone.utc)
