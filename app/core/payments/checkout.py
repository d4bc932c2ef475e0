from __future__ import annotations

import logging
from urllib.parse import quote, urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import GatewayKeys
from app.core.payments.gateway import StripeGateway
from app.core.payments.sessions import PaymentSessionStore
from app.schemas.payment import ChargeResult, CheckoutItem
from app.utils.exceptions import (
    CardDeclinedException,
    ConfigurationException,
    ConflictException,
    InvalidInputException,
)
from app.utils.metrics import CHECKOUT_EVENTS_TOTAL
from app.utils.observability import log_duration
from app.utils.validation import parse_amount_decimal, to_minor_units, validate_currency_code

logger = logging.getLogger(__name__)


def backing_url(site_base_url: str, item: CheckoutItem, *, layout: str | None = None) -> str:
    """URL of the project's pledge page; layout="share" is the post-payment step."""
    parts = [quote(p, safe="") for p in (item.catslug, item.slug) if p]
    url = site_base_url.rstrip("/") + "/projects/" + "/".join(parts) + "/backing"
    if layout:
        url += "?" + urlencode({"layout": layout})
    return url


class CheckoutInitiator:
    """Creates the outbound charge and binds its id onto the payment session."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        api_keys: GatewayKeys,
        gateway: StripeGateway,
        site_base_url: str,
    ):
        self.session = session
        self.api_keys = api_keys
        self.gateway = gateway
        self.site_base_url = site_base_url
        self.sessions = PaymentSessionStore(session)

    async def initiate_charge(
        self,
        session_token: str,
        item: CheckoutItem,
        card_token: str | None,
    ) -> ChargeResult:
        CHECKOUT_EVENTS_TOTAL.labels(event="charge", result="start").inc()

        if not card_token or not card_token.strip():
            CHECKOUT_EVENTS_TOTAL.labels(event="charge", result="bad_request").inc()
            raise InvalidInputException("Missing card token")

        if not self.api_keys.secret:
            CHECKOUT_EVENTS_TOTAL.labels(event="charge", result="misconfigured").inc()
            raise ConfigurationException("Gateway secret key is not configured")

        # Any scale is accepted; to_minor_units truncates the excess digits.
        amount = parse_amount_decimal(item.amount, max_scale=None, require_positive=True)
        currency = validate_currency_code(item.currency_code)

        payment_session = await self.sessions.get_by_token(session_token)
        if payment_session is None or payment_session.closed_at is not None:
            raise InvalidInputException("Unknown or closed payment session")
        if payment_session.project_id != item.id:
            raise InvalidInputException("Payment session does not belong to this project")
        if payment_session.unique_key:
            raise ConflictException(
                "Payment session is already bound to a charge",
                details={"payment_session_id": payment_session.id},
            )

        description = f"Investing in {item.title}"
        minor_amount = to_minor_units(amount)

        try:
            with log_duration(logger, "checkout.create_charge", payment_session_id=payment_session.id):
                charge = await self.gateway.create_charge(
                    api_key=self.api_keys.secret,
                    amount=minor_amount,
                    currency=currency,
                    card_token=card_token.strip(),
                    description=description,
                    metadata={"payment_session_id": str(payment_session.id)},
                )
        except CardDeclinedException as exc:
            # Expected outcome: the user is sent back to the pledge page with the gateway's message.
            CHECKOUT_EVENTS_TOTAL.labels(event="charge", result="declined").inc()
            logger.info(
                "event=checkout.card_declined payment_session_id=%s message=%s",
                payment_session.id,
                exc.message,
            )
            return ChargeResult(
                redirect_url=backing_url(self.site_base_url, item),
                message=exc.message,
            )

        await self.sessions.bind_charge(payment_session, unique_key=charge.id, gateway=self.gateway.name)

        CHECKOUT_EVENTS_TOTAL.labels(event="charge", result="success").inc()
        logger.info(
            "event=checkout.charge_created payment_session_id=%s charge_id=%s amount=%s currency=%s paid=%s status=%s",
            payment_session.id,
            charge.id,
            minor_amount,
            currency,
            charge.paid,
            charge.status,
        )
        return ChargeResult(
            redirect_url=backing_url(self.site_base_url, item, layout="share"),
            charge_id=charge.id,
        )
