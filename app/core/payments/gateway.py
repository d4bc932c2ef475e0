from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import stripe

from app.utils.exceptions import (
    CardDeclinedException,
    ConfigurationException,
    GatewayException,
    GatewayUnavailableException,
)

logger = logging.getLogger(__name__)


# Name bound onto payment sessions; notifications are only accepted for sessions bound to it.
STRIPE_GATEWAY_NAME = "Stripe"
STRIPE_SERVICE_ALIAS = "stripe"


@dataclass(frozen=True)
class ChargeResponse:
    id: str
    paid: bool
    status: str | None = None


class StripeGateway:
    """Thin async wrapper over the Stripe SDK's synchronous charge API.

    Translates SDK errors into the application's gateway exceptions:
    card errors -> CardDeclinedException (recoverable, shown to the user),
    timeouts/connection errors -> GatewayUnavailableException.
    """

    name = STRIPE_GATEWAY_NAME
    alias = STRIPE_SERVICE_ALIAS

    def __init__(self, *, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds

    async def create_charge(
        self,
        *,
        api_key: str,
        amount: int,
        currency: str,
        card_token: str,
        description: str,
        metadata: dict[str, Any],
    ) -> ChargeResponse:
        def _create() -> Any:
            return stripe.Charge.create(
                api_key=api_key,
                amount=amount,
                currency=currency.lower(),
                source=card_token,
                description=description,
                metadata=metadata,
            )

        try:
            charge = await asyncio.wait_for(asyncio.to_thread(_create), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise GatewayUnavailableException("Payment gateway timed out")
        except stripe.CardError as exc:
            message = getattr(exc, "user_message", None) or str(exc)
            raise CardDeclinedException(message, details={"decline_code": getattr(exc, "code", None)})
        except stripe.APIConnectionError as exc:
            raise GatewayUnavailableException("Payment gateway is unreachable") from exc
        except stripe.AuthenticationError as exc:
            raise ConfigurationException("Payment gateway rejected the API key") from exc
        except stripe.StripeError as exc:
            logger.error("event=gateway.charge_error error_type=%s error=%s", type(exc).__name__, str(exc))
            raise GatewayException(getattr(exc, "user_message", None) or "Payment gateway error") from exc

        logger.debug("event=gateway.charge_result charge_id=%s", getattr(charge, "id", None))
        return ChargeResponse(
            id=str(charge.id),
            paid=getattr(charge, "paid", None) is True,
            status=getattr(charge, "status", None),
        )
