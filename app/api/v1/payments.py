from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.config import Settings
from app.core.payments.checkout import CheckoutInitiator
from app.core.payments.gateway import StripeGateway
from app.core.payments.service import NotificationService
from app.core.payments.sessions import PaymentSessionStore
from app.db.models.project import Project
from app.db.models.transaction import Transaction
from app.schemas.common import ErrorEnvelope
from app.schemas.notification import NotificationResult, TransactionRead
from app.schemas.payment import (
    ChargeResult,
    CheckoutItem,
    CheckoutRequest,
    PaymentSessionCreateRequest,
    PaymentSessionRead,
)
from app.utils.distributed_lock import checkout_lock
from app.utils.exceptions import InvalidInputException, NotFoundException
from app.utils.validation import normalize_txn_id, parse_amount_decimal

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorEnvelope},
    404: {"model": ErrorEnvelope},
    409: {"model": ErrorEnvelope},
    503: {"model": ErrorEnvelope},
}


def get_gateway(settings: Settings = Depends(deps.get_settings)) -> StripeGateway:
    return StripeGateway(timeout_seconds=settings.STRIPE_TIMEOUT_SECONDS)


@router.post(
    "/sessions",
    response_model=PaymentSessionRead,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
)
async def open_payment_session(
    payload: PaymentSessionCreateRequest,
    session: AsyncSession = Depends(deps.get_db),
):
    """
    Start a pledge attempt and return its session token.
    """
    store = PaymentSessionStore(session)
    return await store.open_session(
        user_id=payload.user_id,
        project_id=payload.project_id,
        reward_id=payload.reward_id,
        anonymous=payload.anonymous,
    )


@router.post("/checkout", response_model=ChargeResult, responses=_ERRORS)
async def checkout(
    payload: CheckoutRequest,
    session: AsyncSession = Depends(deps.get_db),
    settings: Settings = Depends(deps.get_settings),
    gateway: StripeGateway = Depends(get_gateway),
    redis_client=Depends(deps.get_redis_client),
):
    """
    Charge the submitted card token for a pledge.

    A declined card is not an error: the response carries the gateway message
    and the pledge page to return to.
    """
    if payload.payment_service.strip().lower() != gateway.alias:
        raise InvalidInputException(
            "Unsupported payment service",
            details={"payment_service": payload.payment_service},
        )

    project = (
        await session.execute(select(Project).where(Project.id == payload.project_id))
    ).scalar_one_or_none()
    if project is None:
        raise NotFoundException(f"Project {payload.project_id} not found")

    item = CheckoutItem(
        id=project.id,
        title=project.title,
        slug=project.slug,
        catslug=project.catslug,
        amount=parse_amount_decimal(payload.amount, max_scale=None, require_positive=True),
        currency_code=settings.PROJECT_CURRENCY,
    )

    initiator = CheckoutInitiator(
        session,
        api_keys=settings.gateway_keys(),
        gateway=gateway,
        site_base_url=settings.SITE_BASE_URL,
    )

    async with checkout_lock(
        redis_client,
        payload.session_token,
        ttl_seconds=settings.CHECKOUT_LOCK_TTL_SECONDS,
        wait_timeout_seconds=settings.CHECKOUT_LOCK_WAIT_SECONDS,
    ):
        return await initiator.initiate_charge(payload.session_token, item, payload.card_token)


@router.post("/notify/stripe", response_model=NotificationResult, responses=_ERRORS)
async def stripe_notification(
    request: Request,
    session: AsyncSession = Depends(deps.get_db),
    settings: Settings = Depends(deps.get_settings),
):
    """
    Gateway webhook. Any 2xx tells the gateway to stop redelivering, so only
    storage failures answer with a 5xx.
    """
    raw_body = await request.body()
    service = NotificationService(
        session,
        currency_code=settings.PROJECT_CURRENCY,
        api_keys=settings.gateway_keys(),
    )
    return await service.process(raw_body)


@router.get("/transactions/{txn_id}", response_model=TransactionRead, responses=_ERRORS)
async def get_transaction(
    txn_id: str,
    session: AsyncSession = Depends(deps.get_db),
):
    normalized = normalize_txn_id(txn_id)
    if not normalized:
        raise InvalidInputException("Invalid transaction id")

    txn = (
        await session.execute(select(Transaction).where(Transaction.txn_id == normalized))
    ).scalar_one_or_none()
    if txn is None:
        raise NotFoundException(f"Transaction {normalized} not found")
    return txn
