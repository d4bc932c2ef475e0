from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator
from datetime import datetime
from decimal import Decimal

from app.core.payments.status import TransactionStatus
from app.schemas.payment import PaymentSessionRead


# Event fields kept alongside the transaction as opaque extra data.
EXTRA_DATA_KEYS: tuple[str, ...] = (
    "object",
    "id",
    "created",
    "livemode",
    "type",
    "pending_webhooks",
    "request",
    "paid",
    "amount",
    "currency",
    "captured",
    "balance_transaction",
    "failure_message",
    "failure_code",
    "data",
)


class ChargeObject(BaseModel):
    """The charge carried in a webhook event's data.object.

    Unknown fields are tolerated and kept in model_extra.
    """

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    object: Optional[str] = None
    created: Optional[int] = None
    # Only a literal boolean true marks the charge as paid.
    paid: Any = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    captured: Any = None
    balance_transaction: Optional[str] = None
    failure_message: Optional[str] = None
    failure_code: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @property
    def payment_session_id(self) -> Optional[int]:
        raw = self.metadata.get("payment_session_id")
        if raw is None or isinstance(raw, bool):
            return None
        try:
            value = int(str(raw).strip())
        except ValueError:
            return None
        return value if value > 0 else None


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: Optional[ChargeObject] = None

    @field_validator("object", mode="before")
    @classmethod
    def _object_mapping(cls, value: Any) -> Any:
        # Empty or non-object payloads (gateway pings) are treated as absent.
        return value if isinstance(value, dict) and value else None


class WebhookEnvelope(BaseModel):
    """A gateway event; the decoded body is kept privately for extra-data extraction."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    object: Optional[str] = None
    type: Optional[str] = None
    created: Optional[int] = None
    livemode: Optional[bool] = None
    data: Optional[WebhookData] = None

    _raw: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "WebhookEnvelope":
        envelope = cls.model_validate(payload)
        envelope._raw = dict(payload)
        return envelope

    @field_validator("data", mode="before")
    @classmethod
    def _data_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @property
    def charge(self) -> Optional[ChargeObject]:
        if self.data is None:
            return None
        return self.data.object

    def extra_data(self) -> Dict[str, Any]:
        """Whitelisted subset of the event, in a stable key order."""
        return {key: self._raw[key] for key in EXTRA_DATA_KEYS if key in self._raw}


class TransactionCandidate(BaseModel):
    """Normalized, not-yet-persisted transaction derived from a notification."""

    model_config = ConfigDict(frozen=True)

    investor_id: int
    project_id: int = Field(..., ge=1)
    reward_id: Optional[int] = None
    receiver_id: Optional[int] = None
    txn_id: str = Field(..., min_length=1, max_length=64)
    txn_amount: Decimal = Field(..., ge=0)
    txn_currency: str
    txn_status: TransactionStatus
    txn_date: datetime
    service_provider: str
    service_alias: str
    extra_data: Optional[Dict[str, Any]] = None


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    txn_id: str
    investor_id: int
    project_id: int
    reward_id: Optional[int] = None
    receiver_id: Optional[int] = None
    txn_amount: Decimal
    txn_currency: str
    txn_status: str
    txn_date: Optional[datetime] = None
    service_provider: str
    service_alias: str
    extra_data: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class ProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    slug: str
    funded: Decimal


class RewardRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    title: str
    quantity: Optional[int] = None
    distributed: int


NotificationOutcome = Literal["completed", "recorded", "duplicate", "rejected", "ignored"]


class NotificationResult(BaseModel):
    outcome: NotificationOutcome
    payment_service: str = "stripe"
    transaction: Optional[TransactionRead] = None
    project: Optional[ProjectRead] = None
    reward: Optional[RewardRead] = None
    payment_session: Optional[PaymentSessionRead] = None
    warnings: List[str] = Field(default_factory=list)
