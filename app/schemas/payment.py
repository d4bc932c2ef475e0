from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal

class PaymentSessionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: int = Field(..., ge=1)
    project_id: int = Field(..., ge=1)
    reward_id: Optional[int] = Field(default=None, ge=0)
    anonymous: bool = False

class PaymentSessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: str
    user_id: int
    project_id: int
    reward_id: Optional[int] = None
    anonymous: bool
    gateway: Optional[str] = None
    unique_key: Optional[str] = None
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

class CheckoutRequest(BaseModel):
    """Browser checkout submission (the widget posts a one-time card token)."""

    session_token: str = Field(..., min_length=1, max_length=64)
    project_id: int = Field(..., ge=1)
    amount: str
    payment_service: str = "stripe"
    card_token: Optional[str] = Field(default=None, alias="stripeToken")

    model_config = ConfigDict(populate_by_name=True)

class CheckoutItem(BaseModel):
    """What is being paid for: the project and the pledged amount."""

    id: int
    title: str
    slug: str
    catslug: Optional[str] = None
    amount: Decimal
    currency_code: str

class ChargeResult(BaseModel):
    redirect_url: str
    message: str = ""
    charge_id: Optional[str] = None
