"""Payment domain models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from utils.timezone import now_utc


class PaymentMode(str, Enum):
    """Closed set of payment modes accepted by the backend."""

    CASH = "cash"
    UPI = "upi"
    WALLET = "wallet"
    CARD = "card"
    ADVANCE = "advance"
    NONE = "none"


def normalize_payment_mode(mode) -> PaymentMode:
    """
    Map a free-text payment label to a PaymentMode.

    'CASH' -> cash, 'Credit Card' -> card, 'LOYALTY POINTS' -> wallet.
    Empty labels map to none; anything unrecognized is treated as cash.
    """
    if isinstance(mode, PaymentMode):
        return mode
    text = str(mode or "").strip().lower()
    if not text:
        return PaymentMode.NONE
    if text == "advance":
        return PaymentMode.ADVANCE
    if "cash" in text:
        return PaymentMode.CASH
    if "upi" in text:
        return PaymentMode.UPI
    if "wallet" in text or "loyalty" in text or "points" in text:
        return PaymentMode.WALLET
    if "card" in text or "debit" in text or "credit" in text:
        return PaymentMode.CARD
    return PaymentMode.CASH


def _new_payment_id() -> str:
    return f"pay-{uuid4().hex[:12]}"


class Payment(BaseModel):
    """A partial payment recorded against the working invoice."""

    id: str = Field(default_factory=_new_payment_id)
    mode: PaymentMode
    amount: Decimal = Field(..., gt=0)
    reference: str | None = None
    timestamp: datetime = Field(default_factory=now_utc)

    model_config = {"frozen": True}

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value):
        return normalize_payment_mode(value)
