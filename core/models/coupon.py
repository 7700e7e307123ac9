"""Coupon reference data."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator

from core.models.line_item import DiscountType


class Coupon(BaseModel):
    """A coupon that can be applied to an invoice. Read-only."""

    id: str
    code: str = ""
    type: DiscountType = DiscountType.PERCENT
    value: Decimal = Field(Decimal("0"), ge=0)
    max_discount: Decimal | None = None

    model_config = {"frozen": True}

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return DiscountType.parse(value)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "Coupon":
        """Build from the backend coupon shape (couponCode, discount{}, conditions{})."""
        discount = raw.get("discount") or {}
        conditions = raw.get("conditions") or {}
        return cls(
            id=raw["id"],
            code=raw.get("couponCode") or raw.get("code") or "",
            type=discount.get("type") or raw.get("type"),
            value=discount.get("value", raw.get("value")) or 0,
            max_discount=conditions.get("maximumDisc", raw.get("maxDiscount")) or None,
        )
