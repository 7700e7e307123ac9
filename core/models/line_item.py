"""Line item domain models.

Money is held as Decimal and never rounded here; rounding happens only when
a payload is built for the backend.
"""

from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class ItemType(str, Enum):
    """Kind of billable row. Memberships and packages share one catalog."""

    SERVICE = "Service"
    PRODUCT = "Product"
    MEMBERSHIP = "Membership"
    PACKAGE = "Package"

    @classmethod
    def parse(cls, raw) -> "ItemType":
        """Accept any casing ('service', 'PRODUCT'); unknown kinds bill as services."""
        if isinstance(raw, cls):
            return raw
        text = str(raw or "").strip().capitalize()
        for member in cls:
            if member.value == text:
                return member
        return cls.SERVICE


class DiscountType(str, Enum):
    """How a discount value is interpreted."""

    PERCENT = "percent"
    FLAT = "flat"

    @classmethod
    def parse(cls, raw) -> "DiscountType":
        """Anything mentioning 'percent' is a percentage, everything else is flat."""
        if isinstance(raw, cls):
            return raw
        if raw is None or str(raw).strip() == "":
            return cls.PERCENT
        return cls.PERCENT if "percent" in str(raw).lower() else cls.FLAT


def _new_item_id() -> str:
    return f"item-{uuid4().hex[:12]}"


class LineItem(BaseModel):
    """One billable row on a working invoice."""

    id: str = Field(default_factory=_new_item_id)
    type: ItemType = ItemType.SERVICE
    name: str = ""
    catalog_id: str | None = None
    qty: int = 1
    unit_price: Decimal = Decimal("0")
    discount_value: Decimal = Decimal("0")
    discount_type: DiscountType = DiscountType.PERCENT
    tax_rate_percent: Decimal = Decimal("18")
    staff_ids: list[str] = Field(default_factory=list)
    # Reloaded rows keep their stored price; it is never re-derived from the
    # current catalog or tax mode.
    is_loaded_snapshot: bool = False

    model_config = {"validate_assignment": True}

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return ItemType.parse(value)

    @field_validator("discount_type", mode="before")
    @classmethod
    def _parse_discount_type(cls, value):
        return DiscountType.parse(value)

    @field_validator("catalog_id", mode="before")
    @classmethod
    def _stringify_catalog_id(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("staff_ids", mode="before")
    @classmethod
    def _stringify_staff_ids(cls, value):
        return [str(v) for v in (value or []) if v is not None and str(v) != ""]

    @property
    def primary_staff_id(self) -> str | None:
        """Staff member credited on the saved bill line."""
        return self.staff_ids[0] if self.staff_ids else None

    @property
    def label(self) -> str:
        return f"{self.type.value}: {self.name}"


class LineAmounts(BaseModel):
    """Computed money for one line item."""

    base_price: Decimal
    base_excl: Decimal
    base_incl: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal

    model_config = {"frozen": True}
