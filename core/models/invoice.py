"""Invoice domain models: the working draft, its derived totals and held snapshots."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from core.models.coupon import Coupon
from core.models.customer import CustomerProfile
from core.models.line_item import LineAmounts, LineItem
from core.models.payment import Payment
from utils.timezone import now_utc, parse_iso


class InvoiceState(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    HELD = "held"
    FINALIZED = "finalized"


class TaxMode(BaseModel):
    """Invoice-wide tax policy."""

    apply_tax: bool = True
    inclusive: bool = False

    model_config = {"frozen": True}


class InvoiceDraft(BaseModel):
    """
    The invoice being edited.

    `extra_discount` and `adjust_total` always sum to the coupon-adjusted,
    tax-inclusive base; whichever the user edits, the other is derived.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    state: InvoiceState = InvoiceState.DRAFT
    items: list[LineItem] = Field(default_factory=list)
    customer: CustomerProfile = Field(default_factory=CustomerProfile)
    coupons: list[Coupon] = Field(default_factory=list)
    extra_discount: Decimal = Decimal("0")
    adjust_total: Decimal = Decimal("0")
    tax_mode: TaxMode = Field(default_factory=TaxMode)
    payments: list[Payment] = Field(default_factory=list)
    billing_at: datetime = Field(default_factory=now_utc)
    # Bill being edited (Finalized -> Draft) or held record being resumed
    source_bill_id: str | None = None
    source_held_id: str | None = None
    # Backend response of the last successful save
    saved_bill: dict[str, Any] | None = None

    @property
    def advance_amount(self) -> Decimal:
        return self.customer.advance_amount

    def find_item(self, item_id: str) -> LineItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


class DerivedTotals(BaseModel):
    """
    Everything the summary panel and the invoice render need.

    Always carries every value; which ones get displayed is decided by
    ReceiptSettings at render time.
    """

    lines: dict[str, LineAmounts]
    sub_total: Decimal
    item_discount: Decimal
    total_gst: Decimal
    total_before_extra: Decimal
    coupon_discount: Decimal
    base_incl_tax: Decimal
    extra_discount: Decimal
    adjust_total: Decimal
    calculated_total: Decimal
    total_paid: Decimal
    dues: Decimal

    model_config = {"frozen": True}


class HeldInvoice(BaseModel):
    """A draft persisted server-side for later resumption."""

    id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    customer_summary: str | None = None
    created_at: datetime | None = None
    total: Decimal | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "HeldInvoice":
        created_at = None
        if raw.get("created_at"):
            created_at = parse_iso(str(raw["created_at"]))
        total = raw.get("total", raw.get("amount_estimate"))
        return cls(
            id=str(raw.get("id") or raw.get("held_id") or ""),
            payload=raw.get("payload") or {},
            customer_summary=raw.get("customer_summary"),
            created_at=created_at,
            total=total,
        )


class ReceiptSettings(BaseModel):
    """Display toggles for the rendered invoice. Consumed, never produced."""

    show_logo: bool = False
    show_gst: bool = False
    show_artist: bool = False
    show_loyalty: bool = False
    show_wallet: bool = False
    show_payment_method: bool = False
    show_date_time: bool = False
    show_client_mobile: bool = False
    show_discount: bool = False
    show_bill_notes: bool = False
    notes: list[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "ReceiptSettings":
        notes = raw.get("notes") if isinstance(raw.get("notes"), list) else []
        return cls(
            show_logo=bool(raw.get("logo")),
            show_gst=bool(raw.get("gst_no")),
            show_artist=bool(raw.get("staff_name")),
            show_loyalty=bool(raw.get("loyalty_points")),
            show_wallet=bool(raw.get("wallet_balance")),
            show_payment_method=bool(raw.get("payment_method")),
            show_date_time=bool(raw.get("date_time")),
            show_client_mobile=bool(raw.get("customer_contact")),
            show_discount=bool(raw.get("discount")),
            show_bill_notes=len(notes) > 0,
            notes=notes,
        )
