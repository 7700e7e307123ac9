"""Core domain models."""

from core.models.line_item import LineItem, LineAmounts, ItemType, DiscountType
from core.models.coupon import Coupon
from core.models.payment import Payment, PaymentMode, normalize_payment_mode
from core.models.customer import CustomerProfile, to_day_month
from core.models.invoice import (
    InvoiceDraft,
    InvoiceState,
    TaxMode,
    DerivedTotals,
    HeldInvoice,
    ReceiptSettings,
)

__all__ = [
    # LineItem
    "LineItem", "LineAmounts", "ItemType", "DiscountType",
    # Coupon
    "Coupon",
    # Payment
    "Payment", "PaymentMode", "normalize_payment_mode",
    # Customer
    "CustomerProfile", "to_day_month",
    # Invoice
    "InvoiceDraft", "InvoiceState", "TaxMode", "DerivedTotals",
    "HeldInvoice", "ReceiptSettings",
]
