"""Pure invoice arithmetic: line amounts, tax, coupons, ledger, totals and the wire codec."""

from core.billing.catalog import CatalogEntry, CatalogResolver
from core.billing.coupons import DiscountPair, compute_coupon_discount, reconcile
from core.billing.ledger import ADVANCE_PAYMENT_ID
from core.billing.line_items import compute_line_amounts, display_unit_price, price_from_entry
from core.billing.totals import recompute

__all__ = [
    "CatalogEntry", "CatalogResolver",
    "DiscountPair", "compute_coupon_discount", "reconcile",
    "ADVANCE_PAYMENT_ID",
    "compute_line_amounts", "display_unit_price", "price_from_entry",
    "recompute",
]
