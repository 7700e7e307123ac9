"""
Invoice-level recomputation.

`recompute` is a pure function of the draft. It is called after every
mutating command and may run on every keystroke: it never mutates its input
and returns the same result for the same draft.
"""

from core.billing.coupons import compute_coupon_discount, reconcile
from core.billing.ledger import compute_dues, merge_payments, total_paid
from core.billing.line_items import compute_line_amounts
from core.billing.tax import ZERO
from core.models import DerivedTotals, InvoiceDraft


def recompute(draft: InvoiceDraft) -> DerivedTotals:
    """
    Derive every summary value for a draft.

    The stored extra_discount is the master side of the discount pair; the
    returned adjust_total is re-derived from it against the current base, so
    the pair is consistent even after items, coupons or tax mode changed.
    """
    lines = {item.id: compute_line_amounts(item, draft.tax_mode) for item in draft.items}

    sub_total = sum((a.base_price for a in lines.values()), ZERO)
    item_discount = sum((a.discount_amount for a in lines.values()), ZERO)
    total_gst = sum((a.tax_amount for a in lines.values()), ZERO)
    total_before_extra = sum((a.total for a in lines.values()), ZERO)

    coupon_discount = compute_coupon_discount(sub_total, draft.coupons)
    base_incl_tax = max(ZERO, total_before_extra - coupon_discount)
    pair = reconcile(base_incl_tax, extra_discount=draft.extra_discount)

    calculated_total = max(ZERO, total_before_extra - pair.extra_discount)
    paid = total_paid(merge_payments(draft.payments, draft.advance_amount))

    return DerivedTotals(
        lines=lines,
        sub_total=sub_total,
        item_discount=item_discount,
        total_gst=total_gst,
        total_before_extra=total_before_extra,
        coupon_discount=coupon_discount,
        base_incl_tax=pair.base_incl_tax,
        extra_discount=pair.extra_discount,
        adjust_total=pair.adjust_total,
        calculated_total=calculated_total,
        total_paid=paid,
        dues=compute_dues(calculated_total, paid),
    )
