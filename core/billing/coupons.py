"""
Coupon discounts and the extra-discount / adjust-total pair.

The pair is one derived value with two setters. Both setters go through
`reconcile`, which clamps against the same coupon-adjusted, tax-inclusive
base, so extra_discount + adjust_total == base_incl_tax after every edit.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from core.billing.tax import HUNDRED, ZERO, to_decimal
from core.exceptions import ReconciliationViolation
from core.models import Coupon, DiscountType


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return min(max(value, low), high)


def coupon_amount(subtotal: Decimal, coupon: Coupon) -> Decimal:
    """Discount from a single coupon, capped by its max_discount when set."""
    if coupon.type == DiscountType.PERCENT:
        discount = subtotal * coupon.value / HUNDRED
    else:
        discount = coupon.value
    if coupon.max_discount is not None and coupon.max_discount > 0:
        discount = min(discount, coupon.max_discount)
    return max(ZERO, discount)


def compute_coupon_discount(subtotal: Decimal, coupons: Iterable[Coupon]) -> Decimal:
    """
    Total discount from all applied coupons.

    The sum never exceeds the pre-tax subtotal and is never negative.
    """
    subtotal = max(to_decimal(subtotal), ZERO)
    total = sum((coupon_amount(subtotal, c) for c in coupons), ZERO)
    return min(subtotal, total)


@dataclass(frozen=True)
class DiscountPair:
    """Reconciled extra discount and adjusted total against a base."""

    base_incl_tax: Decimal
    extra_discount: Decimal
    adjust_total: Decimal


def reconcile(
    base_incl_tax: Decimal,
    *,
    extra_discount=None,
    adjust_total=None,
) -> DiscountPair:
    """
    Re-derive the pair from whichever side the user edited.

    Exactly one of extra_discount / adjust_total must be given. The given
    side is clamped to [0, base]; the other side is base minus it.

    Raises:
        ValueError: If both or neither side is given
    """
    if (extra_discount is None) == (adjust_total is None):
        raise ValueError("Exactly one of extra_discount or adjust_total must be given")

    base = max(to_decimal(base_incl_tax), ZERO)
    if extra_discount is not None:
        extra = clamp(to_decimal(extra_discount), ZERO, base)
        pair = DiscountPair(base, extra, clamp(base - extra, ZERO, base))
    else:
        adjust = clamp(to_decimal(adjust_total), ZERO, base)
        pair = DiscountPair(base, base - adjust, adjust)

    check_reconciled(pair)
    return pair


def check_reconciled(pair: DiscountPair) -> None:
    """Raise ReconciliationViolation if the pair no longer sums to its base."""
    if pair.extra_discount + pair.adjust_total != pair.base_incl_tax:
        raise ReconciliationViolation(
            f"extra_discount {pair.extra_discount} + adjust_total {pair.adjust_total} "
            f"!= base_incl_tax {pair.base_incl_tax}"
        )
    for side in (pair.extra_discount, pair.adjust_total):
        if side < ZERO or side > pair.base_incl_tax:
            raise ReconciliationViolation(
                f"{side} outside [0, {pair.base_incl_tax}]"
            )
