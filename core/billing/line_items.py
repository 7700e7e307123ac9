"""
Per-line money: base, discount, tax and total.

Tax is always computed on the pre-discount base and the discount is taken
off last, so a discount never shrinks the taxable amount:

    total = max(0, base_price + tax - discount)
"""

from decimal import Decimal

from core.billing.tax import (
    HUNDRED,
    ZERO,
    add_exclusive,
    extract_inclusive,
    round_money,
    to_decimal,
)
from core.models import DiscountType, LineAmounts, LineItem, TaxMode


def compute_line_amounts(item: LineItem, tax_mode: TaxMode) -> LineAmounts:
    """
    Compute the amounts for one line item under the invoice tax mode.

    Zero or negative quantities and prices produce zero amounts.
    """
    qty = max(item.qty, 0)
    unit_price = max(to_decimal(item.unit_price), ZERO)
    rate = to_decimal(item.tax_rate_percent)
    base_price = unit_price * qty

    if item.discount_type == DiscountType.PERCENT:
        discount_amount = base_price * to_decimal(item.discount_value) / HUNDRED
    else:
        discount_amount = to_decimal(item.discount_value)
    discount_amount = max(discount_amount, ZERO)

    if not tax_mode.apply_tax or rate <= 0:
        return LineAmounts(
            base_price=base_price,
            base_excl=base_price,
            base_incl=base_price,
            discount_amount=discount_amount,
            tax_amount=ZERO,
            total=max(ZERO, base_price - discount_amount),
        )

    if tax_mode.inclusive:
        base_incl = base_price
        base_excl, tax_amount = extract_inclusive(base_price, rate)
    else:
        base_excl = base_price
        base_incl, tax_amount = add_exclusive(base_price, rate)

    return LineAmounts(
        base_price=base_price,
        base_excl=base_excl,
        base_incl=base_incl,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=max(ZERO, base_price + tax_amount - discount_amount),
    )


def display_unit_price(item: LineItem, tax_mode: TaxMode) -> Decimal:
    """
    Unit price as shown in the price column and sent as `price` on save.

    New items in inclusive mode show the exclusive per-unit price; reloaded
    rows always show exactly what was stored.
    """
    price = to_decimal(item.unit_price)
    rate = to_decimal(item.tax_rate_percent)
    if item.is_loaded_snapshot:
        return price
    if tax_mode.inclusive and rate > 0:
        return round_money(price / (1 + rate / HUNDRED))
    return price


def price_from_entry(item: LineItem, entered, tax_mode: TaxMode) -> Decimal:
    """
    Convert a price typed into the price column into the stored unit price.

    Inverse of display_unit_price: in inclusive mode a new item stores the
    entered exclusive price grossed up by its rate.
    """
    value = to_decimal(entered)
    if item.is_loaded_snapshot or not tax_mode.inclusive:
        return value
    return value * (1 + to_decimal(item.tax_rate_percent) / HUNDRED)
