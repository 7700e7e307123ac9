"""
Tax formulas shared by line items and invoice summaries.

There is exactly one implementation of inclusive extraction and exclusive
addition. Line amounts call these, and summaries add up line amounts instead
of re-deriving tax, so item-level and invoice-level GST cannot drift apart.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from core.models import TaxMode

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce user/backend input to Decimal. Blank or garbage becomes 0."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def round_money(value: Any) -> Decimal:
    """Round to 2 places, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def extract_inclusive(amount: Decimal, rate_percent: Decimal) -> tuple[Decimal, Decimal]:
    """
    Split a tax-inclusive amount into (exclusive base, tax).

    base = amount / (1 + rate/100); tax = amount - base.
    """
    if rate_percent <= 0:
        return amount, ZERO
    base_excl = amount / (1 + rate_percent / HUNDRED)
    return base_excl, amount - base_excl


def add_exclusive(amount: Decimal, rate_percent: Decimal) -> tuple[Decimal, Decimal]:
    """
    Add tax on top of an exclusive amount, returning (inclusive amount, tax).
    """
    if rate_percent <= 0:
        return amount, ZERO
    tax = amount * rate_percent / HUNDRED
    return amount + tax, tax


def split_gst(tax_amount: Decimal) -> tuple[Decimal, Decimal]:
    """Split a line's tax into equal CGST and SGST halves, each rounded to 2 places."""
    half = round_money(tax_amount / 2)
    return half, half


def rate_from_split(
    unit_price: Decimal,
    cgst: Decimal,
    sgst: Decimal,
    fallback: Decimal,
) -> Decimal:
    """
    Recover a display GST rate from a stored price and its CGST/SGST amounts.

    rate = (cgst + sgst) / (price - cgst - sgst) * 100, rounded to a whole
    percent. Returns `fallback` when either amount is missing or the taxable
    base is not positive.
    """
    total_tax = cgst + sgst
    if total_tax <= 0 or unit_price <= 0:
        return fallback
    taxable = unit_price - total_tax
    if taxable <= 0:
        return fallback
    return (total_tax / taxable * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def tax_mode_from_store_profile(profile: dict[str, Any] | None, apply_tax: bool = True) -> TaxMode:
    """
    Derive tax inclusivity from the store profile.

    Stores billing 'Excluding' add tax on top; any other value means catalog
    prices already include tax. A missing profile means 'Excluding'.
    """
    tax_billing = "Excluding"
    if profile:
        tax_billing = profile.get("tax") or profile.get("tax_billing") or "Excluding"
    return TaxMode(apply_tax=apply_tax, inclusive=str(tax_billing).lower() != "excluding")
