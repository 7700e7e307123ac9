"""
Payment ledger: explicit payments plus the customer's advance.

The advance is merged in at read time as a synthetic payment. It is never
stored in the draft's payment list, can only be removed with clear_advance,
and is dropped whenever a saved or held bill is loaded back for editing.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from core.billing.tax import ZERO, to_decimal
from core.models import Payment, PaymentMode, normalize_payment_mode
from utils.timezone import now_utc

ADVANCE_PAYMENT_ID = "advance-payment"

__all__ = [
    "ADVANCE_PAYMENT_ID",
    "advance_payment",
    "merge_payments",
    "total_paid",
    "compute_dues",
    "payment_mode_label",
    "remove_payment",
    "drop_advance",
    "normalize_payment_mode",
]


def advance_payment(advance_amount, timestamp: datetime | None = None) -> Payment | None:
    """The synthetic advance entry, or None when there is no advance balance."""
    amount = to_decimal(advance_amount)
    if amount <= 0:
        return None
    return Payment(
        id=ADVANCE_PAYMENT_ID,
        mode=PaymentMode.ADVANCE,
        amount=amount,
        timestamp=timestamp or now_utc(),
    )


def merge_payments(
    payments: Iterable[Payment],
    advance_amount,
    timestamp: datetime | None = None,
) -> list[Payment]:
    """Explicit payments followed by the advance entry when one applies."""
    merged = list(payments)
    advance = advance_payment(advance_amount, timestamp)
    if advance is not None:
        merged.append(advance)
    return merged


def total_paid(all_payments: Iterable[Payment]) -> Decimal:
    return sum((p.amount for p in all_payments), ZERO)


def compute_dues(calculated_total: Decimal, paid: Decimal) -> Decimal:
    """Unpaid remainder, never negative."""
    return max(ZERO, calculated_total - paid)


def payment_mode_label(all_payments: list[Payment]) -> str:
    """'split' for several payments, the single mode's name for one, else 'none'."""
    if len(all_payments) > 1:
        return "split"
    if len(all_payments) == 1:
        return all_payments[0].mode.value
    return PaymentMode.NONE.value


def remove_payment(payments: list[Payment], payment_id: str) -> list[Payment]:
    """
    Remove an explicit payment.

    Raises:
        ValueError: If asked to remove the advance entry (use clear_advance)
            or if no payment has that id
    """
    if payment_id == ADVANCE_PAYMENT_ID:
        raise ValueError("The advance can only be removed by clearing the customer's advance")
    remaining = [p for p in payments if p.id != payment_id]
    if len(remaining) == len(payments):
        raise ValueError(f"Payment {payment_id} not found")
    return remaining


def drop_advance(payments: Iterable[Payment]) -> list[Payment]:
    """Strip advance rows from reloaded payments; advance is always re-read live."""
    return [p for p in payments if p.mode != PaymentMode.ADVANCE]
