"""
Wire codec for hold/save bodies and the snapshots they come back as.

Building a payload is the only place money is rounded. Loading a snapshot
produces items flagged `is_loaded_snapshot` so their stored prices survive
under whatever tax mode the store uses today.
"""

import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Any

from core.billing.catalog import CatalogResolver
from core.billing.ledger import merge_payments, payment_mode_label
from core.billing.line_items import compute_line_amounts, display_unit_price
from core.billing.tax import rate_from_split, round_money, split_gst, to_decimal
from core.exceptions import BillValidationError, ResolutionError
from core.models import (
    CustomerProfile,
    DerivedTotals,
    InvoiceDraft,
    ItemType,
    LineItem,
    Payment,
    PaymentMode,
    TaxMode,
    normalize_payment_mode,
)
from utils.timezone import now_utc, parse_iso, to_iso_z

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^[+]?\d{10,15}$")
SUMMARY_PATTERN = re.compile(r"^(.+?)\s*\(([^)]+)\)$")


def _wire(value: Decimal) -> float:
    return float(round_money(value))


# ============================================================================
# Customer
# ============================================================================

def phone_to_e164(raw: str | None, country_code: str = "+91") -> str:
    """
    Normalize a typed phone number for the backend.

    Ten digits get the default country code; anything else with digits is
    prefixed with '+'. No digits gives an empty string.
    """
    digits = re.sub(r"\D", "", str(raw or ""))
    if len(digits) == 10:
        return f"{country_code}{digits}"
    return f"+{digits}" if digits else ""


def build_customer_part(customer: CustomerProfile, country_code: str = "+91") -> dict[str, Any]:
    """`{customer_id}` for a known customer, otherwise an inline `customer` object."""
    if customer.id:
        return {"customer_id": str(customer.id)}

    body: dict[str, Any] = {
        "name": customer.name,
        "gender": customer.gender or "male",
        "contact_no": phone_to_e164(customer.phone or customer.contact_no, country_code),
        "address": customer.address,
    }
    if customer.birthday:
        body["birthday"] = customer.birthday
    if customer.anniversary:
        body["anniversary"] = customer.anniversary
    return {"customer": body}


def validate_customer_part(part: dict[str, Any]) -> None:
    """
    Raises:
        BillValidationError: If a new customer has no name or a malformed phone
    """
    if part.get("customer_id"):
        return
    customer = part.get("customer") or {}
    if not customer.get("name") or not PHONE_PATTERN.match(customer.get("contact_no") or ""):
        raise BillValidationError(
            "Please enter customer name and a valid phone number with country code "
            "(e.g., +919876543210)."
        )


def parse_customer_summary(summary: str | None) -> dict[str, str]:
    """
    Parse a held bill's "Name (phone)" summary into profile fields.

    Returns name, contact_no and display phone where present. A summary that
    does not match the pattern is taken as the name.
    """
    if not summary:
        return {}
    match = SUMMARY_PATTERN.match(summary.strip())
    if not match:
        return {"name": summary.strip()}

    contact_no = re.sub(r"[^\d+]", "", match.group(2))
    digits = re.sub(r"\D", "", re.sub(r"^\+", "", re.sub(r"^\+91", "", contact_no)))
    fields = {"name": match.group(1).strip()}
    if contact_no:
        fields["contact_no"] = contact_no
        fields["phone"] = digits if len(digits) == 10 else contact_no
    return fields


# ============================================================================
# Items
# ============================================================================

def build_item_lines(
    items: list[LineItem],
    tax_mode: TaxMode,
    catalog: CatalogResolver | None = None,
) -> list[dict[str, Any]]:
    """
    Serialize named items into numbered bill lines (Decimal amounts).

    A named item without a catalog id is matched by name against `catalog`,
    so items typed before the catalog loaded still resolve. Items are not
    modified.

    Raises:
        ResolutionError: Listing every named item that still has no catalog id
        BillValidationError: If a named item has a quantity below 1
    """
    named = [item for item in items if item.name.strip()]
    catalog_ids = {}
    for item in named:
        catalog_id = item.catalog_id
        if catalog_id is None and catalog is not None:
            entry = catalog.resolve(item.type, item.name)
            catalog_id = entry.id if entry else None
        catalog_ids[item.id] = catalog_id

    unresolved = [item.label for item in named if not catalog_ids[item.id]]
    if unresolved:
        raise ResolutionError(unresolved)

    zero_qty = [item.label for item in named if item.qty < 1]
    if zero_qty:
        raise BillValidationError(f"Quantity must be at least 1 for: {', '.join(zero_qty)}.")

    lines = []
    for index, item in enumerate(named):
        cgst, sgst = split_gst(compute_line_amounts(item, tax_mode).tax_amount)
        lines.append({
            "line_no": index + 1,
            "type": item.type.value.lower(),
            "id": catalog_ids[item.id],
            "staff_id": item.primary_staff_id,
            "qty": item.qty,
            "price": display_unit_price(item, tax_mode),
            "discount_type": item.discount_type.value,
            "discount_value": to_decimal(item.discount_value),
            "cgst": cgst,
            "sgst": sgst,
        })
    return lines


def fold_duplicate_lines(lines: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Merge lines sharing (catalog id, staff id) and renumber from 1.

    Quantities and cgst/sgst are summed onto the first occurrence; the
    first occurrence keeps its position and price. Input is not modified.
    """
    folded: dict[tuple, dict[str, Any]] = {}
    for line in lines:
        key = (line["id"], line["staff_id"])
        existing = folded.get(key)
        if existing is None:
            folded[key] = dict(line)
            continue
        existing["qty"] += line["qty"]
        existing["cgst"] = round_money(existing["cgst"] + line["cgst"])
        existing["sgst"] = round_money(existing["sgst"] + line["sgst"])

    return [
        {**line, "line_no": index + 1}
        for index, line in enumerate(folded.values())
    ]


# ============================================================================
# Payments and full body
# ============================================================================

def build_payments(all_payments: list[Payment]) -> list[dict[str, Any]]:
    return [
        {
            "mode": normalize_payment_mode(p.mode).value,
            "amount": _wire(p.amount),
            "reference": p.reference,
            "payment_timestamp": to_iso_z(p.timestamp),
        }
        for p in all_payments
    ]


def build_bill_payload(
    draft: InvoiceDraft,
    totals: DerivedTotals,
    country_code: str = "+91",
    catalog: CatalogResolver | None = None,
) -> dict[str, Any]:
    """
    Build the hold/save request body.

    Validation runs in the order the user fixes things: empty invoice,
    customer identity, catalog resolution, then quantities. Nothing is sent
    on failure.

    Raises:
        BillValidationError: Empty invoice, incomplete customer or a zero quantity
        ResolutionError: Named items that resolve to no catalog entry
    """
    if not draft.items:
        raise BillValidationError("Please add at least one item to the bill.")

    customer_part = build_customer_part(draft.customer, country_code)
    validate_customer_part(customer_part)

    lines = fold_duplicate_lines(build_item_lines(draft.items, draft.tax_mode, catalog))
    for line in lines:
        for key in ("price", "discount_value", "cgst", "sgst"):
            line[key] = _wire(line[key])

    all_payments = merge_payments(draft.payments, draft.advance_amount, timestamp=now_utc())
    coupon_codes = [c.code or c.id for c in draft.coupons if c.code or c.id]

    return {
        **customer_part,
        "coupon_code": coupon_codes[0] if coupon_codes else None,
        "coupon_codes": coupon_codes,
        "referral_code": draft.customer.referral_code or None,
        "items": lines,
        "discount": _wire(totals.extra_discount),
        "payment_mode": payment_mode_label(all_payments),
        "payment_amount": _wire(totals.total_paid),
        "payments": build_payments(all_payments),
        "billing_timestamp": to_iso_z(draft.billing_at),
    }


# ============================================================================
# Snapshots back into draft items
# ============================================================================

def _display_name(item_type: ItemType, index: int) -> str:
    return f"{item_type.value} {index + 1}"


def item_from_snapshot(
    raw: dict[str, Any],
    index: int,
    catalog: CatalogResolver,
    default_rate: Decimal = Decimal("18"),
) -> LineItem:
    """
    Rebuild a draft item from a held payload line.

    The stored price is kept verbatim. The display GST rate is recovered from
    the cgst/sgst amounts; when that falls back to the default, a catalog
    rate for the same entry is preferred.
    """
    item_type = ItemType.parse(raw.get("type"))
    price = to_decimal(raw.get("price"))
    rate = rate_from_split(
        price, to_decimal(raw.get("cgst")), to_decimal(raw.get("sgst")), default_rate
    )

    entry = catalog.find_by_id(item_type, raw.get("id"))
    if entry is not None:
        name = entry.name
        if rate == default_rate and entry.tax_rate_percent > 0:
            rate = entry.tax_rate_percent
    else:
        name = _display_name(item_type, index)

    return LineItem(
        type=item_type,
        name=name,
        catalog_id=raw.get("id"),
        qty=int(raw.get("qty") or 1),
        unit_price=price,
        discount_value=to_decimal(raw.get("discount_value")),
        discount_type=raw.get("discount_type"),
        tax_rate_percent=rate,
        staff_ids=[raw["staff_id"]] if raw.get("staff_id") else [],
        is_loaded_snapshot=True,
    )


def _first_present(raw: dict[str, Any], *keys: str):
    for key in keys:
        if raw.get(key) not in (None, ""):
            return raw[key]
    return None


def item_from_bill(
    raw: dict[str, Any],
    index: int,
    catalog: CatalogResolver,
    default_rate: Decimal = Decimal("18"),
) -> LineItem:
    """
    Rebuild a draft item from a finalized bill's line.

    Bill lines come in several shapes, so each field is read from the first
    key present. The catalog id is looked up by name when the line has none.
    """
    item_type = ItemType.parse(_first_present(raw, "type", "item_type"))
    name = _first_present(raw, "name", "item_name") or ""

    if raw.get("cgst_rate") is not None and raw.get("sgst_rate") is not None:
        rate = to_decimal(raw["cgst_rate"]) + to_decimal(raw["sgst_rate"])
    else:
        rate = to_decimal(raw.get("tax")) or default_rate

    catalog_id = _first_present(raw, "catalog_id", "item_id", "service_id", "product_id")
    if catalog_id is None and name:
        entry = catalog.resolve(item_type, name)
        catalog_id = entry.id if entry else None
    if not name:
        entry = catalog.find_by_id(item_type, catalog_id)
        name = entry.name if entry else _display_name(item_type, index)

    return LineItem(
        type=item_type,
        name=name,
        catalog_id=catalog_id,
        qty=int(_first_present(raw, "qty", "quantity") or 1),
        unit_price=to_decimal(_first_present(raw, "price", "unit_price", "line_total", "base_amount")),
        discount_value=to_decimal(_first_present(raw, "discount_value", "discount_amount", "discount")),
        discount_type=raw.get("discount_type"),
        tax_rate_percent=rate,
        staff_ids=[raw["staff_id"]] if raw.get("staff_id") else [],
        is_loaded_snapshot=True,
    )


def payments_from_snapshot(raw_payments: list[dict[str, Any]] | None) -> list[Payment]:
    """
    Rebuild explicit payments from a held payload or bill.

    Advance rows are dropped: the advance is always re-read from the live
    customer record, so keeping them would count it twice.
    """
    payments = []
    for raw in raw_payments or []:
        mode = normalize_payment_mode(
            _first_present(raw, "mode", "payment_mode", "type") or "cash"
        )
        if mode == PaymentMode.ADVANCE:
            continue
        amount = to_decimal(raw.get("amount"))
        if amount <= 0:
            logger.debug(f"Skipping non-positive {mode.value} payment on load")
            continue
        timestamp = _first_present(raw, "payment_timestamp", "timestamp")
        payments.append(Payment(
            mode=mode,
            amount=amount,
            reference=raw.get("reference"),
            timestamp=_parse_timestamp(timestamp),
        ))
    return payments


def _parse_timestamp(value) -> datetime:
    if not value:
        return now_utc()
    try:
        return parse_iso(str(value))
    except ValueError:
        logger.warning(f"Unparseable payment timestamp {value!r}, using now")
        return now_utc()
