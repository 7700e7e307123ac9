"""
Invoice lifecycle: the working draft, its commands, and hold/save/load/edit.

States:
    draft -> finalized       save
    finalized -> draft       reopen / edit_bill
    held -> draft            load_held

Holding snapshots the draft into a held record on the backend; the working
draft stays open and editable. Every mutating command ends with a pure
recompute, and the reconciled extra discount / adjust total pair is written
back so the stored pair always satisfies its invariant.
"""

import logging
from decimal import Decimal
from typing import Any
from uuid import uuid4

from clients.backend_client import BackendClient, TransportError
from core.billing.catalog import CatalogResolver
from core.billing.coupons import reconcile
from core.billing.ledger import remove_payment as ledger_remove_payment
from core.billing.line_items import price_from_entry
from core.billing.payload import (
    build_bill_payload,
    item_from_bill,
    item_from_snapshot,
    parse_customer_summary,
    payments_from_snapshot,
)
from core.billing.tax import tax_mode_from_store_profile, to_decimal
from core.billing.totals import recompute
from core.config import BillingConfig
from core.event_bus import EventBus
from core.events import InvoiceFinalized, InvoiceHeld, InvoiceLoaded
from core.exceptions import InvalidTransitionError
from core.models import (
    Coupon,
    CustomerProfile,
    DerivedTotals,
    HeldInvoice,
    InvoiceDraft,
    InvoiceState,
    ItemType,
    LineItem,
    Payment,
    PaymentMode,
    ReceiptSettings,
    TaxMode,
)
from core.services.customer_service import CustomerService
from utils.timezone import combine_date_time, now_utc, parse_iso

logger = logging.getLogger(__name__)

# Item fields a user can edit directly
_ITEM_FIELDS = {
    "type", "name", "qty", "price", "discount_value",
    "discount_type", "tax_rate_percent", "staff_ids",
}


class InvoiceService:
    """Service for working invoices and their lifecycle."""

    def __init__(
        self,
        backend: BackendClient,
        customers: CustomerService,
        event_bus: EventBus,
        config: BillingConfig | None = None,
    ):
        self.backend = backend
        self.customers = customers
        self.event_bus = event_bus
        self.config = config or BillingConfig()

        self.catalog = CatalogResolver()
        self.coupons: list[Coupon] = []
        self.staff: list[dict[str, Any]] = []
        self.held_invoices: list[HeldInvoice] = []
        self.receipt_settings = ReceiptSettings()
        self.tax_mode = TaxMode(apply_tax=self.config.apply_tax)

        self._drafts: dict[str, InvoiceDraft] = {}
        self._save_keys: dict[str, str] = {}

    # =========================================================================
    # Reference data
    # =========================================================================

    def load_reference_data(self) -> None:
        """
        Load catalog, coupons, staff, store tax mode and held invoices.

        Each source is loaded independently; a failing source is logged and
        keeps its previous value.
        """
        self.load_catalog()
        try:
            self.coupons = [Coupon.from_api(raw) for raw in self.backend.list_coupons()]
        except TransportError as e:
            logger.warning(f"Coupon load failed, keeping {len(self.coupons)} coupons: {e.message}")
        try:
            self.staff = self.backend.list_staff()
        except TransportError as e:
            logger.warning(f"Staff load failed: {e.message}")
        try:
            profile = self.backend.get_store_profile()
            self.tax_mode = tax_mode_from_store_profile(profile, apply_tax=self.config.apply_tax)
        except TransportError as e:
            logger.warning(f"Store profile load failed, keeping tax mode {self.tax_mode}: {e.message}")
        self.refresh_held_invoices()

    def load_catalog(self) -> CatalogResolver:
        try:
            self.catalog = CatalogResolver.from_api(
                services=self.backend.list_services(),
                products=self.backend.list_products(),
                memberships=self.backend.list_memberships(),
            )
        except TransportError as e:
            logger.warning(f"Catalog load failed, keeping current catalog: {e.message}")
        return self.catalog

    def refresh_held_invoices(self) -> list[HeldInvoice]:
        try:
            self.held_invoices = [HeldInvoice.from_api(raw) for raw in self.backend.list_held_bills()]
        except TransportError as e:
            logger.warning(f"Held list refresh failed, keeping {len(self.held_invoices)}: {e.message}")
        return self.held_invoices

    def load_receipt_settings(self) -> ReceiptSettings:
        try:
            self.receipt_settings = ReceiptSettings.from_api(self.backend.get_receipt_settings())
        except TransportError as e:
            logger.warning(f"Receipt settings load failed: {e.message}")
        return self.receipt_settings

    # =========================================================================
    # Draft registry
    # =========================================================================

    def create_draft(self) -> InvoiceDraft:
        draft = InvoiceDraft(tax_mode=self.tax_mode)
        self._drafts[draft.id] = draft
        logger.info(f"Created draft {draft.id}")
        return draft

    def get_draft(self, draft_id: str) -> InvoiceDraft:
        """
        Raises:
            ValueError: If no draft has that id
        """
        draft = self._drafts.get(draft_id)
        if draft is None:
            raise ValueError(f"Draft {draft_id} not found")
        return draft

    def discard_draft(self, draft_id: str) -> None:
        self.get_draft(draft_id)
        del self._drafts[draft_id]
        self._save_keys.pop(draft_id, None)
        self.customers.forget(draft_id)

    def totals(self, draft_id: str) -> DerivedTotals:
        return recompute(self.get_draft(draft_id))

    def _editable(self, draft_id: str) -> InvoiceDraft:
        draft = self.get_draft(draft_id)
        if draft.state != InvoiceState.DRAFT:
            raise InvalidTransitionError(
                f"Draft {draft_id} is {draft.state.value}; reopen it before editing"
            )
        return draft

    def _commit(self, draft: InvoiceDraft) -> DerivedTotals:
        totals = recompute(draft)
        draft.extra_discount = totals.extra_discount
        draft.adjust_total = totals.adjust_total
        # Any edit after a failed save is a new bill as far as the backend knows
        self._save_keys.pop(draft.id, None)
        return totals

    def _item(self, draft: InvoiceDraft, item_id: str) -> LineItem:
        item = draft.find_item(item_id)
        if item is None:
            raise ValueError(f"Item {item_id} not found on draft {draft.id}")
        return item

    # =========================================================================
    # Items
    # =========================================================================

    def add_item(self, draft_id: str, item_type: ItemType | str = ItemType.SERVICE) -> LineItem:
        draft = self._editable(draft_id)
        item = LineItem(type=item_type, tax_rate_percent=self.config.default_tax_rate_percent)
        draft.items.append(item)
        self._commit(draft)
        return item

    def update_item(self, draft_id: str, item_id: str, field: str, value) -> LineItem:
        """
        Apply one field edit to a line item.

        Only a name change consults the catalog. A hit overwrites price, tax
        rate and catalog id (the row stops being a frozen snapshot); a miss
        keeps price and tax and clears the catalog id. Every other edit
        leaves price and tax as the user set them.

        Raises:
            ValueError: If the field is unknown or the value is invalid
        """
        if field not in _ITEM_FIELDS:
            raise ValueError(f"Item field '{field}' is not editable")

        draft = self._editable(draft_id)
        item = self._item(draft, item_id)

        if field == "name":
            item.name = str(value or "")
            entry = self.catalog.resolve(item.type, item.name) if item.name else None
            if entry is not None:
                item.catalog_id = entry.id
                item.unit_price = entry.unit_price
                item.tax_rate_percent = entry.tax_rate_percent
                item.is_loaded_snapshot = False
            else:
                item.catalog_id = None
        elif field == "type":
            item.type = value
            item.name = ""
            item.catalog_id = None
        elif field == "price":
            item.unit_price = price_from_entry(item, value, draft.tax_mode)
        elif field == "qty":
            item.qty = max(int(value or 0), 0)
        elif field == "staff_ids":
            item.staff_ids = value
        else:
            setattr(item, field, value)

        self._commit(draft)
        return item

    def remove_item(self, draft_id: str, item_id: str) -> None:
        draft = self._editable(draft_id)
        self._item(draft, item_id)
        draft.items = [i for i in draft.items if i.id != item_id]
        self._commit(draft)

    def add_staff(self, draft_id: str, item_id: str, staff_id: str) -> LineItem:
        draft = self._editable(draft_id)
        item = self._item(draft, item_id)
        if self.staff and str(staff_id) not in {str(s.get("id")) for s in self.staff}:
            raise ValueError(f"Unknown staff member {staff_id}")
        if str(staff_id) not in item.staff_ids:
            item.staff_ids = [*item.staff_ids, staff_id]
        self._commit(draft)
        return item

    def remove_staff(self, draft_id: str, item_id: str, staff_id: str) -> LineItem:
        draft = self._editable(draft_id)
        item = self._item(draft, item_id)
        item.staff_ids = [s for s in item.staff_ids if s != str(staff_id)]
        self._commit(draft)
        return item

    # =========================================================================
    # Coupons, tax, discounts
    # =========================================================================

    def apply_coupon(self, draft_id: str, coupon: Coupon | str) -> DerivedTotals:
        """Apply a coupon by object or id. Re-applying the same id is a no-op."""
        draft = self._editable(draft_id)
        if not isinstance(coupon, Coupon):
            found = next((c for c in self.coupons if c.id == str(coupon)), None)
            if found is None:
                raise ValueError(f"Coupon {coupon} not found")
            coupon = found
        if all(c.id != coupon.id for c in draft.coupons):
            draft.coupons = [*draft.coupons, coupon]
        return self._commit(draft)

    def remove_coupon(self, draft_id: str, coupon_id: str) -> DerivedTotals:
        draft = self._editable(draft_id)
        draft.coupons = [c for c in draft.coupons if c.id != str(coupon_id)]
        return self._commit(draft)

    def set_tax_mode(
        self,
        draft_id: str,
        apply_tax: bool | None = None,
        inclusive: bool | None = None,
    ) -> DerivedTotals:
        draft = self._editable(draft_id)
        draft.tax_mode = TaxMode(
            apply_tax=draft.tax_mode.apply_tax if apply_tax is None else apply_tax,
            inclusive=draft.tax_mode.inclusive if inclusive is None else inclusive,
        )
        return self._commit(draft)

    def set_extra_discount(self, draft_id: str, value) -> DerivedTotals:
        draft = self._editable(draft_id)
        pair = reconcile(recompute(draft).base_incl_tax, extra_discount=value)
        draft.extra_discount = pair.extra_discount
        return self._commit(draft)

    def set_adjust_total(self, draft_id: str, value) -> DerivedTotals:
        draft = self._editable(draft_id)
        pair = reconcile(recompute(draft).base_incl_tax, adjust_total=value)
        draft.extra_discount = pair.extra_discount
        return self._commit(draft)

    # =========================================================================
    # Payments and customer
    # =========================================================================

    def add_payment(self, draft_id: str, mode: str, amount, reference: str | None = None) -> Payment:
        """
        Raises:
            ValueError: For advance payments (they come from the customer
                balance) or a non-positive amount
        """
        draft = self._editable(draft_id)
        payment = Payment(mode=mode, amount=to_decimal(amount), reference=reference or None)
        if payment.mode in (PaymentMode.ADVANCE, PaymentMode.NONE):
            raise ValueError(f"Cannot record a '{payment.mode.value}' payment directly")
        draft.payments = [*draft.payments, payment]
        self._commit(draft)
        return payment

    def remove_payment(self, draft_id: str, payment_id: str) -> DerivedTotals:
        draft = self._editable(draft_id)
        draft.payments = ledger_remove_payment(draft.payments, payment_id)
        return self._commit(draft)

    def clear_advance(self, draft_id: str) -> DerivedTotals:
        """Stop applying the customer's advance to this invoice."""
        draft = self._editable(draft_id)
        self.customers.touch(draft.id, "advance_amount")
        draft.customer = draft.customer.model_copy(update={"advance_amount": Decimal("0")})
        return self._commit(draft)

    def update_customer(self, draft_id: str, field: str, value) -> DerivedTotals:
        """Edit a customer field; a completed phone number triggers a lookup."""
        draft = self._editable(draft_id)
        request = self.customers.edit_field(draft, field, value)
        if request is not None:
            self.customers.lookup_by_phone(draft, request)
        return self._commit(draft)

    def set_billing_time(self, draft_id: str, date_str: str, time_str: str | None = None) -> InvoiceDraft:
        draft = self._editable(draft_id)
        draft.billing_at = combine_date_time(date_str, time_str, self.config.billing_timezone)
        self._commit(draft)
        return draft

    def reset(self, draft_id: str) -> InvoiceDraft:
        """Empty the draft in place, keeping its id."""
        self.get_draft(draft_id)
        draft = InvoiceDraft(id=draft_id, tax_mode=self.tax_mode)
        self._drafts[draft_id] = draft
        self._save_keys.pop(draft_id, None)
        self.customers.forget(draft_id)
        return draft

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _payload(self, draft: InvoiceDraft) -> dict[str, Any]:
        return build_bill_payload(
            draft, recompute(draft), self.config.default_country_code, catalog=self.catalog
        )

    def hold(self, draft_id: str) -> HeldInvoice:
        """
        Persist the draft as a held invoice.

        The working draft is not cleared or changed.

        Raises:
            BillValidationError, ResolutionError: Before any network call
            TransportError: If the backend rejects the hold
        """
        draft = self._editable(draft_id)
        payload = self._payload(draft)
        response = self.backend.hold_bill(payload) or {}

        held = HeldInvoice.from_api({**response, "payload": response.get("payload") or payload})
        logger.info(f"Held draft {draft.id} as {held.id}")

        self.event_bus.publish(InvoiceHeld.create(draft=draft, held=held))
        return held

    def save(self, draft_id: str) -> dict[str, Any]:
        """
        Save the draft as the authoritative bill and finalize it.

        A retry after a transport failure reuses the same Idempotency-Key so
        the backend cannot create the bill twice.

        Raises:
            BillValidationError, ResolutionError: Before any network call
            TransportError: If the backend rejects the save; draft unchanged
        """
        draft = self._editable(draft_id)
        payload = self._payload(draft)
        key = self._save_keys.setdefault(draft.id, f"bill-{uuid4().hex}")

        bill = self.backend.save_bill(payload, idempotency_key=key)

        self._save_keys.pop(draft.id, None)
        draft.saved_bill = bill
        draft.state = InvoiceState.FINALIZED
        logger.info(f"Finalized draft {draft.id} as bill {(bill or {}).get('id')}")

        self.event_bus.publish(InvoiceFinalized.create(draft=draft, bill=bill))
        return bill

    def load_held(self, held_id: str) -> InvoiceDraft:
        """
        Reopen a held invoice as a new working draft.

        Raises:
            TransportError: If the held record cannot be fetched
        """
        raw = self.backend.get_held_bill(held_id)
        draft = self._draft_from_held(raw or {})
        draft.source_held_id = str(held_id)
        self._register_loaded(draft, "held")
        self.held_invoices = [h for h in self.held_invoices if h.id != str(held_id)]
        return draft

    def edit_bill(self, bill_id: str) -> InvoiceDraft:
        """
        Reopen a finalized bill fetched from the backend as a new draft.

        Raises:
            TransportError: If the bill cannot be fetched
        """
        bill = self.backend.get_bill(bill_id)
        draft = self._draft_from_bill(bill or {"id": bill_id})
        self._register_loaded(draft, "bill")
        return draft

    def reopen(self, draft_id: str) -> InvoiceDraft:
        """
        Move a finalized draft back to editing, rebuilt from its saved bill.

        Raises:
            InvalidTransitionError: If the draft is not finalized
        """
        current = self.get_draft(draft_id)
        if current.state != InvoiceState.FINALIZED:
            raise InvalidTransitionError(
                f"Only finalized invoices can be reopened; draft {draft_id} is {current.state.value}"
            )
        bill = current.saved_bill or {}
        draft = self._draft_from_bill(bill)
        draft = draft.model_copy(update={"id": current.id})
        self._register_loaded(draft, "bill")
        return draft

    def _register_loaded(self, draft: InvoiceDraft, source: str) -> None:
        self._drafts[draft.id] = draft
        self.customers.forget(draft.id)
        self._commit(draft)
        logger.info(f"Loaded {source} into draft {draft.id} with {len(draft.items)} items")
        self.event_bus.publish(InvoiceLoaded.create(draft=draft, source=source))

    # =========================================================================
    # Snapshot reconstruction
    # =========================================================================

    def _coupons_for_codes(self, codes: list[str]) -> list[Coupon]:
        matched = []
        for code in codes:
            coupon = next((c for c in self.coupons if code in (c.code, c.id)), None)
            if coupon is None:
                logger.warning(f"Coupon code {code!r} on loaded invoice is no longer available")
            elif coupon not in matched:
                matched.append(coupon)
        return matched

    def _billing_at(self, value) -> Any:
        if not value:
            return now_utc()
        try:
            return parse_iso(str(value))
        except ValueError:
            logger.warning(f"Unparseable billing timestamp {value!r}, using now")
            return now_utc()

    def _draft_from_held(self, raw: dict[str, Any]) -> InvoiceDraft:
        payload = raw.get("payload") or raw
        fallback = CustomerProfile(**parse_customer_summary(raw.get("customer_summary")))

        if payload.get("customer_id"):
            fallback = fallback.model_copy(update={
                "id": str(payload["customer_id"]),
                "referral_code": payload.get("referral_code") or "",
            })
            customer = self.customers.fetch_by_id(payload["customer_id"], fallback)
            if not customer.referral_code and payload.get("referral_code"):
                customer = customer.model_copy(update={"referral_code": payload["referral_code"]})
        elif payload.get("customer"):
            inline = payload["customer"]
            customer = fallback.model_copy(update={
                k: v for k, v in {
                    "name": inline.get("name") or fallback.name,
                    "gender": inline.get("gender") or "",
                    "contact_no": inline.get("contact_no") or fallback.contact_no,
                    "address": inline.get("address") or "",
                }.items() if v
            })
        else:
            customer = fallback

        default_rate = self.config.default_tax_rate_percent
        codes = payload.get("coupon_codes") or ([payload["coupon_code"]] if payload.get("coupon_code") else [])
        return InvoiceDraft(
            items=[
                item_from_snapshot(line, index, self.catalog, default_rate)
                for index, line in enumerate(payload.get("items") or [])
            ],
            customer=customer,
            coupons=self._coupons_for_codes(codes),
            extra_discount=to_decimal(payload.get("discount")),
            tax_mode=self.tax_mode,
            payments=payments_from_snapshot(payload.get("payments")),
            billing_at=self._billing_at(payload.get("billing_timestamp")),
        )

    def _draft_from_bill(self, bill: dict[str, Any]) -> InvoiceDraft:
        raw_customer = bill.get("customer") or {}
        fallback = CustomerProfile.from_api({
            **raw_customer,
            "name": raw_customer.get("name") or bill.get("customer_name"),
            "phoneNumber": (
                raw_customer.get("phoneNumber") or raw_customer.get("phone")
                or raw_customer.get("contactNo") or bill.get("customer_phone")
            ),
        })
        customer = self.customers.fetch_by_id(raw_customer.get("id"), fallback)

        default_rate = self.config.default_tax_rate_percent
        lines = bill.get("items") or bill.get("line_items") or []
        draft = InvoiceDraft(
            items=[item_from_bill(line, index, self.catalog, default_rate) for index, line in enumerate(lines)],
            customer=customer,
            coupons=self._coupons_for_codes(bill.get("coupon_codes") or []),
            tax_mode=self.tax_mode,
            payments=payments_from_snapshot(bill.get("payments")),
            billing_at=self._billing_at(
                bill.get("billing_timestamp") or bill.get("billing_date") or bill.get("created_at")
            ),
            source_bill_id=str(bill["id"]) if bill.get("id") is not None else None,
        )

        discount = bill.get("bill_discount") or bill.get("discount")
        adjustment = bill.get("adjustment") or bill.get("adjust_total")
        base = recompute(draft).base_incl_tax
        if discount:
            draft.extra_discount = reconcile(base, extra_discount=discount).extra_discount
        elif adjustment:
            draft.extra_discount = reconcile(base, adjust_total=adjustment).extra_discount
        return draft
