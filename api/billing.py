"""
/billing routes: draft sessions and the invoice lifecycle.

Drafts are edited through one action endpoint, dispatched to a handler
method per action name. Every draft response carries the draft and its
freshly recomputed totals.
"""

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from api.base import success_response
from core.billing.tax import round_money
from core.models import DerivedTotals, InvoiceDraft


class DraftActionRequest(BaseModel):
    action: str
    data: dict = Field(default_factory=dict)


def totals_view(totals: DerivedTotals) -> dict[str, Any]:
    """Totals rounded for display. All values are always present."""
    view = {
        name: float(round_money(getattr(totals, name)))
        for name in DerivedTotals.model_fields
        if name != "lines"
    }
    view["lines"] = {
        item_id: {k: float(round_money(v)) for k, v in amounts.model_dump().items()}
        for item_id, amounts in totals.lines.items()
    }
    return view


def draft_view(draft: InvoiceDraft, totals: DerivedTotals) -> dict[str, Any]:
    return {"draft": draft.model_dump(mode="json"), "totals": totals_view(totals)}


def create_billing_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    actions = DraftActionHandler(invoice_svc)

    def _view(draft_id: str) -> dict[str, Any]:
        return draft_view(invoice_svc.get_draft(draft_id), invoice_svc.totals(draft_id))

    def _ok(request: Request, data: Any) -> dict:
        return success_response(
            data, request_id=getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Reference data
    # -------------------------------------------------------------------------

    @router.post("/billing/reference/refresh")
    async def refresh_reference(request: Request):
        invoice_svc.load_reference_data()
        return _ok(request, {
            "coupons": [c.model_dump(mode="json") for c in invoice_svc.coupons],
            "held": len(invoice_svc.held_invoices),
            "tax_mode": invoice_svc.tax_mode.model_dump(mode="json"),
        })

    @router.get("/billing/receipt-settings")
    async def receipt_settings(request: Request):
        return _ok(request, invoice_svc.load_receipt_settings().model_dump(mode="json"))

    # -------------------------------------------------------------------------
    # Drafts
    # -------------------------------------------------------------------------

    @router.post("/billing/drafts")
    async def create_draft(request: Request):
        draft = invoice_svc.create_draft()
        return _ok(request, _view(draft.id))

    @router.get("/billing/drafts/{draft_id}")
    async def get_draft(request: Request, draft_id: str):
        return _ok(request, _view(draft_id))

    @router.delete("/billing/drafts/{draft_id}")
    async def discard_draft(request: Request, draft_id: str):
        invoice_svc.discard_draft(draft_id)
        return _ok(request, {"discarded": True})

    @router.post("/billing/drafts/{draft_id}/actions")
    async def draft_action(request: Request, draft_id: str, body: DraftActionRequest):
        if body.action not in actions.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on drafts. "
                f"Allowed: {', '.join(sorted(actions.ALLOWED_ACTIONS))}"
            )
        method = getattr(actions, f"_handle_{body.action}")
        try:
            result = method(draft_id, dict(body.data))
        except KeyError as e:
            raise ValueError(f"Missing required field {e.args[0]!r} for action '{body.action}'")
        return _ok(request, {**_view(draft_id), "result": result})

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @router.post("/billing/drafts/{draft_id}/hold")
    async def hold(request: Request, draft_id: str):
        held = invoice_svc.hold(draft_id)
        return _ok(request, {**_view(draft_id), "held": held.model_dump(mode="json")})

    @router.post("/billing/drafts/{draft_id}/save")
    async def save(request: Request, draft_id: str):
        bill = invoice_svc.save(draft_id)
        return _ok(request, {**_view(draft_id), "bill": bill})

    @router.post("/billing/drafts/{draft_id}/reopen")
    async def reopen(request: Request, draft_id: str):
        draft = invoice_svc.reopen(draft_id)
        return _ok(request, _view(draft.id))

    @router.get("/billing/held")
    async def list_held(request: Request):
        held = invoice_svc.refresh_held_invoices()
        return _ok(request, [h.model_dump(mode="json") for h in held])

    @router.post("/billing/held/{held_id}/load")
    async def load_held(request: Request, held_id: str):
        draft = invoice_svc.load_held(held_id)
        return _ok(request, _view(draft.id))

    @router.post("/billing/bills/{bill_id}/edit")
    async def edit_bill(request: Request, bill_id: str):
        draft = invoice_svc.edit_bill(bill_id)
        return _ok(request, _view(draft.id))

    return router


# =============================================================================
# HANDLER CLASS
# =============================================================================


class DraftActionHandler:
    ALLOWED_ACTIONS = {
        "add_item", "update_item", "remove_item",
        "add_staff", "remove_staff",
        "apply_coupon", "remove_coupon",
        "set_tax_mode", "set_extra_discount", "set_adjust_total",
        "add_payment", "remove_payment", "clear_advance",
        "update_customer", "set_billing_time", "reset",
    }

    def __init__(self, service):
        self.service = service

    def _handle_add_item(self, draft_id: str, data: dict):
        item = self.service.add_item(draft_id, data.get("type", "Service"))
        return {"item_id": item.id}

    def _handle_update_item(self, draft_id: str, data: dict):
        item = self.service.update_item(draft_id, data["item_id"], data["field"], data.get("value"))
        return {"item_id": item.id}

    def _handle_remove_item(self, draft_id: str, data: dict):
        self.service.remove_item(draft_id, data["item_id"])
        return {"removed": True}

    def _handle_add_staff(self, draft_id: str, data: dict):
        self.service.add_staff(draft_id, data["item_id"], data["staff_id"])
        return None

    def _handle_remove_staff(self, draft_id: str, data: dict):
        self.service.remove_staff(draft_id, data["item_id"], data["staff_id"])
        return None

    def _handle_apply_coupon(self, draft_id: str, data: dict):
        self.service.apply_coupon(draft_id, data["coupon_id"])
        return None

    def _handle_remove_coupon(self, draft_id: str, data: dict):
        self.service.remove_coupon(draft_id, data["coupon_id"])
        return None

    def _handle_set_tax_mode(self, draft_id: str, data: dict):
        self.service.set_tax_mode(draft_id, apply_tax=data.get("apply_tax"), inclusive=data.get("inclusive"))
        return None

    def _handle_set_extra_discount(self, draft_id: str, data: dict):
        self.service.set_extra_discount(draft_id, data.get("value"))
        return None

    def _handle_set_adjust_total(self, draft_id: str, data: dict):
        self.service.set_adjust_total(draft_id, data.get("value"))
        return None

    def _handle_add_payment(self, draft_id: str, data: dict):
        payment = self.service.add_payment(
            draft_id, data.get("mode", "cash"), data.get("amount"), data.get("reference")
        )
        return {"payment_id": payment.id}

    def _handle_remove_payment(self, draft_id: str, data: dict):
        self.service.remove_payment(draft_id, data["payment_id"])
        return None

    def _handle_clear_advance(self, draft_id: str, data: dict):
        self.service.clear_advance(draft_id)
        return None

    def _handle_update_customer(self, draft_id: str, data: dict):
        self.service.update_customer(draft_id, data["field"], data.get("value"))
        return None

    def _handle_set_billing_time(self, draft_id: str, data: dict):
        self.service.set_billing_time(draft_id, data["date"], data.get("time"))
        return None

    def _handle_reset(self, draft_id: str, data: dict):
        self.service.reset(draft_id)
        return None
