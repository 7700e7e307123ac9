"""Tests for the /api/billing routes."""

import pytest

from clients.backend_client import TransportError


def _create(client) -> str:
    response = client.post("/api/billing/drafts")
    assert response.status_code == 200
    return response.json()["data"]["draft"]["id"]


def _act(client, draft_id, action, **data):
    return client.post(f"/api/billing/drafts/{draft_id}/actions", json={"action": action, "data": data})


def _add_named_item(client, draft_id, name="Haircut") -> str:
    item_id = _act(client, draft_id, "add_item").json()["data"]["result"]["item_id"]
    _act(client, draft_id, "update_item", item_id=item_id, field="name", value=name)
    return item_id


@pytest.fixture
def billable_draft(client):
    draft_id = _create(client)
    _add_named_item(client, draft_id)
    _act(client, draft_id, "update_customer", field="name", value="Asha")
    _act(client, draft_id, "update_customer", field="phone", value="9876543210")
    return draft_id


# =============================================================================
# DRAFTS
# =============================================================================


class TestDrafts:

    def test_create_returns_draft_and_totals(self, client):
        response = client.post("/api/billing/drafts")

        body = response.json()
        assert body["success"] is True
        assert body["data"]["draft"]["state"] == "draft"
        assert body["data"]["totals"]["calculated_total"] == 0.0
        assert body["data"]["totals"]["lines"] == {}

    def test_get_unknown_draft_is_404(self, client):
        response = client.get("/api/billing/drafts/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_discard(self, client):
        draft_id = _create(client)

        assert client.delete(f"/api/billing/drafts/{draft_id}").status_code == 200
        assert client.get(f"/api/billing/drafts/{draft_id}").status_code == 404

    def test_request_id_is_echoed(self, client):
        response = client.post("/api/billing/drafts", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.json()["meta"]["request_id"] == "req-123"


# =============================================================================
# ACTIONS
# =============================================================================


class TestActions:

    def test_item_edits_recompute_totals(self, client):
        draft_id = _create(client)
        item_id = _add_named_item(client, draft_id)

        response = _act(client, draft_id, "update_item", item_id=item_id, field="qty", value=2)

        data = response.json()["data"]
        assert data["totals"]["sub_total"] == 1000.0
        assert data["totals"]["total_gst"] == 180.0
        assert data["totals"]["calculated_total"] == 1180.0
        assert data["totals"]["lines"][item_id]["total"] == 1180.0

    def test_coupon_then_extra_discount(self, client):
        draft_id = _create(client)
        _add_named_item(client, draft_id, "Facial")

        _act(client, draft_id, "apply_coupon", coupon_id="c1")
        response = _act(client, draft_id, "set_adjust_total", value=1000)

        totals = response.json()["data"]["totals"]
        assert totals["coupon_discount"] == 100.0
        assert totals["base_incl_tax"] == 1080.0
        assert totals["extra_discount"] == 80.0
        assert totals["adjust_total"] == 1000.0

    def test_payment_returns_id(self, client):
        draft_id = _create(client)
        _add_named_item(client, draft_id)

        response = _act(client, draft_id, "add_payment", mode="UPI", amount=200, reference="utr-1")

        data = response.json()["data"]
        assert data["result"]["payment_id"].startswith("pay-")
        assert data["totals"]["total_paid"] == 200.0
        assert data["totals"]["dues"] == 390.0

    def test_unknown_action_is_400(self, client):
        draft_id = _create(client)

        response = _act(client, draft_id, "delete_everything")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_missing_field_is_400(self, client):
        draft_id = _create(client)

        response = _act(client, draft_id, "remove_item")

        assert response.status_code == 400
        assert "item_id" in response.json()["error"]["message"]

    def test_malformed_body_is_422(self, client):
        draft_id = _create(client)

        response = client.post(f"/api/billing/drafts/{draft_id}/actions", json={"data": {}})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:

    def test_hold_keeps_draft_open(self, client, billable_draft, backend):
        response = client.post(f"/api/billing/drafts/{billable_draft}/hold")

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["held"]["id"] == "h1"
        assert data["draft"]["state"] == "draft"
        backend.list_held_bills.assert_called()

    def test_hold_empty_draft_is_422(self, client, backend):
        draft_id = _create(client)

        response = client.post(f"/api/billing/drafts/{draft_id}/hold")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        backend.hold_bill.assert_not_called()

    def test_unresolved_items_are_listed(self, client):
        draft_id = _create(client)
        _add_named_item(client, draft_id, "Beard Trim")
        _act(client, draft_id, "update_customer", field="name", value="Asha")
        _act(client, draft_id, "update_customer", field="phone", value="9876543210")

        response = client.post(f"/api/billing/drafts/{draft_id}/save")

        error = response.json()["error"]
        assert response.status_code == 422
        assert error["code"] == "UNRESOLVED_ITEMS"
        assert error["details"]["unresolved"] == ["Service: Beard Trim"]

    def test_save_finalizes_then_edits_conflict(self, client, billable_draft):
        response = client.post(f"/api/billing/drafts/{billable_draft}/save")

        assert response.status_code == 200
        assert response.json()["data"]["bill"] == {"id": "b1"}
        assert response.json()["data"]["draft"]["state"] == "finalized"

        conflict = _act(client, billable_draft, "add_item")
        assert conflict.status_code == 409
        assert conflict.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"

    def test_backend_rejection_is_502_with_field_error(self, client, billable_draft, backend):
        backend.save_bill.side_effect = TransportError(
            "Validation failed", status=400,
            field_errors=[{"field": "customer.contact_no", "message": "Invalid phone"}],
        )

        response = client.post(f"/api/billing/drafts/{billable_draft}/save")

        error = response.json()["error"]
        assert response.status_code == 502
        assert error["code"] == "BACKEND_ERROR"
        assert error["message"] == "Validation failed\ncustomer.contact_no: Invalid phone"

    def test_network_failure_is_503(self, client, billable_draft, backend):
        backend.save_bill.side_effect = TransportError("Network error. Please check your internet connection.")

        response = client.post(f"/api/billing/drafts/{billable_draft}/save")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"

    def test_reopen_after_save(self, client, billable_draft):
        client.post(f"/api/billing/drafts/{billable_draft}/save")

        response = client.post(f"/api/billing/drafts/{billable_draft}/reopen")

        assert response.status_code == 200
        assert response.json()["data"]["draft"]["state"] == "draft"
        assert response.json()["data"]["draft"]["source_bill_id"] == "b1"

    def test_list_and_load_held(self, client, backend):
        backend.get_held_bill.return_value = {
            "id": "h1",
            "customer_summary": "Asha (9876543210)",
            "payload": {"items": [{"type": "service", "id": "svc-1", "qty": 1, "price": 500}]},
        }

        listed = client.get("/api/billing/held").json()["data"]
        loaded = client.post("/api/billing/held/h1/load").json()["data"]

        assert [h["id"] for h in listed] == ["h1"]
        assert loaded["draft"]["source_held_id"] == "h1"
        assert loaded["draft"]["items"][0]["name"] == "Haircut"
        assert loaded["totals"]["calculated_total"] == 590.0

    def test_edit_bill(self, client, backend):
        backend.get_bill.return_value = {
            "id": "b7",
            "customer": {"id": 42, "name": "Asha"},
            "items": [{"type": "service", "name": "Facial", "qty": 1, "price": 1000, "tax": 18}],
        }

        response = client.post("/api/billing/bills/b7/edit")

        draft = response.json()["data"]["draft"]
        assert draft["source_bill_id"] == "b7"
        assert draft["items"][0]["catalog_id"] == "svc-2"


# =============================================================================
# REFERENCE DATA
# =============================================================================


class TestReferenceData:

    def test_receipt_settings(self, client):
        response = client.get("/api/billing/receipt-settings")

        assert response.json()["data"]["show_logo"] is True

    def test_refresh(self, client, backend):
        backend.list_services.return_value = []
        backend.list_products.return_value = []
        backend.list_memberships.return_value = []
        backend.list_coupons.return_value = [{"id": 3, "couponCode": "FLAT50", "discount": {"type": "flat", "value": 50}}]
        backend.list_staff.return_value = []
        backend.get_store_profile.return_value = {"tax": "Excluding"}

        response = client.post("/api/billing/reference/refresh")

        data = response.json()["data"]
        assert [c["code"] for c in data["coupons"]] == ["FLAT50"]
        assert data["tax_mode"] == {"apply_tax": True, "inclusive": False}
        assert data["held"] == 1
