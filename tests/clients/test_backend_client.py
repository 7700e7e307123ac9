"""
Tests for BackendClient.

HTTP is mocked with the responses library; every call runs inside the
test store's context.
"""

import json

import pytest
import requests
import responses

from clients.backend_client import BackendClient, TransportError
from core.config import BillingConfig

BASE = "http://localhost:3000/api/v1"


@pytest.fixture
def client():
    return BackendClient(BASE, auth_token="test-token")


class TestBackendClientInit:
    """Fail fast on invalid config."""

    def test_rejects_empty_base_url(self):
        with pytest.raises(ValueError, match="base_url"):
            BackendClient("")

    def test_from_config(self):
        client = BackendClient.from_config(BillingConfig(request_timeout_seconds=5))

        assert client.base_url == BASE
        assert client.timeout == 5

    def test_strips_trailing_slash(self):
        assert BackendClient(BASE + "/").base_url == BASE


class TestRequestEnvelope:

    @responses.activate
    def test_unwraps_data_and_sends_auth(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/services/store-001",
            json={"success": True, "data": {"services": [{"id": "s1", "name": "Cut"}]}},
        )

        assert client.list_services() == [{"id": "s1", "name": "Cut"}]
        assert responses.calls[0].request.headers["Authorization"] == "Bearer test-token"

    @responses.activate
    def test_error_carries_status_and_field_errors(self, client, in_store):
        responses.add(
            responses.POST, f"{BASE}/billing/store-001/bills",
            json={
                "success": False,
                "message": "Validation failed",
                "errors": [{"field": "items[0].id", "message": "Unknown item"}],
            },
            status=422,
        )

        with pytest.raises(TransportError) as exc_info:
            client.save_bill({"items": []})

        error = exc_info.value
        assert error.status == 422
        assert error.user_message == "Validation failed\nitems[0].id: Unknown item"

    @responses.activate
    def test_error_without_message(self, client, in_store):
        responses.add(responses.GET, f"{BASE}/coupons/store-001", json={}, status=500)

        with pytest.raises(TransportError, match="Something went wrong"):
            client.list_coupons()

    @responses.activate
    def test_connection_failure(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/staff/store-001",
            body=requests.exceptions.ConnectionError("refused"),
        )

        with pytest.raises(TransportError) as exc_info:
            client.list_staff()

        assert exc_info.value.status == 0
        assert "Network error" in exc_info.value.message

    @responses.activate
    def test_invalid_json(self, client, in_store):
        responses.add(responses.GET, f"{BASE}/stores/store-001", body="<html>oops</html>", status=200)

        with pytest.raises(TransportError, match="Invalid response"):
            client.get_store_profile()

    def test_requires_store_context(self, client):
        with pytest.raises(RuntimeError, match="No store context"):
            client.list_services()


class TestBills:

    @responses.activate
    def test_save_sends_idempotency_key(self, client, in_store):
        responses.add(
            responses.POST, f"{BASE}/billing/store-001/bills",
            json={"success": True, "data": {"bill": {"id": "b1"}}},
            status=201,
        )

        bill = client.save_bill({"discount": 0.0}, idempotency_key="bill-abc")

        request = responses.calls[0].request
        assert bill == {"id": "b1"}
        assert request.headers["Idempotency-Key"] == "bill-abc"
        assert json.loads(request.body) == {"discount": 0.0}

    @responses.activate
    def test_save_generates_key_when_missing(self, client, in_store):
        responses.add(
            responses.POST, f"{BASE}/billing/store-001/bills",
            json={"success": True, "data": {"bill": {"id": "b1"}}},
        )

        client.save_bill({})

        assert responses.calls[0].request.headers["Idempotency-Key"].startswith("bill-")

    @responses.activate
    def test_hold_and_list_held(self, client, in_store):
        responses.add(
            responses.POST, f"{BASE}/billing/store-001/bills/hold",
            json={"success": True, "data": {"id": "h1"}},
        )
        responses.add(
            responses.GET, f"{BASE}/billing/store-001/bills/held",
            json={"success": True, "data": {"held": [{"id": "h1"}]}},
        )

        assert client.hold_bill({"items": []}) == {"id": "h1"}
        assert client.list_held_bills() == [{"id": "h1"}]

    @responses.activate
    def test_get_held_and_bill(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/billing/store-001/bills/held/h1",
            json={"success": True, "data": {"held": {"id": "h1", "payload": {}}}},
        )
        responses.add(
            responses.GET, f"{BASE}/billing/store-001/bills/b1",
            json={"success": True, "data": {"bill": {"id": "b1"}}},
        )

        assert client.get_held_bill("h1") == {"id": "h1", "payload": {}}
        assert client.get_bill("b1") == {"id": "b1"}


class TestCustomers:

    @responses.activate
    def test_lookup_by_phone_escapes_plus(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/customers/store-001/by-phone/%2B919876543210",
            json={"success": True, "data": {"customer": {"id": 42}}},
        )

        assert client.get_customer_by_phone("+919876543210") == {"id": 42}

    @responses.activate
    def test_lookup_not_found_returns_none(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/customers/store-001/by-phone/%2B919000000000",
            json={"success": False, "message": "Customer not found"},
            status=404,
        )

        assert client.get_customer_by_phone("+919000000000") is None

    @responses.activate
    def test_lookup_server_error_raises(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/customers/store-001/by-phone/%2B919000000000",
            json={"success": False, "message": "Database unavailable"},
            status=503,
        )

        with pytest.raises(TransportError):
            client.get_customer_by_phone("+919000000000")

    @responses.activate
    def test_get_customer(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/customers/store-001/42",
            json={"success": True, "data": {"customer": {"id": 42, "name": "Asha"}}},
        )

        assert client.get_customer("42") == {"id": 42, "name": "Asha"}


class TestReferenceData:

    @responses.activate
    def test_store_profile_and_receipt_settings(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/stores/store-001",
            json={"success": True, "data": {"store": {"tax": "Including"}}},
        )
        responses.add(
            responses.GET, f"{BASE}/stores/store-001/receipt-settings",
            json={"success": True, "data": {"receipt_settings": {"logo": True}}},
        )

        assert client.get_store_profile() == {"tax": "Including"}
        assert client.get_receipt_settings() == {"logo": True}

    @responses.activate
    def test_plain_list_payload(self, client, in_store):
        responses.add(
            responses.GET, f"{BASE}/memberships/store-001",
            json={"success": True, "data": ["Gold", "Silver"]},
        )

        assert client.list_memberships() == ["Gold", "Silver"]
