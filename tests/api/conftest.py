"""API test fixtures: the billing app wired to a mocked backend."""

from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import build_services, create_app
from clients.backend_client import BackendClient
from core.config import BillingConfig


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def backend():
    backend = Mock(spec=BackendClient)
    backend.get_customer_by_phone.return_value = None
    backend.get_customer.return_value = None
    backend.hold_bill.return_value = {"id": "h1"}
    backend.save_bill.return_value = {"id": "b1"}
    backend.list_held_bills.return_value = [{"id": "h1", "customer_summary": "Asha (9876543210)"}]
    backend.get_receipt_settings.return_value = {"logo": True}
    return backend


@pytest.fixture
def services(backend, catalog, save10):
    services = build_services(BillingConfig(), backend)
    services["invoice"].catalog = catalog
    services["invoice"].coupons = [save10]
    return services


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app, store_id):
    """Client that selects the test store on every request."""
    return TestClient(app, raise_server_exceptions=False, headers={"X-Store-ID": store_id})


@pytest.fixture
def storeless_client(app):
    """Client that sends no X-Store-ID header."""
    return TestClient(app, raise_server_exceptions=False)
