"""Shared test fixtures for the billing test suite."""

from decimal import Decimal

import pytest

from core.billing.catalog import CatalogResolver
from core.models import Coupon
from utils.store_context import store_context, clear_current_store_id


# =============================================================================
# TEST STORE CONSTANTS
# =============================================================================

TEST_STORE_ID = "store-001"


# =============================================================================
# STORE CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_store_context():
    """Ensure clean store context before and after each test."""
    clear_current_store_id()
    yield
    clear_current_store_id()


@pytest.fixture
def store_id() -> str:
    return TEST_STORE_ID


@pytest.fixture
def in_store(store_id):
    """Run the test inside the test store's context."""
    with store_context(store_id):
        yield store_id


# =============================================================================
# REFERENCE DATA
# =============================================================================


@pytest.fixture
def catalog() -> CatalogResolver:
    return CatalogResolver.from_api(
        services=[
            {"id": "svc-1", "name": "Haircut", "price": 500, "tax_prcnt": 18},
            {"id": "svc-2", "name": "Facial", "price": 1000, "tax_prcnt": 18},
        ],
        products=[
            {"id": "prd-1", "name": "Shampoo", "selling_price": "350", "tax": 12},
        ],
        memberships=[
            {"id": "mem-1", "name": "Gold", "price": 5000, "tax_prcnt": 18},
        ],
    )


@pytest.fixture
def save10() -> Coupon:
    return Coupon(id="c1", code="SAVE10", type="percent", value=Decimal("10"))
