"""Tests for per-line amounts."""

from decimal import Decimal

import pytest

from core.billing.line_items import compute_line_amounts, display_unit_price, price_from_entry
from core.models import LineItem, TaxMode

EXCLUSIVE = TaxMode(apply_tax=True, inclusive=False)
INCLUSIVE = TaxMode(apply_tax=True, inclusive=True)
NO_TAX = TaxMode(apply_tax=False, inclusive=False)


def _item(**overrides) -> LineItem:
    fields = dict(
        name="Haircut", qty=2, unit_price=Decimal("500"),
        discount_value=Decimal("10"), discount_type="percent",
        tax_rate_percent=Decimal("18"),
    )
    fields.update(overrides)
    return LineItem(**fields)


class TestScenarios:

    def test_exclusive_item(self):
        amounts = compute_line_amounts(_item(), EXCLUSIVE)

        assert amounts.base_price == Decimal("1000")
        assert amounts.discount_amount == Decimal("100")
        assert amounts.tax_amount == Decimal("180")
        assert amounts.base_incl == Decimal("1180")
        assert amounts.total == Decimal("1080")

    def test_inclusive_item(self):
        amounts = compute_line_amounts(_item(unit_price=Decimal("590")), INCLUSIVE)

        assert amounts.base_price == Decimal("1180")
        assert amounts.base_excl == Decimal("1000")
        assert amounts.tax_amount == Decimal("180")
        assert amounts.discount_amount == Decimal("118")
        assert amounts.total == Decimal("1242")


class TestTaxOrdering:

    @pytest.mark.parametrize("mode", [EXCLUSIVE, INCLUSIVE, NO_TAX])
    @pytest.mark.parametrize("discount,discount_type", [
        ("0", "percent"), ("10", "percent"), ("100", "percent"),
        ("250", "flat"), ("5000", "flat"),
    ])
    def test_total_is_base_plus_tax_minus_discount(self, mode, discount, discount_type):
        amounts = compute_line_amounts(
            _item(discount_value=Decimal(discount), discount_type=discount_type), mode
        )
        expected = max(Decimal("0"), amounts.base_price + amounts.tax_amount - amounts.discount_amount)
        assert amounts.total == expected

    @pytest.mark.parametrize("mode", [EXCLUSIVE, INCLUSIVE])
    def test_discount_never_changes_tax(self, mode):
        undiscounted = compute_line_amounts(_item(discount_value=Decimal("0")), mode)
        discounted = compute_line_amounts(
            _item(discount_value=Decimal("300"), discount_type="flat"), mode
        )
        assert discounted.tax_amount == undiscounted.tax_amount


class TestEdgeCases:

    def test_no_tax_mode_skips_tax(self):
        amounts = compute_line_amounts(_item(), NO_TAX)
        assert amounts.tax_amount == Decimal("0")
        assert amounts.total == Decimal("900")

    def test_zero_rate_skips_tax(self):
        amounts = compute_line_amounts(_item(tax_rate_percent=Decimal("0")), EXCLUSIVE)
        assert amounts.tax_amount == Decimal("0")

    @pytest.mark.parametrize("qty", [0, -3])
    def test_non_positive_quantity_gives_zero_amounts(self, qty):
        amounts = compute_line_amounts(_item(qty=qty), EXCLUSIVE)
        assert amounts.base_price == Decimal("0")
        assert amounts.tax_amount == Decimal("0")
        assert amounts.total == Decimal("0")

    def test_negative_price_is_treated_as_zero(self):
        amounts = compute_line_amounts(_item(unit_price=Decimal("-50")), EXCLUSIVE)
        assert amounts.base_price == Decimal("0")

    def test_flat_discount_above_base_floors_total_at_zero(self):
        amounts = compute_line_amounts(
            _item(discount_value=Decimal("5000"), discount_type="flat"), NO_TAX
        )
        assert amounts.discount_amount == Decimal("5000")
        assert amounts.total == Decimal("0")


class TestDisplayPrice:

    def test_inclusive_new_item_shows_exclusive_price(self):
        assert display_unit_price(_item(unit_price=Decimal("590")), INCLUSIVE) == Decimal("500.00")

    def test_exclusive_shows_stored_price(self):
        assert display_unit_price(_item(), EXCLUSIVE) == Decimal("500")

    def test_loaded_snapshot_always_shows_stored_price(self):
        item = _item(unit_price=Decimal("590"), is_loaded_snapshot=True)
        assert display_unit_price(item, INCLUSIVE) == Decimal("590")

    def test_entry_in_inclusive_mode_grosses_up(self):
        assert price_from_entry(_item(), "500", INCLUSIVE) == Decimal("590")

    def test_entry_on_snapshot_is_stored_as_typed(self):
        item = _item(is_loaded_snapshot=True)
        assert price_from_entry(item, "500", INCLUSIVE) == Decimal("500")
