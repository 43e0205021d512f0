"""
Tests for order line pricing and tax.
"""

from decimal import Decimal

import pytest

from dineai.core.exceptions import ItemNotFound, ItemUnavailable
from dineai.services.menu.base import MenuEntry
from dineai.services.orders.pricing import (
    PricedLine,
    RequestedLine,
    TaxSettings,
    compute_tax,
    price_lines,
    to_money,
    totals,
)


def entry(name, price, **kwargs):
    return MenuEntry(
        id=f"id-{name.lower().replace(' ', '-')}",
        restaurant_id="R1",
        name=name,
        price=Decimal(price),
        **kwargs,
    )


MENU = [
    entry("Paneer Tikka", "200.00"),
    entry("Butter Chicken", "320.00", variants=[{"name": "Half", "price": 180.0}]),
    entry("Paneer Butter Masala", "280.00"),
    entry("Mango Lassi", "90.00", is_available=False),
    entry("Old Special", "150.00", is_deleted=True),
]


class TestToMoney:

    def test_rounds_half_up(self):
        assert to_money("2.345") == Decimal("2.35")
        assert to_money(Decimal("2.344")) == Decimal("2.34")

    def test_none_is_zero(self):
        assert to_money(None) == Decimal("0.00")


class TestComputeTax:

    def test_disabled_tax_is_zero(self):
        assert compute_tax(Decimal("400"), TaxSettings.disabled()) == (Decimal("0.00"), [])

    def test_components_are_rounded_separately(self):
        settings = TaxSettings.from_dict({
            "enabled": True,
            "taxes": [
                {"name": "CGST", "rate": 2.5, "enabled": True},
                {"name": "SGST", "rate": 2.5, "enabled": True},
                {"name": "Service", "rate": 10, "enabled": False},
            ],
        })

        amount, breakdown = compute_tax(Decimal("333.33"), settings)

        # 8.333325 -> 8.33 per component
        assert amount == Decimal("16.66")
        assert breakdown == [
            {"name": "CGST", "rate": 2.5, "amount": 8.33},
            {"name": "SGST", "rate": 2.5, "amount": 8.33},
        ]

    def test_default_rate_applies_without_components(self):
        settings = TaxSettings.from_dict({"enabled": True, "defaultTaxRate": 5})

        amount, breakdown = compute_tax(Decimal("400"), settings)

        assert amount == Decimal("20.00")
        assert breakdown == [{"name": "Tax", "rate": 5.0, "amount": 20.0}]

    def test_missing_settings_mean_no_tax(self):
        assert TaxSettings.from_dict(None).enabled is False


class TestPriceLines:

    def test_names_match_ignoring_case(self):
        lines = price_lines([RequestedLine("paneer tikka", 2)], MENU)

        assert lines[0].name == "Paneer Tikka"
        assert lines[0].unit_price == Decimal("200.00")
        assert lines[0].line_total == Decimal("400.00")

    def test_variant_price_wins(self):
        lines = price_lines([RequestedLine("Butter Chicken", 1, variant="half")], MENU)

        assert lines[0].unit_price == Decimal("180.00")
        assert lines[0].variant == {"name": "half", "price": 180.0}

    def test_unknown_variant_falls_back_to_base_price(self):
        lines = price_lines([RequestedLine("Butter Chicken", 1, variant="Family")], MENU)

        assert lines[0].unit_price == Decimal("320.00")
        assert lines[0].variant is None

    def test_unknown_item_suggests_similar_names(self):
        with pytest.raises(ItemNotFound) as exc:
            price_lines([RequestedLine("Paneer Tika")], MENU)

        assert exc.value.details["suggestions"] == ["Paneer Tikka", "Paneer Butter Masala"]
        assert "Did you mean" in exc.value.message

    def test_unavailable_item_is_refused(self):
        with pytest.raises(ItemUnavailable):
            price_lines([RequestedLine("Mango Lassi")], MENU)

    def test_deleted_item_is_not_found(self):
        with pytest.raises(ItemNotFound):
            price_lines([RequestedLine("Old Special")], MENU)

    def test_added_lines_are_flagged_new(self):
        lines = price_lines([RequestedLine("Paneer Tikka")], MENU, added_at="2024-05-01T12:00:00+00:00")

        assert lines[0].is_new is True
        assert lines[0].added_at == "2024-05-01T12:00:00+00:00"


class TestTotals:

    def test_final_amount_is_subtotal_plus_tax(self):
        lines = price_lines(
            [RequestedLine("Paneer Tikka", 2), RequestedLine("Butter Chicken", 1, variant="Half")],
            MENU,
        )
        settings = TaxSettings.from_dict({"enabled": True, "default_tax_rate": 5})

        result = totals(lines, settings)

        assert result.subtotal == Decimal("580.00")
        assert result.tax_amount == Decimal("29.00")
        assert result.final_amount == Decimal("609.00")

    def test_stored_line_round_trips(self):
        line = price_lines([RequestedLine("Paneer Tikka", 3, notes="less spicy")], MENU)[0]

        restored = PricedLine.from_dict(line.to_dict())

        assert restored.line_total == Decimal("600.00")
        assert restored.notes == "less spicy"
