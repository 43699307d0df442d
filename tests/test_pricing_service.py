"""
Pricing calculator tests.

The calculator is pure, so these run without the database fixtures doing any
real work.
"""

from decimal import Decimal

import pytest

from pos_core.constants import DiscountType, OrderType
from pos_core.services.pricing_service import (
    PricingLine,
    PricingRates,
    calculate_order_totals,
    calculate_subtotal,
    round_money,
)

D = Decimal


def lines_worth(amount):
    return [PricingLine(unit_price=D(amount), quantity=1)]


class TestRounding:
    def test_half_up_to_whole_peso(self):
        assert round_money(D("12.5")) == D("13")
        assert round_money(D("12.49")) == D("12")

    def test_half_up_to_centavo(self):
        assert round_money(D("12.345"), D("0.01")) == D("12.35")


class TestSubtotal:
    def test_modifiers_and_line_discount(self):
        """(100 + 10 + 5) x 2 - 30 = 200"""
        line = PricingLine(
            unit_price=D("100"), quantity=2, discount=D("30"), modifier_prices=(D("10"), D("5"))
        )
        assert calculate_subtotal([line]) == D("200")

    def test_empty_cart(self):
        assert calculate_subtotal([]) == D("0")


class TestOrderTotals:
    def test_dine_in_adds_tax_and_service_charge(self):
        result = calculate_order_totals(lines_worth("1000"), order_type=OrderType.DINE_IN)

        assert result.subtotal == D("1000")
        assert result.discount_amount == D("0")
        assert result.tax == D("120")
        assert result.service_charge == D("100")
        assert result.total == D("1220")

    @pytest.mark.parametrize("order_type", [OrderType.TAKEOUT, OrderType.DELIVERY])
    def test_no_service_charge_outside_dine_in(self, order_type):
        result = calculate_order_totals(lines_worth("1000"), order_type=order_type)

        assert result.service_charge == D("0")
        assert result.total == D("1120")

    @pytest.mark.parametrize("discount_type", [DiscountType.SENIOR_CITIZEN, DiscountType.PWD])
    def test_statutory_discount_is_vat_and_service_exempt(self, discount_type):
        result = calculate_order_totals(
            lines_worth("1000"), order_type=OrderType.DINE_IN, discount_type=discount_type
        )

        assert result.discount_amount == D("200")
        assert result.tax == D("0")
        assert result.service_charge == D("0")
        assert result.total == D("800")

    def test_tip_is_added_on_top(self):
        result = calculate_order_totals(
            lines_worth("1000"), order_type=OrderType.DINE_IN, tip=D("50")
        )

        assert result.tip == D("50")
        assert result.total == D("1270")

    def test_each_term_is_rounded(self):
        """13 subtotal: tax 1.56 rounds to 2."""
        result = calculate_order_totals(lines_worth("12.5"), order_type=OrderType.TAKEOUT)

        assert result.subtotal == D("13")
        assert result.tax == D("2")
        assert result.total == D("15")

    def test_same_inputs_same_outputs(self):
        kwargs = dict(
            order_type=OrderType.DINE_IN,
            discount_type=DiscountType.NONE,
            tip=D("15"),
            loyalty_points_requested=30,
            available_points=100,
        )
        assert calculate_order_totals(lines_worth("640"), **kwargs) == calculate_order_totals(
            lines_worth("640"), **kwargs
        )

    def test_custom_rates_and_centavo_quantum(self):
        rates = PricingRates(
            tax_rate=D("0.05"), service_charge_rate=D("0"), quantum=D("0.01")
        )
        result = calculate_order_totals(
            lines_worth("99.99"), order_type=OrderType.DINE_IN, rates=rates
        )

        assert result.tax == D("5.00")
        assert result.service_charge == D("0.00")
        assert result.total == D("104.99")


class TestLoyalty:
    def test_redemption_limited_by_balance(self):
        result = calculate_order_totals(
            lines_worth("1000"),
            order_type=OrderType.DINE_IN,
            loyalty_points_requested=100,
            available_points=50,
        )

        assert result.loyalty_points_redeemed == 50
        assert result.loyalty_discount == D("5")
        assert result.total == D("1215")

    def test_no_customer_no_redemption_no_earning(self):
        result = calculate_order_totals(
            lines_worth("1000"), order_type=OrderType.DINE_IN, loyalty_points_requested=100
        )

        assert result.loyalty_points_redeemed == 0
        assert result.loyalty_discount == D("0")
        assert result.points_earned == 0

    def test_redemption_capped_at_bill(self):
        """An 11 peso bill absorbs at most 110 points; the total bottoms out at zero."""
        result = calculate_order_totals(
            lines_worth("10"),
            order_type=OrderType.TAKEOUT,
            loyalty_points_requested=500,
            available_points=500,
        )

        assert result.loyalty_points_redeemed == 110
        assert result.loyalty_discount == D("11")
        assert result.total == D("0")

    def test_points_earned_per_ten_pesos(self):
        """(1000 + 120 + 100 - 5) / 10 = 121.5 -> 121 points; the tip earns nothing."""
        result = calculate_order_totals(
            lines_worth("1000"),
            order_type=OrderType.DINE_IN,
            tip=D("100"),
            loyalty_points_requested=50,
            available_points=50,
        )

        assert result.points_earned == 121

    def test_points_earned_without_redemption(self):
        result = calculate_order_totals(
            lines_worth("1000"), order_type=OrderType.DINE_IN, available_points=0
        )

        assert result.points_earned == 122


class TestBreakdownSerialization:
    def test_as_dict_uses_floats(self):
        data = calculate_order_totals(lines_worth("1000"), order_type=OrderType.DINE_IN).as_dict()

        assert data["total"] == 1220.0
        assert data["loyalty_points_redeemed"] == 0
        assert set(data) == {
            "subtotal",
            "discount_amount",
            "tax",
            "service_charge",
            "tip",
            "loyalty_points_redeemed",
            "loyalty_discount",
            "total",
            "points_earned",
        }
