"""
Order pricing calculator.

Computes subtotal, statutory discount, tax, service charge, loyalty redemption
and the payable total for a cart. Every function here is pure: rates come in
as a ``PricingRates`` value and nothing is read from or written to storage.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from pos_core.config import AppConfig
from pos_core.constants import DiscountType, OrderType

ZERO = Decimal("0")


@dataclass(frozen=True)
class PricingRates:
    tax_rate: Decimal = Decimal("0.12")
    service_charge_rate: Decimal = Decimal("0.10")
    statutory_discount_rate: Decimal = Decimal("0.20")
    loyalty_point_value: Decimal = Decimal("0.10")
    pesos_per_point: Decimal = Decimal("10")
    quantum: Decimal = Decimal("1")


@dataclass(frozen=True)
class PricingLine:
    unit_price: Decimal
    quantity: int
    discount: Decimal = ZERO
    modifier_prices: tuple[Decimal, ...] = field(default_factory=tuple)

    @property
    def gross(self) -> Decimal:
        """Line value before the line discount: (price + modifiers) x quantity."""
        modifiers = sum(self.modifier_prices, ZERO)
        return (Decimal(self.unit_price) + modifiers) * self.quantity


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    discount_amount: Decimal
    tax: Decimal
    service_charge: Decimal
    tip: Decimal
    loyalty_points_redeemed: int
    loyalty_discount: Decimal
    total: Decimal
    points_earned: int

    def as_dict(self) -> dict[str, float | int]:
        return {
            "subtotal": float(self.subtotal),
            "discount_amount": float(self.discount_amount),
            "tax": float(self.tax),
            "service_charge": float(self.service_charge),
            "tip": float(self.tip),
            "loyalty_points_redeemed": self.loyalty_points_redeemed,
            "loyalty_discount": float(self.loyalty_discount),
            "total": float(self.total),
            "points_earned": self.points_earned,
        }


def rates_from_config(config: AppConfig) -> PricingRates:
    return PricingRates(
        tax_rate=config.tax_rate,
        service_charge_rate=config.service_charge_rate,
        statutory_discount_rate=config.statutory_discount_rate,
        loyalty_point_value=config.loyalty_point_value,
        pesos_per_point=config.loyalty_pesos_per_point,
        quantum=config.currency_quantum,
    )


def round_money(value: Decimal, quantum: Decimal = Decimal("1")) -> Decimal:
    """
    Round half-up to the currency quantum.

    Examples:
        round_money(Decimal("12.5")) == Decimal("13")
        round_money(Decimal("12.345"), Decimal("0.01")) == Decimal("12.35")
    """
    return Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def _floor_int(value: Decimal) -> int:
    return int(Decimal(value).to_integral_value(rounding=ROUND_FLOOR))


def calculate_subtotal(lines: Iterable[PricingLine], quantum: Decimal = Decimal("1")) -> Decimal:
    gross = ZERO
    line_discounts = ZERO
    for line in lines:
        gross += line.gross
        line_discounts += Decimal(line.discount)
    return round_money(gross - line_discounts, quantum)


def calculate_order_totals(
    lines: Sequence[PricingLine],
    *,
    order_type: OrderType,
    discount_type: DiscountType = DiscountType.NONE,
    tip: Decimal = ZERO,
    loyalty_points_requested: int = 0,
    available_points: int | None = None,
    rates: PricingRates | None = None,
) -> PricingBreakdown:
    """
    Price a cart.

    Args:
        lines: Cart lines
        order_type: DINE_IN, TAKEOUT or DELIVERY
        discount_type: NONE, PWD or SENIOR_CITIZEN
        tip: Tip added on top of the bill
        loyalty_points_requested: Points the customer wants to redeem
        available_points: Customer's current balance, None when no customer is attached
        rates: Rates to apply (defaults to the statutory ones)

    Returns:
        PricingBreakdown with every term rounded to the quantum.

    Examples:
        Dine-in, 1000 subtotal, no discount:
            tax = 120, service_charge = 100, total = 1220
        Senior citizen, 1000 subtotal:
            discount = 200, tax = 0, service_charge = 0, total = 800
    """
    rates = rates or PricingRates()
    quantum = rates.quantum
    order_type = OrderType(order_type)
    discount_type = DiscountType(discount_type)

    subtotal = calculate_subtotal(lines, quantum)

    discount_amount = ZERO
    if discount_type != DiscountType.NONE:
        discount_amount = round_money(subtotal * rates.statutory_discount_rate, quantum)
    after_discount = subtotal - discount_amount

    exempt = discount_type.is_vat_exempt
    tax = ZERO if exempt else round_money(after_discount * rates.tax_rate, quantum)

    service_charge = ZERO
    if not exempt and order_type == OrderType.DINE_IN:
        service_charge = round_money(after_discount * rates.service_charge_rate, quantum)

    tip = round_money(Decimal(tip), quantum)
    before_loyalty = after_discount + tax + service_charge + tip

    points_redeemed = 0
    loyalty_discount = ZERO
    if available_points is not None and loyalty_points_requested > 0:
        points_redeemed = min(int(loyalty_points_requested), max(0, int(available_points)))
        if rates.loyalty_point_value > 0:
            # Never burn more points than the bill can absorb.
            max_points = _floor_int(max(before_loyalty, ZERO) / rates.loyalty_point_value)
            points_redeemed = min(points_redeemed, max_points)
        loyalty_discount = round_money(points_redeemed * rates.loyalty_point_value, quantum)

    total = max(ZERO, round_money(before_loyalty - loyalty_discount, quantum))

    points_earned = 0
    if available_points is not None and rates.pesos_per_point > 0:
        earning_base = after_discount + tax + service_charge - loyalty_discount
        points_earned = max(0, _floor_int(earning_base / rates.pesos_per_point))

    return PricingBreakdown(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax=tax,
        service_charge=service_charge,
        tip=tip,
        loyalty_points_redeemed=points_redeemed,
        loyalty_discount=loyalty_discount,
        total=total,
        points_earned=points_earned,
    )
