# Overview: Pure order pricing: subtotal, discount, tax and total in integer cents.

"""
Pricing & discount calculator.

No database access and no side effects: callers pass plain line tuples and
get a frozen Totals back, so the same function prices a new cart, re-prices
an order after items are added, and backs the unit tests directly.

ROUNDING: Intermediate values are exact Decimals. Each figure is rounded to
whole cents (half-up) exactly once: the discount first, then the tax on the
discounted amount. The total is the sum of those rounded figures, so

    total_cents == subtotal_cents - discount_cents + tax_cents

always holds exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable


DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)

BPS_DENOMINATOR = Decimal(10000)


@dataclass(frozen=True)
class DiscountSpec:
    """
    type: "percentage" (value in basis points, 1000 = 10%) or
    "fixed" (value in cents).
    """
    type: str
    value: int


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _exact_discount(subtotal: Decimal, discount: DiscountSpec | None) -> Decimal:
    if discount is None or not discount.value:
        return Decimal(0)

    if discount.type == DISCOUNT_PERCENTAGE:
        raw = subtotal * Decimal(discount.value) / BPS_DENOMINATOR
    else:
        raw = Decimal(discount.value)

    # Clamp to [0, subtotal]
    if raw < 0:
        return Decimal(0)
    if raw > subtotal:
        return subtotal
    return raw


def calculate_totals(
    lines: Iterable[tuple[int, int]],
    discount: DiscountSpec | None = None,
    tax_rate_bps: int = 0,
) -> Totals:
    """
    Price a set of (unit_price_cents, quantity) lines.

    - subtotal = sum(unit_price * quantity)
    - discount clamped to [0, subtotal]; a 150% discount zeroes the order
    - tax = (subtotal - discount) * rate; negative rates are treated as 0
    - total = subtotal - discount + tax, never negative
    """
    subtotal_cents = sum(int(unit_price) * int(quantity) for unit_price, quantity in lines)
    subtotal = Decimal(subtotal_cents)

    discount_cents = min(_round_cents(_exact_discount(subtotal, discount)), subtotal_cents)
    taxable_cents = subtotal_cents - discount_cents

    rate = Decimal(max(int(tax_rate_bps or 0), 0)) / BPS_DENOMINATOR
    tax_cents = _round_cents(Decimal(taxable_cents) * rate)

    total_cents = taxable_cents + tax_cents

    return Totals(
        subtotal_cents=subtotal_cents,
        discount_cents=discount_cents,
        tax_cents=tax_cents,
        total_cents=total_cents,
    )
