# Overview: Pure pricing and tax arithmetic on integer cents with injected jurisdiction rates.

"""
Money invariants:
- All amounts are integer cents; rates are Decimal, never float.
- Each tax is rounded independently to the cent, half-up.
- total = subtotal + tax + excise - discount, and never negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from .errors import ValidationError


@dataclass(frozen=True)
class TaxRates:
    sales_tax_rate: Decimal
    excise_tax_rate: Decimal

    @classmethod
    def from_mapping(cls, data: dict) -> "TaxRates":
        return cls(
            sales_tax_rate=Decimal(str(data.get("sales_tax_rate", "0"))),
            excise_tax_rate=Decimal(str(data.get("excise_tax_rate", "0"))),
        )


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    tax_cents: int
    excise_tax_cents: int
    discount_cents: int
    total_cents: int


def round_cents(amount: Decimal) -> int:
    """Round a Decimal amount of cents to a whole cent, half-up."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_totals(subtotal_cents: int, rates: TaxRates, *, discount_cents: int = 0) -> OrderTotals:
    if subtotal_cents < 0:
        raise ValidationError("subtotal cannot be negative")
    if discount_cents < 0:
        raise ValidationError("discount cannot be negative")

    tax_cents = round_cents(Decimal(subtotal_cents) * rates.sales_tax_rate)
    excise_tax_cents = round_cents(Decimal(subtotal_cents) * rates.excise_tax_rate)
    total_cents = max(0, subtotal_cents + tax_cents + excise_tax_cents - discount_cents)

    return OrderTotals(
        subtotal_cents=subtotal_cents,
        tax_cents=tax_cents,
        excise_tax_cents=excise_tax_cents,
        discount_cents=discount_cents,
        total_cents=total_cents,
    )


def rates_for_jurisdiction(jurisdiction: str | None) -> TaxRates:
    """
    Look up the configured rate set for a jurisdiction code.

    Falls back to DEFAULT_JURISDICTION when the dispensary has none; an
    unknown code is a configuration error, not a zero-tax sale.
    """
    table = current_app.config.get("TAX_RATES") or {}
    code = jurisdiction or current_app.config.get("DEFAULT_JURISDICTION")
    if code not in table:
        raise ValidationError(
            f"No tax rates configured for jurisdiction '{code}'",
            details={"jurisdiction": code},
        )
    return TaxRates.from_mapping(table[code])
