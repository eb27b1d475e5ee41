# Overview: Pytest coverage for pricing and tax arithmetic.

from decimal import Decimal

import pytest

from cannaorders.services.errors import ValidationError
from cannaorders.services.pricing_service import (
    TaxRates,
    compute_totals,
    rates_for_jurisdiction,
    round_cents,
)

NY = TaxRates(sales_tax_rate=Decimal("0.08875"), excise_tax_rate=Decimal("0.09"))


class TestComputeTotals:

    def test_new_york_scenario(self):
        """2 x $10.00 -> tax 1.78, excise 1.80, total 23.58."""
        totals = compute_totals(2000, NY)
        assert totals.subtotal_cents == 2000
        assert totals.tax_cents == 178
        assert totals.excise_tax_cents == 180
        assert totals.discount_cents == 0
        assert totals.total_cents == 2358

    def test_total_is_sum_of_parts(self):
        for subtotal in (1, 99, 1234, 5999, 100001):
            totals = compute_totals(subtotal, NY)
            assert totals.total_cents == totals.subtotal_cents + totals.tax_cents + totals.excise_tax_cents

    def test_half_cent_rounds_up(self):
        """1000 * 0.08875 = 88.75 cents -> 89; 10 * 0.05 = 0.5 -> 1."""
        assert compute_totals(1000, NY).tax_cents == 89
        rates = TaxRates(Decimal("0.05"), Decimal("0"))
        assert compute_totals(10, rates).tax_cents == 1

    def test_no_float_drift(self):
        """0.1 + 0.2 style drift must not leak into cents."""
        rates = TaxRates(Decimal("0.1"), Decimal("0.2"))
        totals = compute_totals(30, rates)
        assert (totals.tax_cents, totals.excise_tax_cents, totals.total_cents) == (3, 6, 39)

    def test_zero_subtotal(self):
        totals = compute_totals(0, NY)
        assert (totals.subtotal_cents, totals.tax_cents, totals.excise_tax_cents, totals.total_cents) == (0, 0, 0, 0)

    def test_discount_reduces_total(self):
        totals = compute_totals(2000, NY, discount_cents=358)
        assert totals.total_cents == 2000

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValidationError):
            compute_totals(-1, NY)
        with pytest.raises(ValidationError):
            compute_totals(100, NY, discount_cents=-5)

    def test_round_cents(self):
        assert round_cents(Decimal("177.5")) == 178
        assert round_cents(Decimal("177.49")) == 177


class TestRatesForJurisdiction:

    def test_configured_jurisdiction(self, app):
        rates = rates_for_jurisdiction("CT")
        assert rates == TaxRates(Decimal("0.0635"), Decimal("0.03"))

    def test_missing_jurisdiction_uses_default(self, app):
        assert rates_for_jurisdiction(None) == NY

    def test_unknown_jurisdiction_is_an_error(self, app):
        with pytest.raises(ValidationError) as exc:
            rates_for_jurisdiction("ZZ")
        assert exc.value.details == {"jurisdiction": "ZZ"}
