"""
test_valuation_engine.py — Unit tests for BOQ valuation and the markup chain.

Tests cover:
  - Rate resolution priority, including an explicit manual price of 0
  - Per-group contract / previous / current / cumulative amounts
  - Category totals in display order
  - Estimation markup chain (contingency -> VAT -> grand total)
  - Payment markup chain (VAT only, contingency reported as 0)
  - Rate suggestion parsing
"""

import pytest

from app.models.boq_schema import AppMode, PaymentOverride
from app.services.grouping_engine import GroupKey, group_items
from app.services.valuation_engine import (
    AmountSet,
    ValuationEngine,
    apply_markups,
    parse_rate_suggestion,
    resolve_rate,
)


def approx(a, b, tol=1e-6):
    return abs(a - b) < tol


# ===========================================================================
# Class 1: Rate resolution
# ===========================================================================

class TestResolveRate:

    def _group(self, make_item, **kwargs):
        return group_items([make_item(**kwargs)])[0]

    def test_manual_price_wins(self, make_item):
        g = self._group(make_item, estimated_rate=100.0, contract_rate=200.0)
        assert resolve_rate(g, {"Excavation - Trenching": 350.0}) == 350.0

    def test_manual_zero_is_honoured(self, make_item):
        """A manual 0 is a price, not 'unset'."""
        g = self._group(make_item, estimated_rate=100.0, contract_rate=200.0)
        assert resolve_rate(g, {"Excavation - Trenching": 0.0}) == 0.0

    def test_contract_rate_before_estimate(self, make_item):
        g = self._group(make_item, estimated_rate=100.0, contract_rate=200.0)
        assert resolve_rate(g, {}) == 200.0

    def test_contract_rate_zero_is_honoured(self, make_item):
        g = self._group(make_item, estimated_rate=100.0, contract_rate=0.0)
        assert resolve_rate(g, {}) == 0.0

    def test_estimate_then_zero(self, make_item):
        assert resolve_rate(self._group(make_item, estimated_rate=75.0), {}) == 75.0
        assert resolve_rate(self._group(make_item), {}) == 0.0

    def test_price_for_other_bill_ignored(self, make_item):
        g = self._group(make_item, estimated_rate=75.0)
        assert resolve_rate(g, {"Something Else": 1.0}) == 75.0


# ===========================================================================
# Class 2: Estimation valuation
# ===========================================================================

class TestEstimationValuation:

    def test_group_amounts(self, estimation_items):
        """
        Trenching 12 × 100  = 1 200
        Columns    4 × 5000 = 20 000
        Tiles     60 × 800  = 48 000
        """
        result = ValuationEngine().value(group_items(estimation_items))
        assert [gv.amounts.contract for gv in result.groups] == [1200.0, 20000.0, 48000.0]
        assert approx(result.totals.contract, 69200.0)

    def test_category_totals_in_display_order(self, estimation_items):
        result = ValuationEngine().value(group_items(estimation_items))
        assert result.categories == ["Sub Structure", "Super Structure", "Finishing Works"]
        assert result.category_totals["Super Structure"].contract == 20000.0

    def test_markup_chain(self, estimation_items):
        """
        69 200 × 10% = 6 920 contingency
        taxable       = 76 120
        VAT 15%       = 11 418
        grand total   = 87 538
        """
        m = ValuationEngine().value(group_items(estimation_items)).markups
        assert approx(m.contingency.contract, 6920.0)
        assert approx(m.taxable.contract, 76120.0)
        assert approx(m.vat.contract, 11418.0)
        assert approx(m.grand_total.contract, 87538.0)
        assert m.contingency_pct == 10.0

    def test_manual_price_changes_totals(self, estimation_items):
        result = ValuationEngine().value(group_items(estimation_items), {"Concrete - Columns": 0.0})
        assert approx(result.totals.contract, 49200.0)
        assert any("Concrete - Columns" in w for w in result.warnings)

    def test_custom_percentages(self, estimation_items):
        m = ValuationEngine(contingency_pct=0, vat_pct=0).value(group_items(estimation_items)).markups
        assert approx(m.grand_total.contract, 69200.0)

    def test_empty_project(self):
        result = ValuationEngine().value([])
        assert result.totals == AmountSet()
        assert result.markups.grand_total == AmountSet()


# ===========================================================================
# Class 3: Payment valuation
# ===========================================================================

class TestPaymentValuation:

    def _groups(self, payment_items):
        key = GroupKey("Excavation - Trenching", "m3", "Sub Structure")
        return group_items(payment_items, AppMode.PAYMENT, {key: PaymentOverride(contract=100.0, previous=40.0)})

    def test_four_columns(self, payment_items):
        """
        Excavation @200: contract 100 -> 20 000, previous 40 -> 8 000,
                         current 30 -> 6 000, cumulative 14 000
        Blockwork  @300: contract = executed 50 -> 15 000, current 15 000
        """
        result = ValuationEngine().value(self._groups(payment_items), mode=AppMode.PAYMENT)
        exc, blk = result.groups
        assert exc.amounts == AmountSet(20000.0, 8000.0, 6000.0, 14000.0)
        assert blk.amounts == AmountSet(15000.0, 0.0, 15000.0, 15000.0)
        assert result.totals == AmountSet(35000.0, 8000.0, 21000.0, 29000.0)

    def test_no_contingency_in_payment(self, payment_items):
        """VAT on the sub-total: 35 000 × 15% = 5 250; grand 40 250."""
        m = ValuationEngine().value(self._groups(payment_items), mode="PAYMENT").markups
        assert m.contingency == AmountSet()
        assert m.contingency_pct == 0.0
        assert approx(m.vat.contract, 5250.0)
        assert approx(m.grand_total.contract, 40250.0)
        assert approx(m.grand_total.cumulative, 29000.0 * 1.15)

    def test_cumulative_is_previous_plus_current(self, payment_items):
        result = ValuationEngine().value(self._groups(payment_items), mode=AppMode.PAYMENT)
        for gv in result.groups:
            assert gv.amounts.cumulative == gv.amounts.previous + gv.amounts.current


# ===========================================================================
# Class 4: Markup chain in isolation
# ===========================================================================

class TestApplyMarkups:

    def test_estimation_example(self):
        """100 000 -> +10 000 contingency -> 110 000 -> +16 500 VAT -> 126 500."""
        m = apply_markups(AmountSet(contract=100000.0), AppMode.ESTIMATION, 10, 15)
        assert approx(m.taxable.contract, 110000.0)
        assert approx(m.vat.contract, 16500.0)
        assert approx(m.grand_total.contract, 126500.0)

    def test_payment_example(self):
        """100 000 -> VAT 15 000 -> 115 000; contingency ignored."""
        m = apply_markups(AmountSet(contract=100000.0), AppMode.PAYMENT, 10, 15)
        assert m.contingency.contract == 0.0
        assert approx(m.grand_total.contract, 115000.0)

    def test_negative_totals_propagate(self):
        m = apply_markups(AmountSet(contract=-1000.0), AppMode.PAYMENT, 0, 15)
        assert approx(m.grand_total.contract, -1150.0)


# ===========================================================================
# Class 5: Rate suggestion parsing
# ===========================================================================

class TestRateSuggestion:

    @pytest.mark.parametrize("text,expected", [
        ("1,200 - 1,500 ETB", 1200.0),
        ("ETB 850 per m2", 850.0),
        ("2500", 2500.0),
    ])
    def test_first_number_of_range(self, text, expected):
        assert parse_rate_suggestion(text) == expected

    def test_no_digits(self):
        assert parse_rate_suggestion("ask supplier") is None
        assert parse_rate_suggestion("") is None

    def test_lone_comma_is_not_a_number(self):
        assert parse_rate_suggestion(", then 40") is None
