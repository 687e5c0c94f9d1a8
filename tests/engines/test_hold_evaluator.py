"""
Hold evaluator rule order.

The first failing rule decides the reason, so a receipt failing several
rules always reports the same one.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.hold import (
    INVALID_TOTAL,
    LOW_CONFIDENCE,
    MISSING_FIELDS,
    TAX_EXCEEDS_TOTAL,
    evaluate_hold,
)
from ledger_kernel.domain.documents import NormalizedReceipt

HIGH = Decimal("0.95")


def receipt(**overrides) -> NormalizedReceipt:
    fields = dict(
        date=date(2025, 12, 10),
        vendor="Petro-Canada",
        total=Decimal("113.00"),
        tax=Decimal("13.00"),
        currency="CAD",
    )
    fields.update(overrides)
    return NormalizedReceipt(**fields)


class TestHoldRules:

    def test_pass(self):
        decision = evaluate_hold(receipt(), HIGH)
        assert not decision.is_hold
        assert decision.reason is None
        assert decision.questions == {}

    def test_low_confidence(self):
        decision = evaluate_hold(receipt(), Decimal("0.69"))
        assert decision.is_hold
        assert decision.reason == LOW_CONFIDENCE
        assert decision.questions == {"fields": ["date", "vendor", "total", "tax"]}

    def test_threshold_is_inclusive(self):
        assert not evaluate_hold(receipt(), Decimal("0.70")).is_hold

    def test_custom_threshold(self):
        assert evaluate_hold(receipt(), HIGH, threshold=Decimal("0.99")).is_hold

    @pytest.mark.parametrize("total", [None, Decimal("0"), Decimal("-5")])
    def test_invalid_total(self, total):
        decision = evaluate_hold(receipt(total=total), HIGH)
        assert decision.reason == INVALID_TOTAL
        assert decision.questions == {"fields": ["total"]}

    def test_missing_date(self):
        assert evaluate_hold(receipt(date=None), HIGH).reason == MISSING_FIELDS

    def test_blank_vendor(self):
        assert evaluate_hold(receipt(vendor="  "), HIGH).reason == MISSING_FIELDS

    def test_tax_exceeds_total(self):
        decision = evaluate_hold(receipt(tax=Decimal("200")), HIGH)
        assert decision.reason == TAX_EXCEEDS_TOTAL

    def test_missing_tax_passes(self):
        assert not evaluate_hold(receipt(tax=None), HIGH).is_hold


class TestRuleOrder:

    def test_low_confidence_wins_over_everything(self):
        bad = receipt(total=None, date=None, vendor=None)
        assert evaluate_hold(bad, Decimal("0.10")).reason == LOW_CONFIDENCE

    def test_invalid_total_wins_over_missing_fields(self):
        bad = receipt(total=Decimal("0"), date=None)
        assert evaluate_hold(bad, HIGH).reason == INVALID_TOTAL

    def test_missing_fields_wins_over_tax(self):
        bad = receipt(vendor=None, tax=Decimal("500"))
        assert evaluate_hold(bad, HIGH).reason == MISSING_FIELDS
