"""
Authority score and period totals.
"""

from decimal import Decimal

import pytest

from ledger_engines.authority import compute_authority
from ledger_engines.snapshot_totals import (
    EXPENSES_TOTAL,
    ITC_TOTAL,
    NET_TAX,
    REVENUE_TOTAL,
    TAX_COLLECTED_TOTAL,
    LineFact,
    compute_period_totals,
)


def fact(line_type, amount="0", gst="0", evidenced=True) -> LineFact:
    return LineFact(line_type, Decimal(amount), Decimal(gst), evidenced)


class TestAuthority:

    def test_all_evidenced(self):
        result = compute_authority(total=4, evidenced=4)
        assert result.score == 100
        assert result.evidence_pct == Decimal("1.0000")
        assert result.estimated_pct == Decimal("0.0000")

    def test_empty_period(self):
        result = compute_authority(total=0, evidenced=0)
        assert result.score == 0
        assert result.evidence_pct == Decimal("0")
        assert result.estimated_pct == Decimal("1")

    def test_rounds_half_away_from_zero(self):
        # 1/8 = 12.5% -> 13
        assert compute_authority(total=8, evidenced=1).score == 13

    def test_two_thirds(self):
        result = compute_authority(total=3, evidenced=2)
        assert result.score == 67
        assert result.evidence_pct == Decimal("0.6667")
        assert result.estimated_pct == Decimal("0.3333")

    def test_percentages_sum_to_one(self):
        result = compute_authority(total=7, evidenced=3)
        assert result.evidence_pct + result.estimated_pct == Decimal("1")


class TestPeriodTotals:

    def test_receipt_lines(self):
        totals = compute_period_totals(
            [fact("Expense", "100.00"), fact("Itc", "0", "13.00")]
        )
        assert totals.value_of(EXPENSES_TOTAL) == Decimal("100.00")
        assert totals.value_of(ITC_TOTAL) == Decimal("13.00")
        assert totals.value_of(NET_TAX) == Decimal("-13.00")
        assert totals.authority.score == 100
        assert totals.line_count == 2

    def test_fees_count_as_expenses(self):
        totals = compute_period_totals([fact("Fee", "25"), fact("Expense", "10")])
        assert totals.value_of(EXPENSES_TOTAL) == Decimal("35.00")

    def test_net_tax(self):
        totals = compute_period_totals(
            [
                fact("Income", "1000"),
                fact("TaxCollected", "0", "130"),
                fact("Itc", "0", "30"),
            ]
        )
        assert totals.value_of(REVENUE_TOTAL) == Decimal("1000.00")
        assert totals.value_of(TAX_COLLECTED_TOTAL) == Decimal("130.00")
        assert totals.value_of(NET_TAX) == Decimal("100.00")

    def test_other_lines_only_affect_authority(self):
        totals = compute_period_totals([fact("Other", "50", evidenced=False)])
        assert all(m.value == Decimal("0.00") for m in totals.metrics)
        assert totals.authority.score == 0

    def test_reversal_nets_to_zero(self):
        totals = compute_period_totals(
            [fact("Expense", "100"), fact("Expense", "-100")]
        )
        assert totals.value_of(EXPENSES_TOTAL) == Decimal("0.00")

    def test_metric_evidence_uses_contributing_lines(self):
        totals = compute_period_totals(
            [fact("Income", "10", evidenced=False), fact("Expense", "5")]
        )
        revenue = next(m for m in totals.metrics if m.metric_key == REVENUE_TOTAL)
        expenses = next(m for m in totals.metrics if m.metric_key == EXPENSES_TOTAL)
        assert revenue.estimated_pct == Decimal("1.0000")
        assert expenses.evidence_pct == Decimal("1.0000")
        assert totals.authority.score == 50

    def test_metrics_are_ordered_by_key(self):
        totals = compute_period_totals([])
        keys = [m.metric_key for m in totals.metrics]
        assert keys == sorted(keys)

    def test_totals_document(self):
        totals = compute_period_totals(
            [fact("Expense", "100"), fact("Itc", "0", "13")]
        )
        assert totals.totals() == {
            "revenue": "0.00",
            "expenses": "100.00",
            "itc": "13.00",
            "taxCollected": "0.00",
            "netTax": "-13.00",
        }

    def test_identical_input_gives_identical_output(self):
        lines = [fact("Income", "10.005"), fact("Itc", "0", "1.115", evidenced=False)]
        assert compute_period_totals(lines) == compute_period_totals(list(lines))

    def test_unknown_metric(self):
        with pytest.raises(KeyError):
            compute_period_totals([]).value_of("Mileage")
