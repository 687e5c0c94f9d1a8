"""
Period totals -- grouped metrics and authority over a set of ledger lines.

Metrics (all quantized to 0.01):

    RevenueTotal       sum(amount)  over Income lines
    ExpensesTotal      sum(amount)  over Fee and Expense lines
    ItcTotal           sum(gst_hst) over Itc lines
    TaxCollectedTotal  sum(gst_hst) over TaxCollected lines
    NetTax             TaxCollectedTotal - ItcTotal

Each metric also gets evidence/estimated percentages over the lines that
contributed to it; the period authority is computed over all lines.  Output
ordering is by metric key, so identical inputs give identical output.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from ledger_engines.authority import AuthorityResult, compute_authority
from ledger_engines.tracer import traced_engine
from ledger_kernel.models.ledger import LedgerLineType

_CENTS = Decimal("0.01")

REVENUE_TOTAL = "RevenueTotal"
EXPENSES_TOTAL = "ExpensesTotal"
ITC_TOTAL = "ItcTotal"
TAX_COLLECTED_TOTAL = "TaxCollectedTotal"
NET_TAX = "NetTax"


@dataclass(frozen=True)
class LineFact:
    """The parts of a ledger line the totals depend on."""

    line_type: str
    amount: Decimal
    gst_hst: Decimal
    is_evidenced: bool


@dataclass(frozen=True)
class MetricValue:
    metric_key: str
    value: Decimal
    evidence_pct: Decimal
    estimated_pct: Decimal


@dataclass(frozen=True)
class PeriodTotals:
    metrics: tuple[MetricValue, ...]
    authority: AuthorityResult
    line_count: int

    def value_of(self, metric_key: str) -> Decimal:
        for metric in self.metrics:
            if metric.metric_key == metric_key:
                return metric.value
        raise KeyError(metric_key)

    def totals(self) -> dict[str, str]:
        """The structured ``totals`` document stored on the snapshot."""
        return {
            "revenue": format(self.value_of(REVENUE_TOTAL), "f"),
            "expenses": format(self.value_of(EXPENSES_TOTAL), "f"),
            "itc": format(self.value_of(ITC_TOTAL), "f"),
            "taxCollected": format(self.value_of(TAX_COLLECTED_TOTAL), "f"),
            "netTax": format(self.value_of(NET_TAX), "f"),
        }


def _cents(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _metric(key: str, value: Decimal, contributing: list[LineFact]) -> MetricValue:
    evidenced = sum(1 for f in contributing if f.is_evidenced)
    authority = compute_authority(total=len(contributing), evidenced=evidenced)
    return MetricValue(key, _cents(value), authority.evidence_pct, authority.estimated_pct)


@traced_engine("snapshot_totals", "1.0")
def compute_period_totals(lines: Iterable[LineFact]) -> PeriodTotals:
    facts = list(lines)

    def of(*types: LedgerLineType) -> list[LineFact]:
        wanted = {t.value for t in types}
        return [f for f in facts if getattr(f.line_type, "value", f.line_type) in wanted]

    income = of(LedgerLineType.INCOME)
    expenses = of(LedgerLineType.FEE, LedgerLineType.EXPENSE)
    itc = of(LedgerLineType.ITC)
    tax_collected = of(LedgerLineType.TAX_COLLECTED)

    itc_total = sum((f.gst_hst for f in itc), Decimal("0"))
    tax_total = sum((f.gst_hst for f in tax_collected), Decimal("0"))

    metrics = [
        _metric(REVENUE_TOTAL, sum((f.amount for f in income), Decimal("0")), income),
        _metric(EXPENSES_TOTAL, sum((f.amount for f in expenses), Decimal("0")), expenses),
        _metric(ITC_TOTAL, itc_total, itc),
        _metric(TAX_COLLECTED_TOTAL, tax_total, tax_collected),
        _metric(NET_TAX, tax_total - itc_total, tax_collected + itc),
    ]
    metrics.sort(key=lambda m: m.metric_key)

    authority = compute_authority(
        total=len(facts),
        evidenced=sum(1 for f in facts if f.is_evidenced),
    )
    return PeriodTotals(tuple(metrics), authority, len(facts))
