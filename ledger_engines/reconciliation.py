"""
Reconciliation engine -- monthly facts vs. an independently reported year.

Responsibility:
    For each metric rule on a provider's allow-list, sums the matching lines
    of the monthly statements and of the yearly statement and reports
    ``variance = monthly_total - yearly_total``.  One variance per metric:
    tax collected and input tax credits are never netted together.

    Also derives the ledger adjustments a completed run implies:
    ``delta = round(-variance, 2)``, half away from zero, for each postable
    metric whose ``|delta| >= min_delta``.

Matching:
    - money rules match non-metric lines of the rule's line type whose
      normalized description equals the rule's description (``exact``) or
      starts with it (``prefix``, tolerating vendor suffixes such as
      "Gross Uber rides fares1").
    - metric rules match metric lines by metric key.
    Descriptions are normalized by replacing NBSP with a space, trimming,
    and case-folding.

Architecture position:
    Engines -- pure, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Sequence

from ledger_engines.tracer import traced_engine

_CENTS = Decimal("0.01")
_ZERO = Decimal("0")


class RuleKind(str, Enum):
    MONEY = "money"
    METRIC = "metric"


class MatchMode(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"


@dataclass(frozen=True)
class MetricRule:
    """One allow-listed reconciliation metric."""

    metric_id: str
    kind: RuleKind
    line_type: str | None = None
    description: str | None = None
    match: MatchMode = MatchMode.EXACT
    metric_key: str | None = None
    postable: bool = False


@dataclass(frozen=True)
class StatementFact:
    """The parts of a statement line matching depends on."""

    line_type: str
    description: str
    is_metric: bool = False
    metric_key: str | None = None
    metric_value: Decimal | None = None
    money_amount: Decimal | None = None
    tax_amount: Decimal | None = None


@dataclass(frozen=True)
class MetricVariance:
    metric_key: str
    monthly_total: Decimal
    yearly_total: Decimal
    variance_amount: Decimal


@dataclass(frozen=True)
class LedgerAdjustment:
    metric_key: str
    line_type: str
    delta: Decimal


def normalize_description(text: str | None) -> str:
    return (text or "").replace("\u00a0", " ").strip().casefold()


def rule_matches(rule: MetricRule, fact: StatementFact) -> bool:
    if rule.kind == RuleKind.METRIC:
        return fact.is_metric and fact.metric_key == rule.metric_key

    if fact.is_metric or fact.line_type != rule.line_type:
        return False
    wanted = normalize_description(rule.description)
    actual = normalize_description(fact.description)
    if rule.match == MatchMode.PREFIX:
        return actual.startswith(wanted)
    return actual == wanted


def fact_value(rule: MetricRule, fact: StatementFact) -> Decimal:
    if rule.kind == RuleKind.METRIC:
        return fact.metric_value or _ZERO
    if fact.money_amount is not None:
        return fact.money_amount
    return fact.tax_amount or _ZERO


def sum_metric(rule: MetricRule, facts: Iterable[StatementFact]) -> Decimal:
    return sum((fact_value(rule, f) for f in facts if rule_matches(rule, f)), _ZERO)


@traced_engine("reconciliation_variances", "1.0")
def compute_variances(
    rules: Sequence[MetricRule],
    monthly: Sequence[StatementFact],
    yearly: Sequence[StatementFact],
) -> tuple[MetricVariance, ...]:
    """One variance row per rule, ordered by metric key."""
    variances = []
    for rule in rules:
        monthly_total = sum_metric(rule, monthly)
        yearly_total = sum_metric(rule, yearly)
        variances.append(
            MetricVariance(
                metric_key=rule.metric_id,
                monthly_total=monthly_total,
                yearly_total=yearly_total,
                variance_amount=monthly_total - yearly_total,
            )
        )
    return tuple(sorted(variances, key=lambda v: v.metric_key))


@traced_engine("reconciliation_adjustments", "1.0")
def compute_adjustments(
    rules: Sequence[MetricRule],
    variances: Iterable[MetricVariance],
    min_delta: Decimal = _CENTS,
) -> tuple[LedgerAdjustment, ...]:
    """Ledger deltas that bring posted monthly facts to the yearly figure."""
    postable = {
        r.metric_id: r.line_type
        for r in rules
        if r.postable and r.kind == RuleKind.MONEY and r.line_type
    }
    adjustments = []
    for variance in sorted(variances, key=lambda v: v.metric_key):
        line_type = postable.get(variance.metric_key)
        if line_type is None:
            continue
        delta = (-variance.variance_amount).quantize(_CENTS, rounding=ROUND_HALF_UP)
        if abs(delta) < min_delta:
            continue
        adjustments.append(LedgerAdjustment(variance.metric_key, line_type, delta))
    return tuple(adjustments)
