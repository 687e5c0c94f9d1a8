"""
Reconciliation engine: metric matching, variances and ledger deltas.
"""

from decimal import Decimal

from ledger_engines.reconciliation import (
    MatchMode,
    MetricRule,
    MetricVariance,
    RuleKind,
    StatementFact,
    compute_adjustments,
    compute_variances,
    normalize_description,
    rule_matches,
)

GROSS = MetricRule(
    metric_id="Income.GrossUberRidesFares",
    kind=RuleKind.MONEY,
    line_type="Income",
    description="Gross Uber rides fares",
    match=MatchMode.PREFIX,
    postable=True,
)
FEES = MetricRule(
    metric_id="Fee.UberRidesFees",
    kind=RuleKind.MONEY,
    line_type="Fee",
    description="Uber Rides Fees Total",
    postable=True,
)
TAX = MetricRule(
    metric_id="TaxCollected.GSTHST",
    kind=RuleKind.MONEY,
    line_type="TaxCollected",
    description="GST/HST you collected from Riders",
    match=MatchMode.PREFIX,
    postable=True,
)
ITC = MetricRule(
    metric_id="ITC.GSTHSTPaidToUber",
    kind=RuleKind.MONEY,
    line_type="Itc",
    description="GST/HST you paid to Uber",
    match=MatchMode.PREFIX,
    postable=True,
)
KM = MetricRule(
    metric_id="Metric.OnlineKilometers",
    kind=RuleKind.METRIC,
    metric_key="OnlineKilometers",
)
RULES = (GROSS, FEES, TAX, ITC, KM)


def money(line_type, description, amount=None, tax=None) -> StatementFact:
    return StatementFact(
        line_type=line_type,
        description=description,
        money_amount=Decimal(amount) if amount is not None else None,
        tax_amount=Decimal(tax) if tax is not None else None,
    )


def metric(key, value) -> StatementFact:
    return StatementFact(
        line_type="Metric",
        description=key,
        is_metric=True,
        metric_key=key,
        metric_value=Decimal(value),
    )


def variance_of(variances, key) -> MetricVariance:
    return next(v for v in variances if v.metric_key == key)


class TestMatching:

    def test_prefix_tolerates_vendor_suffix(self):
        assert rule_matches(GROSS, money("Income", "Gross Uber rides fares1", "10"))

    def test_exact_rejects_suffix(self):
        assert not rule_matches(FEES, money("Fee", "Uber Rides Fees Total (adj)", "1"))

    def test_description_normalization(self):
        assert normalize_description(" Gross UBER rides fares ") == "gross uber rides fares"
        assert rule_matches(GROSS, money("Income", "GROSS Uber rides fares", "1"))

    def test_line_type_must_match(self):
        assert not rule_matches(GROSS, money("Fee", "Gross Uber rides fares", "1"))

    def test_metric_lines_never_match_money_rules(self):
        fact = StatementFact(
            line_type="Income",
            description="Gross Uber rides fares",
            is_metric=True,
            metric_key="Gross",
            metric_value=Decimal("1"),
        )
        assert not rule_matches(GROSS, fact)

    def test_metric_rule_matches_by_key(self):
        assert rule_matches(KM, metric("OnlineKilometers", "120.5"))
        assert not rule_matches(KM, metric("OnlineMinutes", "60"))


class TestVariances:

    def test_monthly_short_of_yearly(self):
        monthly = [money("Income", "Gross Uber rides fares", "995.00")] * 11 + [
            money("Income", "Gross Uber rides fares1", "1005.00")
        ]
        yearly = [money("Income", "Gross Uber rides fares", "12000.00")]

        variances = compute_variances(RULES, monthly, yearly)

        gross = variance_of(variances, GROSS.metric_id)
        assert gross.monthly_total == Decimal("11950.00")
        assert gross.yearly_total == Decimal("12000.00")
        assert gross.variance_amount == Decimal("-50.00")

    def test_one_row_per_rule_ordered_by_key(self):
        variances = compute_variances(RULES, [], [])
        keys = [v.metric_key for v in variances]
        assert keys == sorted(r.metric_id for r in RULES)
        assert all(v.variance_amount == 0 for v in variances)

    def test_tax_and_itc_are_not_netted(self):
        monthly = [
            money("TaxCollected", "GST/HST you collected from Riders", tax="130"),
            money("Itc", "GST/HST you paid to Uber", tax="30"),
        ]
        yearly = [
            money("TaxCollected", "GST/HST you collected from Riders", tax="140"),
            money("Itc", "GST/HST you paid to Uber", tax="40"),
        ]
        variances = compute_variances(RULES, monthly, yearly)
        assert variance_of(variances, TAX.metric_id).variance_amount == Decimal("-10")
        assert variance_of(variances, ITC.metric_id).variance_amount == Decimal("-10")

    def test_money_amount_takes_precedence_over_tax(self):
        fact = money("TaxCollected", "GST/HST you collected from Riders", "12", "99")
        variances = compute_variances((TAX,), [fact], [])
        assert variances[0].monthly_total == Decimal("12")

    def test_metric_values(self):
        variances = compute_variances(
            (KM,), [metric("OnlineKilometers", "100"), metric("OnlineKilometers", "50")],
            [metric("OnlineKilometers", "160")],
        )
        assert variances[0].variance_amount == Decimal("-10")


class TestAdjustments:

    def _variance(self, rule, value):
        return MetricVariance(rule.metric_id, Decimal("0"), Decimal("0"), Decimal(value))

    def test_delta_is_negated_variance(self):
        adjustments = compute_adjustments(RULES, [self._variance(GROSS, "-50")])
        assert len(adjustments) == 1
        assert adjustments[0].line_type == "Income"
        assert adjustments[0].delta == Decimal("50.00")

    def test_below_min_delta_is_skipped(self):
        assert compute_adjustments(RULES, [self._variance(GROSS, "-0.004")]) == ()

    def test_midpoint_rounds_away_from_zero(self):
        adjustments = compute_adjustments(RULES, [self._variance(FEES, "-0.125")])
        assert adjustments[0].delta == Decimal("0.13")

    def test_negative_midpoint_rounds_away_from_zero(self):
        adjustments = compute_adjustments(RULES, [self._variance(GROSS, "0.025")])
        assert adjustments[0].delta == Decimal("-0.03")

    def test_smallest_midpoint_reaches_min_delta(self):
        adjustments = compute_adjustments(RULES, [self._variance(GROSS, "-0.005")])
        assert adjustments[0].delta == Decimal("0.01")

    def test_metric_and_unpostable_rules_are_skipped(self):
        unpostable = MetricRule(
            metric_id="Income.UberRidesGross",
            kind=RuleKind.MONEY,
            line_type="Income",
            description="Uber Rides Total (Gross)",
        )
        adjustments = compute_adjustments(
            RULES + (unpostable,),
            [self._variance(KM, "-10"), self._variance(unpostable, "-10")],
        )
        assert adjustments == ()

    def test_custom_min_delta(self):
        adjustments = compute_adjustments(
            RULES, [self._variance(TAX, "-0.50")], min_delta=Decimal("1.00")
        )
        assert adjustments == ()
