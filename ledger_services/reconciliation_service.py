"""
ledger_services.reconciliation_service -- Monthly vs. yearly statement reconciliation.

Responsibility:
    For one (tenant, provider, year): loads the single Yearly statement and
    every Posted Monthly statement of that provider and year, sums each
    allow-listed metric on both sides with the pure reconciliation engine,
    and upserts a ReconciliationRun with one ReconciliationVariance row per
    metric.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes StatementSelector (kernel), AuditorService (kernel) and
    ledger_engines.reconciliation.

Invariants enforced:
    - Exactly one Yearly statement per (tenant, provider, year).
    - Variances are recorded per metric and never netted against each
      other (tax collected and ITC stand alone).
    - Rerunning a period replaces the previous variance rows; it never
      appends duplicates.

Failure modes:
    - InvalidPeriodKeyError: ``year`` is not ``YYYY``.
    - InvalidConfigurationError: no metric allow-list for ``provider``.
    - YearlyStatementNotFoundError: no Yearly statement.
    - AmbiguousYearlyStatementError: more than one Yearly statement.

Audit relevance:
    One ``reconciliation.completed`` event per run with the header totals.
    A mismatch is a business outcome recorded as variance rows, not an
    error.
"""

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig, ReconciliationProvider
from ledger_engines.reconciliation import StatementFact, compute_variances
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.periods import YEARLY, resolve_period
from ledger_kernel.exceptions import (
    AmbiguousYearlyStatementError,
    InvalidConfigurationError,
    YearlyStatementNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.reconciliation import (
    ReconciliationRun,
    ReconciliationStatus,
    ReconciliationVariance,
)
from ledger_kernel.selectors.statement_selector import StatementSelector, StatementView
from ledger_kernel.services.auditor_service import AuditorService

logger = get_logger("services.reconciliation")

_ZERO = Decimal("0")


def statement_facts(statements: Iterable[StatementView]) -> list[StatementFact]:
    return [
        StatementFact(
            line_type=line.line_type,
            description=line.description,
            is_metric=line.is_metric,
            metric_key=line.metric_key,
            metric_value=line.metric_value,
            money_amount=line.money_amount,
            tax_amount=line.tax_amount,
        )
        for statement in statements
        for line in statement.lines
    ]


class ReconciliationService:
    """
    Reconciles monthly statements against the yearly statement.

    Contract:
        ``reconcile`` returns the upserted, flushed run.  The caller commits
        and publishes ``reconciliation.completed.v1``.

    Non-goals:
        - Does NOT post ledger adjustments; ReconciliationPostingHandler
          does that on ``reconciliation.completed.v1``.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfig,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._statements = StatementSelector(session)

    def provider_rules(self, provider: str) -> ReconciliationProvider:
        rules = self._config.reconciliation.provider(provider)
        if rules is None:
            raise InvalidConfigurationError(
                [f"no reconciliation metrics configured for provider {provider!r}"]
            )
        return rules

    def reconcile(
        self,
        tenant_id: UUID,
        provider: str,
        year: str,
        correlation_id: str | None = None,
    ) -> ReconciliationRun:
        resolve_period(YEARLY, year)
        rules = self.provider_rules(provider)

        yearlies = self._statements.yearly(tenant_id, provider, year)
        if not yearlies:
            raise YearlyStatementNotFoundError(provider, year)
        if len(yearlies) > 1:
            raise AmbiguousYearlyStatementError(provider, year, len(yearlies))
        yearly = yearlies[0]
        monthlies = self._statements.posted_monthlies(tenant_id, provider, year)

        variances = compute_variances(
            rules.metrics,
            statement_facts(monthlies),
            statement_facts([yearly]),
        )
        anchor = next((v for v in variances if v.metric_key == rules.anchor_metric), None)

        run = self._find(tenant_id, provider, year)
        if run is None:
            run = ReconciliationRun(
                tenant_id=tenant_id,
                provider=provider,
                period_type=YEARLY,
                period_key=year,
            )
            self._session.add(run)

        run.yearly_statement_id = yearly.statement_id
        run.monthly_statement_count = len(monthlies)
        run.monthly_income_total = anchor.monthly_total if anchor else _ZERO
        run.yearly_income_total = anchor.yearly_total if anchor else _ZERO
        run.variance_amount = anchor.variance_amount if anchor else _ZERO
        run.status = ReconciliationStatus.COMPLETED.value
        run.completed_at = self._clock.now()

        # delete-orphan cascade removes the previous run's rows
        run.variances.clear()
        self._session.flush()
        run.variances.extend(
            ReconciliationVariance(
                tenant_id=tenant_id,
                metric_key=v.metric_key,
                monthly_total=v.monthly_total,
                yearly_total=v.yearly_total,
                variance_amount=v.variance_amount,
            )
            for v in variances
        )
        self._session.flush()

        self._auditor.record(
            tenant_id=tenant_id,
            action=AuditAction.RECONCILIATION_COMPLETED,
            entity_type="ReconciliationRun",
            entity_id=run.id,
            correlation_id=correlation_id,
            metadata={
                "provider": provider,
                "periodKey": year,
                "monthlyStatementCount": len(monthlies),
                "monthlyIncomeTotal": format(run.monthly_income_total, "f"),
                "yearlyIncomeTotal": format(run.yearly_income_total, "f"),
                "varianceAmount": format(run.variance_amount, "f"),
            },
        )
        logger.info(
            "reconciliation_completed",
            extra={
                "provider": provider,
                "period_key": year,
                "run_id": str(run.id),
                "monthly_statement_count": len(monthlies),
                "variance_count": len(variances),
            },
        )
        return run

    def _find(self, tenant_id: UUID, provider: str, year: str) -> ReconciliationRun | None:
        return self._session.execute(
            select(ReconciliationRun).where(
                ReconciliationRun.tenant_id == tenant_id,
                ReconciliationRun.provider == provider,
                ReconciliationRun.period_type == YEARLY,
                ReconciliationRun.period_key == year,
            )
        ).scalar_one_or_none()
