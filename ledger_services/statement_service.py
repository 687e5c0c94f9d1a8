"""
ledger_services.statement_service -- Persistence of parsed statements.

CSV/PDF parsing happens upstream.  This service stores its output: one
Statement header and its money and metric lines, in status Parsed, ready
for ``statement.parsed.v1``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.periods import MONTHLY, YEARLY, resolve_period
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.statement import (
    FieldEvidence,
    Statement,
    StatementLine,
    StatementPeriodType,
    StatementStatus,
)

logger = get_logger("services.statement")


@dataclass(frozen=True)
class StatementLineInput:
    """One parsed statement line.  Metric lines set ``metric_key``."""

    line_type: str
    description: str
    money_amount: Decimal | None = None
    tax_amount: Decimal | None = None
    line_date: date | None = None
    currency_code: str | None = "CAD"
    currency_evidence: FieldEvidence = FieldEvidence.EXTRACTED
    classification_evidence: FieldEvidence = FieldEvidence.EXTRACTED
    metric_key: str | None = None
    metric_value: Decimal | None = None
    unit: str | None = None

    @property
    def is_metric(self) -> bool:
        return self.metric_key is not None


class StatementService:

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record_parsed(
        self,
        tenant_id: UUID,
        provider: str,
        period_type: StatementPeriodType,
        period_key: str,
        lines: Sequence[StatementLineInput],
        file_object_id: UUID | None = None,
    ) -> Statement:
        """
        Store a parsed statement.

        ``period_end`` is the last day of the period (inclusive), which is
        the date its ledger entry carries.

        Raises:
            InvalidPeriodKeyError: ``period_key`` does not match the type.
        """
        period_type = StatementPeriodType(period_type)
        period = resolve_period(
            MONTHLY if period_type == StatementPeriodType.MONTHLY else YEARLY,
            period_key,
        )
        statement = Statement(
            tenant_id=tenant_id,
            provider=provider,
            period_type=period_type.value,
            period_key=period_key,
            period_start=period.start,
            period_end=period.last_day,
            status=StatementStatus.PARSED.value,
            file_object_id=file_object_id,
            created_at=self._clock.now(),
        )
        statement.lines = [
            StatementLine(
                tenant_id=tenant_id,
                line_date=line.line_date,
                line_type=line.line_type,
                description=line.description,
                currency_code=line.currency_code,
                currency_evidence=FieldEvidence(line.currency_evidence).value,
                classification_evidence=FieldEvidence(line.classification_evidence).value,
                is_metric=line.is_metric,
                metric_key=line.metric_key,
                metric_value=line.metric_value,
                unit=line.unit,
                money_amount=line.money_amount,
                tax_amount=line.tax_amount,
            )
            for line in lines
        ]
        self._session.add(statement)
        self._session.flush()
        logger.info(
            "statement_recorded",
            extra={
                "statement_id": str(statement.id),
                "provider": provider,
                "period_key": period_key,
                "line_count": len(lines),
            },
        )
        return statement
