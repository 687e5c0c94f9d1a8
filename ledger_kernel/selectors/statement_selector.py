"""Read-side queries over parsed statements."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.models.statement import (
    FieldEvidence,
    Statement,
    StatementLine,
    StatementPeriodType,
    StatementStatus,
)
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StatementLineView:
    line_id: UUID
    line_date: date | None
    line_type: str
    description: str
    is_metric: bool
    metric_key: str | None
    metric_value: Decimal | None
    money_amount: Decimal | None
    tax_amount: Decimal | None
    currency_code: str | None
    is_extracted: bool


@dataclass(frozen=True)
class StatementView:
    statement_id: UUID
    provider: str
    period_type: str
    period_key: str
    period_start: date
    period_end: date
    status: str
    file_object_id: UUID | None
    lines: tuple[StatementLineView, ...]


class StatementSelector(BaseSelector):
    """Read-only queries over statements and their lines."""

    def get(self, tenant_id: UUID, statement_id: UUID) -> StatementView | None:
        statement = self.session.execute(
            select(Statement).where(
                Statement.tenant_id == tenant_id,
                Statement.id == statement_id,
            )
        ).scalar_one_or_none()
        return None if statement is None else self._to_view(statement)

    def yearly(self, tenant_id: UUID, provider: str, year_key: str) -> list[StatementView]:
        """All yearly statements for a provider and year, oldest first."""
        statements = self.session.execute(
            select(Statement)
            .where(
                Statement.tenant_id == tenant_id,
                Statement.provider == provider,
                Statement.period_type == StatementPeriodType.YEARLY.value,
                Statement.period_key == year_key,
            )
            .order_by(Statement.created_at)
        ).scalars().all()
        return [self._to_view(s) for s in statements]

    def posted_monthlies(
        self, tenant_id: UUID, provider: str, year_key: str
    ) -> list[StatementView]:
        statements = self.session.execute(
            select(Statement)
            .where(
                Statement.tenant_id == tenant_id,
                Statement.provider == provider,
                Statement.period_type == StatementPeriodType.MONTHLY.value,
                Statement.period_key.like(f"{year_key}-%"),
                Statement.status == StatementStatus.POSTED.value,
            )
            .order_by(Statement.period_key)
        ).scalars().all()
        return [self._to_view(s) for s in statements]

    @staticmethod
    def _to_view(statement: Statement) -> StatementView:
        return StatementView(
            statement_id=statement.id,
            provider=statement.provider,
            period_type=statement.period_type,
            period_key=statement.period_key,
            period_start=statement.period_start,
            period_end=statement.period_end,
            status=statement.status,
            file_object_id=statement.file_object_id,
            lines=tuple(StatementSelector._line_view(line) for line in statement.lines),
        )

    @staticmethod
    def _line_view(line: StatementLine) -> StatementLineView:
        extracted = (
            line.currency_evidence == FieldEvidence.EXTRACTED.value
            and line.classification_evidence == FieldEvidence.EXTRACTED.value
        )
        return StatementLineView(
            line_id=line.id,
            line_date=line.line_date,
            line_type=line.line_type,
            description=line.description,
            is_metric=line.is_metric,
            metric_key=line.metric_key,
            metric_value=line.metric_value,
            money_amount=line.money_amount,
            tax_amount=line.tax_amount,
            currency_code=line.currency_code,
            is_extracted=extracted,
        )
