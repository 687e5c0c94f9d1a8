"""
Module: ledger_kernel.models.reconciliation
Responsibility: ORM persistence for monthly-vs-yearly reconciliation runs and
    their per-metric variances.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE (tenant_id, provider, period_type, period_key): one run per
      provider year, upserted on rerun.
    - Variances are owned by the run and replaced wholesale on rerun.  Each
      metric is its own row; tax collected and input tax credits are never
      netted into one variance.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, UUIDString


class ReconciliationStatus(str, Enum):
    COMPLETED = "Completed"


class ReconciliationRun(Base):
    """Header row for one provider-year reconciliation."""

    __tablename__ = "reconciliation_runs"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "provider",
            "period_type",
            "period_key",
            name="uq_reconciliation_run_period",
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    provider: Mapped[str] = mapped_column(String(50), nullable=False)

    period_type: Mapped[str] = mapped_column(String(10), nullable=False)

    period_key: Mapped[str] = mapped_column(String(7), nullable=False)

    yearly_statement_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    monthly_statement_count: Mapped[int] = mapped_column(Integer, nullable=False)

    # Header totals come from the configured anchor metric
    monthly_income_total: Mapped[Decimal] = mapped_column(nullable=False)

    yearly_income_total: Mapped[Decimal] = mapped_column(nullable=False)

    variance_amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[ReconciliationStatus] = mapped_column(String(20), nullable=False)

    completed_at: Mapped[datetime] = mapped_column(nullable=False)

    variances: Mapped[list["ReconciliationVariance"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReconciliationVariance.metric_key",
    )


class ReconciliationVariance(Base):
    """Signed difference for one metric: monthly_total - yearly_total."""

    __tablename__ = "reconciliation_variances"

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("reconciliation_runs.id"),
        nullable=False,
    )

    metric_key: Mapped[str] = mapped_column(String(100), nullable=False)

    monthly_total: Mapped[Decimal] = mapped_column(nullable=False)

    yearly_total: Mapped[Decimal] = mapped_column(nullable=False)

    variance_amount: Mapped[Decimal] = mapped_column(nullable=False)

    run: Mapped[ReconciliationRun] = relationship(back_populates="variances")
