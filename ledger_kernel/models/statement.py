"""
Module: ledger_kernel.models.statement
Responsibility: ORM persistence for parsed platform income statements and
    their lines (money lines and non-monetary metric lines).
Architecture position: Kernel > Models.  May import from db/base.py only.

Statement parsing itself happens upstream; these rows are its output.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, UUIDString


class StatementPeriodType(str, Enum):
    MONTHLY = "Monthly"
    YEARLY = "Yearly"


class StatementStatus(str, Enum):
    UPLOADED = "Uploaded"
    PARSED = "Parsed"
    POSTED = "Posted"
    FAILED = "Failed"


class FieldEvidence(str, Enum):
    """Whether a statement field was read from the document or inferred."""

    EXTRACTED = "Extracted"
    INFERRED = "Inferred"


class Statement(Base):
    """One provider statement covering a month or a year."""

    __tablename__ = "statements"

    __table_args__ = (
        Index(
            "idx_statement_period", "tenant_id", "provider", "period_type", "period_key"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    provider: Mapped[str] = mapped_column(String(50), nullable=False)

    period_type: Mapped[StatementPeriodType] = mapped_column(String(10), nullable=False)

    # YYYY-MM for Monthly, YYYY for Yearly
    period_key: Mapped[str] = mapped_column(String(7), nullable=False)

    period_start: Mapped[date] = mapped_column(nullable=False)

    period_end: Mapped[date] = mapped_column(nullable=False)

    status: Mapped[StatementStatus] = mapped_column(
        String(20),
        default=StatementStatus.UPLOADED,
        nullable=False,
    )

    file_object_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    lines: Mapped[list["StatementLine"]] = relationship(
        back_populates="statement",
        lazy="selectin",
    )


class StatementLine(Base):
    """A money line or a metric line of a statement."""

    __tablename__ = "statement_lines"

    __table_args__ = (Index("idx_statement_line_statement", "statement_id"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    statement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("statements.id"),
        nullable=False,
    )

    line_date: Mapped[date | None] = mapped_column(nullable=True)

    # Ledger line type vocabulary (Income, Fee, TaxCollected, Itc, ...)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    currency_code: Mapped[str | None] = mapped_column(String(3), nullable=True)

    currency_evidence: Mapped[FieldEvidence] = mapped_column(
        String(10), default=FieldEvidence.EXTRACTED, nullable=False
    )

    classification_evidence: Mapped[FieldEvidence] = mapped_column(
        String(10), default=FieldEvidence.EXTRACTED, nullable=False
    )

    is_metric: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    metric_key: Mapped[str | None] = mapped_column(String(100), nullable=True)

    metric_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    money_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    tax_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    statement: Mapped[Statement] = relationship(back_populates="lines")
