"""
Module: ledger_kernel.models.ledger
Responsibility: ORM persistence for ledger entries, their lines, and the
    provenance links from lines back to source documents.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE (tenant_id, source_type, source_id): exactly one entry per source
      document.  This is the posting idempotency boundary.
    - Append-only: no entry, line or source link is ever updated or deleted
      (guard in db/immutability.py).  Corrections are new Adjustment entries
      that reference the original through reverses_entry_id.
    - Every line records the evidence class of the fact it carries.

Audit relevance:
    LedgerSourceLink is provenance, not ownership: it points at the receipt,
    statement line and file object the line was derived from.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, UUIDString


class LedgerSourceType(str, Enum):
    """Kind of source document an entry was posted from."""

    RECEIPT = "Receipt"
    MANUAL = "Manual"
    ADJUSTMENT = "Adjustment"
    RECONCILIATION = "Reconciliation"
    STATEMENT = "Statement"


class PostedByType(str, Enum):
    DRIVER = "Driver"
    ADMIN = "Admin"
    SYSTEM = "System"


class LedgerLineType(str, Enum):
    """Line type.  Sign conventions are per type, not debit/credit."""

    INCOME = "Income"
    FEE = "Fee"
    EXPENSE = "Expense"
    TAX_COLLECTED = "TaxCollected"
    ITC = "Itc"
    OTHER = "Other"


class LineEvidence(str, Enum):
    """How well a line's fact is backed by a source document.

    EXTRACTED and MANUAL count as evidenced for the authority score;
    ESTIMATED does not.
    """

    EXTRACTED = "Extracted"
    MANUAL = "Manual"
    ESTIMATED = "Estimated"

    @property
    def is_evidenced(self) -> bool:
        return self is not LineEvidence.ESTIMATED


class LedgerEntry(Base):
    """
    One immutable posting for one source document.

    Contract:
        Created once by LedgerWriter and never modified.  Reversal entries
        set reverses_entry_id; the original is left untouched.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "source_type", "source_id", name="uq_ledger_entry_source"
        ),
        Index("idx_ledger_entry_date", "tenant_id", "entry_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entry_date: Mapped[date] = mapped_column(nullable=False)

    source_type: Mapped[LedgerSourceType] = mapped_column(String(30), nullable=False)

    # Receipt id, statement id, run id, or an idempotency-key-derived string
    source_id: Mapped[str] = mapped_column(String(200), nullable=False)

    posted_by_type: Mapped[PostedByType] = mapped_column(String(20), nullable=False)

    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Logical reversal reference; never a physical delete
    reverses_entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    lines: Mapped[list["LedgerLine"]] = relationship(
        back_populates="entry",
        lazy="selectin",
        order_by="LedgerLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.source_type}:{self.source_id} {self.entry_date}>"


class LedgerLine(Base):
    """A single monetary component of an entry."""

    __tablename__ = "ledger_lines"

    __table_args__ = (Index("idx_ledger_line_entry", "ledger_entry_id"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    ledger_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    category_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    line_type: Mapped[LedgerLineType] = mapped_column(String(20), nullable=False)

    # Signed per line-type convention
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    gst_hst: Mapped[Decimal] = mapped_column(nullable=False)

    deductible_pct: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)

    evidence: Mapped[LineEvidence] = mapped_column(String(20), nullable=False)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry: Mapped[LedgerEntry] = relationship(back_populates="lines")

    source_links: Mapped[list["LedgerSourceLink"]] = relationship(
        back_populates="line",
        lazy="selectin",
    )


class LedgerSourceLink(Base):
    """Provenance pointer from a ledger line to its originating documents."""

    __tablename__ = "ledger_source_links"

    __table_args__ = (
        Index("idx_source_link_line", "ledger_line_id"),
        Index("idx_source_link_receipt", "tenant_id", "receipt_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    ledger_line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_lines.id"),
        nullable=False,
    )

    receipt_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    statement_line_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    file_object_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    line: Mapped[LedgerLine] = relationship(back_populates="source_links")
