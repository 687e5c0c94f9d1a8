"""
Module: ledger_kernel.models.snapshot
Responsibility: ORM persistence for period snapshots ("Live Statement") and
    their per-metric breakdown.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE (tenant_id, period_type, period_key).
    - Snapshots are a materialized view recomputed in place, NOT ledger
      facts; they are deliberately outside the append-only guard.
    - totals_json is canonical JSON (sorted keys, fixed separators) so a
      recompute over unchanged ledger state writes identical bytes.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, UUIDString


class SnapshotPeriodType(str, Enum):
    MONTHLY = "Monthly"
    YTD = "YTD"


class LedgerSnapshot(Base):
    """Aggregates and authority score for one tenant period."""

    __tablename__ = "ledger_snapshots"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "period_type", "period_key", name="uq_ledger_snapshot_period"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    period_type: Mapped[SnapshotPeriodType] = mapped_column(String(10), nullable=False)

    period_key: Mapped[str] = mapped_column(String(7), nullable=False)

    period_start: Mapped[date] = mapped_column(nullable=False)

    # Exclusive
    period_end: Mapped[date] = mapped_column(nullable=False)

    calculated_at: Mapped[datetime] = mapped_column(nullable=False)

    authority_score: Mapped[int] = mapped_column(Integer, nullable=False)

    evidence_pct: Mapped[Decimal] = mapped_column(nullable=False)

    estimated_pct: Mapped[Decimal] = mapped_column(nullable=False)

    totals_json: Mapped[str] = mapped_column(Text, nullable=False)

    details: Mapped[list["SnapshotDetail"]] = relationship(
        back_populates="snapshot",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SnapshotDetail.metric_key",
    )


class SnapshotDetail(Base):
    """Per-metric breakdown row owned by a snapshot."""

    __tablename__ = "snapshot_details"

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    snapshot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_snapshots.id"),
        nullable=False,
    )

    metric_key: Mapped[str] = mapped_column(String(50), nullable=False)

    value: Mapped[Decimal] = mapped_column(nullable=False)

    evidence_pct: Mapped[Decimal] = mapped_column(nullable=False)

    estimated_pct: Mapped[Decimal] = mapped_column(nullable=False)

    snapshot: Mapped[LedgerSnapshot] = relationship(back_populates="details")
