"""
Module: ledger_kernel.models.receipt
Responsibility: ORM persistence for receipts, their extraction evidence and
    their human review records.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Receipt status moves one way through the lifecycle; the only backward
      moves are Hold -> ReadyForPosting and Hold -> Submitted, both through a
      review resolution.
    - ReceiptExtraction rows are evidence: one per successful extraction
      attempt, never updated.  They reference the receipt by id only.
    - A ReceiptReview exists only for a receipt that was held and is terminal
      once resolved_at is set.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class ReceiptStatus(str, Enum):
    """Receipt lifecycle states."""

    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    PROCESSING = "Processing"
    EXTRACTION_PENDING = "ExtractionPending"
    HOLD = "Hold"
    READY_FOR_POSTING = "ReadyForPosting"
    POSTED = "Posted"
    FAILED = "Failed"


class Receipt(Base):
    """A tenant-owned receipt document moving through extraction and posting."""

    __tablename__ = "receipts"

    __table_args__ = (Index("idx_receipt_tenant_status", "tenant_id", "status"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    file_object_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    status: Mapped[ReceiptStatus] = mapped_column(
        String(30),
        default=ReceiptStatus.DRAFT,
        nullable=False,
    )

    # Bumped on every resubmission after review; part of the extract dedupe key
    submission: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Receipt {self.id} {self.status}>"


class ReceiptExtraction(Base):
    """Evidence row for one successful extraction attempt."""

    __tablename__ = "receipt_extractions"

    __table_args__ = (
        Index("idx_extraction_receipt", "tenant_id", "receipt_id"),
        UniqueConstraint(
            "tenant_id", "receipt_id", "sequence", name="uq_receipt_extraction_sequence"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    receipt_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # 1..n per receipt; the highest is the extraction posting uses
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    model_version: Mapped[str] = mapped_column(String(100), nullable=False)

    # Policy confidence in [0, 1]
    confidence: Mapped[Decimal] = mapped_column(nullable=False)

    raw_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # SHA-256 of raw_json in canonical form
    raw_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Tagged NormalizedReceipt payload
    normalized_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    extracted_at: Mapped[datetime] = mapped_column(nullable=False)


class ReceiptReview(Base):
    """Human review opened when a receipt is held."""

    __tablename__ = "receipt_reviews"

    __table_args__ = (Index("idx_review_receipt", "tenant_id", "receipt_id"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    receipt_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    hold_reason: Mapped[str] = mapped_column(String(200), nullable=False)

    questions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    resolution: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    resolved_by: Mapped[str | None] = mapped_column(String(200), nullable=True)

    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None
