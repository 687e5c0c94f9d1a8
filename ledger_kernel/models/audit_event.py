"""
Module: ledger_kernel.models.audit_event
Responsibility: ORM persistence for the append-only audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (db/immutability.py).
    - Every row carries the correlation_id of the flow that produced it so a
      receipt can be traced from submission through snapshot.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Auditable actions."""

    RECEIPT_EXTRACTION_COMPLETED = "receipt.extraction.completed"
    RECEIPT_EXTRACT_FAILED = "receipt.extract.failed"
    RECEIPT_HOLD = "receipt.hold"
    RECEIPT_READY = "receipt.ready"
    RECEIPT_HOLD_WORKFLOW = "receipt.hold.workflow"
    RECEIPT_REVIEW_RESOLVED = "receipt.review.resolved"
    RECEIPT_RESUBMITTED = "receipt.resubmitted"
    LEDGER_POSTED = "ledger.posted"
    LEDGER_REVERSED = "ledger.reversed"
    LEDGER_RECONCILIATION_NOOP = "ledger.reconciliation.noop"
    SNAPSHOT_UPDATED = "snapshot.updated"
    RECONCILIATION_COMPLETED = "reconciliation.completed"
    NOTIFICATION_REQUESTED = "notification.requested"
    JOB_FAILED = "job.failed"


class AuditEvent(Base):
    """One notable action."""

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "tenant_id", "entity_type", "entity_id"),
        Index("idx_audit_correlation", "tenant_id", "correlation_id"),
        Index("idx_audit_seq", "seq"),
    )

    # Write order; occurred_at alone can tie
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor: Mapped[str] = mapped_column(String(100), nullable=False)

    action: Mapped[str] = mapped_column(String(100), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(200), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} {self.entity_type}:{self.entity_id}>"
