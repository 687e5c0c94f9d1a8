"""
Module: ledger_kernel.models.processing_job
Responsibility: ORM persistence for the idempotency job ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE (tenant_id, job_type, dedupe_key): the sole synchronization
      primitive between concurrent duplicate deliveries.
    - Rows are mutated on retry/success/failure but never deleted.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class JobStatus(str, Enum):
    """Lifecycle status of a processing job."""

    STARTED = "Started"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class ProcessingJob(Base):
    """One row per logical event instance (tenant, job type, dedupe key)."""

    __tablename__ = "processing_jobs"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "job_type", "dedupe_key", name="uq_processing_job_dedupe"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    job_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # Derived from source document id + event type
    dedupe_key: Mapped[str] = mapped_column(String(300), nullable=False)

    status: Mapped[JobStatus] = mapped_column(
        String(20),
        default=JobStatus.STARTED,
        nullable=False,
    )

    attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ProcessingJob {self.job_type} {self.dedupe_key} {self.status}>"
