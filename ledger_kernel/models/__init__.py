"""Domain models for the ledger kernel."""

from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.models.ledger import (
    LedgerEntry,
    LedgerLine,
    LedgerLineType,
    LedgerSourceLink,
    LedgerSourceType,
    LineEvidence,
    PostedByType,
)
from ledger_kernel.models.processing_job import JobStatus, ProcessingJob
from ledger_kernel.models.receipt import (
    Receipt,
    ReceiptExtraction,
    ReceiptReview,
    ReceiptStatus,
)
from ledger_kernel.models.reconciliation import (
    ReconciliationRun,
    ReconciliationStatus,
    ReconciliationVariance,
)
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.models.snapshot import (
    LedgerSnapshot,
    SnapshotDetail,
    SnapshotPeriodType,
)
from ledger_kernel.models.statement import (
    FieldEvidence,
    Statement,
    StatementLine,
    StatementPeriodType,
    StatementStatus,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "FieldEvidence",
    "JobStatus",
    "LedgerEntry",
    "LedgerLine",
    "LedgerLineType",
    "LedgerSnapshot",
    "LedgerSourceLink",
    "LedgerSourceType",
    "LineEvidence",
    "PostedByType",
    "ProcessingJob",
    "Receipt",
    "ReceiptExtraction",
    "ReceiptReview",
    "ReceiptStatus",
    "ReconciliationRun",
    "ReconciliationStatus",
    "ReconciliationVariance",
    "SequenceCounter",
    "SnapshotDetail",
    "SnapshotPeriodType",
    "Statement",
    "StatementLine",
    "StatementPeriodType",
    "StatementStatus",
]
