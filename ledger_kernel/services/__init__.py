"""Kernel services: audit trail, idempotency gate and the ledger writer."""

from ledger_kernel.services.auditor_service import (
    SYSTEM_ACTOR,
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
)
from ledger_kernel.services.idempotency_gate import (
    Admission,
    GateDecision,
    GateOutcome,
    IdempotencyGate,
    JobKey,
)
from ledger_kernel.services.ledger_writer import LedgerWriter, PostResult

__all__ = [
    "SYSTEM_ACTOR",
    "Admission",
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "GateDecision",
    "GateOutcome",
    "IdempotencyGate",
    "JobKey",
    "LedgerWriter",
    "PostResult",
]
