"""
ledger_services.orchestrator -- Central DI container for one unit of work.

Responsibility:
    Creates every session-bound service exactly once and wires them
    together.  No service creates other services internally when built
    through the orchestrator; handlers and commands take what they need
    from it.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    The only place where kernel and service objects are constructed and
    composed for a handler invocation.

Invariants enforced:
    - Single-instance lifecycle: one AuditorService, one LedgerWriter, one
      IdempotencyGate per session.
    - All services share the same Session, Clock and LedgerConfig.

Usage:
    services = LedgerOrchestrator(session, config, clock)
    services.gate.execute(key, lambda: services.posting.post_receipt(...))
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.idempotency_gate import IdempotencyGate
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_services.posting_service import PostingService
from ledger_services.receipt_service import ReceiptService
from ledger_services.reconciliation_service import ReconciliationService
from ledger_services.review_service import ReceiptReviewService
from ledger_services.snapshot_service import SnapshotService


class LedgerOrchestrator:
    """
    Per-session service graph.

    Non-goals:
        - Does NOT manage transaction boundaries; the gate or the caller does.
        - Does NOT own the Session lifecycle.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfig,
        clock: Clock | None = None,
    ) -> None:
        self.session = session
        self.config = config
        self.clock = clock or SystemClock()

        # Foundational
        self.auditor = AuditorService(session, self.clock)
        self.gate = IdempotencyGate(session, self.clock, self.auditor)
        self.writer = LedgerWriter(session, self.clock, self.auditor)
        self.receipts = ReceiptService(session, self.clock)

        # Orchestration over the foundation
        self.posting = PostingService(
            session,
            config,
            self.clock,
            auditor=self.auditor,
            writer=self.writer,
            receipts=self.receipts,
        )
        self.snapshots = SnapshotService(session, self.clock, self.auditor)
        self.reconciliation = ReconciliationService(
            session, config, self.clock, self.auditor
        )
        self.reviews = ReceiptReviewService(
            session, config, self.clock, auditor=self.auditor, receipts=self.receipts
        )
