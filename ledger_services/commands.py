"""
ledger_services.commands -- Caller-initiated operations.

Responsibility:
    The write operations an API layer (out of scope here) invokes on behalf
    of a user: register an uploaded receipt, store a parsed statement, post
    a manual entry, adjust a posted entry, resolve a held receipt's review,
    and run a yearly reconciliation.  Each owns its commit and publishes
    its outbound message only after the commit.

Architecture position:
    Services -- top of the service layer, beside the event handlers.
    Builds a LedgerOrchestrator on the caller's session.

Invariants enforced:
    - Manual entries and adjustments go through the idempotency gate with
      the caller's idempotency key, so a retried request posts once.
    - The append-only guard runs before every commit.
    - A failed command rolls back and re-raises; nothing is published.

Usage:
    commands = LedgerCommands(session, context)
    receipt_id = commands.submit_receipt(tenant_id, file_object_id)
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from ledger_kernel.db.immutability import check_append_only
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.messages import (
    MessageEnvelope,
    ReceiptReceived,
    ReconciliationCompleted,
    StatementParsed,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.ledger import PostedByType
from ledger_kernel.models.reconciliation import ReconciliationRun
from ledger_kernel.models.statement import StatementPeriodType
from ledger_kernel.services.idempotency_gate import GateOutcome, JobKey
from ledger_services.handlers.base import HandlerContext
from ledger_services.handlers.posting import ledger_posted
from ledger_services.orchestrator import LedgerOrchestrator
from ledger_services.posting_service import AdjustmentResult, new_idempotency_key
from ledger_services.review_service import ReviewOutcome
from ledger_services.statement_service import StatementLineInput, StatementService

logger = get_logger("services.commands")

T = TypeVar("T")


class LedgerCommands:
    """
    Command surface for one session.

    Non-goals:
        - Does NOT authenticate or authorize; ``tenant_id`` is trusted.
        - Does NOT own the session lifecycle (no close).
    """

    def __init__(self, session: Session, context: HandlerContext):
        self._session = session
        self._context = context
        self.services = LedgerOrchestrator(session, context.config, context.clock)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def submit_receipt(
        self,
        tenant_id: UUID,
        file_object_id: UUID,
        correlation_id: str | None = None,
    ) -> UUID:
        """Register an uploaded receipt and emit ``receipt.received.v1``."""
        correlation_id = correlation_id or uuid4().hex
        with LogContext.bind(correlation_id=correlation_id, tenant_id=tenant_id):
            receipt = self._in_transaction(
                lambda: self.services.receipts.create(tenant_id, file_object_id)
            )
            self._publish(
                tenant_id,
                correlation_id,
                ReceiptReceived(receipt_id=receipt.id, file_object_id=file_object_id),
            )
            return receipt.id

    def record_statement(
        self,
        tenant_id: UUID,
        provider: str,
        period_type: StatementPeriodType,
        period_key: str,
        lines: Sequence[StatementLineInput],
        file_object_id: UUID | None = None,
        correlation_id: str | None = None,
    ) -> UUID:
        """Store a parsed statement and emit ``statement.parsed.v1``."""
        correlation_id = correlation_id or uuid4().hex
        with LogContext.bind(correlation_id=correlation_id, tenant_id=tenant_id):
            statements = StatementService(self._session, self._context.clock)
            statement = self._in_transaction(
                lambda: statements.record_parsed(
                    tenant_id, provider, period_type, period_key, lines, file_object_id
                )
            )
            self._publish(
                tenant_id, correlation_id, StatementParsed(statement_id=statement.id)
            )
            return statement.id

    # ------------------------------------------------------------------
    # Manual posting and adjustments
    # ------------------------------------------------------------------

    def post_manual(
        self,
        tenant_id: UUID,
        entry_date: date,
        lines: Sequence[LineSpec],
        idempotency_key: str | None = None,
        posted_by: PostedByType = PostedByType.DRIVER,
        correlation_id: str | None = None,
    ) -> GateOutcome:
        idempotency_key = idempotency_key or new_idempotency_key()
        correlation_id = correlation_id or uuid4().hex
        key = JobKey(tenant_id, "ledger.post.manual", f"ledger.manual:{idempotency_key}")
        with LogContext.bind(
            correlation_id=correlation_id,
            tenant_id=tenant_id,
            job_type=key.job_type,
            dedupe_key=key.dedupe_key,
        ):
            outcome = self.services.gate.execute(
                key,
                lambda: self.services.posting.post_manual(
                    tenant_id, idempotency_key, entry_date, lines, posted_by, correlation_id
                ),
                correlation_id=correlation_id,
                failure_entity=("LedgerEntry", idempotency_key),
            )
            if outcome.executed and outcome.result.created:
                self._publish(tenant_id, correlation_id, ledger_posted(outcome.result))
            return outcome

    def post_adjustment(
        self,
        tenant_id: UUID,
        reverse_entry_id: UUID,
        idempotency_key: str,
        lines: Sequence[LineSpec] = (),
        entry_date: date | None = None,
        correlation_id: str | None = None,
    ) -> GateOutcome[AdjustmentResult]:
        correlation_id = correlation_id or uuid4().hex
        key = JobKey(
            tenant_id,
            "ledger.post.adjustment",
            f"ledger.adjust:{reverse_entry_id}:{idempotency_key}",
        )
        with LogContext.bind(
            correlation_id=correlation_id,
            tenant_id=tenant_id,
            job_type=key.job_type,
            dedupe_key=key.dedupe_key,
        ):
            outcome = self.services.gate.execute(
                key,
                lambda: self.services.posting.post_adjustment(
                    tenant_id,
                    reverse_entry_id,
                    idempotency_key,
                    entry_date,
                    lines,
                    correlation_id,
                ),
                correlation_id=correlation_id,
                failure_entity=("LedgerEntry", str(reverse_entry_id)),
            )
            if outcome.executed:
                result = outcome.result
                for posted in (result.reversal, result.corrected):
                    if posted is not None and posted.created:
                        self._publish(tenant_id, correlation_id, ledger_posted(posted))
            return outcome

    # ------------------------------------------------------------------
    # Review and reconciliation
    # ------------------------------------------------------------------

    def resolve_review(
        self,
        tenant_id: UUID,
        receipt_id: UUID,
        resolution: dict[str, Any],
        resolved_by: str,
        resubmit: bool = False,
        correlation_id: str | None = None,
    ) -> ReviewOutcome:
        """Resolve a held receipt; emits ``receipt.ready`` or ``receipt.received``."""
        correlation_id = correlation_id or uuid4().hex
        with LogContext.bind(correlation_id=correlation_id, tenant_id=tenant_id):
            outcome = self._in_transaction(
                lambda: self.services.reviews.resolve(
                    tenant_id, receipt_id, resolution, resolved_by, resubmit, correlation_id
                )
            )
            self._publish(tenant_id, correlation_id, outcome.message)
            return outcome

    def reconcile(
        self,
        tenant_id: UUID,
        provider: str,
        year: str,
        correlation_id: str | None = None,
    ) -> ReconciliationRun:
        """Run the yearly reconciliation; emits ``reconciliation.completed.v1``."""
        correlation_id = correlation_id or uuid4().hex
        with LogContext.bind(correlation_id=correlation_id, tenant_id=tenant_id):
            run = self._in_transaction(
                lambda: self.services.reconciliation.reconcile(
                    tenant_id, provider, year, correlation_id
                )
            )
            self._publish(
                tenant_id,
                correlation_id,
                ReconciliationCompleted(
                    run_id=run.id, provider=run.provider, period_key=run.period_key
                ),
            )
            return run

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _in_transaction(self, work: Callable[[], T]) -> T:
        try:
            result = work()
            check_append_only(self._session)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return result

    def _publish(self, tenant_id: UUID, correlation_id: str, payload: Any) -> None:
        envelope = MessageEnvelope.create(
            payload,
            tenant_id=tenant_id,
            correlation_id=correlation_id,
            clock=self._context.clock,
        )
        self._context.publisher.publish(envelope.type.queue, envelope)
