"""
Posting handlers -- ledger writes triggered by upstream events.

    receipt.ready.v1              -> ReceiptPostingHandler
    statement.parsed.v1           -> StatementPostingHandler
    reconciliation.completed.v1   -> ReconciliationPostingHandler

Each publishes ``ledger.posted.v1`` for an entry it created.  Replays find
the existing entry and publish nothing.
"""

from __future__ import annotations

from ledger_kernel.domain.messages import (
    LedgerPosted,
    MessageEnvelope,
    MessageType,
    ReceiptReady,
    ReconciliationCompleted,
    StatementParsed,
)
from ledger_kernel.services.ledger_writer import PostResult
from ledger_services.handlers.base import EventHandler, Outbox
from ledger_services.orchestrator import LedgerOrchestrator


def ledger_posted(result: PostResult) -> LedgerPosted:
    entry = result.entry
    return LedgerPosted(
        ledger_entry_id=entry.id,
        source_type=getattr(entry.source_type, "value", entry.source_type),
        source_id=entry.source_id,
        entry_date=entry.entry_date,
    )


def announce(outbox: Outbox, result: PostResult | None) -> None:
    if result is not None and result.created:
        outbox.add(ledger_posted(result))


class ReceiptPostingHandler(EventHandler[ReceiptReady]):

    message_type = MessageType.RECEIPT_READY
    job_type = "ledger.post.receipt"
    entity_type = "Receipt"

    def dedupe_key(self, payload: ReceiptReady) -> str:
        return f"ledger.post:receipt:{payload.receipt_id}"

    def entity_id(self, payload: ReceiptReady) -> str:
        return str(payload.receipt_id)

    def run(
        self,
        services: LedgerOrchestrator,
        envelope: MessageEnvelope[ReceiptReady],
        outbox: Outbox,
    ) -> PostResult:
        result = services.posting.post_receipt(
            envelope.tenant_id, envelope.data.receipt_id, envelope.correlation_id
        )
        announce(outbox, result)
        return result


class StatementPostingHandler(EventHandler[StatementParsed]):

    message_type = MessageType.STATEMENT_PARSED
    job_type = "ledger.post.statement"
    entity_type = "Statement"

    def dedupe_key(self, payload: StatementParsed) -> str:
        return f"ledger.post:statement:{payload.statement_id}"

    def entity_id(self, payload: StatementParsed) -> str:
        return str(payload.statement_id)

    def run(
        self,
        services: LedgerOrchestrator,
        envelope: MessageEnvelope[StatementParsed],
        outbox: Outbox,
    ) -> PostResult | None:
        result = services.posting.post_statement(
            envelope.tenant_id, envelope.data.statement_id, envelope.correlation_id
        )
        announce(outbox, result)
        return result


class ReconciliationPostingHandler(EventHandler[ReconciliationCompleted]):

    message_type = MessageType.RECONCILIATION_COMPLETED
    job_type = "ledger.post.reconciliation"
    entity_type = "ReconciliationRun"

    def dedupe_key(self, payload: ReconciliationCompleted) -> str:
        return f"ledger.post:reconciliation:{payload.run_id}"

    def entity_id(self, payload: ReconciliationCompleted) -> str:
        return str(payload.run_id)

    def run(
        self,
        services: LedgerOrchestrator,
        envelope: MessageEnvelope[ReconciliationCompleted],
        outbox: Outbox,
    ) -> PostResult | None:
        result = services.posting.post_reconciliation(
            envelope.tenant_id, envelope.data.run_id, envelope.correlation_id
        )
        announce(outbox, result)
        return result
