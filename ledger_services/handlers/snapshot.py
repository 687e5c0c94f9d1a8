"""SnapshotHandler -- ``ledger.posted.v1`` consumer."""

from __future__ import annotations

from ledger_kernel.domain.messages import LedgerPosted, MessageEnvelope, MessageType
from ledger_services.handlers.base import EventHandler, Outbox
from ledger_services.orchestrator import LedgerOrchestrator
from ledger_services.snapshot_service import SnapshotResult


class SnapshotHandler(EventHandler[LedgerPosted]):
    """Recomputes the Monthly and YTD snapshots containing the entry date."""

    message_type = MessageType.LEDGER_POSTED
    job_type = "snapshot.compute"
    entity_type = "LedgerEntry"

    def dedupe_key(self, payload: LedgerPosted) -> str:
        return f"snapshot.compute:{payload.ledger_entry_id}"

    def entity_id(self, payload: LedgerPosted) -> str:
        return str(payload.ledger_entry_id)

    def run(
        self,
        services: LedgerOrchestrator,
        envelope: MessageEnvelope[LedgerPosted],
        outbox: Outbox,
    ) -> tuple[SnapshotResult, SnapshotResult]:
        return services.snapshots.recompute_for_date(
            envelope.tenant_id, envelope.data.entry_date, envelope.correlation_id
        )
