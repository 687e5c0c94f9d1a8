"""
Downstream consumers with no ledger side effects.

``receipt.hold.v1`` opens the review workflow (recorded once per receipt);
``receipt.extracted.v1`` feeds analytics and is only logged.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_kernel.domain.cancellation import CancellationToken
from ledger_kernel.domain.messages import (
    MessageEnvelope,
    MessageType,
    ReceiptExtracted,
    ReceiptHold,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_services.handlers.base import EventHandler, HandlerContext, Outbox
from ledger_services.orchestrator import LedgerOrchestrator

logger = get_logger("services.handlers.downstream")


class HoldWorkflowHandler(EventHandler[ReceiptHold]):

    message_type = MessageType.RECEIPT_HOLD
    job_type = "receipt.hold.workflow"
    entity_type = "Receipt"

    def dedupe_key(self, payload: ReceiptHold) -> str:
        return f"receipt.hold.workflow:{payload.receipt_id}"

    def entity_id(self, payload: ReceiptHold) -> str:
        return str(payload.receipt_id)

    def run(
        self,
        services: LedgerOrchestrator,
        envelope: MessageEnvelope[ReceiptHold],
        outbox: Outbox,
    ) -> None:
        payload = envelope.data
        services.auditor.record(
            tenant_id=envelope.tenant_id,
            action=AuditAction.RECEIPT_HOLD_WORKFLOW,
            entity_type="Receipt",
            entity_id=payload.receipt_id,
            correlation_id=envelope.correlation_id,
            metadata={
                "reason": payload.hold_reason,
                "questions": payload.questions,
            },
        )
        logger.info(
            "hold_workflow_started",
            extra={"receipt_id": str(payload.receipt_id), "reason": payload.hold_reason},
        )


class ExtractedAnalyticsHandler:
    """Analytics only: no job row, no state."""

    message_type = MessageType.RECEIPT_EXTRACTED

    def __init__(self, context: HandlerContext):
        self.context = context

    def __call__(
        self,
        session: Session,
        envelope: MessageEnvelope[ReceiptExtracted],
        cancel: CancellationToken | None = None,
    ) -> None:
        payload = envelope.data
        with LogContext.bind(
            correlation_id=envelope.correlation_id, tenant_id=envelope.tenant_id
        ):
            logger.info(
                "receipt_extracted_observed",
                extra={
                    "receipt_id": str(payload.receipt_id),
                    "confidence": str(payload.confidence),
                    "is_hold": payload.is_hold,
                    "hold_reason": payload.hold_reason,
                },
            )
