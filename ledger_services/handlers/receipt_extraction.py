"""
ReceiptExtractionHandler -- ``receipt.received.v1`` consumer.

Runs the external extractor once per admitted submission, stores the
extraction as evidence, scores it, and either holds the receipt for review
or releases it for posting.

    Processing|Submitted -> ExtractionPending -> Hold | ReadyForPosting

A failure anywhere (including the extractor call) rolls the savepoint back,
so the receipt stays in its prior status and no extraction row survives;
the gate marks the job Failed and the transport redelivers.
"""

from __future__ import annotations

from ledger_engines.confidence import compute_confidence
from ledger_engines.hold import evaluate_hold
from ledger_kernel.domain.messages import (
    MessageEnvelope,
    MessageType,
    ReceiptExtracted,
    ReceiptHold,
    ReceiptReady,
    ReceiptReceived,
)
from ledger_kernel.exceptions import (
    ExtractionFailedError,
    InvalidConfigurationError,
    LedgerCoreError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.receipt import ReceiptStatus
from ledger_kernel.utils.hashing import canonicalize_json
from ledger_services.extractor import ExtractedReceipt
from ledger_services.handlers.base import EventHandler, Outbox
from ledger_services.orchestrator import LedgerOrchestrator

logger = get_logger("services.handlers.receipt_extraction")

# States in which a received event still has work to do
_EXTRACTABLE = (
    ReceiptStatus.PROCESSING,
    ReceiptStatus.SUBMITTED,
    ReceiptStatus.EXTRACTION_PENDING,
)
# Later states: the event is stale, nothing to do
_ALREADY_EXTRACTED = {
    ReceiptStatus.HOLD.value,
    ReceiptStatus.READY_FOR_POSTING.value,
    ReceiptStatus.POSTED.value,
}


def extract_dedupe_key(payload: ReceiptReceived) -> str:
    key = f"receipt.extract:{payload.receipt_id}"
    if payload.submission > 0:
        key = f"{key}:{payload.submission}"
    return key


class ReceiptExtractionHandler(EventHandler[ReceiptReceived]):

    message_type = MessageType.RECEIPT_RECEIVED
    job_type = "receipt.extract"
    entity_type = "Receipt"

    def dedupe_key(self, payload: ReceiptReceived) -> str:
        return extract_dedupe_key(payload)

    def entity_id(self, payload: ReceiptReceived) -> str:
        return str(payload.receipt_id)

    def run(
        self,
        services: LedgerOrchestrator,
        envelope: MessageEnvelope[ReceiptReceived],
        outbox: Outbox,
    ) -> ReceiptStatus | None:
        payload = envelope.data
        tenant_id = envelope.tenant_id
        receipt = services.receipts.get(tenant_id, payload.receipt_id)

        if receipt.status in _ALREADY_EXTRACTED or payload.submission < receipt.submission:
            logger.info(
                "receipt_extraction_stale",
                extra={
                    "receipt_id": str(receipt.id),
                    "status": receipt.status,
                    "submission": payload.submission,
                },
            )
            return None

        services.receipts.transition(
            receipt, ReceiptStatus.EXTRACTION_PENDING, expected=_EXTRACTABLE
        )
        extracted = self._extract(tenant_id, receipt.id, receipt.file_object_id)
        document = extracted.to_document()

        config = services.config
        confidence = compute_confidence(document, config.confidence_penalties)
        decision = evaluate_hold(document, confidence, config.hold.confidence_threshold)

        extraction = services.receipts.record_extraction(
            receipt,
            model_version=self.context.extractor.model_version,
            confidence=confidence,
            raw=extracted.raw_payload,
            document=document,
        )
        services.auditor.record(
            tenant_id=tenant_id,
            action=AuditAction.RECEIPT_EXTRACTION_COMPLETED,
            entity_type="Receipt",
            entity_id=receipt.id,
            correlation_id=envelope.correlation_id,
            metadata={
                "extractionId": str(extraction.id),
                "modelVersion": extraction.model_version,
                "confidence": format(confidence, "f"),
                "extractorConfidence": format(extracted.confidence, "f"),
            },
        )
        outbox.add(
            ReceiptExtracted(
                receipt_id=receipt.id,
                file_object_id=receipt.file_object_id,
                confidence=confidence,
                is_hold=decision.is_hold,
                hold_reason=decision.reason,
            )
        )

        if decision.is_hold:
            services.receipts.transition(
                receipt, ReceiptStatus.HOLD, expected=(ReceiptStatus.EXTRACTION_PENDING,)
            )
            review = services.receipts.ensure_open_review(
                receipt, decision.reason, decision.questions
            )
            services.auditor.record(
                tenant_id=tenant_id,
                action=AuditAction.RECEIPT_HOLD,
                entity_type="Receipt",
                entity_id=receipt.id,
                correlation_id=envelope.correlation_id,
                metadata={
                    "reason": decision.reason,
                    "reviewId": str(review.id),
                    "confidence": format(confidence, "f"),
                },
            )
            services.auditor.request_notification(
                tenant_id=tenant_id,
                notification_type="ReceiptHold",
                severity="Warning",
                title="Receipt needs review",
                body=decision.reason,
                entity_type="Receipt",
                entity_id=receipt.id,
                correlation_id=envelope.correlation_id,
            )
            outbox.add(
                ReceiptHold(
                    receipt_id=receipt.id,
                    file_object_id=receipt.file_object_id,
                    confidence=confidence,
                    hold_reason=decision.reason,
                    questions_json=canonicalize_json(decision.questions),
                )
            )
            logger.info(
                "receipt_held",
                extra={"receipt_id": str(receipt.id), "reason": decision.reason},
            )
            return ReceiptStatus.HOLD

        services.receipts.transition(
            receipt,
            ReceiptStatus.READY_FOR_POSTING,
            expected=(ReceiptStatus.EXTRACTION_PENDING,),
        )
        services.auditor.record(
            tenant_id=tenant_id,
            action=AuditAction.RECEIPT_READY,
            entity_type="Receipt",
            entity_id=receipt.id,
            correlation_id=envelope.correlation_id,
            metadata={"confidence": format(confidence, "f")},
        )
        outbox.add(
            ReceiptReady(
                receipt_id=receipt.id,
                file_object_id=receipt.file_object_id,
                confidence=confidence,
            )
        )
        logger.info(
            "receipt_ready",
            extra={"receipt_id": str(receipt.id), "confidence": str(confidence)},
        )
        return ReceiptStatus.READY_FOR_POSTING

    def _extract(self, tenant_id, receipt_id, file_object_id) -> ExtractedReceipt:
        extractor = self.context.extractor
        store = self.context.document_store
        if extractor is None or store is None:
            raise InvalidConfigurationError(
                ["receipt extraction needs an extractor and a document store"]
            )
        stream = store.open(tenant_id, file_object_id)
        try:
            return extractor.extract(stream)
        except LedgerCoreError:
            raise
        except Exception as exc:
            raise ExtractionFailedError(str(receipt_id), str(exc) or type(exc).__name__) from exc
        finally:
            stream.close()
