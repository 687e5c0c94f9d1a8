"""
ledger_services.review_service -- Human resolution of held receipts.

Responsibility:
    Closes the open ReceiptReview of a held receipt.  Either the reviewer's
    corrected fields become a new extraction and the receipt is released for
    posting, or the receipt is sent back through extraction under a fresh
    submission number.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Called by LedgerCommands.resolve_review; never commits.

Invariants enforced:
    - Only a receipt in Hold with an open review can be resolved.
    - A resolved review is terminal.
    - Corrected fields must pass the structural hold rules; the reviewer's
      values are trusted at confidence 1.0 but still recorded as evidence
      of a human decision (the posted lines are Estimated).

Failure modes:
    - ReceiptNotFoundError, InvalidReceiptStateError.
    - ReviewNotFoundError: the receipt was never held.
    - ReviewAlreadyResolvedError: the last review is already closed.
    - InvalidReviewResolutionError: corrected fields still fail the checks.

Audit relevance:
    ``receipt.review.resolved`` (actor = reviewer) and, on resubmission,
    ``receipt.resubmitted``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_engines.hold import evaluate_hold
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.documents import NormalizedReceipt
from ledger_kernel.domain.messages import ReceiptReady, ReceiptReceived
from ledger_kernel.exceptions import (
    InvalidReviewResolutionError,
    ReviewAlreadyResolvedError,
    ReviewNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.receipt import Receipt, ReceiptReview, ReceiptStatus
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.utils.hashing import canonicalize_json
from ledger_services.receipt_service import ReceiptService

logger = get_logger("services.review")

_FULL_CONFIDENCE = Decimal("1.0")


def _json_safe(resolution: dict[str, Any]) -> dict[str, Any]:
    return json.loads(canonicalize_json(resolution))


@dataclass(frozen=True)
class ReviewOutcome:
    receipt: Receipt
    review: ReceiptReview
    message: ReceiptReady | ReceiptReceived


class ReceiptReviewService:

    def __init__(
        self,
        session: Session,
        config: LedgerConfig,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        receipts: ReceiptService | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._receipts = receipts or ReceiptService(session, self._clock)

    def resolve(
        self,
        tenant_id: UUID,
        receipt_id: UUID,
        resolution: dict[str, Any],
        resolved_by: str,
        resubmit: bool = False,
        correlation_id: str | None = None,
    ) -> ReviewOutcome:
        """
        Resolve the open review of a held receipt.

        ``resolution`` holds corrected receipt fields in normalized payload
        form (``date``, ``vendor``, ``total``, ``tax``, ``currency``); fields
        left out keep their extracted value.
        """
        receipt = self._receipts.get(tenant_id, receipt_id)
        review = self._receipts.open_review(tenant_id, receipt_id)
        if review is None:
            reviews = self._receipts.reviews(tenant_id, receipt_id)
            if reviews:
                raise ReviewAlreadyResolvedError(str(reviews[-1].id))
            raise ReviewNotFoundError(str(receipt_id))

        if resubmit:
            return self._resubmit(receipt, review, resolution, resolved_by, correlation_id)

        document = self._corrected_document(receipt, resolution)
        decision = evaluate_hold(
            document, _FULL_CONFIDENCE, self._config.hold.confidence_threshold
        )
        if decision.is_hold:
            raise InvalidReviewResolutionError(str(receipt.id), decision.reason)

        self._receipts.transition(
            receipt, ReceiptStatus.READY_FOR_POSTING, expected=(ReceiptStatus.HOLD,)
        )
        self._receipts.record_extraction(
            receipt,
            model_version=self._config.posting.human_review_model_version,
            confidence=_FULL_CONFIDENCE,
            raw={"resolution": _json_safe(resolution), "resolvedBy": resolved_by},
            document=document,
        )
        self._close(review, resolution, resolved_by)
        self._auditor.record(
            tenant_id=tenant_id,
            action=AuditAction.RECEIPT_REVIEW_RESOLVED,
            entity_type="Receipt",
            entity_id=receipt.id,
            correlation_id=correlation_id,
            metadata={"reviewId": str(review.id), "resubmit": False},
            actor=resolved_by,
        )
        logger.info(
            "receipt_review_resolved",
            extra={"receipt_id": str(receipt.id), "resubmit": False},
        )
        return ReviewOutcome(
            receipt,
            review,
            ReceiptReady(
                receipt_id=receipt.id,
                file_object_id=receipt.file_object_id,
                confidence=_FULL_CONFIDENCE,
            ),
        )

    def _resubmit(
        self,
        receipt: Receipt,
        review: ReceiptReview,
        resolution: dict[str, Any],
        resolved_by: str,
        correlation_id: str | None,
    ) -> ReviewOutcome:
        self._receipts.transition(
            receipt, ReceiptStatus.SUBMITTED, expected=(ReceiptStatus.HOLD,)
        )
        receipt.submission += 1
        self._close(review, resolution, resolved_by)
        self._auditor.record(
            tenant_id=receipt.tenant_id,
            action=AuditAction.RECEIPT_REVIEW_RESOLVED,
            entity_type="Receipt",
            entity_id=receipt.id,
            correlation_id=correlation_id,
            metadata={"reviewId": str(review.id), "resubmit": True},
            actor=resolved_by,
        )
        self._auditor.record(
            tenant_id=receipt.tenant_id,
            action=AuditAction.RECEIPT_RESUBMITTED,
            entity_type="Receipt",
            entity_id=receipt.id,
            correlation_id=correlation_id,
            metadata={"submission": receipt.submission},
            actor=resolved_by,
        )
        logger.info(
            "receipt_resubmitted",
            extra={"receipt_id": str(receipt.id), "submission": receipt.submission},
        )
        return ReviewOutcome(
            receipt,
            review,
            ReceiptReceived(
                receipt_id=receipt.id,
                file_object_id=receipt.file_object_id,
                submission=receipt.submission,
            ),
        )

    def _corrected_document(
        self, receipt: Receipt, resolution: dict[str, Any]
    ) -> NormalizedReceipt:
        extraction = self._receipts.latest_extraction(receipt.tenant_id, receipt.id)
        base = (
            self._receipts.document_of(extraction).to_payload()
            if extraction is not None
            else NormalizedReceipt().to_payload()
        )
        known = {k: v for k, v in resolution.items() if k in base and k != "kind"}
        return NormalizedReceipt.from_payload({**base, **known})

    def _close(
        self, review: ReceiptReview, resolution: dict[str, Any], resolved_by: str
    ) -> None:
        review.resolution = _json_safe(resolution)
        review.resolved_by = resolved_by
        review.resolved_at = self._clock.now()
