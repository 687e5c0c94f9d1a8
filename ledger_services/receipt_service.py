"""
ledger_services.receipt_service -- Receipt lifecycle persistence.

Responsibility:
    Tenant-scoped access to receipts, their extraction evidence and their
    reviews, plus the lifecycle transitions the handlers drive.

Architecture position:
    Services -- stateful orchestration over kernel models.  Used by the
    extraction and posting handlers and by ReceiptReviewService.

Invariants enforced:
    - Every query filters on the tenant id passed in.
    - Extraction rows are appended with the next per-receipt sequence and
      never updated.
    - At most one open review per receipt.

Failure modes:
    - ReceiptNotFoundError: unknown receipt for the tenant.
    - InvalidReceiptStateError: a transition from an unexpected state.
"""

from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.documents import NormalizedReceipt, document_from_payload
from ledger_kernel.exceptions import InvalidReceiptStateError, ReceiptNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.receipt import (
    Receipt,
    ReceiptExtraction,
    ReceiptReview,
    ReceiptStatus,
)
from ledger_kernel.utils.hashing import hash_payload

logger = get_logger("services.receipt")


class ReceiptService:
    """Receipt, extraction and review persistence.  Never commits."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def create(
        self,
        tenant_id: UUID,
        file_object_id: UUID,
        status: ReceiptStatus = ReceiptStatus.PROCESSING,
    ) -> Receipt:
        """Register a submitted receipt (the upload API does this upstream)."""
        now = self._clock.now()
        receipt = Receipt(
            tenant_id=tenant_id,
            file_object_id=file_object_id,
            status=status.value,
            submission=0,
            created_at=now,
            updated_at=now,
        )
        self._session.add(receipt)
        self._session.flush()
        return receipt

    def get(self, tenant_id: UUID, receipt_id: UUID) -> Receipt:
        receipt = self._session.execute(
            select(Receipt).where(
                Receipt.tenant_id == tenant_id,
                Receipt.id == receipt_id,
            )
        ).scalar_one_or_none()
        if receipt is None:
            raise ReceiptNotFoundError(str(tenant_id), str(receipt_id))
        return receipt

    def transition(
        self,
        receipt: Receipt,
        to_status: ReceiptStatus,
        expected: Iterable[ReceiptStatus],
    ) -> None:
        """
        Move ``receipt`` to ``to_status`` if it is in one of ``expected``.

        Raises:
            InvalidReceiptStateError: current status not in ``expected``.
        """
        allowed = [s.value for s in expected]
        current = receipt.status
        if current not in allowed:
            raise InvalidReceiptStateError(str(receipt.id), current, " or ".join(allowed))
        receipt.status = to_status.value
        receipt.updated_at = self._clock.now()
        logger.info(
            "receipt_status_changed",
            extra={
                "receipt_id": str(receipt.id),
                "from_status": current,
                "to_status": to_status.value,
            },
        )

    # ------------------------------------------------------------------
    # Extraction evidence
    # ------------------------------------------------------------------

    def record_extraction(
        self,
        receipt: Receipt,
        model_version: str,
        confidence: Decimal,
        raw: dict[str, Any],
        document: NormalizedReceipt,
    ) -> ReceiptExtraction:
        current = self._session.execute(
            select(func.max(ReceiptExtraction.sequence)).where(
                ReceiptExtraction.tenant_id == receipt.tenant_id,
                ReceiptExtraction.receipt_id == receipt.id,
            )
        ).scalar()
        extraction = ReceiptExtraction(
            tenant_id=receipt.tenant_id,
            receipt_id=receipt.id,
            sequence=(current or 0) + 1,
            model_version=model_version,
            confidence=confidence,
            raw_json=raw,
            raw_hash=hash_payload(raw),
            normalized_json=document.to_payload(),
            extracted_at=self._clock.now(),
        )
        self._session.add(extraction)
        self._session.flush()
        return extraction

    def latest_extraction(self, tenant_id: UUID, receipt_id: UUID) -> ReceiptExtraction | None:
        return self._session.execute(
            select(ReceiptExtraction)
            .where(
                ReceiptExtraction.tenant_id == tenant_id,
                ReceiptExtraction.receipt_id == receipt_id,
            )
            .order_by(ReceiptExtraction.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()

    @staticmethod
    def document_of(extraction: ReceiptExtraction) -> NormalizedReceipt:
        return document_from_payload(extraction.normalized_json)

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def reviews(self, tenant_id: UUID, receipt_id: UUID) -> list[ReceiptReview]:
        return list(
            self._session.execute(
                select(ReceiptReview)
                .where(
                    ReceiptReview.tenant_id == tenant_id,
                    ReceiptReview.receipt_id == receipt_id,
                )
                .order_by(ReceiptReview.created_at)
            ).scalars().all()
        )

    def open_review(self, tenant_id: UUID, receipt_id: UUID) -> ReceiptReview | None:
        for review in self.reviews(tenant_id, receipt_id):
            if not review.is_resolved:
                return review
        return None

    def ensure_open_review(
        self,
        receipt: Receipt,
        hold_reason: str,
        questions: dict[str, Any],
    ) -> ReceiptReview:
        review = self.open_review(receipt.tenant_id, receipt.id)
        if review is not None:
            return review
        review = ReceiptReview(
            tenant_id=receipt.tenant_id,
            receipt_id=receipt.id,
            hold_reason=hold_reason,
            questions=questions,
            created_at=self._clock.now(),
        )
        self._session.add(review)
        self._session.flush()
        return review
