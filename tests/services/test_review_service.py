"""
ReceiptReviewService: releasing or resubmitting held receipts.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_engines.hold import LOW_CONFIDENCE
from ledger_kernel.domain.documents import NormalizedReceipt
from ledger_kernel.domain.messages import ReceiptReady, ReceiptReceived
from ledger_kernel.exceptions import (
    InvalidReceiptStateError,
    InvalidReviewResolutionError,
    ReceiptNotFoundError,
    ReviewAlreadyResolvedError,
    ReviewNotFoundError,
)
from ledger_kernel.models.receipt import ReceiptStatus


@pytest.fixture
def held_receipt(services, tenant_id):
    receipt = services.receipts.create(tenant_id, uuid4(), status=ReceiptStatus.HOLD)
    services.receipts.record_extraction(
        receipt,
        model_version="test-ocr",
        confidence=Decimal("0.40"),
        raw={},
        document=NormalizedReceipt(
            date=date(2025, 12, 10),
            vendor="Petro-Canada",
            total=Decimal("113.00"),
            tax=Decimal("13.00"),
            currency="CAD",
        ),
    )
    services.receipts.ensure_open_review(
        receipt, LOW_CONFIDENCE, {"fields": ["date", "vendor", "total", "tax"]}
    )
    return receipt


class TestResolve:

    def test_release_for_posting(self, services, tenant_id, held_receipt):
        outcome = services.reviews.resolve(
            tenant_id, held_receipt.id, {"total": "120.00"}, "reviewer@fleet"
        )

        assert held_receipt.status == ReceiptStatus.READY_FOR_POSTING.value
        assert isinstance(outcome.message, ReceiptReady)
        assert outcome.message.confidence == Decimal("1.0")
        assert outcome.review.resolved_by == "reviewer@fleet"
        assert outcome.review.resolution == {"total": "120.00"}

    def test_corrections_become_latest_extraction(self, services, tenant_id, held_receipt):
        services.reviews.resolve(tenant_id, held_receipt.id, {"tax": "15.00"}, "rev")

        extraction = services.receipts.latest_extraction(tenant_id, held_receipt.id)
        document = services.receipts.document_of(extraction)
        assert extraction.sequence == 2
        assert extraction.model_version == "human-review"
        assert document.tax == Decimal("15.00")
        assert document.total == Decimal("113.00")
        assert document.vendor == "Petro-Canada"

    def test_audited_as_reviewer(self, services, tenant_id, held_receipt):
        services.reviews.resolve(tenant_id, held_receipt.id, {}, "rev-7")

        trace = services.auditor.events_for(tenant_id, "Receipt", held_receipt.id)
        assert trace.actions == ("receipt.review.resolved",)
        assert trace.entries[0].actor == "rev-7"

    def test_reviewed_receipt_posts_as_estimated(self, services, tenant_id, held_receipt):
        services.reviews.resolve(tenant_id, held_receipt.id, {}, "rev")

        entry = services.posting.post_receipt(tenant_id, held_receipt.id, None).entry

        assert [line.evidence for line in entry.lines] == ["Estimated", "Estimated"]

    def test_resolution_still_failing_checks(self, services, tenant_id, held_receipt):
        with pytest.raises(InvalidReviewResolutionError):
            services.reviews.resolve(tenant_id, held_receipt.id, {"total": "0"}, "rev")

        assert held_receipt.status == ReceiptStatus.HOLD.value

    def test_resubmit(self, services, tenant_id, held_receipt):
        outcome = services.reviews.resolve(
            tenant_id, held_receipt.id, {"note": "blurry"}, "rev", resubmit=True
        )

        assert held_receipt.status == ReceiptStatus.SUBMITTED.value
        assert held_receipt.submission == 1
        assert isinstance(outcome.message, ReceiptReceived)
        assert outcome.message.submission == 1
        trace = services.auditor.events_for(tenant_id, "Receipt", held_receipt.id)
        assert trace.actions == ("receipt.review.resolved", "receipt.resubmitted")


class TestResolveErrors:

    def test_second_resolution(self, services, tenant_id, held_receipt):
        services.reviews.resolve(tenant_id, held_receipt.id, {}, "rev")

        with pytest.raises(ReviewAlreadyResolvedError):
            services.reviews.resolve(tenant_id, held_receipt.id, {}, "rev")

    def test_never_held(self, services, tenant_id):
        receipt = services.receipts.create(tenant_id, uuid4())

        with pytest.raises(ReviewNotFoundError):
            services.reviews.resolve(tenant_id, receipt.id, {}, "rev")

    def test_unknown_receipt(self, services, tenant_id):
        with pytest.raises(ReceiptNotFoundError):
            services.reviews.resolve(tenant_id, uuid4(), {}, "rev")

    def test_other_tenant(self, services, other_tenant_id, held_receipt):
        with pytest.raises(ReceiptNotFoundError):
            services.reviews.resolve(other_tenant_id, held_receipt.id, {}, "rev")

    def test_open_review_on_wrong_status(self, services, tenant_id, held_receipt):
        held_receipt.status = ReceiptStatus.POSTED.value

        with pytest.raises(InvalidReceiptStateError):
            services.reviews.resolve(tenant_id, held_receipt.id, {}, "rev")
