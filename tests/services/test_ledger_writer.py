"""
LedgerWriter: exactly one entry per source document.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import LineSpec, SourceLinkSpec
from ledger_kernel.exceptions import EmptyPostingError, LedgerEntryNotFoundError
from ledger_kernel.models.ledger import (
    LedgerLineType,
    LedgerSourceType,
    LineEvidence,
    PostedByType,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.ledger_writer import LedgerWriter

CATEGORY = uuid4()


@pytest.fixture
def writer(session, deterministic_clock):
    return LedgerWriter(session, deterministic_clock)


def expense_lines(receipt_id=None) -> list[LineSpec]:
    links = (SourceLinkSpec(receipt_id=receipt_id, file_object_id=uuid4()),)
    return [
        LineSpec(
            line_type=LedgerLineType.EXPENSE,
            amount=Decimal("100.00"),
            category_id=CATEGORY,
            evidence=LineEvidence.EXTRACTED,
            memo="Petro-Canada",
            source_links=links,
        ),
        LineSpec(
            line_type=LedgerLineType.ITC,
            amount=Decimal("0"),
            gst_hst=Decimal("13.00"),
            category_id=CATEGORY,
            evidence=LineEvidence.EXTRACTED,
            source_links=links,
        ),
    ]


def post(writer, tenant_id, source_id="receipt-1", lines=None, **kwargs):
    return writer.post(
        tenant_id=tenant_id,
        source_type=kwargs.pop("source_type", LedgerSourceType.RECEIPT),
        source_id=source_id,
        entry_date=kwargs.pop("entry_date", date(2025, 12, 10)),
        lines=expense_lines() if lines is None else lines,
        posted_by=kwargs.pop("posted_by", PostedByType.SYSTEM),
        correlation_id=kwargs.pop("correlation_id", "corr-1"),
        **kwargs,
    )


class TestPost:

    def test_creates_entry_with_numbered_lines(self, writer, tenant_id, session):
        result = post(writer, tenant_id)
        session.commit()

        assert result.created
        view = LedgerSelector(session).entry(tenant_id, result.entry.id)
        assert [line.line_no for line in view.lines] == [1, 2]
        assert [line.line_type for line in view.lines] == ["Expense", "Itc"]
        assert view.lines[1].gst_hst == Decimal("13.00")
        assert view.posted_by_type == "System"

    def test_source_links_are_written(self, writer, tenant_id, session):
        receipt_id = uuid4()
        result = post(writer, tenant_id, lines=expense_lines(receipt_id))
        session.flush()

        links = result.entry.lines[0].source_links
        assert len(links) == 1
        assert links[0].receipt_id == receipt_id

    def test_second_post_returns_existing(self, writer, tenant_id, session):
        first = post(writer, tenant_id)
        second = post(writer, tenant_id, entry_date=date(2026, 1, 1))

        assert not second.created
        assert second.entry.id == first.entry.id
        assert LedgerSelector(session).count_entries(tenant_id) == 1

    def test_same_source_in_other_tenant_is_separate(
        self, writer, tenant_id, other_tenant_id, session
    ):
        post(writer, tenant_id)
        result = post(writer, other_tenant_id)

        assert result.created
        assert LedgerSelector(session).count_entries(tenant_id) == 1

    def test_source_types_are_separate_namespaces(self, writer, tenant_id):
        post(writer, tenant_id, source_id="x")
        result = post(writer, tenant_id, source_id="x", source_type=LedgerSourceType.MANUAL)
        assert result.created

    def test_empty_lines_are_rejected(self, writer, tenant_id):
        with pytest.raises(EmptyPostingError):
            post(writer, tenant_id, lines=[])

    def test_one_audit_event_per_created_entry(
        self, writer, tenant_id, session, deterministic_clock
    ):
        first = post(writer, tenant_id)
        post(writer, tenant_id)
        session.flush()

        trace = AuditorService(session, deterministic_clock).events_for(
            tenant_id, "LedgerEntry", first.entry.id
        )
        assert trace.actions == ("ledger.posted",)
        assert trace.entries[0].metadata["lineCount"] == 2


class TestReversalLines:

    def test_negates_amount_and_tax(self, writer, tenant_id, session):
        entry = post(writer, tenant_id).entry
        session.flush()

        reversed_lines = LedgerWriter.reversal_lines(entry)

        assert [l.amount for l in reversed_lines] == [Decimal("-100.00"), Decimal("0")]
        assert [l.gst_hst for l in reversed_lines] == [Decimal("0"), Decimal("-13.00")]
        assert all(l.evidence == LineEvidence.EXTRACTED.value for l in reversed_lines)
        assert reversed_lines[0].source_links[0].file_object_id is not None

    def test_get_entry_is_tenant_scoped(self, writer, tenant_id, other_tenant_id, session):
        entry = post(writer, tenant_id).entry
        session.flush()

        with pytest.raises(LedgerEntryNotFoundError):
            writer.get_entry(other_tenant_id, entry.id)
