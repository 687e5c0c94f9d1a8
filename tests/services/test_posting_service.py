"""
PostingService: receipts, statements and reconciliation runs to ledger lines.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.documents import NormalizedReceipt
from ledger_kernel.exceptions import InvalidReceiptStateError, InvalidStatementStateError
from ledger_kernel.models.ledger import LedgerSourceType, LineEvidence
from ledger_kernel.models.receipt import ReceiptStatus
from ledger_kernel.models.statement import (
    FieldEvidence,
    StatementPeriodType,
    StatementStatus,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_services.posting_service import RECEIPT_EXPENSE_MEMO, receipt_lines
from ledger_services.statement_service import StatementLineInput, StatementService


@pytest.fixture
def ready_receipt(services, tenant_id):
    def _make(total="113.00", tax="13.00", status=ReceiptStatus.READY_FOR_POSTING):
        receipt = services.receipts.create(tenant_id, uuid4(), status=status)
        services.receipts.record_extraction(
            receipt,
            model_version="test-ocr",
            confidence=Decimal("0.97"),
            raw={},
            document=NormalizedReceipt(
                date=date(2025, 12, 10),
                vendor="Petro-Canada",
                total=Decimal(total),
                tax=Decimal(tax) if tax is not None else None,
                currency="CAD",
            ),
        )
        return receipt

    return _make


@pytest.fixture
def statements(session, deterministic_clock):
    return StatementService(session, deterministic_clock)


class TestReceiptLines:

    def test_net_of_tax(self):
        lines = receipt_lines(
            uuid4(), uuid4(), Decimal("113.00"), Decimal("13.00"), "Shell", LineEvidence.EXTRACTED,
            uuid4(), Decimal("1.0"), "ITC",
        )
        assert [l.amount for l in lines] == [Decimal("100.00"), Decimal("0")]
        assert lines[1].gst_hst == Decimal("13.00")
        assert lines[0].memo == "Shell"

    def test_missing_tax(self):
        lines = receipt_lines(
            uuid4(), uuid4(), Decimal("50"), None, None, LineEvidence.EXTRACTED,
            uuid4(), Decimal("1.0"), "ITC",
        )
        assert lines[0].amount == Decimal("50")
        assert lines[1].gst_hst == Decimal("0")

    @pytest.mark.parametrize("vendor", [None, ""])
    def test_expense_memo_without_vendor(self, vendor):
        lines = receipt_lines(
            uuid4(), uuid4(), Decimal("20"), Decimal("0"), vendor, LineEvidence.ESTIMATED,
            uuid4(), Decimal("1.0"), "ITC",
        )
        assert lines[0].memo == RECEIPT_EXPENSE_MEMO


class TestPostReceipt:

    def test_expense_and_itc(self, services, tenant_id, ready_receipt, session):
        receipt = ready_receipt()

        result = services.posting.post_receipt(tenant_id, receipt.id, "corr-1")

        assert result.created
        assert receipt.status == ReceiptStatus.POSTED.value
        view = LedgerSelector(session).entry(tenant_id, result.entry.id)
        assert view.entry_date == date(2025, 12, 10)
        assert [(l.line_type, l.amount, l.gst_hst) for l in view.lines] == [
            ("Expense", Decimal("100.00"), Decimal("0")),
            ("Itc", Decimal("0"), Decimal("13.00")),
        ]
        assert all(l.evidence == "Extracted" for l in view.lines)
        assert view.posted_by_type == "System"

    def test_lines_link_to_receipt_and_file(self, services, tenant_id, ready_receipt):
        receipt = ready_receipt()

        entry = services.posting.post_receipt(tenant_id, receipt.id, None).entry

        for line in entry.lines:
            assert line.source_links[0].receipt_id == receipt.id
            assert line.source_links[0].file_object_id == receipt.file_object_id

    def test_posted_receipt_returns_existing(self, services, tenant_id, ready_receipt):
        receipt = ready_receipt()
        first = services.posting.post_receipt(tenant_id, receipt.id, None)

        second = services.posting.post_receipt(tenant_id, receipt.id, None)

        assert not second.created
        assert second.entry.id == first.entry.id

    def test_driver_is_notified_once(self, services, tenant_id, ready_receipt):
        receipt = ready_receipt()
        services.posting.post_receipt(tenant_id, receipt.id, "corr-p")
        services.posting.post_receipt(tenant_id, receipt.id, "corr-p")

        trace = services.auditor.events_for(tenant_id, "Receipt", receipt.id)
        assert trace.actions == ("notification.requested",)
        notice = trace.entries[0].metadata
        assert notice["type"] == "ReceiptPosted"
        assert notice["severity"] == "Info"
        assert notice["body"] == "Posted expense 100.00 and ITC 13.00 from receipt."

    def test_held_receipt_is_rejected(self, services, tenant_id, ready_receipt):
        receipt = ready_receipt(status=ReceiptStatus.HOLD)

        with pytest.raises(InvalidReceiptStateError):
            services.posting.post_receipt(tenant_id, receipt.id, None)


class TestPostStatement:

    def test_money_lines_posted_at_period_end(
        self, services, statements, tenant_id, session
    ):
        statement = statements.record_parsed(
            tenant_id,
            "Uber",
            StatementPeriodType.MONTHLY,
            "2025-11",
            [
                StatementLineInput("Income", "Gross Uber rides fares", Decimal("1000")),
                StatementLineInput("Fee", "Uber Rides Fees Total", Decimal("250")),
                StatementLineInput(
                    "TaxCollected", "GST/HST you collected from Riders",
                    tax_amount=Decimal("130"),
                ),
                StatementLineInput(
                    "Metric", "Online km", metric_key="OnlineKilometers",
                    metric_value=Decimal("800"), unit="km",
                ),
            ],
        )

        result = services.posting.post_statement(tenant_id, statement.id, None)

        assert statement.status == StatementStatus.POSTED.value
        view = LedgerSelector(session).entry(tenant_id, result.entry.id)
        assert view.entry_date == date(2025, 11, 30)
        assert view.source_type == LedgerSourceType.STATEMENT.value
        assert [(l.line_type, l.amount, l.gst_hst) for l in view.lines] == [
            ("Income", Decimal("1000"), Decimal("0")),
            ("Fee", Decimal("250"), Decimal("0")),
            ("TaxCollected", Decimal("0"), Decimal("130")),
        ]

    def test_inferred_fields_post_as_estimated(self, services, statements, tenant_id):
        statement = statements.record_parsed(
            tenant_id,
            "Uber",
            StatementPeriodType.MONTHLY,
            "2025-11",
            [
                StatementLineInput(
                    "Income", "Tips", Decimal("20"),
                    currency_evidence=FieldEvidence.INFERRED,
                )
            ],
        )

        entry = services.posting.post_statement(tenant_id, statement.id, None).entry

        assert entry.lines[0].evidence == "Estimated"

    def test_unknown_line_type_posts_as_other(self, services, statements, tenant_id):
        statement = statements.record_parsed(
            tenant_id, "Uber", StatementPeriodType.MONTHLY, "2025-11",
            [StatementLineInput("Promotion", "Quest bonus", Decimal("15"))],
        )

        entry = services.posting.post_statement(tenant_id, statement.id, None).entry

        assert entry.lines[0].line_type == "Other"

    def test_driver_is_notified(self, services, statements, tenant_id):
        statement = statements.record_parsed(
            tenant_id, "Uber", StatementPeriodType.MONTHLY, "2025-11",
            [
                StatementLineInput("Income", "Gross Uber rides fares", Decimal("1000")),
                StatementLineInput("Fee", "Uber Rides Fees Total", Decimal("250")),
            ],
        )

        services.posting.post_statement(tenant_id, statement.id, None)

        trace = services.auditor.events_for(tenant_id, "Statement", statement.id)
        assert trace.actions == ("notification.requested",)
        assert trace.entries[0].metadata["type"] == "StatementPosted"
        assert trace.entries[0].metadata["body"] == "Posted 2 statement lines."

    def test_metric_only_statement_posts_nothing(self, services, statements, tenant_id):
        statement = statements.record_parsed(
            tenant_id, "Uber", StatementPeriodType.MONTHLY, "2025-11",
            [StatementLineInput("Metric", "Trips", metric_key="Trips", metric_value=Decimal("3"))],
        )

        assert services.posting.post_statement(tenant_id, statement.id, None) is None
        assert statement.status == StatementStatus.POSTED.value

    def test_failed_statement_is_rejected(self, services, statements, tenant_id):
        statement = statements.record_parsed(
            tenant_id, "Uber", StatementPeriodType.MONTHLY, "2025-11",
            [StatementLineInput("Income", "Gross Uber rides fares", Decimal("1"))],
        )
        statement.status = StatementStatus.FAILED.value

        with pytest.raises(InvalidStatementStateError):
            services.posting.post_statement(tenant_id, statement.id, None)


class TestPostReconciliation:

    def _run(self, services, statements, tenant_id, monthly, yearly):
        m = statements.record_parsed(
            tenant_id, "Uber", StatementPeriodType.MONTHLY, "2025-12",
            [StatementLineInput("Income", "Gross Uber rides fares", Decimal(monthly))],
        )
        services.posting.post_statement(tenant_id, m.id, None)
        statements.record_parsed(
            tenant_id, "Uber", StatementPeriodType.YEARLY, "2025",
            [StatementLineInput("Income", "Gross Uber rides fares", Decimal(yearly))],
        )
        return services.reconciliation.reconcile(tenant_id, "Uber", "2025")

    def test_posts_delta_on_december_31(self, services, statements, tenant_id, session):
        run = self._run(services, statements, tenant_id, "11950.00", "12000.00")

        result = services.posting.post_reconciliation(tenant_id, run.id, None)

        view = LedgerSelector(session).entry(tenant_id, result.entry.id)
        assert view.entry_date == date(2025, 12, 31)
        assert view.source_type == "Reconciliation"
        assert [(l.line_type, l.amount) for l in view.lines] == [("Income", Decimal("50.00"))]

    def test_no_variance_is_a_noop(self, services, statements, tenant_id):
        run = self._run(services, statements, tenant_id, "100", "100")

        assert services.posting.post_reconciliation(tenant_id, run.id, "corr-n") is None
        trace = services.auditor.trace_for(tenant_id, "corr-n")
        assert trace.actions == ("ledger.reconciliation.noop",)
