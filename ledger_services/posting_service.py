"""
ledger_services.posting_service -- Source documents to ledger entries.

Responsibility:
    Builds the ledger lines for each kind of source document (receipt,
    statement, reconciliation run, manual entry, adjustment) and posts them
    through LedgerWriter, moving the source document's status where it has
    one.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes LedgerWriter, AuditorService and ReceiptService, and the pure
    reconciliation engine for adjustment deltas.  Called inside the
    idempotency gate by the posting handlers and by LedgerCommands.

Invariants enforced:
    - One entry per (tenant, source_type, source_id); LedgerWriter returns
      the existing entry on replay.
    - A receipt posts exactly two lines: Expense (net of tax) and Itc
      (tax in gst_hst), both source-linked to the receipt and its file.
    - Corrections never touch the original entry: an adjustment writes a
      reversal entry and a corrected entry, both referencing the original.
    - An entry is reversed at most once.

Failure modes:
    - InvalidReceiptStateError / InvalidStatementStateError: the source
      document is not ready for posting.
    - EmptyPostingError / ZeroAmountLineError: invalid manual lines.
    - EntryAlreadyReversedError: second adjustment of the same entry.
    - LedgerEntryNotFoundError, ReceiptNotFoundError, StatementNotFoundError,
      ReconciliationRunNotFoundError: unknown ids for the tenant.

Audit relevance:
    ``ledger.posted`` per created entry (via LedgerWriter), ``ledger.reversed``
    per adjustment and ``ledger.reconciliation.noop`` when a reconciliation
    run needs no adjustment.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_engines.reconciliation import MetricVariance, compute_adjustments
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec, SourceLinkSpec
from ledger_kernel.exceptions import (
    EmptyPostingError,
    EntryAlreadyReversedError,
    InvalidConfigurationError,
    InvalidStatementStateError,
    ReconciliationRunNotFoundError,
    StatementNotFoundError,
    ZeroAmountLineError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.ledger import (
    LedgerEntry,
    LedgerLineType,
    LedgerSourceType,
    LineEvidence,
    PostedByType,
)
from ledger_kernel.models.receipt import ReceiptStatus
from ledger_kernel.models.reconciliation import ReconciliationRun
from ledger_kernel.models.statement import Statement, StatementPeriodType, StatementStatus
from ledger_kernel.selectors.statement_selector import StatementLineView, StatementSelector
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.ledger_writer import LedgerWriter, PostResult
from ledger_services.receipt_service import ReceiptService

logger = get_logger("services.posting")

_ZERO = Decimal("0")

# Statement line types whose value lives in gst_hst rather than amount
_TAX_LINE_TYPES = {LedgerLineType.TAX_COLLECTED.value, LedgerLineType.ITC.value}

# Expense memo when the receipt names no vendor
RECEIPT_EXPENSE_MEMO = "Receipt expense"

REVERSAL_PREFIX = "reverse:"
CORRECTED_PREFIX = "corrected:"


@dataclass(frozen=True)
class AdjustmentResult:
    """The reversal of the original entry and its corrected replacement."""

    reversal: PostResult
    corrected: PostResult | None

    @property
    def entries(self) -> list[LedgerEntry]:
        found = [self.reversal.entry]
        if self.corrected is not None:
            found.append(self.corrected.entry)
        return found


def receipt_lines(
    receipt_id: UUID,
    file_object_id: UUID,
    total: Decimal,
    tax: Decimal | None,
    vendor: str | None,
    evidence: LineEvidence,
    category_id: UUID,
    deductible_pct: Decimal,
    itc_memo: str,
) -> list[LineSpec]:
    """Expense line for the amount net of tax, Itc line for the tax."""
    tax = tax if tax is not None else _ZERO
    net = total - tax
    if net < _ZERO:
        net = total
    links = (SourceLinkSpec(receipt_id=receipt_id, file_object_id=file_object_id),)
    return [
        LineSpec(
            line_type=LedgerLineType.EXPENSE,
            amount=net,
            category_id=category_id,
            evidence=evidence,
            deductible_pct=deductible_pct,
            memo=vendor or RECEIPT_EXPENSE_MEMO,
            source_links=links,
        ),
        LineSpec(
            line_type=LedgerLineType.ITC,
            amount=_ZERO,
            gst_hst=tax,
            category_id=category_id,
            evidence=evidence,
            memo=itc_memo,
            source_links=links,
        ),
    ]


def statement_line_spec(
    line: StatementLineView,
    file_object_id: UUID | None,
    category_id: UUID,
) -> LineSpec:
    try:
        line_type = LedgerLineType(line.line_type)
    except ValueError:
        line_type = LedgerLineType.OTHER

    if line_type.value in _TAX_LINE_TYPES:
        tax = line.tax_amount if line.tax_amount is not None else line.money_amount
        amount, gst = _ZERO, tax or _ZERO
    else:
        amount, gst = line.money_amount or _ZERO, line.tax_amount or _ZERO

    return LineSpec(
        line_type=line_type,
        amount=amount,
        gst_hst=gst,
        category_id=category_id,
        evidence=LineEvidence.EXTRACTED if line.is_extracted else LineEvidence.ESTIMATED,
        memo=line.description,
        source_links=(
            SourceLinkSpec(statement_line_id=line.line_id, file_object_id=file_object_id),
        ),
    )


class PostingService:
    """
    Posts source documents to the ledger.

    Contract:
        Each ``post_*`` method returns the entry for its source document
        (created or pre-existing), or None where a source legitimately
        yields no entry.  Nothing is committed here.

    Non-goals:
        - Does NOT publish ``ledger.posted.v1``; callers publish after commit.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfig,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        writer: LedgerWriter | None = None,
        receipts: ReceiptService | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._writer = writer or LedgerWriter(session, self._clock, self._auditor)
        self._receipts = receipts or ReceiptService(session, self._clock)
        self._statements = StatementSelector(session)

    @property
    def _category_id(self) -> UUID:
        return self._config.posting.uncategorized_category_id

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def post_receipt(
        self, tenant_id: UUID, receipt_id: UUID, correlation_id: str | None
    ) -> PostResult:
        """
        Post a ReadyForPosting receipt as Expense + Itc.

        A receipt already Posted returns its existing entry.
        """
        receipt = self._receipts.get(tenant_id, receipt_id)
        source_id = str(receipt.id)

        if receipt.status == ReceiptStatus.POSTED.value:
            existing = self._writer.find_entry(tenant_id, LedgerSourceType.RECEIPT, source_id)
            if existing is not None:
                return PostResult(existing, created=False)

        self._receipts.transition(
            receipt,
            ReceiptStatus.POSTED,
            expected=(ReceiptStatus.READY_FOR_POSTING, ReceiptStatus.POSTED),
        )

        extraction = self._receipts.latest_extraction(tenant_id, receipt.id)
        if extraction is None:
            raise EmptyPostingError(LedgerSourceType.RECEIPT.value, source_id)
        document = self._receipts.document_of(extraction)
        if document.total is None:
            raise EmptyPostingError(LedgerSourceType.RECEIPT.value, source_id)

        # Values a reviewer typed in are not extraction evidence
        evidence = (
            LineEvidence.ESTIMATED
            if extraction.model_version == self._config.posting.human_review_model_version
            else LineEvidence.EXTRACTED
        )
        lines = receipt_lines(
            receipt_id=receipt.id,
            file_object_id=receipt.file_object_id,
            total=document.total,
            tax=document.tax,
            vendor=document.vendor,
            evidence=evidence,
            category_id=self._category_id,
            deductible_pct=self._config.posting.receipt_deductible_pct,
            itc_memo=self._config.posting.itc_memo,
        )
        entry_date = document.date or extraction.extracted_at.date()
        result = self._writer.post(
            tenant_id=tenant_id,
            source_type=LedgerSourceType.RECEIPT,
            source_id=source_id,
            entry_date=entry_date,
            lines=lines,
            posted_by=PostedByType.SYSTEM,
            correlation_id=correlation_id,
            audit_metadata={"receiptId": source_id, "evidence": evidence.value},
        )
        if result.created:
            net, itc = lines[0].amount, lines[1].gst_hst
            self._auditor.request_notification(
                tenant_id=tenant_id,
                notification_type="ReceiptPosted",
                severity="Info",
                title="Receipt posted to ledger",
                body=f"Posted expense {net:.2f} and ITC {itc:.2f} from receipt.",
                entity_type="Receipt",
                entity_id=source_id,
                correlation_id=correlation_id,
            )
        return result

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def post_statement(
        self, tenant_id: UUID, statement_id: UUID, correlation_id: str | None
    ) -> PostResult | None:
        """
        Post the money lines of a Parsed statement, dated at period end.

        Returns None when the statement has no money lines; the statement
        is still marked Posted.  Yearly statements are never posted; they
        stay Parsed as reconciliation input and return None.
        """
        statement = self._session.execute(
            select(Statement).where(
                Statement.tenant_id == tenant_id,
                Statement.id == statement_id,
            )
        ).scalar_one_or_none()
        if statement is None:
            raise StatementNotFoundError(str(statement_id))

        source_id = str(statement.id)
        if statement.period_type == StatementPeriodType.YEARLY.value:
            # Reconciliation input only; its figures reach the ledger as
            # reconciliation adjustments
            logger.info(
                "statement_reconciliation_only",
                extra={"statement_id": source_id, "provider": statement.provider},
            )
            return None
        if statement.status == StatementStatus.POSTED.value:
            existing = self._writer.find_entry(
                tenant_id, LedgerSourceType.STATEMENT, source_id
            )
            return None if existing is None else PostResult(existing, created=False)
        if statement.status != StatementStatus.PARSED.value:
            raise InvalidStatementStateError(
                source_id, statement.status, StatementStatus.PARSED.value
            )

        view = self._statements.get(tenant_id, statement.id)
        lines = [
            statement_line_spec(line, statement.file_object_id, self._category_id)
            for line in view.lines
            if not line.is_metric
        ]

        statement.status = StatementStatus.POSTED.value
        if not lines:
            logger.info(
                "statement_has_no_money_lines",
                extra={"statement_id": source_id, "provider": statement.provider},
            )
            return None

        result = self._writer.post(
            tenant_id=tenant_id,
            source_type=LedgerSourceType.STATEMENT,
            source_id=source_id,
            entry_date=statement.period_end,
            lines=lines,
            posted_by=PostedByType.SYSTEM,
            correlation_id=correlation_id,
            audit_metadata={
                "provider": statement.provider,
                "periodKey": statement.period_key,
            },
        )
        if result.created:
            self._auditor.request_notification(
                tenant_id=tenant_id,
                notification_type="StatementPosted",
                severity="Info",
                title="Statement posted to ledger",
                body=f"Posted {len(lines)} statement lines.",
                entity_type="Statement",
                entity_id=source_id,
                correlation_id=correlation_id,
            )
        return result

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def post_reconciliation(
        self, tenant_id: UUID, run_id: UUID, correlation_id: str | None
    ) -> PostResult | None:
        """
        Post the adjustments that bring monthly facts to the yearly figures.

        Returns None (and records ``ledger.reconciliation.noop``) when no
        postable variance reaches the minimum delta.
        """
        run = self._session.execute(
            select(ReconciliationRun).where(
                ReconciliationRun.tenant_id == tenant_id,
                ReconciliationRun.id == run_id,
            )
        ).scalar_one_or_none()
        if run is None:
            raise ReconciliationRunNotFoundError(str(run_id))

        provider = self._config.reconciliation.provider(run.provider)
        if provider is None:
            raise InvalidConfigurationError(
                [f"no reconciliation metrics configured for provider {run.provider!r}"]
            )

        adjustments = compute_adjustments(
            provider.metrics,
            [
                MetricVariance(
                    metric_key=v.metric_key,
                    monthly_total=v.monthly_total,
                    yearly_total=v.yearly_total,
                    variance_amount=v.variance_amount,
                )
                for v in run.variances
            ],
            self._config.reconciliation.min_postable_delta,
        )

        if not adjustments:
            self._auditor.record(
                tenant_id=tenant_id,
                action=AuditAction.LEDGER_RECONCILIATION_NOOP,
                entity_type="ReconciliationRun",
                entity_id=run.id,
                correlation_id=correlation_id,
                metadata={"provider": run.provider, "periodKey": run.period_key},
            )
            logger.info(
                "reconciliation_nothing_to_post",
                extra={"run_id": str(run.id), "period_key": run.period_key},
            )
            return None

        yearly = self._statements.get(tenant_id, run.yearly_statement_id)
        file_object_id = yearly.file_object_id if yearly is not None else None
        lines = []
        for adjustment in adjustments:
            line_type = LedgerLineType(adjustment.line_type)
            if line_type.value in _TAX_LINE_TYPES:
                amount, gst = _ZERO, adjustment.delta
            else:
                amount, gst = adjustment.delta, _ZERO
            lines.append(
                LineSpec(
                    line_type=line_type,
                    amount=amount,
                    gst_hst=gst,
                    category_id=self._category_id,
                    evidence=LineEvidence.EXTRACTED,
                    memo=f"Reconciliation {adjustment.metric_key}",
                    source_links=(
                        (SourceLinkSpec(file_object_id=file_object_id),)
                        if file_object_id is not None
                        else ()
                    ),
                )
            )

        return self._writer.post(
            tenant_id=tenant_id,
            source_type=LedgerSourceType.RECONCILIATION,
            source_id=str(run.id),
            entry_date=date(int(run.period_key), 12, 31),
            lines=lines,
            posted_by=PostedByType.SYSTEM,
            correlation_id=correlation_id,
            audit_metadata={"provider": run.provider, "periodKey": run.period_key},
        )

    # ------------------------------------------------------------------
    # Manual entries and adjustments
    # ------------------------------------------------------------------

    def post_manual(
        self,
        tenant_id: UUID,
        idempotency_key: str,
        entry_date: date,
        lines: Sequence[LineSpec],
        posted_by: PostedByType = PostedByType.DRIVER,
        correlation_id: str | None = None,
    ) -> PostResult:
        """
        Post caller-supplied lines keyed by ``idempotency_key``.

        Raises:
            EmptyPostingError: no lines.
            ZeroAmountLineError: a line with zero amount and zero tax.
        """
        validate_manual_lines(LedgerSourceType.MANUAL.value, idempotency_key, lines)
        return self._writer.post(
            tenant_id=tenant_id,
            source_type=LedgerSourceType.MANUAL,
            source_id=idempotency_key,
            entry_date=entry_date,
            lines=lines,
            posted_by=posted_by,
            correlation_id=correlation_id,
        )

    def post_adjustment(
        self,
        tenant_id: UUID,
        reverse_entry_id: UUID,
        idempotency_key: str,
        entry_date: date | None,
        lines: Sequence[LineSpec],
        correlation_id: str | None = None,
    ) -> AdjustmentResult:
        """
        Reverse an entry and post its corrected replacement.

        With no ``lines`` only the reversal is written.

        Raises:
            LedgerEntryNotFoundError: ``reverse_entry_id`` unknown.
            EntryAlreadyReversedError: the entry was already reversed.
            ZeroAmountLineError: a corrected line with zero amount and tax.
        """
        original = self._writer.get_entry(tenant_id, reverse_entry_id)
        reversal_source = f"{REVERSAL_PREFIX}{original.id}"
        if self._writer.find_entry(tenant_id, LedgerSourceType.ADJUSTMENT, reversal_source):
            raise EntryAlreadyReversedError(str(original.id))

        metadata = {"idempotencyKey": idempotency_key}
        reversal = self._writer.post(
            tenant_id=tenant_id,
            source_type=LedgerSourceType.ADJUSTMENT,
            source_id=reversal_source,
            entry_date=original.entry_date,
            lines=LedgerWriter.reversal_lines(original),
            posted_by=PostedByType.SYSTEM,
            correlation_id=correlation_id,
            reverses_entry_id=original.id,
            audit_metadata=metadata,
        )
        self._auditor.record(
            tenant_id=tenant_id,
            action=AuditAction.LEDGER_REVERSED,
            entity_type="LedgerEntry",
            entity_id=original.id,
            correlation_id=correlation_id,
            metadata={**metadata, "reversalEntryId": str(reversal.entry.id)},
        )

        corrected = None
        if lines:
            validate_manual_lines(LedgerSourceType.ADJUSTMENT.value, idempotency_key, lines)
            corrected = self._writer.post(
                tenant_id=tenant_id,
                source_type=LedgerSourceType.ADJUSTMENT,
                source_id=f"{CORRECTED_PREFIX}{original.id}",
                entry_date=entry_date or original.entry_date,
                lines=[replace(spec, evidence=LineEvidence.MANUAL) for spec in lines],
                posted_by=PostedByType.DRIVER,
                correlation_id=correlation_id,
                reverses_entry_id=original.id,
                audit_metadata=metadata,
            )
        logger.info(
            "ledger_entry_adjusted",
            extra={
                "ledger_entry_id": str(original.id),
                "reversal_entry_id": str(reversal.entry.id),
                "corrected": corrected is not None,
            },
        )
        return AdjustmentResult(reversal, corrected)


def validate_manual_lines(source_type: str, source_id: str, lines: Sequence[LineSpec]) -> None:
    if not lines:
        raise EmptyPostingError(source_type, source_id)
    for index, spec in enumerate(lines):
        if spec.amount == _ZERO and spec.gst_hst == _ZERO:
            raise ZeroAmountLineError(index)


def new_idempotency_key() -> str:
    return uuid4().hex
