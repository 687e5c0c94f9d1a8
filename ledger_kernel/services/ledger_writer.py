"""
LedgerWriter -- exactly one ledger entry per source document.

Responsibility:
    Implements Post(source_type, source_id, tenant_id, lines) -> LedgerEntry.
    Looks up an existing entry for (tenant_id, source_type, source_id) and
    returns it unchanged when found; otherwise inserts one LedgerEntry with
    its LedgerLines and LedgerSourceLinks and records a ``ledger.posted``
    audit event.  Also builds reversal entries for corrections.

Architecture position:
    Kernel > Services -- imperative shell, called by the posting handlers
    inside the idempotency gate's savepoint.

Invariants enforced:
    - UNIQUE (tenant_id, source_type, source_id): pre-checked, then enforced
      by the constraint in a nested savepoint.  A concurrent writer that
      loses the race gets the winner's entry back, not an error.
    - Append-only: ``check_append_only`` runs before every flush this class
      makes.  Reversals are new entries; the original is never touched.
    - Reversal entries negate amount and gst_hst line by line and keep the
      original entry date and evidence.

Failure modes:
    - EmptyPostingError: no lines.
    - LedgerEntryNotFoundError: reversal target missing for the tenant.
    - ImmutabilityViolationError: a pending edit of a ledger row was found.

Audit relevance:
    Every created entry produces exactly one ``ledger.posted`` audit event;
    an idempotent replay produces none.
"""

from dataclasses import dataclass
from datetime import date
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.immutability import check_append_only
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec, SourceLinkSpec
from ledger_kernel.exceptions import EmptyPostingError, LedgerEntryNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.ledger import (
    LedgerEntry,
    LedgerLine,
    LedgerSourceLink,
    LedgerSourceType,
    PostedByType,
)
from ledger_kernel.services.auditor_service import AuditorService

logger = get_logger("services.ledger_writer")


@dataclass(frozen=True)
class PostResult:
    """The entry for the source document and whether this call created it."""

    entry: LedgerEntry
    created: bool


class LedgerWriter:
    """
    Append-only writer for ledger entries.

    Contract:
        ``post`` returns the single entry for the source document, creating
        it if absent.  ``reversal_lines`` derives the negated line specs for
        an existing entry.

    Guarantees:
        - Idempotent per (tenant_id, source_type, source_id).
        - Lines are numbered 1..n in the order given.

    Non-goals:
        - Does NOT call ``session.commit()`` -- the idempotency gate does.
        - Does NOT publish ``ledger.posted.v1``; handlers publish after commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    def find_entry(
        self,
        tenant_id: UUID,
        source_type: LedgerSourceType,
        source_id: str,
    ) -> LedgerEntry | None:
        return self._session.execute(
            select(LedgerEntry).where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.source_type == source_type.value,
                LedgerEntry.source_id == source_id,
            )
        ).scalar_one_or_none()

    def get_entry(self, tenant_id: UUID, entry_id: UUID) -> LedgerEntry:
        entry = self._session.execute(
            select(LedgerEntry).where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.id == entry_id,
            )
        ).scalar_one_or_none()
        if entry is None:
            raise LedgerEntryNotFoundError(str(entry_id))
        return entry

    def post(
        self,
        tenant_id: UUID,
        source_type: LedgerSourceType,
        source_id: str,
        entry_date: date,
        lines: Sequence[LineSpec],
        posted_by: PostedByType,
        correlation_id: str | None,
        reverses_entry_id: UUID | None = None,
        audit_metadata: dict | None = None,
    ) -> PostResult:
        """
        Post one entry for a source document, or return the existing one.

        Raises:
            EmptyPostingError: ``lines`` is empty.
        """
        existing = self.find_entry(tenant_id, source_type, source_id)
        if existing is not None:
            logger.info(
                "ledger_entry_exists",
                extra={
                    "source_type": source_type.value,
                    "source_id": source_id,
                    "ledger_entry_id": str(existing.id),
                },
            )
            return PostResult(existing, created=False)

        if not lines:
            raise EmptyPostingError(source_type.value, source_id)

        entry = LedgerEntry(
            tenant_id=tenant_id,
            entry_date=entry_date,
            source_type=source_type,
            source_id=source_id,
            posted_by_type=posted_by,
            correlation_id=correlation_id,
            reverses_entry_id=reverses_entry_id,
            created_at=self._clock.now(),
        )
        entry.lines = [
            self._build_line(tenant_id, line_no, spec)
            for line_no, spec in enumerate(lines, start=1)
        ]

        check_append_only(self._session)
        try:
            with self._session.begin_nested():
                self._session.add(entry)
                self._session.flush()
        except IntegrityError:
            winner = self.find_entry(tenant_id, source_type, source_id)
            if winner is None:
                raise
            logger.info(
                "ledger_entry_race_lost",
                extra={"source_type": source_type.value, "source_id": source_id},
            )
            return PostResult(winner, created=False)

        metadata = {
            "sourceType": source_type.value,
            "sourceId": source_id,
            "entryDate": entry_date.isoformat(),
            "lineCount": len(entry.lines),
        }
        if reverses_entry_id is not None:
            metadata["reversesEntryId"] = str(reverses_entry_id)
        metadata.update(audit_metadata or {})
        self._auditor.record(
            tenant_id=tenant_id,
            action=AuditAction.LEDGER_POSTED,
            entity_type="LedgerEntry",
            entity_id=entry.id,
            correlation_id=correlation_id,
            metadata=metadata,
        )
        logger.info(
            "ledger_entry_posted",
            extra={
                "ledger_entry_id": str(entry.id),
                "source_type": source_type.value,
                "source_id": source_id,
                "line_count": len(entry.lines),
            },
        )
        return PostResult(entry, created=True)

    @staticmethod
    def reversal_lines(entry: LedgerEntry) -> list[LineSpec]:
        """Negated line specs for ``entry``, evidence and provenance kept."""
        return [
            LineSpec(
                line_type=line.line_type,
                amount=line.amount,
                category_id=line.category_id,
                evidence=line.evidence,
                gst_hst=line.gst_hst,
                deductible_pct=line.deductible_pct,
                memo=line.memo,
                source_links=tuple(
                    SourceLinkSpec(
                        receipt_id=link.receipt_id,
                        statement_line_id=link.statement_line_id,
                        file_object_id=link.file_object_id,
                    )
                    for link in line.source_links
                ),
            ).negated()
            for line in entry.lines
        ]

    @staticmethod
    def _build_line(tenant_id: UUID, line_no: int, spec: LineSpec) -> LedgerLine:
        line = LedgerLine(
            tenant_id=tenant_id,
            line_no=line_no,
            category_id=spec.category_id,
            line_type=spec.line_type,
            amount=spec.amount,
            gst_hst=spec.gst_hst,
            deductible_pct=spec.deductible_pct,
            evidence=spec.evidence,
            memo=spec.memo,
        )
        line.source_links = [
            LedgerSourceLink(
                tenant_id=tenant_id,
                receipt_id=link.receipt_id,
                statement_line_id=link.statement_line_id,
                file_object_id=link.file_object_id,
            )
            for link in spec.source_links
        ]
        return line
