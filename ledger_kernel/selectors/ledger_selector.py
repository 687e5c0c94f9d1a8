"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-side queries over ledger entries and lines.
Architecture position: Kernel > Selectors.

Snapshot recomputation reads every line in a period through
``lines_in_period``; ordering is fixed (entry date, entry id, line number)
so that aggregation over the result is deterministic.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.periods import PeriodRange
from ledger_kernel.models.ledger import LedgerEntry, LedgerLine, LineEvidence
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LedgerLineView:
    entry_id: UUID
    entry_date: date
    source_type: str
    source_id: str
    line_no: int
    line_type: str
    amount: Decimal
    gst_hst: Decimal
    evidence: str

    @property
    def is_evidenced(self) -> bool:
        return LineEvidence(self.evidence).is_evidenced


@dataclass(frozen=True)
class LedgerEntryView:
    entry_id: UUID
    entry_date: date
    source_type: str
    source_id: str
    posted_by_type: str
    reverses_entry_id: UUID | None
    lines: tuple[LedgerLineView, ...]


class LedgerSelector(BaseSelector):
    """Read-only queries over the ledger."""

    def lines_in_period(self, tenant_id: UUID, period: PeriodRange) -> list[LedgerLineView]:
        rows = self.session.execute(
            select(LedgerEntry, LedgerLine)
            .join(LedgerLine, LedgerLine.ledger_entry_id == LedgerEntry.id)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.entry_date >= period.start,
                LedgerEntry.entry_date < period.end,
            )
            .order_by(LedgerEntry.entry_date, LedgerEntry.id, LedgerLine.line_no)
        ).all()
        return [self._line_view(entry, line) for entry, line in rows]

    def entries_for_source(
        self, tenant_id: UUID, source_type: str, source_id: str
    ) -> list[LedgerEntryView]:
        entries = self.session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.source_type == str(getattr(source_type, "value", source_type)),
                LedgerEntry.source_id == source_id,
            )
            .order_by(LedgerEntry.created_at)
        ).scalars().all()
        return [self._entry_view(e) for e in entries]

    def entry(self, tenant_id: UUID, entry_id: UUID) -> LedgerEntryView | None:
        entry = self.session.execute(
            select(LedgerEntry).where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.id == entry_id,
            )
        ).scalar_one_or_none()
        return None if entry is None else self._entry_view(entry)

    def count_entries(self, tenant_id: UUID) -> int:
        return len(
            self.session.execute(
                select(LedgerEntry.id).where(LedgerEntry.tenant_id == tenant_id)
            ).all()
        )

    @classmethod
    def _entry_view(cls, entry: LedgerEntry) -> LedgerEntryView:
        return LedgerEntryView(
            entry_id=entry.id,
            entry_date=entry.entry_date,
            source_type=entry.source_type,
            source_id=entry.source_id,
            posted_by_type=entry.posted_by_type,
            reverses_entry_id=entry.reverses_entry_id,
            lines=tuple(cls._line_view(entry, line) for line in entry.lines),
        )

    @staticmethod
    def _line_view(entry: LedgerEntry, line: LedgerLine) -> LedgerLineView:
        return LedgerLineView(
            entry_id=entry.id,
            entry_date=entry.entry_date,
            source_type=entry.source_type,
            source_id=entry.source_id,
            line_no=line.line_no,
            line_type=line.line_type,
            amount=line.amount,
            gst_hst=line.gst_hst,
            evidence=line.evidence,
        )
