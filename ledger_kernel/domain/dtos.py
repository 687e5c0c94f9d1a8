"""
Data Transfer Objects for the posting path.

Pure, frozen value objects passed from handlers to LedgerWriter.  They carry
no ORM references; LedgerWriter is the only place they become rows.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from ledger_kernel.models.ledger import LedgerLineType, LineEvidence


@dataclass(frozen=True)
class SourceLinkSpec:
    """Provenance pointer for one line.  At least one id should be set."""

    receipt_id: UUID | None = None
    statement_line_id: UUID | None = None
    file_object_id: UUID | None = None


@dataclass(frozen=True)
class LineSpec:
    """
    Specification for one ledger line.

    Guarantees:
        - Immutable.
        - ``amount`` and ``gst_hst`` are Decimal; sign follows the line type
          convention (reversals negate both).
    """

    line_type: LedgerLineType
    amount: Decimal
    category_id: UUID
    evidence: LineEvidence
    gst_hst: Decimal = Decimal("0")
    deductible_pct: Decimal = Decimal("1.0")
    memo: str | None = None
    source_links: tuple[SourceLinkSpec, ...] = field(default_factory=tuple)

    def negated(self) -> "LineSpec":
        """Reversal counterpart: same line with amount and gst_hst negated."""
        return LineSpec(
            line_type=self.line_type,
            amount=-self.amount,
            category_id=self.category_id,
            evidence=self.evidence,
            gst_hst=-self.gst_hst,
            deductible_pct=self.deductible_pct,
            memo=self.memo,
            source_links=self.source_links,
        )
