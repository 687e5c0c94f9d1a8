"""Read-side queries over ledger snapshots."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.models.snapshot import LedgerSnapshot
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class SnapshotDetailView:
    metric_key: str
    value: Decimal
    evidence_pct: Decimal
    estimated_pct: Decimal


@dataclass(frozen=True)
class SnapshotView:
    period_type: str
    period_key: str
    period_start: date
    period_end: date
    calculated_at: datetime
    authority_score: int
    evidence_pct: Decimal
    estimated_pct: Decimal
    totals_json: str
    details: tuple[SnapshotDetailView, ...]

    def detail(self, metric_key: str) -> SnapshotDetailView | None:
        for d in self.details:
            if d.metric_key == metric_key:
                return d
        return None


class SnapshotSelector(BaseSelector):

    def get(self, tenant_id: UUID, period_type: str, period_key: str) -> SnapshotView | None:
        snapshot = self.session.execute(
            select(LedgerSnapshot).where(
                LedgerSnapshot.tenant_id == tenant_id,
                LedgerSnapshot.period_type == str(getattr(period_type, "value", period_type)),
                LedgerSnapshot.period_key == period_key,
            )
        ).scalar_one_or_none()
        if snapshot is None:
            return None
        return SnapshotView(
            period_type=snapshot.period_type,
            period_key=snapshot.period_key,
            period_start=snapshot.period_start,
            period_end=snapshot.period_end,
            calculated_at=snapshot.calculated_at,
            authority_score=snapshot.authority_score,
            evidence_pct=snapshot.evidence_pct,
            estimated_pct=snapshot.estimated_pct,
            totals_json=snapshot.totals_json,
            details=tuple(
                SnapshotDetailView(
                    metric_key=d.metric_key,
                    value=d.value,
                    evidence_pct=d.evidence_pct,
                    estimated_pct=d.estimated_pct,
                )
                for d in snapshot.details
            ),
        )
