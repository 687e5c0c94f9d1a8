"""
ledger_services.snapshot_service -- Full recompute of period snapshots.

Responsibility:
    Given the entry date of a newly posted ledger entry, recomputes the
    Monthly (``YYYY-MM``) and YTD (``YYYY``) snapshots containing it by
    re-scanning every ledger line in range and running the pure
    ``compute_period_totals`` engine.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes LedgerSelector (kernel), AuditorService (kernel) and the pure
    snapshot totals engine (ledger_engines.snapshot_totals).

Invariants enforced:
    - Full recompute, never incremental: the stored snapshot is a function
      of the ledger lines in range only.
    - Determinism: the same ledger state writes byte-identical
      ``totals_json``, the same authority score and the same detail rows
      (ordered by metric key).
    - Tenant scope: every read and write filters on the tenant passed in.

Failure modes:
    - InvalidPeriodKeyError: cannot happen for keys derived from a date;
      propagates if it does.

Audit relevance:
    One ``snapshot.updated`` event per recomputed period, entity id
    ``{periodType}:{periodKey}``, carrying the authority score.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.snapshot_totals import LineFact, PeriodTotals, compute_period_totals
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.periods import monthly_key, resolve_period, year_key
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.snapshot import LedgerSnapshot, SnapshotDetail, SnapshotPeriodType
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.utils.hashing import canonicalize_json

logger = get_logger("services.snapshot")


@dataclass(frozen=True)
class SnapshotResult:
    period_type: SnapshotPeriodType
    period_key: str
    totals: PeriodTotals


class SnapshotService:
    """
    Recomputes ledger snapshots.

    Contract:
        ``recompute_for_date`` refreshes both snapshots containing a date;
        ``recompute`` refreshes one period.  Neither commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- the idempotency gate does.
        - Does NOT read envelopes or publish messages.
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
        self._ledger = LedgerSelector(session)

    def recompute_for_date(
        self,
        tenant_id: UUID,
        entry_date: date,
        correlation_id: str | None = None,
    ) -> tuple[SnapshotResult, SnapshotResult]:
        monthly = self.recompute(
            tenant_id, SnapshotPeriodType.MONTHLY, monthly_key(entry_date), correlation_id
        )
        ytd = self.recompute(
            tenant_id, SnapshotPeriodType.YTD, year_key(entry_date), correlation_id
        )
        return monthly, ytd

    def recompute(
        self,
        tenant_id: UUID,
        period_type: SnapshotPeriodType,
        period_key: str,
        correlation_id: str | None = None,
    ) -> SnapshotResult:
        """
        Recompute one snapshot from the ledger lines in its period.

        Raises:
            InvalidPeriodKeyError: ``period_key`` does not match the type.
        """
        period = resolve_period(period_type.value, period_key)
        lines = self._ledger.lines_in_period(tenant_id, period)
        totals = compute_period_totals(
            LineFact(
                line_type=line.line_type,
                amount=line.amount,
                gst_hst=line.gst_hst,
                is_evidenced=line.is_evidenced,
            )
            for line in lines
        )

        snapshot = self._find(tenant_id, period_type, period_key)
        if snapshot is None:
            snapshot = LedgerSnapshot(
                tenant_id=tenant_id,
                period_type=period_type.value,
                period_key=period_key,
            )
            self._session.add(snapshot)

        snapshot.period_start = period.start
        snapshot.period_end = period.end
        snapshot.calculated_at = self._clock.now()
        snapshot.authority_score = totals.authority.score
        snapshot.evidence_pct = totals.authority.evidence_pct
        snapshot.estimated_pct = totals.authority.estimated_pct
        snapshot.totals_json = canonicalize_json(totals.totals())
        self._replace_details(snapshot, tenant_id, totals)
        self._session.flush()

        entity_id = f"{period_type.value}:{period_key}"
        self._auditor.record(
            tenant_id=tenant_id,
            action=AuditAction.SNAPSHOT_UPDATED,
            entity_type="LedgerSnapshot",
            entity_id=entity_id,
            correlation_id=correlation_id,
            metadata={
                "authorityScore": totals.authority.score,
                "lineCount": totals.line_count,
            },
        )
        logger.info(
            "snapshot_recomputed",
            extra={
                "period": entity_id,
                "authority_score": totals.authority.score,
                "line_count": totals.line_count,
            },
        )
        return SnapshotResult(period_type, period_key, totals)

    def _find(
        self, tenant_id: UUID, period_type: SnapshotPeriodType, period_key: str
    ) -> LedgerSnapshot | None:
        return self._session.execute(
            select(LedgerSnapshot).where(
                LedgerSnapshot.tenant_id == tenant_id,
                LedgerSnapshot.period_type == period_type.value,
                LedgerSnapshot.period_key == period_key,
            )
        ).scalar_one_or_none()

    def _replace_details(
        self, snapshot: LedgerSnapshot, tenant_id: UUID, totals: PeriodTotals
    ) -> None:
        # delete-orphan cascade removes the previous rows
        snapshot.details.clear()
        self._session.flush()
        snapshot.details.extend(
            SnapshotDetail(
                tenant_id=tenant_id,
                metric_key=metric.metric_key,
                value=metric.value,
                evidence_pct=metric.evidence_pct,
                estimated_pct=metric.estimated_pct,
            )
            for metric in totals.metrics
        )
