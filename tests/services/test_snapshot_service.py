"""
SnapshotService: full recompute of Monthly and YTD snapshots.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from ledger_engines.snapshot_totals import EXPENSES_TOTAL, ITC_TOTAL, REVENUE_TOTAL
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.models.ledger import (
    LedgerLineType,
    LedgerSourceType,
    LineEvidence,
    PostedByType,
)
from ledger_kernel.models.snapshot import SnapshotPeriodType
from ledger_kernel.selectors.snapshot_selector import SnapshotSelector

CATEGORY = uuid4()


def _post(services, tenant_id, source_id, entry_date, line_type, amount, evidence, gst="0"):
    services.writer.post(
        tenant_id=tenant_id,
        source_type=LedgerSourceType.MANUAL,
        source_id=source_id,
        entry_date=entry_date,
        lines=[
            LineSpec(
                line_type=line_type,
                amount=Decimal(amount),
                gst_hst=Decimal(gst),
                category_id=CATEGORY,
                evidence=evidence,
            )
        ],
        posted_by=PostedByType.DRIVER,
        correlation_id=None,
    )


class TestRecompute:

    def test_monthly_and_ytd(self, services, tenant_id, session):
        _post(services, tenant_id, "a", date(2025, 12, 10), LedgerLineType.EXPENSE, "100.00",
              LineEvidence.EXTRACTED)
        _post(services, tenant_id, "b", date(2025, 3, 1), LedgerLineType.INCOME, "500.00",
              LineEvidence.EXTRACTED)

        monthly, ytd = services.snapshots.recompute_for_date(tenant_id, date(2025, 12, 10))
        session.commit()

        assert monthly.period_key == "2025-12"
        assert ytd.period_key == "2025"
        selector = SnapshotSelector(session)
        month = selector.get(tenant_id, SnapshotPeriodType.MONTHLY, "2025-12")
        year = selector.get(tenant_id, SnapshotPeriodType.YTD, "2025")
        assert month.detail(EXPENSES_TOTAL).value == Decimal("100.00")
        assert month.detail(REVENUE_TOTAL).value == Decimal("0")
        assert year.detail(REVENUE_TOTAL).value == Decimal("500.00")
        assert month.period_start == date(2025, 12, 1)
        assert month.period_end == date(2026, 1, 1)

    def test_authority_from_evidence(self, services, tenant_id, session):
        _post(services, tenant_id, "a", date(2025, 12, 1), LedgerLineType.EXPENSE, "10",
              LineEvidence.MANUAL)
        _post(services, tenant_id, "b", date(2025, 12, 2), LedgerLineType.EXPENSE, "10",
              LineEvidence.ESTIMATED)

        services.snapshots.recompute(tenant_id, SnapshotPeriodType.MONTHLY, "2025-12")

        view = SnapshotSelector(session).get(tenant_id, "Monthly", "2025-12")
        assert view.authority_score == 50
        assert view.evidence_pct == Decimal("0.5")

    def test_empty_period(self, services, tenant_id, session):
        services.snapshots.recompute(tenant_id, SnapshotPeriodType.MONTHLY, "2025-06")

        view = SnapshotSelector(session).get(tenant_id, "Monthly", "2025-06")
        assert view.authority_score == 0
        assert all(d.value == 0 for d in view.details)

    def test_recompute_replaces_details(self, services, tenant_id, session):
        services.snapshots.recompute(tenant_id, SnapshotPeriodType.MONTHLY, "2025-12")
        _post(services, tenant_id, "a", date(2025, 12, 5), LedgerLineType.ITC, "0",
              LineEvidence.EXTRACTED, gst="13.00")

        services.snapshots.recompute(tenant_id, SnapshotPeriodType.MONTHLY, "2025-12")
        session.commit()

        view = SnapshotSelector(session).get(tenant_id, "Monthly", "2025-12")
        keys = [d.metric_key for d in view.details]
        assert len(keys) == len(set(keys))
        assert view.detail(ITC_TOTAL).value == Decimal("13.00")

    def test_same_ledger_gives_same_totals(self, services, tenant_id, session):
        _post(services, tenant_id, "a", date(2025, 12, 5), LedgerLineType.INCOME, "10.005",
              LineEvidence.EXTRACTED)
        services.snapshots.recompute(tenant_id, SnapshotPeriodType.MONTHLY, "2025-12")
        first = SnapshotSelector(session).get(tenant_id, "Monthly", "2025-12").totals_json

        services.snapshots.recompute(tenant_id, SnapshotPeriodType.MONTHLY, "2025-12")
        second = SnapshotSelector(session).get(tenant_id, "Monthly", "2025-12").totals_json

        assert first == second

    def test_tenant_scope(self, services, tenant_id, other_tenant_id, session):
        _post(services, other_tenant_id, "a", date(2025, 12, 5), LedgerLineType.EXPENSE, "99",
              LineEvidence.EXTRACTED)

        services.snapshots.recompute(tenant_id, SnapshotPeriodType.MONTHLY, "2025-12")

        view = SnapshotSelector(session).get(tenant_id, "Monthly", "2025-12")
        assert view.detail(EXPENSES_TOTAL).value == Decimal("0")

    def test_audits_period_entity(self, services, tenant_id):
        services.snapshots.recompute(tenant_id, SnapshotPeriodType.MONTHLY, "2025-12")

        trace = services.auditor.events_for(tenant_id, "LedgerSnapshot", "Monthly:2025-12")
        assert trace.actions == ("snapshot.updated",)
        assert trace.entries[0].metadata["authorityScore"] == 0
