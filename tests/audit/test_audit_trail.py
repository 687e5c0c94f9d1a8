"""
Audit trail ordering and tenant scope.
"""

import pytest
from sqlalchemy import select

from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.sequence_service import SequenceService


@pytest.fixture
def auditor(session, deterministic_clock):
    return AuditorService(session, deterministic_clock)


class TestSequence:

    def test_values_increase(self, session):
        sequences = SequenceService(session)

        values = [sequences.next_value("test_seq") for _ in range(3)]

        assert values == [1, 2, 3]
        assert sequences.current_value("test_seq") == 3

    def test_unknown_sequence(self, session):
        assert SequenceService(session).current_value("never_used") is None

    def test_rolled_back_savepoint_returns_value(self, session):
        sequences = SequenceService(session)
        sequences.next_value("test_seq")

        savepoint = session.begin_nested()
        sequences.next_value("test_seq")
        savepoint.rollback()

        assert sequences.next_value("test_seq") == 2

    def test_visible_to_other_sessions_after_commit(self, session, fresh_session):
        SequenceService(session).next_value("shared")
        session.commit()

        with fresh_session() as other:
            assert SequenceService(other).next_value("shared") == 2
            other.commit()

        assert SequenceService(session).next_value("shared") == 3


class TestTraceOrder:

    def test_same_timestamp_keeps_write_order(self, auditor, tenant_id):
        for action in ("receipt.extraction.completed", "receipt.ready", "ledger.posted"):
            auditor.record(tenant_id, action, "Receipt", "r-1", "corr-1")

        trace = auditor.trace_for(tenant_id, "corr-1")

        assert trace.actions == (
            "receipt.extraction.completed",
            "receipt.ready",
            "ledger.posted",
        )
        seqs = [e.seq for e in trace.entries]
        assert seqs == sorted(seqs)
        assert len(set(e.occurred_at for e in trace.entries)) == 1

    def test_trace_is_tenant_scoped(self, auditor, tenant_id, other_tenant_id):
        auditor.record(tenant_id, "ledger.posted", "LedgerEntry", "e-1", "corr-x")
        auditor.record(other_tenant_id, "ledger.posted", "LedgerEntry", "e-2", "corr-x")

        trace = auditor.trace_for(tenant_id, "corr-x")

        assert [e.entity_id for e in trace.entries] == ["e-1"]

    def test_events_for_entity(self, auditor, tenant_id):
        auditor.record(tenant_id, "receipt.hold", "Receipt", "r-9", "c1")
        auditor.record(
            tenant_id, "receipt.review.resolved", "Receipt", "r-9", "c2", actor="rev-1"
        )
        auditor.record(tenant_id, "receipt.hold", "Receipt", "r-10", "c1")

        trace = auditor.events_for(tenant_id, "Receipt", "r-9")

        assert trace.actions == ("receipt.hold", "receipt.review.resolved")
        assert [e.actor for e in trace.entries] == ["system", "rev-1"]
        assert not trace.is_empty

    def test_empty_trace(self, auditor, tenant_id):
        assert auditor.trace_for(tenant_id, "nothing").is_empty

    def test_one_counter_row(self, auditor, tenant_id, session):
        auditor.record(tenant_id, "ledger.posted", "LedgerEntry", "e-1", None)
        auditor.record(tenant_id, "ledger.posted", "LedgerEntry", "e-2", None)

        counters = session.execute(
            select(SequenceCounter).where(SequenceCounter.name == SequenceService.AUDIT_EVENT)
        ).scalars().all()
        assert len(counters) == 1
        assert counters[0].current_value == 2
