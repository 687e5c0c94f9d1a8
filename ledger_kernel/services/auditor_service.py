"""
AuditorService -- append-only audit trail.

Responsibility:
    Creates AuditEvent rows for every notable action in the posting and
    reconciliation pipeline and answers trace queries by entity or by
    correlation id.

Architecture position:
    Kernel > Services -- imperative shell, called by the idempotency gate,
    LedgerWriter, SnapshotService, ReconciliationService and the event
    handlers.

Invariants enforced:
    - Append-only: audit events are never modified or deleted (guarded in
      db/immutability.py).
    - Every event carries tenant_id; every query filters on it.
    - Traces are ordered by a monotonic ``seq`` from SequenceService.

Audit relevance:
    This IS the audit service.  ``trace_for`` reconstructs a receipt's path
    (extraction -> hold/ready -> ledger.posted -> snapshot.updated) from the
    shared correlation id.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.auditor")

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: str
    entity_type: str
    entity_id: str
    occurred_at: datetime
    actor: str
    metadata: dict[str, Any]


@dataclass(frozen=True)
class AuditTrace:
    """Audit events matching one query, oldest first."""

    key: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)


class AuditorService:
    """
    Creates and queries audit events.

    Contract:
        ``record`` adds one AuditEvent to the session.  Queries are scoped to
        the tenant passed in.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT interpret audit events.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        tenant_id: UUID,
        action: AuditAction | str,
        entity_type: str,
        entity_id: Any,
        correlation_id: str | None,
        metadata: dict[str, Any] | None = None,
        actor: str = SYSTEM_ACTOR,
    ) -> AuditEvent:
        action_name = action.value if isinstance(action, AuditAction) else str(action)
        event = AuditEvent(
            seq=self._sequences.next_value(SequenceService.AUDIT_EVENT),
            tenant_id=tenant_id,
            actor=actor,
            action=action_name,
            entity_type=entity_type,
            entity_id=str(entity_id),
            occurred_at=self._clock.now(),
            correlation_id=correlation_id,
            metadata_json=metadata or {},
        )
        self._session.add(event)
        logger.debug(
            "audit_event_recorded",
            extra={"action": action_name, "entity_type": entity_type},
        )
        return event

    def request_notification(
        self,
        tenant_id: UUID,
        notification_type: str,
        severity: str,
        title: str,
        body: str,
        entity_type: str,
        entity_id: Any,
        correlation_id: str | None,
    ) -> AuditEvent:
        """
        Record that the driver should be told about ``entity_id``.

        Delivery (inbox, push, email) reads these events; nothing here
        sends anything.
        """
        event = self.record(
            tenant_id=tenant_id,
            action=AuditAction.NOTIFICATION_REQUESTED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            metadata={
                "type": notification_type,
                "severity": severity,
                "title": title,
                "body": body,
            },
        )
        logger.info(
            "driver_notification_requested",
            extra={
                "notification_type": notification_type,
                "severity": severity,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return event

    def trace_for(self, tenant_id: UUID, correlation_id: str) -> AuditTrace:
        """All audit events of one correlated flow."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.tenant_id == tenant_id,
                AuditEvent.correlation_id == correlation_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()
        return AuditTrace(key=correlation_id, entries=self._entries(events))

    def events_for(
        self, tenant_id: UUID, entity_type: str, entity_id: Any
    ) -> AuditTrace:
        """All audit events about one entity."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.tenant_id == tenant_id,
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == str(entity_id),
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()
        return AuditTrace(key=f"{entity_type}:{entity_id}", entries=self._entries(events))

    @staticmethod
    def _entries(events) -> tuple[AuditTraceEntry, ...]:
        return tuple(
            AuditTraceEntry(
                seq=e.seq,
                action=e.action,
                entity_type=e.entity_type,
                entity_id=e.entity_id,
                occurred_at=e.occurred_at,
                actor=e.actor,
                metadata=dict(e.metadata_json or {}),
            )
            for e in events
        )
